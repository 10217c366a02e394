"""
Provisioning scheduler: walks the dependency graph and drives remote calls.

Declarations whose dependencies are all Created are dispatched to a thread
pool; the pool size bounds the number of outstanding remote calls. All
record transitions and Attribute Future fulfilments happen on the thread
that called run(), so dependents only ever observe terminal records.
"""

import heapq
import logging
import threading
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from functools import partial
from typing import Iterable

from cirrus.core.dag import DAG, build_graph
from cirrus.core.declaration import Declaration, Reference, substitute
from cirrus.core.errors import RemoteCallFailure, UnresolvedReference, UpstreamFailed
from cirrus.core.future import AttributeFuture
from cirrus.execution.records import ApplyReport, ProvisioningRecord, Status
from cirrus.providers.base import CallResult, RemoteCallLayer, ResourceSpec

logger = logging.getLogger(__name__)


class _Run:
    """State of a single scheduler run. Discarded once the report is built."""

    def __init__(self, graph: DAG):
        self.graph = graph
        self.index = {name: i for i, name in enumerate(graph.nodes)}
        self.records = {
            name: ProvisioningRecord(name, node.declaration.fingerprint())
            for name, node in graph.nodes.items()
        }
        self.futures = {name: AttributeFuture(name) for name in graph.nodes}
        self.remaining = {name: len(node.dependencies) for name, node in graph.nodes.items()}
        self.ready: list[tuple[int, str]] = []
        self.order: list[str] = []
        self._failing: deque[tuple[str, BaseException]] = deque()

        for name, node in graph.nodes.items():
            for dependency in node.dependencies:
                self.futures[dependency].on_resolved(partial(self._release, name))
                self.futures[dependency].on_failed(partial(self._skip, name, dependency))

    def _release(self, name: str, _attributes) -> None:
        self.remaining[name] -= 1
        if self.remaining[name] == 0:
            self.enqueue(name)

    def _skip(self, name: str, dependency: str, error: BaseException) -> None:
        record = self.records[name]
        if record.status is not Status.PENDING:
            return
        cause = error.cause if isinstance(error, UpstreamFailed) else dependency
        upstream = UpstreamFailed(name, cause)
        record.transition(Status.UPSTREAM_FAILED, error=upstream, cause=cause)
        logger.warning("Skipping '%s': upstream '%s' failed", name, cause)
        self._failing.append((name, upstream))

    def fail(self, name: str, error: BaseException) -> None:
        """
        Fail a declaration's future and, through the continuations, every
        transitive dependent.

        Continuations only queue the next future to fail, so a long chain
        is walked level by level instead of recursively.
        """
        self._failing.append((name, error))
        while self._failing:
            failing, failure = self._failing.popleft()
            self.futures[failing].fail(failure)

    def enqueue(self, name: str) -> None:
        if self.records[name].status is Status.PENDING:
            heapq.heappush(self.ready, (self.index[name], name))

    def pop_ready(self) -> str | None:
        while self.ready:
            _, name = heapq.heappop(self.ready)
            if self.records[name].status is Status.PENDING:
                return name
        return None

    def report(self, cancelled: bool) -> ApplyReport:
        return ApplyReport(records=self.records, order=self.order, cancelled=cancelled)


class Scheduler:
    """
    Drives declarations through Pending -> InFlight -> Created | Failed.

    The scheduler does not retry failed calls. A failure marks the
    declaration Failed and every transitive dependent UpstreamFailed;
    unrelated branches keep going.

    Example:
        scheduler = Scheduler(InMemoryProvider(), max_workers=4)
        report = scheduler.run(stack.declarations)
        for name, outcome in report.outcomes().items():
            print(name, outcome)
    """

    def __init__(self, provider: RemoteCallLayer, max_workers: int = 4):
        """
        Initialize the scheduler.

        Args:
            provider: Remote call layer issuing the create/update calls
            max_workers: Maximum number of concurrent remote calls
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.provider = provider
        self.max_workers = max_workers
        self._abort = threading.Event()

    def cancel(self) -> None:
        """
        Stop dispatching new declarations.

        Calls already in flight are allowed to finish; anything not yet
        dispatched stays Pending. Safe to call from any thread.
        """
        logger.info("Cancellation requested")
        self._abort.set()

    @property
    def cancelled(self) -> bool:
        return self._abort.is_set()

    def run(
        self,
        declarations: Iterable[Declaration],
        graph: DAG | None = None,
        resume_from: ApplyReport | None = None,
    ) -> ApplyReport:
        """
        Provision declarations in dependency order.

        Args:
            declarations: Declarations to provision
            graph: Pre-built graph for these declarations (built if omitted)
            resume_from: Report of an earlier run; its Created records are
                reused when the declaration and all its dependencies are
                unchanged

        Returns:
            ApplyReport with the terminal state of every declaration

        Raises:
            CyclicDependency: Before any remote call, if the graph has a cycle
            UnresolvedReference: If a reference cannot be substituted. Calls
                already in flight are finished first and the error's report
                holds the partial result
        """
        if graph is None:
            graph = build_graph(declarations)

        run = _Run(graph)
        try:
            self._carry_over(run, resume_from)
            for name in graph.nodes:
                if run.remaining[name] == 0:
                    run.enqueue(name)
            self._dispatch(run)
            report = run.report(cancelled=self._abort.is_set())
        finally:
            # A cancel() only stops the run it interrupted.
            self._abort.clear()

        logger.info(
            "Apply finished: %d created, %d failed, %d skipped",
            len(report.created),
            len(report.failed),
            len(report.upstream_failed) + len(report.pending),
        )
        return report

    def _dispatch(self, run: _Run) -> None:
        """Keep up to max_workers calls in flight until nothing is ready."""
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="cirrus") as pool:
            in_flight: dict[Future, str] = {}
            try:
                while True:
                    while len(in_flight) < self.max_workers and not self._abort.is_set():
                        name = run.pop_ready()
                        if name is None:
                            break
                        spec = self._prepare(run, name)
                        run.records[name].transition(Status.IN_FLIGHT, properties=spec.properties)
                        run.order.append(name)
                        logger.info("Provisioning %s '%s'", spec.kind.value, name)
                        in_flight[pool.submit(self._call, spec)] = name

                    if not in_flight:
                        break

                    done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in done:
                        self._complete(run, in_flight.pop(future), future)
            except UnresolvedReference as e:
                logger.error(
                    "Aborting: unresolved reference, waiting for %d in-flight call(s)", len(in_flight)
                )
                wait(in_flight)
                for future, name in in_flight.items():
                    self._complete(run, name, future)
                e.report = run.report(cancelled=self._abort.is_set())
                raise

    def _carry_over(self, run: _Run, previous: ApplyReport | None) -> None:
        """
        Mark unchanged, previously Created declarations as Created.

        A record is reused only when its dependencies were reused too and
        the declaration, with references substituted, produces exactly the
        properties that were sent last time.
        """
        if previous is None:
            return
        carried: set[str] = set()
        for name in run.graph.topological_sort():
            old = previous.records.get(name)
            record = run.records[name]
            if old is None or old.status is not Status.CREATED:
                continue
            if old.fingerprint != record.fingerprint:
                continue
            if not all(dep in carried for dep in run.graph.get_dependencies(name)):
                continue
            try:
                spec = self._prepare(run, name)
            except UnresolvedReference:
                logger.debug("'%s' references attributes the previous run lacks", name)
                continue
            if spec.properties != old.properties:
                logger.debug("'%s' resolves to different properties, reprovisioning", name)
                continue
            record.transition(
                Status.CREATED,
                resource_id=old.resource_id,
                attributes=old.resolved_attributes,
                properties=old.properties,
            )
            carried.add(name)
            logger.debug("Reusing '%s' from previous run", name)
            run.futures[name].resolve(old.resolved_attributes)

    def _prepare(self, run: _Run, name: str) -> ResourceSpec:
        """Substitute every Reference in a declaration with its resolved value."""
        declaration = run.graph.nodes[name].declaration
        for dependency in run.graph.get_dependencies(name):
            if run.records[dependency].status is not Status.CREATED:
                raise UnresolvedReference(
                    dependency, reason=f"'{name}' was dispatched before its dependency was created"
                )

        def resolve(reference: Reference):
            return run.futures[reference.logical_name].get(reference.attribute_path)

        properties = substitute(dict(declaration.properties), resolve)
        return ResourceSpec(logical_name=name, kind=declaration.kind, properties=properties)

    def _call(self, spec: ResourceSpec) -> CallResult:
        """Create-or-update one resource. Runs on a worker thread."""
        existing = self.provider.lookup(spec)
        if existing is not None:
            logger.debug("'%s' exists as %s, updating", spec.logical_name, existing)
            return self.provider.update(existing, spec)
        return self.provider.create(spec)

    def _complete(self, run: _Run, name: str, future: Future) -> None:
        record = run.records[name]
        try:
            result = future.result()
        except RemoteCallFailure as e:
            self._fail(run, name, e)
            return
        except Exception as e:
            logger.exception("Unexpected error from call layer for '%s'", name)
            self._fail(run, name, RemoteCallFailure(name, f"{type(e).__name__}: {e}"))
            return

        attributes = dict(result.attributes)
        attributes.setdefault("id", result.resource_id)
        record.transition(Status.CREATED, resource_id=result.resource_id, attributes=attributes)
        logger.info("Created '%s' (%s)", name, result.resource_id)
        run.futures[name].resolve(attributes)

    def _fail(self, run: _Run, name: str, error: RemoteCallFailure) -> None:
        run.records[name].transition(Status.FAILED, error=error)
        logger.error(
            "Failed to provision '%s': %s (%d dependent(s) will be skipped)",
            name,
            error.reason,
            len(run.graph.descendants(name)),
        )
        run.fail(name, error)
