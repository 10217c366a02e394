"""
Tests for the provisioning scheduler.
"""

import random
import threading
import time

import pytest
from cirrus.config.provider import AwsConfig
from cirrus.core.declaration import ResourceKind
from cirrus.core.errors import CyclicDependency, RemoteCallFailure, UnresolvedReference
from cirrus.core.stack import Stack
from cirrus.execution.records import Status
from cirrus.execution.scheduler import Scheduler
from cirrus.providers.base import CallResult
from cirrus.providers.memory import InMemoryProvider


def _bucket(stack, name, *refs, depends_on=()):
    """Declare a bucket whose tags reference other declarations."""
    properties = {"bucket": f"{name.lower()}-bucket"}
    if refs:
        properties["tags"] = {ref: stack.get(ref).attr("id") for ref in refs}
    return stack.declare(ResourceKind.BUCKET, name, properties, depends_on=depends_on)


def _calls(provider, operation=None):
    return [name for op, name in provider.calls if operation is None or op == operation]


class TestOrdering:
    """Remote calls respect every dependency edge."""

    def test_chain_runs_in_order(self):
        stack = Stack(name="chain")
        _bucket(stack, "a")
        _bucket(stack, "b", "a")
        _bucket(stack, "c", "b")
        provider = InMemoryProvider()

        report = stack.apply(provider)

        assert report.succeeded
        assert _calls(provider) == ["a", "b", "c"]
        assert report.order == ["a", "b", "c"]

    def test_random_acyclic_graphs_respect_edges(self):
        rng = random.Random(7)
        for _ in range(20):
            stack = Stack(name="random")
            names = [f"n{i}" for i in range(12)]
            for i, name in enumerate(names):
                refs = [n for n in names[:i] if rng.random() < 0.25]
                _bucket(stack, name, *refs)
            provider = InMemoryProvider()

            report = Scheduler(provider, max_workers=4).run(stack.declarations)

            position = {name: i for i, name in enumerate(report.order)}
            assert report.succeeded
            for declaration in stack.declarations:
                for dependency in declaration.dependencies():
                    assert position[dependency] < position[declaration.logical_name]

    def test_independent_declarations_run_concurrently(self):
        barrier = threading.Barrier(3, timeout=5)

        class BarrierProvider(InMemoryProvider):
            def create(self, spec):
                barrier.wait()
                return super().create(spec)

        stack = Stack(name="parallel")
        for name in ("a", "b", "c"):
            _bucket(stack, name)

        report = stack.apply(BarrierProvider(), max_workers=3)

        assert report.succeeded

    def test_pool_size_bounds_outstanding_calls(self):
        lock = threading.Lock()
        active = {"now": 0, "peak": 0}

        class CountingProvider(InMemoryProvider):
            def create(self, spec):
                with lock:
                    active["now"] += 1
                    active["peak"] = max(active["peak"], active["now"])
                try:
                    return super().create(spec)
                finally:
                    with lock:
                        active["now"] -= 1

        stack = Stack(name="bounded")
        for i in range(10):
            _bucket(stack, f"n{i}")

        report = stack.apply(CountingProvider(delay=0.02), max_workers=3)

        assert report.succeeded
        assert 1 <= active["peak"] <= 3

    def test_references_are_substituted(self):
        stack = Stack(name="refs")
        _bucket(stack, "a")
        _bucket(stack, "b", "a")
        provider = InMemoryProvider()

        report = stack.apply(provider)

        stored = provider.resources["b"]["properties"]
        assert stored["tags"] == {"a": report.records["a"].resource_id}

    def test_invalid_worker_count(self):
        with pytest.raises(ValueError):
            Scheduler(InMemoryProvider(), max_workers=0)


class TestFailures:
    """Failures are isolated to the failing subtree."""

    def _stack(self):
        stack = Stack(name="failures")
        _bucket(stack, "a")
        _bucket(stack, "b", "a")
        _bucket(stack, "c", "b")
        _bucket(stack, "d")
        return stack

    def test_upstream_failure_skips_dependents(self):
        provider = InMemoryProvider(failures={"a": "AccessDenied"})

        report = self._stack().apply(provider)

        assert not report.succeeded
        assert report.failed == ["a"]
        assert report.upstream_failed == ["b", "c"]
        assert report.created == ["d"]
        assert "b" not in _calls(provider)
        assert "c" not in _calls(provider)

    def test_outcomes_name_root_cause(self):
        provider = InMemoryProvider(failures={"a": "AccessDenied"})

        outcomes = self._stack().apply(provider).outcomes()

        assert outcomes == {
            "a": "Failed: AccessDenied",
            "b": "Skipped: UpstreamFailed(a)",
            "c": "Skipped: UpstreamFailed(a)",
            "d": "Created",
        }

    def test_unexpected_exception_is_wrapped(self):
        class BrokenProvider(InMemoryProvider):
            def create(self, spec):
                if spec.logical_name == "d":
                    raise ConnectionError("socket closed")
                return super().create(spec)

        report = self._stack().apply(BrokenProvider())

        error = report.records["d"].error
        assert isinstance(error, RemoteCallFailure)
        assert "socket closed" in error.reason
        assert report.created == ["a", "b", "c"]

    def test_cycle_issues_no_remote_calls(self):
        stack = Stack(name="cycle")
        a = stack.declare(ResourceKind.BUCKET, "a", {"bucket": "aaa"}, depends_on=["b"])
        stack.declare(ResourceKind.BUCKET, "b", {"bucket": "bbb", "tags": {"a": a.attr("id")}})
        provider = InMemoryProvider()

        with pytest.raises(CyclicDependency):
            stack.apply(provider)

        assert provider.calls == []

    def test_long_chain_failure_is_reported(self):
        stack = Stack(name="long")
        _bucket(stack, "n0")
        for i in range(1, 600):
            _bucket(stack, f"n{i}", f"n{i - 1}")

        report = stack.apply(InMemoryProvider(failures={"n0": "boom"}))

        assert report.failed == ["n0"]
        assert len(report.upstream_failed) == 599
        assert report.outcomes()["n599"] == "Skipped: UpstreamFailed(n0)"

    def test_missing_attribute_is_fatal(self):
        class NoArnProvider(InMemoryProvider):
            def create(self, spec):
                result = super().create(spec)
                if spec.logical_name == "a":
                    return CallResult(result.resource_id, {})
                return result

        stack = Stack(name="missing")
        a = _bucket(stack, "a")
        stack.declare(ResourceKind.BUCKET, "b", {"bucket": "bbb", "tags": {"arn": a.attr("arn")}})
        provider = NoArnProvider()

        with pytest.raises(UnresolvedReference):
            stack.apply(provider)

        assert _calls(provider) == ["a"]

    def test_unresolved_reference_carries_partial_report(self):
        class SlowSiblingProvider(InMemoryProvider):
            def create(self, spec):
                if spec.logical_name == "c":
                    time.sleep(0.1)
                result = super().create(spec)
                if spec.logical_name == "a":
                    return CallResult(result.resource_id, {})
                return result

        stack = Stack(name="partial")
        a = _bucket(stack, "a")
        stack.declare(ResourceKind.BUCKET, "b", {"bucket": "bbb", "tags": {"arn": a.attr("arn")}})
        _bucket(stack, "c")

        with pytest.raises(UnresolvedReference) as excinfo:
            stack.apply(SlowSiblingProvider(), max_workers=2)

        report = excinfo.value.report
        assert report.records["a"].status is Status.CREATED
        assert report.records["b"].status is Status.PENDING
        assert report.records["c"].status is Status.CREATED


class TestIdempotency:
    """Reruns converge without duplicating resources."""

    def test_apply_twice_yields_same_attributes(self):
        stack = Stack(name="twice")
        _bucket(stack, "a")
        _bucket(stack, "b", "a")
        provider = InMemoryProvider(AwsConfig(region="eu-west-1", account_id="123456789012"))

        first = stack.apply(provider)
        second = stack.apply(provider)

        assert first.attributes() == second.attributes()
        assert _calls(provider, "create") == ["a", "b"]
        assert _calls(provider, "update") == ["a", "b"]
        assert len(provider.resources) == 2

    def test_resume_skips_created_declarations(self):
        stack = Stack(name="resume")
        _bucket(stack, "a")
        _bucket(stack, "b", "a")
        _bucket(stack, "c", "b")
        provider = InMemoryProvider(failures={"b": "Throttling"})

        first = stack.apply(provider)
        provider.failures.clear()
        provider.calls.clear()
        second = stack.apply(provider, resume_from=first)

        assert first.created == ["a"]
        assert second.succeeded
        assert _calls(provider) == ["b", "c"]
        assert second.records["a"].resolved_attributes == first.records["a"].resolved_attributes

    def test_resume_reprovisions_changed_declaration(self):
        stack = Stack(name="resume")
        _bucket(stack, "a")
        provider = InMemoryProvider()
        first = stack.apply(provider)

        changed = Stack(name="resume")
        changed.declare(ResourceKind.BUCKET, "a", {"bucket": "renamed-bucket"})
        provider.calls.clear()
        changed.apply(provider, resume_from=first)

        assert provider.calls == [("update", "a")]

    def test_resume_reprovisions_changed_transform(self):
        def build(suffix):
            stack = Stack(name="transform")
            a = _bucket(stack, "a")
            tagged = a.attr("arn").apply(lambda value: f"{value}/{suffix}")
            stack.declare(ResourceKind.BUCKET, "b", {"bucket": "bbb", "tags": {"arn": tagged}})
            return stack

        provider = InMemoryProvider()
        first = build("old").apply(provider)
        provider.calls.clear()

        second = build("new").apply(provider, resume_from=first)

        assert second.succeeded
        assert provider.calls == [("update", "b")]
        assert provider.resources["b"]["properties"]["tags"] == {"arn": "arn:aws:s3:::a-bucket/new"}
        assert second.records["b"].properties["tags"] == {"arn": "arn:aws:s3:::a-bucket/new"}

    def test_resume_keeps_unchanged_transform(self):
        def build():
            stack = Stack(name="transform")
            a = _bucket(stack, "a")
            tagged = a.attr("arn").apply(lambda value: f"{value}/same")
            stack.declare(ResourceKind.BUCKET, "b", {"bucket": "bbb", "tags": {"arn": tagged}})
            return stack

        provider = InMemoryProvider()
        first = build().apply(provider)
        provider.calls.clear()

        second = build().apply(provider, resume_from=first)

        assert second.succeeded
        assert provider.calls == []


class TestCancellation:
    """Cancelling stops dispatch but lets in-flight calls finish."""

    def test_cancel_leaves_undispatched_pending(self):
        holder = {}

        class CancellingProvider(InMemoryProvider):
            def create(self, spec):
                if spec.logical_name == "a":
                    holder["scheduler"].cancel()
                return super().create(spec)

        stack = Stack(name="cancel")
        _bucket(stack, "a")
        _bucket(stack, "b", "a")
        _bucket(stack, "c")
        provider = CancellingProvider()
        scheduler = Scheduler(provider, max_workers=1)
        holder["scheduler"] = scheduler

        report = stack.apply(provider, scheduler=scheduler)

        assert report.cancelled
        assert report.records["a"].status is Status.CREATED
        assert report.pending == ["b", "c"]
        assert report.outcomes()["b"] == "Skipped: Cancelled"
        assert _calls(provider) == ["a"]

    def test_cancel_only_affects_current_run(self):
        stack = Stack(name="cancel")
        _bucket(stack, "a")
        _bucket(stack, "b", "a")
        provider = InMemoryProvider()
        scheduler = Scheduler(provider, max_workers=2)

        scheduler.cancel()
        cancelled = stack.apply(provider, scheduler=scheduler)
        resumed = stack.apply(provider, scheduler=scheduler, resume_from=cancelled)

        assert cancelled.cancelled
        assert cancelled.pending == ["a", "b"]
        assert not scheduler.cancelled
        assert not resumed.cancelled
        assert resumed.succeeded
        assert _calls(provider) == ["a", "b"]
