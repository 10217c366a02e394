"""
Stack: container for all declarations in a Cirrus deployment.

A Stack collects declarations in the order they were made. Planning
validates them and builds the dependency graph; applying plans first and
then hands the graph to the scheduler.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, TYPE_CHECKING

from cirrus.core.dag import DAG, build_graph
from cirrus.core.declaration import Declaration, ResourceKind
from cirrus.core.errors import DuplicateDeclaration

if TYPE_CHECKING:
    from cirrus.execution.records import ApplyReport
    from cirrus.execution.scheduler import Scheduler
    from cirrus.providers.base import RemoteCallLayer

logger = logging.getLogger(__name__)


@dataclass
class Stack:
    """
    Container for all declarations in a deployment.

    Example:
        from cirrus import Stack, ResourceKind
        from cirrus.blueprints import bind_role, declare_function

        stack = Stack(name="video")
        role = bind_role(stack, "controllerLambdaRole", "controller_lambda_role",
                         policy_arns=[DYNAMODB_FULL_ACCESS])
        function = declare_function(stack, "controllerLambda", role=role, ...)

        plan = stack.plan()             # validate + graph, no remote calls
        report = stack.apply(provider)  # plan + provision
    """

    name: str
    """Stack name"""

    _declarations: dict[str, Declaration] = field(default_factory=dict)
    """Declarations in insertion order"""

    def add(self, declaration: Declaration) -> Declaration:
        """
        Add a declaration to the stack.

        Raises:
            DuplicateDeclaration: If the logical name is already taken
        """
        if declaration.logical_name in self._declarations:
            raise DuplicateDeclaration(declaration.logical_name)
        self._declarations[declaration.logical_name] = declaration
        return declaration

    def declare(
        self,
        kind: ResourceKind | str,
        logical_name: str,
        properties: dict[str, Any] | None = None,
        depends_on: Iterable[Declaration | str] = (),
    ) -> Declaration:
        """
        Create a declaration and add it to the stack.

        Args:
            kind: Resource kind
            logical_name: Name unique within this stack
            properties: Property values, literal or Reference
            depends_on: Extra explicit dependencies

        Returns:
            The new Declaration
        """
        return self.add(
            Declaration(
                logical_name=logical_name,
                kind=kind,
                properties=properties or {},
                depends_on=frozenset(
                    dep.logical_name if isinstance(dep, Declaration) else dep
                    for dep in depends_on
                ),
            )
        )

    @property
    def declarations(self) -> list[Declaration]:
        return list(self._declarations.values())

    def get(self, logical_name: str) -> Declaration | None:
        """Get declaration by logical name."""
        return self._declarations.get(logical_name)

    def plan(self) -> "Plan":
        """
        Validate declarations and build the dependency graph.

        No remote call is made.

        Raises:
            ValidationError: If a declaration carries an invalid literal
            UnresolvedReference: If a declaration points at an unknown name
            CyclicDependency: If the dependencies form a cycle
        """
        from cirrus.config.resources import validate_declarations

        declarations = self.declarations
        validate_declarations(declarations)
        graph = build_graph(declarations)
        plan = Plan(
            stack_name=self.name,
            graph=graph,
            order=graph.topological_sort(),
            levels=graph.get_execution_levels(),
        )
        logger.info(
            "Planned stack '%s': %d declarations in %d levels",
            self.name,
            len(plan.order),
            len(plan.levels),
        )
        return plan

    def apply(
        self,
        provider: "RemoteCallLayer",
        max_workers: int = 4,
        resume_from: "ApplyReport | None" = None,
        scheduler: "Scheduler | None" = None,
    ) -> "ApplyReport":
        """
        Plan, then provision every declaration.

        Args:
            provider: Remote call layer
            max_workers: Maximum number of concurrent remote calls
            resume_from: Report of an earlier run to resume from
            scheduler: Scheduler to use, e.g. one the caller may cancel()

        Returns:
            ApplyReport with the terminal state of every declaration
        """
        from cirrus.execution.scheduler import Scheduler

        plan = self.plan()
        scheduler = scheduler or Scheduler(provider, max_workers=max_workers)
        return scheduler.run(self.declarations, graph=plan.graph, resume_from=resume_from)


@dataclass
class Plan:
    """
    A validated, acyclic deployment plan.
    """

    stack_name: str
    graph: DAG
    order: list[str]
    """Topological order, ties broken by declaration order"""

    levels: list[list[str]] = field(default_factory=list)
    """Waves of declarations that may be provisioned in parallel"""

    def to_dict(self) -> dict[str, Any]:
        return {
            "stack": self.stack_name,
            "order": self.order,
            "levels": self.levels,
            "declarations": [
                self.graph.nodes[name].declaration.to_dict() for name in self.order
            ],
            "dag": self.graph.to_dict(),
        }
