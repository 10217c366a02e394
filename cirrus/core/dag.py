"""
Dependency graph over resource declarations.

Edges come from two places: References inside a declaration's properties,
and its explicit depends_on entries. The graph is rebuilt on every planning
pass; edges are never stored apart from the declarations that imply them.
"""

from typing import Any, Iterable, Optional
from dataclasses import dataclass, field
from collections import defaultdict, deque

from cirrus.core.declaration import Declaration
from cirrus.core.errors import CyclicDependency, UnresolvedReference


@dataclass
class DAGNode:
    """A declaration in the dependency graph."""

    name: str
    declaration: Declaration
    dependencies: list[str] = field(default_factory=list)
    dependents: list[str] = field(default_factory=list)


class DAG:
    """
    Directed acyclic graph of declarations.

    An edge A -> B means A must be created or updated before B.
    Nodes keep their insertion order, and every ordering the graph hands
    out breaks ties by that order so reruns with identical input produce
    identical plans.
    """

    def __init__(self):
        self.nodes: dict[str, DAGNode] = {}
        self._adjacency_list: dict[str, list[str]] = defaultdict(list)

    def add_node(self, declaration: Declaration) -> None:
        """Add a declaration to the graph."""
        if declaration.logical_name not in self.nodes:
            self.nodes[declaration.logical_name] = DAGNode(
                name=declaration.logical_name, declaration=declaration
            )

    def add_edge(self, from_node: str, to_node: str) -> None:
        """
        Add a directed edge from one node to another.

        Args:
            from_node: The node that 'to_node' depends on
            to_node: The dependent node
        """
        if from_node not in self.nodes or to_node not in self.nodes:
            raise ValueError("Both nodes must exist in DAG before adding edge")

        if to_node in self._adjacency_list[from_node]:
            return

        self._adjacency_list[from_node].append(to_node)

        self.nodes[to_node].dependencies.append(from_node)
        self.nodes[from_node].dependents.append(to_node)

    def get_dependencies(self, node_name: str) -> list[str]:
        """Get all nodes that this node depends on."""
        return self.nodes[node_name].dependencies if node_name in self.nodes else []

    def get_dependents(self, node_name: str) -> list[str]:
        """Get all nodes that depend on this node."""
        return self.nodes[node_name].dependents if node_name in self.nodes else []

    def descendants(self, node_name: str) -> list[str]:
        """Every node that transitively depends on node_name, breadth first."""
        seen: set[str] = set()
        ordered: list[str] = []
        queue = deque(self.get_dependents(node_name))
        while queue:
            name = queue.popleft()
            if name in seen:
                continue
            seen.add(name)
            ordered.append(name)
            queue.extend(self._adjacency_list[name])
        return ordered

    def topological_sort(self) -> list[str]:
        """
        Return a topological ordering of the graph.

        Raises:
            CyclicDependency: If the graph contains a cycle
        """
        in_degree = {node: len(self.nodes[node].dependencies) for node in self.nodes}

        queue = deque([node for node, degree in in_degree.items() if degree == 0])
        result = []

        while queue:
            node = queue.popleft()
            result.append(node)

            for dependent in self._adjacency_list[node]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(result) != len(self.nodes):
            cycle = self.detect_cycles() or sorted(set(self.nodes) - set(result))
            raise CyclicDependency(cycle)

        return result

    def detect_cycles(self) -> Optional[list[str]]:
        """
        Detect if there are any cycles in the graph.

        Returns:
            A cycle path (first node repeated at the end) if one exists,
            None otherwise
        """
        visited = set()
        rec_stack = set()
        path = []

        def dfs(node: str) -> Optional[list[str]]:
            visited.add(node)
            rec_stack.add(node)
            path.append(node)

            for neighbor in self._adjacency_list[node]:
                if neighbor not in visited:
                    cycle = dfs(neighbor)
                    if cycle:
                        return cycle
                elif neighbor in rec_stack:
                    cycle_start = path.index(neighbor)
                    return path[cycle_start:] + [neighbor]

            path.pop()
            rec_stack.remove(node)
            return None

        for node in self.nodes:
            if node not in visited:
                cycle = dfs(node)
                if cycle:
                    return cycle

        return None

    def get_execution_levels(self) -> list[list[str]]:
        """
        Group nodes into waves that could be provisioned in parallel.

        Every node lands one level after the deepest of its dependencies.
        """
        levels: list[list[str]] = []
        level_of: dict[str, int] = {}

        for node in self.topological_sort():
            dependencies = self.get_dependencies(node)
            level_idx = max((level_of[dep] + 1 for dep in dependencies), default=0)
            level_of[node] = level_idx

            while len(levels) <= level_idx:
                levels.append([])

            levels[level_idx].append(node)

        return levels

    def to_dict(self) -> dict[str, Any]:
        """Convert the graph to a dictionary for serialization."""
        return {
            "nodes": [
                {
                    "name": node.name,
                    "kind": node.declaration.kind.value,
                    "dependencies": node.dependencies,
                    "dependents": node.dependents,
                }
                for node in self.nodes.values()
            ],
            "edges": [
                {"from": from_node, "to": to_node}
                for from_node, to_nodes in self._adjacency_list.items()
                for to_node in to_nodes
            ],
        }

    def __repr__(self) -> str:
        return f"DAG(nodes={len(self.nodes)}, edges={sum(len(deps) for deps in self._adjacency_list.values())})"


def build_graph(declarations: Iterable[Declaration]) -> DAG:
    """
    Build and check the dependency graph for a set of declarations.

    Args:
        declarations: Declarations in the order they were declared

    Returns:
        An acyclic DAG

    Raises:
        UnresolvedReference: If a declaration points at an unknown name
        CyclicDependency: If the dependencies form a cycle
    """
    dag = DAG()
    declarations = list(declarations)
    for declaration in declarations:
        dag.add_node(declaration)

    for declaration in declarations:
        for reference in declaration.references():
            if reference.logical_name not in dag.nodes:
                raise UnresolvedReference(
                    reference.logical_name,
                    reference.attribute_path,
                    reason=f"referenced by '{declaration.logical_name}' but never declared",
                )
        for name in declaration.dependencies():
            if name not in dag.nodes:
                raise UnresolvedReference(
                    name, reason=f"'{declaration.logical_name}' depends on an undeclared resource"
                )
            dag.add_edge(name, declaration.logical_name)

    cycle = dag.detect_cycles()
    if cycle:
        raise CyclicDependency(cycle)

    return dag
