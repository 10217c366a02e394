"""
Tests for the declaration dependency graph.
"""

import pytest
from cirrus.core.dag import DAG, build_graph
from cirrus.core.declaration import Declaration, ResourceKind
from cirrus.core.errors import CyclicDependency, UnresolvedReference


def _decl(name, depends_on=(), refs=()):
    """Bucket declaration with explicit dependencies and references."""
    properties = {f"ref_{i}": Declaration(ref, ResourceKind.BUCKET).attr("id") for i, ref in enumerate(refs)}
    return Declaration(name, ResourceKind.BUCKET, properties, depends_on=frozenset(depends_on))


class TestDAG:
    """Tests for DAG class."""

    def test_empty_dag(self):
        """Test creating an empty DAG."""
        dag = DAG()

        assert len(dag.nodes) == 0

    def test_add_node(self):
        """Test adding nodes to DAG."""
        dag = DAG()
        declaration = _decl("bucket1")

        dag.add_node(declaration)

        assert "bucket1" in dag.nodes
        assert dag.nodes["bucket1"].declaration is declaration

    def test_add_edge(self):
        """Test adding edges between nodes."""
        dag = DAG()
        dag.add_node(_decl("a"))
        dag.add_node(_decl("b"))

        dag.add_edge("a", "b")

        assert "a" in dag.nodes["b"].dependencies
        assert "b" in dag.nodes["a"].dependents

    def test_add_edge_twice_is_collapsed(self):
        """Test that duplicate edges are only stored once."""
        dag = DAG()
        dag.add_node(_decl("a"))
        dag.add_node(_decl("b"))

        dag.add_edge("a", "b")
        dag.add_edge("a", "b")

        assert dag.get_dependencies("b") == ["a"]
        assert len(dag.to_dict()["edges"]) == 1

    def test_add_edge_unknown_node(self):
        """Edges need both ends in the graph."""
        dag = DAG()
        dag.add_node(_decl("a"))

        with pytest.raises(ValueError):
            dag.add_edge("a", "missing")

    def test_topological_sort_complex(self):
        """Test topological sorting with parallel branches."""
        #     a
        #    / \
        #   b   c
        #    \ /
        #     d
        dag = build_graph([
            _decl("a"),
            _decl("b", depends_on=["a"]),
            _decl("c", depends_on=["a"]),
            _decl("d", depends_on=["b", "c"]),
        ])

        sorted_nodes = dag.topological_sort()

        assert sorted_nodes[0] == "a"
        assert sorted_nodes[-1] == "d"

    def test_topological_sort_is_stable(self):
        """Unrelated declarations keep their declaration order."""
        declarations = [_decl("z"), _decl("m"), _decl("a"), _decl("b", depends_on=["z"])]

        first = build_graph(declarations).topological_sort()
        second = build_graph(declarations).topological_sort()

        assert first == second == ["z", "m", "a", "b"]

    def test_cycle_detection(self):
        """Test detecting cycles in DAG."""
        dag = DAG()
        for name in ("a", "b", "c"):
            dag.add_node(_decl(name))
        dag.add_edge("a", "b")
        dag.add_edge("b", "c")
        dag.add_edge("c", "a")

        cycle = dag.detect_cycles()

        assert cycle is not None
        assert set(cycle) == {"a", "b", "c"}
        assert cycle[0] == cycle[-1]

    def test_topological_sort_raises_on_cycle(self):
        dag = DAG()
        dag.add_node(_decl("a"))
        dag.add_node(_decl("b"))
        dag.add_edge("a", "b")
        dag.add_edge("b", "a")

        with pytest.raises(CyclicDependency):
            dag.topological_sort()

    def test_execution_levels(self):
        """Test getting execution levels for parallel provisioning."""
        dag = build_graph([
            _decl("a"),
            _decl("b", depends_on=["a"]),
            _decl("c", depends_on=["a"]),
            _decl("d", depends_on=["b", "c"]),
        ])

        levels = dag.get_execution_levels()

        assert levels == [["a"], ["b", "c"], ["d"]]

    def test_descendants(self):
        dag = build_graph([
            _decl("a"),
            _decl("b", depends_on=["a"]),
            _decl("c", depends_on=["b"]),
            _decl("d"),
        ])

        assert dag.descendants("a") == ["b", "c"]
        assert dag.descendants("d") == []

    def test_dag_to_dict(self):
        """Test converting DAG to dictionary."""
        dag = build_graph([_decl("a"), _decl("b", depends_on=["a"])])

        dag_dict = dag.to_dict()

        assert len(dag_dict["nodes"]) == 2
        assert dag_dict["nodes"][0]["kind"] == "Bucket"
        assert dag_dict["edges"] == [{"from": "a", "to": "b"}]


class TestBuildGraph:
    """Tests for deriving edges from declarations."""

    def test_reference_induces_edge(self):
        dag = build_graph([_decl("table"), _decl("consumer", refs=["table"])])

        assert dag.get_dependencies("consumer") == ["table"]

    def test_nested_reference_induces_edge(self):
        role = Declaration("role", ResourceKind.ROLE, {"name": "r"})
        function = Declaration(
            "fn",
            ResourceKind.FUNCTION,
            {"environment": {"variables": {"ROLE": role.attr("arn")}}, "layers": [role.attr("name")]},
        )

        dag = build_graph([role, function])

        assert dag.get_dependencies("fn") == ["role"]

    def test_explicit_and_reference_edges_are_merged(self):
        dag = build_graph([
            _decl("a"),
            _decl("b"),
            _decl("c", depends_on=["a", "b"], refs=["a"]),
        ])

        assert dag.get_dependencies("c") == ["a", "b"]

    def test_reference_cycle_raises(self):
        with pytest.raises(CyclicDependency) as excinfo:
            build_graph([_decl("a", refs=["b"]), _decl("b", refs=["a"])])

        assert set(excinfo.value.cycle) == {"a", "b"}

    def test_self_reference_is_a_cycle(self):
        with pytest.raises(CyclicDependency):
            build_graph([_decl("a", refs=["a"])])

    def test_unknown_reference_raises(self):
        with pytest.raises(UnresolvedReference) as excinfo:
            build_graph([_decl("a", refs=["ghost"])])

        assert excinfo.value.logical_name == "ghost"

    def test_unknown_explicit_dependency_raises(self):
        with pytest.raises(UnresolvedReference):
            build_graph([_decl("a", depends_on=["ghost"])])
