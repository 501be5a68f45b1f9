# tests/core/test_graph.py
"""Tests for the dependency graph model."""

import networkx as nx
import pytest

from knownscan.contracts import Classification, NodeKind
from knownscan.core.expressions import Literal, Merge, Reference
from knownscan.core.graph import UNSET, DependencyGraph, GraphValidationError, NodeInfo, UnknownReference


class TestNodeInfo:
    """NodeInfo construction rules per node kind."""

    def test_external_input_defaults(self) -> None:
        node = NodeInfo(node_id="x", kind=NodeKind.EXTERNAL_INPUT)
        assert node.declared is None
        assert node.value is UNSET
        assert node.has_static_value is False

    def test_external_input_with_static_value(self) -> None:
        node = NodeInfo(node_id="x", kind=NodeKind.EXTERNAL_INPUT, value=None)
        assert node.has_static_value is True

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(GraphValidationError, match="non-empty"):
            NodeInfo(node_id="", kind=NodeKind.EXTERNAL_INPUT)

    def test_local_requires_expression(self) -> None:
        with pytest.raises(GraphValidationError, match="requires an expression"):
            NodeInfo(node_id="l", kind=NodeKind.LOCAL_EXPRESSION)

    def test_external_input_rejects_expression(self) -> None:
        with pytest.raises(GraphValidationError, match="not an expression"):
            NodeInfo(node_id="x", kind=NodeKind.EXTERNAL_INPUT, expression=Literal(1))

    def test_local_cannot_declare(self) -> None:
        with pytest.raises(GraphValidationError, match="cannot declare"):
            NodeInfo(
                node_id="l",
                kind=NodeKind.LOCAL_EXPRESSION,
                expression=Literal(1),
                declared=Classification.KNOWN,
            )

    def test_pending_cannot_be_declared(self) -> None:
        with pytest.raises(GraphValidationError, match="known or unknown"):
            NodeInfo(node_id="x", kind=NodeKind.EXTERNAL_INPUT, declared=Classification.PENDING)

    def test_static_value_only_on_external_input(self) -> None:
        with pytest.raises(GraphValidationError, match="only external inputs"):
            NodeInfo(node_id="r", kind=NodeKind.RESOURCE_ATTRIBUTE, value="v")

    def test_unknown_input_cannot_have_value(self) -> None:
        with pytest.raises(GraphValidationError, match="cannot have a static value"):
            NodeInfo(node_id="x", kind=NodeKind.EXTERNAL_INPUT, declared=Classification.UNKNOWN, value="v")


class TestDependencyGraphBuilder:
    """Adding nodes and deriving edges."""

    def test_empty_graph(self) -> None:
        graph = DependencyGraph()
        assert graph.node_count == 0
        assert graph.edge_count == 0

    def test_edges_derived_from_references(self, merge_defect_graph: DependencyGraph) -> None:
        assert merge_defect_graph.node_count == 3
        assert merge_defect_graph.edge_count == 2
        assert merge_defect_graph.dependencies_of("useful") == ("x",)
        assert merge_defect_graph.dependents_of("useful") == ("each",)

    def test_duplicate_id_rejected(self) -> None:
        graph = DependencyGraph()
        graph.add_node("x", kind=NodeKind.EXTERNAL_INPUT)
        with pytest.raises(GraphValidationError, match="Duplicate node id"):
            graph.add_node("x", kind=NodeKind.EXTERNAL_INPUT)

    def test_forward_reference_resolves_when_target_added(self) -> None:
        graph = DependencyGraph()
        graph.add_node("l", kind=NodeKind.LOCAL_EXPRESSION, expression=Reference("x"))
        assert graph.has_node("x") is False
        assert graph.node_count == 1

        graph.add_node("x", kind=NodeKind.EXTERNAL_INPUT)
        graph.validate()
        assert graph.node_ids() == ["l", "x"]

    def test_depends_on_is_not_a_reference(self) -> None:
        graph = DependencyGraph()
        graph.add_node("r", kind=NodeKind.RESOURCE_ATTRIBUTE)
        graph.add_node("d", kind=NodeKind.DATA_ATTRIBUTE, expression=Literal({}), depends_on=["r"])
        assert graph.dependencies_of("d") == ("r",)
        assert graph.references_of("d") == ()

    def test_reference_wins_over_depends_on_for_same_target(self) -> None:
        graph = DependencyGraph()
        graph.add_node("r", kind=NodeKind.RESOURCE_ATTRIBUTE)
        graph.add_node("d", kind=NodeKind.DATA_ATTRIBUTE, expression=Reference("r"), depends_on=["r"])
        assert graph.references_of("d") == ("r",)
        assert graph.edge_count == 1

    def test_get_node_missing_raises_key_error(self) -> None:
        with pytest.raises(KeyError):
            DependencyGraph().get_node("nope")

    def test_nx_graph_copy_is_frozen(self, merge_defect_graph: DependencyGraph) -> None:
        copy = merge_defect_graph.get_nx_graph()
        with pytest.raises(nx.NetworkXError):
            copy.add_node("extra")


class TestDependencyGraphValidation:
    """Dangling references and cycle discovery."""

    def test_validate_reports_missing_reference(self) -> None:
        graph = DependencyGraph()
        graph.add_node("l", kind=NodeKind.LOCAL_EXPRESSION, expression=Reference("ghost"))
        with pytest.raises(UnknownReference) as exc_info:
            graph.validate()
        assert exc_info.value.node_id == "l"
        assert exc_info.value.missing == "ghost"
        assert exc_info.value.via == "reference"

    def test_validate_reports_missing_depends_on(self) -> None:
        graph = DependencyGraph()
        graph.add_node("d", kind=NodeKind.DATA_ATTRIBUTE, depends_on=["ghost"])
        with pytest.raises(UnknownReference, match="depends_on"):
            graph.validate()

    def test_dependencies_of_raises_for_dangling_target(self) -> None:
        graph = DependencyGraph()
        graph.add_node("l", kind=NodeKind.LOCAL_EXPRESSION, expression=Reference("ghost"))
        with pytest.raises(UnknownReference):
            graph.dependencies_of("l")

    def test_acyclic_graph_has_no_cycles(self, merge_defect_graph: DependencyGraph) -> None:
        assert merge_defect_graph.is_acyclic() is True
        assert merge_defect_graph.find_cycles() == []

    def test_self_reference_is_a_cycle(self) -> None:
        graph = DependencyGraph()
        graph.add_node("a", kind=NodeKind.LOCAL_EXPRESSION, expression=Reference("a"))
        cycles = graph.find_cycles()
        assert graph.is_acyclic() is False
        assert len(cycles) == 1
        assert cycles[0].members == ("a",)
        assert cycles[0].path == ("a", "a")

    def test_two_node_cycle_path_closes(self) -> None:
        graph = DependencyGraph()
        graph.add_node("b", kind=NodeKind.LOCAL_EXPRESSION, expression=Reference("a"))
        graph.add_node("a", kind=NodeKind.LOCAL_EXPRESSION, expression=Merge((Reference("b"),)))
        (cycle,) = graph.find_cycles()
        assert cycle.members == ("a", "b")
        assert cycle.path == ("a", "b", "a")

    def test_evaluation_order_puts_dependencies_first(self, merge_defect_graph: DependencyGraph) -> None:
        assert merge_defect_graph.evaluation_order() == ["x", "useful", "each"]

    def test_evaluation_order_breaks_ties_lexically(self) -> None:
        graph = DependencyGraph()
        for node_id in ("c", "a", "b"):
            graph.add_node(node_id, kind=NodeKind.EXTERNAL_INPUT)
        assert graph.evaluation_order() == ["a", "b", "c"]

    def test_evaluation_order_excludes_cycle_members(self) -> None:
        graph = DependencyGraph()
        graph.add_node("a", kind=NodeKind.LOCAL_EXPRESSION, expression=Reference("a"))
        graph.add_node("b", kind=NodeKind.LOCAL_EXPRESSION, expression=Reference("a"))
        assert graph.evaluation_order(exclude=["a"]) == ["b"]

    def test_evaluation_order_with_cycle_raises(self) -> None:
        graph = DependencyGraph()
        graph.add_node("a", kind=NodeKind.LOCAL_EXPRESSION, expression=Reference("a"))
        with pytest.raises(GraphValidationError, match="Cannot order"):
            graph.evaluation_order()
