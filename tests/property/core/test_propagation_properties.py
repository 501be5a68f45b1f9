# tests/property/core/test_propagation_properties.py
"""Property-based tests for classification propagation.

Properties tested:
- Graphs whose inputs are all known classify every node KNOWN
- A node is UNKNOWN exactly when it transitively reads an unknown input
- Making one more input unknown never makes any node known (monotonicity)
- Analyzing a graph twice gives identical results (idempotence)
- A self-referencing node is CYCLIC and leaves the rest of the graph alone
- Reports and fingerprints do not depend on node insertion order
"""

import networkx as nx
from hypothesis import given
from hypothesis import strategies as st

from knownscan.contracts import Classification, NodeKind
from knownscan.core.canonical import compute_graph_hash
from knownscan.core.expressions import Reference
from knownscan.engine import Analyzer, PropagationEngine, Reporter
from tests.property.settings import DETERMINISM_SETTINGS, STANDARD_SETTINGS
from tests.strategies import GraphSpec, graph_specs, known_graph_specs


def _expected_unknown(spec: GraphSpec) -> set[str]:
    """Nodes that reach an unknown input through references."""
    nx_graph = spec.build().get_nx_graph()
    unknown_inputs = {input_id for input_id, c in spec.inputs.items() if c is Classification.UNKNOWN}
    return {node_id for node_id in spec.node_ids() if node_id in unknown_inputs or nx.descendants(nx_graph, node_id) & unknown_inputs}


class TestPropagationProperties:
    """Classification properties over generated combinator graphs."""

    @given(spec=known_graph_specs())
    @STANDARD_SETTINGS
    def test_all_known_inputs_give_all_known_nodes(self, spec: GraphSpec) -> None:
        """Property: no unknown source means no unknown node."""
        result = PropagationEngine(spec.build()).run()

        assert set(result.classifications) == set(spec.node_ids())
        assert all(c is Classification.KNOWN for c in result.classifications.values())
        assert result.cycles == ()

    @given(spec=graph_specs())
    @STANDARD_SETTINGS
    def test_unknown_exactly_when_tainted(self, spec: GraphSpec) -> None:
        """Property: a local is unknown iff any transitive operand is unknown."""
        result = PropagationEngine(spec.build()).run()
        expected = _expected_unknown(spec)

        assert set(result.nodes_with(Classification.UNKNOWN)) == expected
        assert set(result.nodes_with(Classification.KNOWN)) == set(spec.node_ids()) - expected

    @given(spec=graph_specs(), data=st.data())
    @STANDARD_SETTINGS
    def test_flipping_an_input_to_unknown_is_monotone(self, spec: GraphSpec, data: st.DataObject) -> None:
        """Property: more unknown inputs never produce fewer unknown nodes."""
        input_id = data.draw(st.sampled_from(sorted(spec.inputs)))
        before = PropagationEngine(spec.build()).run()
        after = PropagationEngine(spec.with_input(input_id, Classification.UNKNOWN).build()).run()

        before_unknown = set(before.nodes_with(Classification.UNKNOWN))
        after_unknown = set(after.nodes_with(Classification.UNKNOWN))
        assert before_unknown <= after_unknown

    @given(spec=graph_specs())
    @STANDARD_SETTINGS
    def test_analysis_is_idempotent(self, spec: GraphSpec) -> None:
        """Property: the graph carries no state between runs."""
        graph = spec.build()
        analyzer = Analyzer()

        first = analyzer.analyze(graph)
        second = analyzer.analyze(graph)

        assert dict(first.classifications) == dict(second.classifications)
        assert first.violations == second.violations
        assert first.fingerprint == second.fingerprint

    @given(spec=graph_specs())
    @STANDARD_SETTINGS
    def test_self_reference_is_contained(self, spec: GraphSpec) -> None:
        """Property: adding an unrelated self-loop changes nothing else."""
        baseline = PropagationEngine(spec.build()).run()

        graph = spec.build()
        graph.add_node("loop", kind=NodeKind.LOCAL_EXPRESSION, expression=Reference("loop"))
        result = PropagationEngine(graph).run()

        assert result.classifications["loop"] is Classification.CYCLIC
        assert [cycle.members for cycle in result.cycles] == [("loop",)]
        assert {k: v for k, v in result.classifications.items() if k != "loop"} == dict(baseline.classifications)

    @given(spec=graph_specs())
    @STANDARD_SETTINGS
    def test_every_unknown_consumer_has_a_violation(self, spec: GraphSpec) -> None:
        """Property: violations are exactly the unknown keyed consumers."""
        report = Analyzer().analyze(spec.build())
        unknown = {consumer for consumer, _ in spec.consumers if report.classifications[consumer] is Classification.UNKNOWN}

        assert {v.consumer_node_id for v in report.violations} == unknown
        for violation in report.violations:
            assert violation.required_key_set is True
            assert spec.inputs[violation.offending_node_id] is Classification.UNKNOWN
            assert violation.chain_length == len(violation.chain) - 1

    @given(spec=graph_specs(), data=st.data())
    @DETERMINISM_SETTINGS
    def test_report_independent_of_insertion_order(self, spec: GraphSpec, data: st.DataObject) -> None:
        """Property: node insertion order never shows up in output."""
        order = data.draw(st.permutations(spec.node_ids()))
        reporter = Reporter()

        original = Analyzer(reporter=reporter).analyze(spec.build(), name="g")
        shuffled = Analyzer(reporter=reporter).analyze(spec.build(order), name="g")

        assert compute_graph_hash(spec.build()) == compute_graph_hash(spec.build(order))
        assert reporter.render_json([original]) == reporter.render_json([shuffled])
