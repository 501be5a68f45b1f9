# src/knownscan/engine/analyzer.py
"""Analyzer facade: one call from graph (or snapshot) to Report.

Runs propagation, consumer validation and reporting in that order. Several
independent snapshots can be analyzed concurrently with analyze_many();
each run builds its own engine state, so nothing is shared between workers.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from knownscan.contracts.enums import Classification
from knownscan.core.canonical import compute_graph_hash
from knownscan.core.config import AnalysisSettings
from knownscan.core.expressions import render
from knownscan.core.graph import DependencyGraph, GraphValidationError
from knownscan.core.logging import get_logger, snapshot_context
from knownscan.core.snapshot import Snapshot
from knownscan.engine.evaluator import ExpressionDepthExceeded
from knownscan.engine.propagation import PropagationEngine
from knownscan.engine.reporter import Report, Reporter
from knownscan.engine.validator import ConsumerValidator

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class AnalysisOutcome:
    """Result of analyzing one snapshot out of a batch.

    Exactly one of report and error is set.
    """

    name: str
    report: Report | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class NodeExplanation:
    """Why a node has the classification it has."""

    node_id: str
    kind: str
    classification: Classification
    expression: str | None
    dependencies: tuple[str, ...]
    chain: tuple[str, ...]


class Analyzer:
    """Run analysis passes with fixed settings.

    Example:
        analyzer = Analyzer()
        report = analyzer.analyze(graph, name="module")
        for violation in report.violations:
            print(violation.consumer_node_id, violation.chain)
    """

    def __init__(self, settings: AnalysisSettings | None = None, *, reporter: Reporter | None = None) -> None:
        self._settings = settings or AnalysisSettings()
        self._reporter = reporter or Reporter()

    def analyze(self, graph: DependencyGraph, *, name: str = "snapshot") -> Report:
        """Analyze one graph.

        Raises:
            UnknownReference: If the graph references an undeclared node
            ExpressionDepthExceeded: If an expression is deeper than allowed
        """
        with snapshot_context(name):
            logger.debug("Analysis started", nodes=graph.node_count, edges=graph.edge_count)

            engine = PropagationEngine(graph, max_expression_depth=self._settings.max_expression_depth)
            result = engine.run()
            violations = ConsumerValidator(graph, result).validate()

            report = self._reporter.build(
                name=name,
                fingerprint=compute_graph_hash(graph),
                classifications=result.classifications,
                violations=violations,
                cycles=result.cycles,
            )
            logger.info("Analysis finished", violations=len(report.violations), cycles=len(report.cycles))
        return report

    def analyze_snapshot(self, snapshot: Snapshot) -> Report:
        return self.analyze(snapshot.graph, name=snapshot.name)

    def analyze_many(self, snapshots: Sequence[Snapshot], *, max_workers: int = 4) -> list[AnalysisOutcome]:
        """Analyze independent snapshots in parallel.

        A malformed snapshot fails on its own; the others still run.
        Outcomes are returned in input order.
        """
        if not snapshots:
            return []
        workers = min(max_workers, len(snapshots))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="knownscan") as pool:
            return list(pool.map(self._analyze_outcome, snapshots))

    def _analyze_outcome(self, snapshot: Snapshot) -> AnalysisOutcome:
        try:
            return AnalysisOutcome(name=snapshot.name, report=self.analyze_snapshot(snapshot))
        except (GraphValidationError, ExpressionDepthExceeded) as e:
            logger.error("Snapshot analysis failed", snapshot=snapshot.name, error=str(e))
            return AnalysisOutcome(name=snapshot.name, error=e)

    def explain(self, graph: DependencyGraph, node_id: str) -> NodeExplanation:
        """Explain one node's classification.

        For an Unknown node the chain leads to the Unknown source that makes
        it unknown; for any other node it is just the node itself.

        Raises:
            KeyError: If node_id is not in the graph
        """
        node = graph.get_node(node_id)
        result = PropagationEngine(graph, max_expression_depth=self._settings.max_expression_depth).run()
        classification = result.classifications[node_id]
        if classification is Classification.UNKNOWN:
            chain = ConsumerValidator(graph, result).chain_to_source(node_id)
        else:
            chain = (node_id,)
        return NodeExplanation(
            node_id=node_id,
            kind=node.kind.value,
            classification=classification,
            expression=None if node.expression is None else render(node.expression),
            dependencies=graph.dependencies_of(node_id),
            chain=chain,
        )


def analyze(graph: DependencyGraph, *, name: str = "snapshot", settings: AnalysisSettings | None = None) -> Report:
    """Analyze one graph with default reporting."""
    return Analyzer(settings).analyze(graph, name=name)
