# src/knownscan/engine/propagation.py
"""Propagation engine: assigns a classification to every node of a graph.

Order of work for one run:

1. Cycles are found up front (strongly connected components plus
   self-references). Their members are classified CYCLIC and reported as
   CycleDiagnostic; the rest of the graph is still analyzed.
2. Every other node is visited in dependency order. A node is marked
   PENDING, classified, and assigned its terminal classification exactly
   once. Nodes that depend on a cycle inherit CYCLIC through evaluation.

Each run owns its classification table, so a graph can be analyzed
repeatedly (or concurrently from several threads) without shared state.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import structlog

from knownscan.contracts.enums import Classification, NodeKind, join
from knownscan.contracts.findings import CycleDiagnostic
from knownscan.core.expressions import Literal
from knownscan.core.graph import UNSET, DependencyGraph, NodeInfo
from knownscan.engine.evaluator import (
    DEFAULT_MAX_EXPRESSION_DEPTH,
    CycleDetected,
    ExpressionEvaluator,
)

logger = structlog.get_logger(__name__)


class ClassificationStateError(Exception):
    """Raised on an illegal classification transition.

    Legal transitions are unset -> PENDING -> terminal. Anything else is a
    scheduling bug in the engine, not a property of the input graph.
    """


class ClassificationTable(Mapping[str, Classification]):
    """Write-once per-run store of node classifications.

    Reads behave like a plain mapping; writes go through mark_pending()
    and assign() so the lifecycle can be enforced.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Classification] = {}

    def __getitem__(self, node_id: str) -> Classification:
        return self._entries[node_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def mark_pending(self, node_id: str) -> None:
        if node_id in self._entries:
            raise ClassificationStateError(f"Node '{node_id}' is already {self._entries[node_id]}; cannot mark pending")
        self._entries[node_id] = Classification.PENDING

    def assign(self, node_id: str, classification: Classification) -> None:
        if not classification.is_terminal:
            raise ClassificationStateError(f"Node '{node_id}': cannot assign non-terminal '{classification}'")
        current = self._entries.get(node_id)
        if current is not Classification.PENDING:
            state = "unvisited" if current is None else str(current)
            raise ClassificationStateError(f"Node '{node_id}' is {state}; only pending nodes can be assigned")
        self._entries[node_id] = classification

    def snapshot(self) -> Mapping[str, Classification]:
        """Frozen, id-sorted copy of the terminal classifications.

        Raises:
            ClassificationStateError: If any node is still pending
        """
        pending = sorted(node_id for node_id, c in self._entries.items() if c is Classification.PENDING)
        if pending:
            raise ClassificationStateError(f"Nodes left pending after propagation: {pending}")
        return MappingProxyType(dict(sorted(self._entries.items())))


@dataclass(frozen=True, slots=True)
class PropagationResult:
    """Outcome of one propagation run.

    Attributes:
        classifications: node id -> terminal classification, sorted by id
        cycles: One diagnostic per group of cyclic nodes
        static_values: Statically computed values of Known nodes
    """

    classifications: Mapping[str, Classification]
    cycles: tuple[CycleDiagnostic, ...] = ()
    static_values: Mapping[str, Any] = field(default_factory=dict)

    def nodes_with(self, classification: Classification) -> list[str]:
        """Sorted ids of nodes holding the given classification."""
        return [node_id for node_id, c in self.classifications.items() if c is classification]


class PropagationEngine:
    """Classify every node of a validated graph.

    Args:
        graph: Graph to analyze; validate() is called before any work
        max_expression_depth: Depth limit passed to the evaluator
    """

    def __init__(self, graph: DependencyGraph, *, max_expression_depth: int = DEFAULT_MAX_EXPRESSION_DEPTH) -> None:
        self._graph = graph
        self._max_expression_depth = max_expression_depth

    def run(self) -> PropagationResult:
        """Run one propagation pass.

        Raises:
            UnknownReference: If the graph references an undeclared node
            ExpressionDepthExceeded: If a node's expression or static value is too deep
        """
        self._graph.validate()

        table = ClassificationTable()
        static_values: dict[str, Any] = {}
        evaluator = ExpressionEvaluator(table, static_values, max_depth=self._max_expression_depth)

        cycles = self._graph.find_cycles()
        cyclic_members = [member for cycle in cycles for member in cycle.members]
        for cycle in cycles:
            logger.warning("Dependency cycle detected", members=list(cycle.members), path=list(cycle.path))
            for member in cycle.members:
                table.mark_pending(member)
                table.assign(member, Classification.CYCLIC)

        for node_id in self._graph.evaluation_order(exclude=cyclic_members):
            node = self._graph.get_node(node_id)
            table.mark_pending(node_id)
            try:
                classification = self._classify_node(node, table, evaluator)
            except CycleDetected as e:
                # Cyclic nodes are excluded from the order, so a pending
                # reference here means the order was wrong, not the input.
                logger.error("Pending reference during propagation", node_id=node_id, target=e.target)
                classification = Classification.CYCLIC
            table.assign(node_id, classification)

            if classification is Classification.KNOWN:
                value = self._static_value(node, evaluator)
                if value is not UNSET:
                    static_values[node_id] = value

        result = PropagationResult(
            classifications=table.snapshot(),
            cycles=tuple(cycles),
            static_values=MappingProxyType(dict(static_values)),
        )
        logger.debug(
            "Propagation complete",
            nodes=len(result.classifications),
            unknown=len(result.nodes_with(Classification.UNKNOWN)),
            cyclic=len(result.nodes_with(Classification.CYCLIC)),
        )
        return result

    def _classify_node(
        self,
        node: NodeInfo,
        table: ClassificationTable,
        evaluator: ExpressionEvaluator,
    ) -> Classification:
        if node.kind == NodeKind.EXTERNAL_INPUT:
            if node.has_static_value:
                evaluator.check_depth(Literal(node.value), node_id=node.node_id)
            return node.declared or Classification.KNOWN

        # depends_on carries no data, but a cyclic ordering target still
        # makes the node impossible to schedule.
        ordering = join(*(table[dep] for dep in node.depends_on))
        if ordering is Classification.CYCLIC:
            return Classification.CYCLIC

        if node.declared is not None:
            own = node.declared
        elif node.expression is None:
            # Resource/data attribute with nothing configured: only known after apply/read
            own = Classification.UNKNOWN
        else:
            own = evaluator.classify(node.expression, node_id=node.node_id)

        # A data source whose depends_on has pending changes is read during
        # apply, not plan, so all of its attributes are unknown at plan time.
        if node.kind == NodeKind.DATA_ATTRIBUTE and ordering is Classification.UNKNOWN:
            return join(own, Classification.UNKNOWN)
        return own

    def _static_value(self, node: NodeInfo, evaluator: ExpressionEvaluator) -> Any:
        if node.kind == NodeKind.EXTERNAL_INPUT:
            return node.value
        if node.expression is None:
            return UNSET
        return evaluator.static_value(node.expression)
