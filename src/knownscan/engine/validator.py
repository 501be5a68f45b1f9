# src/knownscan/engine/validator.py
"""Consumer validation: Unknown collections feeding key-set consumers.

Two kinds of consumer are checked after propagation:

- KEYED_ITERATION_CONSUMER nodes (for_each style) need the complete key set
  of the collection they wrap
- Any node whose expression contains a Lookup with a computed key needs its
  map operand to be resolved before the key can be chosen

For every Unknown collection a Violation is emitted whose chain is the
shortest path, through Unknown nodes only, from the consumer to the nearest
Unknown *source*: an Unknown node none of whose dependencies is Unknown.
That source is what a module author has to change.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

import structlog

from knownscan.contracts.enums import Classification, NodeKind
from knownscan.contracts.findings import Violation
from knownscan.core.expressions import Expression, dynamic_lookups, referenced_ids
from knownscan.core.graph import DependencyGraph, NodeInfo
from knownscan.engine.evaluator import ExpressionEvaluator
from knownscan.engine.propagation import PropagationResult

logger = structlog.get_logger(__name__)


class ConsumerValidator:
    """Check consumers against a finished propagation result."""

    def __init__(self, graph: DependencyGraph, result: PropagationResult) -> None:
        self._graph = graph
        self._result = result
        self._evaluator = ExpressionEvaluator(result.classifications, result.static_values)

    def validate(self) -> list[Violation]:
        """Return every violation, sorted by consumer then offending node."""
        found: dict[tuple[str, bool, str, tuple[str, ...]], Violation] = {}
        for node in self._graph.get_nodes():
            for violation in self._check_node(node):
                key = (violation.consumer_node_id, violation.required_key_set, violation.offending_node_id, violation.chain)
                found.setdefault(key, violation)

        violations = sorted(found.values(), key=lambda v: (v.consumer_node_id, v.offending_node_id, not v.required_key_set))
        for violation in violations:
            logger.info(
                "Unknown collection reaches consumer",
                consumer=violation.consumer_node_id,
                offending=violation.offending_node_id,
                chain_length=violation.chain_length,
            )
        return violations

    def _check_node(self, node: NodeInfo) -> Iterable[Violation]:
        if node.expression is None:
            return

        if node.kind == NodeKind.KEYED_ITERATION_CONSUMER:
            if self._result.classifications[node.node_id] is Classification.UNKNOWN:
                yield self._violation(node.node_id, node.expression, required_key_set=True)

        for lookup in dynamic_lookups(node.expression):
            if self._evaluator.classify(lookup.map, node_id=node.node_id) is Classification.UNKNOWN:
                yield self._violation(node.node_id, lookup.map, required_key_set=False)

    def _violation(self, consumer: str, collection: Expression, *, required_key_set: bool) -> Violation:
        chain = self.chain_to_source(consumer, first_hop=referenced_ids(collection))
        return Violation(
            consumer_node_id=consumer,
            required_key_set=required_key_set,
            offending_node_id=chain[-1],
            chain=chain,
        )

    def _unknown(self, node_ids: Iterable[str]) -> list[str]:
        return sorted(n for n in node_ids if self._result.classifications[n] is Classification.UNKNOWN)

    def _inputs(self, node_id: str) -> tuple[str, ...]:
        # depends_on only makes a data source unknown; elsewhere it carries nothing
        if self._graph.get_node(node_id).kind == NodeKind.DATA_ATTRIBUTE:
            return self._graph.dependencies_of(node_id)
        return self._graph.references_of(node_id)

    def chain_to_source(self, start: str, first_hop: Iterable[str] | None = None) -> tuple[str, ...]:
        """Shortest chain from start to the nearest Unknown source.

        Breadth-first over Unknown nodes with neighbors visited in sorted
        order, so among equally short chains the one reaching the lexically
        smallest source wins.

        Args:
            start: Node to start from (normally a consumer)
            first_hop: Restrict the first step to these ids (the references
                of the checked collection); defaults to the inputs of start

        Returns:
            Node ids from start to the source, inclusive. If start has no
            Unknown dependency, the chain is just (start,).
        """
        first = self._inputs(start) if first_hop is None else tuple(first_hop)
        parents: dict[str, str | None] = {start: None}
        frontier = [start]
        while frontier:
            sources: list[str] = []
            next_frontier: list[str] = []
            for node_id in frontier:
                deps = first if node_id == start else self._inputs(node_id)
                unknown_deps = self._unknown(deps)
                if not unknown_deps:
                    sources.append(node_id)
                    continue
                for dep in unknown_deps:
                    if dep not in parents:
                        parents[dep] = node_id
                        next_frontier.append(dep)
            if sources:
                return self._path(parents, min(sources))
            frontier = sorted(next_frontier)
        # Every Unknown path ended in a node already visited: no source is
        # reachable, which only happens when Unknown nodes form a loop
        # (impossible once cycles are classified CYCLIC).
        return (start,)

    @staticmethod
    def _path(parents: dict[str, str | None], end: str) -> tuple[str, ...]:
        path = deque([end])
        parent = parents[end]
        while parent is not None:
            path.appendleft(parent)
            parent = parents[parent]
        return tuple(path)
