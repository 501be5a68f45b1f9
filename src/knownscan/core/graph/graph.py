# src/knownscan/core/graph/graph.py
"""DependencyGraph: the graph model the analyzer runs over.

Wraps a NetworkX DiGraph. Edges point from dependent to dependency and are
derived from the References in each node's expression plus its
depends_on list; they are never added by hand.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, cast

import networkx as nx
from networkx import DiGraph

from knownscan.contracts.enums import Classification, NodeKind
from knownscan.contracts.findings import CycleDiagnostic
from knownscan.core.expressions import Expression, referenced_ids
from knownscan.core.graph.models import UNSET, GraphValidationError, NodeInfo, UnknownReference

# Edge attribute values for "via"
VIA_REFERENCE = "reference"
VIA_DEPENDS_ON = "depends_on"


class DependencyGraph:
    """Dependency graph of value-producing nodes.

    Nodes may be added in any order, so a reference to a node that has not
    been added yet is legal until validate() runs. NetworkX creates such
    targets as bare placeholder nodes (no "info" attribute); validate()
    reports every placeholder still present as an UnknownReference.
    """

    def __init__(self) -> None:
        self._graph: DiGraph[str] = nx.DiGraph()

    @property
    def node_count(self) -> int:
        """Number of declared nodes (placeholders excluded)."""
        return sum(1 for _, data in self._graph.nodes(data=True) if "info" in data)

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    def has_node(self, node_id: str) -> bool:
        """Check if a node has been declared."""
        return self._graph.has_node(node_id) and "info" in self._graph.nodes[node_id]

    def node_ids(self) -> list[str]:
        """Declared node ids, sorted."""
        return sorted(node_id for node_id, data in self._graph.nodes(data=True) if "info" in data)

    def get_nx_graph(self) -> DiGraph[str]:
        """Return a frozen copy of the underlying NetworkX graph.

        Mutation attempts on the copy raise nx.NetworkXError.
        """
        return nx.freeze(self._graph.copy())  # type: ignore[no-any-return]

    def add_node(
        self,
        node_id: str,
        *,
        kind: NodeKind,
        expression: Expression | None = None,
        declared: Classification | None = None,
        value: Any = UNSET,
        depends_on: Iterable[str] = (),
    ) -> NodeInfo:
        """Add a node and the edges derived from it.

        Args:
            node_id: Unique node identifier
            kind: NodeKind of the value producer
            expression: Expression tree computing the value
            declared: Declared classification (external/resource/data only)
            value: Static value of an external input
            depends_on: Ordering-only dependencies

        Returns:
            The frozen NodeInfo stored in the graph

        Raises:
            GraphValidationError: If the id is already declared or the node
                is malformed for its kind
        """
        if self.has_node(node_id):
            raise GraphValidationError(f"Duplicate node id: '{node_id}'")

        info = NodeInfo(
            node_id=node_id,
            kind=kind,
            expression=expression,
            declared=declared,
            value=value,
            depends_on=tuple(depends_on),
        )
        self._graph.add_node(node_id, info=info)

        # depends_on first so that a data reference to the same target wins
        for target in info.depends_on:
            self._graph.add_edge(node_id, target, via=VIA_DEPENDS_ON)
        if expression is not None:
            for target in referenced_ids(expression):
                self._graph.add_edge(node_id, target, via=VIA_REFERENCE)
        return info

    def get_node(self, node_id: str) -> NodeInfo:
        """Get NodeInfo for a node.

        Raises:
            KeyError: If node doesn't exist
        """
        if not self.has_node(node_id):
            raise KeyError(f"Node not found: {node_id}")
        return cast(NodeInfo, self._graph.nodes[node_id]["info"])

    def get_nodes(self) -> list[NodeInfo]:
        """All declared nodes, sorted by id."""
        return [self.get_node(node_id) for node_id in self.node_ids()]

    def dependencies_of(self, node_id: str) -> tuple[str, ...]:
        """Ids this node depends on (references and depends_on), sorted.

        Raises:
            KeyError: If node_id is not declared
            UnknownReference: If a dependency is not declared
        """
        self.get_node(node_id)
        deps = sorted(self._graph.successors(node_id))
        for dep in deps:
            if not self.has_node(dep):
                raise UnknownReference(node_id, dep, via=self._graph.edges[node_id, dep]["via"])
        return tuple(deps)

    def references_of(self, node_id: str) -> tuple[str, ...]:
        """Ids this node reads data from (depends_on excluded), sorted."""
        self.get_node(node_id)
        return tuple(
            sorted(dep for dep in self._graph.successors(node_id) if self._graph.edges[node_id, dep]["via"] == VIA_REFERENCE)
        )

    def dependents_of(self, node_id: str) -> tuple[str, ...]:
        """Ids of nodes that depend on this node, sorted."""
        self.get_node(node_id)
        return tuple(sorted(self._graph.predecessors(node_id)))

    def validate(self) -> None:
        """Validate that every edge lands on a declared node.

        Placeholders are checked in sorted order so the reported error is
        stable for a given input.

        Raises:
            UnknownReference: On the first dangling reference found
        """
        for target in sorted(self._graph.nodes):
            if "info" in self._graph.nodes[target]:
                continue
            referrer = min(self._graph.predecessors(target))
            raise UnknownReference(referrer, target, via=self._graph.edges[referrer, target]["via"])

    def is_acyclic(self) -> bool:
        """Check if the graph is free of dependency cycles."""
        return nx.is_directed_acyclic_graph(self._graph)

    def find_cycles(self) -> list[CycleDiagnostic]:
        """Group every node that sits on a cycle into a diagnostic.

        One diagnostic per strongly connected component with more than one
        node, plus one per self-referencing node. Sorted by first member.
        """
        diagnostics = []
        for component in nx.strongly_connected_components(self._graph):
            members = sorted(component)
            start = members[0]
            if len(members) == 1 and not self._graph.has_edge(start, start):
                continue
            subgraph = self._graph.subgraph(members)
            cycle_edges = nx.find_cycle(subgraph, source=start)
            path = [edge[0] for edge in cycle_edges]
            path.append(path[0])
            diagnostics.append(CycleDiagnostic(members=tuple(members), path=tuple(path)))
        return sorted(diagnostics, key=lambda d: d.members[0])

    def evaluation_order(self, exclude: Iterable[str] = ()) -> list[str]:
        """Node ids ordered so that every dependency precedes its dependents.

        Ties are broken lexically, so the order is reproducible.

        Args:
            exclude: Nodes to leave out (the members of cycles)

        Raises:
            GraphValidationError: If the remaining nodes still contain a cycle
        """
        excluded = set(exclude)
        remaining = self._graph.subgraph(n for n in self._graph.nodes if n not in excluded)
        try:
            # Reverse so dependencies (edge targets) come first
            return list(nx.lexicographical_topological_sort(remaining.reverse(copy=False)))
        except nx.NetworkXUnfeasible as e:
            raise GraphValidationError(f"Cannot order graph: {e}") from e
