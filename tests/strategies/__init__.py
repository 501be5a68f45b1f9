# tests/strategies/__init__.py
"""Hypothesis strategies for property-based tests.

Re-exports commonly used strategies for convenience:
    from tests.strategies import graph_specs, GraphSpec
"""

from tests.strategies.graphs import GraphSpec, graph_specs, known_graph_specs, scalar_literals

__all__ = [
    "GraphSpec",
    "graph_specs",
    "known_graph_specs",
    "scalar_literals",
]
