# src/knownscan/core/graph/__init__.py
"""Dependency graph of value-producing nodes."""

from knownscan.core.graph.graph import DependencyGraph
from knownscan.core.graph.models import (
    UNSET,
    GraphValidationError,
    NodeInfo,
    UnknownReference,
)

__all__ = [
    "UNSET",
    "DependencyGraph",
    "GraphValidationError",
    "NodeInfo",
    "UnknownReference",
]
