# src/knownscan/core/graph/models.py
"""Types and exceptions for the dependency graph.

Leaf module within the graph package: no intra-package imports.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Final

from knownscan.contracts.enums import DECLARABLE_KINDS, Classification, NodeKind
from knownscan.core.expressions import Expression


class GraphValidationError(ValueError):
    """Raised when a graph is structurally invalid.

    Structural errors are fatal for the run: the caller must fix the input.
    """

    pass


class UnknownReference(GraphValidationError):
    """Raised when a node refers to a node id that is not in the graph."""

    def __init__(self, node_id: str, missing: str, *, via: str = "reference") -> None:
        self.node_id = node_id
        self.missing = missing
        self.via = via
        super().__init__(f"Node '{node_id}' has a {via} to unknown node '{missing}'")


class _Unset(Enum):
    UNSET = "unset"


# Marks the absence of a static value (None is a legitimate static value).
UNSET: Final = _Unset.UNSET

# Kinds whose value must be described by an expression
_EXPRESSION_REQUIRED: frozenset[NodeKind] = frozenset(
    {
        NodeKind.LOCAL_EXPRESSION,
        NodeKind.MODULE_OUTPUT,
        NodeKind.KEYED_ITERATION_CONSUMER,
    }
)


@dataclass(frozen=True, slots=True)
class NodeInfo:
    """One value-producing unit of the graph.

    Frozen: a graph snapshot is immutable input for an analysis pass.
    Classifications live in the per-run classification table, never here,
    so the same graph can be analyzed any number of times.

    Attributes:
        node_id: Unique id within the graph
        kind: What produces the value
        expression: How the value is computed (absent for external inputs)
        declared: Caller-declared classification; external inputs default
            to KNOWN, resource/data attributes may be pinned explicitly
        value: Static value of an external input, or UNSET
        depends_on: Ordering-only dependencies (no data flows along them)
    """

    node_id: str
    kind: NodeKind
    expression: Expression | None = None
    declared: Classification | None = None
    value: Any = UNSET
    depends_on: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.node_id:
            raise GraphValidationError("node_id must be a non-empty string")
        if self.declared is not None:
            if self.declared not in (Classification.KNOWN, Classification.UNKNOWN):
                raise GraphValidationError(
                    f"Node '{self.node_id}': declared classification must be known or unknown, got '{self.declared}'"
                )
            if self.kind not in DECLARABLE_KINDS:
                raise GraphValidationError(f"Node '{self.node_id}': a {self.kind} node cannot declare a classification")
        if self.kind == NodeKind.EXTERNAL_INPUT and self.expression is not None:
            raise GraphValidationError(f"Node '{self.node_id}': external inputs take a declared classification, not an expression")
        if self.kind in _EXPRESSION_REQUIRED and self.expression is None:
            raise GraphValidationError(f"Node '{self.node_id}': a {self.kind} node requires an expression")
        if self.value is not UNSET:
            if self.kind != NodeKind.EXTERNAL_INPUT:
                raise GraphValidationError(f"Node '{self.node_id}': only external inputs carry a static value")
            if self.declared == Classification.UNKNOWN:
                raise GraphValidationError(f"Node '{self.node_id}': an unknown input cannot have a static value")

    @property
    def has_static_value(self) -> bool:
        return self.value is not UNSET
