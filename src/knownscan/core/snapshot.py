# src/knownscan/core/snapshot.py
"""Graph snapshot documents: loading, validation and graph construction.

A snapshot is a YAML (or JSON) document describing one dependency graph:

    name: merge-defect
    nodes:
      x: {kind: external_input, declared: unknown}
      useful:
        kind: local_expression
        expression: {merge: [{literal: {}}, {ref: x}]}
      each: {kind: keyed_iteration_consumer, expression: {ref: useful}}

Node fields are validated with Pydantic; expression trees use a small tagged
encoding (one key per mapping) decoded by parse_expression(). Scalars are
shorthand for literals. Collections must be wrapped in ``{literal: ...}`` so
that a literal map can never be mistaken for an expression.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from knownscan.contracts.enums import Classification, NodeKind
from knownscan.core.expressions import (
    MAX_EXPRESSION_DEPTH,
    Conditional,
    Expression,
    Flatten,
    Interpolation,
    Literal,
    Lookup,
    Merge,
    Reference,
    value_nesting,
)
from knownscan.core.graph import UNSET, DependencyGraph, GraphValidationError, NodeInfo


class SnapshotFormatError(ValueError):
    """Raised when a snapshot document is malformed.

    Attributes:
        details: One entry per problem, each prefixed with its location
    """

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        self.details = details or []
        super().__init__(message)


_SCALAR_TYPES = (str, int, float, bool, type(None))

_EXPRESSION_TAGS = ("literal", "ref", "merge", "flatten", "lookup", "if", "interpolate")

# Mappings and lists nested deeper than this are rejected before decoding.
# Tagged expressions take at most two levels per tree level, plus the
# document, nodes and node entry levels above them.
MAX_DOCUMENT_NESTING = 2 * MAX_EXPRESSION_DEPTH + 8


class NodeSpec(BaseModel):
    """One node entry of a snapshot document."""

    model_config = {"frozen": True, "extra": "forbid"}

    kind: NodeKind = Field(description="What produces the value")
    expression: Any = Field(default=None, description="Tagged expression tree")
    declared: Classification | None = Field(
        default=None,
        description="Declared classification (known or unknown)",
    )
    value: Any = Field(default=None, description="Static value of an external input")
    depends_on: list[str] = Field(
        default_factory=list,
        description="Ordering-only dependencies",
    )

    @field_validator("declared")
    @classmethod
    def validate_declared_is_terminal(cls, v: Classification | None) -> Classification | None:
        """Only known/unknown can be declared; pending and cyclic are computed."""
        if v is not None and v not in (Classification.KNOWN, Classification.UNKNOWN):
            raise ValueError(f"declared must be 'known' or 'unknown', got '{v}'")
        return v

    @field_validator("depends_on")
    @classmethod
    def validate_depends_on_unique(cls, v: list[str]) -> list[str]:
        duplicates = sorted({dep for dep in v if v.count(dep) > 1})
        if duplicates:
            raise ValueError(f"duplicate depends_on entries: {duplicates}")
        return v


class SnapshotDocument(BaseModel):
    """Top-level snapshot document."""

    model_config = {"frozen": True, "extra": "forbid"}

    name: str | None = Field(default=None, description="Human-readable snapshot name")
    nodes: dict[str, NodeSpec] = Field(description="Node id -> node specification")


@dataclass(frozen=True, slots=True)
class Snapshot:
    """A loaded snapshot: its name, its graph, and where it came from."""

    name: str
    graph: DependencyGraph
    source: Path | None = None


def _require_mapping(raw: Any, where: str, keys: tuple[str, ...], optional: tuple[str, ...] = ()) -> dict[str, Any]:
    if not isinstance(raw, Mapping):
        raise SnapshotFormatError(f"{where}: expected a mapping with keys {list(keys)}, got {type(raw).__name__}")
    missing = [key for key in keys if key not in raw and key not in optional]
    unexpected = sorted(str(key) for key in raw if key not in keys)
    if missing:
        raise SnapshotFormatError(f"{where}: missing key(s) {missing}")
    if unexpected:
        raise SnapshotFormatError(f"{where}: unexpected key(s) {unexpected}")
    return dict(raw)


def _require_list(raw: Any, where: str) -> list[Any]:
    if not isinstance(raw, list):
        raise SnapshotFormatError(f"{where}: expected a list of expressions, got {type(raw).__name__}")
    return raw


def _check_nesting(raw: Any, where: str) -> None:
    nesting = value_nesting(raw, stop_after=MAX_DOCUMENT_NESTING)
    if nesting > MAX_DOCUMENT_NESTING:
        raise SnapshotFormatError(f"{where}: nested more than {MAX_DOCUMENT_NESTING} levels deep")


def parse_expression(raw: Any, where: str = "expression") -> Expression:
    """Decode one tagged expression tree.

    Args:
        raw: Decoded YAML/JSON value
        where: Location prefix for error messages

    Raises:
        SnapshotFormatError: If the value is not a valid expression or is
            nested more than MAX_DOCUMENT_NESTING levels deep
    """
    _check_nesting(raw, where)
    return _parse(raw, where)


def _parse(raw: Any, where: str) -> Expression:
    if isinstance(raw, _SCALAR_TYPES):
        return Literal(raw)
    if isinstance(raw, list):
        raise SnapshotFormatError(f"{where}: bare lists are ambiguous; wrap literal lists as {{literal: [...]}}")
    if not isinstance(raw, Mapping):
        raise SnapshotFormatError(f"{where}: unsupported value of type {type(raw).__name__}")
    if len(raw) != 1:
        raise SnapshotFormatError(
            f"{where}: an expression mapping must have exactly one key out of {list(_EXPRESSION_TAGS)}, got {sorted(map(str, raw))}"
        )

    ((tag, body),) = raw.items()
    match tag:
        case "literal":
            return Literal(body)
        case "ref":
            if not isinstance(body, str) or not body:
                raise SnapshotFormatError(f"{where}.ref: expected a node id string")
            return Reference(body)
        case "merge":
            operands = _require_list(body, f"{where}.merge")
            return Merge(tuple(_parse(op, f"{where}.merge[{i}]") for i, op in enumerate(operands)))
        case "flatten":
            return Flatten(_parse(body, f"{where}.flatten"))
        case "lookup":
            fields = _require_mapping(body, f"{where}.lookup", ("map", "key", "default"), optional=("default",))
            return Lookup(
                map=_parse(fields["map"], f"{where}.lookup.map"),
                key=_parse(fields["key"], f"{where}.lookup.key"),
                default=_parse(fields.get("default"), f"{where}.lookup.default"),
            )
        case "if":
            fields = _require_mapping(body, f"{where}.if", ("condition", "then", "else"))
            return Conditional(
                condition=_parse(fields["condition"], f"{where}.if.condition"),
                then_branch=_parse(fields["then"], f"{where}.if.then"),
                else_branch=_parse(fields["else"], f"{where}.if.else"),
            )
        case "interpolate":
            operands = _require_list(body, f"{where}.interpolate")
            return Interpolation(tuple(_parse(op, f"{where}.interpolate[{i}]") for i, op in enumerate(operands)))
    raise SnapshotFormatError(f"{where}: unknown expression tag '{tag}' (expected one of {list(_EXPRESSION_TAGS)})")


def dump_expression(expr: Expression) -> Any:
    """Encode an expression tree in the snapshot's tagged form."""
    match expr:
        case Literal(value=value):
            return value if isinstance(value, _SCALAR_TYPES) else {"literal": value}
        case Reference(target=target):
            return {"ref": target}
        case Merge(operands=operands):
            return {"merge": [dump_expression(op) for op in operands]}
        case Flatten(operand=operand):
            return {"flatten": dump_expression(operand)}
        case Lookup(map=map_expr, key=key, default=default):
            return {"lookup": {"map": dump_expression(map_expr), "key": dump_expression(key), "default": dump_expression(default)}}
        case Conditional(condition=condition, then_branch=then_branch, else_branch=else_branch):
            return {
                "if": {
                    "condition": dump_expression(condition),
                    "then": dump_expression(then_branch),
                    "else": dump_expression(else_branch),
                }
            }
        case Interpolation(operands=operands):
            return {"interpolate": [dump_expression(op) for op in operands]}
    raise TypeError(f"Not an expression: {expr!r}")


def dump_node(node: NodeInfo) -> dict[str, Any]:
    """Encode a node as a snapshot node entry (defaults omitted)."""
    entry: dict[str, Any] = {"kind": node.kind.value}
    if node.expression is not None:
        entry["expression"] = dump_expression(node.expression)
    if node.declared is not None:
        entry["declared"] = node.declared.value
    if node.has_static_value:
        entry["value"] = node.value
    if node.depends_on:
        entry["depends_on"] = list(node.depends_on)
    return entry


def _format_validation_errors(error: ValidationError) -> list[str]:
    details = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        details.append(f"{loc}: {item['msg']}")
    return details


def graph_from_mapping(nodes: Mapping[str, Any]) -> DependencyGraph:
    """Build a graph from a node id -> node entry mapping.

    The graph is not validated here: dangling references surface from
    DependencyGraph.validate(), which the analyzer calls before any work.

    Raises:
        SnapshotFormatError: If an entry or expression is malformed
    """
    _check_nesting(nodes, "nodes")
    try:
        document = SnapshotDocument.model_validate({"nodes": dict(nodes)})
    except ValidationError as e:
        raise SnapshotFormatError("Invalid snapshot nodes", _format_validation_errors(e)) from e
    return _build_graph(document)


def _build_graph(document: SnapshotDocument) -> DependencyGraph:
    graph = DependencyGraph()
    for node_id, spec in document.nodes.items():
        where = f"nodes.{node_id}"
        expression = None if spec.expression is None else parse_expression(spec.expression, f"{where}.expression")
        try:
            graph.add_node(
                node_id,
                kind=spec.kind,
                expression=expression,
                declared=spec.declared,
                value=spec.value if "value" in spec.model_fields_set else UNSET,
                depends_on=spec.depends_on,
            )
        except GraphValidationError as e:
            raise SnapshotFormatError(f"{where}: {e}") from e
    return graph


def parse_snapshot(raw: Any, *, default_name: str = "snapshot", source: Path | None = None) -> Snapshot:
    """Build a Snapshot from a decoded document.

    Raises:
        SnapshotFormatError: If the document is malformed
    """
    if not isinstance(raw, Mapping):
        raise SnapshotFormatError(f"Snapshot must be a mapping with a 'nodes' key, got {type(raw).__name__}")
    _check_nesting(raw, "snapshot")
    try:
        document = SnapshotDocument.model_validate(raw)
    except ValidationError as e:
        raise SnapshotFormatError("Invalid snapshot document", _format_validation_errors(e)) from e
    return Snapshot(name=document.name or default_name, graph=_build_graph(document), source=source)


def load_snapshot(path: Path) -> Snapshot:
    """Load a snapshot from a YAML or JSON file.

    JSON is read through the YAML loader (JSON is a subset of YAML 1.2 for
    every document this format allows).

    Raises:
        FileNotFoundError: If the file doesn't exist
        SnapshotFormatError: If the file is not valid YAML or not a valid snapshot
    """
    if not path.exists():
        raise FileNotFoundError(f"Snapshot file not found: {path}")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise SnapshotFormatError(f"Failed to parse {path.name}: {e}") from e
    except RecursionError as e:
        # PyYAML composes nested nodes recursively
        raise SnapshotFormatError(f"Failed to parse {path.name}: document is nested too deeply") from e
    return parse_snapshot(raw, default_name=path.stem, source=path)
