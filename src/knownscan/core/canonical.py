# src/knownscan/core/canonical.py
"""
Canonical JSON serialization for deterministic reports and fingerprints.

Two-phase approach:
1. Normalize: Convert YAML-loaded and stdlib types to JSON-safe primitives
2. Serialize: Produce deterministic JSON per RFC 8785/JCS (rfc8785 package)

Values JSON cannot carry exactly (NaN, Infinity, integers outside the
IEEE-754 safe range, bytes) are encoded as tagged objects, so every value
a snapshot can hold has a fingerprint.
"""

from __future__ import annotations

import base64
import hashlib
import math
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import rfc8785

if TYPE_CHECKING:
    from knownscan.core.graph import DependencyGraph

# Version string embedded in every report next to the snapshot fingerprint
CANONICAL_VERSION = "sha256-rfc8785-v2"

# RFC 8785 only admits integers an IEEE-754 double represents exactly
_SAFE_INTEGER_MAX = 2**53 - 1


def _normalize_value(obj: Any) -> Any:
    """Convert a single value to a JSON-safe primitive."""
    if obj is None or isinstance(obj, str | bool):
        return obj

    if isinstance(obj, int):
        if abs(obj) > _SAFE_INTEGER_MAX:
            return {"__int__": str(obj)}
        return obj

    if isinstance(obj, float):
        if math.isfinite(obj):
            return obj
        return {"__float__": "nan" if math.isnan(obj) else ("inf" if obj > 0 else "-inf")}

    # YAML timestamps load as datetime/date
    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=UTC)
        return obj.astimezone(UTC).isoformat()
    if isinstance(obj, date):
        return obj.isoformat()

    if isinstance(obj, bytes):
        return {"__bytes__": base64.b64encode(obj).decode("ascii")}

    if isinstance(obj, Decimal):
        if not obj.is_finite():
            return {"__decimal__": str(obj)}
        return str(obj)

    return obj


def _normalize_for_canonical(data: Any) -> Any:
    """Recursively normalize a data structure for canonical JSON."""
    if isinstance(data, dict):
        return {str(k): _normalize_for_canonical(v) for k, v in data.items()}
    if isinstance(data, list | tuple):
        return [_normalize_for_canonical(v) for v in data]
    if isinstance(data, set | frozenset):
        return sorted((_normalize_for_canonical(v) for v in data), key=repr)
    return _normalize_value(data)


def canonical_json(obj: Any) -> str:
    """Produce canonical JSON (no whitespace, sorted keys).

    Raises:
        rfc8785.CanonicalizationError: If data contains types that cannot be serialized
    """
    normalized = _normalize_for_canonical(obj)
    result: bytes = rfc8785.dumps(normalized)
    return result.decode("utf-8")


def stable_hash(obj: Any) -> str:
    """SHA-256 hex digest of the canonical JSON of obj."""
    canonical = canonical_json(obj)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def compute_graph_hash(graph: DependencyGraph) -> str:
    """Fingerprint a graph snapshot.

    Two graphs built from the same snapshot document (in any node order)
    hash identically; any change to a node's kind, expression, declaration,
    static value or depends_on changes the hash.
    """
    from knownscan.core.snapshot import dump_node

    return stable_hash({node.node_id: dump_node(node) for node in graph.get_nodes()})
