# src/knownscan/contracts/findings.py
"""Findings produced by an analysis run.

Violations and cycle diagnostics are results, not errors: they are always
surfaced to the caller and never raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Violation:
    """An Unknown collection reaching a consumer that needs resolved keys.

    Attributes:
        consumer_node_id: Node that consumes the collection
        required_key_set: True when the consumer needs the complete key set
            (iteration construct); False for a dynamic-key lookup
        offending_node_id: The Unknown source the chain ends at
        chain: Node ids from the consumer to the offending node, inclusive
    """

    consumer_node_id: str
    required_key_set: bool
    offending_node_id: str
    chain: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.chain:
            raise ValueError("Violation chain must contain at least the consumer")
        if self.chain[0] != self.consumer_node_id:
            raise ValueError(f"Violation chain must start at consumer '{self.consumer_node_id}', got '{self.chain[0]}'")
        if self.chain[-1] != self.offending_node_id:
            raise ValueError(f"Violation chain must end at offending node '{self.offending_node_id}', got '{self.chain[-1]}'")

    @property
    def chain_length(self) -> int:
        """Number of dependency edges between consumer and offending node."""
        return len(self.chain) - 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "consumer_node_id": self.consumer_node_id,
            "required_key_set": self.required_key_set,
            "offending_node_id": self.offending_node_id,
            "chain": list(self.chain),
        }


@dataclass(frozen=True, slots=True)
class CycleDiagnostic:
    """A strongly connected group of nodes classified CYCLIC.

    members is sorted; path is one concrete cycle through the group, closed
    on its first node (a self-reference is reported as ``(a, a)``).
    """

    members: tuple[str, ...]
    path: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"members": list(self.members), "path": list(self.path)}
