# src/knownscan/contracts/__init__.py
"""Shared contracts: enums and findings.

Leaf package: nothing here imports from core or engine.
"""

from knownscan.contracts.enums import DECLARABLE_KINDS, Classification, NodeKind, join
from knownscan.contracts.findings import CycleDiagnostic, Violation

__all__ = [
    "DECLARABLE_KINDS",
    "Classification",
    "CycleDiagnostic",
    "NodeKind",
    "Violation",
    "join",
]
