# src/knownscan/engine/reporter.py
"""Reporter: stable ordering and rendering of analysis findings.

Violations are ordered by consumer id, then offending id (both ascending),
so identical input always produces byte-identical output. JSON output is
canonical (RFC 8785) for the same reason.
"""

from __future__ import annotations

import io
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from knownscan.contracts.enums import Classification
from knownscan.contracts.findings import CycleDiagnostic, Violation
from knownscan.core.canonical import CANONICAL_VERSION, canonical_json


def order_violations(violations: Iterable[Violation]) -> list[Violation]:
    """Sort violations by consumer id, then offending id.

    The chain is the final tie-breaker so that two violations of the same
    consumer/offending pair still sort the same way every run.
    """
    return sorted(violations, key=lambda v: (v.consumer_node_id, v.offending_node_id, v.chain))


@dataclass(frozen=True, slots=True)
class Report:
    """Everything one analysis run hands back to its caller.

    Attributes:
        name: Snapshot name
        fingerprint: Stable hash of the analyzed snapshot
        classifications: node id -> terminal classification
        violations: Ordered violations
        cycles: Cycle diagnostics, reported apart from violations
    """

    name: str
    fingerprint: str
    classifications: Mapping[str, Classification]
    violations: tuple[Violation, ...] = ()
    cycles: tuple[CycleDiagnostic, ...] = ()

    @property
    def is_clean(self) -> bool:
        """True when there are no violations and no cycles."""
        return not self.violations and not self.cycles

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "fingerprint": self.fingerprint,
            "canonical_version": CANONICAL_VERSION,
            "classifications": {node_id: c.value for node_id, c in sorted(self.classifications.items())},
            "violations": [v.to_dict() for v in order_violations(self.violations)],
            "cycles": [c.to_dict() for c in self.cycles],
        }


class Reporter:
    """Render reports for machines (JSON) and humans (rich tables)."""

    def __init__(self, *, width: int = 100, color: bool = False) -> None:
        self._width = width
        self._color = color

    def build(
        self,
        *,
        name: str,
        fingerprint: str,
        classifications: Mapping[str, Classification],
        violations: Iterable[Violation],
        cycles: Iterable[CycleDiagnostic] = (),
    ) -> Report:
        return Report(
            name=name,
            fingerprint=fingerprint,
            classifications=classifications,
            violations=tuple(order_violations(violations)),
            cycles=tuple(sorted(cycles, key=lambda c: c.members)),
        )

    def render_json(self, reports: Iterable[Report]) -> str:
        """Canonical JSON array of reports."""
        return canonical_json([report.to_dict() for report in reports])

    def render_text(self, reports: Iterable[Report], *, show_classifications: bool = False) -> str:
        buffer = io.StringIO()
        console = Console(file=buffer, width=self._width, force_terminal=self._color, no_color=not self._color)
        for report in reports:
            self._print_report(console, report, show_classifications=show_classifications)
        return buffer.getvalue()

    def _print_report(self, console: Console, report: Report, *, show_classifications: bool) -> None:
        counts = {c: 0 for c in (Classification.KNOWN, Classification.UNKNOWN, Classification.CYCLIC)}
        for classification in report.classifications.values():
            counts[classification] += 1
        console.print(f"[bold]{escape(report.name)}[/] ({report.fingerprint[:12]})")
        console.print(
            f"  {len(report.classifications)} nodes: "
            f"{counts[Classification.KNOWN]} known, "
            f"{counts[Classification.UNKNOWN]} unknown, "
            f"{counts[Classification.CYCLIC]} cyclic"
        )

        if report.violations:
            table = Table(title="Violations", title_justify="left", expand=False)
            table.add_column("Consumer")
            table.add_column("Needs keys")
            table.add_column("Unknown source")
            table.add_column("Chain")
            for violation in report.violations:
                table.add_row(
                    escape(violation.consumer_node_id),
                    "yes" if violation.required_key_set else "no",
                    escape(violation.offending_node_id),
                    escape(" -> ".join(violation.chain)),
                )
            console.print(table)
        else:
            console.print("  No violations.")

        for cycle in report.cycles:
            path = " -> ".join(cycle.path)
            console.print(f"  [red]Cycle:[/] {escape(path)}")

        if show_classifications:
            table = Table(title="Classifications", title_justify="left", expand=False)
            table.add_column("Node")
            table.add_column("Classification")
            for node_id, classification in sorted(report.classifications.items()):
                table.add_row(escape(node_id), classification.value)
            console.print(table)
