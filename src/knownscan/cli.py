# src/knownscan/cli.py
"""knownscan Command Line Interface.

Entry point for the knownscan CLI tool.
"""

from __future__ import annotations

from pathlib import Path

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from knownscan import __version__
from knownscan.core.config import KnownscanSettings, load_settings
from knownscan.core.graph import GraphValidationError
from knownscan.core.logging import configure_logging
from knownscan.core.snapshot import Snapshot, SnapshotFormatError, load_snapshot
from knownscan.engine import Analyzer, ExpressionDepthExceeded, Reporter

__all__ = [
    "app",
]

# Exit codes
EXIT_ERROR = 1
EXIT_FINDINGS = 2

app = typer.Typer(
    name="knownscan",
    help="knownscan: find unknown values that reach key-set consumers at plan time.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"knownscan version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """knownscan: static Known/Unknown analysis of dependency graph snapshots."""


def _format_error(
    title: str,
    message: str,
    hint: str | None = None,
    details: list[str] | None = None,
) -> None:
    """Display a formatted error with optional hint and details."""
    from rich.console import Console
    from rich.panel import Panel
    from rich.text import Text

    console = Console(stderr=True)

    content = Text()
    content.append(message, style="white")

    if details:
        content.append("\n\n")
        for detail in details:
            content.append(f"  • {detail}\n", style="dim")

    if hint:
        content.append("\n")
        content.append("Hint: ", style="yellow bold")
        content.append(hint, style="yellow")

    panel = Panel(
        content,
        title=f"[red bold]❌ {title}[/]",
        border_style="red",
        padding=(0, 1),
    )
    console.print(panel)


def _load_settings_or_exit(settings: Path | None) -> KnownscanSettings:
    if settings is None:
        return KnownscanSettings()
    settings_path = settings.expanduser()
    try:
        return load_settings(settings_path)
    except (YamlParserError, YamlScannerError) as e:
        _format_error(
            title="YAML Syntax Error",
            message=f"Failed to parse {settings_path.name}",
            details=[str(e.problem)] if e.problem else None,
            hint="Check for unclosed brackets, incorrect indentation, or invalid characters.",
        )
        raise typer.Exit(EXIT_ERROR) from None
    except FileNotFoundError:
        _format_error(
            title="File Not Found",
            message=f"Settings file does not exist: {settings}",
            hint="Check the path and ensure the file exists.",
        )
        raise typer.Exit(EXIT_ERROR) from None
    except ValidationError as e:
        details = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            details.append(f"{loc}: {error['msg']}")
        _format_error(
            title="Configuration Validation Failed",
            message=f"Invalid settings in {settings_path.name}",
            details=details,
            hint="Check field names, types, and allowed values.",
        )
        raise typer.Exit(EXIT_ERROR) from None


def _load_snapshot_or_exit(path: Path) -> Snapshot:
    try:
        return load_snapshot(path.expanduser())
    except FileNotFoundError:
        _format_error(
            title="File Not Found",
            message=f"Snapshot file does not exist: {path}",
            hint="Check the path and ensure the file exists.",
        )
        raise typer.Exit(EXIT_ERROR) from None
    except SnapshotFormatError as e:
        _format_error(
            title="Invalid Snapshot",
            message=f"{path.name}: {e}",
            details=e.details or None,
            hint="Each node needs a 'kind'; expressions use one tag per mapping (literal, ref, merge, ...).",
        )
        raise typer.Exit(EXIT_ERROR) from None


@app.command()
def analyze(
    snapshots: list[Path] = typer.Argument(
        ...,
        help="Snapshot files (YAML or JSON) to analyze.",
    ),
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    output_format: str | None = typer.Option(
        None,
        "--format",
        "-f",
        help="Output format: text or json (overrides settings).",
    ),
    show_classifications: bool = typer.Option(
        False,
        "--show-classifications",
        help="Include every node's classification in text output.",
    ),
    fail_on_violation: bool | None = typer.Option(
        None,
        "--fail-on-violation/--no-fail-on-violation",
        help="Exit with status 2 when violations are found (overrides settings).",
    ),
) -> None:
    """Classify every node and report unknown collections reaching consumers."""
    config = _load_settings_or_exit(settings)
    configure_logging(json_output=config.logging.json_output, level=config.logging.level)

    fmt = output_format or config.report.format
    if fmt not in ("text", "json"):
        _format_error(title="Invalid Option", message=f"Unknown output format '{fmt}'", hint="Use 'text' or 'json'.")
        raise typer.Exit(EXIT_ERROR)

    loaded = [_load_snapshot_or_exit(path) for path in snapshots]
    reporter = Reporter()
    analyzer = Analyzer(config.analysis, reporter=reporter)
    outcomes = analyzer.analyze_many(loaded, max_workers=config.concurrency.max_workers)

    failed = [outcome for outcome in outcomes if not outcome.ok]
    for outcome in failed:
        _format_error(
            title="Malformed Graph",
            message=f"{outcome.name}: {outcome.error}",
            hint="Declare every referenced node and keep expressions within the depth limit.",
        )

    reports = [outcome.report for outcome in outcomes if outcome.report is not None]
    if fmt == "json":
        typer.echo(reporter.render_json(reports))
    else:
        typer.echo(
            reporter.render_text(reports, show_classifications=show_classifications or config.report.show_classifications),
            nl=False,
        )

    if failed:
        raise typer.Exit(EXIT_ERROR)
    should_fail = config.report.fail_on_violation if fail_on_violation is None else fail_on_violation
    if should_fail and any(report.violations for report in reports):
        raise typer.Exit(EXIT_FINDINGS)
    if config.report.fail_on_cycle and any(report.cycles for report in reports):
        raise typer.Exit(EXIT_FINDINGS)


@app.command()
def validate(
    snapshot: Path = typer.Argument(..., help="Snapshot file to validate."),
) -> None:
    """Check a snapshot's structure without classifying it."""
    loaded = _load_snapshot_or_exit(snapshot)
    graph = loaded.graph
    try:
        graph.validate()
    except GraphValidationError as e:
        _format_error(
            title="Graph Error",
            message=str(e),
            hint="Declare the missing node or fix the reference.",
        )
        raise typer.Exit(EXIT_ERROR) from None

    typer.echo("✅ Snapshot valid!")
    typer.echo(f"  Name: {loaded.name}")
    typer.echo(f"  Graph: {graph.node_count} nodes, {graph.edge_count} edges")
    cycles = graph.find_cycles()
    if cycles:
        typer.echo(f"  ⚠ {len(cycles)} dependency cycle(s):")
        for cycle in cycles:
            typer.echo(f"    {' -> '.join(cycle.path)}")


@app.command()
def explain(
    snapshot: Path = typer.Argument(..., help="Snapshot file containing the node."),
    node_id: str = typer.Argument(..., help="Node to explain."),
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
) -> None:
    """Show a node's classification and the chain to its unknown source."""
    config = _load_settings_or_exit(settings)
    configure_logging(json_output=config.logging.json_output, level=config.logging.level)
    loaded = _load_snapshot_or_exit(snapshot)

    if not loaded.graph.has_node(node_id):
        _format_error(
            title="Unknown Node",
            message=f"Node '{node_id}' is not in {snapshot.name}",
            hint="Run 'knownscan analyze --show-classifications' to list node ids.",
        )
        raise typer.Exit(EXIT_ERROR)

    try:
        explanation = Analyzer(config.analysis).explain(loaded.graph, node_id)
    except (GraphValidationError, ExpressionDepthExceeded) as e:
        _format_error(title="Malformed Graph", message=str(e))
        raise typer.Exit(EXIT_ERROR) from None

    typer.echo(f"{explanation.node_id} ({explanation.kind}): {explanation.classification.value}")
    if explanation.expression is not None:
        typer.echo(f"  Expression: {explanation.expression}")
    if explanation.dependencies:
        typer.echo(f"  Depends on: {', '.join(explanation.dependencies)}")
    if len(explanation.chain) > 1:
        typer.echo(f"  Unknown because of: {' -> '.join(explanation.chain)}")
