# src/knownscan/core/logging.py
"""Structured logging for knownscan.

structlog and stdlib records share one ProcessorFormatter, so a warning
from the propagation engine and one from a third-party library render the
same way (console or JSON lines).

Logs go to stderr. Stdout carries only reports, so
`knownscan analyze --format json | jq` keeps working with logging enabled.

Analyses of several snapshots run on worker threads. snapshot_context()
binds the snapshot name through structlog's contextvars, which tags every
line logged during that analysis, including lines from modules that never
see the name.
"""

import logging
import sys
from contextlib import AbstractContextManager
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

# Keys ProcessorFormatter adds to every event dict for its own use
_FORMATTER_KEYS = ("_record", "_from_structlog")


def _drop_formatter_keys(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    for key in _FORMATTER_KEYS:
        del event_dict[key]
    return event_dict


def _renderers(json_output: bool) -> list[Any]:
    if json_output:
        return [
            _drop_formatter_keys,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [
        _drop_formatter_keys,
        structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
    ]


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "WARNING",
) -> None:
    """Route structlog and stdlib logging to stderr.

    Safe to call more than once; each call replaces the root handler.

    Args:
        json_output: Emit one JSON object per line instead of console output
        level: Root log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=[*shared_processors, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Tests reconfigure between cases
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        ProcessorFormatter(
            processors=_renderers(json_output),
            # stdlib records skip the structlog chain, so run it here
            foreign_pre_chain=shared_processors,
        )
    )

    root = logging.getLogger()
    root.handlers = []
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper()))


def snapshot_context(name: str) -> AbstractContextManager[Any]:
    """Tag every log line emitted inside the block with the snapshot name.

    Example:
        with snapshot_context("network"):
            PropagationEngine(graph).run()  # cycle warnings carry snapshot=network
    """
    return structlog.contextvars.bound_contextvars(snapshot=name)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a bound logger for a module."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
