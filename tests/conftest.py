# tests/conftest.py
"""Shared test fixtures and helpers.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import logging
import os
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import structlog
import yaml
from hypothesis import Phase, Verbosity, settings

from knownscan.contracts import Classification, NodeKind
from knownscan.core.expressions import Literal, Merge, Reference
from knownscan.core.graph import DependencyGraph

# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def reset_logging() -> Iterator[None]:
    """Undo configure_logging() calls made by a test."""
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers = []


@pytest.fixture
def merge_defect_graph() -> DependencyGraph:
    """useful = merge({}, x) with x unknown, iterated by a keyed consumer."""
    graph = DependencyGraph()
    graph.add_node("x", kind=NodeKind.EXTERNAL_INPUT, declared=Classification.UNKNOWN)
    graph.add_node(
        "useful",
        kind=NodeKind.LOCAL_EXPRESSION,
        expression=Merge((Literal({}), Reference("x"))),
    )
    graph.add_node("each", kind=NodeKind.KEYED_ITERATION_CONSUMER, expression=Reference("useful"))
    return graph


@pytest.fixture
def write_snapshot(tmp_path: Path) -> Callable[..., Path]:
    """Write a snapshot document to a YAML file and return its path."""

    def _write(nodes: dict[str, Any], *, name: str | None = None, filename: str = "snapshot.yaml") -> Path:
        document: dict[str, Any] = {"nodes": nodes}
        if name is not None:
            document["name"] = name
        path = tmp_path / filename
        path.write_text(yaml.safe_dump(document, sort_keys=False))
        return path

    return _write


@pytest.fixture
def merge_defect_nodes() -> dict[str, Any]:
    """Snapshot node entries for the merge-defect graph."""
    return {
        "x": {"kind": "external_input", "declared": "unknown"},
        "useful": {"kind": "local_expression", "expression": {"merge": [{"literal": {}}, {"ref": "x"}]}},
        "each": {"kind": "keyed_iteration_consumer", "expression": {"ref": "useful"}},
    }
