# src/knownscan/core/config.py
"""
Configuration schema and loading for knownscan.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from knownscan.core.expressions import DEFAULT_MAX_EXPRESSION_DEPTH, MAX_EXPRESSION_DEPTH

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class AnalysisSettings(BaseModel):
    """Limits for a single analysis pass."""

    model_config = {"frozen": True}

    max_expression_depth: int = Field(
        default=DEFAULT_MAX_EXPRESSION_DEPTH,
        gt=0,
        le=MAX_EXPRESSION_DEPTH,
        description="Reject expression trees deeper than this instead of recursing",
    )


class ConcurrencySettings(BaseModel):
    """Parallelism across independent snapshots (one pass is single-threaded)."""

    model_config = {"frozen": True}

    max_workers: int = Field(
        default=4,
        gt=0,
        description="Worker threads used when analyzing several snapshots",
    )


class LoggingSettings(BaseModel):
    """Structured logging output."""

    model_config = {"frozen": True}

    level: str = Field(default="WARNING", description="Root log level")
    json_output: bool = Field(default=False, description="Emit JSON log lines instead of console output")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"level must be one of {list(_LOG_LEVELS)}, got '{v}'")
        return level


class ReportSettings(BaseModel):
    """How findings are rendered and how they affect the exit code."""

    model_config = {"frozen": True}

    format: Literal["text", "json"] = Field(default="text", description="Output format")
    show_classifications: bool = Field(
        default=False,
        description="Include the full node classification table in text output",
    )
    fail_on_violation: bool = Field(
        default=True,
        description="Exit non-zero when any violation is reported",
    )
    fail_on_cycle: bool = Field(
        default=False,
        description="Exit non-zero when any dependency cycle is reported",
    )


class KnownscanSettings(BaseModel):
    """Top-level knownscan configuration.

    Every section has defaults, so an empty settings file (or none at all)
    is valid.
    """

    model_config = {"frozen": True}

    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    concurrency: ConcurrencySettings = Field(default_factory=ConcurrencySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    report: ReportSettings = Field(default_factory=ReportSettings)


def load_settings(config_path: Path) -> KnownscanSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (KNOWNSCAN_*) - highest priority
    2. Config file
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: KNOWNSCAN_REPORT__FORMAT for nested keys.

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Explicit check for file existence (Dynaconf silently accepts missing files)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="KNOWNSCAN",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; convert to lowercase for Pydantic
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    return KnownscanSettings(**_lowercase_keys(raw_config))


def _lowercase_keys(config: dict[str, Any]) -> dict[str, Any]:
    """Lowercase nested section keys (Dynaconf uppercases env-provided ones)."""
    return {k.lower(): _lowercase_keys(v) if isinstance(v, dict) else v for k, v in config.items()}
