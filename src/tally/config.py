"""Configuration parsing from ``.tally.yml``."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from tally.normalizers.base import Framework

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".tally.yml"

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            result[key] = _resolve_env_vars(value)
        elif isinstance(value, dict):
            result[key] = _resolve_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _resolve_env_vars(item) if isinstance(item, str) else item for item in value
            ]
        else:
            result[key] = value
    return result


@dataclass
class ReconcileConfig:
    """Reconciliation behaviour."""

    framework: str = Framework.JEST.value
    """Default framework whose output is being reconciled."""

    extra_failure_indicators: list[str] = field(default_factory=list)
    """Tokens added to the fallback parser's failure indicators."""

    extra_pass_indicators: list[str] = field(default_factory=list)
    """Tokens added to the fallback parser's pass indicators."""

    preview_chars: int = 500
    """Characters of runner output included in the fallback warning."""


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "WARNING"
    """Root log level for the CLI."""


@dataclass
class TallyConfig:
    """Complete tally configuration from ``.tally.yml``."""

    root: str
    """Project root directory."""

    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    """Reconciliation configuration."""

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    """Logging configuration."""

    raw: dict[str, Any] = field(default_factory=dict)
    """Raw parsed YAML, for keys tally does not model."""


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw.get(name, {})
    return section if isinstance(section, dict) else {}


def _string_list(value: object) -> list[str]:
    """Return the non-blank strings in *value*."""
    if not isinstance(value, list):
        return []
    tokens = [str(item) for item in value if item is not None]
    kept = [token for token in tokens if token.strip()]
    if len(kept) != len(tokens):
        logger.warning("Ignoring %d blank indicator(s) in config", len(tokens) - len(kept))
    return kept


def _parse_reconcile_config(raw: dict[str, Any]) -> ReconcileConfig:
    """Parse the reconcile section from raw YAML."""
    reconcile_raw = _section(raw, "reconcile")

    try:
        preview_chars = int(reconcile_raw.get("preview_chars", 500))
    except (TypeError, ValueError):
        logger.warning("Ignoring non-integer reconcile.preview_chars")
        preview_chars = 500

    return ReconcileConfig(
        framework=str(
            reconcile_raw.get("framework", os.environ.get("TALLY_FRAMEWORK", Framework.JEST.value))
        ),
        extra_failure_indicators=_string_list(reconcile_raw.get("extra_failure_indicators")),
        extra_pass_indicators=_string_list(reconcile_raw.get("extra_pass_indicators")),
        preview_chars=preview_chars,
    )


def _parse_logging_config(raw: dict[str, Any]) -> LoggingConfig:
    """Parse the logging section from raw YAML."""
    logging_raw = _section(raw, "logging")
    level = logging_raw.get("level", os.environ.get("TALLY_LOG_LEVEL", "WARNING"))
    return LoggingConfig(level=str(level).upper())


def load_config(root: str | Path) -> TallyConfig:
    """Load and parse the ``.tally.yml`` configuration.

    Falls back to defaults and environment variables when the YAML file is
    missing or incomplete.
    """
    root_path = Path(root).resolve()
    config_file = root_path / CONFIG_FILE_NAME

    raw: dict[str, Any] = {}
    if config_file.is_file():
        parsed = yaml.safe_load(config_file.read_text(encoding="utf-8"))
        if isinstance(parsed, dict):
            raw = _resolve_dict(parsed)

    return TallyConfig(
        root=str(root_path),
        reconcile=_parse_reconcile_config(raw),
        logging=_parse_logging_config(raw),
        raw=raw,
    )


def _validate_reconcile_config(reconcile: ReconcileConfig) -> list[str]:
    """Validate reconcile settings."""
    errors: list[str] = []

    try:
        Framework.from_name(reconcile.framework)
    except ValueError as exc:
        errors.append(f"reconcile.framework: {exc}")

    if reconcile.preview_chars < 0:
        errors.append(
            f"reconcile.preview_chars must be non-negative (got: {reconcile.preview_chars})"
        )

    for key in ("extra_failure_indicators", "extra_pass_indicators"):
        if any(not token for token in getattr(reconcile, key)):
            errors.append(f"reconcile.{key} must not contain empty strings")

    return errors


def _validate_logging_config(logging_config: LoggingConfig) -> list[str]:
    if logging_config.level not in _LOG_LEVELS:
        return [
            f"logging.level must be one of: {', '.join(_LOG_LEVELS)} (got: {logging_config.level})"
        ]
    return []


def validate_config(config: TallyConfig) -> list[str]:
    """Validate the configuration and return a list of error messages.

    Returns an empty list if the configuration is valid.
    """
    errors: list[str] = []
    errors.extend(_validate_reconcile_config(config.reconcile))
    errors.extend(_validate_logging_config(config.logging))
    return errors
