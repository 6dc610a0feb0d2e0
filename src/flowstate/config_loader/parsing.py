"""Parsing and transformation helpers for :mod:`flowstate.config_loader`."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import replace

from flowstate.config_loader.models import FlowstateConfig
from flowstate.settings import FlowstateSettings

_LOG_LEVELS: frozenset[str] = frozenset(
    {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
)


def apply_environment_overrides(
    config: FlowstateConfig, settings: FlowstateSettings
) -> FlowstateConfig:
    """Apply environment-derived overrides to the configuration.

    Args:
        config: Base configuration instance.
        settings: Environment-derived settings.

    Returns:
        Configuration with environment overrides applied.
    """

    updated = config

    if settings.ledger_path:
        updated = replace(
            updated, ledger=replace(updated.ledger, path=settings.ledger_path)
        )

    if settings.retention_days is not None:
        updated = replace(
            updated,
            retention=replace(
                updated.retention, older_than_days=settings.retention_days
            ),
        )

    level = _coerce_level(settings.log_level)
    if level is not None:
        updated = replace(updated, logging=replace(updated.logging, level=level))

    return updated


def apply_structured_overrides(
    config: FlowstateConfig, data: Mapping[str, object]
) -> FlowstateConfig:
    """Apply overrides sourced from structured configuration data.

    Args:
        config: Base configuration instance.
        data: Mapping parsed from configuration file.

    Returns:
        Configuration updated according to the provided mapping.
    """

    updated = config

    ledger_section = _expect_mapping(data.get("ledger"))
    if ledger_section is not None:
        updated = _apply_ledger_section(updated, ledger_section)

    retention_section = _expect_mapping(data.get("retention"))
    if retention_section is not None:
        updated = _apply_retention_section(updated, retention_section)

    logging_section = _expect_mapping(data.get("logging"))
    if logging_section is not None:
        updated = _apply_logging_section(updated, logging_section)

    return updated


def _apply_ledger_section(
    config: FlowstateConfig, section: Mapping[str, object]
) -> FlowstateConfig:
    """Apply ledger overrides from a structured section.

    Args:
        config: Current configuration instance.
        section: Mapping describing the ledger section from the file.

    Returns:
        Updated configuration instance.
    """

    ledger = config.ledger
    path_value = _coerce_str(section.get("path"))
    if path_value is not None:
        ledger = replace(ledger, path=path_value)
    chain_value = _coerce_bool(section.get("include_prev_hash"))
    if chain_value is not None:
        ledger = replace(ledger, include_prev_hash=chain_value)
    return replace(config, ledger=ledger)


def _apply_retention_section(
    config: FlowstateConfig, section: Mapping[str, object]
) -> FlowstateConfig:
    """Apply retention overrides from a structured section."""

    days = _coerce_int(section.get("older_than_days"))
    if days is None or days < 0:
        return config
    return replace(config, retention=replace(config.retention, older_than_days=days))


def _apply_logging_section(
    config: FlowstateConfig, section: Mapping[str, object]
) -> FlowstateConfig:
    """Apply logging overrides from a structured section."""

    logging_settings = config.logging
    level = _coerce_level(section.get("level"))
    if level is not None:
        logging_settings = replace(logging_settings, level=level)
    structured = _coerce_bool(section.get("structured"))
    if structured is not None:
        logging_settings = replace(logging_settings, structured=structured)
    return replace(config, logging=logging_settings)


def resolve_log_level(name: str) -> int:
    """Translate a level name into the :mod:`logging` constant.

    Unknown names resolve to ``logging.INFO``.
    """

    level = _coerce_level(name)
    if level is None:
        return logging.INFO
    return logging.getLevelNamesMapping()[level]


def _coerce_level(value: object) -> str | None:
    """Parse a logging level name.

    Args:
        value: Raw level value.

    Returns:
        Upper-cased level name when recognised, otherwise ``None``.
    """

    text = _coerce_str(value)
    if text is None:
        return None
    upper = text.upper()
    if upper in _LOG_LEVELS:
        return upper
    return None


def _coerce_int(value: object) -> int | None:
    """Parse an integer from arbitrary input.

    Args:
        value: Raw value.

    Returns:
        Parsed integer when conversion succeeds, otherwise ``None``.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _coerce_bool(value: object) -> bool | None:
    """Parse a boolean from arbitrary input.

    Args:
        value: Raw value.

    Returns:
        Parsed boolean when conversion succeeds, otherwise ``None``.
    """

    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes"}:
            return True
        if lowered in {"false", "0", "no"}:
            return False
    if isinstance(value, (int, float)):
        if value == 0:
            return False
        if value == 1:
            return True
    return None


def _coerce_str(value: object) -> str | None:
    """Parse a string from arbitrary input.

    Args:
        value: Raw value.

    Returns:
        Normalised string when the input is textual, otherwise ``None``.
    """

    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _expect_mapping(value: object) -> Mapping[str, object] | None:
    """Return the value when it is a mapping with string keys.

    Args:
        value: Raw configuration value.

    Returns:
        Mapping with string keys suitable for further parsing, or ``None``.
    """

    if not isinstance(value, Mapping):
        return None
    if not all(isinstance(key, str) for key in value.keys()):
        return None
    return value
