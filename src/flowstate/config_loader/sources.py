"""Locate and parse configuration files for :mod:`flowstate.config_loader`."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path

import yaml

from flowstate.settings import FlowstateSettings

logger = logging.getLogger(__name__)

_SEARCH_PATHS: tuple[Path, ...] = (
    Path("config/flowstate.yml"),
    Path("config/flowstate.yaml"),
    Path("config/flowstate.json"),
)

_Parser = Callable[[str], object]

# suffix -> (format label used in warnings, parser, parse errors)
_PARSERS: dict[str, tuple[str, _Parser, type[Exception]]] = {
    ".json": ("JSON", json.loads, json.JSONDecodeError),
    ".yml": ("YAML", yaml.safe_load, yaml.YAMLError),
    ".yaml": ("YAML", yaml.safe_load, yaml.YAMLError),
}


def load_structured_config(
    path: str | None, settings: FlowstateSettings
) -> dict[str, object] | None:
    """Return the first configuration mapping found, or ``None``.

    Only one location is consulted when ``path`` or ``FLOWSTATE_CONFIG_PATH``
    is set; otherwise the ``config/flowstate.{yml,yaml,json}`` files relative
    to the working directory are tried in order.
    """

    explicit = path if path is not None else settings.config_path
    candidates = (Path(explicit),) if explicit else _SEARCH_PATHS
    for candidate in candidates:
        data = _read_mapping(candidate)
        if data is not None:
            return data
    return None


def _read_mapping(path: Path) -> dict[str, object] | None:
    """Parse ``path`` into a string-keyed mapping.

    Missing or unreadable files, unknown suffixes, parse errors and documents
    whose top level is not a mapping all yield ``None``.
    """

    if not path.is_file():
        return None
    parser = _PARSERS.get(path.suffix.lower())
    if parser is None:
        logger.warning("Ignoring configuration file with unknown suffix: %s", path)
        return None
    label, parse, parse_error = parser

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Cannot read configuration file %s: %s", path, exc)
        return None
    try:
        document = parse(text)
    except parse_error as exc:
        logger.warning("Invalid %s configuration in %s: %s", label, path, exc)
        return None

    if not isinstance(document, dict):
        return None
    return {key: value for key, value in document.items() if isinstance(key, str)}
