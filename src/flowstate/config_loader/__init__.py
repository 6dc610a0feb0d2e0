"""Public entry points for the :mod:`flowstate` configuration loader."""

from __future__ import annotations

from flowstate.config_loader.models import (
    FlowstateConfig,
    LedgerSettings,
    LoggingSettings,
    RetentionSettings,
)
from flowstate.config_loader.parsing import (
    apply_environment_overrides,
    apply_structured_overrides,
    resolve_log_level,
)
from flowstate.config_loader.sources import load_structured_config
from flowstate.settings import FlowstateSettings, get_settings

__all__ = [
    "FlowstateConfig",
    "LedgerSettings",
    "LoggingSettings",
    "RetentionSettings",
    "load_config",
    "resolve_log_level",
]


def load_config(
    path: str | None = None, *, settings: FlowstateSettings | None = None
) -> FlowstateConfig:
    """Load configuration from environment and optional file sources.

    File values take precedence over environment values, which take
    precedence over the dataclass defaults.

    Args:
        path: Optional explicit path to a configuration file. When omitted the
            loader inspects ``FLOWSTATE_CONFIG_PATH`` and the default search
            locations.
        settings: Optional pre-instantiated environment settings. When omitted
            :func:`flowstate.settings.get_settings` is used.

    Returns:
        Fully populated :class:`FlowstateConfig` instance.
    """

    env_settings = settings or get_settings()
    base = apply_environment_overrides(FlowstateConfig(), env_settings)
    structured = load_structured_config(path, env_settings)
    if structured is None:
        return base
    return apply_structured_overrides(base, structured)
