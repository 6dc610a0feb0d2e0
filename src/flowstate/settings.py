"""Environment-backed settings primitives for :mod:`flowstate`."""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["FlowstateSettings", "get_settings"]


class FlowstateSettings(BaseSettings):
    """Expose environment-derived configuration knobs for flowstate.

    All environment lookups go through this class. Every attribute maps to a
    documented environment variable and defaults to ``None`` when the variable
    is not present.

    Attributes:
        config_path: Explicit path to a YAML or JSON configuration file.
        ledger_path: Path of the NDJSON snapshot ledger.
        retention_days: Age in days after which unreferenced snapshots may be
            removed by cleanup.
        log_level: Logging level name such as ``"INFO"`` or ``"DEBUG"``.
        signing_key: Hex-encoded 32-byte Ed25519 seed used to sign ledger
            entries.
    """

    config_path: str | None = Field(default=None, alias="FLOWSTATE_CONFIG_PATH")
    ledger_path: str | None = Field(default=None, alias="FLOWSTATE_LEDGER_PATH")
    retention_days: int | None = Field(default=None, alias="FLOWSTATE_RETENTION_DAYS")
    log_level: str | None = Field(default=None, alias="FLOWSTATE_LOG_LEVEL")
    signing_key: str | None = Field(
        default=None, alias="FLOWSTATE_SIGNING_KEY", repr=False
    )

    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    @field_validator("retention_days", mode="before")
    @classmethod
    def _parse_optional_int(cls, value: object) -> int | None:
        """Parse optional integer fields while tolerating malformed input.

        Args:
            value: Raw environment value.

        Returns:
            Parsed non-negative integer when conversion succeeds, otherwise
            ``None``.
        """

        parsed: int | None = None
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            parsed = value
        elif isinstance(value, float) and value.is_integer():
            parsed = int(value)
        elif isinstance(value, str):
            try:
                parsed = int(value.strip())
            except ValueError:
                return None
        if parsed is None or parsed < 0:
            return None
        return parsed

    @field_validator("log_level", "ledger_path", "config_path", mode="before")
    @classmethod
    def _blank_as_none(cls, value: object) -> str | None:
        """Treat empty strings as unset."""

        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @property
    def signing_key_bytes(self) -> bytes | None:
        """Return the decoded signing seed.

        Returns:
            The 32 raw seed bytes, or ``None`` when no key is configured.

        Raises:
            ValueError: If the configured key is not 64 hexadecimal characters.
        """

        if not self.signing_key:
            return None
        key = self.signing_key.strip()
        if key.startswith(("0x", "0X")):
            key = key[2:]
        if len(key) != 64:
            raise ValueError("FLOWSTATE_SIGNING_KEY must be 64 hex characters")
        return bytes.fromhex(key)


def get_settings() -> FlowstateSettings:
    """Return a :class:`FlowstateSettings` instance.

    Returns:
        Settings parsed from environment variables.
    """

    return FlowstateSettings()
