"""Typed configuration dataclasses for :mod:`flowstate.config_loader`."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class LedgerSettings:
    """Location and chaining behaviour of the snapshot ledger.

    Attributes:
        path: NDJSON file holding signed snapshot records.
        include_prev_hash: Link every entry to the hash of its predecessor.
    """

    path: str = "snapshots/ledger.ndjson"
    include_prev_hash: bool = True


@dataclass(slots=True)
class RetentionSettings:
    """Snapshot cleanup policy."""

    older_than_days: int = 30


@dataclass(slots=True)
class LoggingSettings:
    """Logging level and output format."""

    level: str = "INFO"
    structured: bool = True


@dataclass(slots=True)
class FlowstateConfig:
    """Strongly typed configuration container for flowstate."""

    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    retention: RetentionSettings = field(default_factory=RetentionSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
