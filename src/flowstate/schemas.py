"""Pydantic models describing persisted workflow snapshots."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SchemaVersionLiteral = Literal["0.1.0"]
CURRENT_SNAPSHOT_SCHEMA_VERSION: SchemaVersionLiteral = "0.1.0"


class SnapshotRecord(BaseModel):
    """Immutable, versioned record of one stored workflow state."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["workflow_snapshot"] = Field(
        default="workflow_snapshot",
        description="Record namespace within the snapshot ledger.",
    )
    schema_version: SchemaVersionLiteral = Field(
        default=CURRENT_SNAPSHOT_SCHEMA_VERSION,
        description="Semantic version of the snapshot record schema.",
    )

    id: str = Field(
        ...,
        min_length=1,
        description="Unique snapshot identifier.",
    )
    workflow_id: str = Field(
        ...,
        min_length=1,
        description="Identifier of the workflow the state belongs to.",
    )
    state_hash: str = Field(
        ...,
        pattern=r"^[0-9a-f]{64}$",
        description="SHA-256 content fingerprint of the canonical state.",
    )
    state_data: dict[str, Any] = Field(
        ...,
        description="The workflow state exactly as it was handed in.",
    )
    created_at: datetime = Field(
        ...,
        description="Creation timestamp (UTC).",
    )

    @field_validator("created_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        """Interpret naive timestamps as UTC and normalise aware ones to UTC."""

        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def model_dump_json_ready(self) -> dict[str, object]:
        """Return a JSON-serialisable payload."""

        return self.model_dump(mode="json")
