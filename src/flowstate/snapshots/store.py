"""Snapshot storage interface and the in-memory implementation."""

from __future__ import annotations

import threading
from collections.abc import Collection
from datetime import datetime
from typing import Protocol

from flowstate.schemas import SnapshotRecord

__all__ = ["InMemorySnapshotStore", "SnapshotStore", "SnapshotStoreError"]


class SnapshotStoreError(RuntimeError):
    """Raised when a snapshot store cannot read or write records."""


class SnapshotStore(Protocol):
    """Persistence operations required by :class:`SnapshotService`."""

    def add(self, record: SnapshotRecord) -> SnapshotRecord:
        """Store ``record``; raise :class:`SnapshotStoreError` on id clashes."""

    def add_if_absent(self, record: SnapshotRecord) -> tuple[SnapshotRecord, bool]:
        """Atomically store ``record`` unless its workflow already has its hash.

        Returns the stored or pre-existing record and whether it was new.
        """

    def get(self, snapshot_id: str) -> SnapshotRecord | None:
        """Return the snapshot with ``snapshot_id``."""

    def find_by_hash(
        self, workflow_id: str, state_hash: str
    ) -> SnapshotRecord | None:
        """Return the oldest snapshot of ``workflow_id`` with ``state_hash``."""

    def list_snapshots(self, workflow_id: str | None = None) -> list[SnapshotRecord]:
        """Return snapshots in insertion order, optionally for one workflow."""

    def delete_older_than(
        self, cutoff: datetime, keep_ids: Collection[str] = ()
    ) -> int:
        """Delete snapshots created before ``cutoff`` unless listed in ``keep_ids``."""


class InMemorySnapshotStore:
    """Dictionary-backed store safe for concurrent use within one process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, SnapshotRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def add(self, record: SnapshotRecord) -> SnapshotRecord:
        with self._lock:
            self._insert(record)
        return record

    def add_if_absent(self, record: SnapshotRecord) -> tuple[SnapshotRecord, bool]:
        with self._lock:
            existing = self._find(record.workflow_id, record.state_hash)
            if existing is not None:
                return existing, False
            self._insert(record)
        return record, True

    def get(self, snapshot_id: str) -> SnapshotRecord | None:
        with self._lock:
            return self._records.get(snapshot_id)

    def find_by_hash(
        self, workflow_id: str, state_hash: str
    ) -> SnapshotRecord | None:
        with self._lock:
            return self._find(workflow_id, state_hash)

    def list_snapshots(self, workflow_id: str | None = None) -> list[SnapshotRecord]:
        with self._lock:
            return [
                record
                for record in self._records.values()
                if workflow_id is None or record.workflow_id == workflow_id
            ]

    def delete_older_than(
        self, cutoff: datetime, keep_ids: Collection[str] = ()
    ) -> int:
        with self._lock:
            doomed = [
                snapshot_id
                for snapshot_id, record in self._records.items()
                if record.created_at < cutoff and snapshot_id not in keep_ids
            ]
            for snapshot_id in doomed:
                del self._records[snapshot_id]
        return len(doomed)

    def _insert(self, record: SnapshotRecord) -> None:
        if record.id in self._records:
            raise SnapshotStoreError(f"Snapshot {record.id!r} already exists")
        self._records[record.id] = record

    def _find(self, workflow_id: str, state_hash: str) -> SnapshotRecord | None:
        for record in self._records.values():
            if record.workflow_id == workflow_id and record.state_hash == state_hash:
                return record
        return None
