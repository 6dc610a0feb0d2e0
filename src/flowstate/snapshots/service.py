"""Snapshot deduplication on top of workflow-state content hashes."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from flowstate.schemas import SnapshotRecord
from flowstate.snapshots.store import InMemorySnapshotStore, SnapshotStore
from flowstate.state_hash import compute_state_hash
from flowstate.types import WorkflowState

logger = logging.getLogger(__name__)

__all__ = ["SnapshotService"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_snapshot_id() -> str:
    return str(uuid4())


@dataclass(slots=True)
class SnapshotService:
    """Create, look up and prune workflow snapshots keyed by content hash.

    The service never writes a second snapshot for a workflow whose current
    state hashes to an already stored digest; callers get the existing record
    back instead. Hashing errors propagate unchanged so that a state which
    cannot be versioned is never treated as unchanged.

    Attributes:
        store: Backing snapshot store. Defaults to an in-memory store.
        clock: Returns the current UTC time; injectable for tests.
        id_factory: Produces new snapshot identifiers.
    """

    store: SnapshotStore = field(default_factory=InMemorySnapshotStore)
    clock: Callable[[], datetime] = field(default=_utcnow, repr=False)
    id_factory: Callable[[], str] = field(default=_new_snapshot_id, repr=False)

    def compute_state_hash(
        self, state: WorkflowState | Mapping[str, object]
    ) -> str:
        """Return the content fingerprint of ``state``."""

        return compute_state_hash(state)

    def create_snapshot(
        self, workflow_id: str, state: WorkflowState | Mapping[str, object]
    ) -> SnapshotRecord:
        """Store ``state`` unconditionally and return the new record."""

        record = self._build_record(workflow_id, state, compute_state_hash(state))
        self.store.add(record)
        logger.info(
            "Created workflow snapshot",
            extra={
                "workflow_id": workflow_id,
                "snapshot_id": record.id,
                "state_hash": record.state_hash,
            },
        )
        return record

    def create_snapshot_with_deduplication(
        self, workflow_id: str, state: WorkflowState | Mapping[str, object]
    ) -> tuple[SnapshotRecord, bool]:
        """Store ``state`` unless an identical snapshot already exists.

        Args:
            workflow_id: Workflow the state belongs to.
            state: Workflow state to persist. It is never mutated, and it is
                deep-copied only when a new snapshot is written.

        Returns:
            The stored or pre-existing record, and ``True`` when a new
            snapshot was written.

        Raises:
            CanonicalizationError: If the state is not plain structured data.
            SerializationError: If the canonical form cannot be encoded.
            SnapshotStoreError: If the store cannot be read or written.
        """

        state_hash = compute_state_hash(state)
        existing = self.store.find_by_hash(workflow_id, state_hash)
        if existing is not None:
            stored, is_new = existing, False
        else:
            record = self._build_record(workflow_id, state, state_hash)
            stored, is_new = self.store.add_if_absent(record)
        if is_new:
            logger.info(
                "Created workflow snapshot",
                extra={
                    "workflow_id": workflow_id,
                    "snapshot_id": stored.id,
                    "state_hash": stored.state_hash,
                },
            )
        else:
            logger.debug(
                "Reusing existing snapshot for unchanged state",
                extra={
                    "workflow_id": workflow_id,
                    "snapshot_id": stored.id,
                    "state_hash": stored.state_hash,
                },
            )
        return stored, is_new

    def get_snapshot(self, snapshot_id: str) -> SnapshotRecord | None:
        return self.store.get(snapshot_id)

    def get_snapshot_by_hash(
        self, workflow_id: str, state_hash: str
    ) -> SnapshotRecord | None:
        return self.store.find_by_hash(workflow_id, state_hash)

    def latest_snapshot(self, workflow_id: str) -> SnapshotRecord | None:
        """Return the most recently created snapshot of ``workflow_id``."""

        snapshots = self.store.list_snapshots(workflow_id)
        if not snapshots:
            return None
        return max(snapshots, key=lambda record: record.created_at)

    def is_current(
        self, workflow_id: str, state: WorkflowState | Mapping[str, object]
    ) -> bool:
        """Return whether ``state`` matches the latest stored snapshot.

        Deployment checks use this to decide whether a published version is
        still up to date. A workflow without snapshots is never current.
        """

        latest = self.latest_snapshot(workflow_id)
        if latest is None:
            return False
        return latest.state_hash == compute_state_hash(state)

    def cleanup_orphaned_snapshots(
        self, older_than_days: int, referenced_ids: Collection[str] = ()
    ) -> int:
        """Delete snapshots older than ``older_than_days`` days.

        Args:
            older_than_days: Minimum age in days of a snapshot to be removed.
            referenced_ids: Snapshot ids still referenced elsewhere (for
                example by execution logs); these are always kept.

        Returns:
            Number of snapshots deleted.

        Raises:
            ValueError: If ``older_than_days`` is negative.
        """

        if older_than_days < 0:
            raise ValueError("older_than_days must be non-negative")
        cutoff = self.clock() - timedelta(days=older_than_days)
        deleted = self.store.delete_older_than(cutoff, frozenset(referenced_ids))
        logger.info(
            "Cleaned up workflow snapshots",
            extra={"deleted": deleted, "cutoff": cutoff.isoformat()},
        )
        return deleted

    def _build_record(
        self,
        workflow_id: str,
        state: WorkflowState | Mapping[str, object],
        state_hash: str,
    ) -> SnapshotRecord:
        return SnapshotRecord(
            id=self.id_factory(),
            workflow_id=workflow_id,
            state_hash=state_hash,
            state_data=copy.deepcopy(dict(state)),
            created_at=self.clock(),
        )
