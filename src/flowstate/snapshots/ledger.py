"""
Append-only snapshot ledger (NDJSON) with signing and hash-chained integrity.

Each line is an Ed25519-signed JSON object holding one snapshot record,
augmented with an optional prev_hash field. prev_hash equals SHA-256 of the
canonical JSON of the previous unsigned payload. Chain verification requires
signature validity and prev_hash continuity.

Every write holds an exclusive ``portalocker`` lock on a sidecar ``.lock``
file, writes the complete new ledger to a temporary file in the same
directory and swaps it into place with ``os.replace``. Cleanup rewrites the
surviving entries and re-signs the chain from the first entry.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Collection, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO

import portalocker
from pydantic import ValidationError

from flowstate.schemas import SnapshotRecord
from flowstate.snapshots.signing import Signer, payload_hash, verify_json
from flowstate.snapshots.store import SnapshotStoreError

logger = logging.getLogger(__name__)

__all__ = ["LedgerSnapshotStore", "validate_ledger"]


@dataclass(slots=True)
class _LedgerEntry:
    """One verified ledger line."""

    line: bytes
    original: dict[str, object]
    record: SnapshotRecord


@contextmanager
def _acquire_ledger_lock(ledger_path: Path) -> Iterator[IO[bytes]]:
    """Acquire a cross-process file lock for ledger rewrites."""
    lock_path = ledger_path.with_suffix(ledger_path.suffix + ".lock")
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a+b") as lock_fp:
        portalocker.lock(lock_fp, portalocker.LOCK_EX)
        try:
            yield lock_fp
        finally:
            portalocker.unlock(lock_fp)


def _fsync_directory(path: Path) -> None:
    """Durably flush directory metadata when supported by the platform."""
    if os.name == "nt":  # pragma: no cover - Windows does not need dir fsync
        return
    flags = getattr(os, "O_DIRECTORY", None)
    if flags is None:  # pragma: no cover - platform without O_DIRECTORY
        return
    fd = os.open(str(path), flags)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _read_lines(ledger_path: Path) -> list[bytes]:
    """Return the non-empty lines of the ledger, or nothing if it is absent."""
    if not ledger_path.exists():
        return []
    with ledger_path.open("rb") as src:
        return [line.strip() for line in src if line.strip()]


def _write_atomically(ledger_path: Path, lines: Iterable[bytes]) -> None:
    """Replace the ledger with ``lines`` through a fsynced temporary file."""
    ledger_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w+b", dir=str(ledger_path.parent), delete=False
        ) as tmp:
            temp_path = Path(tmp.name)
            for line in lines:
                tmp.write(line + b"\n")
            tmp.flush()
            try:
                os.fsync(tmp.fileno())
            except OSError as exc:
                logger.warning(
                    "Failed to fsync ledger temp file",
                    extra={"error": str(exc)},
                )
        os.replace(temp_path, ledger_path)
    except Exception:
        if temp_path is not None and temp_path.exists():
            temp_path.unlink(missing_ok=True)
        raise

    try:
        _fsync_directory(ledger_path.parent)
    except OSError as exc:
        logger.warning(
            "Failed to fsync ledger directory",
            extra={"error": str(exc)},
        )


class LedgerSnapshotStore:
    """Snapshot store persisted as a signed, hash-chained NDJSON ledger.

    Args:
        ledger_path: Location of the NDJSON ledger. Parent directories are
            created on first write.
        signer: Ed25519 signer for new entries. Existing entries must verify
            against the same key.
        include_prev_hash: Link each entry to its predecessor.
    """

    def __init__(
        self,
        ledger_path: str | Path,
        signer: Signer,
        *,
        include_prev_hash: bool = True,
    ) -> None:
        self.ledger_path = Path(ledger_path)
        self.signer = signer
        self.include_prev_hash = include_prev_hash
        self._lock = threading.Lock()

    @property
    def public_key_hex(self) -> str:
        """Hex public key that verifies this ledger's entries."""
        return self.signer.signing_key

    def add(self, record: SnapshotRecord) -> SnapshotRecord:
        with self._exclusive():
            entries = self._load()
            if any(entry.record.id == record.id for entry in entries):
                raise SnapshotStoreError(f"Snapshot {record.id!r} already exists")
            self._append(entries, record)
        return record

    def add_if_absent(self, record: SnapshotRecord) -> tuple[SnapshotRecord, bool]:
        with self._exclusive():
            entries = self._load()
            for entry in entries:
                existing = entry.record
                if (
                    existing.workflow_id == record.workflow_id
                    and existing.state_hash == record.state_hash
                ):
                    return existing, False
            if any(entry.record.id == record.id for entry in entries):
                raise SnapshotStoreError(f"Snapshot {record.id!r} already exists")
            self._append(entries, record)
        return record, True

    def get(self, snapshot_id: str) -> SnapshotRecord | None:
        for record in self.list_snapshots():
            if record.id == snapshot_id:
                return record
        return None

    def find_by_hash(
        self, workflow_id: str, state_hash: str
    ) -> SnapshotRecord | None:
        for record in self.list_snapshots(workflow_id):
            if record.state_hash == state_hash:
                return record
        return None

    def list_snapshots(self, workflow_id: str | None = None) -> list[SnapshotRecord]:
        with self._exclusive():
            entries = self._load()
        return [
            entry.record
            for entry in entries
            if workflow_id is None or entry.record.workflow_id == workflow_id
        ]

    def delete_older_than(
        self, cutoff: datetime, keep_ids: Collection[str] = ()
    ) -> int:
        with self._exclusive():
            entries = self._load()
            survivors = [
                entry.record
                for entry in entries
                if entry.record.created_at >= cutoff or entry.record.id in keep_ids
            ]
            removed = len(entries) - len(survivors)
            if removed:
                lines: list[bytes] = []
                prev_hash: str | None = None
                for record in survivors:
                    line, prev_hash = self._sign(record, prev_hash)
                    lines.append(line)
                _write_atomically(self.ledger_path, lines)
        return removed

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Serialise access across threads and processes."""
        with self._lock, _acquire_ledger_lock(self.ledger_path):
            yield

    def _load(self) -> list[_LedgerEntry]:
        """Parse and verify every ledger line."""
        entries: list[_LedgerEntry] = []
        for idx, line in enumerate(_read_lines(self.ledger_path), start=1):
            try:
                signed = json.loads(line.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                raise SnapshotStoreError(
                    f"Ledger line {idx} is not valid JSON"
                ) from exc

            ok, original = verify_json(signed, self.public_key_hex)
            if not ok or original is None:
                raise SnapshotStoreError(
                    f"Ledger line {idx} failed signature verification"
                )

            fields = {k: v for k, v in original.items() if k != "prev_hash"}
            try:
                record = SnapshotRecord.model_validate(fields)
            except ValidationError as exc:
                raise SnapshotStoreError(
                    f"Ledger line {idx} is not a valid snapshot record"
                ) from exc
            entries.append(_LedgerEntry(line=line, original=original, record=record))
        return entries

    def _sign(
        self, record: SnapshotRecord, prev_hash: str | None
    ) -> tuple[bytes, str]:
        """Return the signed line for ``record`` and the hash to chain onto it."""
        payload: dict[str, object] = record.model_dump_json_ready()
        if self.include_prev_hash and prev_hash is not None:
            payload["prev_hash"] = prev_hash
        signed = self.signer.sign(payload)
        line = json.dumps(signed, ensure_ascii=False).encode("utf-8")
        return line, payload_hash(payload)

    def _append(self, entries: list[_LedgerEntry], record: SnapshotRecord) -> None:
        prev_hash = payload_hash(entries[-1].original) if entries else None
        line, _ = self._sign(record, prev_hash)
        _write_atomically(
            self.ledger_path, [*(entry.line for entry in entries), line]
        )
        logger.debug(
            "Appended snapshot to ledger",
            extra={"snapshot_id": record.id, "ledger_path": str(self.ledger_path)},
        )


def validate_ledger(
    ledger_path: str | Path,
    public_key_hex: str,
    *,
    include_prev_hash: bool = True,
) -> tuple[bool, int]:
    """
    Validate an NDJSON snapshot ledger.

    Returns ``(ok, first_bad_line_number)``. If ``ok`` is ``False`` and the ledger
    exists, ``first_bad_line_number`` is the 1-based line index where validation
    failed. A value of ``-1`` indicates that the ledger file does not exist.

    With ``include_prev_hash`` (the default) every entry after the first must
    carry the payload hash of its predecessor. Ledgers written with chaining
    turned off pass that argument as ``False``; entries that still carry a
    ``prev_hash`` are then checked, the others are not.
    """
    path = Path(ledger_path)
    if not path.exists():
        return False, -1

    prev_hash: str | None = None
    with path.open("r", encoding="utf-8") as f:
        for idx, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                signed = json.loads(line)
            except json.JSONDecodeError:
                return False, idx

            ok, original = verify_json(signed, public_key_hex)
            if not ok or original is None:
                return False, idx

            # Chain check
            current_hash = payload_hash(original)
            chained = include_prev_hash or "prev_hash" in original
            if (
                chained
                and prev_hash is not None
                and original.get("prev_hash") != prev_hash
            ):
                return False, idx
            prev_hash = current_hash

    return True, -1
