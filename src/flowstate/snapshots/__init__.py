"""
Snapshot persistence built on workflow-state content hashes.

The service deduplicates writes by digest; stores are pluggable through the
:class:`SnapshotStore` protocol.
"""

from .ledger import LedgerSnapshotStore, validate_ledger
from .service import SnapshotService
from .signing import Signer
from .store import InMemorySnapshotStore, SnapshotStore, SnapshotStoreError

__all__ = [
    "InMemorySnapshotStore",
    "LedgerSnapshotStore",
    "Signer",
    "SnapshotService",
    "SnapshotStore",
    "SnapshotStoreError",
    "validate_ledger",
]
