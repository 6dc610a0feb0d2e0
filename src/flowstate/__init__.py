"""flowstate - content fingerprints and snapshot deduplication for workflow graphs."""

from __future__ import annotations

from importlib import import_module
from typing import Any, TYPE_CHECKING

__all__ = [
    "CanonicalizationError",
    "SerializationError",
    "SnapshotRecord",
    "SnapshotService",
    "StateHashError",
    "canonicalize",
    "compute_state_hash",
    "fingerprint",
    "has_state_changed",
]

if TYPE_CHECKING:
    from .canonical import canonicalize
    from .errors import CanonicalizationError, SerializationError, StateHashError
    from .digest import fingerprint
    from .schemas import SnapshotRecord
    from .snapshots.service import SnapshotService
    from .state_hash import compute_state_hash, has_state_changed


def __getattr__(name: str) -> Any:
    """Lazily import submodules so the hashing core stays dependency-free."""

    module_map = {
        "CanonicalizationError": "errors",
        "SerializationError": "errors",
        "StateHashError": "errors",
        "canonicalize": "canonical",
        "fingerprint": "digest",
        "compute_state_hash": "state_hash",
        "has_state_changed": "state_hash",
        "SnapshotRecord": "schemas",
        "SnapshotService": "snapshots.service",
    }

    if name not in module_map:
        raise AttributeError(name)

    module = import_module(f".{module_map[name]}", __name__)
    return getattr(module, name)
