"""Content hashing of workflow states."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Final

from flowstate.canonical import canonicalize
from flowstate.digest import fingerprint
from flowstate.types import WorkflowState

__all__ = ["EMPTY_STATE_HASH", "compute_state_hash", "has_state_changed"]

EMPTY_STATE_HASH: Final[str] = (
    "da737edc8720bf6efb39efd87b1d86b7da9adaee67271821d6fb62a63368cc27"
)
"""Digest of a state with no blocks, edges, loops or parallels."""


def compute_state_hash(state: WorkflowState | Mapping[str, object]) -> str:
    """Return the content fingerprint of a workflow state.

    Two states hash equally when they differ only in block layout fields or in
    the order of blocks, edges, loops, parallels or any nested mapping. Any
    change to block content, the edge set or a loop/parallel parameter yields
    a different digest.

    Args:
        state: Plain workflow state data. It is not mutated.

    Returns:
        A 64-character lowercase hexadecimal SHA-256 digest.

    Raises:
        CanonicalizationError: If the state is not plain structured data.
        SerializationError: If the canonical form cannot be encoded.
    """

    return fingerprint(canonicalize(state))


def has_state_changed(
    state: WorkflowState | Mapping[str, object], previous_hash: str | None
) -> bool:
    """Return whether ``state`` differs from the version hashed as ``previous_hash``.

    A missing previous hash counts as changed. Hashing errors propagate so an
    unversionable state is never reported as unchanged.
    """

    if previous_hash is None:
        return True
    return compute_state_hash(state) != previous_hash
