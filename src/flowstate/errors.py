"""Exception hierarchy for workflow-state hashing."""

from __future__ import annotations

__all__ = ["CanonicalizationError", "SerializationError", "StateHashError"]


class StateHashError(Exception):
    """Base class for failures while versioning a workflow state.

    Attributes:
        path: Dotted location of the offending value inside the input, or
            ``None`` when the failure is not tied to a single value.
    """

    def __init__(self, message: str, *, path: str | None = None) -> None:
        self.path = path
        if path:
            message = f"{message} (at {path})"
        super().__init__(message)


class CanonicalizationError(StateHashError):
    """Raised when a state contains a value that is not plain structured data."""


class SerializationError(StateHashError):
    """Raised when a canonical value cannot be written deterministically."""
