"""Deterministic encoding and SHA-256 fingerprinting of canonical values."""

from __future__ import annotations

import hashlib
import json
import math
import re
from collections.abc import Mapping
from typing import Final

from flowstate.errors import SerializationError

__all__ = [
    "DIGEST_ALGORITHM",
    "DIGEST_HEX_LENGTH",
    "encode_canonical",
    "fingerprint",
    "is_digest",
]

DIGEST_ALGORITHM: Final[str] = "sha256"
DIGEST_HEX_LENGTH: Final[int] = 64

_DIGEST_PATTERN: Final[re.Pattern[str]] = re.compile(r"[0-9a-f]{64}")


def encode_canonical(value: object) -> str:
    """
    Return the compact JSON text for a canonical value.

    Mapping entries are written in their existing order, so the caller decides
    ordering (see :mod:`flowstate.canonical`). Output has no insignificant
    whitespace, keeps non-ASCII characters as-is and writes floats with
    Python's shortest round-trip representation, which does not depend on
    platform or locale.
    """
    parts: list[str] = []
    try:
        _encode(value, parts, "")
    except RecursionError as exc:
        raise SerializationError(
            "value nests too deeply or contains a circular reference"
        ) from exc
    return "".join(parts)


def _encode(value: object, out: list[str], path: str) -> None:
    if value is None:
        out.append("null")
    elif isinstance(value, bool):
        out.append("true" if value else "false")
    elif isinstance(value, str):
        out.append(json.dumps(value, ensure_ascii=False))
    elif isinstance(value, int):
        out.append(int.__repr__(value))
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise SerializationError(
                f"non-finite number {value!r} has no JSON form", path=path or None
            )
        out.append(float.__repr__(value))
    elif isinstance(value, Mapping):
        out.append("{")
        for position, (key, item) in enumerate(value.items()):
            if not isinstance(key, str):
                raise SerializationError(
                    f"mapping keys must be strings, got {type(key).__name__}",
                    path=path or None,
                )
            if position:
                out.append(",")
            out.append(json.dumps(key, ensure_ascii=False))
            out.append(":")
            _encode(item, out, f"{path}.{key}" if path else key)
        out.append("}")
    elif isinstance(value, (list, tuple)):
        out.append("[")
        for position, item in enumerate(value):
            if position:
                out.append(",")
            _encode(item, out, f"{path}[{position}]")
        out.append("]")
    else:
        raise SerializationError(
            f"cannot encode value of type {type(value).__name__}", path=path or None
        )


def fingerprint(canonical: object) -> str:
    """Return the SHA-256 hex digest over the canonical encoding."""
    text = encode_canonical(canonical)
    try:
        data = text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise SerializationError("string is not valid Unicode text") from exc
    return hashlib.sha256(data).hexdigest()


def is_digest(value: object) -> bool:
    """Return ``True`` when ``value`` looks like a digest from :func:`fingerprint`."""
    return isinstance(value, str) and _DIGEST_PATTERN.fullmatch(value) is not None
