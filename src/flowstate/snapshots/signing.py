"""
Ed25519 envelopes for snapshot ledger lines.

A signed entry is the ledger payload plus three envelope fields
(``SIGNATURE_FIELDS``). The signature covers :func:`canonical_json` of the
payload alone, and :func:`payload_hash` of the same payload is what the next
entry stores as ``prev_hash``.
"""

from __future__ import annotations

import hashlib
import json
import os

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

SIGNATURE_ALGORITHM = "ed25519"
SIGNATURE_FIELDS = ("signature", "signing_key", "signature_algorithm")

_SEED_BYTES = 32


def canonical_json(obj: object) -> str:
    """Sorted-key, compact JSON text of a ledger payload.

    NaN and infinities are rejected with :class:`ValueError`.
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def payload_hash(obj: object) -> str:
    """SHA-256 hex digest of :func:`canonical_json`."""
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()


def _public_key(public_key_hex: object) -> Ed25519PublicKey | None:
    """Decode a hex public key (optional ``0x`` prefix), or ``None`` if malformed."""
    if not isinstance(public_key_hex, str):
        return None
    text = public_key_hex.removeprefix("0x").removeprefix("0X")
    try:
        return Ed25519PublicKey.from_public_bytes(bytes.fromhex(text))
    except ValueError:
        return None


def verify_json(
    signed: dict[str, object], public_key_hex: str | None
) -> tuple[bool, dict[str, object] | None]:
    """
    Check the envelope of a signed ledger entry.

    Returns ``(True, payload)`` with the envelope fields removed when the
    signature verifies against ``public_key_hex``; ``(False, None)`` for any
    malformed entry, key or signature.
    """
    if not isinstance(signed, dict):
        return False, None
    signature = signed.get("signature")
    public_key = _public_key(public_key_hex)
    if not isinstance(signature, str) or public_key is None:
        return False, None

    payload = {k: v for k, v in signed.items() if k not in SIGNATURE_FIELDS}
    try:
        public_key.verify(
            bytes.fromhex(signature), canonical_json(payload).encode("utf-8")
        )
    except (InvalidSignature, TypeError, ValueError):
        return False, None
    return True, payload


class Signer:
    """
    Ed25519 signer for ledger payloads.

    Args:
    ----
        private_key: 32-byte Ed25519 seed, usually from
            ``FLOWSTATE_SIGNING_KEY``.
        ephemeral: Generate a throwaway seed when ``private_key`` is ``None``.
            Signatures made this way cannot be verified after the process
            exits, so this is for tests and dry runs only.

    Attributes:
    ----------
        algorithm: ``"ed25519"``.
        signing_key: Hex encoding of the public key that verifies entries.

    """

    def __init__(
        self, private_key: bytes | None = None, ephemeral: bool = False
    ) -> None:
        if private_key is None:
            if not ephemeral:
                raise ValueError(
                    "A signing seed is required for the snapshot ledger. "
                    "Set FLOWSTATE_SIGNING_KEY, or pass ephemeral=True for testing."
                )
            private_key = os.urandom(_SEED_BYTES)
        if len(private_key) != _SEED_BYTES:
            raise ValueError(
                f"Ed25519 seed must be exactly {_SEED_BYTES} bytes, "
                f"got {len(private_key)}"
            )

        self.algorithm = SIGNATURE_ALGORITHM
        self._key = Ed25519PrivateKey.from_private_bytes(bytes(private_key))
        self.signing_key = (
            self._key.public_key()
            .public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            )
            .hex()
        )

    def sign(self, payload: dict[str, object]) -> dict[str, object]:
        """Return ``payload`` with the signature envelope added."""
        signature = self._key.sign(canonical_json(payload).encode("utf-8"))
        return {
            **payload,
            "signature": signature.hex(),
            "signing_key": self.signing_key,
            "signature_algorithm": self.algorithm,
        }
