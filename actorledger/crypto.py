"""
actorledger.crypto — signature capability consumed by the replay guard.

The engine does not implement signature algorithms. It needs one capability:
"does `signature` verify against `public_key` over `payload`?". The default
implementation is Ed25519 via `cryptography`; anything with the same
`verify(public_key, payload, signature) -> bool` shape can be injected.

`Signer` is a small client-side convenience for building signed external
messages in tools and tests.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)


@runtime_checkable
class SignatureVerifier(Protocol):
    def verify(self, public_key: bytes, payload: bytes, signature: bytes) -> bool:
        ...


class Ed25519Verifier:
    """Ed25519 verification over raw 32-byte public keys."""

    def verify(self, public_key: bytes, payload: bytes, signature: bytes) -> bool:
        try:
            pk = Ed25519PublicKey.from_public_bytes(bytes(public_key))
        except ValueError:
            return False
        try:
            pk.verify(bytes(signature), bytes(payload))
        except InvalidSignature:
            return False
        return True


class Signer:
    """Holds an Ed25519 private key and signs payloads."""

    def __init__(self, private_key: Optional[Ed25519PrivateKey] = None) -> None:
        self._sk = private_key or Ed25519PrivateKey.generate()

    @classmethod
    def from_seed(cls, seed: bytes) -> "Signer":
        if len(seed) != 32:
            raise ValueError("Ed25519 seed must be 32 bytes")
        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    @property
    def public_key(self) -> bytes:
        return self._sk.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    def sign(self, payload: bytes) -> bytes:
        return self._sk.sign(bytes(payload))


__all__ = ["SignatureVerifier", "Ed25519Verifier", "Signer"]
