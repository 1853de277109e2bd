"""
actorledger.address — deterministic account identity.

    address = sha3_256( cbor({"code": sha3_256(code), "data": immutable_data}) )

`derive` is a pure function: no randomness, no I/O, no global state. It is used
both to deploy (the destination of an init-carrying message must equal the
derived address) and to verify a peer (recompute the address a legitimate peer
would have and compare with `msg.sender`).

The immutable data must only contain fields declared in the code manifest's
``static`` schema; anything else raises `EncodingError`.
"""

from __future__ import annotations

import hashlib
from typing import Any, Mapping, Optional, Union

from . import encoding
from .errors import EncodingError

ADDRESS_LEN = 32


class Address(bytes):
    """
    32-byte account address. A `bytes` subclass so it can be used directly as a
    mapping key and compared with raw digests; renders as ``0x``-hex.
    """

    def __new__(cls, value: Union[bytes, bytearray, memoryview, str]) -> "Address":
        if isinstance(value, str):
            s = value.strip()
            if s.startswith(("0x", "0X")):
                s = s[2:]
            try:
                raw = bytes.fromhex(s)
            except ValueError as e:
                raise ValueError(f"invalid address hex: {value!r}") from e
        elif isinstance(value, (bytes, bytearray, memoryview)):
            raw = bytes(value)
        else:
            raise TypeError(f"cannot build Address from {type(value).__name__}")
        if len(raw) != ADDRESS_LEN:
            raise ValueError(f"address must be {ADDRESS_LEN} bytes, got {len(raw)}")
        return super().__new__(cls, raw)

    def __str__(self) -> str:
        return "0x" + self.hex()

    def __repr__(self) -> str:
        return f"Address({str(self)})"

    def short(self) -> str:
        h = self.hex()
        return f"0x{h[:6]}..{h[-4:]}"


def code_hash(code: bytes) -> bytes:
    """SHA3-256 of a code blob."""
    if not isinstance(code, (bytes, bytearray, memoryview)):
        raise EncodingError("code must be bytes-like")
    return hashlib.sha3_256(bytes(code)).digest()


def data_hash(immutable_data: Mapping[str, Any]) -> bytes:
    return hashlib.sha3_256(encoding.dumps(dict(immutable_data))).digest()


def read_manifest(code: bytes) -> dict:
    """Decode a code blob into its manifest, or raise EncodingError."""
    m = encoding.loads(code) if code else None
    if not isinstance(m, dict) or not isinstance(m.get("static"), list):
        raise EncodingError("code blob is not a contract manifest")
    return m


def check_static_schema(code: bytes, immutable_data: Mapping[str, Any]) -> None:
    if not isinstance(immutable_data, Mapping):
        raise EncodingError("immutable data must be a mapping")
    declared = set(read_manifest(code)["static"])
    extra = sorted(str(k) for k in immutable_data if k not in declared)
    if extra:
        raise EncodingError(
            "immutable data has fields outside the code's static schema",
            data={"unexpected": extra, "declared": sorted(declared)},
        )


def derive(code: bytes, immutable_data: Optional[Mapping[str, Any]] = None) -> Address:
    """
    Compute the address of an account running `code` with `immutable_data`.

    Raises:
        EncodingError if the blob is not a manifest, the data names undeclared
        fields, or a value cannot be canonically encoded.
    """
    data = dict(immutable_data or {})
    check_static_schema(code, data)
    preimage = encoding.dumps({"code": code_hash(code), "data": data})
    return Address(hashlib.sha3_256(preimage).digest())


def verify_address(address: bytes, code: bytes, immutable_data: Optional[Mapping[str, Any]]) -> bool:
    """True iff `address` is exactly what `derive(code, immutable_data)` returns."""
    try:
        return bytes(derive(code, immutable_data)) == bytes(address)
    except EncodingError:
        return False


__all__ = [
    "ADDRESS_LEN",
    "Address",
    "code_hash",
    "data_hash",
    "read_manifest",
    "check_static_schema",
    "derive",
    "verify_address",
]
