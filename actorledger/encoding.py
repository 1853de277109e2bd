"""
actorledger.encoding — canonical CBOR for hashing and persistence.

Everything that is hashed (addresses, code hashes, signing payloads) or
persisted (account records, bus entries) goes through `dumps`, which uses
`cbor2` in canonical mode (RFC 8949 deterministic map ordering, shortest
integer forms). Values are normalized first so that equal logical values
always produce identical bytes:

- `bytes` subclasses (e.g. `Address`) → plain bytes
- tuples → lists
- dataclasses → maps of field name → value
- floats are rejected (not deterministic across platforms)
"""

from __future__ import annotations

from dataclasses import fields, is_dataclass
from typing import Any

import cbor2

from .errors import EncodingError


def normalize(obj: Any) -> Any:
    """Reduce `obj` to plain CBOR-friendly types, raising EncodingError if impossible."""
    if obj is None or isinstance(obj, (bool, str)):
        return obj
    if isinstance(obj, int):
        return int(obj)
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return bytes(obj)
    if isinstance(obj, (list, tuple)):
        return [normalize(x) for x in obj]
    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            if not isinstance(k, (str, int, bytes)):
                raise EncodingError(f"unsupported map key type: {type(k).__name__}")
            out[normalize(k)] = normalize(v)
        return out
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: normalize(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, float):
        raise EncodingError("floats are not canonically encodable")
    raise EncodingError(f"unsupported type for canonical encoding: {type(obj).__name__}")


def dumps(obj: Any) -> bytes:
    """Canonical CBOR bytes of `obj`."""
    try:
        return cbor2.dumps(normalize(obj), canonical=True)
    except cbor2.CBOREncodeError as e:
        raise EncodingError(f"cbor encode failed: {e}") from e


def loads(buf: bytes) -> Any:
    try:
        return cbor2.loads(bytes(buf))
    except (cbor2.CBORDecodeError, ValueError, TypeError) as e:
        raise EncodingError(f"cbor decode failed: {e}") from e


def encoded_size(obj: Any) -> int:
    return len(dumps(obj))


__all__ = ["normalize", "dumps", "loads", "encoded_size"]
