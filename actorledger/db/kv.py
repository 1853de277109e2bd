"""
KV interface & key layout
=========================

Backend-agnostic key–value surface used by the account store and the message
bus. Two logical buckets share one database so that a committing transaction
can write its account record and its outgoing messages in a single batch:

- STATE (b"s:") : account records, ``s:acct:<addr>`` → canonical CBOR
- QUEUE (b"q:") : bus entries, ``q:<edge>:<seq>`` → canonical CBOR
- META  (b"m:") : counters (next bus sequence, logical time)

Keys are built with `Prefix.key(...)`, which length-prefixes every part so
keys sort lexicographically without delimiter escaping. Integers meant to sort
numerically should be passed through `be_u64`.

Batching
--------
`KV.batch()` returns a context manager; exiting without an exception commits
all puts/deletes atomically, otherwise the batch is rolled back.

>>> with kv.batch() as b:
...     b.put(STATE.key(b"acct", addr), record)
...     b.put(QUEUE.key(edge, be_u64(seq)), entry)
"""

from __future__ import annotations

from typing import Iterator, Optional, Protocol, Tuple, Union, runtime_checkable

NS_SEP = b":"


class Prefix:
    """
    A logical namespace prefix (e.g. b"s:").

    .raw gives the raw prefix bytes; .key(*parts) builds prefix + Σ(len | part).
    """

    __slots__ = ("_raw",)

    def __init__(self, ns: Union[bytes, str]) -> None:
        ns_b = ns.encode("ascii") if isinstance(ns, str) else bytes(ns)
        if not ns_b:
            raise ValueError("namespace must be non-empty")
        self._raw = ns_b.rstrip(NS_SEP) + NS_SEP

    @property
    def raw(self) -> bytes:
        return self._raw

    def key(self, *parts: Union[bytes, str, int]) -> bytes:
        out = bytearray(self._raw)
        for p in parts:
            pb = _part_to_bytes(p)
            out.extend(_uvarint_len(len(pb)))
            out.extend(pb)
        return bytes(out)


def _part_to_bytes(p: Union[bytes, str, int]) -> bytes:
    if isinstance(p, (bytes, bytearray, memoryview)):
        return bytes(p)
    if isinstance(p, str):
        return p.encode("utf-8")
    if isinstance(p, int):
        if p < 0:
            raise ValueError("negative ints not supported in key parts")
        return be_u64(p)
    raise TypeError(f"unsupported key part type: {type(p)!r}")


def _uvarint_len(n: int) -> bytes:
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(0x80 | b)
        else:
            out.append(b)
            return bytes(out)


def be_u64(n: int) -> bytes:
    if not (0 <= n < (1 << 64)):
        raise ValueError("be_u64 out of range")
    return n.to_bytes(8, "big")


STATE = Prefix(b"s")
QUEUE = Prefix(b"q")
META = Prefix(b"m")


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class ReadOnlyKV(Protocol):
    def get(self, key: bytes) -> Optional[bytes]:
        ...

    def has(self, key: bytes) -> bool:
        ...

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """(key, value) pairs whose key starts with `prefix`, in key order."""
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class Batch(Protocol):
    def put(self, key: bytes, value: bytes) -> None: ...
    def delete(self, key: bytes) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...

    def __enter__(self) -> "Batch": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...


@runtime_checkable
class KV(ReadOnlyKV, Protocol):
    def put(self, key: bytes, value: bytes) -> None:
        ...

    def delete(self, key: bytes) -> None:
        ...

    def batch(self) -> Batch:
        ...


__all__ = [
    "ReadOnlyKV",
    "KV",
    "Batch",
    "Prefix",
    "STATE",
    "QUEUE",
    "META",
    "be_u64",
]
