"""
actorledger.db — key–value persistence for account records and bus entries.

>>> from actorledger.db import open_kv
>>> kv = open_kv("memory://")
>>> with kv.batch() as b:
...     b.put(b"s:key", b"hello")
>>> kv.get(b"s:key")
b'hello'
"""

from .kv import KV, META, QUEUE, STATE, Batch, Prefix, ReadOnlyKV, be_u64
from .sqlite import SQLiteKV, open_kv, open_sqlite_kv

__all__ = [
    "KV",
    "ReadOnlyKV",
    "Batch",
    "Prefix",
    "STATE",
    "QUEUE",
    "META",
    "be_u64",
    "SQLiteKV",
    "open_kv",
    "open_sqlite_kv",
]
