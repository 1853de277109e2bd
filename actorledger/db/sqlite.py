"""
SQLite-backed KV store
======================

Embedded KV using stdlib `sqlite3` (BLOB keys and values), implementing the
`KV` / `Batch` protocols from `actorledger.db.kv`.

- Table schema: kv(k BLOB PRIMARY KEY, v BLOB NOT NULL)
- Ordering is lexicographic (memcmp), so prefix scans use a bounded range
  [prefix, prefix_hi) plus a ``substr`` guard.
- Batches run inside ``BEGIN IMMEDIATE`` … ``COMMIT``.

URIs accepted by `open_kv`:
- "memory://"               → in-memory SQLite (tests, simulations)
- "sqlite:///path/to/x.db"  → SQLite file
- bare path                 → SQLite file

Threading: the connection is opened with ``check_same_thread=False``; callers
(the account store) serialize access with their own lock.
"""

from __future__ import annotations

import os
import sqlite3
from typing import Iterator, List, Optional, Tuple, Union

from .kv import KV, Batch

DEFAULT_PRAGMAS = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "temp_store": "MEMORY",
    "foreign_keys": "OFF",
}


def _apply_pragmas(conn: sqlite3.Connection, pragmas: Optional[dict] = None) -> None:
    p = dict(DEFAULT_PRAGMAS)
    if pragmas:
        p.update(pragmas)
    cur = conn.cursor()
    for name, value in p.items():
        cur.execute(f"PRAGMA {name}={value}")
    cur.close()


def _migrate(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv (
            k BLOB PRIMARY KEY,
            v BLOB NOT NULL
        )
        """
    )


def _prefix_hi(prefix: bytes) -> Optional[bytes]:
    """
    Smallest byte string strictly greater than every key starting with `prefix`,
    or None when the prefix is all 0xFF (or empty).

    b"ab\\x01" -> b"ab\\x02"; b"\\xff\\xff" -> None
    """
    if not prefix:
        return None
    p = bytearray(prefix)
    for i in range(len(p) - 1, -1, -1):
        if p[i] != 0xFF:
            p[i] += 1
            del p[i + 1 :]
            return bytes(p)
    return None


class SQLiteBatch:
    __slots__ = ("_conn", "_open")

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._open = False

    def __enter__(self) -> "SQLiteBatch":
        if self._open:
            raise RuntimeError("batch already open (nested batches not supported)")
        self._conn.execute("BEGIN IMMEDIATE")
        self._open = True
        return self

    def put(self, key: bytes, value: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._conn.execute(
            "INSERT INTO kv(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v=excluded.v",
            (memoryview(key), memoryview(value)),
        )

    def delete(self, key: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._conn.execute("DELETE FROM kv WHERE k = ?", (memoryview(key),))

    def commit(self) -> None:
        if not self._open:
            return
        self._conn.execute("COMMIT")
        self._open = False

    def rollback(self) -> None:
        if not self._open:
            return
        self._conn.execute("ROLLBACK")
        self._open = False

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            self._open = False
        return None


def _open_connection(path: Union[str, "os.PathLike[str]"], *, pragmas: Optional[dict] = None,
                     create: bool = True) -> sqlite3.Connection:
    path_str = str(path)
    if path_str != ":memory:" and not create and not os.path.exists(path_str):
        raise FileNotFoundError(f"SQLite KV not found at {path_str}")
    conn = sqlite3.connect(
        path_str,
        detect_types=0,
        isolation_level=None,      # autocommit; batches BEGIN explicitly
        check_same_thread=False,
    )
    _apply_pragmas(conn, pragmas)
    _migrate(conn)
    return conn


class SQLiteKV:
    """SQLite-backed KV. Use `open_sqlite_kv(path)` or `open_kv(uri)` to construct."""

    __slots__ = ("_conn", "path")

    def __init__(self, conn: sqlite3.Connection, path: str = ":memory:") -> None:
        self._conn = conn
        self.path = path

    def get(self, key: bytes) -> Optional[bytes]:
        cur = self._conn.execute("SELECT v FROM kv WHERE k = ?", (memoryview(key),))
        row = cur.fetchone()
        cur.close()
        return bytes(row[0]) if row is not None else None

    def has(self, key: bytes) -> bool:
        cur = self._conn.execute("SELECT 1 FROM kv WHERE k = ? LIMIT 1", (memoryview(key),))
        row = cur.fetchone()
        cur.close()
        return row is not None

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """
        Keys with the given prefix in lexicographic order.

        Rows are fetched eagerly so a caller may open a batch while iterating.
        """
        hi = _prefix_hi(prefix)
        if hi is not None:
            sql = "SELECT k, v FROM kv WHERE k >= ? AND k < ? AND substr(k,1,?) = ? ORDER BY k"
            args: tuple = (memoryview(prefix), memoryview(hi), len(prefix), memoryview(prefix))
        else:
            sql = "SELECT k, v FROM kv WHERE substr(k,1,?) = ? ORDER BY k"
            args = (len(prefix), memoryview(prefix))
        cur = self._conn.execute(sql, args)
        try:
            rows: List[Tuple[bytes, bytes]] = [(bytes(k), bytes(v)) for k, v in cur.fetchall()]
        finally:
            cur.close()
        return iter(rows)

    def close(self) -> None:
        self._conn.close()

    def put(self, key: bytes, value: bytes) -> None:
        self._conn.execute(
            "INSERT INTO kv(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v=excluded.v",
            (memoryview(key), memoryview(value)),
        )

    def delete(self, key: bytes) -> None:
        self._conn.execute("DELETE FROM kv WHERE k = ?", (memoryview(key),))

    def batch(self) -> SQLiteBatch:
        return SQLiteBatch(self._conn)


def open_sqlite_kv(path: Union[str, "os.PathLike[str]"], *, pragmas: Optional[dict] = None,
                   create: bool = True) -> SQLiteKV:
    conn = _open_connection(path, pragmas=pragmas, create=create)
    return SQLiteKV(conn, str(path))


def open_kv(uri: str, create: bool = True) -> KV:
    """Open a KV by URI ("memory://", "sqlite:///path", or a bare file path)."""
    u = uri.strip()
    if u.startswith("memory://") or u in ("", ":memory:"):
        return open_sqlite_kv(":memory:")
    if u.startswith("sqlite:///"):
        u = u[len("sqlite:///") :] or ":memory:"
    return open_sqlite_kv(u, create=create)


__all__ = ["SQLiteKV", "SQLiteBatch", "open_sqlite_kv", "open_kv"]
