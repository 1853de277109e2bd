"""
actorledger.state.store — persistent account records over a KV backend.

Layout: one canonical-CBOR record per account under ``s:acct:<addr>``.

Reads return detached copies, so a transaction works on its own copy and the
store only changes when the executor's outcome is committed. A commit goes
through `atomic()`, which opens a single KV batch; the message bus stages its
enqueues and acks into the same batch so account writes and outgoing messages
land (or fail) together.

    with store.atomic() as tx:
        tx.put(account)
        bus.stage_enqueue(tx, message)
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, ContextManager, Iterator, List, Optional

from .. import metrics
from ..address import Address
from ..config import RentPolicy
from ..db.kv import KV, STATE, Batch
from ..errors import NotFound
from ..logging import get_logger
from .accounts import Account, Lifecycle
from .rent import collect_rent

log = get_logger("actorledger.state.store")

_ACCT = b"acct"


def account_key(address: bytes) -> bytes:
    return STATE.key(_ACCT, bytes(address))


class StoreBatch:
    """An open KV batch plus callbacks to run once it has committed."""

    __slots__ = ("batch", "_after")

    def __init__(self, batch: Batch) -> None:
        self.batch = batch
        self._after: List[Callable[[], None]] = []

    def put(self, account: Account) -> None:
        if account.lifecycle is Lifecycle.DELETED:
            self.delete(account.address)
            return
        self.batch.put(account_key(account.address), account.encode())

    def delete(self, address: bytes) -> None:
        self.batch.delete(account_key(address))

    def after_commit(self, fn: Callable[[], None]) -> None:
        self._after.append(fn)

    def fire(self) -> None:
        for fn in self._after:
            fn()
        self._after.clear()


@contextmanager
def atomic_batch(kv: KV, lock: threading.RLock) -> Iterator[StoreBatch]:
    """Open one KV batch under `lock`; post-commit callbacks run after it commits."""
    with lock:
        sb = StoreBatch(kv.batch())
        with sb.batch:
            yield sb
        sb.fire()


class AccountStore:
    def __init__(self, kv: KV, *, rent: Optional[RentPolicy] = None,
                 lock: Optional[threading.RLock] = None) -> None:
        self.kv = kv
        self.rent = rent or RentPolicy()
        self.lock = lock or threading.RLock()

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get(self, address: bytes) -> Optional[Account]:
        with self.lock:
            blob = self.kv.get(account_key(address))
        return Account.decode(blob) if blob is not None else None

    def load(self, address: bytes) -> Account:
        acc = self.get(address)
        if acc is None:
            raise NotFound(Address(address))
        return acc

    def exists(self, address: bytes) -> bool:
        with self.lock:
            return self.kv.has(account_key(address))

    def snapshot(self, address: bytes) -> bytes:
        """Raw persisted record bytes (byte-exact comparisons in tools and tests)."""
        with self.lock:
            blob = self.kv.get(account_key(address))
        if blob is None:
            raise NotFound(Address(address))
        return blob

    def addresses(self) -> List[Address]:
        prefix = STATE.key(_ACCT)
        with self.lock:
            rows = list(self.kv.iter_prefix(prefix))
        return [Account.decode(v).address for _, v in rows]

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def atomic(self) -> ContextManager[StoreBatch]:
        return atomic_batch(self.kv, self.lock)

    def put(self, account: Account) -> None:
        with self.atomic() as tx:
            tx.put(account)

    def delete(self, address: bytes) -> None:
        with self.atomic() as tx:
            tx.delete(address)

    # ------------------------------------------------------------------ #
    # Rent
    # ------------------------------------------------------------------ #

    def apply_rent(self, address: bytes, elapsed: int) -> int:
        """Collect `elapsed` time units of rent from the stored account; returns the amount."""
        with self.lock:
            acc = self.load(address)
            return self._collect(acc, acc.last_rent_time + max(0, int(elapsed)))

    def charge_rent(self, address: bytes, now: int) -> int:
        """Collect rent owed up to logical time `now`."""
        with self.lock:
            return self._collect(self.load(address), now)

    def sweep(self, now: int) -> int:
        """Collect rent from every stored account; returns the total collected."""
        total = 0
        with self.lock:
            for addr in self.addresses():
                total += self._collect(self.load(addr), now)
        return total

    def _collect(self, acc: Account, now: int) -> int:
        outcome = collect_rent(acc, now, self.rent)
        self.put(acc)
        metrics.observe_rent(outcome.debited)
        if outcome.froze:
            log.info("account frozen", extra={"account": str(acc.address)})
        if outcome.deleted:
            log.info("account deleted", extra={"account": str(acc.address)})
        return outcome.debited


__all__ = ["AccountStore", "StoreBatch", "atomic_batch", "account_key"]
