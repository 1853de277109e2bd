"""
actorledger.bus — durable FIFO-per-edge message bus for internal messages.

Guarantees
----------
- At-least-once delivery: an entry stays in the KV under ``q:<edge>:<seq>``
  until its transaction commits and acks it in the same batch. A crash (or
  `recover()`) releases every lease and the entry is delivered again.
- FIFO per edge: messages from A to B are handed out in send order. Only the
  head of an edge can be leased, and the next one waits until the head is
  acked. Different edges have no relative ordering; among ready heads the
  lowest global sequence number is picked, which makes the serial schedule
  deterministic.

Sequence numbers are global and monotonic; the counter is persisted under
``m:bus_seq`` so a reopened bus never reuses one.

    seq = bus.enqueue(msg)
    entry = bus.poll()
    ... execute ...
    with store.atomic() as tx:
        bus.stage_ack(tx, entry)
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterable, List, Optional, Tuple

from . import encoding, metrics
from .db.kv import KV, META, QUEUE, be_u64
from .logging import get_logger
from .state.store import StoreBatch, atomic_batch
from .types.message import Message

log = get_logger("actorledger.bus")

Edge = Tuple[bytes, bytes]

_SEQ_KEY = META.key(b"bus_seq")


def edge_of(message: Message) -> Edge:
    if message.sender is None:
        raise ValueError("only internal messages travel on the bus")
    return (bytes(message.sender), bytes(message.destination))


def _entry_key(edge: Edge, seq: int) -> bytes:
    return QUEUE.key(edge[0] + edge[1], be_u64(seq))


@dataclass
class BusEntry:
    seq: int
    edge: Edge
    message: Message
    leased: bool = False
    deliveries: int = 0

    @property
    def destination(self) -> bytes:
        return self.edge[1]


class MessageBus:
    """
    Parameters
    ----------
    kv : KV
        Backend shared with the account store (so commits can be atomic).
    lock : threading.RLock
        Guards both the in-memory index and KV access; pass the store's lock.
    """

    def __init__(self, kv: KV, *, lock: Optional[threading.RLock] = None) -> None:
        self.kv = kv
        self.lock = lock or threading.RLock()
        self._edges: Dict[Edge, Deque[BusEntry]] = {}
        self._next_seq = 0
        self._load()

    def _load(self) -> None:
        with self.lock:
            raw = self.kv.get(_SEQ_KEY)
            self._next_seq = int.from_bytes(raw, "big") if raw else 0
            entries: List[BusEntry] = []
            for _, v in self.kv.iter_prefix(QUEUE.raw):
                rec = encoding.loads(v)
                msg = Message.from_wire(rec["msg"])
                entries.append(BusEntry(seq=int(rec["seq"]), edge=edge_of(msg), message=msg))
            for e in sorted(entries, key=lambda x: x.seq):
                self._edges.setdefault(e.edge, deque()).append(e)
                self._next_seq = max(self._next_seq, e.seq + 1)
        if entries:
            log.info("bus restored", extra={"pending": len(entries)})
        self._report()

    # ------------------------------------------------------------------ #
    # Enqueue
    # ------------------------------------------------------------------ #

    def enqueue(self, message: Message) -> int:
        """Durably append `message` to its edge in its own batch."""
        with atomic_batch(self.kv, self.lock) as tx:
            seq = self.stage_enqueue(tx, message)
        return seq

    def stage_enqueue(self, tx: StoreBatch, message: Message) -> int:
        """Write `message` into an open batch; it becomes visible once the batch commits."""
        edge = edge_of(message)
        with self.lock:
            seq = self._next_seq
            self._next_seq += 1
            blob = encoding.dumps({"seq": seq, "msg": message.to_wire()})
            tx.batch.put(_entry_key(edge, seq), blob)
            tx.batch.put(_SEQ_KEY, self._next_seq.to_bytes(8, "big"))
        # In-memory entry mirrors the persisted form.
        stored = Message.from_wire(encoding.loads(blob)["msg"])
        entry = BusEntry(seq=seq, edge=edge, message=stored)
        tx.after_commit(lambda: self._append(entry))
        return seq

    def enqueue_many(self, tx: StoreBatch, messages: Iterable[Message]) -> List[int]:
        return [self.stage_enqueue(tx, m) for m in messages]

    def _append(self, entry: BusEntry) -> None:
        with self.lock:
            self._edges.setdefault(entry.edge, deque()).append(entry)
        self._report()

    # ------------------------------------------------------------------ #
    # Delivery
    # ------------------------------------------------------------------ #

    def next_ready(self, exclude: Iterable[bytes] = ()) -> Optional[BusEntry]:
        """Lowest-seq unleased edge head whose destination is not in `exclude`."""
        skip = {bytes(a) for a in exclude}
        best: Optional[BusEntry] = None
        with self.lock:
            for q in self._edges.values():
                if not q:
                    continue
                head = q[0]
                if head.leased or head.destination in skip:
                    continue
                if best is None or head.seq < best.seq:
                    best = head
        return best

    def lease(self, entry: BusEntry) -> BusEntry:
        with self.lock:
            q = self._edges.get(entry.edge)
            if not q or q[0] is not entry:
                raise ValueError("only the head of an edge can be leased")
            if entry.leased:
                raise ValueError(f"entry {entry.seq} is already leased")
            entry.leased = True
            entry.deliveries += 1
        return entry

    def poll(self, exclude: Iterable[bytes] = ()) -> Optional[BusEntry]:
        with self.lock:
            entry = self.next_ready(exclude)
            return self.lease(entry) if entry is not None else None

    def stage_ack(self, tx: StoreBatch, entry: BusEntry) -> None:
        """Delete a delivered entry inside the committing batch."""
        tx.batch.delete(_entry_key(entry.edge, entry.seq))
        tx.after_commit(lambda: self._pop(entry))

    def ack(self, entry: BusEntry) -> None:
        with atomic_batch(self.kv, self.lock) as tx:
            self.stage_ack(tx, entry)

    def _pop(self, entry: BusEntry) -> None:
        with self.lock:
            q = self._edges.get(entry.edge)
            if q and q[0] is entry:
                q.popleft()
                if not q:
                    del self._edges[entry.edge]
        self._report()

    def nack(self, entry: BusEntry) -> None:
        """Give a leased entry back; it stays at the head of its edge."""
        with self.lock:
            entry.leased = False

    def recover(self) -> int:
        """Release every outstanding lease (after a crash); returns how many were released."""
        released = 0
        with self.lock:
            for q in self._edges.values():
                if q and q[0].leased:
                    q[0].leased = False
                    released += 1
        if released:
            log.warning("released leases for redelivery", extra={"count": released})
        return released

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def pending(self) -> int:
        with self.lock:
            return sum(len(q) for q in self._edges.values())

    def __len__(self) -> int:
        return self.pending()

    def edge_messages(self, sender: bytes, destination: bytes) -> List[Message]:
        with self.lock:
            return [e.message for e in self._edges.get((bytes(sender), bytes(destination)), ())]

    def _report(self) -> None:
        metrics.set_bus_pending(self.pending())


__all__ = ["MessageBus", "BusEntry", "edge_of"]
