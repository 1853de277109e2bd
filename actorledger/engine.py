"""
actorledger.engine — the engine facade.

    from actorledger.engine import Engine

    engine = Engine([Wallet])
    addr = engine.derive_address(Wallet, {"owner": signer.public_key})
    engine.fund(addr, 10_000)                      # value arrives, account UNINITIALIZED
    engine.run_until_idle()
    msg = engine.deploy_external(Wallet, {"owner": signer.public_key}, signer=signer)
    engine.submit_external(msg)                    # account ACTIVE
    engine.query(addr).lifecycle                   # "active"

Wiring: one KV holds account records (``s:acct:<addr>``), bus entries
(``q:<edge>:<seq>``) and counters (``m:*``). Every processed message is
committed through one batch, so a crash between two transactions leaves either
all or none of a transaction's effects, and unacked bus entries are delivered
again after `recover()`.

Engine methods are meant to be driven from one thread; parallelism happens
inside `ParallelScheduler`.
"""

from __future__ import annotations

import threading
from typing import Any, Iterable, List, Mapping, Optional, Protocol, Type, Union

from . import metrics
from .address import Address, derive
from .code import CodeRegistry, Contract
from .config import EngineConfig, get_config, summary
from .crypto import SignatureVerifier, Signer
from .db.kv import KV, META, be_u64
from .db.sqlite import open_kv
from .errors import AdmissionError, MalformedCode
from .logging import get_logger
from .bus import BusEntry, MessageBus
from .runtime.executor import TransactionExecutor, TxOutcome
from .runtime.replay import ReplayGuard
from .runtime.responsible import (
    DEFAULT_ANSWER_SELECTOR,
    GETTER_CALLER,
    read_answer,
    responsible_body,
    simulate_call,
)
from .scheduler import SerialScheduler
from .state.accounts import Lifecycle
from .state.store import AccountStore
from .types.message import Body, InitPayload, Message
from .types.result import AccountSnapshot, TransactionResult

log = get_logger("actorledger.engine")

GENESIS = Address(b"\x00" * 32)

_LT_KEY = META.key(b"lt")

CodeLike = Union[bytes, Type[Contract]]


class Clock(Protocol):
    def now(self) -> int:
        ...


class LogicalClock:
    """Monotonic logical time, advanced explicitly."""

    def __init__(self, start: int = 1) -> None:
        self._now = int(start)
        self._lock = threading.Lock()

    def now(self) -> int:
        return self._now

    def advance(self, dt: int) -> int:
        if dt < 0:
            raise ValueError("time cannot go backwards")
        with self._lock:
            self._now += int(dt)
            return self._now

    def set(self, t: int) -> int:
        with self._lock:
            if t < self._now:
                raise ValueError("time cannot go backwards")
            self._now = int(t)
            return self._now


def _code_bytes(code: CodeLike) -> bytes:
    if isinstance(code, type) and issubclass(code, Contract):
        return code.code()
    return bytes(code)


class Engine:
    def __init__(
        self,
        contracts: Iterable[Type[Contract]] = (),
        *,
        config: Optional[EngineConfig] = None,
        kv: Optional[KV] = None,
        db_uri: str = "memory://",
        verifier: Optional[SignatureVerifier] = None,
        clock: Optional[Clock] = None,
        scheduler: Any = None,
    ) -> None:
        self.config = config or get_config()
        self.registry = CodeRegistry(contracts)
        self.kv = kv if kv is not None else open_kv(db_uri)
        self.lock = threading.RLock()
        self.store = AccountStore(self.kv, rent=self.config.rent, lock=self.lock)
        self.bus = MessageBus(self.kv, lock=self.lock)
        self.replay = ReplayGuard(verifier)
        self.executor = TransactionExecutor(self.registry, self.config, replay=self.replay)
        self.clock: Clock = clock or LogicalClock()
        self.scheduler = scheduler or SerialScheduler()
        self.faults: List[TransactionResult] = []
        raw = self.kv.get(_LT_KEY)
        self._lt = int.from_bytes(raw, "big") if raw else 0
        log.info("engine ready", extra={"config": summary(self.config), "pending": self.bus.pending()})

    def register(self, contract: Type[Contract]) -> bytes:
        return self.registry.register(contract)

    def close(self) -> None:
        self.kv.close()

    # ------------------------------------------------------------------ #
    # Time & logical time
    # ------------------------------------------------------------------ #

    def now(self) -> int:
        return self.clock.now()

    def advance_time(self, dt: int) -> int:
        advance = getattr(self.clock, "advance", None)
        if advance is None:
            raise TypeError("the configured clock cannot be advanced")
        return advance(dt)

    def next_lt(self) -> int:
        with self.lock:
            self._lt += 1
            return self._lt

    # ------------------------------------------------------------------ #
    # Addresses & message builders
    # ------------------------------------------------------------------ #

    @staticmethod
    def derive_address(code: CodeLike, data: Optional[Mapping[str, Any]] = None) -> Address:
        return derive(_code_bytes(code), data)

    def deploy_external(
        self,
        code: CodeLike,
        data: Mapping[str, Any],
        *,
        signer: Signer,
        body: Optional[Body] = None,
        timestamp: Optional[int] = None,
        ttl: int = 100,
    ) -> Message:
        """Build a signed external message carrying the init payload for `(code, data)`."""
        init = InitPayload(_code_bytes(code), dict(data))
        ts = self.now() if timestamp is None else int(timestamp)
        msg = Message.external(init.address(), body, timestamp=ts, expire=ts + ttl, init=init)
        return msg.signed_by(signer)

    def external(
        self,
        destination: bytes,
        body: Optional[Body] = None,
        *,
        signer: Signer,
        timestamp: Optional[int] = None,
        ttl: int = 100,
    ) -> Message:
        ts = self.now() if timestamp is None else int(timestamp)
        return Message.external(destination, body, timestamp=ts, expire=ts + ttl).signed_by(signer)

    # ------------------------------------------------------------------ #
    # Submission
    # ------------------------------------------------------------------ #

    def submit_external(self, message: Message) -> TransactionResult:
        """
        Admit and execute an external message right away.

        Raises AdmissionError (nothing happens) or EngineFault (nothing is
        persisted). A DISCARDED result means the account never accepted it.
        """
        if not message.is_external:
            raise ValueError("submit_external takes external messages")
        account = self.store.get(message.destination)
        try:
            outcome = self.executor.execute(account, message, now=self.now(), lt=self.next_lt())
        except AdmissionError as e:
            metrics.observe_admission_rejected(e.reason)
            log.warning("external message rejected", extra={"error": e.to_dict()})
            raise
        if outcome.fault is not None:
            self.faults.append(outcome.result)
            raise outcome.fault
        return self.commit_outcome(outcome)

    def submit_internal(
        self,
        sender: bytes,
        destination: bytes,
        body: Optional[Body] = None,
        *,
        value: int = 0,
        bounce: bool = True,
        init: Optional[InitPayload] = None,
    ) -> int:
        """Enqueue an internal message on the bus; returns its sequence number."""
        msg = Message.internal(sender, destination, body, value=value, bounce=bounce,
                               init=init, created_lt=self._lt)
        return self.bus.enqueue(msg)

    def fund(self, address: bytes, value: int) -> int:
        """Genesis transfer: non-bounceable value from the zero address."""
        return self.submit_internal(GENESIS, address, value=value, bounce=False)

    def deploy_internal(
        self,
        sender: bytes,
        code: CodeLike,
        data: Mapping[str, Any],
        *,
        value: int,
        body: Optional[Body] = None,
        bounce: bool = True,
    ) -> Address:
        init = InitPayload(_code_bytes(code), dict(data))
        addr = init.address()
        self.submit_internal(sender, addr, body, value=value, bounce=bounce, init=init)
        return addr

    # ------------------------------------------------------------------ #
    # Delivery
    # ------------------------------------------------------------------ #

    def step(self) -> Optional[TransactionResult]:
        """Deliver the next ready bus entry; None when nothing is deliverable."""
        entry = self.bus.poll()
        if entry is None:
            return None
        return self.deliver(entry)

    def deliver(self, entry: BusEntry) -> TransactionResult:
        try:
            account = self.store.get(entry.destination)
            outcome = self.executor.execute(account, entry.message, now=self.now(), lt=self.next_lt())
        except BaseException:
            self.bus.nack(entry)
            raise
        return self.commit_outcome(outcome, entry)

    def commit_outcome(self, outcome: TxOutcome, entry: Optional[BusEntry] = None) -> TransactionResult:
        """Persist an outcome and ack its bus entry in one batch."""
        result = outcome.result
        if outcome.fault is not None and entry is not None:
            # Faults are never retried: the entry is acked with nothing else written.
            self.faults.append(result)
        if not outcome.persist and entry is None:
            return result
        try:
            with self.store.atomic() as tx:
                if outcome.persist:
                    if outcome.delete:
                        tx.delete(result.address)
                    if outcome.account is not None:
                        tx.put(outcome.account)
                    self.bus.enqueue_many(tx, outcome.out_messages)
                    tx.batch.put(_LT_KEY, be_u64(result.lt))
                if entry is not None:
                    self.bus.stage_ack(tx, entry)
        except BaseException:
            if entry is not None:
                self.bus.nack(entry)
            raise
        if outcome.persist:
            metrics.observe_rent(result.rent_debited)
        return result

    def run_until_idle(self, *, max_steps: Optional[int] = None) -> List[TransactionResult]:
        return self.scheduler.run(self, max_steps=max_steps)

    def recover(self) -> int:
        """Release leases held by interrupted deliveries so they are redelivered."""
        return self.bus.recover()

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def query(self, address: bytes) -> AccountSnapshot:
        """Current record of `address`; raises NotFound."""
        acct = self.store.load(address)
        decoded = None
        if acct.lifecycle is Lifecycle.ACTIVE:
            decoded = self.registry.resolve(acct.code).decode_state(acct.state)
        return AccountSnapshot(
            address=acct.address,
            lifecycle=acct.lifecycle.value,
            balance=acct.balance,
            decoded_state=decoded,
            last_accepted_timestamp=acct.last_accepted_timestamp,
            code_hash=acct.code_hash,
        )

    def simulate(
        self,
        address: bytes,
        body: Body,
        *,
        sender: Optional[bytes] = None,
        value: int = 0,
    ) -> List[Message]:
        """Messages `body` would make `address` send; nothing is charged or stored."""
        account = self.store.load(address)
        return simulate_call(self.executor, account, body, sender=sender, value=value,
                             now=self.now(), lt=self._lt)

    def call_getter(
        self,
        address: bytes,
        selector: int,
        *args: Any,
        answer_selector: int = DEFAULT_ANSWER_SELECTOR,
    ) -> tuple:
        """Run a responsible handler synthetically and return its answer values."""
        out = self.simulate(address, responsible_body(selector, answer_selector, *args),
                            sender=GETTER_CALLER)
        return read_answer(out, GETTER_CALLER, answer_selector)

    def code_of(self, address: bytes) -> Type[Contract]:
        acct = self.store.load(address)
        if acct.code is None:
            raise MalformedCode("account has no code")
        return self.registry.resolve(acct.code)

    # ------------------------------------------------------------------ #
    # Rent
    # ------------------------------------------------------------------ #

    def collect_rent(self, address: bytes) -> int:
        return self.store.charge_rent(address, self.now())

    def sweep_rent(self) -> int:
        return self.store.sweep(self.now())


__all__ = ["Engine", "LogicalClock", "Clock", "GENESIS"]
