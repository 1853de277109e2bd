"""
actorledger.runtime.executor — one message, one transaction.

`TransactionExecutor.execute(account, message, now=, lt=)` works on a detached
copy of the destination account and returns a `TxOutcome`; it never touches
the store or the bus. The engine commits the outcome (account record, outgoing
messages, bus ack) in one atomic batch, which is what lets different accounts
execute on different threads.

Order of work
-------------
1. Admission: external messages pass the ReplayGuard or raise AdmissionError.
2. Rent is collected up to `now` (never rolled back).
3. Internal value is credited (never rolled back).
4. Compute, inside a journal checkpoint: activation from an init payload,
   state decode, dispatch by selector, state re-encode. Gas is metered
   throughout; externals run on the admission credit until `ctx.accept()`.
5. The gas fee is taken from the balance (never rolled back).
6. Action phase, inside a nested checkpoint.
7. Commit both checkpoints, or revert them and bounce-or-drop.

An external message whose compute never reaches `accept()` is DISCARDED:
no transaction exists and nothing (not even rent) is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .. import metrics
from ..address import verify_address
from ..code import CodeRegistry, Contract
from ..config import EngineConfig, get_config
from ..errors import (
    Abort,
    ActionFailure,
    ComputeFailure,
    EngineFault,
    LedgerError,
    UnknownSelector,
)
from ..gas import GasMeter
from ..logging import get_logger, transaction_scope
from ..state.accounts import Account, Lifecycle
from ..state.journal import Journal
from ..state.rent import collect_rent
from ..types.actions import SendMessage
from ..types.message import Message
from ..types.result import TransactionResult
from ..types.status import TxPhase, TxStatus
from .actions import apply_actions
from .bounce import BounceCoordinator, is_bounceable
from .context import CodeSwitched, TxContext
from .replay import ReplayGuard

log = get_logger("actorledger.runtime.executor")


@dataclass
class TxOutcome:
    """What the engine must persist for one processed message."""

    result: TransactionResult
    account: Optional[Account] = None
    delete: bool = False
    out_messages: Tuple[Message, ...] = ()
    persist: bool = True
    fault: Optional[EngineFault] = None


@dataclass
class _Tx:
    message: Message
    now: int
    lt: int
    had_record: bool
    account: Optional[Account]
    phases: List[TxPhase] = field(default_factory=lambda: [TxPhase.ADMITTED])
    rent_debited: int = 0
    gas_used: int = 0
    fees: int = 0
    out: List[Message] = field(default_factory=list)
    bounce: Optional[Message] = None
    error: Optional[LedgerError] = None
    accepted: bool = False
    activated: bool = False


class TransactionExecutor:
    def __init__(
        self,
        registry: CodeRegistry,
        config: Optional[EngineConfig] = None,
        *,
        replay: Optional[ReplayGuard] = None,
    ) -> None:
        self.registry = registry
        self.config = config or get_config()
        self.replay = replay or ReplayGuard()
        self.bounces = BounceCoordinator(
            budget=self.config.limits.bounce_body_budget,
            forward_fee=self.config.gas.forward_fee,
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def execute(self, account: Optional[Account], message: Message, *, now: int, lt: int) -> TxOutcome:
        """Process `message` against `account` (None when no record exists)."""
        if message.is_external:
            self.replay.admit(account, message, now)
        with transaction_scope(account=str(message.destination), lt=lt, msg_kind=message.kind.value):
            tx = _Tx(
                message=message,
                now=int(now),
                lt=int(lt),
                had_record=account is not None,
                account=account.copy() if account is not None else None,
            )
            outcome = self._run(tx)
            status = outcome.result.status
            metrics.observe_tx(outcome=status.value, kind=message.kind.value,
                               gas_used=outcome.result.gas_used)
            if outcome.fault is not None:
                log.error("engine fault", extra={"error": outcome.fault.to_dict()})
            else:
                log.debug(
                    "transaction %s", status.value,
                    extra={"gas_used": outcome.result.gas_used, "out": len(outcome.out_messages)},
                )
        return outcome

    def simulate(self, account: Account, message: Message, *, now: int, lt: int) -> List[Message]:
        """
        Run compute only, on a copy, with unlimited gas; return the messages the
        handler would send. Compute failures propagate to the caller.
        """
        acct = account.copy()
        acct.credit(message.value)
        if not acct.is_active:
            raise ComputeFailure("account has no active code", code="NO_CODE")
        j = Journal(acct)
        j.begin()
        ctx = self._context(j, message, GasMeter.unlimited(), now, lt)
        self._compute(ctx, activated=False)
        return [a.message for a in ctx.actions if isinstance(a, SendMessage)]

    # ------------------------------------------------------------------ #
    # Transaction body
    # ------------------------------------------------------------------ #

    def _run(self, tx: _Tx) -> TxOutcome:
        msg = tx.message

        if tx.account is not None:
            rent = collect_rent(tx.account, tx.now, self.config.rent)
            tx.rent_debited = rent.debited
            if rent.deleted:
                tx.account = None

        activate = self._can_activate(tx.account, msg)
        runnable = activate or (tx.account is not None and tx.account.is_active)

        if msg.is_external and not runnable:
            return self._discard(tx, "no code to run")

        if not runnable:
            return self._no_code(tx)

        if tx.account is None:
            tx.account = Account(address=msg.destination, last_rent_time=tx.now)
        acct = tx.account
        if msg.is_internal:
            acct.credit(msg.value)

        j = Journal(acct)
        cp = j.begin()
        if msg.is_external:
            meter = GasMeter(min(self.config.gas.admission_credit, self.config.gas.max_gas), accepted=False)
        else:
            meter = GasMeter(self._affordable_gas(acct.balance))
        tx.phases.append(TxPhase.COMPUTING)

        try:
            if activate:
                self._activate(j, msg)
                tx.activated = True
            ctx = self._context(j, msg, meter, tx.now, tx.lt)
        except EngineFault as fault:
            return self._fault(tx, fault)

        try:
            self._compute(ctx, activated=tx.activated)
        except ComputeFailure as e:
            tx.gas_used = meter.used
            if msg.is_external and not meter.accepted:
                return self._discard(tx, e.code)
            j.revert_to(cp)
            tx.activated = False
            tx.accepted = True
            tx.phases.append(TxPhase.COMPUTE_FAILED)
            tx.error = e
            gas_fee = self._charge_gas(acct, meter.used)
            self._bounce_or_drop(tx, gas_fee)
            return self._finish(tx, TxStatus.COMPUTE_FAILED)
        except EngineFault as fault:
            return self._fault(tx, fault)

        tx.gas_used = meter.used
        if msg.is_external and not meter.accepted:
            return self._discard(tx, "not accepted")
        tx.accepted = True
        tx.phases.append(TxPhase.COMPUTE_OK)
        gas_fee = self._charge_gas(acct, meter.used)

        tx.phases.append(TxPhase.ACTING)
        j.begin()
        try:
            report = apply_actions(
                j,
                ctx.actions,
                inbound_value=max(0, msg.value - gas_fee),
                forward_fee=self.config.gas.forward_fee,
                registry=self.registry,
            )
        except ActionFailure as e:
            j.revert_to(cp)
            tx.activated = False
            tx.phases.append(TxPhase.ROLLED_BACK)
            tx.error = e
            self._bounce_or_drop(tx, gas_fee)
            return self._finish(tx, TxStatus.ROLLED_BACK)

        j.commit_to(cp)
        tx.out.extend(report.out_messages)
        tx.fees += report.fees
        tx.phases.append(TxPhase.COMMITTED)
        return self._finish(tx, TxStatus.COMMITTED)

    # ------------------------------------------------------------------ #
    # Compute
    # ------------------------------------------------------------------ #

    def _context(self, j: Journal, msg: Message, meter: GasMeter, now: int, lt: int) -> TxContext:
        cls = self.registry.resolve(j.get("code"))
        state = cls.decode_state(j.get("state"))
        ctx = TxContext(
            message=msg,
            journal=j,
            meter=meter,
            config=self.config,
            registry=self.registry,
            now=now,
            lt=lt,
            affordable_gas=lambda: self._affordable_gas(int(j.get("balance"))),
        )
        ctx.contract = cls(state, dict(j.get("immutable_data") or {}))
        return ctx

    def _compute(self, ctx: TxContext, *, activated: bool) -> None:
        gas = self.config.gas
        ctx.meter.debit(gas.call_base, reason="call")
        body = ctx.message.body
        try:
            try:
                if activated:
                    ctx.contract.on_deploy(ctx)
                if body.bounced:
                    ctx.contract.on_bounce(ctx, body.selector, *body.args)
                elif body.selector is None:
                    ctx.contract.on_receive(ctx)
                else:
                    fn = ctx.contract.resolve(body.selector)
                    if fn is None:
                        raise UnknownSelector(body.selector)
                    fn(ctx, *body.args)
            except CodeSwitched:
                # the old handler stops at switch_code
                pass
            contract: Contract = ctx.contract
            blob = type(contract).encode_state(contract.state)
        except (ComputeFailure, EngineFault):
            raise
        except LedgerError as e:
            raise ComputeFailure(e.message, code=e.code, data=e.data) from e
        except Exception as e:
            # Any exception escaping account code is a logical failure of that code.
            raise ComputeFailure(
                f"handler raised {type(e).__name__}",
                code="HANDLER_ERROR",
                data={"type": type(e).__name__, "detail": str(e)},
            ) from e

        if len(blob) > self.config.limits.max_state_bytes:
            raise ComputeFailure("state exceeds size limit", code="STATE_TOO_LARGE",
                                 data={"size": len(blob)})
        if blob != ctx.journal.get("state"):
            ctx.meter.debit(gas.per_state_byte * len(blob), reason="state write")
            ctx.journal.set("state", blob)

    # ------------------------------------------------------------------ #
    # Activation
    # ------------------------------------------------------------------ #

    def _can_activate(self, account: Optional[Account], msg: Message) -> bool:
        if msg.init is None:
            return False
        if account is not None and account.lifecycle is Lifecycle.ACTIVE:
            return False
        return verify_address(msg.destination, msg.init.code, msg.init.data)

    def _activate(self, j: Journal, msg: Message) -> None:
        init = msg.init
        cls = self.registry.resolve(init.code)
        acct = Account(address=msg.destination)
        acct.activate(init.code, init.data, cls.encode_state(cls.default_state()))
        for name in ("code", "immutable_data", "state", "code_hash", "data_hash", "frozen_since", "lifecycle"):
            j.set(name, getattr(acct, name))

    # ------------------------------------------------------------------ #
    # Fees & bounce
    # ------------------------------------------------------------------ #

    def _affordable_gas(self, balance: int) -> int:
        g = self.config.gas
        if g.gas_price <= 0:
            return g.max_gas
        return min(g.max_gas, max(0, balance) // g.gas_price)

    def _charge_gas(self, acct: Account, gas_used: int) -> int:
        fee = min(self.config.gas.fee(gas_used), acct.balance)
        acct.balance -= fee
        return fee

    def _bounce_or_drop(self, tx: _Tx, gas_fee: int) -> None:
        msg = tx.message
        if not is_bounceable(msg):
            return
        bounce = self.bounces.bounce_for(msg, gas_fee=gas_fee, lt=tx.lt)
        if bounce is None:
            metrics.observe_bounce("dropped")
            log.debug("bounce dropped: value does not cover fees")
            return
        if tx.account is not None:
            tx.account.debit(bounce.value + self.bounces.forward_fee)
        tx.fees += self.bounces.forward_fee
        tx.bounce = bounce
        tx.out.append(bounce)
        metrics.observe_bounce("sent")

    # ------------------------------------------------------------------ #
    # Terminal outcomes
    # ------------------------------------------------------------------ #

    def _no_code(self, tx: _Tx) -> TxOutcome:
        """Internal message to an address with nothing to run."""
        msg = tx.message
        reason = "INIT_MISMATCH" if msg.init is not None else "NO_CODE"
        if is_bounceable(msg):
            if tx.account is not None:
                tx.account.credit(msg.value)
            tx.phases.append(TxPhase.COMPUTE_FAILED)
            tx.error = ComputeFailure("destination has no code to run", code=reason)
            tx.accepted = True
            self._bounce_or_drop(tx, 0)
            return self._finish(tx, TxStatus.COMPUTE_FAILED)

        if tx.account is None and msg.value > 0:
            tx.account = Account(address=msg.destination, last_rent_time=tx.now)
        if tx.account is not None:
            tx.account.credit(msg.value)
        tx.accepted = True
        tx.phases.append(TxPhase.COMMITTED)
        return self._finish(tx, TxStatus.COMMITTED)

    def _finish(self, tx: _Tx, status: TxStatus) -> TxOutcome:
        acct = tx.account
        err = tx.error
        result = TransactionResult(
            address=tx.message.destination,
            lt=tx.lt,
            kind=tx.message.kind.value,
            status=status,
            phases=tuple(tx.phases),
            rent_debited=tx.rent_debited,
            gas_used=tx.gas_used,
            fees=tx.fees,
            out_messages=tuple(tx.out),
            bounce=tx.bounce,
            error=err.to_dict() if err is not None else None,
            exit_code=err.exit_code if isinstance(err, Abort) else None,
            accepted=tx.accepted,
            activated=tx.activated,
        )
        if acct is None:
            return TxOutcome(result, delete=tx.had_record, out_messages=tuple(tx.out))
        if not tx.had_record and acct.lifecycle is Lifecycle.UNINITIALIZED and acct.balance == 0:
            return TxOutcome(result, out_messages=tuple(tx.out), persist=bool(tx.out))
        return TxOutcome(result, account=acct, out_messages=tuple(tx.out))

    def _discard(self, tx: _Tx, reason: str) -> TxOutcome:
        log.info("external message discarded", extra={"reason": reason})
        result = TransactionResult(
            address=tx.message.destination,
            lt=tx.lt,
            kind=tx.message.kind.value,
            status=TxStatus.DISCARDED,
            phases=tuple(tx.phases),
            gas_used=tx.gas_used,
            error={"code": "DISCARDED", "message": str(reason)},
        )
        return TxOutcome(result, persist=False)

    def _fault(self, tx: _Tx, fault: EngineFault) -> TxOutcome:
        result = TransactionResult(
            address=tx.message.destination,
            lt=tx.lt,
            kind=tx.message.kind.value,
            status=TxStatus.FAULT,
            phases=tuple(tx.phases),
            error=fault.to_dict(),
        )
        return TxOutcome(result, persist=False, fault=fault)


__all__ = ["TransactionExecutor", "TxOutcome"]
