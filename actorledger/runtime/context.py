"""
actorledger.runtime.context — the explicit transaction context.

Every handler receives a `TxContext` as its first argument. It is the only
window account code has onto the transaction: who sent the message and with
how much value, the logical time, the account's balance, and the means to
buffer actions. There is no ambient "current account".

Nothing a handler does through the context touches other accounts. `send`,
`reserve` and `set_code` only append to the action list, which the action
phase applies after compute succeeds. `accept()` and `switch_code()` write
through the transaction journal, so a rollback undoes them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, NoReturn, Optional

from ..address import Address, derive
from ..config import EngineConfig
from ..errors import Abort, ComputeFailure, MalformedCode, OutOfGas
from ..gas import GasMeter
from ..state.journal import Journal
from ..types.actions import Action, Reserve, ReserveMode, SendMessage, SetCode
from ..types.message import Body, InitPayload, Message

if TYPE_CHECKING:  # pragma: no cover
    from ..code import CodeRegistry, Contract


class CodeSwitched(BaseException):
    """
    Raised by `switch_code` once the new code has run `on_code_upgrade`.

    Unwinds the old handler so nothing after the switch executes under the old
    code. It is a BaseException so that `except Exception` in account code
    does not stop it.
    """


class TxContext:
    def __init__(
        self,
        *,
        message: Message,
        journal: Journal,
        meter: GasMeter,
        config: EngineConfig,
        registry: "CodeRegistry",
        now: int,
        lt: int,
        affordable_gas: Callable[[], int],
    ) -> None:
        self.message = message
        self.journal = journal
        self.meter = meter
        self.config = config
        self.registry = registry
        self.now = int(now)
        self.lt = int(lt)
        self.actions: List[Action] = []
        self.contract: Optional["Contract"] = None
        self._affordable_gas = affordable_gas

    # ------------------------------------------------------------------ #
    # Read-only facts
    # ------------------------------------------------------------------ #

    @property
    def self_address(self) -> Address:
        return self.message.destination

    @property
    def sender(self) -> Optional[Address]:
        return self.message.sender

    @property
    def value(self) -> int:
        return self.message.value

    @property
    def body(self) -> Body:
        return self.message.body

    @property
    def balance(self) -> int:
        """Balance before this transaction's actions (rent paid, inbound value credited)."""
        return int(self.journal.get("balance"))

    @property
    def static(self) -> Mapping[str, Any]:
        return dict(self.journal.get("immutable_data") or {})

    @property
    def is_external(self) -> bool:
        return self.message.is_external

    @property
    def signer_key(self) -> Optional[bytes]:
        hdr = self.message.headers
        return hdr.signer_key if hdr is not None else None

    @property
    def accepted(self) -> bool:
        return self.meter.accepted

    # ------------------------------------------------------------------ #
    # Gas / acceptance
    # ------------------------------------------------------------------ #

    def accept(self) -> None:
        """
        Commit to paying for an external message from the account balance.

        Moves the replay watermark to the message timestamp (journaled) and
        lifts the gas limit from the admission credit to what the balance
        covers. No-op for internal messages.
        """
        if not self.message.is_external or self.meter.accepted:
            return
        hdr = self.message.headers
        limit = self._affordable_gas()
        if limit < self.meter.used:
            raise OutOfGas("balance cannot cover gas used before accept()",
                           data={"used": self.meter.used, "affordable": limit})
        self.meter.accept(limit)
        self.journal.set("last_accepted_timestamp", hdr.timestamp)

    def consume_gas(self, amount: int) -> None:
        self.meter.debit(amount, reason="explicit")

    # ------------------------------------------------------------------ #
    # Actions
    # ------------------------------------------------------------------ #

    def _push(self, action: Action) -> None:
        if len(self.actions) >= self.config.limits.max_actions:
            raise ComputeFailure(
                "too many actions",
                code="ACTION_LIMIT",
                data={"max_actions": self.config.limits.max_actions},
            )
        self.meter.debit(self.config.gas.per_action, reason="action")
        self.actions.append(action)

    def send(
        self,
        destination: bytes,
        body: Optional[Body] = None,
        *,
        value: int = 0,
        bounce: bool = True,
        init: Optional[InitPayload] = None,
        ignore_errors: bool = False,
        carry_all_balance: bool = False,
        carry_inbound_value: bool = False,
    ) -> Message:
        if value < 0:
            raise ComputeFailure("negative message value", code="BAD_VALUE")
        msg = Message.internal(
            sender=self.self_address,
            destination=destination,
            body=body,
            value=value,
            bounce=bounce,
            init=init,
            created_lt=self.lt,
        )
        self._push(
            SendMessage(
                msg,
                ignore_errors=ignore_errors,
                carry_all_balance=carry_all_balance,
                carry_inbound_value=carry_inbound_value,
            )
        )
        return msg

    def call(self, destination: bytes, selector: int, *args: Any, **kwargs: Any) -> Message:
        return self.send(destination, Body.call(selector, *args), **kwargs)

    def reserve(self, amount: int, mode: ReserveMode = ReserveMode.EXACT, *,
                ignore_errors: bool = False) -> None:
        self._push(Reserve(int(amount), ReserveMode(mode), ignore_errors=ignore_errors))

    def set_code(self, code: bytes, *, ignore_errors: bool = False) -> None:
        """Replace the code for messages processed after this transaction."""
        self._push(SetCode(bytes(code), ignore_errors=ignore_errors))

    def switch_code(self, code: bytes, data: Any = None) -> NoReturn:
        """
        Replace the code now and hand control to the new code's `on_code_upgrade`.

        State is re-initialised from the new code's defaults; `data` is the
        hand-off blob. The swap is journaled like any other compute write.
        The calling handler does not resume: the transaction continues with
        the state the new code leaves behind.
        """
        try:
            new_cls = self.registry.resolve(bytes(code))
        except MalformedCode as e:
            raise ComputeFailure("cannot switch to unknown code", code="BAD_CODE",
                                 data=e.data) from e
        self.journal.set("code", bytes(code))
        self.journal.set("code_hash", new_cls.code_hash())
        self.contract = new_cls(new_cls.default_state(), self.static)
        self.contract.on_code_upgrade(self, data)
        raise CodeSwitched()

    def answer(self, answer_selector: int, *values: Any, value: int = 0) -> Message:
        """Reply to the sender of a responsible call."""
        if self.sender is None:
            raise ComputeFailure("external messages have no sender to answer", code="NO_SENDER")
        return self.send(self.sender, Body.call(answer_selector, *values), value=value, bounce=False)

    # ------------------------------------------------------------------ #
    # Failure helpers
    # ------------------------------------------------------------------ #

    def abort(self, exit_code: int = 100, reason: Optional[str] = None) -> NoReturn:
        raise Abort(reason or "aborted", exit_code=exit_code, reason=reason)

    def require(self, condition: Any, exit_code: int = 100, reason: Optional[str] = None) -> None:
        if not condition:
            self.abort(exit_code, reason)

    # ------------------------------------------------------------------ #
    # Pure helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def derive_address(code: bytes, data: Optional[Dict[str, Any]] = None) -> Address:
        return derive(code, data)


__all__ = ["CodeSwitched", "TxContext"]
