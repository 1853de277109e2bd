"""
actorledger.runtime.actions — the action phase.

Applies the compute phase's buffered actions in order against the journal's
balance:

- Reserve(EXACT, n)   : set aside n (fails if more than the unreserved balance)
- Reserve(ALL_BUT, n) : set aside everything except n (fails if n exceeds it)
- SendMessage         : debit value + forward fee from the unreserved balance
  and emit the message. ``carry_inbound_value`` adds what is left of the
  inbound value (once); ``carry_all_balance`` sends everything unreserved
  minus the forward fee.
- SetCode             : record a code replacement that takes effect for the
  next transaction (the code must be known to the registry)

An action that fails with ``ignore_errors`` is skipped. Any other failure
raises `ActionFailure` carrying the action index; the executor then rolls the
whole transaction back.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, TYPE_CHECKING

from ..address import code_hash
from ..errors import ActionFailure, InsufficientBalance, MalformedAction
from ..logging import get_logger
from ..state.journal import Journal
from ..types.actions import Action, Reserve, ReserveMode, SendMessage, SetCode
from ..types.message import Message

if TYPE_CHECKING:  # pragma: no cover
    from ..code import CodeRegistry

log = get_logger("actorledger.runtime.actions")


@dataclass
class ActionReport:
    out_messages: List[Message] = field(default_factory=list)
    fees: int = 0
    reserved: int = 0
    new_code: Optional[bytes] = None
    skipped: List[int] = field(default_factory=list)


def apply_actions(
    journal: Journal,
    actions: Sequence[Action],
    *,
    inbound_value: int,
    forward_fee: int,
    registry: "CodeRegistry",
) -> ActionReport:
    """Apply `actions` to the journal's top checkpoint; raise ActionFailure on the first hard failure."""
    report = ActionReport()
    balance = int(journal.get("balance"))
    carry = int(inbound_value)

    for i, action in enumerate(actions):
        try:
            if isinstance(action, Reserve):
                free = balance - report.reserved
                if action.amount < 0:
                    raise MalformedAction("negative reserve", index=i)
                amount = action.amount if action.mode is ReserveMode.EXACT else free - action.amount
                if amount < 0 or amount > free:
                    raise InsufficientBalance(index=i, needed=action.amount, available=free)
                report.reserved += amount

            elif isinstance(action, SendMessage):
                free = balance - report.reserved
                msg = action.message
                if action.carry_all_balance:
                    value = free - forward_fee
                else:
                    value = msg.value + (carry if action.carry_inbound_value else 0)
                cost = value + forward_fee
                if value < 0 or cost > free:
                    raise InsufficientBalance(index=i, needed=cost, available=free)
                balance -= cost
                if action.carry_inbound_value:
                    carry = 0
                report.fees += forward_fee
                report.out_messages.append(msg if value == msg.value else replace(msg, value=value))

            elif isinstance(action, SetCode):
                if action.code not in registry:
                    raise MalformedAction("set_code to unknown code", index=i,
                                          data={"code_hash": code_hash(action.code).hex()})
                report.new_code = action.code

            else:
                raise MalformedAction(f"unknown action {type(action).__name__}", index=i)

        except ActionFailure as e:
            if getattr(action, "ignore_errors", False):
                log.debug("action skipped", extra={"index": i, "reason": e.code})
                report.skipped.append(i)
                continue
            raise

    journal.set("balance", balance)
    if report.new_code is not None:
        journal.set("code", report.new_code)
        journal.set("code_hash", code_hash(report.new_code))
    return report


__all__ = ["ActionReport", "apply_actions"]
