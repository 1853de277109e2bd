"""
actorledger.types.actions — effects buffered during the compute phase.

Account code never mutates balances or the bus directly. It records actions
on its `TxContext`, and the action phase applies the whole batch, in order,
after compute succeeds:

* `SendMessage` — enqueue an internal message, debiting its value (plus the
  forward fee) from the account balance.
* `Reserve`     — set balance aside so later sends cannot spend it.
  ``EXACT`` reserves `amount`; ``ALL_BUT`` reserves everything except `amount`.
* `SetCode`     — replace the account code for messages processed *after*
  this transaction.

Each action may be tagged ``ignore_errors``: if it fails it is skipped instead
of rolling back the batch.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Union

from .message import Message


class ReserveMode(IntEnum):
    EXACT = 0
    ALL_BUT = 1


@dataclass(frozen=True)
class SendMessage:
    message: Message
    ignore_errors: bool = False
    # Send everything not reserved instead of message.value (the batch ends here for value).
    carry_all_balance: bool = False
    # Add the inbound message's remaining value on top of message.value.
    carry_inbound_value: bool = False


@dataclass(frozen=True)
class Reserve:
    amount: int
    mode: ReserveMode = ReserveMode.EXACT
    ignore_errors: bool = False


@dataclass(frozen=True)
class SetCode:
    code: bytes
    ignore_errors: bool = False


Action = Union[SendMessage, Reserve, SetCode]

__all__ = ["ReserveMode", "SendMessage", "Reserve", "SetCode", "Action"]
