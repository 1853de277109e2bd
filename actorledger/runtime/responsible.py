"""
actorledger.runtime.responsible — call/answer convention and local getters.

A *responsible* call passes, as its first argument, the selector of a function
on the caller that should receive the result. The callee replies with
``ctx.answer(answer_selector, *values)``, which is an ordinary internal
message. The engine does not special-case any of this.

What it does provide is a synthetic run: `simulate_call` executes the callee's
handler on a copy with unlimited gas, applies nothing, and returns the
messages it would send. `read_answer` picks the reply addressed to the
synthetic caller, which gives clients a read-only "remote getter":

    values = engine.call_getter(wallet, GET_BALANCE)
"""

from __future__ import annotations

import hashlib
from typing import Any, Iterable, Optional, Tuple

from ..address import Address
from ..errors import ComputeFailure
from ..state.accounts import Account
from ..types.message import Body, Message
from .executor import TransactionExecutor

GETTER_CALLER = Address(hashlib.sha3_256(b"actorledger.getter").digest())

DEFAULT_ANSWER_SELECTOR = 0xFFFF_FFFE


def responsible_args(answer_selector: int, *args: Any) -> Tuple[Any, ...]:
    return (int(answer_selector),) + tuple(args)


def responsible_body(selector: int, answer_selector: int, *args: Any) -> Body:
    return Body.call(selector, *responsible_args(answer_selector, *args))


def simulate_call(
    executor: TransactionExecutor,
    account: Account,
    body: Body,
    *,
    sender: Optional[bytes] = None,
    value: int = 0,
    now: int = 0,
    lt: int = 0,
) -> list:
    msg = Message.internal(
        sender=sender or GETTER_CALLER,
        destination=account.address,
        body=body,
        value=value,
        bounce=False,
        created_lt=lt,
    )
    return executor.simulate(account, msg, now=now, lt=lt)


def read_answer(messages: Iterable[Message], caller: bytes, answer_selector: int) -> Tuple[Any, ...]:
    for m in messages:
        if bytes(m.destination) == bytes(caller) and m.body.selector == answer_selector:
            return tuple(m.body.args)
    raise ComputeFailure("callee sent no answer", code="NO_ANSWER",
                         data={"answer_selector": answer_selector})


__all__ = [
    "GETTER_CALLER",
    "DEFAULT_ANSWER_SELECTOR",
    "responsible_args",
    "responsible_body",
    "simulate_call",
    "read_answer",
]
