"""
actorledger.runtime.bounce — synthesizing bounce messages.

When a bounce-flagged internal message fails (compute failure or action
rollback), the receiver sends back an internal message:

- destination: the original sender
- body: the original selector plus as many *leading* arguments as fit the byte
  budget (canonical-CBOR size of each argument, summed); the rest is dropped
- ``bounced=True`` so the sender's `on_bounce` hook handles it
- ``bounce=False``: bounces never cascade
- value: what is left of the inbound value after the gas fee and the forward
  fee. If nothing is left the bounce is dropped silently.
"""

from __future__ import annotations

from typing import Optional

from .. import encoding
from ..types.message import Body, Message


def truncate_body(body: Body, budget: int) -> Body:
    kept = []
    used = 0
    for arg in body.args:
        size = encoding.encoded_size(arg)
        if used + size > budget:
            break
        kept.append(arg)
        used += size
    return Body(selector=body.selector, args=tuple(kept), bounced=True)


def make_bounce(original: Message, value: int, budget: int, *, created_lt: int = 0) -> Message:
    if original.sender is None:
        raise ValueError("cannot bounce a message without a sender")
    return Message.internal(
        sender=original.destination,
        destination=original.sender,
        body=truncate_body(original.body, budget),
        value=value,
        bounce=False,
        created_lt=created_lt,
    )


def is_bounceable(message: Message) -> bool:
    return message.is_internal and message.bounce and not message.body.bounced


class BounceCoordinator:
    def __init__(self, *, budget: int, forward_fee: int) -> None:
        self.budget = int(budget)
        self.forward_fee = int(forward_fee)

    def bounce_value(self, original: Message, gas_fee: int) -> int:
        return original.value - int(gas_fee) - self.forward_fee

    def bounce_for(self, original: Message, *, gas_fee: int, lt: int = 0) -> Optional[Message]:
        """The bounce to send for a failed `original`, or None when it is not sent."""
        if not is_bounceable(original):
            return None
        value = self.bounce_value(original, gas_fee)
        if value <= 0:
            return None
        return make_bounce(original, value, self.budget, created_lt=lt)


__all__ = ["truncate_body", "make_bounce", "is_bounceable", "BounceCoordinator"]
