"""
actorledger.gas — GasMeter with an external-message admission credit.

The meter tracks one transaction's gas during the compute phase:

- Internal messages start with ``limit = min(max_gas, balance // gas_price)``;
  the account pays from its own balance without any explicit accept.
- External messages start with ``limit = admission_credit`` and ``accepted =
  False``. Consuming past the credit before `accept()` raises `OutOfGas`, and
  the executor discards the message without a transaction. `accept()` lifts
  the limit to what the account can afford.

Charging is deterministic: handlers are metered by the executor at fixed
points (entry, each buffered action, re-encoded state bytes) plus explicit
`ctx.consume_gas(n)` calls from account code.
"""

from __future__ import annotations

from typing import Optional

from .errors import OutOfGas

UNLIMITED = 1 << 62


class GasMeter:
    """
    Deterministic gas meter.

    Parameters
    ----------
    limit : int
        Gas available right now (the credit for unaccepted external messages).
    accepted : bool
        Whether the account has already committed to paying.
    """

    __slots__ = ("_limit", "_used", "_accepted")

    def __init__(self, limit: int, *, accepted: bool = True) -> None:
        lim = int(limit)
        if lim < 0:
            raise ValueError("gas limit must be non-negative")
        self._limit = lim
        self._used = 0
        self._accepted = bool(accepted)

    @classmethod
    def unlimited(cls) -> "GasMeter":
        return cls(UNLIMITED, accepted=True)

    # --------------------------- properties ---------------------------------

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def used(self) -> int:
        return self._used

    @property
    def remaining(self) -> int:
        rem = self._limit - self._used
        return rem if rem > 0 else 0

    @property
    def accepted(self) -> bool:
        return self._accepted

    # --------------------------- operations ---------------------------------

    def debit(self, amount: int, *, reason: Optional[str] = None) -> None:
        """Consume `amount` gas, raising OutOfGas if insufficient remains."""
        amt = int(amount)
        if amt < 0:
            raise ValueError("gas amount must be non-negative")
        if amt > self.remaining:
            msg = "out of gas" if self._accepted else "admission credit exhausted before accept()"
            if reason:
                msg = f"{msg}: {reason}"
            self._used = self._limit
            raise OutOfGas(msg, data={"limit": self._limit, "accepted": self._accepted})
        self._used += amt

    def accept(self, new_limit: int) -> None:
        """Switch from the admission credit to a paid limit (never lowers the limit)."""
        self._accepted = True
        self._limit = max(self._limit, int(new_limit), self._used)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return (
            f"GasMeter(limit={self._limit}, used={self._used}, "
            f"accepted={self._accepted}, remaining={self.remaining})"
        )


__all__ = ["GasMeter", "UNLIMITED"]
