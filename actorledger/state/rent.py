"""
actorledger.state.rent — storage rent collection.

Rent accrues per logical time unit at ``policy.rate(storage_size)`` and is
collected lazily, at the start of every transaction touching the account (and
by explicit sweeps). Collection happens before compute and is never undone by
a later rollback.

Outcomes of `collect_rent` on a working copy:

- enough balance          → balance -= due
- not enough, ACTIVE      → balance drained to 0, account FROZEN
- not enough, UNINITIALIZED → balance drained to 0, account deleted
- FROZEN                  → no rent; deleted once it has sat at zero balance
                            for ``policy.frozen_grace`` time units
"""

from __future__ import annotations

from typing import NamedTuple

from ..config import RentPolicy
from .accounts import Account, Lifecycle


class RentOutcome(NamedTuple):
    debited: int = 0
    froze: bool = False
    deleted: bool = False


def rent_due(account: Account, elapsed: int, policy: RentPolicy) -> int:
    if account.lifecycle in (Lifecycle.FROZEN, Lifecycle.DELETED):
        return 0
    return policy.rent(account.storage_size(), elapsed)


def collect_rent(account: Account, now: int, policy: RentPolicy) -> RentOutcome:
    """Charge rent on `account` (mutated in place) up to logical time `now`."""
    if account.lifecycle is Lifecycle.DELETED:
        return RentOutcome(deleted=True)

    elapsed = int(now) - account.last_rent_time
    if elapsed > 0:
        account.last_rent_time = int(now)

    if account.lifecycle is Lifecycle.FROZEN:
        return RentOutcome(deleted=_grace_expired(account, now, policy))

    due = rent_due(account, elapsed, policy)
    if due <= account.balance:
        account.balance -= due
        return RentOutcome(debited=due)

    debited = account.balance
    account.balance = 0
    if account.lifecycle is Lifecycle.UNINITIALIZED:
        account.lifecycle = Lifecycle.DELETED
        return RentOutcome(debited=debited, deleted=True)

    account.freeze(now)
    return RentOutcome(debited=debited, froze=True, deleted=_grace_expired(account, now, policy))


def _grace_expired(account: Account, now: int, policy: RentPolicy) -> bool:
    if account.balance > 0 or account.frozen_since is None:
        return False
    if int(now) - account.frozen_since < policy.frozen_grace:
        return False
    account.lifecycle = Lifecycle.DELETED
    return True


__all__ = ["RentOutcome", "rent_due", "collect_rent"]
