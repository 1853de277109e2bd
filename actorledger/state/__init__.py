"""Account records, rent, per-transaction journaling and the persistent store."""

from .accounts import Account, Lifecycle
from .journal import Journal
from .rent import RentOutcome, collect_rent
from .store import AccountStore, StoreBatch

__all__ = [
    "Account",
    "Lifecycle",
    "Journal",
    "RentOutcome",
    "collect_rent",
    "AccountStore",
    "StoreBatch",
]
