"""
actorledger.runtime — transaction execution.

- context     : TxContext handed to every handler
- actions     : the action phase
- executor    : TransactionExecutor (compute/action, rollback, bounce-or-drop)
- bounce      : bounce synthesis and body truncation
- replay      : ReplayGuard admission for external messages
- responsible : call/answer convention and synthetic getter runs
- platform    : PlatformContract and the Upgradable base
"""

from .bounce import BounceCoordinator, make_bounce, truncate_body
from .context import TxContext
from .executor import TransactionExecutor, TxOutcome
from .replay import ReplayGuard

__all__ = [
    "BounceCoordinator",
    "make_bounce",
    "truncate_body",
    "TxContext",
    "TransactionExecutor",
    "TxOutcome",
    "ReplayGuard",
]
