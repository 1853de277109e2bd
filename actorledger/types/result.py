"""
actorledger.types.result — transaction results and account snapshots.

`TransactionResult` is the immutable record the executor returns for every
processed message. It is JSON-friendly via `to_dict()` and never holds live
references into the account store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from ..address import Address
from .message import Message
from .status import TxPhase, TxStatus


@dataclass(frozen=True)
class TransactionResult:
    address: Address
    lt: int
    kind: str
    status: TxStatus
    phases: Tuple[TxPhase, ...] = ()
    rent_debited: int = 0
    gas_used: int = 0
    fees: int = 0
    out_messages: Tuple[Message, ...] = ()
    bounce: Optional[Message] = None
    error: Optional[Dict[str, Any]] = None
    exit_code: Optional[int] = None
    accepted: bool = False
    activated: bool = False

    @property
    def is_success(self) -> bool:
        return self.status is TxStatus.COMMITTED

    @property
    def rolled_back(self) -> bool:
        return TxPhase.ROLLED_BACK in self.phases

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": str(self.address),
            "lt": self.lt,
            "kind": self.kind,
            "status": self.status.value,
            "phases": [p.value for p in self.phases],
            "rentDebited": self.rent_debited,
            "gasUsed": self.gas_used,
            "fees": self.fees,
            "outMessages": len(self.out_messages),
            "bounce": self.bounce is not None,
            "error": self.error,
            "exitCode": self.exit_code,
            "accepted": self.accepted,
            "activated": self.activated,
        }


@dataclass(frozen=True)
class AccountSnapshot:
    """Read-only view returned by `Engine.query`."""

    address: Address
    lifecycle: str
    balance: int
    decoded_state: Optional[Any] = None
    last_accepted_timestamp: int = 0
    code_hash: Optional[bytes] = None


__all__ = ["TransactionResult", "AccountSnapshot"]
