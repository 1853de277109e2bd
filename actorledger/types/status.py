"""
actorledger.types.status — transaction phases and outcomes.

TxPhase is the per-transaction state machine:

    ADMITTED → COMPUTING → (COMPUTE_FAILED | COMPUTE_OK) → ACTING → (COMMITTED | ROLLED_BACK)

TxStatus is the terminal classification stored on a TransactionResult.
ExternalOutcome is what a client polling for an external message observes.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from ..errors import AdmissionError
    from .result import TransactionResult


class TxPhase(str, Enum):
    ADMITTED = "admitted"
    COMPUTING = "computing"
    COMPUTE_FAILED = "compute_failed"
    COMPUTE_OK = "compute_ok"
    ACTING = "acting"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TxStatus(str, Enum):
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    COMPUTE_FAILED = "compute_failed"
    # External message never accepted: no transaction, nothing persisted.
    DISCARDED = "discarded"
    FAULT = "fault"

    @property
    def is_success(self) -> bool:
        return self is TxStatus.COMMITTED

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


class ExternalOutcome(str, Enum):
    ACCEPTED_COMMITTED = "accepted-and-committed"
    ACCEPTED_ROLLED_BACK = "accepted-and-rolled-back"
    REJECTED_AT_ADMISSION = "rejected-at-admission"
    EXPIRED_NO_TRANSACTION = "expired-with-no-transaction"

    @classmethod
    def from_result(cls, result: "TransactionResult") -> "ExternalOutcome":
        if result.status is TxStatus.COMMITTED:
            return cls.ACCEPTED_COMMITTED
        if result.status is TxStatus.DISCARDED:
            # passed admission but never accepted: it lapses at its expiry
            return cls.EXPIRED_NO_TRANSACTION
        if result.accepted:
            return cls.ACCEPTED_ROLLED_BACK
        return cls.REJECTED_AT_ADMISSION

    @classmethod
    def from_error(cls, err: "AdmissionError") -> "ExternalOutcome":
        if getattr(err, "code", None) == "EXPIRED":
            return cls.EXPIRED_NO_TRANSACTION
        return cls.REJECTED_AT_ADMISSION

    @classmethod
    def classify(
        cls,
        result: Optional["TransactionResult"] = None,
        error: Optional["AdmissionError"] = None,
    ) -> "ExternalOutcome":
        if error is not None:
            return cls.from_error(error)
        if result is None:
            raise ValueError("need a result or an admission error")
        return cls.from_result(result)


__all__ = ["TxPhase", "TxStatus", "ExternalOutcome"]
