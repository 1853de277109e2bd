"""
actorledger.errors — engine exceptions.

The engine reports failures through *typed exceptions* that are converted into
transaction results (and bounce decisions) at the executor boundary.

Hierarchy
---------
LedgerError (base)
 ├─ AdmissionError     : external message refused before any transaction starts
 │   ├─ Expired
 │   ├─ StaleOrReplayed
 │   └─ BadSignature
 ├─ ComputeFailure     : logical failure inside account code (bounce-or-drop)
 │   ├─ Abort
 │   ├─ OutOfGas
 │   └─ UnknownSelector
 ├─ ActionFailure      : resource problem found while applying actions (rollback)
 │   ├─ InsufficientBalance
 │   └─ MalformedAction
 ├─ EngineFault        : malformed code / schema mismatch, fatal, never retried
 │   ├─ EncodingError
 │   ├─ SchemaMismatch
 │   └─ MalformedCode
 └─ NotFound           : no account record at an address

Notes
-----
* AdmissionError and EngineFault are surfaced to the caller immediately.
* ComputeFailure and ActionFailure are absorbed by the executor: the inbound
  message is bounced when it asked for it, otherwise its value stays where the
  action phase left it.
* Nothing in here imports other engine modules, so low-level code (gas meter,
  address derivation) can raise these without cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class LedgerError(Exception):
    """
    Base engine error.

    Attributes:
        message: Human-readable explanation.
        code:    Stable machine code string (e.g., 'EXPIRED', 'ABORT').
        data:    Optional structured details (kept JSON-serializable).
    """
    message: str = "ledger error"
    code: str = "LEDGER_ERROR"
    data: Optional[Dict[str, Any]] = field(default=None)

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.data:
            return f"{self.code}: {self.message} ({self.data})"
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dict for results/logs."""
        out: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out


def _merge(data: Optional[Dict[str, Any]], **extra: Any) -> Optional[Dict[str, Any]]:
    d: Dict[str, Any] = dict(data or {})
    for k, v in extra.items():
        if v is not None:
            d.setdefault(k, v)
    return d or None


# ---------------------------------------------------------------------------
# Admission
# ---------------------------------------------------------------------------


class AdmissionError(LedgerError):
    """External message refused by the replay guard; no transaction exists."""

    reason = "admission"

    def __init__(self, message: str = "admission refused", *, code: str = "ADMISSION",
                 data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=code, data=data)


class Expired(AdmissionError):
    reason = "expired"

    def __init__(self, message: str = "message expired", *, now: Optional[int] = None,
                 expire: Optional[int] = None, data: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="EXPIRED", data=_merge(data, now=now, expire=expire))


class StaleOrReplayed(AdmissionError):
    reason = "stale"

    def __init__(self, message: str = "timestamp not newer than last accepted", *,
                 timestamp: Optional[int] = None, last_accepted: Optional[int] = None,
                 data: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            code="STALE_OR_REPLAYED",
            data=_merge(data, timestamp=timestamp, last_accepted=last_accepted),
        )


class BadSignature(AdmissionError):
    reason = "bad_signature"

    def __init__(self, message: str = "signature does not verify", *,
                 data: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="BAD_SIGNATURE", data=data)


# ---------------------------------------------------------------------------
# Compute phase
# ---------------------------------------------------------------------------


class ComputeFailure(LedgerError):
    """Logical failure of account code. Discards actions and state writes."""

    def __init__(self, message: str = "compute failed", *, code: str = "COMPUTE_FAILED",
                 data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=code, data=data)


class Abort(ComputeFailure):
    """
    Explicit abort requested by account code.

    Usage inside a handler:
        ctx.require(amount > 0, exit_code=101, reason="zero amount")
        raise Abort(exit_code=102)
    """

    def __init__(self, message: str = "aborted", *, exit_code: int = 100,
                 reason: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        self.exit_code = int(exit_code)
        super().__init__(message, code="ABORT",
                         data=_merge(data, exit_code=self.exit_code, reason=reason))


class OutOfGas(ComputeFailure):
    def __init__(self, message: str = "out of gas", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="OUT_OF_GAS", data=data)


class UnknownSelector(ComputeFailure):
    def __init__(self, selector: Optional[int], *, data: Optional[Dict[str, Any]] = None):
        self.selector = selector
        super().__init__(f"no handler for selector {selector!r}", code="UNKNOWN_SELECTOR",
                         data=_merge(data, selector=selector))


# ---------------------------------------------------------------------------
# Action phase
# ---------------------------------------------------------------------------


class ActionFailure(LedgerError):
    """An action could not be applied; the whole batch is rolled back."""

    def __init__(self, message: str = "action failed", *, code: str = "ACTION_FAILED",
                 index: Optional[int] = None, data: Optional[Dict[str, Any]] = None):
        self.index = index
        super().__init__(message=message, code=code, data=_merge(data, index=index))


class InsufficientBalance(ActionFailure):
    def __init__(self, message: str = "insufficient balance", *, index: Optional[int] = None,
                 needed: Optional[int] = None, available: Optional[int] = None,
                 data: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="INSUFFICIENT_BALANCE", index=index,
                         data=_merge(data, needed=needed, available=available))


class MalformedAction(ActionFailure):
    def __init__(self, message: str = "malformed action", *, index: Optional[int] = None,
                 data: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="MALFORMED_ACTION", index=index, data=data)


# ---------------------------------------------------------------------------
# Engine faults
# ---------------------------------------------------------------------------


class EngineFault(LedgerError):
    """Fatal to the transaction and never retried (bad code, bad schema)."""

    def __init__(self, message: str = "engine fault", *, code: str = "ENGINE_FAULT",
                 data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=code, data=data)


class EncodingError(EngineFault):
    def __init__(self, message: str = "encoding error", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="ENCODING_ERROR", data=data)


class SchemaMismatch(EngineFault):
    def __init__(self, message: str = "state does not match code schema", *,
                 data: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="SCHEMA_MISMATCH", data=data)


class MalformedCode(EngineFault):
    def __init__(self, message: str = "malformed or unknown code", *,
                 code_hash: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="MALFORMED_CODE", data=_merge(data, code_hash=code_hash))


class NotFound(LedgerError):
    def __init__(self, address: Any = None, *, data: Optional[Dict[str, Any]] = None):
        addr = str(address) if address is not None else None
        super().__init__(message=f"account not found: {addr}", code="NOT_FOUND",
                         data=_merge(data, address=addr))


__all__ = [
    "LedgerError",
    "AdmissionError",
    "Expired",
    "StaleOrReplayed",
    "BadSignature",
    "ComputeFailure",
    "Abort",
    "OutOfGas",
    "UnknownSelector",
    "ActionFailure",
    "InsufficientBalance",
    "MalformedAction",
    "EngineFault",
    "EncodingError",
    "SchemaMismatch",
    "MalformedCode",
    "NotFound",
]
