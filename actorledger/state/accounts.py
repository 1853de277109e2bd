"""
actorledger.state.accounts — Account records and lifecycle transitions.

An Account is the persisted half of an actor:

- address                 : fixed at first assignment, never changes
- balance                 : non-negative integer
- lifecycle               : UNINITIALIZED → ACTIVE ⇄ FROZEN → DELETED
- code / immutable_data   : installed by an init payload (None until then)
- state                   : canonical-CBOR blob of the code's `State` dataclass
- last_accepted_timestamp : replay-guard watermark for external messages
- last_rent_time          : logical time rent was last collected up to
- frozen_since            : logical time the account froze (None otherwise)
- code_hash / data_hash   : kept while frozen so a thaw can be checked

This module has no database concerns. `to_record` / `from_record` convert to
and from the plain dict persisted (as CBOR) by `AccountStore`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

from .. import encoding
from ..address import Address, code_hash as _code_hash, data_hash as _data_hash
from ..errors import InsufficientBalance, SchemaMismatch


class Lifecycle(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    FROZEN = "frozen"
    DELETED = "deleted"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


@dataclass(slots=True)
class Account:
    address: Address
    balance: int = 0
    lifecycle: Lifecycle = Lifecycle.UNINITIALIZED
    code: Optional[bytes] = None
    immutable_data: Optional[Dict[str, Any]] = None
    state: bytes = b""
    last_accepted_timestamp: int = 0
    last_rent_time: int = 0
    frozen_since: Optional[int] = None
    code_hash: Optional[bytes] = None
    data_hash: Optional[bytes] = None

    def __post_init__(self) -> None:
        self.address = Address(self.address)
        if not isinstance(self.balance, int) or self.balance < 0:
            raise ValueError("balance must be a non-negative int")
        self.lifecycle = Lifecycle(self.lifecycle)

    # ----------------------- balance ---------------------------------------- #

    def credit(self, amount: int) -> None:
        amt = int(amount)
        if amt < 0:
            raise ValueError("credit amount must be non-negative")
        self.balance += amt

    def debit(self, amount: int) -> None:
        amt = int(amount)
        if amt < 0:
            raise ValueError("debit amount must be non-negative")
        if amt > self.balance:
            raise InsufficientBalance(needed=amt, available=self.balance)
        self.balance -= amt

    # ----------------------- lifecycle -------------------------------------- #

    @property
    def is_active(self) -> bool:
        return self.lifecycle is Lifecycle.ACTIVE

    def storage_size(self) -> int:
        """Bytes the account occupies for rent purposes."""
        size = len(self.state)
        if self.code:
            size += len(self.code)
        if self.immutable_data is not None:
            size += encoding.encoded_size(self.immutable_data)
        return size

    def activate(self, code: bytes, immutable_data: Dict[str, Any], state: bytes) -> None:
        self.code = bytes(code)
        self.immutable_data = dict(immutable_data)
        self.state = bytes(state)
        self.code_hash = _code_hash(self.code)
        self.data_hash = _data_hash(self.immutable_data)
        self.frozen_since = None
        self.lifecycle = Lifecycle.ACTIVE

    def freeze(self, now: int) -> None:
        # Hashes stay so the account can be thawed with the same init payload.
        self.code = None
        self.immutable_data = None
        self.state = b""
        self.frozen_since = int(now)
        self.lifecycle = Lifecycle.FROZEN

    def copy(self) -> "Account":
        data = dict(self.immutable_data) if self.immutable_data is not None else None
        return replace(self, immutable_data=data)

    # ----------------------- (de)serialization ------------------------------ #

    def to_record(self) -> Dict[str, Any]:
        return {
            "address": bytes(self.address),
            "balance": self.balance,
            "lifecycle": self.lifecycle.value,
            "code": self.code,
            "data": self.immutable_data,
            "state": self.state,
            "lastAccepted": self.last_accepted_timestamp,
            "lastRent": self.last_rent_time,
            "frozenSince": self.frozen_since,
            "codeHash": self.code_hash,
            "dataHash": self.data_hash,
        }

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "Account":
        try:
            return cls(
                address=Address(rec["address"]),
                balance=int(rec["balance"]),
                lifecycle=Lifecycle(rec["lifecycle"]),
                code=rec.get("code"),
                immutable_data=rec.get("data"),
                state=bytes(rec.get("state") or b""),
                last_accepted_timestamp=int(rec.get("lastAccepted") or 0),
                last_rent_time=int(rec.get("lastRent") or 0),
                frozen_since=rec.get("frozenSince"),
                code_hash=rec.get("codeHash"),
                data_hash=rec.get("dataHash"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SchemaMismatch(f"bad account record: {e}") from e

    def encode(self) -> bytes:
        return encoding.dumps(self.to_record())

    @classmethod
    def decode(cls, blob: bytes) -> "Account":
        rec = encoding.loads(blob)
        if not isinstance(rec, dict):
            raise SchemaMismatch("account record is not a map")
        return cls.from_record(rec)


__all__ = ["Lifecycle", "Account"]
