"""
actorledger.types.message — inbound/outbound messages.

Two kinds:

* INTERNAL — sent by one account to another; carries `sender` and `value`.
  Immutable once enqueued on the bus.
* EXTERNAL — originates outside the account graph; carries `headers`
  (timestamp, expire, signer key, signature) and no value.

`Body` is the function selector plus positional arguments. A body with
``selector=None`` is a plain value transfer. Bounced bodies have
``bounced=True`` and are routed to the receiver's `on_bounce` hook.

Wire form (`to_wire`/`from_wire`) is a plain dict used for canonical hashing
and for persisting bus entries.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .. import encoding
from ..address import Address, derive

_U32 = 0xFFFFFFFF


class MessageKind(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


@dataclass(frozen=True)
class Body:
    selector: Optional[int] = None
    args: Tuple[Any, ...] = ()
    bounced: bool = False

    def __post_init__(self) -> None:
        if self.selector is not None:
            if not isinstance(self.selector, int) or not (0 <= self.selector <= _U32):
                raise ValueError("selector must be a u32 or None")
        object.__setattr__(self, "args", tuple(self.args))

    @classmethod
    def call(cls, selector: int, *args: Any) -> "Body":
        return cls(selector=selector, args=args)

    @property
    def is_transfer(self) -> bool:
        return self.selector is None

    def to_wire(self) -> Dict[str, Any]:
        return {"s": self.selector, "a": list(self.args), "b": self.bounced}

    @classmethod
    def from_wire(cls, d: Mapping[str, Any]) -> "Body":
        return cls(selector=d.get("s"), args=tuple(d.get("a") or ()), bounced=bool(d.get("b")))

    def encoded_size(self) -> int:
        return encoding.encoded_size(self.to_wire())


@dataclass(frozen=True)
class InitPayload:
    """Code + immutable data for deploying (or thawing) the destination."""

    code: bytes
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", bytes(self.code))
        object.__setattr__(self, "data", dict(self.data))

    def address(self) -> Address:
        return derive(self.code, self.data)

    def to_wire(self) -> Dict[str, Any]:
        return {"code": self.code, "data": self.data}

    @classmethod
    def from_wire(cls, d: Mapping[str, Any]) -> "InitPayload":
        return cls(code=d["code"], data=d.get("data") or {})


@dataclass(frozen=True)
class ExternalHeaders:
    timestamp: int
    expire: int
    signer_key: bytes = b""
    signature: bytes = b""

    def to_wire(self, *, with_signature: bool = True) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "ts": int(self.timestamp),
            "exp": int(self.expire),
            "key": bytes(self.signer_key),
        }
        if with_signature:
            out["sig"] = bytes(self.signature)
        return out

    @classmethod
    def from_wire(cls, d: Mapping[str, Any]) -> "ExternalHeaders":
        return cls(
            timestamp=int(d["ts"]),
            expire=int(d["exp"]),
            signer_key=bytes(d.get("key") or b""),
            signature=bytes(d.get("sig") or b""),
        )


@dataclass(frozen=True)
class Message:
    kind: MessageKind
    destination: Address
    body: Body = Body()
    sender: Optional[Address] = None
    value: int = 0
    bounce: bool = False
    init: Optional[InitPayload] = None
    headers: Optional[ExternalHeaders] = None
    created_lt: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "destination", Address(self.destination))
        if self.sender is not None:
            object.__setattr__(self, "sender", Address(self.sender))
        if self.value < 0:
            raise ValueError("message value must be non-negative")
        if self.kind is MessageKind.INTERNAL:
            if self.sender is None:
                raise ValueError("internal messages need a sender")
            if self.headers is not None:
                raise ValueError("internal messages carry no external headers")
        else:
            if self.headers is None:
                raise ValueError("external messages need headers")
            if self.value:
                raise ValueError("external messages carry no value")

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def internal(
        cls,
        sender: bytes,
        destination: bytes,
        body: Optional[Body] = None,
        *,
        value: int = 0,
        bounce: bool = True,
        init: Optional[InitPayload] = None,
        created_lt: int = 0,
    ) -> "Message":
        return cls(
            kind=MessageKind.INTERNAL,
            destination=Address(destination),
            body=body or Body(),
            sender=Address(sender),
            value=int(value),
            bounce=bool(bounce),
            init=init,
            created_lt=created_lt,
        )

    @classmethod
    def external(
        cls,
        destination: bytes,
        body: Optional[Body] = None,
        *,
        timestamp: int,
        expire: int,
        signer_key: bytes = b"",
        signature: bytes = b"",
        init: Optional[InitPayload] = None,
    ) -> "Message":
        return cls(
            kind=MessageKind.EXTERNAL,
            destination=Address(destination),
            body=body or Body(),
            init=init,
            headers=ExternalHeaders(
                timestamp=int(timestamp),
                expire=int(expire),
                signer_key=bytes(signer_key),
                signature=bytes(signature),
            ),
        )

    @property
    def is_external(self) -> bool:
        return self.kind is MessageKind.EXTERNAL

    @property
    def is_internal(self) -> bool:
        return self.kind is MessageKind.INTERNAL

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def signing_payload(self) -> bytes:
        """Canonical bytes covering the body and all headers except the signature."""
        if self.headers is None:
            raise ValueError("only external messages are signed")
        return encoding.dumps(
            {
                "dst": bytes(self.destination),
                "body": self.body.to_wire(),
                "init": self.init.to_wire() if self.init else None,
                "hdr": self.headers.to_wire(with_signature=False),
            }
        )

    def with_signature(self, signature: bytes) -> "Message":
        if self.headers is None:
            raise ValueError("only external messages are signed")
        return replace(self, headers=replace(self.headers, signature=bytes(signature)))

    def signed_by(self, signer: Any) -> "Message":
        """Fill signer_key from `signer.public_key` and sign the payload."""
        if self.headers is None:
            raise ValueError("only external messages are signed")
        keyed = replace(self, headers=replace(self.headers, signer_key=signer.public_key))
        return keyed.with_signature(signer.sign(keyed.signing_payload()))

    # ------------------------------------------------------------------
    # Wire form
    # ------------------------------------------------------------------

    def to_wire(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "dst": bytes(self.destination),
            "body": self.body.to_wire(),
            "src": bytes(self.sender) if self.sender is not None else None,
            "value": int(self.value),
            "bounce": bool(self.bounce),
            "init": self.init.to_wire() if self.init else None,
            "hdr": self.headers.to_wire() if self.headers else None,
            "lt": int(self.created_lt),
        }

    @classmethod
    def from_wire(cls, d: Mapping[str, Any]) -> "Message":
        return cls(
            kind=MessageKind(d["kind"]),
            destination=Address(d["dst"]),
            body=Body.from_wire(d.get("body") or {}),
            sender=Address(d["src"]) if d.get("src") is not None else None,
            value=int(d.get("value") or 0),
            bounce=bool(d.get("bounce")),
            init=InitPayload.from_wire(d["init"]) if d.get("init") else None,
            headers=ExternalHeaders.from_wire(d["hdr"]) if d.get("hdr") else None,
            created_lt=int(d.get("lt") or 0),
        )


__all__ = ["MessageKind", "Body", "InitPayload", "ExternalHeaders", "Message"]
