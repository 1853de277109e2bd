"""
actorledger.code — account code: manifests, selector dispatch, state schemas.

A contract is a Python class. Its *code blob* is the canonical CBOR encoding of
a manifest describing it:

    {"name": "wallet", "version": 1,
     "static":    ["owner"],            # immutable-data schema (address input)
     "state":     ["seqno", "limit"],   # mutable-state field names
     "selectors": [0x01, 0x02]}         # handler selectors

The blob is what accounts store and what addresses hash. A `CodeRegistry`
maps the blob's hash back to the implementing class; the engine never imports
or evaluates code from a blob.

Handlers are bound to integer selectors with `@handler(selector)`. The class
builds its dispatch table once, when it is defined, and the executor resolves
one entry per transaction:

    class Wallet(Contract):
        NAME = "wallet"
        STATIC = ("owner",)

        @dataclass
        class State:
            seqno: int = 0

        @handler(0x10)
        def transfer(self, ctx, dest, amount):
            ctx.require(ctx.sender_is_owner(), exit_code=101)
            ...

Every handler receives the explicit `TxContext` as its first argument after
`self`; there is no ambient "current account" state.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, is_dataclass
from typing import Any, Callable, ClassVar, Dict, Iterable, Optional, Tuple, Type

from . import encoding
from .address import Address, code_hash, derive
from .errors import ComputeFailure, EncodingError, MalformedCode, SchemaMismatch

_SELECTOR_ATTR = "__actorledger_selector__"

SELECTOR_MAX = 0xFFFFFFFF


def handler(selector: int) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Bind a contract method to a 32-bit selector."""
    if not isinstance(selector, int) or not (0 <= selector <= SELECTOR_MAX):
        raise ValueError("selector must be a u32")

    def deco(fn: Callable[..., Any]) -> Callable[..., Any]:
        setattr(fn, _SELECTOR_ATTR, selector)
        return fn

    return deco


@dataclass
class _NoState:
    pass


class Contract:
    """Base class for account code."""

    NAME: ClassVar[str] = "contract"
    VERSION: ClassVar[int] = 1
    STATIC: ClassVar[Tuple[str, ...]] = ()
    State: ClassVar[type] = _NoState

    _dispatch: ClassVar[Dict[int, str]] = {}
    _code_cache: ClassVar[Optional[bytes]] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        table: Dict[int, str] = {}
        for klass in reversed(cls.__mro__):
            local: Dict[int, str] = {}
            for attr, fn in vars(klass).items():
                sel = getattr(fn, _SELECTOR_ATTR, None)
                if sel is None:
                    continue
                if sel in local:
                    raise TypeError(
                        f"{klass.__name__}: selector 0x{sel:08x} bound twice "
                        f"({local[sel]!r}, {attr!r})"
                    )
                local[sel] = attr
            table.update(local)
        cls._dispatch = table
        cls._code_cache = None
        if not is_dataclass(cls.State):
            raise TypeError(f"{cls.__name__}.State must be a dataclass")

    def __init__(self, state: Any, static: Dict[str, Any]) -> None:
        self.state = state
        self.static = dict(static)

    # ------------------------------------------------------------------
    # Manifest / code blob
    # ------------------------------------------------------------------

    @classmethod
    def manifest(cls) -> Dict[str, Any]:
        return {
            "name": cls.NAME,
            "version": int(cls.VERSION),
            "static": list(cls.STATIC),
            "state": [f.name for f in fields(cls.State)],
            "selectors": sorted(cls._dispatch),
        }

    @classmethod
    def code(cls) -> bytes:
        if cls.__dict__.get("_code_cache") is None:
            cls._code_cache = encoding.dumps(cls.manifest())
        return cls._code_cache  # type: ignore[return-value]

    @classmethod
    def code_hash(cls) -> bytes:
        return code_hash(cls.code())

    @classmethod
    def address_for(cls, **immutable_data: Any) -> Address:
        return derive(cls.code(), immutable_data)

    @classmethod
    def selectors(cls) -> Iterable[int]:
        return tuple(sorted(cls._dispatch))

    # ------------------------------------------------------------------
    # State schema
    # ------------------------------------------------------------------

    @classmethod
    def default_state(cls) -> Any:
        return cls.State()

    @classmethod
    def decode_state(cls, blob: bytes) -> Any:
        if not blob:
            return cls.default_state()
        try:
            raw = encoding.loads(blob)
        except EncodingError as e:
            raise SchemaMismatch("state blob is not valid cbor", data={"code": cls.NAME}) from e
        if not isinstance(raw, dict):
            raise SchemaMismatch("state blob is not a map", data={"code": cls.NAME})
        try:
            return cls.State(**raw)
        except TypeError as e:
            raise SchemaMismatch(
                "state fields do not match code schema",
                data={"code": cls.NAME, "fields": sorted(map(str, raw))},
            ) from e

    @classmethod
    def encode_state(cls, state: Any) -> bytes:
        if not isinstance(state, cls.State):
            raise SchemaMismatch(
                f"state is {type(state).__name__}, expected {cls.State.__name__}",
                data={"code": cls.NAME},
            )
        return encoding.dumps(state)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def resolve(self, selector: int) -> Optional[Callable[..., Any]]:
        name = self._dispatch.get(selector)
        return getattr(self, name) if name is not None else None

    # Hooks -------------------------------------------------------------

    def on_deploy(self, ctx: Any) -> None:
        """Runs once, in the transaction that activates (or thaws) the account."""

    def on_receive(self, ctx: Any) -> None:
        """Plain value transfer (message without a selector). Accepts by default."""

    def on_bounce(self, ctx: Any, selector: Optional[int], *args: Any) -> None:
        """A message this account sent came back. Ignored by default."""

    def on_code_upgrade(self, ctx: Any, data: Any) -> None:
        """Entry point of new code after `ctx.switch_code(...)`."""
        raise ComputeFailure(
            f"{self.NAME} does not accept an immediate code switch",
            code="UPGRADE_UNSUPPORTED",
        )


class CodeRegistry:
    """Maps code hashes to the Contract classes that implement them."""

    def __init__(self, contracts: Iterable[Type[Contract]] = ()) -> None:
        self._by_hash: Dict[bytes, Type[Contract]] = {}
        for c in contracts:
            self.register(c)

    def register(self, contract: Type[Contract]) -> bytes:
        if not (isinstance(contract, type) and issubclass(contract, Contract)):
            raise TypeError("only Contract subclasses can be registered")
        h = contract.code_hash()
        existing = self._by_hash.get(h)
        if existing is not None and existing is not contract:
            raise MalformedCode(
                f"code hash collision between {existing.__name__} and {contract.__name__}",
                code_hash=h.hex(),
            )
        self._by_hash[h] = contract
        return contract.code()

    def resolve(self, code: Optional[bytes]) -> Type[Contract]:
        if not code:
            raise MalformedCode("account has no code")
        h = code_hash(code)
        try:
            return self._by_hash[h]
        except KeyError:
            raise MalformedCode("code is not registered with this engine", code_hash=h.hex()) from None

    def __contains__(self, code: object) -> bool:
        return isinstance(code, (bytes, bytearray)) and code_hash(bytes(code)) in self._by_hash

    def __len__(self) -> int:
        return len(self._by_hash)


__all__ = ["SELECTOR_MAX", "handler", "Contract", "CodeRegistry"]
