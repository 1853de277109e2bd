"""
actorledger.runtime.platform — fixed platform code and upgradable applications.

An account's address is bound forever to the `(code, immutable_data)` it was
deployed with, so an application that replaces its code can no longer be
found by re-deriving from its *current* code. The platform pattern works
around that:

1. `PlatformContract` is tiny and never changes. It is what gets deployed, at
   ``derive(PlatformContract.code(), {"root", "kind", "key"})``.
2. Its single `initialize(app_code, params)` call, accepted only from `root`,
   swaps in the application code immediately (`ctx.switch_code`) and hands
   over ``{"platform_code", "params"}``.
3. The application (an `Upgradable`) pins ``platform_code`` in its state and
   carries it through every later upgrade. Peers are checked by re-deriving
   from the pinned platform code and the peer's immutable data, never from
   the verifier's own current code, so two accounts on different application
   versions still recognise each other.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional

from .. import encoding
from ..address import Address, derive
from ..code import Contract, handler
from ..errors import ComputeFailure
from .context import TxContext

INITIALIZE = 0x504C_0001

EXIT_NOT_ROOT = 201


class PlatformContract(Contract):
    NAME = "platform"
    VERSION = 1
    STATIC = ("root", "kind", "key")

    @handler(INITIALIZE)
    def initialize(self, ctx: TxContext, app_code: bytes, params: Any = None) -> None:
        root = self.static.get("root")
        ctx.require(
            ctx.sender is not None and root is not None and bytes(ctx.sender) == bytes(root),
            exit_code=EXIT_NOT_ROOT,
            reason="initialize is reserved to root",
        )
        ctx.switch_code(app_code, {"platform_code": type(self).code(), "params": params})

    @classmethod
    def static_data(cls, root: bytes, kind: str, key: Any) -> Dict[str, Any]:
        return {"root": bytes(root), "kind": kind, "key": key}

    @classmethod
    def address_of(cls, root: bytes, kind: str, key: Any) -> Address:
        return derive(cls.code(), cls.static_data(root, kind, key))


class Upgradable(Contract):
    """
    Base for application code installed through a `PlatformContract`.

    Subclasses extend ``Upgradable.State`` so the pinned ``platform_code``
    survives every code switch.
    """

    STATIC = PlatformContract.STATIC

    @dataclass
    class State:
        platform_code: bytes = b""

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "platform_code" not in {f.name for f in fields(cls.State)}:
            raise TypeError(f"{cls.__name__}.State must keep a platform_code field")

    @property
    def platform_code(self) -> bytes:
        return self.state.platform_code

    def on_code_upgrade(self, ctx: TxContext, data: Any) -> None:
        hand_off = dict(data or {})
        pinned = hand_off.get("platform_code")
        if not pinned:
            raise ComputeFailure("hand-off carries no platform code", code="UPGRADE_DATA")
        prior = hand_off.get("state") or {}
        for f in fields(self.State):
            if f.name != "platform_code" and f.name in prior:
                setattr(self.state, f.name, prior[f.name])
        self.state.platform_code = bytes(pinned)
        self.on_platform_init(ctx, hand_off.get("params"), migrated=bool(prior))

    def on_platform_init(self, ctx: TxContext, params: Any, *, migrated: bool) -> None:
        """Runs after installation or upgrade. `params` is None on upgrades."""

    # ------------------------------------------------------------------ #
    # Peers & upgrades
    # ------------------------------------------------------------------ #

    def expected_peer(self, static: Mapping[str, Any]) -> Address:
        return derive(self.platform_code, dict(static))

    def is_peer(self, sender: Optional[bytes], static: Mapping[str, Any]) -> bool:
        if sender is None or not self.platform_code:
            return False
        return bytes(self.expected_peer(static)) == bytes(sender)

    def peer_static(self, key: Any, kind: Optional[str] = None) -> Dict[str, Any]:
        """Immutable data of a sibling deployed by the same root (same kind unless given)."""
        return {
            "root": self.static["root"],
            "kind": kind if kind is not None else self.static["kind"],
            "key": key,
        }

    def upgrade(self, ctx: TxContext, new_code: bytes) -> None:
        """Switch to `new_code` now, carrying the pinned platform code and the current state."""
        ctx.switch_code(
            new_code,
            {"platform_code": self.platform_code, "state": encoding.normalize(self.state)},
        )


__all__ = ["INITIALIZE", "EXIT_NOT_ROOT", "PlatformContract", "Upgradable"]
