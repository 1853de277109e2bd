"""
Account code and helpers shared by the test-suite.

- Wallet       : owner-signed external transfers, a responsible getter
- Scripted     : runs a list of ops (sends, reserves, set_code, aborts) so
                 tests can drive the action phase precisely
- TokenWallet  : verifies peers by recomputing their address
- UpWalletV1/V2: application code installed behind a PlatformContract
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from actorledger.code import Contract, handler
from actorledger.config import EngineConfig, load_config
from actorledger.runtime.platform import EXIT_NOT_ROOT, PlatformContract, Upgradable
from actorledger.types import Body, InitPayload, ReserveMode

# selectors
SEND = 0x0000_1001
GET_SEQNO = 0x0000_1002
RUN = 0x0000_2001
NOTE = 0x0000_2002
MINT = 0x0000_3001
TRANSFER = 0x0000_3002
INCOMING = 0x0000_3003
SEND_PEER = 0x0000_4001
RECV_PEER = 0x0000_4002
UPGRADE = 0x0000_4003

# exit codes
EXIT_NOT_OWNER = 101
EXIT_NO_TOKENS = 102
EXIT_NOT_PEER = 103


def make_config(**overrides: Any) -> EngineConfig:
    """Engine config with no rent and no fees unless a test asks for them."""
    base: Dict[str, Any] = dict(base_rate=0, byte_rate=0, gas_price=0, forward_fee=0)
    base.update(overrides)
    return load_config(env={}, overrides=base)


# ============================================================================
# Wallet
# ============================================================================


class Wallet(Contract):
    NAME = "wallet"
    STATIC = ("owner",)

    @dataclass
    class State:
        seqno: int = 0
        bounced: List[Any] = field(default_factory=list)

    def on_deploy(self, ctx) -> None:
        ctx.accept()

    @handler(SEND)
    def send(self, ctx, dest, amount, selector=None, args=(), bounce=True):
        ctx.require(ctx.is_external, exit_code=EXIT_NOT_OWNER)
        ctx.require(ctx.signer_key == self.static["owner"], exit_code=EXIT_NOT_OWNER)
        ctx.accept()
        self.state.seqno += 1
        body = Body.call(selector, *args) if selector is not None else None
        ctx.send(dest, body, value=amount, bounce=bounce)

    @handler(GET_SEQNO)
    def get_seqno(self, ctx, answer_selector):
        ctx.answer(answer_selector, self.state.seqno)

    def on_bounce(self, ctx, selector, *args) -> None:
        self.state.bounced.append([selector, list(args)])


# ============================================================================
# Scripted
# ============================================================================


def send_op(dest: bytes, value: int = 0, **opts: Any) -> list:
    """["send", dest, value, opts]; opts: sel, args, bounce, ignore, all, inbound, init."""
    return ["send", bytes(dest), int(value), opts]


class Scripted(Contract):
    NAME = "scripted"
    STATIC = ("tag",)

    @dataclass
    class State:
        counter: int = 0
        seen: List[Any] = field(default_factory=list)

    @handler(RUN)
    def run(self, ctx, script):
        for op in script:
            kind = op[0]
            if kind == "count":
                self.state.counter += 1
            elif kind == "balance":
                self.state.seen.append(ctx.balance)
            elif kind == "send":
                _, dest, value, opts = op
                body = None
                if opts.get("sel") is not None:
                    body = Body.call(opts["sel"], *opts.get("args", ()))
                init = None
                if opts.get("init") is not None:
                    init = InitPayload(opts["init"][0], opts["init"][1])
                ctx.send(
                    dest,
                    body,
                    value=value,
                    bounce=opts.get("bounce", True),
                    init=init,
                    ignore_errors=opts.get("ignore", False),
                    carry_all_balance=opts.get("all", False),
                    carry_inbound_value=opts.get("inbound", False),
                )
            elif kind == "reserve":
                ctx.reserve(op[1], ReserveMode(op[2]), ignore_errors=op[3] if len(op) > 3 else False)
            elif kind == "setcode":
                ctx.set_code(op[1], ignore_errors=op[2] if len(op) > 2 else False)
            elif kind == "switch":
                ctx.switch_code(op[1], op[2] if len(op) > 2 else None)
            elif kind == "guarded_switch":
                try:
                    ctx.switch_code(op[1], op[2] if len(op) > 2 else None)
                except Exception:
                    self.state.counter = -1
            elif kind == "corrupt":
                self.state = "not a state"
            elif kind == "float":
                self.state.seen.append(1.5)
            elif kind == "gas":
                ctx.consume_gas(op[1])
            elif kind == "abort":
                ctx.abort(op[1])
            elif kind == "raise":
                raise RuntimeError("boom")
            else:
                raise ValueError(f"unknown op {kind!r}")

    @handler(NOTE)
    def note(self, ctx, *args):
        self.state.seen.append(list(args))

    def on_bounce(self, ctx, selector, *args) -> None:
        self.state.seen.append(["bounced", selector, list(args)])


class ScriptedV2(Scripted):
    VERSION = 2

    def on_code_upgrade(self, ctx, data):
        self.state.counter = int(data or 0)
        self.state.seen.append("v2")


class Unregistered(Contract):
    """Never registered with the test engines."""

    NAME = "unregistered"
    STATIC = ("tag",)


# ============================================================================
# Peer verification
# ============================================================================


class TokenWallet(Contract):
    NAME = "token-wallet"
    STATIC = ("root", "owner")

    @dataclass
    class State:
        tokens: int = 0

    def _peer(self, ctx, owner) -> bytes:
        return ctx.derive_address(type(self).code(), {"root": self.static["root"], "owner": owner})

    @handler(MINT)
    def mint(self, ctx, amount):
        ctx.require(ctx.sender == self.static["root"], exit_code=EXIT_NOT_ROOT)
        self.state.tokens += amount

    @handler(TRANSFER)
    def transfer(self, ctx, to_owner, amount, attach):
        ctx.require(ctx.sender == self.static["root"], exit_code=EXIT_NOT_ROOT)
        ctx.require(self.state.tokens >= amount, exit_code=EXIT_NO_TOKENS)
        self.state.tokens -= amount
        ctx.send(self._peer(ctx, to_owner), Body.call(INCOMING, self.static["owner"], amount),
                 value=attach, bounce=True)

    @handler(INCOMING)
    def incoming(self, ctx, from_owner, amount):
        ctx.require(self._peer(ctx, from_owner) == ctx.sender, exit_code=EXIT_NOT_PEER)
        self.state.tokens += amount

    def on_bounce(self, ctx, selector, *args) -> None:
        # args may have been truncated away
        if selector == INCOMING and len(args) >= 2:
            self.state.tokens += args[1]


# ============================================================================
# Upgradable application code
# ============================================================================


class UpWalletV1(Upgradable):
    NAME = "up-wallet"
    VERSION = 1

    @dataclass
    class State(Upgradable.State):
        tokens: int = 0

    def on_platform_init(self, ctx, params, *, migrated):
        if params:
            self.state.tokens = params.get("tokens", 0)

    def _only_root(self, ctx) -> None:
        ctx.require(ctx.sender == self.static["root"], exit_code=EXIT_NOT_ROOT)

    @handler(SEND_PEER)
    def send_peer(self, ctx, to_key, amount):
        self._only_root(ctx)
        ctx.require(self.state.tokens >= amount, exit_code=EXIT_NO_TOKENS)
        self.state.tokens -= amount
        peer = self.expected_peer(self.peer_static(to_key))
        ctx.send(peer, Body.call(RECV_PEER, self.static["key"], amount), value=500)

    @handler(RECV_PEER)
    def recv_peer(self, ctx, from_key, amount):
        ctx.require(self.is_peer(ctx.sender, self.peer_static(from_key)), exit_code=EXIT_NOT_PEER)
        self.state.tokens += amount

    @handler(UPGRADE)
    def do_upgrade(self, ctx, new_code):
        self._only_root(ctx)
        self.upgrade(ctx, new_code)


class UpWalletV2(UpWalletV1):
    VERSION = 2

    @dataclass
    class State(UpWalletV1.State):
        memo: str = ""

    def on_platform_init(self, ctx, params, *, migrated):
        super().on_platform_init(ctx, params, migrated=migrated)
        if migrated:
            self.state.memo = "v2"


ALL_CONTRACTS = (
    Wallet,
    Scripted,
    ScriptedV2,
    TokenWallet,
    PlatformContract,
    UpWalletV1,
    UpWalletV2,
)
