"""
Upgradable accounts behind a fixed platform code: installation, upgrade with
state carried over, and peer checks across application versions.
"""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from actorledger.address import Address, derive
from actorledger.engine import GENESIS
from actorledger.runtime.platform import EXIT_NOT_ROOT, INITIALIZE, PlatformContract, Upgradable
from actorledger.tests.fixtures import (
    EXIT_NOT_PEER,
    RECV_PEER,
    RUN,
    SEND_PEER,
    UPGRADE,
    Scripted,
    UpWalletV1,
    UpWalletV2,
    send_op,
)
from actorledger.types import Body, TxStatus

ROOT = Address(b"\x11" * 32)
KIND = "up-wallet"


def install(engine, key, tokens=100, sender=ROOT):
    static = PlatformContract.static_data(ROOT, KIND, key)
    body = Body.call(INITIALIZE, UpWalletV1.code(), {"tokens": tokens})
    addr = engine.deploy_internal(sender, PlatformContract, static, value=5_000, body=body,
                                  bounce=False)
    engine.run_until_idle()
    return addr


def peer_send(engine, src, to_key, amount):
    engine.submit_internal(ROOT, src, Body.call(SEND_PEER, to_key, amount), bounce=False)
    return engine.run_until_idle()


def test_install_pins_platform_code(engine):
    a = install(engine, "a")
    assert a == PlatformContract.address_of(ROOT, KIND, "a")
    assert engine.code_of(a) is UpWalletV1

    state = engine.query(a).decoded_state
    assert state.platform_code == PlatformContract.code()
    assert state.tokens == 100


def test_peers_on_the_same_version(engine):
    a = install(engine, "a")
    b = install(engine, "b", tokens=0)
    sent, received = peer_send(engine, a, "b", 30)
    assert received.address == b
    assert received.status is TxStatus.COMMITTED
    assert engine.query(a).decoded_state.tokens == 70
    assert engine.query(b).decoded_state.tokens == 30


def test_upgrade_keeps_address_state_and_peers(engine):
    a = install(engine, "a")
    b = install(engine, "b", tokens=50)

    engine.submit_internal(ROOT, a, Body.call(UPGRADE, UpWalletV2.code()), bounce=False)
    [r] = engine.run_until_idle()
    assert r.status is TxStatus.COMMITTED
    assert engine.code_of(a) is UpWalletV2
    state = engine.query(a).decoded_state
    assert (state.tokens, state.memo) == (100, "v2")
    assert state.platform_code == PlatformContract.code()

    # re-deriving from the new code would not find the account
    static = PlatformContract.static_data(ROOT, KIND, "a")
    assert derive(UpWalletV2.code(), static) != a
    assert engine.query(a).address == a

    # V2 -> V1
    _, received = peer_send(engine, a, "b", 10)
    assert received.status is TxStatus.COMMITTED
    # V1 -> V2
    _, received = peer_send(engine, b, "a", 5)
    assert received.status is TxStatus.COMMITTED

    assert engine.query(a).decoded_state.tokens == 95
    assert engine.query(b).decoded_state.tokens == 55


def test_impostor_is_not_a_peer(engine):
    a = install(engine, "a")
    m = engine.deploy_internal(GENESIS, Scripted, {"tag": "mallory"}, value=5_000, bounce=False)
    engine.run_until_idle()

    script = [send_op(a, 500, sel=RECV_PEER, args=["b", 999])]
    engine.submit_internal(GENESIS, m, Body.call(RUN, script), bounce=False)
    _, rejected, _ = engine.run_until_idle()
    assert rejected.address == a
    assert rejected.exit_code == EXIT_NOT_PEER
    assert engine.query(a).decoded_state.tokens == 100


def test_only_root_may_initialize(engine):
    a = install(engine, "a", sender=GENESIS)
    snap = engine.query(a)
    assert snap.lifecycle == "uninitialized"
    assert snap.balance == 5_000


def test_only_root_may_upgrade(engine):
    a = install(engine, "a")
    m = engine.deploy_internal(GENESIS, Scripted, {"tag": "m"}, value=5_000, bounce=False)
    engine.run_until_idle()

    script = [send_op(a, 0, sel=UPGRADE, args=[UpWalletV2.code()], bounce=False)]
    engine.submit_internal(GENESIS, m, Body.call(RUN, script), bounce=False)
    _, r = engine.run_until_idle()
    assert r.exit_code == EXIT_NOT_ROOT
    assert engine.code_of(a) is UpWalletV1


def test_application_state_must_keep_platform_code():
    with pytest.raises(TypeError):
        class Broken(Upgradable):  # noqa: F841
            @dataclass
            class State:
                tokens: int = 0
