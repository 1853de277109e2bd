"""
End-to-end flows through the Engine facade: deployment by external message,
bounced transfers, peer verification by address recomputation, and rent on
failing transactions.
"""

from __future__ import annotations

import pytest

from actorledger.address import Address
from actorledger.engine import GENESIS
from actorledger.errors import NotFound
from actorledger.tests.fixtures import (
    EXIT_NOT_PEER,
    INCOMING,
    MINT,
    NOTE,
    RUN,
    SEND,
    TRANSFER,
    Scripted,
    TokenWallet,
    Wallet,
    send_op,
)
from actorledger.types import Body, InitPayload, TxPhase, TxStatus

ROOT = Address(b"\x11" * 32)
MISSING = Address(b"\x22" * 32)


def deploy_wallet(engine, owner, balance=10_000):
    data = {"owner": owner.public_key}
    addr = engine.derive_address(Wallet, data)
    engine.fund(addr, balance)
    engine.run_until_idle()
    engine.submit_external(engine.deploy_external(Wallet, data, signer=owner))
    return addr


def deploy_scripted(engine, tag, value=10_000):
    addr = engine.deploy_internal(GENESIS, Scripted, {"tag": tag}, value=value, bounce=False)
    engine.run_until_idle()
    return addr


# =============================================================================
# Deployment
# =============================================================================


def test_fund_derived_address_then_deploy_with_external(engine, owner):
    data = {"owner": owner.public_key}
    addr = engine.derive_address(Wallet, data)

    engine.fund(addr, 10_000)
    [funded] = engine.run_until_idle()
    assert funded.status is TxStatus.COMMITTED
    snap = engine.query(addr)
    assert snap.lifecycle == "uninitialized"
    assert snap.balance == 10_000

    result = engine.submit_external(engine.deploy_external(Wallet, data, signer=owner))
    assert result.status is TxStatus.COMMITTED
    assert result.activated and result.accepted

    snap = engine.query(addr)
    assert snap.address == addr
    assert snap.lifecycle == "active"
    assert snap.balance == 10_000
    assert snap.decoded_state == Wallet.State()
    assert snap.last_accepted_timestamp == engine.now()
    assert engine.code_of(addr) is Wallet


def test_deploy_with_internal_message(engine):
    addr = engine.deploy_internal(GENESIS, Scripted, {"tag": "x"}, value=500, bounce=False)
    assert addr == Scripted.address_for(tag="x")
    [r] = engine.run_until_idle()
    assert r.activated
    assert engine.query(addr).lifecycle == "active"


def test_init_for_another_address_is_not_installed(engine):
    # destination does not match derive(code, data): value lands, code does not
    init = InitPayload(Scripted.code(), {"tag": "real"})
    engine.submit_internal(GENESIS, MISSING, value=300, bounce=False, init=init)
    [r] = engine.run_until_idle()
    assert r.status is TxStatus.COMMITTED
    assert not r.activated
    snap = engine.query(MISSING)
    assert snap.lifecycle == "uninitialized"
    assert snap.balance == 300


# =============================================================================
# Bounce to a non-existent account
# =============================================================================


def test_transfer_to_missing_account_bounces_back(engine, owner):
    wallet = deploy_wallet(engine, owner)
    engine.advance_time(1)

    body = Body.call(SEND, MISSING, 3_000, NOTE, [7, "x"], True)
    sent = engine.submit_external(engine.external(wallet, body, signer=owner))
    assert sent.status is TxStatus.COMMITTED
    assert len(sent.out_messages) == 1
    assert engine.query(wallet).balance == 7_000

    failed, returned = engine.run_until_idle()
    assert failed.status is TxStatus.COMPUTE_FAILED
    assert failed.error["code"] == "NO_CODE"
    bounce = failed.bounce
    assert bounce.destination == wallet
    assert bounce.value == 3_000
    assert bounce.bounce is False
    assert bounce.body.bounced
    assert bounce.body.selector == NOTE

    assert returned.status is TxStatus.COMMITTED
    snap = engine.query(wallet)
    assert snap.balance == 10_000
    assert snap.decoded_state.bounced == [[NOTE, [7, "x"]]]
    assert snap.decoded_state.seqno == 1
    with pytest.raises(NotFound):
        engine.query(MISSING)


def test_non_bounceable_transfer_creates_uninitialized_account(engine):
    engine.submit_internal(GENESIS, MISSING, value=42, bounce=False)
    engine.run_until_idle()
    snap = engine.query(MISSING)
    assert (snap.lifecycle, snap.balance) == ("uninitialized", 42)


# =============================================================================
# Peer verification
# =============================================================================


def _token_wallet(engine, owner):
    return engine.deploy_internal(ROOT, TokenWallet, {"root": ROOT, "owner": owner},
                                  value=5_000, bounce=False)


def test_peer_is_verified_by_recomputing_its_address(engine):
    alice = _token_wallet(engine, b"alice")
    bob = _token_wallet(engine, b"bob")
    engine.submit_internal(ROOT, alice, Body.call(MINT, 100), value=1_000, bounce=False)
    engine.run_until_idle()

    engine.submit_internal(ROOT, alice, Body.call(TRANSFER, b"bob", 40, 1_000), bounce=False)
    results = engine.run_until_idle()
    assert [r.status for r in results] == [TxStatus.COMMITTED, TxStatus.COMMITTED]

    assert engine.query(alice).decoded_state.tokens == 60
    assert engine.query(bob).decoded_state.tokens == 40
    assert engine.query(alice).balance == 5_000
    assert engine.query(bob).balance == 6_000


def test_impostor_claiming_a_peer_identity_is_rejected(engine):
    alice = _token_wallet(engine, b"alice")
    bob = _token_wallet(engine, b"bob")
    engine.run_until_idle()
    mallory = deploy_scripted(engine, "mallory")

    script = [send_op(bob, 1_000, sel=INCOMING, args=[b"alice", 999])]
    engine.submit_internal(GENESIS, mallory, Body.call(RUN, script), bounce=False)
    sent, rejected, bounced = engine.run_until_idle()

    assert sent.status is TxStatus.COMMITTED
    assert rejected.address == bob
    assert rejected.status is TxStatus.COMPUTE_FAILED
    assert rejected.exit_code == EXIT_NOT_PEER
    assert bounced.address == mallory

    assert engine.query(bob).decoded_state.tokens == 0
    assert engine.query(bob).balance == 5_000
    assert engine.query(mallory).balance == 10_000
    assert engine.query(mallory).decoded_state.seen == [["bounced", INCOMING, [b"alice", 999]]]
    assert alice != mallory


# =============================================================================
# Rent
# =============================================================================


def test_rent_is_debited_before_compute_even_when_it_fails(make_engine):
    engine = make_engine(base_rate=3)
    addr = deploy_scripted(engine, "renter")
    assert engine.query(addr).balance == 10_000

    engine.advance_time(50)
    engine.submit_internal(GENESIS, addr, Body.call(RUN, [["abort", 120]]), bounce=False)
    [r] = engine.run_until_idle()
    assert r.status is TxStatus.COMPUTE_FAILED
    assert r.exit_code == 120
    assert r.rent_debited == 150
    assert TxPhase.COMPUTE_FAILED in r.phases
    assert engine.query(addr).balance == 9_850

    engine.advance_time(10)
    engine.submit_internal(GENESIS, addr, Body.call(RUN, [["balance"]]), bounce=False)
    [r] = engine.run_until_idle()
    assert r.rent_debited == 30
    # the handler already sees the balance net of rent
    assert engine.query(addr).decoded_state.seen == [9_820]
