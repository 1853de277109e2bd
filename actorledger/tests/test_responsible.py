from __future__ import annotations

import pytest

from actorledger.address import Address
from actorledger.engine import GENESIS
from actorledger.errors import ComputeFailure, NotFound
from actorledger.runtime.responsible import (
    DEFAULT_ANSWER_SELECTOR,
    GETTER_CALLER,
    read_answer,
    responsible_args,
    responsible_body,
)
from actorledger.tests.fixtures import GET_SEQNO, NOTE, RUN, SEND, Scripted, Wallet, send_op
from actorledger.types import Body

X = Address(b"\x33" * 32)


def wallet(engine, owner, balance=10_000):
    data = {"owner": owner.public_key}
    addr = engine.derive_address(Wallet, data)
    engine.fund(addr, balance)
    engine.run_until_idle()
    engine.submit_external(engine.deploy_external(Wallet, data, signer=owner))
    return addr


def test_responsible_body_puts_answer_selector_first():
    assert responsible_args(7, "a", 1) == (7, "a", 1)
    body = responsible_body(GET_SEQNO, NOTE)
    assert body.selector == GET_SEQNO
    assert body.args == (NOTE,)


def test_getter_reads_current_state(engine, owner):
    w = wallet(engine, owner)
    assert engine.call_getter(w, GET_SEQNO) == (0,)

    engine.advance_time(1)
    engine.submit_external(engine.external(w, Body.call(SEND, X, 10, None, (), False), signer=owner))
    assert engine.call_getter(w, GET_SEQNO) == (1,)


def test_simulation_leaves_no_trace(engine, owner):
    w = wallet(engine, owner)
    before = engine.store.snapshot(w)
    pending = engine.bus.pending()

    out = engine.simulate(w, responsible_body(GET_SEQNO, DEFAULT_ANSWER_SELECTOR))
    assert len(out) == 1
    assert out[0].destination == GETTER_CALLER
    assert engine.store.snapshot(w) == before
    assert engine.bus.pending() == pending


def test_simulation_ignores_balance(engine):
    m = engine.deploy_internal(GENESIS, Scripted, {"tag": "poor"}, value=10, bounce=False)
    engine.run_until_idle()
    [msg] = engine.simulate(m, Body.call(RUN, [send_op(X, 10**9)]))
    assert msg.value == 10**9
    assert engine.query(m).balance == 10


def test_answer_travels_as_an_ordinary_message(engine, owner):
    w = wallet(engine, owner)
    m = engine.deploy_internal(GENESIS, Scripted, {"tag": "asker"}, value=1_000, bounce=False)
    engine.run_until_idle()

    script = [send_op(w, 0, sel=GET_SEQNO, args=[NOTE], bounce=False)]
    engine.submit_internal(GENESIS, m, Body.call(RUN, script), bounce=False)
    engine.run_until_idle()
    assert engine.query(m).decoded_state.seen == [[0]]


def test_missing_answer_and_inactive_callee(engine):
    with pytest.raises(ComputeFailure) as ei:
        read_answer([], GETTER_CALLER, 5)
    assert ei.value.code == "NO_ANSWER"

    engine.fund(X, 100)
    engine.run_until_idle()
    with pytest.raises(ComputeFailure) as ei:
        engine.call_getter(X, GET_SEQNO)
    assert ei.value.code == "NO_CODE"

    with pytest.raises(NotFound):
        engine.call_getter(Address(b"\x44" * 32), GET_SEQNO)
