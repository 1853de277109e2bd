"""
Compute/action phases: rollback, reserve modes, ignore_errors, gas and fees,
set_code, and compute failures absorbed by the executor.
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from actorledger.address import Address
from actorledger.engine import GENESIS, Engine
from actorledger.tests.fixtures import (
    ALL_CONTRACTS,
    NOTE,
    RUN,
    Scripted,
    ScriptedV2,
    Unregistered,
    make_config,
    send_op,
)
from actorledger.types import Body, TxPhase, TxStatus

X = Address(b"\x33" * 32)


def deploy(engine, tag="m", value=10_000):
    addr = engine.deploy_internal(GENESIS, Scripted, {"tag": tag}, value=value, bounce=False)
    engine.run_until_idle()
    return addr


def run(engine, addr, script, *, value=0, bounce=False):
    engine.submit_internal(GENESIS, addr, Body.call(RUN, script), value=value, bounce=bounce)
    return engine.step()


# =============================================================================
# Rollback
# =============================================================================


def test_action_failure_restores_account_bytes(engine):
    m = deploy(engine)
    before = engine.store.snapshot(m)

    r = run(engine, m, [["count"], ["count"], send_op(X, 50_000, bounce=False)])

    assert r.status is TxStatus.ROLLED_BACK
    assert r.rolled_back
    assert r.phases[-1] is TxPhase.ROLLED_BACK
    assert r.error["code"] == "INSUFFICIENT_BALANCE"
    assert r.error["data"]["index"] == 0
    assert r.out_messages == ()
    assert engine.store.snapshot(m) == before
    assert engine.bus.pending() == 0


@given(
    counts=st.integers(min_value=0, max_value=5),
    excess=st.integers(min_value=1, max_value=10**9),
    prefix=st.lists(st.integers(min_value=0, max_value=2_000), max_size=4),
)
def test_rollback_leaves_no_trace(counts, excess, prefix):
    engine = Engine(ALL_CONTRACTS, config=make_config())
    try:
        m = deploy(engine)
        before = engine.store.snapshot(m)
        script = [["count"]] * counts
        script += [send_op(X, v, bounce=False) for v in prefix]
        script.append(send_op(X, 10_000 + excess, bounce=False))
        r = run(engine, m, script)
        assert r.status is TxStatus.ROLLED_BACK
        assert engine.store.snapshot(m) == before
        assert engine.bus.pending() == 0
    finally:
        engine.close()


def test_compute_failure_discards_state_writes(engine):
    m = deploy(engine)
    before = engine.store.snapshot(m)
    r = run(engine, m, [["count"], send_op(X, 1), ["abort", 140]])
    assert r.status is TxStatus.COMPUTE_FAILED
    assert r.exit_code == 140
    assert r.out_messages == ()
    assert engine.store.snapshot(m) == before


# =============================================================================
# Action phase
# =============================================================================

ACTION_CASES = [
    # reserve exactly, then send from what is left
    ([["reserve", 8_000, 0], send_op(X, 2_000, bounce=False)], TxStatus.COMMITTED, 8_000, [2_000]),
    ([["reserve", 8_000, 0], send_op(X, 3_000, bounce=False)], TxStatus.ROLLED_BACK, 10_000, []),
    # reserve all but 1000
    ([["reserve", 1_000, 1], send_op(X, 1_000, bounce=False)], TxStatus.COMMITTED, 9_000, [1_000]),
    ([["reserve", 1_000, 1], send_op(X, 1_001, bounce=False)], TxStatus.ROLLED_BACK, 10_000, []),
    ([["reserve", 11_000, 1]], TxStatus.ROLLED_BACK, 10_000, []),
    # ignore_errors skips the failing action only
    ([["reserve", 20_000, 0, True], send_op(X, 3_000, bounce=False)], TxStatus.COMMITTED, 7_000, [3_000]),
    ([send_op(X, 50_000, bounce=False, ignore=True), send_op(X, 5, bounce=False)],
     TxStatus.COMMITTED, 9_995, [5]),
    # carry the whole unreserved balance
    ([["reserve", 4_000, 0], send_op(X, 0, bounce=False, all=True)], TxStatus.COMMITTED, 4_000, [6_000]),
]


@pytest.mark.parametrize("script,status,balance,out_values", ACTION_CASES)
def test_action_phase(engine, script, status, balance, out_values):
    m = deploy(engine)
    r = run(engine, m, script)
    assert r.status is status
    assert [msg.value for msg in r.out_messages] == out_values
    assert engine.query(m).balance == balance


def test_ignored_failure_keeps_compute_effects(engine):
    m = deploy(engine)
    r = run(engine, m, [send_op(X, 50_000, ignore=True), ["count"]])
    assert r.status is TxStatus.COMMITTED
    assert engine.query(m).decoded_state.counter == 1


def test_carry_inbound_value_forwards_what_arrived(engine):
    m = deploy(engine)
    r = run(engine, m, [send_op(X, 0, bounce=False, inbound=True)], value=500)
    assert [msg.value for msg in r.out_messages] == [500]
    assert engine.query(m).balance == 10_000


def test_messages_leave_in_action_order(engine):
    m = deploy(engine)
    n = deploy(engine, "n")
    run(engine, m, [send_op(n, 0, sel=NOTE, args=[i], bounce=False) for i in range(5)])
    engine.run_until_idle()
    assert engine.query(n).decoded_state.seen == [[0], [1], [2], [3], [4]]


# =============================================================================
# Gas & fees
# =============================================================================


def test_gas_and_forward_fees_are_charged(make_engine):
    engine = make_engine(gas_price=1, forward_fee=10)
    m = deploy(engine)
    # deployment pays call_base; the default state blob costs nothing to write
    assert engine.query(m).balance == 9_900

    r = run(engine, m, [["count"]])
    # call_base + 16 bytes of re-encoded state
    assert r.gas_used == 116
    assert engine.query(m).balance == 9_784

    r = run(engine, m, [send_op(X, 100, bounce=False)])
    # call_base + per_action, state unchanged; value + forward fee from the action phase
    assert r.gas_used == 150
    assert r.fees == 10
    assert engine.query(m).balance == 9_784 - 150 - 110


def test_out_of_gas_is_a_compute_failure(engine):
    m = deploy(engine)
    r = run(engine, m, [["count"], ["gas", 2_000_000]])
    assert r.status is TxStatus.COMPUTE_FAILED
    assert r.error["code"] == "OUT_OF_GAS"
    assert engine.query(m).decoded_state.counter == 0


def test_action_limit(make_engine):
    engine = make_engine(max_actions=2)
    m = deploy(engine)
    r = run(engine, m, [send_op(X, 0), send_op(X, 0), send_op(X, 0)])
    assert r.status is TxStatus.COMPUTE_FAILED
    assert r.error["code"] == "ACTION_LIMIT"


def test_state_size_limit(make_engine):
    engine = make_engine(max_state_bytes=40)
    m = deploy(engine)
    engine.submit_internal(GENESIS, m, Body.call(NOTE, "x" * 100), bounce=False)
    r = engine.step()
    assert r.status is TxStatus.COMPUTE_FAILED
    assert r.error["code"] == "STATE_TOO_LARGE"


def test_handler_exceptions_and_unknown_selectors_fail_compute(engine):
    m = deploy(engine)
    r = run(engine, m, [["raise"]])
    assert r.status is TxStatus.COMPUTE_FAILED
    assert r.error["code"] == "HANDLER_ERROR"

    engine.submit_internal(GENESIS, m, Body.call(0xDEAD), bounce=False)
    r = engine.step()
    assert r.error["code"] == "UNKNOWN_SELECTOR"


# =============================================================================
# set_code
# =============================================================================


def test_set_code_takes_effect_next_transaction_and_keeps_address(engine):
    m = deploy(engine)
    r = run(engine, m, [["count"], ["setcode", ScriptedV2.code()]])
    assert r.status is TxStatus.COMMITTED
    assert engine.code_of(m) is ScriptedV2
    assert engine.query(m).address == m
    assert engine.query(m).code_hash == ScriptedV2.code_hash()

    run(engine, m, [["count"]])
    assert engine.query(m).decoded_state.counter == 2
    # the address stays the one derived from the original code
    assert m == Scripted.address_for(tag="m")
    assert m != ScriptedV2.address_for(tag="m")


def test_set_code_to_unknown_code(engine):
    m = deploy(engine)
    r = run(engine, m, [["setcode", Unregistered.code()]])
    assert r.status is TxStatus.ROLLED_BACK
    assert r.error["code"] == "MALFORMED_ACTION"

    r = run(engine, m, [["count"], ["setcode", Unregistered.code(), True]])
    assert r.status is TxStatus.COMMITTED
    assert engine.code_of(m) is Scripted
    assert engine.query(m).decoded_state.counter == 1


@pytest.mark.parametrize("switch", ["switch", "guarded_switch"])
def test_switch_code_ends_the_running_handler(engine, switch):
    m = deploy(engine)
    script = [["count"], [switch, ScriptedV2.code(), 5], ["count"], send_op(X, 7, bounce=False)]
    r = run(engine, m, script)

    assert r.status is TxStatus.COMMITTED
    assert r.out_messages == ()
    assert engine.code_of(m) is ScriptedV2
    state = engine.query(m).decoded_state
    # only the new code's upgrade hook wrote state
    assert (state.counter, state.seen) == (5, ["v2"])
    assert engine.query(m).balance == 10_000
    assert engine.bus.pending() == 0
