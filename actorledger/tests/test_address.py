from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from actorledger.address import Address, derive, read_manifest, verify_address
from actorledger.errors import EncodingError
from actorledger.tests.fixtures import Scripted, ScriptedV2, TokenWallet, Wallet

tags = st.one_of(
    st.text(max_size=24),
    st.integers(min_value=-(2**63), max_value=2**63 - 1),
    st.binary(max_size=24),
)


@given(tags)
def test_derive_is_pure(tag):
    code = Scripted.code()
    assert derive(code, {"tag": tag}) == derive(code, {"tag": tag})
    assert len(derive(code, {"tag": tag})) == 32


@given(tags, tags)
def test_distinct_immutable_data_gives_distinct_addresses(a, b):
    code = Scripted.code()
    if a == b and type(a) is type(b):
        assert derive(code, {"tag": a}) == derive(code, {"tag": b})
    else:
        assert derive(code, {"tag": a}) != derive(code, {"tag": b})


@given(tags)
def test_distinct_code_gives_distinct_addresses(tag):
    assert derive(Scripted.code(), {"tag": tag}) != derive(ScriptedV2.code(), {"tag": tag})


def test_map_key_order_does_not_matter():
    code = TokenWallet.code()
    a = derive(code, {"root": b"\x01" * 32, "owner": b"alice"})
    b = derive(code, {"owner": b"alice", "root": b"\x01" * 32})
    assert a == b


def test_address_and_raw_bytes_hash_the_same():
    raw = b"\x07" * 32
    assert derive(Wallet.code(), {"owner": raw}) == derive(Wallet.code(), {"owner": Address(raw)})


def test_undeclared_field_is_rejected():
    with pytest.raises(EncodingError):
        derive(Wallet.code(), {"owner": b"k", "extra": 1})


def test_floats_are_rejected():
    with pytest.raises(EncodingError):
        derive(Scripted.code(), {"tag": 1.5})


def test_non_manifest_code_is_rejected():
    with pytest.raises(EncodingError):
        derive(b"\x01\x02\x03", {})
    assert verify_address(b"\x00" * 32, b"\x01\x02\x03", {}) is False


def test_verify_address():
    addr = Wallet.address_for(owner=b"k" * 32)
    assert verify_address(addr, Wallet.code(), {"owner": b"k" * 32})
    assert not verify_address(addr, Wallet.code(), {"owner": b"j" * 32})


def test_manifest_lists_schema():
    m = read_manifest(Wallet.code())
    assert m["name"] == "wallet"
    assert m["static"] == ["owner"]
    assert m["state"] == ["seqno", "bounced"]


def test_address_parsing_and_rendering():
    a = Address("0x" + "ab" * 32)
    assert str(a) == "0x" + "ab" * 32
    assert Address(str(a)) == a
    with pytest.raises(ValueError):
        Address(b"\x00" * 31)
    with pytest.raises(ValueError):
        Address("0xzz")
