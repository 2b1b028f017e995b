from dataclasses import replace

import pytest
from solders.keypair import Keypair

from candy_guard.errors import DeserializationError, MalformedOptionTag
from candy_guard.guards import (
    GUARD_SCHEMA,
    GUARDS_BY_TYPE,
    AddressGate,
    AllowList,
    BotTax,
    EndDate,
    Gatekeeper,
    GuardSet,
    GuardType,
    MintLimit,
    NftBurn,
    NftGate,
    NftPayment,
    RedeemedAmount,
    SolPayment,
    StartDate,
    ThirdPartySigner,
    TokenBurn,
    TokenGate,
    TokenPayment,
)


def _key():
    return Keypair().pubkey()


def every_guard() -> GuardSet:
    return GuardSet(
        bot_tax=BotTax(lamports=100_000_000, last_instruction=True),
        sol_payment=SolPayment(lamports=1_000_000_000, destination=_key()),
        token_payment=TokenPayment(amount=5, mint=_key(), destination_ata=_key()),
        start_date=StartDate(date=1_700_000_000),
        third_party_signer=ThirdPartySigner(signer_key=_key()),
        token_gate=TokenGate(amount=1, mint=_key()),
        gatekeeper=Gatekeeper(gatekeeper_network=_key(), expire_on_use=False),
        end_date=EndDate(date=1_800_000_000),
        allow_list=AllowList(merkle_root=bytes(range(32))),
        mint_limit=MintLimit(id=3, limit=10),
        nft_payment=NftPayment(required_collection=_key(), destination=_key()),
        redeemed_amount=RedeemedAmount(maximum=500),
        address_gate=AddressGate(address=_key()),
        nft_gate=NftGate(required_collection=_key()),
        nft_burn=NftBurn(required_collection=_key()),
        token_burn=TokenBurn(amount=2, mint=_key()),
    )


def test_schema_order_matches_guard_types():
    assert [slot.guard_type for slot in GUARD_SCHEMA] == list(GuardType)
    assert len(GUARD_SCHEMA) == 16
    assert GUARDS_BY_TYPE[GuardType.MintLimit].name == "mint_limit"


def test_slot_sizes():
    sizes = {slot.guard_type: slot.size for slot in GUARD_SCHEMA}
    assert sizes[GuardType.BotTax] == 9
    assert sizes[GuardType.SolPayment] == 40
    assert sizes[GuardType.TokenPayment] == 72
    assert sizes[GuardType.StartDate] == 8
    assert sizes[GuardType.Gatekeeper] == 33
    assert sizes[GuardType.AllowList] == 32
    assert sizes[GuardType.MintLimit] == 3
    assert sizes[GuardType.NftPayment] == 64


def test_empty_set_is_one_tag_byte_per_slot():
    empty = GuardSet()
    assert empty.serialize() == b"\x00" * 16
    assert empty.byte_size() == 16
    assert empty.enabled() == []
    assert empty.features == 0


def test_single_guard_encoding():
    guards = GuardSet(start_date=StartDate(date=1))
    raw = guards.serialize()
    assert len(raw) == 16 + 8
    # three absent slots precede the start date
    assert raw[:4] == b"\x00\x00\x00\x01"
    assert raw[4:12] == (1).to_bytes(8, "little")
    assert GuardSet.deserialize(raw) == (guards, len(raw))


def test_size_grows_with_each_enabled_guard():
    full = every_guard()
    previous = GuardSet()
    for slot in GUARD_SCHEMA:
        current = previous.merge(GuardSet(**{slot.name: getattr(full, slot.name)}))
        assert current.byte_size() == previous.byte_size() + slot.size
        previous = current
    assert previous == full


def test_every_guard_round_trips():
    full = every_guard()
    raw = full.serialize()
    assert len(raw) == full.byte_size() == 16 + sum(slot.size for slot in GUARD_SCHEMA)
    assert GuardSet.deserialize(raw)[0] == full
    assert full.features == (1 << 16) - 1


def test_deserialize_at_offset():
    guards = GuardSet(mint_limit=MintLimit(id=1, limit=2))
    raw = b"\xff\xff" + guards.serialize() + b"\xee"
    value, end = GuardSet.deserialize(raw, 2)
    assert value == guards
    assert end == len(raw) - 1


def test_bad_presence_tag():
    raw = bytearray(16)
    raw[5] = 7
    with pytest.raises(MalformedOptionTag) as excinfo:
        GuardSet.deserialize(bytes(raw))
    assert excinfo.value.offset == 5


def test_merge_overrides_only_enabled_slots():
    default = GuardSet(
        bot_tax=BotTax(lamports=10, last_instruction=True),
        start_date=StartDate(date=100),
    )
    group = GuardSet(start_date=StartDate(date=200), mint_limit=MintLimit(id=1, limit=1))
    merged = default.merge(group)
    assert merged.bot_tax == default.bot_tax
    assert merged.start_date == StartDate(date=200)
    assert merged.mint_limit == MintLimit(id=1, limit=1)
    assert merged.enabled() == [GuardType.BotTax, GuardType.StartDate, GuardType.MintLimit]


def test_slot_values_are_type_checked():
    with pytest.raises(TypeError):
        GuardSet(start_date=EndDate(date=1))


def test_non_canonical_bool_in_guard_is_rejected():
    raw = bytearray(GuardSet(bot_tax=BotTax(lamports=1, last_instruction=True)).serialize())
    # presence tag, then eight lamport bytes, then the flag
    assert raw[9] == 1
    raw[9] = 2
    with pytest.raises(DeserializationError):
        GuardSet.deserialize(bytes(raw))


FULL = every_guard()
BASE = GuardSet(
    bot_tax=BotTax(lamports=7, last_instruction=False),
    end_date=EndDate(date=99),
    token_burn=TokenBurn(amount=1, mint=_key()),
)


@pytest.mark.parametrize("slot", GUARD_SCHEMA, ids=lambda slot: slot.name)
def test_toggling_one_slot_over_a_populated_set(slot):
    without = replace(BASE, **{slot.name: None})
    with_guard = replace(BASE, **{slot.name: getattr(FULL, slot.name)})
    for guards in (without, with_guard):
        raw = guards.serialize()
        assert len(raw) == guards.byte_size()
        assert GuardSet.deserialize(raw) == (guards, len(raw))
    # an absent slot is its tag byte alone
    assert with_guard.byte_size() - without.byte_size() == slot.size
    assert slot.guard_type in with_guard.enabled()
    assert slot.guard_type not in without.enabled()
