import base64
import hashlib

import pytest
from solders.keypair import Keypair

from candy_guard.accounts import (
    DATA_OFFSET,
    AllowListProof,
    CandyGuard,
    MintCounter,
    account_data,
)
from candy_guard.errors import AccountNotFound, BufferUnderrun, ErrorCategory, WrongAccountKind
from candy_guard.guards import BotTax, GuardSet, StartDate
from candy_guard.pda import PROGRAM_ID, candy_guard_pda
from candy_guard.state import CandyGuardData


def _candy_guard(groups=None) -> CandyGuard:
    base = Keypair().pubkey()
    address, bump = candy_guard_pda(base)
    data = CandyGuardData(GuardSet(start_date=StartDate(date=42)), groups)
    return CandyGuard(base=base, bump=bump, authority=Keypair().pubkey(), data=data)


def test_discriminators_are_anchor_account_hashes():
    for cls in (CandyGuard, AllowListProof, MintCounter):
        expected = hashlib.sha256(f"account:{cls.kind}".encode()).digest()[:8]
        assert cls.discriminator() == expected
    assert len({CandyGuard.discriminator(), AllowListProof.discriminator(), MintCounter.discriminator()}) == 3


def test_candy_guard_layout():
    account = _candy_guard()
    raw = account.serialize()
    assert raw[:8] == CandyGuard.discriminator()
    assert raw[8:40] == bytes(account.base)
    assert raw[40] == account.bump
    assert raw[41:73] == bytes(account.authority)
    assert DATA_OFFSET == 73
    assert len(raw) == account.byte_size() == DATA_OFFSET + account.data.default.byte_size() + 4
    assert CandyGuard.deserialize(raw) == (account, len(raw))


def test_candy_guard_with_groups_round_trips():
    account = _candy_guard({"vip": GuardSet(bot_tax=BotTax(lamports=1, last_instruction=True))})
    decoded = CandyGuard.from_bytes(account.serialize())
    assert decoded == account
    assert decoded.active_set("vip").start_date == StartDate(date=42)


def test_fixed_size_accounts():
    assert AllowListProof.fixed_size() == 16
    assert MintCounter.fixed_size() == 10
    assert CandyGuard.fixed_size() is None
    raw = MintCounter(count=3).serialize()
    assert MintCounter.has_correct_byte_size(raw)
    assert not MintCounter.has_correct_byte_size(raw + b"\x00")
    assert MintCounter.from_bytes(raw) == MintCounter(count=3)
    assert AllowListProof.from_bytes(AllowListProof(timestamp=-5).serialize()).timestamp == -5


def test_candy_guard_byte_size_check_decodes_the_groups():
    raw = _candy_guard({"vip": GuardSet(start_date=StartDate(date=1))}).serialize()
    assert CandyGuard.has_correct_byte_size(raw)
    assert CandyGuard.has_correct_byte_size(b"\xee" * 3 + raw, 3)
    assert not CandyGuard.has_correct_byte_size(raw + b"\x00")
    assert not CandyGuard.has_correct_byte_size(raw[:-1])
    assert not CandyGuard.has_correct_byte_size(MintCounter(count=1).serialize())


def test_wrong_kind_is_rejected():
    raw = MintCounter(count=1).serialize()
    with pytest.raises(WrongAccountKind) as excinfo:
        AllowListProof.from_bytes(raw + b"\x00" * 6)
    err = excinfo.value
    assert err.category is ErrorCategory.WRONG_ACCOUNT_KIND
    assert err.expected == AllowListProof.discriminator()
    assert err.actual == MintCounter.discriminator()


def test_truncated_account():
    raw = _candy_guard().serialize()
    with pytest.raises(BufferUnderrun):
        CandyGuard.from_bytes(raw[:-1])
    with pytest.raises(BufferUnderrun):
        CandyGuard.from_bytes(raw[:4])


def test_deserialize_at_offset():
    raw = b"\x00" * 3 + MintCounter(count=9).serialize()
    assert MintCounter.deserialize(raw, 3) == (MintCounter(count=9), len(raw))


def test_memcmp_filter_matches_discriminator():
    opts = CandyGuard.memcmp_filter()
    assert opts.offset == 0
    assert opts.bytes == CandyGuard.discriminator()


def test_account_data_accepts_base64_pairs():
    class Value:
        data = (base64.b64encode(b"abc").decode(), "base64")

    assert account_data(Value()) == b"abc"


@pytest.mark.asyncio
async def test_fetch(ledger):
    account = _candy_guard()
    address = candy_guard_pda(account.base)[0]
    ledger.accounts[address] = account.serialize()
    assert await CandyGuard.fetch(ledger, address) == account
    with pytest.raises(AccountNotFound):
        await CandyGuard.fetch(ledger, Keypair().pubkey())


@pytest.mark.asyncio
async def test_fetch_all_filters_by_kind(ledger):
    account = _candy_guard()
    address = candy_guard_pda(account.base)[0]
    ledger.accounts[address] = account.serialize()
    ledger.accounts[Keypair().pubkey()] = MintCounter(count=1).serialize()
    # right discriminator, truncated payload
    ledger.accounts[Keypair().pubkey()] = account.serialize()[:20]
    found = await CandyGuard.fetch_all(ledger, PROGRAM_ID)
    assert found == [(address, account)]


@pytest.mark.asyncio
async def test_rent_exemption(ledger):
    size = MintCounter.fixed_size()
    assert await MintCounter.minimum_balance_for_rent_exemption(ledger, size) == (128 + size) * 6960
