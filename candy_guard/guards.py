"""Guard records and the ordered guard-set schema.

Slot order is part of the wire format: new guards are appended to ``GUARD_SCHEMA``,
existing slots are never reordered.
"""

import enum
from dataclasses import dataclass, fields, replace
from typing import List, Optional, Sequence, Tuple, Type

from solders.pubkey import Pubkey

from .codec import BOOL, I64, PUBKEY, U8, U16, U64, Codec, fixed_bytes
from .codec import Optional as COption
from .layout import Struct


class GuardType(enum.IntEnum):
    BotTax = 0
    SolPayment = 1
    TokenPayment = 2
    StartDate = 3
    ThirdPartySigner = 4
    TokenGate = 5
    Gatekeeper = 6
    EndDate = 7
    AllowList = 8
    MintLimit = 9
    NftPayment = 10
    RedeemedAmount = 11
    AddressGate = 12
    NftGate = 13
    NftBurn = 14
    TokenBurn = 15

    @property
    def mask(self) -> int:
        return 1 << self.value


@dataclass(frozen=True)
class BotTax:
    lamports: int
    last_instruction: bool


@dataclass(frozen=True)
class SolPayment:
    lamports: int
    destination: Pubkey


@dataclass(frozen=True)
class TokenPayment:
    amount: int
    mint: Pubkey
    destination_ata: Pubkey


@dataclass(frozen=True)
class StartDate:
    date: int


@dataclass(frozen=True)
class ThirdPartySigner:
    signer_key: Pubkey


@dataclass(frozen=True)
class TokenGate:
    amount: int
    mint: Pubkey


@dataclass(frozen=True)
class Gatekeeper:
    gatekeeper_network: Pubkey
    expire_on_use: bool


@dataclass(frozen=True)
class EndDate:
    date: int


@dataclass(frozen=True)
class AllowList:
    merkle_root: bytes


@dataclass(frozen=True)
class MintLimit:
    id: int
    limit: int


@dataclass(frozen=True)
class NftPayment:
    required_collection: Pubkey
    destination: Pubkey


@dataclass(frozen=True)
class RedeemedAmount:
    maximum: int


@dataclass(frozen=True)
class AddressGate:
    address: Pubkey


@dataclass(frozen=True)
class NftGate:
    required_collection: Pubkey


@dataclass(frozen=True)
class NftBurn:
    required_collection: Pubkey


@dataclass(frozen=True)
class TokenBurn:
    amount: int
    mint: Pubkey


@dataclass(frozen=True)
class GuardSlot:
    name: str
    guard_type: GuardType
    record_type: Type
    codec: Struct

    @property
    def size(self) -> int:
        return self.codec.fixed_size


def _slot(name: str, guard_type: GuardType, record_type: Type, layout: Sequence[Tuple[str, Codec]]) -> GuardSlot:
    return GuardSlot(name, guard_type, record_type, Struct(record_type, layout))


GUARD_SCHEMA: Tuple[GuardSlot, ...] = (
    _slot("bot_tax", GuardType.BotTax, BotTax, [("lamports", U64), ("last_instruction", BOOL)]),
    _slot("sol_payment", GuardType.SolPayment, SolPayment, [("lamports", U64), ("destination", PUBKEY)]),
    _slot(
        "token_payment",
        GuardType.TokenPayment,
        TokenPayment,
        [("amount", U64), ("mint", PUBKEY), ("destination_ata", PUBKEY)],
    ),
    _slot("start_date", GuardType.StartDate, StartDate, [("date", I64)]),
    _slot("third_party_signer", GuardType.ThirdPartySigner, ThirdPartySigner, [("signer_key", PUBKEY)]),
    _slot("token_gate", GuardType.TokenGate, TokenGate, [("amount", U64), ("mint", PUBKEY)]),
    _slot(
        "gatekeeper",
        GuardType.Gatekeeper,
        Gatekeeper,
        [("gatekeeper_network", PUBKEY), ("expire_on_use", BOOL)],
    ),
    _slot("end_date", GuardType.EndDate, EndDate, [("date", I64)]),
    _slot("allow_list", GuardType.AllowList, AllowList, [("merkle_root", fixed_bytes(32))]),
    _slot("mint_limit", GuardType.MintLimit, MintLimit, [("id", U8), ("limit", U16)]),
    _slot(
        "nft_payment",
        GuardType.NftPayment,
        NftPayment,
        [("required_collection", PUBKEY), ("destination", PUBKEY)],
    ),
    _slot("redeemed_amount", GuardType.RedeemedAmount, RedeemedAmount, [("maximum", U64)]),
    _slot("address_gate", GuardType.AddressGate, AddressGate, [("address", PUBKEY)]),
    _slot("nft_gate", GuardType.NftGate, NftGate, [("required_collection", PUBKEY)]),
    _slot("nft_burn", GuardType.NftBurn, NftBurn, [("required_collection", PUBKEY)]),
    _slot("token_burn", GuardType.TokenBurn, TokenBurn, [("amount", U64), ("mint", PUBKEY)]),
)

GUARDS_BY_TYPE = {slot.guard_type: slot for slot in GUARD_SCHEMA}


@dataclass(frozen=True)
class GuardSet:
    bot_tax: Optional[BotTax] = None
    sol_payment: Optional[SolPayment] = None
    token_payment: Optional[TokenPayment] = None
    start_date: Optional[StartDate] = None
    third_party_signer: Optional[ThirdPartySigner] = None
    token_gate: Optional[TokenGate] = None
    gatekeeper: Optional[Gatekeeper] = None
    end_date: Optional[EndDate] = None
    allow_list: Optional[AllowList] = None
    mint_limit: Optional[MintLimit] = None
    nft_payment: Optional[NftPayment] = None
    redeemed_amount: Optional[RedeemedAmount] = None
    address_gate: Optional[AddressGate] = None
    nft_gate: Optional[NftGate] = None
    nft_burn: Optional[NftBurn] = None
    token_burn: Optional[TokenBurn] = None

    def __post_init__(self) -> None:
        for slot in GUARD_SCHEMA:
            value = getattr(self, slot.name)
            if value is not None and not isinstance(value, slot.record_type):
                raise TypeError(f"{slot.name} must be a {slot.record_type.__name__}, got {type(value).__name__}")

    def enabled(self) -> List[GuardType]:
        return [slot.guard_type for slot in GUARD_SCHEMA if getattr(self, slot.name) is not None]

    @property
    def features(self) -> int:
        """Bit mask of the enabled guards, bit ``n`` for ``GuardType(n)``."""
        mask = 0
        for guard_type in self.enabled():
            mask |= guard_type.mask
        return mask

    def merge(self, other: "GuardSet") -> "GuardSet":
        """Returns a copy where every guard enabled in ``other`` replaces this set's slot."""
        overrides = {slot.name: getattr(other, slot.name) for slot in GUARD_SCHEMA}
        return replace(self, **{name: value for name, value in overrides.items() if value is not None})

    def byte_size(self) -> int:
        return GUARD_SET.byte_size(self)

    def serialize(self) -> bytes:
        return GUARD_SET.serialize(self)

    @classmethod
    def deserialize(cls, data: bytes, offset: int = 0) -> Tuple["GuardSet", int]:
        return GUARD_SET.deserialize(data, offset)


if [f.name for f in fields(GuardSet)] != [slot.name for slot in GUARD_SCHEMA]:
    raise RuntimeError("GuardSet fields are out of sync with GUARD_SCHEMA")

GUARD_SET = Struct(GuardSet, [(slot.name, COption(slot.codec)) for slot in GUARD_SCHEMA])
