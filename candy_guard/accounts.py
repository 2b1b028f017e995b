import base64
import hashlib
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import ClassVar, List, Optional, Tuple, Type, TypeVar

from solana.rpc.types import MemcmpOpts
from solders.pubkey import Pubkey

from .codec import I64, PUBKEY, U8, U16, Reader, Writer
from .errors import AccountNotFound, CandyGuardClientError, WrongAccountKind
from .guards import GuardSet
from .layout import Struct
from .state import ACCOUNT_GUARD_DATA, CandyGuardData

logger = logging.getLogger("candy_guard")

DISCRIMINATOR_SIZE = 8

# discriminator + base + bump + authority
DATA_OFFSET = DISCRIMINATOR_SIZE + 32 + 1 + 32


def account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:DISCRIMINATOR_SIZE]


ACCOUNT_DISCRIMINATORS = MappingProxyType(
    {name: account_discriminator(name) for name in ("CandyGuard", "AllowListProof", "MintCounter")}
)

A = TypeVar("A", bound="AccountDescriptor")


def account_data(value) -> bytes:
    data = value.data
    if isinstance(data, (list, tuple)):
        raw = data[0] if data else b""
        return base64.b64decode(raw) if not isinstance(raw, (bytes, bytearray)) else bytes(raw)
    return bytes(data)


class AccountDescriptor:
    """An account kind: its discriminator followed by a struct-composed payload."""

    kind: ClassVar[str]
    layout: ClassVar[Struct]

    @classmethod
    def discriminator(cls) -> bytes:
        return ACCOUNT_DISCRIMINATORS[cls.kind]

    @classmethod
    def deserialize(cls: Type[A], data: bytes, offset: int = 0) -> Tuple[A, int]:
        reader = Reader(data, offset)
        actual = reader.take(DISCRIMINATOR_SIZE)
        expected = cls.discriminator()
        if actual != expected:
            raise WrongAccountKind(cls.kind, expected, actual)
        account = cls.layout.decode(reader)
        return account, reader.offset

    @classmethod
    def from_bytes(cls: Type[A], data: bytes, offset: int = 0) -> A:
        return cls.deserialize(data, offset)[0]

    def byte_size(self) -> int:
        return DISCRIMINATOR_SIZE + self.layout.byte_size(self)

    def serialize(self) -> bytes:
        writer = Writer(self.byte_size())
        writer.write(self.discriminator())
        self.layout.encode(writer, self)
        return writer.getvalue()

    @classmethod
    def fixed_size(cls) -> Optional[int]:
        size = cls.layout.fixed_size
        return None if size is None else DISCRIMINATOR_SIZE + size

    @classmethod
    def has_correct_byte_size(cls, data: bytes, offset: int = 0) -> bool:
        size = cls.fixed_size()
        if size is not None:
            return len(data) - offset == size
        # variable-length kinds have to be decoded to know where they end
        try:
            end = cls.deserialize(data, offset)[1]
        except CandyGuardClientError:
            return False
        return end == len(data)

    @classmethod
    def memcmp_filter(cls) -> MemcmpOpts:
        return MemcmpOpts(offset=0, bytes=cls.discriminator())

    @classmethod
    async def fetch(cls: Type[A], client, address: Pubkey, commitment=None) -> A:
        resp = await client.get_account_info(address, commitment=commitment)
        if resp.value is None:
            raise AccountNotFound(f"unable to find {cls.kind} account at {address}")
        return cls.from_bytes(account_data(resp.value))

    @classmethod
    async def fetch_all(cls: Type[A], client, program_id: Pubkey) -> List[Tuple[Pubkey, A]]:
        """All accounts of this kind owned by ``program_id``; undecodable ones are skipped."""
        resp = await client.get_program_accounts(program_id, encoding="base64", filters=[cls.memcmp_filter()])
        found: List[Tuple[Pubkey, A]] = []
        for keyed in resp.value or []:
            try:
                found.append((keyed.pubkey, cls.from_bytes(account_data(keyed.account))))
            except CandyGuardClientError as exc:
                logger.warning("account_decode_failed kind=%s address=%s error=%s", cls.kind, keyed.pubkey, exc)
        return found

    @staticmethod
    async def minimum_balance_for_rent_exemption(client, size: int, commitment=None) -> int:
        resp = await client.get_minimum_balance_for_rent_exemption(size, commitment=commitment)
        return resp.value


@dataclass
class CandyGuard(AccountDescriptor):
    kind: ClassVar[str] = "CandyGuard"

    base: Pubkey
    bump: int
    authority: Pubkey
    data: CandyGuardData = field(default_factory=CandyGuardData)

    def active_set(self, label=None) -> GuardSet:
        return self.data.active_set(label)


@dataclass
class AllowListProof(AccountDescriptor):
    kind: ClassVar[str] = "AllowListProof"

    timestamp: int


@dataclass
class MintCounter(AccountDescriptor):
    kind: ClassVar[str] = "MintCounter"

    count: int


CandyGuard.layout = Struct(
    CandyGuard,
    [("base", PUBKEY), ("bump", U8), ("authority", PUBKEY), ("data", ACCOUNT_GUARD_DATA)],
)
AllowListProof.layout = Struct(AllowListProof, [("timestamp", I64)])
MintCounter.layout = Struct(MintCounter, [("count", U16)])
