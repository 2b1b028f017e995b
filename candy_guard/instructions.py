import hashlib
from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Optional, Sequence, Tuple

from borsh_construct import U8, Bytes, CStruct, Enum, Option, String, Vec
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from .guards import GuardType
from .pda import (
    CANDY_MACHINE_PROGRAM_ID,
    PROGRAM_ID,
    SYS_PROGRAM_ID,
    SYSVAR_INSTRUCTIONS_PUBKEY,
    SYSVAR_SLOT_HASHES_PUBKEY,
    TOKEN_METADATA_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)
from .state import INSTRUCTION_GUARD_DATA, CandyGuardData, Label, normalize_label


def sighash(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


INSTRUCTION_DISCRIMINATORS = MappingProxyType(
    {name: sighash(name) for name in ("initialize", "update", "wrap", "unwrap", "withdraw", "mint", "route")}
)

GuardTypeLayout = Enum(*[guard.name / CStruct() for guard in GuardType], enum_name="GuardType")
MintArgsLayout = CStruct("mint_args" / Bytes, "label" / Option(String))
RouteArgsLayout = CStruct(
    "args" / CStruct("guard" / GuardTypeLayout, "data" / Bytes),
    "label" / Option(String),
)
AllowListProofLayout = Vec(U8[32])


def instruction_kind(data: bytes) -> Optional[str]:
    """Name of the instruction whose discriminator starts ``data``, if any."""
    head = bytes(data[:8])
    for name, disc in INSTRUCTION_DISCRIMINATORS.items():
        if disc == head:
            return name
    return None


def _label(label: Optional[Label]) -> Optional[str]:
    return None if label is None else normalize_label(label)


def encode_initialize(data: CandyGuardData) -> bytes:
    return INSTRUCTION_DISCRIMINATORS["initialize"] + INSTRUCTION_GUARD_DATA.serialize(data)


def encode_update(data: CandyGuardData) -> bytes:
    return INSTRUCTION_DISCRIMINATORS["update"] + INSTRUCTION_GUARD_DATA.serialize(data)


def decode_guard_data(data: bytes) -> CandyGuardData:
    """Guard configuration carried by an initialize or update payload."""
    return INSTRUCTION_GUARD_DATA.deserialize(data, 8)[0]


def encode_mint(mint_args: bytes = b"", label: Optional[Label] = None) -> bytes:
    payload = MintArgsLayout.build({"mint_args": bytes(mint_args), "label": _label(label)})
    return INSTRUCTION_DISCRIMINATORS["mint"] + payload


def decode_mint_args(data: bytes) -> Tuple[bytes, Optional[str]]:
    parsed = MintArgsLayout.parse(bytes(data[8:]))
    return parsed.mint_args, parsed.label


def encode_route(guard: GuardType, data: bytes = b"", label: Optional[Label] = None) -> bytes:
    payload = RouteArgsLayout.build(
        {
            "args": {"guard": getattr(GuardTypeLayout.enum, guard.name)(), "data": bytes(data)},
            "label": _label(label),
        }
    )
    return INSTRUCTION_DISCRIMINATORS["route"] + payload


def encode_allow_list_proof(proof: Sequence[bytes]) -> bytes:
    """Route payload for the allow list guard: the merkle proof as ``Vec<[u8; 32]>``."""
    return AllowListProofLayout.build([list(bytes(node)) for node in proof])


def decode_allow_list_proof(data: bytes) -> List[bytes]:
    return [bytes(node) for node in AllowListProofLayout.parse(bytes(data))]


def encode_wrap() -> bytes:
    return INSTRUCTION_DISCRIMINATORS["wrap"]


def encode_unwrap() -> bytes:
    return INSTRUCTION_DISCRIMINATORS["unwrap"]


def encode_withdraw() -> bytes:
    return INSTRUCTION_DISCRIMINATORS["withdraw"]


@dataclass
class MintAccounts:
    candy_guard: Pubkey
    candy_machine: Pubkey
    candy_machine_authority_pda: Pubkey
    payer: Pubkey
    nft_metadata: Pubkey
    nft_mint: Pubkey
    nft_mint_authority: Pubkey
    nft_master_edition: Pubkey
    collection_authority_record: Pubkey
    collection_mint: Pubkey
    collection_metadata: Pubkey
    collection_master_edition: Pubkey
    collection_update_authority: Pubkey
    candy_machine_program: Pubkey = CANDY_MACHINE_PROGRAM_ID
    token_metadata_program: Pubkey = TOKEN_METADATA_PROGRAM_ID
    token_program: Pubkey = TOKEN_PROGRAM_ID
    system_program: Pubkey = SYS_PROGRAM_ID
    recent_slothashes: Pubkey = SYSVAR_SLOT_HASHES_PUBKEY
    instruction_sysvar_account: Pubkey = SYSVAR_INSTRUCTIONS_PUBKEY


def build_initialize_ix(
    candy_guard: Pubkey,
    base: Pubkey,
    authority: Pubkey,
    payer: Pubkey,
    data: CandyGuardData,
    program_id: Pubkey = PROGRAM_ID,
) -> Instruction:
    accounts = [
        AccountMeta(pubkey=candy_guard, is_signer=False, is_writable=True),
        AccountMeta(pubkey=base, is_signer=True, is_writable=True),
        AccountMeta(pubkey=authority, is_signer=False, is_writable=False),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id=program_id, data=encode_initialize(data), accounts=accounts)


def build_update_ix(
    candy_guard: Pubkey,
    authority: Pubkey,
    payer: Pubkey,
    data: CandyGuardData,
    program_id: Pubkey = PROGRAM_ID,
) -> Instruction:
    accounts = [
        AccountMeta(pubkey=candy_guard, is_signer=False, is_writable=True),
        AccountMeta(pubkey=authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id=program_id, data=encode_update(data), accounts=accounts)


def build_wrap_ix(
    candy_guard: Pubkey,
    authority: Pubkey,
    candy_machine: Pubkey,
    candy_machine_authority: Pubkey,
    candy_machine_program: Pubkey = CANDY_MACHINE_PROGRAM_ID,
    program_id: Pubkey = PROGRAM_ID,
) -> Instruction:
    accounts = [
        AccountMeta(pubkey=candy_guard, is_signer=False, is_writable=False),
        AccountMeta(pubkey=authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=candy_machine, is_signer=False, is_writable=True),
        AccountMeta(pubkey=candy_machine_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=candy_machine_authority, is_signer=True, is_writable=False),
    ]
    return Instruction(program_id=program_id, data=encode_wrap(), accounts=accounts)


def build_unwrap_ix(
    candy_guard: Pubkey,
    authority: Pubkey,
    candy_machine: Pubkey,
    candy_machine_authority: Pubkey,
    candy_machine_program: Pubkey = CANDY_MACHINE_PROGRAM_ID,
    program_id: Pubkey = PROGRAM_ID,
) -> Instruction:
    accounts = [
        AccountMeta(pubkey=candy_guard, is_signer=False, is_writable=False),
        AccountMeta(pubkey=authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=candy_machine, is_signer=False, is_writable=True),
        AccountMeta(pubkey=candy_machine_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=candy_machine_authority, is_signer=True, is_writable=False),
    ]
    return Instruction(program_id=program_id, data=encode_unwrap(), accounts=accounts)


def build_withdraw_ix(candy_guard: Pubkey, authority: Pubkey, program_id: Pubkey = PROGRAM_ID) -> Instruction:
    accounts = [
        AccountMeta(pubkey=candy_guard, is_signer=False, is_writable=True),
        AccountMeta(pubkey=authority, is_signer=True, is_writable=True),
    ]
    return Instruction(program_id=program_id, data=encode_withdraw(), accounts=accounts)


def build_mint_ix(
    accounts: MintAccounts,
    mint_args: bytes = b"",
    label: Optional[Label] = None,
    remaining_accounts: Optional[List[AccountMeta]] = None,
    program_id: Pubkey = PROGRAM_ID,
) -> Instruction:
    # Positional order matches the program's Mint accounts struct.
    metas = [
        AccountMeta(pubkey=accounts.candy_guard, is_signer=False, is_writable=False),
        AccountMeta(pubkey=accounts.candy_machine_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=accounts.candy_machine, is_signer=False, is_writable=True),
        AccountMeta(pubkey=accounts.candy_machine_authority_pda, is_signer=False, is_writable=True),
        AccountMeta(pubkey=accounts.payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=accounts.nft_metadata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=accounts.nft_mint, is_signer=False, is_writable=True),
        AccountMeta(pubkey=accounts.nft_mint_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=accounts.nft_master_edition, is_signer=False, is_writable=True),
        AccountMeta(pubkey=accounts.collection_authority_record, is_signer=False, is_writable=False),
        AccountMeta(pubkey=accounts.collection_mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=accounts.collection_metadata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=accounts.collection_master_edition, is_signer=False, is_writable=False),
        AccountMeta(pubkey=accounts.collection_update_authority, is_signer=False, is_writable=False),
        AccountMeta(pubkey=accounts.token_metadata_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=accounts.token_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=accounts.system_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=accounts.recent_slothashes, is_signer=False, is_writable=False),
        AccountMeta(pubkey=accounts.instruction_sysvar_account, is_signer=False, is_writable=False),
    ]
    if remaining_accounts:
        metas.extend(remaining_accounts)
    return Instruction(program_id=program_id, data=encode_mint(mint_args, label), accounts=metas)


def build_route_ix(
    candy_guard: Pubkey,
    candy_machine: Pubkey,
    payer: Pubkey,
    guard: GuardType,
    data: bytes = b"",
    label: Optional[Label] = None,
    remaining_accounts: Optional[List[AccountMeta]] = None,
    program_id: Pubkey = PROGRAM_ID,
) -> Instruction:
    metas = [
        AccountMeta(pubkey=candy_guard, is_signer=False, is_writable=False),
        AccountMeta(pubkey=candy_machine, is_signer=False, is_writable=True),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
    ]
    if remaining_accounts:
        metas.extend(remaining_accounts)
    return Instruction(program_id=program_id, data=encode_route(guard, data, label), accounts=metas)
