from functools import lru_cache
from typing import Sequence, Tuple

from solders.pubkey import Pubkey

from .errors import CANDY_GUARD_PROGRAM, AddressDerivationFailed

PROGRAM_ID = Pubkey.from_string(CANDY_GUARD_PROGRAM)
CANDY_MACHINE_PROGRAM_ID = Pubkey.from_string("CndyV3LdqHUfDLmE5naZjVN8rBZz4tqhdefbAnjHG3JR")
TOKEN_METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
SYS_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
SYSVAR_SLOT_HASHES_PUBKEY = Pubkey.from_string("SysvarS1otHashes111111111111111111111111111")
SYSVAR_INSTRUCTIONS_PUBKEY = Pubkey.from_string("Sysvar1nstructions1111111111111111111111111")

CANDY_GUARD_SEED = b"candy_guard"
ALLOW_LIST_SEED = b"allow_list"
MINT_LIMIT_SEED = b"mint_limit"
CANDY_MACHINE_SEED = b"candy_machine"
METADATA_SEED = b"metadata"
EDITION_SEED = b"edition"
COLLECTION_AUTHORITY_SEED = b"collection_authority"

MAX_SEEDS = 16
MAX_SEED_LEN = 32


def _check_seeds(seeds: Sequence[bytes], reserved: int) -> None:
    if len(seeds) + reserved > MAX_SEEDS:
        raise AddressDerivationFailed(f"too many seeds: {len(seeds)} (max {MAX_SEEDS - reserved})")
    for idx, seed in enumerate(seeds):
        if len(seed) > MAX_SEED_LEN:
            raise AddressDerivationFailed(f"seed {idx} is {len(seed)} bytes (max {MAX_SEED_LEN})")


def derive(seeds: Sequence[bytes], program_id: Pubkey) -> Tuple[Pubkey, int]:
    """Program address and bump for ``seeds``; the same inputs always give the same address."""
    seeds = [bytes(s) for s in seeds]
    # the bump seed takes one slot
    _check_seeds(seeds, reserved=1)
    try:
        return Pubkey.find_program_address(seeds, program_id)
    except Exception as exc:  # noqa: BLE001
        raise AddressDerivationFailed(f"no program address for seeds under {program_id}: {exc}") from exc


def create_with_bump(seeds: Sequence[bytes], bump: int, program_id: Pubkey) -> Pubkey:
    """Program address for an explicit bump, for callers that store or choose their own bump."""
    full = [bytes(s) for s in seeds] + [bytes([bump])]
    _check_seeds(full, reserved=0)
    try:
        return Pubkey.create_program_address(full, program_id)
    except Exception as exc:  # noqa: BLE001
        raise AddressDerivationFailed(f"bump {bump} does not give a program address: {exc}") from exc


@lru_cache(maxsize=256)
def candy_guard_pda(base: Pubkey, program_id: Pubkey = PROGRAM_ID) -> Tuple[Pubkey, int]:
    return derive([CANDY_GUARD_SEED, bytes(base)], program_id)


@lru_cache(maxsize=256)
def allow_list_proof_pda(
    merkle_root: bytes,
    user: Pubkey,
    candy_guard: Pubkey,
    candy_machine: Pubkey,
    program_id: Pubkey = PROGRAM_ID,
) -> Tuple[Pubkey, int]:
    return derive(
        [ALLOW_LIST_SEED, merkle_root, bytes(user), bytes(candy_guard), bytes(candy_machine)],
        program_id,
    )


@lru_cache(maxsize=256)
def mint_counter_pda(
    id: int,
    user: Pubkey,
    candy_guard: Pubkey,
    candy_machine: Pubkey,
    program_id: Pubkey = PROGRAM_ID,
) -> Tuple[Pubkey, int]:
    return derive(
        [MINT_LIMIT_SEED, bytes([id]), bytes(user), bytes(candy_guard), bytes(candy_machine)],
        program_id,
    )


def candy_machine_authority_pda(
    candy_machine: Pubkey, program_id: Pubkey = CANDY_MACHINE_PROGRAM_ID
) -> Tuple[Pubkey, int]:
    return derive([CANDY_MACHINE_SEED, bytes(candy_machine)], program_id)


def metadata_pda(mint: Pubkey) -> Pubkey:
    return derive([METADATA_SEED, bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint)], TOKEN_METADATA_PROGRAM_ID)[0]


def master_edition_pda(mint: Pubkey) -> Pubkey:
    return derive(
        [METADATA_SEED, bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint), EDITION_SEED],
        TOKEN_METADATA_PROGRAM_ID,
    )[0]


def collection_authority_record_pda(mint: Pubkey, authority: Pubkey) -> Pubkey:
    return derive(
        [
            METADATA_SEED,
            bytes(TOKEN_METADATA_PROGRAM_ID),
            bytes(mint),
            COLLECTION_AUTHORITY_SEED,
            bytes(authority),
        ],
        TOKEN_METADATA_PROGRAM_ID,
    )[0]


def associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    return derive([bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)], ASSOCIATED_TOKEN_PROGRAM_ID)[0]
