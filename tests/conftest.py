import asyncio
import pathlib
import sys
from types import SimpleNamespace
from typing import Dict, List, Optional, Tuple

import pytest
from solana.rpc.core import RPCException
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from candy_guard.accounts import CandyGuard  # noqa: E402
from candy_guard.errors import CandyGuardClientError, ProgramError  # noqa: E402
from candy_guard.instructions import MintAccounts, decode_guard_data, decode_mint_args, instruction_kind  # noqa: E402
from candy_guard.pda import (  # noqa: E402
    PROGRAM_ID,
    SYS_PROGRAM_ID,
    candy_guard_pda,
    candy_machine_authority_pda,
    collection_authority_record_pda,
    master_edition_pda,
    metadata_pda,
)
from candy_guard.transactions import TransactionSubmitter  # noqa: E402


def _resp(value):
    return SimpleNamespace(value=value)


class _ProgramFailure(Exception):
    def __init__(self, error: ProgramError) -> None:
        super().__init__(error.message)
        self.error = error


class FakeLedger:
    """In-memory stand-in for an ``AsyncClient`` talking to a cluster running the candy guard program.

    Candy guard instructions are decoded and executed against stored account bytes;
    system, token and associated token instructions only allocate accounts.
    """

    def __init__(self, unix_timestamp: int = 1_700_000_000) -> None:
        self.unix_timestamp = unix_timestamp
        self.accounts: Dict[Pubkey, bytes] = {}
        self.wrapped: Dict[Pubkey, Pubkey] = {}
        self.minted: List[Pubkey] = []
        self.sent: List = []
        self.transactions: Dict[str, Tuple[List[str], Optional[dict]]] = {}
        self.confirm_delay = 0.0
        self.preflight = True

    async def get_latest_blockhash(self, commitment=None):
        return _resp(SimpleNamespace(blockhash=Hash.default(), last_valid_block_height=1_000))

    async def get_minimum_balance_for_rent_exemption(self, size, commitment=None):
        return _resp((128 + size) * 6960)

    async def get_account_info(self, address, commitment=None):
        data = self.accounts.get(address)
        if data is None:
            return _resp(None)
        return _resp(SimpleNamespace(data=data, owner=PROGRAM_ID))

    async def get_program_accounts(self, program_id, encoding=None, filters=None):
        found = []
        for address, data in self.accounts.items():
            if all(data[f.offset : f.offset + len(f.bytes)] == bytes(f.bytes) for f in filters or []):
                found.append(SimpleNamespace(pubkey=address, account=SimpleNamespace(data=data)))
        return _resp(found)

    async def send_transaction(self, tx, opts=None):
        self.sent.append(tx)
        logs, err = self._execute(tx.message)
        signature = tx.signatures[0]
        if err is not None and self.preflight:
            raise RPCException(
                SimpleNamespace(message="Transaction simulation failed", data=SimpleNamespace(logs=logs, err=err))
            )
        self.transactions[str(signature)] = (logs, err)
        return _resp(signature)

    async def confirm_transaction(self, signature, commitment=None):
        if self.confirm_delay:
            await asyncio.sleep(self.confirm_delay)
        return _resp([SimpleNamespace(err=self.transactions[str(signature)][1])])

    async def get_transaction(self, signature, commitment=None, max_supported_transaction_version=None):
        entry = self.transactions.get(str(signature))
        if entry is None:
            return _resp(None)
        logs, err = entry
        meta = SimpleNamespace(log_messages=logs, err=err)
        return _resp(SimpleNamespace(transaction=SimpleNamespace(meta=meta)))

    def _execute(self, message):
        keys = list(message.account_keys)
        logs: List[str] = []
        staged = dict(self.accounts)
        for ix in message.instructions:
            program_id = keys[ix.program_id_index]
            accounts = [keys[i] for i in ix.accounts]
            data = bytes(ix.data)
            logs.append(f"Program {program_id} invoke [1]")
            try:
                if program_id == PROGRAM_ID:
                    logs.extend(self._candy_guard(staged, accounts, data))
                elif program_id == SYS_PROGRAM_ID:
                    space = int.from_bytes(data[12:20], "little")
                    staged[accounts[1]] = bytes(space)
            except _ProgramFailure as failure:
                code = failure.error.code
                logs.append(
                    f"Program log: AnchorError occurred. Error Code: {failure.error.name}. "
                    f"Error Number: {code}. Error Message: {failure.error.message}."
                )
                logs.append(f"Program {program_id} failed: custom program error: {hex(code)}")
                return logs, {"InstructionError": [0, {"Custom": code}]}
            logs.append(f"Program {program_id} success")
        self.accounts = staged
        return logs, None

    def _candy_guard(self, staged, accounts, data) -> List[str]:
        kind = instruction_kind(data)
        if kind == "initialize":
            candy_guard, base, authority = accounts[0], accounts[1], accounts[2]
            bump = candy_guard_pda(base)[1]
            staged[candy_guard] = CandyGuard(base, bump, authority, decode_guard_data(data)).serialize()
            return ["Program log: Instruction: Initialize"]
        if kind == "update":
            current = CandyGuard.from_bytes(staged[accounts[0]])
            current.data = decode_guard_data(data)
            staged[accounts[0]] = current.serialize()
            return ["Program log: Instruction: Update"]
        if kind == "wrap":
            if accounts[2] not in staged:
                raise _ProgramFailure(ProgramError.Uninitialized)
            self.wrapped[accounts[2]] = accounts[0]
            return ["Program log: Instruction: Wrap"]
        if kind == "mint":
            return self._mint(staged, accounts, data)
        return [f"Program log: Instruction: {kind}"]

    def _mint(self, staged, accounts, data) -> List[str]:
        candy_guard, candy_machine, nft_mint = accounts[0], accounts[2], accounts[6]
        if self.wrapped.get(candy_machine) != candy_guard:
            raise _ProgramFailure(ProgramError.PublicKeyMismatch)
        guard = CandyGuard.from_bytes(staged[candy_guard])
        _, label = decode_mint_args(data)
        try:
            active = guard.active_set(label)
        except CandyGuardClientError as exc:
            raise _ProgramFailure(ProgramError[type(exc).__name__]) from exc
        failure = None
        if active.start_date is not None and self.unix_timestamp < active.start_date.date:
            failure = ProgramError.MintNotLive
        if active.end_date is not None and self.unix_timestamp > active.end_date.date:
            failure = ProgramError.AfterEndDate
        if failure is not None:
            if active.bot_tax is None:
                raise _ProgramFailure(failure)
            # taxed attempts still succeed on the ledger
            return [
                f"Program log: {failure.message}",
                f"Program log: Candy Guard Botting is taxed at {active.bot_tax.lamports} lamports",
            ]
        self.minted.append(nft_mint)
        return ["Program log: Instruction: Mint"]


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def authority():
    return Keypair()


@pytest.fixture
def submitter(ledger, authority):
    return TransactionSubmitter(ledger, authority, timeout=1.0)


@pytest.fixture
def make_mint_accounts():
    def _make(candy_guard: Pubkey, candy_machine: Pubkey, payer: Pubkey, nft_mint: Pubkey) -> MintAccounts:
        collection_mint = Keypair().pubkey()
        authority_pda = candy_machine_authority_pda(candy_machine)[0]
        return MintAccounts(
            candy_guard=candy_guard,
            candy_machine=candy_machine,
            candy_machine_authority_pda=authority_pda,
            payer=payer,
            nft_metadata=metadata_pda(nft_mint),
            nft_mint=nft_mint,
            nft_mint_authority=payer,
            nft_master_edition=master_edition_pda(nft_mint),
            collection_authority_record=collection_authority_record_pda(collection_mint, authority_pda),
            collection_mint=collection_mint,
            collection_metadata=metadata_pda(collection_mint),
            collection_master_edition=master_edition_pda(collection_mint),
            collection_update_authority=Keypair().pubkey(),
        )

    return _make
