"""Ordered instruction groups, their submission, and the deploy-then-mint flow.

A group is compiled into one transaction, so it applies atomically on the ledger.
Instructions keep the order they were added in; the program relies on it (an
account is created before it is initialized, the mint comes last).
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Sequence

from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account
from solders.transaction import VersionedTransaction
from spl.token._layouts import MINT_LAYOUT
from spl.token.instructions import (
    InitializeMintParams,
    MintToParams,
    create_associated_token_account,
    initialize_mint,
    mint_to,
)

from .accounts import AccountDescriptor
from .errors import ErrorCategory, GuardFailure, InvalidStageTransition, TransactionRejected, parse_program_failures
from .instructions import MintAccounts, build_initialize_ix, build_mint_ix, build_wrap_ix, instruction_kind
from .pda import (
    CANDY_MACHINE_PROGRAM_ID,
    PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    associated_token_address,
    candy_guard_pda,
)
from .state import CandyGuardData, Label

logger = logging.getLogger("candy_guard")


class InstructionGroup:
    """Instructions that must land together, in exactly the order they were added."""

    def __init__(
        self,
        instructions: Iterable[Instruction] = (),
        signers: Iterable[Keypair] = (),
        label: str = "",
    ) -> None:
        self._instructions: List[Instruction] = list(instructions)
        self._signers: List[Keypair] = []
        self.label = label
        for signer in signers:
            self.add_signer(signer)

    def add(self, *instructions: Instruction) -> "InstructionGroup":
        self._instructions.extend(instructions)
        return self

    def add_signer(self, signer: Keypair) -> "InstructionGroup":
        if all(s.pubkey() != signer.pubkey() for s in self._signers):
            self._signers.append(signer)
        return self

    @property
    def instructions(self) -> Sequence[Instruction]:
        return tuple(self._instructions)

    @property
    def signers(self) -> Sequence[Keypair]:
        return tuple(self._signers)

    def __iter__(self) -> Iterator[Instruction]:
        return iter(tuple(self._instructions))

    def __len__(self) -> int:
        return len(self._instructions)

    def kinds(self, program_id: Pubkey = PROGRAM_ID) -> List[str]:
        """Instruction names for candy guard instructions, program ids for the rest."""
        names = []
        for ix in self._instructions:
            kind = instruction_kind(ix.data) if ix.program_id == program_id else None
            names.append(kind or str(ix.program_id))
        return names

    def compile(self, payer: Pubkey, blockhash: Hash) -> MessageV0:
        return MessageV0.try_compile(payer, list(self._instructions), [], blockhash)


class SubmissionStatus(enum.Enum):
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    # stopped waiting; the ledger outcome is unknown until queried again
    INDETERMINATE = "indeterminate"


@dataclass
class SubmissionResult:
    status: SubmissionStatus
    signature: Optional[str] = None
    logs: List[str] = field(default_factory=list)
    failures: List[GuardFailure] = field(default_factory=list)
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is SubmissionStatus.CONFIRMED

    @property
    def category(self) -> Optional[ErrorCategory]:
        if self.status is SubmissionStatus.REJECTED:
            return ErrorCategory.TRANSACTION_REJECTED
        return None

    @property
    def reasons(self) -> List[str]:
        return [f.message for f in self.failures]

    def raise_for_status(self) -> "SubmissionResult":
        if self.status is SubmissionStatus.REJECTED:
            raise TransactionRejected(self.failures, logs=self.logs, signature=self.signature, detail=self.detail)
        return self


def _preflight_logs(exc: RPCException) -> List[str]:
    err = exc.args[0] if exc.args else None
    data = getattr(err, "data", None)
    return list(getattr(data, "logs", None) or [])


class TransactionSubmitter:
    """Sends instruction groups through an ``AsyncClient`` and reports structured outcomes.

    Nothing is retried: a rejected group is returned as ``REJECTED`` with whatever the
    program logged, and a confirmation timeout returns ``INDETERMINATE``.
    """

    def __init__(
        self,
        client,
        payer: Keypair,
        commitment: Commitment = Confirmed,
        timeout: Optional[float] = 30.0,
    ) -> None:
        self.client = client
        self.payer = payer
        self.commitment = commitment
        self.timeout = timeout

    def _signers(self, group: InstructionGroup) -> List[Keypair]:
        signers = [self.payer]
        for signer in group.signers:
            if signer.pubkey() != self.payer.pubkey():
                signers.append(signer)
        return signers

    async def build_transaction(self, group: InstructionGroup) -> VersionedTransaction:
        resp = await self.client.get_latest_blockhash(commitment=self.commitment)
        message = group.compile(self.payer.pubkey(), resp.value.blockhash)
        return VersionedTransaction(message, self._signers(group))

    async def submit(self, group: InstructionGroup, timeout: Optional[float] = None) -> SubmissionResult:
        tx = await self.build_transaction(group)
        try:
            resp = await self.client.send_transaction(
                tx,
                opts=TxOpts(skip_confirmation=True, skip_preflight=False, preflight_commitment=self.commitment),
            )
        except RPCException as exc:
            logs = _preflight_logs(exc)
            failures = parse_program_failures(logs)
            logger.warning(
                "tx_submit_rejected group=%s reasons=%s error=%s", group.label, [f.name for f in failures], exc
            )
            return SubmissionResult(SubmissionStatus.REJECTED, logs=logs, failures=failures, detail=str(exc))

        signature = resp.value
        try:
            await asyncio.wait_for(
                self.client.confirm_transaction(signature, commitment=self.commitment),
                timeout if timeout is not None else self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("tx_confirm_timeout group=%s signature=%s", group.label, signature)
            return SubmissionResult(SubmissionStatus.INDETERMINATE, signature=str(signature))

        logs, err = await self._transaction_logs(signature)
        failures = parse_program_failures(logs)
        if err is not None or failures:
            logger.warning(
                "tx_rejected group=%s signature=%s reasons=%s", group.label, signature, [f.name for f in failures]
            )
            return SubmissionResult(
                SubmissionStatus.REJECTED,
                signature=str(signature),
                logs=logs,
                failures=failures,
                detail=None if err is None else str(err),
            )
        logger.info("tx_confirmed group=%s signature=%s", group.label, signature)
        return SubmissionResult(SubmissionStatus.CONFIRMED, signature=str(signature), logs=logs)

    async def _transaction_logs(self, signature):
        resp = await self.client.get_transaction(
            signature, commitment=self.commitment, max_supported_transaction_version=0
        )
        value = resp.value
        if value is None:
            return [], None
        meta = value.transaction.meta
        if meta is None:
            return [], None
        return list(meta.log_messages or []), meta.err


class DeployStage(enum.IntEnum):
    UNINITIALIZED = 0
    ACCOUNT_CREATED = 1
    INITIALIZED = 2
    WRAPPED = 3
    READY_TO_MINT = 4
    MINTED = 5


class DeployFlow:
    """Deploys a candy guard over a candy machine and performs the first mint.

    Every step submits one instruction group and only advances the stage when the
    group is confirmed; a failed step can be retried by calling it again.
    """

    def __init__(
        self,
        submitter: TransactionSubmitter,
        base: Keypair,
        candy_machine: Keypair,
        program_id: Pubkey = PROGRAM_ID,
        candy_machine_program_id: Pubkey = CANDY_MACHINE_PROGRAM_ID,
    ) -> None:
        self.submitter = submitter
        self.base = base
        self.candy_machine = candy_machine
        self.program_id = program_id
        self.candy_machine_program_id = candy_machine_program_id
        self.candy_guard, self.bump = candy_guard_pda(base.pubkey(), program_id)
        self.stage = DeployStage.UNINITIALIZED
        self.history: List[SubmissionResult] = []

    @property
    def authority(self) -> Keypair:
        return self.submitter.payer

    async def _advance(
        self,
        target: DeployStage,
        group: InstructionGroup,
        submitter: Optional[TransactionSubmitter] = None,
    ) -> SubmissionResult:
        if self.stage != target - 1:
            raise InvalidStageTransition(f"cannot move from {self.stage.name} to {target.name}")
        result = await (submitter or self.submitter).submit(group)
        self.history.append(result)
        if result.ok:
            self.stage = target
        logger.info(
            "deploy_step target=%s status=%s stage=%s signature=%s",
            target.name,
            result.status.value,
            self.stage.name,
            result.signature,
        )
        return result

    async def create_account(self, space: int, lamports: Optional[int] = None) -> SubmissionResult:
        if lamports is None:
            lamports = await AccountDescriptor.minimum_balance_for_rent_exemption(self.submitter.client, space)
        ix = create_account(
            CreateAccountParams(
                from_pubkey=self.authority.pubkey(),
                to_pubkey=self.candy_machine.pubkey(),
                lamports=lamports,
                space=space,
                owner=self.candy_machine_program_id,
            )
        )
        group = InstructionGroup([ix], signers=[self.candy_machine], label="create_account")
        return await self._advance(DeployStage.ACCOUNT_CREATED, group)

    async def initialize(self, data: CandyGuardData) -> SubmissionResult:
        ix = build_initialize_ix(
            candy_guard=self.candy_guard,
            base=self.base.pubkey(),
            authority=self.authority.pubkey(),
            payer=self.authority.pubkey(),
            data=data,
            program_id=self.program_id,
        )
        group = InstructionGroup([ix], signers=[self.base], label="initialize")
        return await self._advance(DeployStage.INITIALIZED, group)

    async def wrap(self) -> SubmissionResult:
        ix = build_wrap_ix(
            candy_guard=self.candy_guard,
            authority=self.authority.pubkey(),
            candy_machine=self.candy_machine.pubkey(),
            candy_machine_authority=self.authority.pubkey(),
            candy_machine_program=self.candy_machine_program_id,
            program_id=self.program_id,
        )
        return await self._advance(DeployStage.WRAPPED, InstructionGroup([ix], label="wrap"))

    async def prepare_mint(
        self,
        nft_mint: Keypair,
        submitter: Optional[TransactionSubmitter] = None,
        lamports: Optional[int] = None,
    ) -> SubmissionResult:
        """Creates the NFT mint and the minter's token account holding its single token."""
        submitter = submitter or self.submitter
        minter = submitter.payer.pubkey()
        space = MINT_LAYOUT.sizeof()
        if lamports is None:
            lamports = await AccountDescriptor.minimum_balance_for_rent_exemption(submitter.client, space)
        token_account = associated_token_address(minter, nft_mint.pubkey())
        group = InstructionGroup(signers=[nft_mint], label="prepare_mint")
        group.add(
            create_account(
                CreateAccountParams(
                    from_pubkey=minter,
                    to_pubkey=nft_mint.pubkey(),
                    lamports=lamports,
                    space=space,
                    owner=TOKEN_PROGRAM_ID,
                )
            ),
            initialize_mint(
                InitializeMintParams(
                    decimals=0,
                    program_id=TOKEN_PROGRAM_ID,
                    mint=nft_mint.pubkey(),
                    mint_authority=minter,
                    freeze_authority=minter,
                )
            ),
            create_associated_token_account(payer=minter, owner=minter, mint=nft_mint.pubkey()),
            mint_to(
                MintToParams(
                    program_id=TOKEN_PROGRAM_ID,
                    mint=nft_mint.pubkey(),
                    dest=token_account,
                    mint_authority=minter,
                    amount=1,
                    signers=[],
                )
            ),
        )
        return await self._advance(DeployStage.READY_TO_MINT, group, submitter)

    async def mint(
        self,
        accounts: MintAccounts,
        mint_args: bytes = b"",
        label: Optional[Label] = None,
        remaining_accounts: Optional[List[AccountMeta]] = None,
        pre_instructions: Sequence[Instruction] = (),
        submitter: Optional[TransactionSubmitter] = None,
    ) -> SubmissionResult:
        """Submits the guarded mint, after any ``pre_instructions`` (e.g. an allow list route)."""
        ix = build_mint_ix(
            accounts,
            mint_args=mint_args,
            label=label,
            remaining_accounts=remaining_accounts,
            program_id=self.program_id,
        )
        group = InstructionGroup(pre_instructions, label="mint").add(ix)
        return await self._advance(DeployStage.MINTED, group, submitter)
