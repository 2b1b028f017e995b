from .accounts import AllowListProof, CandyGuard, MintCounter
from .errors import (
    CandyGuardClientError,
    ErrorCategory,
    GuardFailure,
    ProgramError,
    TransactionRejected,
    parse_program_failures,
)
from .guards import GUARD_SCHEMA, GuardSet, GuardType
from .instructions import (
    MintAccounts,
    build_initialize_ix,
    build_mint_ix,
    build_route_ix,
    build_unwrap_ix,
    build_update_ix,
    build_withdraw_ix,
    build_wrap_ix,
)
from .pda import PROGRAM_ID, candy_guard_pda, derive
from .state import CandyGuardData
from .transactions import (
    DeployFlow,
    DeployStage,
    InstructionGroup,
    SubmissionResult,
    SubmissionStatus,
    TransactionSubmitter,
)

__all__ = [
    "AllowListProof",
    "CandyGuard",
    "CandyGuardClientError",
    "CandyGuardData",
    "DeployFlow",
    "DeployStage",
    "ErrorCategory",
    "GUARD_SCHEMA",
    "GuardFailure",
    "GuardSet",
    "GuardType",
    "InstructionGroup",
    "MintAccounts",
    "MintCounter",
    "PROGRAM_ID",
    "ProgramError",
    "SubmissionResult",
    "SubmissionStatus",
    "TransactionRejected",
    "TransactionSubmitter",
    "build_initialize_ix",
    "build_mint_ix",
    "build_route_ix",
    "build_unwrap_ix",
    "build_update_ix",
    "build_withdraw_ix",
    "build_wrap_ix",
    "candy_guard_pda",
    "derive",
    "parse_program_failures",
]
