import enum
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional


class ErrorCategory(enum.Enum):
    BUFFER_UNDERRUN = "buffer_underrun"
    MALFORMED_OPTION_TAG = "malformed_option_tag"
    WRONG_ACCOUNT_KIND = "wrong_account_kind"
    ADDRESS_DERIVATION_FAILED = "address_derivation_failed"
    TRANSACTION_REJECTED = "transaction_rejected"
    INVALID_DATA = "invalid_data"
    ACCOUNT_NOT_FOUND = "account_not_found"
    INVALID_STAGE = "invalid_stage"


class CandyGuardClientError(Exception):
    category = ErrorCategory.INVALID_DATA


class BufferUnderrun(CandyGuardClientError):
    category = ErrorCategory.BUFFER_UNDERRUN

    def __init__(self, offset: int, needed: int, available: int) -> None:
        super().__init__(
            f"read of {needed} bytes at offset {offset} exceeds buffer ({available} bytes available)"
        )
        self.offset = offset
        self.needed = needed
        self.available = available


class MalformedOptionTag(CandyGuardClientError):
    category = ErrorCategory.MALFORMED_OPTION_TAG

    def __init__(self, tag: int, offset: int) -> None:
        super().__init__(f"invalid option tag {tag} at offset {offset} (expected 0 or 1)")
        self.tag = tag
        self.offset = offset


class WrongAccountKind(CandyGuardClientError):
    category = ErrorCategory.WRONG_ACCOUNT_KIND

    def __init__(self, kind: str, expected: bytes, actual: bytes) -> None:
        super().__init__(
            f"account is not a {kind}: expected discriminator {expected.hex()}, found {actual.hex()}"
        )
        self.kind = kind
        self.expected = expected
        self.actual = actual


class AddressDerivationFailed(CandyGuardClientError):
    category = ErrorCategory.ADDRESS_DERIVATION_FAILED


class DeserializationError(CandyGuardClientError):
    pass


class LabelExceededLength(CandyGuardClientError):
    pass


class GroupNotFound(CandyGuardClientError):
    pass


class RequiredGroupLabelNotFound(CandyGuardClientError):
    pass


class AccountNotFound(CandyGuardClientError):
    category = ErrorCategory.ACCOUNT_NOT_FOUND


class InvalidStageTransition(CandyGuardClientError):
    category = ErrorCategory.INVALID_STAGE


class ProgramError(enum.Enum):
    """Errors returned by the candy guard program, numbered as Anchor assigns them."""

    InvalidAccountSize = (6000, "Could not save guard to account")
    DeserializationError = (6001, "Could not deserialize guard")
    PublicKeyMismatch = (6002, "Public key mismatch")
    DataIncrementLimitExceeded = (6003, "Missing expected remaining account")
    IncorrectOwner = (6004, "Account does not have correct owner")
    Uninitialized = (6005, "Account is not initialized")
    MissingRemainingAccount = (6006, "Missing expected remaining account")
    NumericalOverflowError = (6007, "Numerical overflow error")
    RequiredGroupLabelNotFound = (6008, "Missing required group label")
    GroupNotFound = (6009, "Group not found")
    LabelExceededLength = (6010, "Group not found")
    CandyMachineEmpty = (6011, "Candy machine is empty")
    InstructionNotFound = (6012, "No instruction was found")
    CollectionKeyMismatch = (6013, "Collection public key mismatch")
    MissingCollectionAccounts = (6014, "Missing collection accounts")
    CollectionUpdateAuthorityKeyMismatch = (6015, "Collection update authority public key mismatch")
    MintNotLastTransaction = (6016, "Mint must be the last instructions of the transaction")
    MintNotLive = (6017, "Mint is not live")
    NotEnoughSOL = (6018, "Not enough SOL to pay for the mint")
    TokenBurnFailed = (6019, "Token burn failed")
    NotEnoughTokens = (6020, "Not enough tokens on the account")
    TokenTransferFailed = (6021, "Token transfer failed")
    MissingRequiredSignature = (6022, "A signature was required but not found")
    GatewayTokenInvalid = (6023, "Gateway token is not valid")
    AfterEndDate = (6024, "Current time is after the set end date")
    InvalidMintTime = (6025, "Current time is not within the allowed mint time")
    AddressNotFoundInAllowedList = (6026, "Address not found on the allowed list")
    MissingAllowedListProof = (6027, "Missing allowed list proof")
    AllowedListNotEnabled = (6028, "Allow list guard is not enabled")
    AllowedMintLimitReached = (6029, "The maximum number of allowed mints was reached")
    InvalidNftCollection = (6030, "Invalid NFT collection")
    MissingNft = (6031, "Missing NFT on the account")
    MaximumRedeemedAmount = (6032, "Current redemeed items is at the set maximum amount")
    AddressNotAuthorized = (6033, "Address not authorized")

    @property
    def code(self) -> int:
        return self.value[0]

    @property
    def message(self) -> str:
        return self.value[1]

    @classmethod
    def from_code(cls, code: int) -> Optional["ProgramError"]:
        for member in cls:
            if member.code == code:
                return member
        return None

    @classmethod
    def from_message(cls, message: str) -> Optional["ProgramError"]:
        if message in _SHARED_MESSAGES:
            return cls[_SHARED_MESSAGES[message]]
        for member in cls:
            if member.message == message:
                return member
        return None


# messages the program gives to more than one error, mapped to the one the guards raise
_SHARED_MESSAGES = {
    "Missing expected remaining account": "MissingRemainingAccount",
    "Group not found": "GroupNotFound",
}

CANDY_GUARD_PROGRAM = "Guard1JwRhJkVH6XZhzoYxeBVQe872VH6QggF4BWmS9g"
BOT_TAX = "BotTax"

_ANCHOR_ERROR = re.compile(r"Error Code: (\w+)\. Error Number: (\d+)\. Error Message: (.+?)\.?$")
_CUSTOM_ERROR = re.compile(r"Program (\w+) failed: custom program error: 0x([0-9a-fA-F]+)")
_BOT_TAX = re.compile(r"Botting is taxed at (\d+) lamports")
_PROGRAM_LOG = re.compile(r"^Program log: (.+?)\.?$")


@dataclass(frozen=True)
class GuardFailure:
    name: str
    message: str
    code: Optional[int] = None

    @property
    def is_bot_tax(self) -> bool:
        return self.name == BOT_TAX


def parse_program_failures(logs: Iterable[str], program_id=CANDY_GUARD_PROGRAM) -> List[GuardFailure]:
    """Extracts program errors and bot tax charges from transaction log lines.

    Each distinct failure is reported once, in the order it first appears. A
    ``custom program error`` line is only looked up in ``ProgramError`` when
    ``program_id`` is the program that failed; the same code repeated by the
    calling programs after an Anchor error line is not a new failure.
    """
    program_id = str(program_id)
    failures: List[GuardFailure] = []
    seen = set()
    anchor_codes = set()

    def add(failure: GuardFailure) -> None:
        if failure.name not in seen:
            seen.add(failure.name)
            failures.append(failure)

    for line in logs:
        match = _ANCHOR_ERROR.search(line)
        if match:
            anchor_codes.add(int(match.group(2)))
            add(GuardFailure(name=match.group(1), message=match.group(3), code=int(match.group(2))))
        else:
            # guards that charge a bot tax log the error text instead of failing
            match = _PROGRAM_LOG.match(line)
            known = ProgramError.from_message(match.group(1)) if match else None
            if known is not None:
                add(GuardFailure(name=known.name, message=known.message, code=known.code))
        match = _CUSTOM_ERROR.search(line)
        if match and int(match.group(2), 16) not in anchor_codes:
            code = int(match.group(2), 16)
            known = ProgramError.from_code(code) if match.group(1) == program_id else None
            if known is not None:
                add(GuardFailure(name=known.name, message=known.message, code=code))
            else:
                add(GuardFailure(name=f"Custom{code}", message=line.strip(), code=code))
        match = _BOT_TAX.search(line)
        if match:
            add(GuardFailure(name=BOT_TAX, message=f"Botting is taxed at {match.group(1)} lamports"))
    return failures


class TransactionRejected(CandyGuardClientError):
    category = ErrorCategory.TRANSACTION_REJECTED

    def __init__(
        self,
        failures: List[GuardFailure],
        logs: Optional[List[str]] = None,
        signature: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> None:
        messages = [f.message for f in failures] or [detail or "transaction rejected"]
        super().__init__("; ".join(messages))
        self.failures = failures
        self.logs = logs or []
        self.signature = signature
        self.detail = detail

    @property
    def messages(self) -> List[str]:
        return [f.message for f in self.failures]
