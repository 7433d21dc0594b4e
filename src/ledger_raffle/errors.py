"""Error taxonomy for raffle operations.

Every failure terminates the call and leaves stored state exactly as it was.
`DomainError` subclasses are reported back to the caller verbatim; store
failures form a separate hierarchy and propagate unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Failure categories."""

    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_STATE = "INVALID_STATE"
    INVALID_INPUT = "INVALID_INPUT"
    OVERFLOW = "OVERFLOW"
    RESOURCE_UNAVAILABLE = "RESOURCE_UNAVAILABLE"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"


@dataclass(frozen=True)
class DomainError(Exception):
    """Base error with a category code and a caller-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


# --- Unauthorized ------------------------------------------------------------


class UnauthorizedError(DomainError):
    """Raised when a non-admin attempts an admin-only transition."""

    def __init__(self, action: str) -> None:
        super().__init__(
            code=ErrorCode.UNAUTHORIZED,
            message=f"Only admin can {action}",
        )


class NotWinnerError(DomainError):
    """Raised when someone other than the stored winner claims or reads the secret."""

    def __init__(self, action: str = "claim prize") -> None:
        super().__init__(
            code=ErrorCode.UNAUTHORIZED,
            message=f"Only winner can {action}",
        )


# --- Invalid state -----------------------------------------------------------


class AlreadyInstantiatedError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message="Raffle already instantiated",
        )


class NotConfiguredError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message="Raffle not yet configured",
        )


class AlreadyStartedError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message="Raffle already started",
        )


class NotStartedError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message="Raffle not started",
        )


class RaffleEndedError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message="Raffle has ended",
        )


class NotYetEndedError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message="Raffle not yet ended",
        )


class AlreadySelectedError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message="Winner already selected",
        )


class WinnerNotSelectedError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message="Winner not selected",
        )


class AlreadyClaimedError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message="Prize already claimed",
        )


class NoWinnerError(DomainError):
    """Raised when the raffle finished with zero tickets sold."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message="No winner set",
        )


# --- Invalid input -----------------------------------------------------------


class AdminCannotBuyError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_INPUT,
            message="Admin cannot buy tickets",
        )


class NoFundsSentError(DomainError):
    def __init__(self, denom: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_INPUT,
            message=f"No {denom} sent",
        )


class NotAMultipleOfPriceError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_INPUT,
            message="Amount must be a multiple of ticket price",
        )


class InvalidConfigError(DomainError):
    def __init__(self, detail: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_INPUT,
            message=f"Invalid raffle configuration: {detail}",
        )


class InvalidIdentityError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_INPUT,
            message="Invalid identity format",
        )


class InvalidMessageError(DomainError):
    def __init__(self, detail: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_INPUT,
            message=f"Invalid message: {detail}",
        )


class InsufficientFundsError(DomainError):
    def __init__(self, denom: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_INPUT,
            message=f"Insufficient {denom} balance",
        )


# --- Overflow ----------------------------------------------------------------


class CounterOverflowError(DomainError):
    """Raised when counter arithmetic would exceed its representable range."""

    def __init__(self, what: str) -> None:
        super().__init__(
            code=ErrorCode.OVERFLOW,
            message=f"{what} overflow",
        )


# --- Resource unavailable ----------------------------------------------------


class RandomnessUnavailableError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.RESOURCE_UNAVAILABLE,
            message="Randomness unavailable",
        )


class NothingToClaimError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.RESOURCE_UNAVAILABLE,
            message="No prize available",
        )


# --- Invalid credential ------------------------------------------------------


class InvalidCredentialError(DomainError):
    def __init__(self, detail: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_CREDENTIAL,
            message=f"Invalid permit: {detail}",
        )


# --- Store -------------------------------------------------------------------


class StoreError(Exception):
    """Base class for key-value store failures."""

    def __init__(self, key: str, detail: str) -> None:
        super().__init__(f"{key}: {detail}")
        self.key = key


class RecordNotFoundError(StoreError):
    def __init__(self, key: str) -> None:
        super().__init__(key, "record not found")


class CorruptRecordError(StoreError):
    def __init__(self, key: str, detail: str = "record is corrupt") -> None:
        super().__init__(key, detail)
