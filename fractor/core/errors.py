"""Error value hierarchy — escrow operations return these, they never raise them.

Every error is a frozen dataclass carrying a stable ``code`` (the named
failure a caller reacts to), the time it was produced and the
"module.function" that produced it. Base class FractorError.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import final

from fractor.core.types import UtcDatetime

# Stable error codes
NO_COMMIT = "NO_COMMIT"
ALLOWANCE_LOW = "ALLOWANCE_LOW"
TOKEN_ALLOWANCE_LOW = "TOKEN_ALLOWANCE_LOW"
FUNDING_ALLOWANCE_LOW = "FUNDING_ALLOWANCE_LOW"
BAD_STATUS = "BAD_STATUS"
WRONG_IRO_STAGE = "WRONG_IRO_STAGE"
UNAUTHORIZED = "UNAUTHORIZED"
NOTHING_TO_CLAIM = "NOTHING_TO_CLAIM"
OVERSUBSCRIBED = "OVERSUBSCRIBED"
INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
INSUFFICIENT_ALLOWANCE = "INSUFFICIENT_ALLOWANCE"
NOT_OWNER = "NOT_OWNER"
NOT_APPROVED = "NOT_APPROVED"
UNKNOWN_TOKEN = "UNKNOWN_TOKEN"
CONSERVATION_VIOLATION = "CONSERVATION_VIOLATION"
INVALID_AMOUNT = "INVALID_AMOUNT"
INVALID_OFFER = "INVALID_OFFER"
INVALID_INDEX = "INVALID_INDEX"
INVALID_NAME = "INVALID_NAME"
INVALID_TEMPLATE = "INVALID_TEMPLATE"


@dataclass(frozen=True, slots=True)
class FractorError:
    """Base error value. NOT @final — has subclasses."""

    message: str
    code: str
    timestamp: UtcDatetime
    source: str  # "module.function" that produced this error

    def with_context(self, context: str) -> FractorError:
        """Return a copy with context prepended to message."""
        return replace(self, message=f"{context}: {self.message}")

    def to_dict(self) -> dict[str, object]:
        return {
            "message": self.message,
            "code": self.code,
            "timestamp": self.timestamp.value.isoformat(),
            "source": self.source,
        }


@final
@dataclass(frozen=True, slots=True)
class FieldViolation:
    """A single argument validation failure."""

    path: str  # e.g. "offer.unit_amount"
    constraint: str  # e.g. "must be > 0"
    actual_value: str


@final
@dataclass(frozen=True, slots=True)
class ValidationError(FractorError):
    """One or more arguments are malformed."""

    fields: tuple[FieldViolation, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            **FractorError.to_dict(self),
            "fields": [
                {"path": f.path, "constraint": f.constraint, "actual_value": f.actual_value}
                for f in self.fields
            ],
        }


@final
@dataclass(frozen=True, slots=True)
class NoCommitError(FractorError):
    """Commit of a zero amount."""


@final
@dataclass(frozen=True, slots=True)
class AllowanceLowError(FractorError):
    """Depositor has not approved enough for the escrow to pull.

    code is one of ALLOWANCE_LOW, TOKEN_ALLOWANCE_LOW, FUNDING_ALLOWANCE_LOW.
    """

    asset: str
    required: int
    available: int

    def to_dict(self) -> dict[str, object]:
        return {
            **FractorError.to_dict(self),
            "asset": self.asset,
            "required": self.required,
            "available": self.available,
        }


@final
@dataclass(frozen=True, slots=True)
class BadStatusError(FractorError):
    """Operation attempted outside its required state."""

    actual: str
    required: tuple[str, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            **FractorError.to_dict(self),
            "actual": self.actual,
            "required": list(self.required),
        }


@final
@dataclass(frozen=True, slots=True)
class WrongIroStageError(FractorError):
    """Title registration before the funding round is awaiting it."""

    stage: str

    def to_dict(self) -> dict[str, object]:
        return {**FractorError.to_dict(self), "stage": self.stage}


@final
@dataclass(frozen=True, slots=True)
class UnauthorizedError(FractorError):
    """Caller lacks the capability the operation requires."""

    account: str
    capability: str

    def to_dict(self) -> dict[str, object]:
        return {
            **FractorError.to_dict(self),
            "account": self.account,
            "capability": self.capability,
        }


@final
@dataclass(frozen=True, slots=True)
class NothingToClaimError(FractorError):
    """Payout requested with a zero entitlement."""

    account: str

    def to_dict(self) -> dict[str, object]:
        return {**FractorError.to_dict(self), "account": self.account}


@final
@dataclass(frozen=True, slots=True)
class OversubscribedError(FractorError):
    """Commit would take the funding round past its goal."""

    goal: int
    remaining: int

    def to_dict(self) -> dict[str, object]:
        return {**FractorError.to_dict(self), "goal": self.goal, "remaining": self.remaining}


@final
@dataclass(frozen=True, slots=True)
class LedgerError(FractorError):
    """Token ledger or title registry refused a movement."""

    ledger: str

    def to_dict(self) -> dict[str, object]:
        return {**FractorError.to_dict(self), "ledger": self.ledger}


type EscrowError = (
    ValidationError
    | NoCommitError
    | AllowanceLowError
    | BadStatusError
    | WrongIroStageError
    | UnauthorizedError
    | NothingToClaimError
    | OversubscribedError
    | LedgerError
)
