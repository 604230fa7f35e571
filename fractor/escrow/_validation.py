"""Shared precondition helpers for escrow operations.

Each helper either returns Ok or the named Err the operation must surface,
so an operation's checks read as a flat sequence of ``match`` blocks.
"""

from __future__ import annotations

import logging
from enum import Enum

from fractor.core.amounts import PositiveAmount
from fractor.core.errors import (
    BAD_STATUS,
    INSUFFICIENT_BALANCE,
    INVALID_AMOUNT,
    NOTHING_TO_CLAIM,
    UNAUTHORIZED,
    AllowanceLowError,
    BadStatusError,
    FieldViolation,
    LedgerError,
    NothingToClaimError,
    UnauthorizedError,
    ValidationError,
)
from fractor.core.identifiers import Address
from fractor.core.result import Err, Ok
from fractor.core.types import UtcDatetime
from fractor.ledger.token import TokenLedger
from fractor.ledger.transactions import Transaction

logger = logging.getLogger(__name__)


def val_err(
    message: str, code: str, timestamp: UtcDatetime, source: str,
    fields: tuple[FieldViolation, ...] = (),
) -> Err[ValidationError]:
    logger.debug("%s rejected (%s): %s", source, code, message)
    return Err(ValidationError(
        message=message, code=code, timestamp=timestamp, source=source, fields=fields,
    ))


def parse_positive(
    value: int, field_name: str, timestamp: UtcDatetime, source: str,
) -> Ok[PositiveAmount] | Err[ValidationError]:
    """Parse an int as PositiveAmount, wrapping failures as ValidationError."""
    match PositiveAmount.parse(value):
        case Err(pe):
            return val_err(
                f"{field_name} must be > 0: {pe}", INVALID_AMOUNT, timestamp, source,
                (FieldViolation(path=field_name, constraint="must be > 0", actual_value=repr(value)),),
            )
        case Ok(pa):
            return Ok(pa)


def require_status[S: Enum](
    actual: S, allowed: tuple[S, ...], timestamp: UtcDatetime, source: str,
) -> Ok[None] | Err[BadStatusError]:
    if actual in allowed:
        return Ok(None)
    logger.debug("%s rejected: status %s", source, actual.value)
    return Err(BadStatusError(
        message=f"Status is {actual.value}, requires {'/'.join(s.value for s in allowed)}",
        code=BAD_STATUS,
        timestamp=timestamp,
        source=source,
        actual=actual.value,
        required=tuple(s.value for s in allowed),
    ))


def unauthorized(
    account: Address, capability: str, timestamp: UtcDatetime, source: str,
) -> Err[UnauthorizedError]:
    logger.debug("%s rejected: %s is not %s", source, account, capability)
    return Err(UnauthorizedError(
        message=f"Account {account} is not {capability}",
        code=UNAUTHORIZED,
        timestamp=timestamp,
        source=source,
        account=account.value,
        capability=capability,
    ))


def nothing_to_claim(
    account: Address, timestamp: UtcDatetime, source: str,
) -> Err[NothingToClaimError]:
    logger.debug("%s rejected: nothing to claim for %s", source, account)
    return Err(NothingToClaimError(
        message=f"Nothing to withdraw for {account}",
        code=NOTHING_TO_CLAIM,
        timestamp=timestamp,
        source=source,
        account=account.value,
    ))


def require_allowance(
    ledger: TokenLedger,
    owner: Address,
    spender: Address,
    amount: int,
    code: str,
    timestamp: UtcDatetime,
    source: str,
) -> Ok[None] | Err[AllowanceLowError]:
    """Fail fast with the operation's named allowance error."""
    available = ledger.allowance(owner, spender)
    if available >= amount:
        return Ok(None)
    logger.debug("%s rejected (%s): allowance %d < %d", source, code, available, amount)
    return Err(AllowanceLowError(
        message=f"{ledger.symbol} allowance {available} from {owner} is below {amount}",
        code=code,
        timestamp=timestamp,
        source=source,
        asset=ledger.symbol,
        required=amount,
        available=available,
    ))


def pay_from_custody(
    ledger: TokenLedger, custody: Address, to: Address, amount: int,
) -> Transaction:
    """Second or later leg of a settlement, paid out of escrow custody.

    Accounting guarantees custody covers every entitlement, so a refusal
    here is a broken invariant, not a caller error.
    """
    match ledger.transfer(custody, to, amount):
        case Err(e):
            raise RuntimeError(f"Custody {custody} cannot pay {amount} {ledger.symbol}: {e.message}")
        case Ok(tx):
            return tx


def require_balance(
    ledger: TokenLedger, account: Address, amount: int, timestamp: UtcDatetime, source: str,
) -> Ok[None] | Err[LedgerError]:
    """Check a balance before any escrow counter is touched."""
    balance = ledger.balance_of(account)
    if balance >= amount:
        return Ok(None)
    logger.debug("%s rejected: balance %d < %d", source, balance, amount)
    return Err(LedgerError(
        message=f"{ledger.symbol} balance of {account} is {balance}, needs {amount}",
        code=INSUFFICIENT_BALANCE,
        timestamp=timestamp,
        source=source,
        ledger=ledger.symbol,
    ))
