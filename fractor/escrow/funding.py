"""Funding round (IRO): crowdfunding escrow with a deadline-gated decision.

Status is never stored. It is recomputed from the committed total, the goal,
the bound unit ledger and the clock on every call:

    elapsed < funding_period          -> FUNDING
    committed_total < goal            -> FAILED
    unit ledger not bound yet         -> AWAITING_NFT
    otherwise                         -> DISTRIBUTION

Money-moving calls validate, then update the round's own accounting, then
move tokens on the external ledger. If the ledger refuses, the accounting
change is reverted so the call has no effect.

Commits are capped at the goal (OVERSUBSCRIBED), so a successful round
always holds exactly ``goal`` and the minted unit supply equals it.
"""

from __future__ import annotations

import logging
from typing import final

from fractor.core.amounts import mul_div
from fractor.core.clock import Clock
from fractor.core.errors import (
    ALLOWANCE_LOW,
    BAD_STATUS,
    NO_COMMIT,
    OVERSUBSCRIBED,
    AllowanceLowError,
    BadStatusError,
    LedgerError,
    NoCommitError,
    NothingToClaimError,
    OversubscribedError,
    UnauthorizedError,
    ValidationError,
)
from fractor.core.identifiers import Address
from fractor.core.result import Err, Ok
from fractor.core.types import UtcDatetime
from fractor.escrow import _validation as v
from fractor.escrow.events import (
    Committed,
    FundsWithdrawn,
    RefundWithdrawn,
    UnitsWithdrawn,
    emit,
)
from fractor.escrow.lifecycle import FUNDING_TRANSITIONS, FundingStatus, check_transition
from fractor.infra.config import DEFAULT_CONFIG, TOPIC_FUNDING, EscrowConfig
from fractor.infra.protocols import EventBus
from fractor.ledger.token import TokenLedger
from fractor.ledger.transactions import Transaction

logger = logging.getLogger(__name__)

_SRC = "escrow.funding.FundingRound"


@final
class FundingRound:
    """Escrow of committed funding currency for one listing."""

    def __init__(
        self,
        *,
        address: Address,
        owner: Address,
        funding_currency: TokenLedger,
        goal: int,
        beneficiary: Address,
        clock: Clock,
        bus: EventBus | None = None,
        config: EscrowConfig = DEFAULT_CONFIG,
    ) -> None:
        if isinstance(goal, bool) or not isinstance(goal, int) or goal <= 0:
            raise TypeError(f"FundingRound.goal must be int > 0, got {goal!r}")
        self._address = address
        self._owner = owner
        self._currency = funding_currency
        self._goal = goal
        self._beneficiary = beneficiary
        self._clock = clock
        self._bus = bus
        self._config = config
        self._started_at = clock.now()
        self._committed_total = 0
        self._committed_by: dict[Address, int] = {}
        self._outstanding: dict[Address, int] = {}
        self._unit_ledger: TokenLedger | None = None
        self._funds_withdrawn = False
        self._last_seen = FundingStatus.FUNDING

    # -- Immutable parameters --

    @property
    def address(self) -> Address:
        return self._address

    @property
    def owner(self) -> Address:
        return self._owner

    @property
    def funding_currency(self) -> TokenLedger:
        return self._currency

    @property
    def goal(self) -> int:
        return self._goal

    @property
    def beneficiary(self) -> Address:
        return self._beneficiary

    @property
    def started_at(self) -> UtcDatetime:
        return self._started_at

    @property
    def unit_ledger(self) -> TokenLedger | None:
        return self._unit_ledger

    def deadline(self) -> UtcDatetime:
        return self._started_at.plus(self._config.funding_period)

    # -- Queries --

    def committed_total(self) -> int:
        return self._committed_total

    def committed(self, contributor: Address) -> int:
        """Total ever committed by contributor. Never decreases."""
        return self._committed_by.get(contributor, 0)

    def outstanding(self, contributor: Address) -> int:
        """Committed amount not yet refunded or converted to units."""
        return self._outstanding.get(contributor, 0)

    def contributors(self) -> tuple[Address, ...]:
        return tuple(self._committed_by)

    def status(self) -> FundingStatus:
        now = self._clock.now()
        if now.since(self._started_at) < self._config.funding_period:
            current = FundingStatus.FUNDING
        elif self._committed_total < self._goal:
            current = FundingStatus.FAILED
        elif self._unit_ledger is None:
            current = FundingStatus.AWAITING_NFT
        else:
            current = FundingStatus.DISTRIBUTION
        self._observe(current, now)
        return current

    def units_due(self, contributor: Address) -> int:
        """Units the contributor may still withdraw in DISTRIBUTION."""
        if self._unit_ledger is None or self.outstanding(contributor) == 0:
            return 0
        return mul_div(
            self.committed(contributor), self._unit_ledger.total_supply(), self._committed_total,
        )

    # -- Operations --

    def commit(
        self, caller: Address, amount: int,
    ) -> Ok[Transaction] | Err[
        BadStatusError | NoCommitError | ValidationError | OversubscribedError
        | AllowanceLowError | LedgerError
    ]:
        """Pull ``amount`` funding currency from caller into the round."""
        src = f"{_SRC}.commit"
        now = self._clock.now()
        match v.require_status(self.status(), (FundingStatus.FUNDING,), now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        if amount == 0 and not isinstance(amount, bool):
            return Err(NoCommitError(
                message="Commit amount must be > 0", code=NO_COMMIT, timestamp=now, source=src,
            ))
        match v.parse_positive(amount, "commit.amount", now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        remaining = self._goal - self._committed_total
        if amount > remaining:
            return Err(OversubscribedError(
                message=f"Commit of {amount} exceeds remaining {remaining} of goal {self._goal}",
                code=OVERSUBSCRIBED, timestamp=now, source=src,
                goal=self._goal, remaining=remaining,
            ))
        match v.require_allowance(
            self._currency, caller, self._address, amount, ALLOWANCE_LOW, now, src,
        ):
            case Err() as e:
                return e
            case Ok(_):
                pass
        match v.require_balance(self._currency, caller, amount, now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass

        self._committed_by[caller] = self.committed(caller) + amount
        self._outstanding[caller] = self.outstanding(caller) + amount
        self._committed_total += amount

        match self._currency.transfer_from(self._address, caller, self._address, amount):
            case Err() as e:
                self._committed_total -= amount
                self._outstanding[caller] -= amount
                self._committed_by[caller] -= amount
                if self._committed_by[caller] == 0:
                    del self._committed_by[caller]
                    del self._outstanding[caller]
                return e
            case Ok(tx):
                pass

        logger.info(
            "IRO %s: %s committed %d (total %d/%d)",
            self._address, caller, amount, self._committed_total, self._goal,
        )
        emit(self._bus, TOPIC_FUNDING, self._address, Committed(
            round=self._address, contributor=caller, amount=amount,
            committed_total=self._committed_total, at=now,
        ))
        return Ok(tx)

    def withdraw_refunds(
        self, caller: Address,
    ) -> Ok[Transaction] | Err[BadStatusError | NothingToClaimError | LedgerError]:
        """Return a contributor's full commitment from a FAILED round."""
        src = f"{_SRC}.withdraw_refunds"
        now = self._clock.now()
        match v.require_status(self.status(), (FundingStatus.FAILED,), now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        amount = self.outstanding(caller)
        if amount == 0:
            return v.nothing_to_claim(caller, now, src)

        self._outstanding[caller] = 0
        match self._currency.transfer(self._address, caller, amount):
            case Err() as e:
                self._outstanding[caller] = amount
                return e
            case Ok(tx):
                pass

        logger.info("IRO %s: refunded %d to %s", self._address, amount, caller)
        emit(self._bus, TOPIC_FUNDING, self._address, RefundWithdrawn(
            round=self._address, contributor=caller, amount=amount, at=now,
        ))
        return Ok(tx)

    def withdraw_funds(
        self, caller: Address,
    ) -> Ok[Transaction] | Err[BadStatusError | UnauthorizedError | LedgerError]:
        """Pay the raised total to the beneficiary, once."""
        src = f"{_SRC}.withdraw_funds"
        now = self._clock.now()
        match v.require_status(self.status(), (FundingStatus.DISTRIBUTION,), now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        if caller != self._beneficiary:
            return v.unauthorized(caller, "BENEFICIARY", now, src)
        if self._funds_withdrawn:
            return Err(BadStatusError(
                message="Funds already withdrawn", code=BAD_STATUS, timestamp=now, source=src,
                actual=FundingStatus.DISTRIBUTION.value,
                required=(FundingStatus.DISTRIBUTION.value,),
            ))
        amount = self._committed_total

        self._funds_withdrawn = True
        match self._currency.transfer(self._address, self._beneficiary, amount):
            case Err() as e:
                self._funds_withdrawn = False
                return e
            case Ok(tx):
                pass

        logger.info("IRO %s: %d paid to beneficiary %s", self._address, amount, caller)
        emit(self._bus, TOPIC_FUNDING, self._address, FundsWithdrawn(
            round=self._address, beneficiary=caller, amount=amount, at=now,
        ))
        return Ok(tx)

    def withdraw_tokens(
        self, caller: Address,
    ) -> Ok[Transaction] | Err[BadStatusError | NothingToClaimError | LedgerError]:
        """Pay a contributor their pro-rata share of the minted units."""
        src = f"{_SRC}.withdraw_tokens"
        now = self._clock.now()
        match v.require_status(self.status(), (FundingStatus.DISTRIBUTION,), now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        assert self._unit_ledger is not None  # DISTRIBUTION implies bound
        units = self.units_due(caller)
        if units == 0:
            return v.nothing_to_claim(caller, now, src)

        outstanding = self._outstanding[caller]
        self._outstanding[caller] = 0
        match self._unit_ledger.transfer(self._address, caller, units):
            case Err() as e:
                self._outstanding[caller] = outstanding
                return e
            case Ok(tx):
                pass

        logger.info("IRO %s: %d units to %s", self._address, units, caller)
        emit(self._bus, TOPIC_FUNDING, self._address, UnitsWithdrawn(
            round=self._address, contributor=caller, units=units, at=now,
        ))
        return Ok(tx)

    def bind_units(
        self, caller: Address, ledger: TokenLedger,
    ) -> Ok[None] | Err[BadStatusError | UnauthorizedError]:
        """Attach the unit ledger minted into this round. Owner only, once."""
        src = f"{_SRC}.bind_units"
        now = self._clock.now()
        if caller != self._owner:
            return v.unauthorized(caller, "ROUND_OWNER", now, src)
        match v.require_status(self.status(), (FundingStatus.AWAITING_NFT,), now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        self._unit_ledger = ledger
        logger.info(
            "IRO %s: unit token %s bound (%d units in custody)",
            self._address, ledger.symbol, ledger.balance_of(self._address),
        )
        self.status()
        return Ok(None)

    # -- Internals --

    def _observe(self, current: FundingStatus, now: UtcDatetime) -> None:
        if current is self._last_seen:
            return
        match check_transition(self._last_seen, current, FUNDING_TRANSITIONS, now):
            case Err(e):
                raise RuntimeError(f"IRO {self._address}: {e.message}")
            case Ok(_):
                pass
        logger.info("IRO %s: %s -> %s", self._address, self._last_seen.value, current.value)
        self._last_seen = current
