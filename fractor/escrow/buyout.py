"""Buyout round: an offer to acquire the title, contested by counter-bids.

The offerer deposits units and funding. The price implied for the rest of
the supply is

    target = offered_funding * offered_units // (unit_supply - offered_units)

and the round is COUNTERED once counter-bids reach it. Otherwise it
resolves to SUCCESS when the buyout period elapses.

Status is derived, never stored:

    no offer yet                   -> NEW
    counter_total >= target        -> COUNTERED
    within buyout_period           -> OPEN
    otherwise                      -> SUCCESS

Both resolved branches let the remaining holders surrender units for
funding at a fixed per-unit rate. Under SUCCESS the pool is the offerer's
deposit; under COUNTERED it is the pooled counter-bids and surrendered
units accrue to the counter-bidders pro rata to their stake.

A listing may run several rounds at once, but only one title exists. Once
it is claimed through one round, the listing supersedes the others: they
refuse offers, counter-bids and surrenders, and their offerer and
counter-bidders take back whatever the round still holds for them.
"""

from __future__ import annotations

import logging
from typing import final

from fractor.core.amounts import mul_div
from fractor.core.clock import Clock
from fractor.core.errors import (
    BAD_STATUS,
    FUNDING_ALLOWANCE_LOW,
    INVALID_AMOUNT,
    INVALID_OFFER,
    TOKEN_ALLOWANCE_LOW,
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
from fractor.escrow import _validation as v
from fractor.escrow.events import (
    BuyoutSuperseded,
    BuyoutUnitsWithdrawn,
    CounterOfferPlaced,
    CounterOfferWithdrawn,
    OfferPlaced,
    OfferWithdrawn,
    UnitsSurrendered,
    emit,
)
from fractor.escrow.lifecycle import BUYOUT_TRANSITIONS, BuyoutStatus, check_transition
from fractor.infra.config import DEFAULT_CONFIG, TOPIC_BUYOUTS, EscrowConfig
from fractor.infra.protocols import EventBus
from fractor.ledger.token import TokenLedger
from fractor.ledger.transactions import Transaction

logger = logging.getLogger(__name__)

_SRC = "escrow.buyout.BuyoutRound"


def offer_target(offered_funding: int, offered_units: int, unit_supply: int) -> int:
    """Funding the counter-bidders must pool to reject an offer."""
    return mul_div(offered_funding, offered_units, unit_supply - offered_units)


@final
class BuyoutRound:
    """Escrow for one buyout attempt on a live listing."""

    def __init__(
        self,
        *,
        address: Address,
        listing: Address,
        listing_units: TokenLedger,
        funding_currency: TokenLedger,
        clock: Clock,
        bus: EventBus | None = None,
        config: EscrowConfig = DEFAULT_CONFIG,
    ) -> None:
        self._address = address
        self._listing = listing
        self._units = listing_units
        self._currency = funding_currency
        self._clock = clock
        self._bus = bus
        self._config = config

        self._offerer: Address | None = None
        self._offered_units = 0
        self._offered_funding = 0
        self._target = 0
        self._unit_supply = 0
        self._started_at: UtcDatetime | None = None
        self._offer_withdrawn = False

        self._counter_total = 0
        self._counter_by: dict[Address, int] = {}

        self._surrendered_total = 0
        self._surrendered_by: dict[Address, int] = {}
        self._units_taken: dict[Address, int] = {}
        self._paid_out = 0

        self._superseded = False
        self._counter_refunded: set[Address] = set()

        self._last_seen = BuyoutStatus.NEW

    # -- Parameters --

    @property
    def address(self) -> Address:
        return self._address

    @property
    def listing(self) -> Address:
        return self._listing

    @property
    def listing_units(self) -> TokenLedger:
        return self._units

    @property
    def funding_currency(self) -> TokenLedger:
        return self._currency

    @property
    def offerer(self) -> Address | None:
        return self._offerer

    @property
    def offered_units(self) -> int:
        return self._offered_units

    @property
    def offered_funding(self) -> int:
        return self._offered_funding

    @property
    def unit_supply(self) -> int:
        """Unit supply frozen when the offer was placed."""
        return self._unit_supply

    @property
    def started_at(self) -> UtcDatetime | None:
        return self._started_at

    # -- Queries --

    def status(self) -> BuyoutStatus:
        now = self._clock.now()
        if self._offerer is None or self._started_at is None:
            current = BuyoutStatus.NEW
        elif self._counter_total >= self._target:
            current = BuyoutStatus.COUNTERED
        elif now.since(self._started_at) < self._config.buyout_period:
            current = BuyoutStatus.OPEN
        else:
            current = BuyoutStatus.SUCCESS
        self._observe(current, now)
        return current

    def deadline(self) -> UtcDatetime | None:
        if self._started_at is None:
            return None
        return self._started_at.plus(self._config.buyout_period)

    def counter_offer_amount(self) -> int:
        return self._counter_total

    def counter_offer_target(self) -> int:
        return self._target

    def counter_stake(self, party: Address) -> int:
        return self._counter_by.get(party, 0)

    def counter_bidders(self) -> tuple[Address, ...]:
        return tuple(p for p, amount in self._counter_by.items() if amount > 0)

    def surrendered_total(self) -> int:
        return self._surrendered_total

    def surrendered(self, holder: Address) -> int:
        return self._surrendered_by.get(holder, 0)

    def surrender_capacity(self) -> int:
        """Units that may still be surrendered into the round."""
        if self._offerer is None:
            return 0
        return self._unit_supply - self._offered_units - self._surrendered_total

    def surrender_pool(self) -> int:
        """Funding that backs surrenders in the current branch."""
        match self.status():
            case BuyoutStatus.COUNTERED:
                return self._counter_total
            case BuyoutStatus.NEW:
                return 0
            case _:
                return self._offered_funding

    def lead_counter_bidder(self) -> Address | None:
        """Largest counter stake. The earliest bidder wins a tie."""
        lead: Address | None = None
        best = 0
        for party, amount in self._counter_by.items():
            if amount > best:
                lead, best = party, amount
        return lead

    def buyer(self) -> Address | None:
        """Party entitled to claim the title, once the round is resolved."""
        match self.status():
            case BuyoutStatus.SUCCESS:
                return self._offerer
            case BuyoutStatus.COUNTERED:
                return self.lead_counter_bidder()
            case _:
                return None

    def units_due(self, party: Address) -> int:
        """Surrendered units a counter-bidder may still withdraw."""
        stake = self.counter_stake(party)
        if stake == 0 or self._counter_total == 0:
            return 0
        share = mul_div(stake, self._surrendered_total, self._counter_total)
        return share - self._units_taken.get(party, 0)

    def superseded(self) -> bool:
        """True once the title was claimed through another round."""
        return self._superseded

    def counter_refund_due(self, party: Address) -> int:
        """Funding ``withdraw_counter_offer`` would return to ``party`` now.

        A superseded COUNTERED round refunds each stake's share of the pool
        left after surrender payouts. Otherwise the whole stake comes back.
        """
        if party in self._counter_refunded:
            return 0
        stake = self.counter_stake(party)
        if stake and self._superseded and self.status() is BuyoutStatus.COUNTERED:
            return mul_div(stake, self._counter_total - self._paid_out, self._counter_total)
        return stake

    # -- Offer --

    def offer(
        self, caller: Address, unit_amount: int, funding_amount: int,
    ) -> Ok[Transaction] | Err[
        BadStatusError | ValidationError | AllowanceLowError | LedgerError
    ]:
        """Deposit units and funding and open the round.

        Returns the funding deposit transaction.
        """
        src = f"{_SRC}.offer"
        now = self._clock.now()
        match v.require_status(self.status(), (BuyoutStatus.NEW,), now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        match self._require_live(now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        supply = self._units.total_supply()
        violations = _offer_violations(unit_amount, funding_amount, supply)
        if violations:
            return v.val_err("Offer amounts are invalid", INVALID_OFFER, now, src, violations)
        target = offer_target(funding_amount, unit_amount, supply)
        if target == 0:
            return v.val_err(
                f"Offer of {funding_amount} for {unit_amount}/{supply} units implies a zero target",
                INVALID_OFFER, now, src,
                (FieldViolation(path="offer.target", constraint="must be > 0", actual_value="0"),),
            )
        match v.require_allowance(
            self._units, caller, self._address, unit_amount, TOKEN_ALLOWANCE_LOW, now, src,
        ):
            case Err() as e:
                return e
            case Ok(_):
                pass
        match v.require_allowance(
            self._currency, caller, self._address, funding_amount, FUNDING_ALLOWANCE_LOW, now, src,
        ):
            case Err() as e:
                return e
            case Ok(_):
                pass
        match v.require_balance(self._units, caller, unit_amount, now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        match v.require_balance(self._currency, caller, funding_amount, now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass

        self._offerer = caller
        self._offered_units = unit_amount
        self._offered_funding = funding_amount
        self._unit_supply = supply
        self._target = target
        self._started_at = now

        match self._units.transfer_from(self._address, caller, self._address, unit_amount):
            case Err() as e:
                self._clear_offer()
                return e
            case Ok(_):
                pass
        match self._currency.transfer_from(self._address, caller, self._address, funding_amount):
            case Err() as e:
                v.pay_from_custody(self._units, self._address, caller, unit_amount)
                restored = self._units.allowance(caller, self._address) + unit_amount
                self._units.approve(caller, self._address, restored)
                self._clear_offer()
                return e
            case Ok(tx):
                pass

        self.status()
        logger.info(
            "Buyout %s: %s offers %d funding for %d/%d units (target %d)",
            self._address, caller, funding_amount, unit_amount, supply, target,
        )
        deadline = self.deadline()
        assert deadline is not None
        emit(self._bus, TOPIC_BUYOUTS, self._address, OfferPlaced(
            round=self._address, offerer=caller, units=unit_amount,
            funding=funding_amount, target=target, deadline=deadline,
        ))
        return Ok(tx)

    def withdraw_offer(
        self, caller: Address,
    ) -> Ok[Transaction] | Err[
        BadStatusError | UnauthorizedError | NothingToClaimError | LedgerError
    ]:
        """Return a rejected or superseded offer to the offerer.

        COUNTERED returns the deposit as placed. A superseded SUCCESS round
        returns the units bought through surrenders and the funding left
        after paying for them.
        """
        src = f"{_SRC}.withdraw_offer"
        now = self._clock.now()
        status = self.status()
        allowed = (
            (BuyoutStatus.OPEN, BuyoutStatus.SUCCESS, BuyoutStatus.COUNTERED)
            if self._superseded else (BuyoutStatus.COUNTERED,)
        )
        match v.require_status(status, allowed, now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        if caller != self._offerer:
            return v.unauthorized(caller, "OFFERER", now, src)
        if self._offer_withdrawn:
            return v.nothing_to_claim(caller, now, src)

        units, funding = self._offered_units, self._offered_funding
        if status is BuyoutStatus.SUCCESS:
            units += self._surrendered_total
            funding -= self._paid_out

        self._offer_withdrawn = True
        match self._units.transfer(self._address, caller, units):
            case Err() as e:
                self._offer_withdrawn = False
                return e
            case Ok(unit_tx):
                pass
        tx = v.pay_from_custody(self._currency, self._address, caller, funding) if funding else unit_tx

        logger.info(
            "Buyout %s: offer withdrawn by %s (%d units, %d funding)",
            self._address, caller, units, funding,
        )
        emit(self._bus, TOPIC_BUYOUTS, self._address, OfferWithdrawn(
            round=self._address, offerer=caller, units=units, funding=funding, at=now,
        ))
        return Ok(tx)

    # -- Counter-bids --

    def counter_offer(
        self, caller: Address, amount: int,
    ) -> Ok[Transaction] | Err[
        BadStatusError | ValidationError | AllowanceLowError | LedgerError
    ]:
        """Add ``amount`` funding to the pool rejecting the offer."""
        src = f"{_SRC}.counter_offer"
        now = self._clock.now()
        match v.require_status(self.status(), (BuyoutStatus.OPEN,), now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        match self._require_live(now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        match v.parse_positive(amount, "counter_offer.amount", now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        match v.require_allowance(
            self._currency, caller, self._address, amount, FUNDING_ALLOWANCE_LOW, now, src,
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

        is_new = caller not in self._counter_by
        self._counter_by[caller] = self.counter_stake(caller) + amount
        self._counter_total += amount

        match self._currency.transfer_from(self._address, caller, self._address, amount):
            case Err() as e:
                self._counter_total -= amount
                self._counter_by[caller] -= amount
                if is_new:
                    del self._counter_by[caller]
                return e
            case Ok(tx):
                pass

        countered = self.status() is BuyoutStatus.COUNTERED
        logger.info(
            "Buyout %s: %s counters %d (total %d/%d)",
            self._address, caller, amount, self._counter_total, self._target,
        )
        emit(self._bus, TOPIC_BUYOUTS, self._address, CounterOfferPlaced(
            round=self._address, party=caller, amount=amount,
            counter_total=self._counter_total, countered=countered, at=now,
        ))
        return Ok(tx)

    def withdraw_counter_offer(
        self, caller: Address,
    ) -> Ok[Transaction] | Err[BadStatusError | NothingToClaimError | LedgerError]:
        """Refund a counter-bid after the offer succeeded or the round was superseded."""
        src = f"{_SRC}.withdraw_counter_offer"
        now = self._clock.now()
        status = self.status()
        allowed = (
            (BuyoutStatus.OPEN, BuyoutStatus.SUCCESS, BuyoutStatus.COUNTERED)
            if self._superseded else (BuyoutStatus.SUCCESS,)
        )
        match v.require_status(status, allowed, now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        amount = self.counter_refund_due(caller)
        if amount == 0:
            return v.nothing_to_claim(caller, now, src)

        # COUNTERED stakes stay on record: they still weigh units_due
        if status is BuyoutStatus.COUNTERED:
            self._counter_refunded.add(caller)
        else:
            self._counter_by[caller] = 0
            self._counter_total -= amount
        match self._currency.transfer(self._address, caller, amount):
            case Err() as e:
                if status is BuyoutStatus.COUNTERED:
                    self._counter_refunded.discard(caller)
                else:
                    self._counter_by[caller] = amount
                    self._counter_total += amount
                return e
            case Ok(tx):
                pass

        logger.info("Buyout %s: counter-bid of %d refunded to %s", self._address, amount, caller)
        emit(self._bus, TOPIC_BUYOUTS, self._address, CounterOfferWithdrawn(
            round=self._address, party=caller, amount=amount, at=now,
        ))
        return Ok(tx)

    # -- Surrender --

    def surrender_tokens(
        self, caller: Address, amount: int,
    ) -> Ok[Transaction] | Err[
        BadStatusError | UnauthorizedError | ValidationError | AllowanceLowError | LedgerError
    ]:
        """Sell ``amount`` units into the round at the resolved branch's rate.

        Returns the funding payout transaction.
        """
        src = f"{_SRC}.surrender_tokens"
        now = self._clock.now()
        status = self.status()
        match v.require_status(status, (BuyoutStatus.SUCCESS, BuyoutStatus.COUNTERED), now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        match self._require_live(now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        if caller == self._offerer:
            return v.unauthorized(caller, "NON_OFFERER", now, src)
        if status is BuyoutStatus.COUNTERED and self.counter_stake(caller) > 0:
            return v.unauthorized(caller, "NON_COUNTER_BIDDER", now, src)
        match v.parse_positive(amount, "surrender.amount", now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        capacity = self.surrender_capacity()
        if amount > capacity:
            return v.val_err(
                f"Surrender of {amount} exceeds remaining capacity {capacity}",
                INVALID_AMOUNT, now, src,
                (FieldViolation(
                    path="surrender.amount", constraint=f"must be <= {capacity}",
                    actual_value=str(amount),
                ),),
            )
        match v.require_allowance(
            self._units, caller, self._address, amount, TOKEN_ALLOWANCE_LOW, now, src,
        ):
            case Err() as e:
                return e
            case Ok(_):
                pass
        match v.require_balance(self._units, caller, amount, now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass

        pool = self._offered_funding if status is BuyoutStatus.SUCCESS else self._counter_total
        denominator = self._unit_supply - self._offered_units
        before = self.surrendered(caller)
        after = before + amount
        payout = mul_div(after, pool, denominator) - mul_div(before, pool, denominator)

        self._surrendered_by[caller] = after
        self._surrendered_total += amount
        match self._units.transfer_from(self._address, caller, self._address, amount):
            case Err() as e:
                self._surrendered_total -= amount
                self._surrendered_by[caller] = before
                if before == 0:
                    del self._surrendered_by[caller]
                return e
            case Ok(unit_tx):
                pass
        self._paid_out += payout
        tx = v.pay_from_custody(self._currency, self._address, caller, payout) if payout else unit_tx

        logger.info(
            "Buyout %s: %s surrendered %d units for %d (%s)",
            self._address, caller, amount, payout, status.value,
        )
        emit(self._bus, TOPIC_BUYOUTS, self._address, UnitsSurrendered(
            round=self._address, holder=caller, units=amount, payout=payout, at=now,
        ))
        return Ok(tx)

    def withdraw_units(
        self, caller: Address,
    ) -> Ok[Transaction] | Err[BadStatusError | NothingToClaimError | LedgerError]:
        """Pay a counter-bidder their share of units surrendered so far."""
        src = f"{_SRC}.withdraw_units"
        now = self._clock.now()
        match v.require_status(self.status(), (BuyoutStatus.COUNTERED,), now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        units = self.units_due(caller)
        if units == 0:
            return v.nothing_to_claim(caller, now, src)

        taken = self._units_taken.get(caller, 0)
        self._units_taken[caller] = taken + units
        match self._units.transfer(self._address, caller, units):
            case Err() as e:
                self._units_taken[caller] = taken
                return e
            case Ok(tx):
                pass

        logger.info("Buyout %s: %d surrendered units to %s", self._address, units, caller)
        emit(self._bus, TOPIC_BUYOUTS, self._address, BuyoutUnitsWithdrawn(
            round=self._address, party=caller, units=units, at=now,
        ))
        return Ok(tx)

    # -- Supersession --

    def supersede(self, caller: Address) -> Ok[bool] | Err[UnauthorizedError]:
        """Close the round because the title left through another round.

        Listing only. Returns Ok(False) when already superseded.
        """
        src = f"{_SRC}.supersede"
        now = self._clock.now()
        if caller != self._listing:
            return v.unauthorized(caller, "LISTING", now, src)
        if self._superseded:
            return Ok(False)
        self._superseded = True
        logger.info("Buyout %s: superseded (%s)", self._address, self.status().value)
        emit(self._bus, TOPIC_BUYOUTS, self._address, BuyoutSuperseded(
            round=self._address, listing=self._listing, at=now,
        ))
        return Ok(True)

    # -- Internals --

    def _require_live(self, now: UtcDatetime, src: str) -> Ok[None] | Err[BadStatusError]:
        if not self._superseded:
            return Ok(None)
        logger.debug("%s rejected: round superseded", src)
        status = self.status()
        return Err(BadStatusError(
            message=f"Round {self._address} was superseded by a title claim",
            code=BAD_STATUS, timestamp=now, source=src,
            actual=status.value, required=(),
        ))

    def _clear_offer(self) -> None:
        self._offerer = None
        self._offered_units = 0
        self._offered_funding = 0
        self._unit_supply = 0
        self._target = 0
        self._started_at = None

    def _observe(self, current: BuyoutStatus, now: UtcDatetime) -> None:
        if current is self._last_seen:
            return
        match check_transition(self._last_seen, current, BUYOUT_TRANSITIONS, now):
            case Err(e):
                raise RuntimeError(f"Buyout {self._address}: {e.message}")
            case Ok(_):
                pass
        logger.info("Buyout %s: %s -> %s", self._address, self._last_seen.value, current.value)
        self._last_seen = current


def _offer_violations(
    unit_amount: int, funding_amount: int, supply: int,
) -> tuple[FieldViolation, ...]:
    violations: list[FieldViolation] = []
    for path, value in (("offer.unit_amount", unit_amount), ("offer.funding_amount", funding_amount)):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            violations.append(FieldViolation(
                path=path, constraint="must be int > 0", actual_value=repr(value),
            ))
    if not violations and unit_amount >= supply:
        violations.append(FieldViolation(
            path="offer.unit_amount", constraint=f"must be < unit supply {supply}",
            actual_value=str(unit_amount),
        ))
    return tuple(violations)
