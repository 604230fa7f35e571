"""Tests for fractor.escrow.funding — FundingRound commit, refund and distribution."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from hypothesis import given
from hypothesis import strategies as st

from fractor.core.clock import ManualClock
from fractor.core.errors import (
    ALLOWANCE_LOW,
    BAD_STATUS,
    INSUFFICIENT_BALANCE,
    INVALID_AMOUNT,
    NO_COMMIT,
    NOTHING_TO_CLAIM,
    OVERSUBSCRIBED,
    UNAUTHORIZED,
)
from fractor.core.identifiers import Address, derive_address
from fractor.core.result import Err, Ok, unwrap
from fractor.core.types import UtcDatetime
from fractor.escrow.funding import FundingRound
from fractor.escrow.lifecycle import FundingStatus
from fractor.infra.config import DEFAULT_CONFIG, TOPIC_FUNDING
from fractor.infra.memory_adapter import InMemoryEventBus
from fractor.ledger.token import TokenLedger

if TYPE_CHECKING:
    from conftest import Actors

GOAL = 1_000_000
PERIOD = DEFAULT_CONFIG.funding_period
_ROUND = derive_address("iro:test")
_T0 = UtcDatetime(value=datetime(2025, 6, 15, 10, 0, 0, tzinfo=UTC))


@pytest.fixture
def iro(
    clock: ManualClock, usdc: TokenLedger, bus: InMemoryEventBus, actors: Actors,
) -> FundingRound:
    """Standalone round owned by the admin."""
    return FundingRound(
        address=_ROUND,
        owner=actors.admin,
        funding_currency=usdc,
        goal=GOAL,
        beneficiary=actors.beneficiary,
        clock=clock,
        bus=bus,
    )


def _commit(iro: FundingRound, usdc: TokenLedger, who: Address, amount: int) -> None:
    unwrap(usdc.approve(who, iro.address, amount))
    unwrap(iro.commit(who, amount))


def _units_for(iro: FundingRound, clock: ManualClock) -> TokenLedger:
    return TokenLedger(
        "Villa units", "FRAC-T", initial_supply=GOAL, holder=iro.address, clock=clock,
    )


def _succeeded(
    iro: FundingRound, usdc: TokenLedger, clock: ManualClock, actors: Actors,
) -> TokenLedger:
    _commit(iro, usdc, actors.alice, 800_000)
    _commit(iro, usdc, actors.bob, 200_000)
    clock.advance(PERIOD)
    units = _units_for(iro, clock)
    unwrap(iro.bind_units(actors.admin, units))
    return units


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


class TestStatus:
    def test_starts_funding(self, iro: FundingRound, clock: ManualClock) -> None:
        assert iro.status() is FundingStatus.FUNDING
        assert iro.started_at == clock.now()
        assert iro.deadline() == clock.now().plus(PERIOD)

    def test_deadline_boundary(
        self, iro: FundingRound, clock: ManualClock,
    ) -> None:
        clock.advance(PERIOD - timedelta(seconds=1))
        assert iro.status() is FundingStatus.FUNDING
        clock.advance(timedelta(seconds=1))
        assert iro.status() is FundingStatus.FAILED

    def test_goal_reached_awaits_nft(
        self, iro: FundingRound, usdc: TokenLedger, clock: ManualClock, actors: Actors,
    ) -> None:
        _commit(iro, usdc, actors.alice, GOAL)
        assert iro.status() is FundingStatus.FUNDING
        clock.advance(PERIOD)
        assert iro.status() is FundingStatus.AWAITING_NFT

    def test_status_never_stored(
        self, iro: FundingRound, usdc: TokenLedger, clock: ManualClock, actors: Actors,
    ) -> None:
        _commit(iro, usdc, actors.alice, 10)
        clock.advance(PERIOD * 3)
        assert iro.status() is FundingStatus.FAILED

    def test_rejects_bad_goal(self, clock: ManualClock, usdc: TokenLedger, actors: Actors) -> None:
        with pytest.raises(TypeError):
            FundingRound(
                address=_ROUND, owner=actors.admin, funding_currency=usdc, goal=0,
                beneficiary=actors.beneficiary, clock=clock,
            )


# ---------------------------------------------------------------------------
# Commit
# ---------------------------------------------------------------------------


class TestCommit:
    def test_pulls_funds(
        self, iro: FundingRound, usdc: TokenLedger, bus: InMemoryEventBus, actors: Actors,
    ) -> None:
        before = usdc.balance_of(actors.alice)
        _commit(iro, usdc, actors.alice, 300)
        assert usdc.balance_of(actors.alice) == before - 300
        assert usdc.balance_of(iro.address) == 300
        assert iro.committed(actors.alice) == 300
        assert iro.outstanding(actors.alice) == 300
        assert iro.committed_total() == 300
        assert usdc.allowance(actors.alice, iro.address) == 0
        [event] = bus.decoded(TOPIC_FUNDING)
        assert event["_type"] == "Committed"
        assert event["committed_total"] == 300

    def test_accumulates(self, iro: FundingRound, usdc: TokenLedger, actors: Actors) -> None:
        _commit(iro, usdc, actors.alice, 100)
        _commit(iro, usdc, actors.alice, 50)
        _commit(iro, usdc, actors.bob, 25)
        assert iro.committed(actors.alice) == 150
        assert iro.committed_total() == 175
        assert iro.contributors() == (actors.alice, actors.bob)

    def test_zero_is_no_commit(self, iro: FundingRound, actors: Actors) -> None:
        result = iro.commit(actors.alice, 0)
        assert isinstance(result, Err)
        assert result.error.code == NO_COMMIT

    def test_negative_is_invalid(self, iro: FundingRound, actors: Actors) -> None:
        result = iro.commit(actors.alice, -5)
        assert isinstance(result, Err)
        assert result.error.code == INVALID_AMOUNT

    def test_allowance_low(self, iro: FundingRound, usdc: TokenLedger, actors: Actors) -> None:
        unwrap(usdc.approve(actors.alice, iro.address, 99))
        result = iro.commit(actors.alice, 100)
        assert isinstance(result, Err)
        assert result.error.code == ALLOWANCE_LOW
        assert iro.committed_total() == 0
        assert usdc.balance_of(iro.address) == 0

    def test_insufficient_balance_has_no_effect(
        self, iro: FundingRound, usdc: TokenLedger, actors: Actors,
    ) -> None:
        poor = derive_address("poor")
        unwrap(usdc.approve(poor, iro.address, 100))
        result = iro.commit(poor, 100)
        assert isinstance(result, Err)
        assert result.error.code == INSUFFICIENT_BALANCE
        assert iro.committed(poor) == 0
        assert iro.contributors() == ()

    def test_oversubscription_rejected(
        self, iro: FundingRound, usdc: TokenLedger, actors: Actors,
    ) -> None:
        _commit(iro, usdc, actors.alice, GOAL - 10)
        unwrap(usdc.approve(actors.bob, iro.address, 11))
        result = iro.commit(actors.bob, 11)
        assert isinstance(result, Err)
        assert result.error.code == OVERSUBSCRIBED
        assert result.error.remaining == 10
        assert isinstance(iro.commit(actors.bob, 10), Ok)
        assert iro.committed_total() == GOAL

    def test_after_deadline_bad_status(
        self, iro: FundingRound, usdc: TokenLedger, clock: ManualClock, actors: Actors,
    ) -> None:
        clock.advance(PERIOD)
        unwrap(usdc.approve(actors.alice, iro.address, 10))
        result = iro.commit(actors.alice, 10)
        assert isinstance(result, Err)
        assert result.error.code == BAD_STATUS


# ---------------------------------------------------------------------------
# Failed round
# ---------------------------------------------------------------------------


class TestRefunds:
    def test_refund_full_commitment(
        self, iro: FundingRound, usdc: TokenLedger, clock: ManualClock, actors: Actors,
    ) -> None:
        before = usdc.balance_of(actors.alice)
        _commit(iro, usdc, actors.alice, 400)
        _commit(iro, usdc, actors.alice, 100)
        clock.advance(PERIOD)
        unwrap(iro.withdraw_refunds(actors.alice))
        assert usdc.balance_of(actors.alice) == before
        assert iro.outstanding(actors.alice) == 0
        assert iro.committed(actors.alice) == 500

    def test_second_refund_nothing_to_claim(
        self, iro: FundingRound, usdc: TokenLedger, clock: ManualClock, actors: Actors,
    ) -> None:
        _commit(iro, usdc, actors.alice, 400)
        clock.advance(PERIOD)
        unwrap(iro.withdraw_refunds(actors.alice))
        result = iro.withdraw_refunds(actors.alice)
        assert isinstance(result, Err)
        assert result.error.code == NOTHING_TO_CLAIM

    def test_non_contributor_nothing_to_claim(
        self, iro: FundingRound, clock: ManualClock, actors: Actors,
    ) -> None:
        clock.advance(PERIOD)
        result = iro.withdraw_refunds(actors.carol)
        assert isinstance(result, Err)
        assert result.error.code == NOTHING_TO_CLAIM

    def test_refund_while_funding_bad_status(
        self, iro: FundingRound, usdc: TokenLedger, actors: Actors,
    ) -> None:
        _commit(iro, usdc, actors.alice, 400)
        result = iro.withdraw_refunds(actors.alice)
        assert isinstance(result, Err)
        assert result.error.code == BAD_STATUS

    def test_no_refund_from_successful_round(
        self, iro: FundingRound, usdc: TokenLedger, clock: ManualClock, actors: Actors,
    ) -> None:
        _commit(iro, usdc, actors.alice, GOAL)
        clock.advance(PERIOD)
        result = iro.withdraw_refunds(actors.alice)
        assert isinstance(result, Err)
        assert result.error.code == BAD_STATUS


# ---------------------------------------------------------------------------
# Binding and distribution
# ---------------------------------------------------------------------------


class TestBindUnits:
    def test_owner_only(
        self, iro: FundingRound, usdc: TokenLedger, clock: ManualClock, actors: Actors,
    ) -> None:
        _commit(iro, usdc, actors.alice, GOAL)
        clock.advance(PERIOD)
        result = iro.bind_units(actors.alice, _units_for(iro, clock))
        assert isinstance(result, Err)
        assert result.error.code == UNAUTHORIZED

    def test_only_awaiting_nft(self, iro: FundingRound, clock: ManualClock, actors: Actors) -> None:
        result = iro.bind_units(actors.admin, _units_for(iro, clock))
        assert isinstance(result, Err)
        assert result.error.code == BAD_STATUS

    def test_binds_once(
        self, iro: FundingRound, usdc: TokenLedger, clock: ManualClock, actors: Actors,
    ) -> None:
        units = _succeeded(iro, usdc, clock, actors)
        assert iro.status() is FundingStatus.DISTRIBUTION
        assert iro.unit_ledger is units
        result = iro.bind_units(actors.admin, _units_for(iro, clock))
        assert isinstance(result, Err)
        assert result.error.code == BAD_STATUS


class TestDistribution:
    def test_beneficiary_withdraws_once(
        self, iro: FundingRound, usdc: TokenLedger, clock: ManualClock, actors: Actors,
    ) -> None:
        _succeeded(iro, usdc, clock, actors)
        unwrap(iro.withdraw_funds(actors.beneficiary))
        assert usdc.balance_of(actors.beneficiary) == GOAL
        again = iro.withdraw_funds(actors.beneficiary)
        assert isinstance(again, Err)
        assert again.error.code == BAD_STATUS

    def test_only_beneficiary(
        self, iro: FundingRound, usdc: TokenLedger, clock: ManualClock, actors: Actors,
    ) -> None:
        _succeeded(iro, usdc, clock, actors)
        result = iro.withdraw_funds(actors.alice)
        assert isinstance(result, Err)
        assert result.error.code == UNAUTHORIZED

    def test_funds_not_before_binding(
        self, iro: FundingRound, usdc: TokenLedger, clock: ManualClock, actors: Actors,
    ) -> None:
        _commit(iro, usdc, actors.alice, GOAL)
        clock.advance(PERIOD)
        result = iro.withdraw_funds(actors.beneficiary)
        assert isinstance(result, Err)
        assert result.error.code == BAD_STATUS

    def test_units_pro_rata(
        self, iro: FundingRound, usdc: TokenLedger, clock: ManualClock, actors: Actors,
    ) -> None:
        units = _succeeded(iro, usdc, clock, actors)
        assert iro.units_due(actors.alice) == 800_000
        unwrap(iro.withdraw_tokens(actors.alice))
        unwrap(iro.withdraw_tokens(actors.bob))
        assert units.balance_of(actors.alice) == 800_000
        assert units.balance_of(actors.bob) == 200_000
        assert units.balance_of(iro.address) == 0
        again = iro.withdraw_tokens(actors.alice)
        assert isinstance(again, Err)
        assert again.error.code == NOTHING_TO_CLAIM

    def test_non_contributor_gets_nothing(
        self, iro: FundingRound, usdc: TokenLedger, clock: ManualClock, actors: Actors,
    ) -> None:
        _succeeded(iro, usdc, clock, actors)
        result = iro.withdraw_tokens(actors.carol)
        assert isinstance(result, Err)
        assert result.error.code == NOTHING_TO_CLAIM

    def test_events_published(
        self, iro: FundingRound, usdc: TokenLedger, clock: ManualClock,
        bus: InMemoryEventBus, actors: Actors,
    ) -> None:
        _succeeded(iro, usdc, clock, actors)
        unwrap(iro.withdraw_funds(actors.beneficiary))
        unwrap(iro.withdraw_tokens(actors.alice))
        assert bus.event_types(TOPIC_FUNDING) == [
            "Committed", "Committed", "FundsWithdrawn", "UnitsWithdrawn",
        ]


class TestProperties:
    @given(st.lists(st.integers(min_value=1, max_value=GOAL // 4), min_size=1, max_size=4))
    def test_committed_total_is_sum_of_commitments(self, amounts: list[int]) -> None:
        clock = ManualClock(_T0)
        treasury = derive_address("treasury")
        usdc = TokenLedger("USD Coin", "USDC", initial_supply=10 * GOAL, holder=treasury, clock=clock)
        round_ = FundingRound(
            address=_ROUND, owner=treasury, funding_currency=usdc, goal=GOAL,
            beneficiary=treasury, clock=clock,
        )
        for i, amount in enumerate(amounts):
            who = derive_address(f"holder:{i}")
            unwrap(usdc.transfer(treasury, who, amount))
            _commit(round_, usdc, who, amount)
        assert round_.committed_total() == sum(amounts)
        assert sum(round_.committed(c) for c in round_.contributors()) == round_.committed_total()
        assert usdc.balance_of(round_.address) == round_.committed_total()
