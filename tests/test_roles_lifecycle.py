"""Tests for fractor.escrow.roles and fractor.escrow.lifecycle."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

import pytest

from fractor.core.clock import ManualClock
from fractor.core.errors import BAD_STATUS, UNAUTHORIZED
from fractor.core.identifiers import derive_address
from fractor.core.result import Err, Ok
from fractor.core.types import UtcDatetime
from fractor.escrow.lifecycle import (
    BUYOUT_TRANSITIONS,
    FUNDING_TRANSITIONS,
    LISTING_TRANSITIONS,
    TERMINAL_BUYOUT,
    TERMINAL_FUNDING,
    BuyoutStatus,
    FundingStatus,
    ListingStatus,
    TransitionTable,
    check_transition,
)
from fractor.escrow.roles import Capabilities, Role

_T0 = UtcDatetime(value=datetime(2025, 6, 15, 10, 0, 0, tzinfo=UTC))
_ADMIN = derive_address("admin")
_ALICE = derive_address("alice")
_BOB = derive_address("bob")


def _caps() -> Capabilities:
    return Capabilities(_ADMIN, ManualClock(_T0))


class TestCapabilities:
    def test_admin_bootstrapped(self) -> None:
        caps = _caps()
        assert caps.has_role(_ADMIN, Role.ADMIN)
        assert caps.members(Role.DIRECTOR) == frozenset()

    def test_grant_and_revoke(self) -> None:
        caps = _caps()
        assert caps.grant(_ADMIN, Role.DIRECTOR, _ALICE) == Ok(True)
        assert caps.grant(_ADMIN, Role.DIRECTOR, _ALICE) == Ok(False)
        assert caps.has_role(_ALICE, Role.DIRECTOR)
        assert caps.revoke(_ADMIN, Role.DIRECTOR, _ALICE) == Ok(True)
        assert caps.revoke(_ADMIN, Role.DIRECTOR, _ALICE) == Ok(False)
        assert not caps.has_role(_ALICE, Role.DIRECTOR)

    def test_non_admin_cannot_grant(self) -> None:
        result = _caps().grant(_ALICE, Role.DIRECTOR, _ALICE)
        assert isinstance(result, Err)
        assert result.error.code == UNAUTHORIZED
        assert result.error.capability == "ADMIN"

    def test_require(self) -> None:
        caps = _caps()
        assert caps.require(_ADMIN, Role.ADMIN, "t") == Ok(None)
        result = caps.require(_BOB, Role.DUE_DILIGENCE, "t")
        assert isinstance(result, Err)
        assert result.error.account == _BOB.value

    def test_roles_are_independent(self) -> None:
        caps = _caps()
        caps.grant(_ADMIN, Role.DUE_DILIGENCE, _ALICE)
        assert not caps.has_role(_ALICE, Role.DIRECTOR)
        assert not caps.has_role(_ALICE, Role.ADMIN)


class TestTransitions:
    @pytest.mark.parametrize(("table", "src", "dst"), [
        (FUNDING_TRANSITIONS, FundingStatus.FUNDING, FundingStatus.FAILED),
        (FUNDING_TRANSITIONS, FundingStatus.FUNDING, FundingStatus.AWAITING_NFT),
        (FUNDING_TRANSITIONS, FundingStatus.AWAITING_NFT, FundingStatus.DISTRIBUTION),
        (BUYOUT_TRANSITIONS, BuyoutStatus.NEW, BuyoutStatus.OPEN),
        (BUYOUT_TRANSITIONS, BuyoutStatus.OPEN, BuyoutStatus.COUNTERED),
        (BUYOUT_TRANSITIONS, BuyoutStatus.OPEN, BuyoutStatus.SUCCESS),
        (LISTING_TRANSITIONS, ListingStatus.NEW, ListingStatus.IRO),
        (LISTING_TRANSITIONS, ListingStatus.IRO, ListingStatus.LIVE),
    ])
    def test_legal(self, table: TransitionTable, src: Enum, dst: Enum) -> None:
        assert check_transition(src, dst, table, _T0) == Ok(None)

    @pytest.mark.parametrize(("table", "src", "dst"), [
        (FUNDING_TRANSITIONS, FundingStatus.FAILED, FundingStatus.FUNDING),
        (FUNDING_TRANSITIONS, FundingStatus.FUNDING, FundingStatus.DISTRIBUTION),
        (BUYOUT_TRANSITIONS, BuyoutStatus.SUCCESS, BuyoutStatus.COUNTERED),
        (BUYOUT_TRANSITIONS, BuyoutStatus.NEW, BuyoutStatus.SUCCESS),
        (LISTING_TRANSITIONS, ListingStatus.LIVE, ListingStatus.NEW),
    ])
    def test_illegal(self, table: TransitionTable, src: Enum, dst: Enum) -> None:
        result = check_transition(src, dst, table, _T0)
        assert isinstance(result, Err)
        assert result.error.code == BAD_STATUS

    def test_self_transition_ok(self) -> None:
        assert check_transition(
            FundingStatus.FAILED, FundingStatus.FAILED, FUNDING_TRANSITIONS, _T0,
        ) == Ok(None)

    def test_terminal_states_have_no_exits(self) -> None:
        for state in TERMINAL_FUNDING:
            assert not any(src == state for src, _ in FUNDING_TRANSITIONS)
        for buyout_state in TERMINAL_BUYOUT:
            assert not any(src == buyout_state for src, _ in BUYOUT_TRANSITIONS)

    def test_illegal_lists_allowed_targets(self) -> None:
        result = check_transition(
            FundingStatus.FUNDING, FundingStatus.DISTRIBUTION, FUNDING_TRANSITIONS, _T0,
        )
        assert isinstance(result, Err)
        assert result.error.required == ("AWAITING_NFT", "FAILED")
