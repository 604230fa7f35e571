"""Status enums and transition tables for the three escrow state machines.

Round status is derived from counters and the clock, never stored. The
tables here say which changes between two *observed* statuses are legal;
each escrow checks every status change it observes against its table.
"""

from __future__ import annotations

from enum import Enum

from fractor.core.errors import BAD_STATUS, BadStatusError
from fractor.core.result import Err, Ok
from fractor.core.types import UtcDatetime


class FundingStatus(Enum):
    FUNDING = "FUNDING"
    FAILED = "FAILED"
    AWAITING_NFT = "AWAITING_NFT"
    DISTRIBUTION = "DISTRIBUTION"


class BuyoutStatus(Enum):
    NEW = "NEW"
    OPEN = "OPEN"
    COUNTERED = "COUNTERED"
    SUCCESS = "SUCCESS"


class ListingStatus(Enum):
    NEW = "NEW"
    IRO = "IRO"
    LIVE = "LIVE"


# ---------------------------------------------------------------------------
# Transition tables
# ---------------------------------------------------------------------------

type TransitionTable = frozenset[tuple[Enum, Enum]]

FUNDING_TRANSITIONS: TransitionTable = frozenset({
    (FundingStatus.FUNDING, FundingStatus.FAILED),
    (FundingStatus.FUNDING, FundingStatus.AWAITING_NFT),
    (FundingStatus.AWAITING_NFT, FundingStatus.DISTRIBUTION),
})

BUYOUT_TRANSITIONS: TransitionTable = frozenset({
    (BuyoutStatus.NEW, BuyoutStatus.OPEN),
    (BuyoutStatus.OPEN, BuyoutStatus.COUNTERED),
    (BuyoutStatus.OPEN, BuyoutStatus.SUCCESS),
})

LISTING_TRANSITIONS: TransitionTable = frozenset({
    (ListingStatus.NEW, ListingStatus.IRO),
    (ListingStatus.IRO, ListingStatus.LIVE),
})

TERMINAL_FUNDING: frozenset[FundingStatus] = frozenset({
    FundingStatus.FAILED, FundingStatus.DISTRIBUTION,
})
TERMINAL_BUYOUT: frozenset[BuyoutStatus] = frozenset({
    BuyoutStatus.COUNTERED, BuyoutStatus.SUCCESS,
})


def check_transition(
    from_state: Enum,
    to_state: Enum,
    transitions: TransitionTable,
    timestamp: UtcDatetime,
) -> Ok[None] | Err[BadStatusError]:
    """Validate an observed status change against a transition table."""
    if from_state == to_state or (from_state, to_state) in transitions:
        return Ok(None)
    return Err(BadStatusError(
        message=f"Invalid transition: {from_state.value} -> {to_state.value}",
        code=BAD_STATUS,
        timestamp=timestamp,
        source="escrow.lifecycle.check_transition",
        actual=to_state.value,
        required=tuple(
            t.value for f, t in sorted(transitions, key=lambda p: (p[0].value, p[1].value))
            if f == from_state
        ),
    ))
