"""Property tests: conservation and floor-rounding bounds across rounds."""

from __future__ import annotations

from datetime import UTC, datetime

from hypothesis import given
from hypothesis import strategies as st

from fractor.core.clock import ManualClock
from fractor.core.identifiers import Address, derive_address
from fractor.core.result import unwrap
from fractor.core.types import UtcDatetime
from fractor.escrow.buyout import BuyoutRound
from fractor.escrow.funding import FundingRound
from fractor.escrow.lifecycle import BuyoutStatus, FundingStatus
from fractor.infra.config import DEFAULT_CONFIG
from fractor.ledger.token import TokenLedger

_T0 = UtcDatetime(value=datetime(2025, 6, 15, 10, 0, 0, tzinfo=UTC))
_TREASURY = derive_address("treasury")
_OWNER = derive_address("owner")
_PARTIES = tuple(derive_address(f"party:{i}") for i in range(5))


def _currency(clock: ManualClock) -> TokenLedger:
    ledger = TokenLedger("C", "C", initial_supply=10**15, holder=_TREASURY, clock=clock)
    for party in _PARTIES:
        unwrap(ledger.transfer(_TREASURY, party, 10**12))
    return ledger


def _approve(ledger: TokenLedger, who: Address, spender: Address, amount: int) -> None:
    unwrap(ledger.approve(who, spender, amount))


@given(
    shares=st.lists(st.integers(min_value=1, max_value=10**6), min_size=1, max_size=5),
    supply=st.integers(min_value=1, max_value=10**9),
)
def test_distribution_never_exceeds_supply(shares: list[int], supply: int) -> None:
    clock = ManualClock(_T0)
    usdc = _currency(clock)
    goal = sum(shares)
    iro = FundingRound(
        address=derive_address("iro"), owner=_OWNER, funding_currency=usdc,
        goal=goal, beneficiary=_OWNER, clock=clock,
    )
    for party, amount in zip(_PARTIES, shares, strict=False):
        _approve(usdc, party, iro.address, amount)
        unwrap(iro.commit(party, amount))
    clock.advance(DEFAULT_CONFIG.funding_period)
    assert iro.status() is FundingStatus.AWAITING_NFT

    units = TokenLedger("U", "U", initial_supply=supply, holder=iro.address, clock=clock)
    unwrap(iro.bind_units(_OWNER, units))
    contributors = _PARTIES[:len(shares)]
    for party in contributors:
        if iro.units_due(party) > 0:
            unwrap(iro.withdraw_tokens(party))
    paid = sum(units.balance_of(p) for p in contributors)
    assert paid <= supply
    assert supply - paid < len(contributors)
    assert paid + units.balance_of(iro.address) == supply


@given(
    stakes=st.lists(st.integers(min_value=1, max_value=300_000), min_size=1, max_size=4),
    surrenders=st.lists(st.integers(min_value=1, max_value=50_000), min_size=1, max_size=4),
)
def test_countered_units_split_by_stake(stakes: list[int], surrenders: list[int]) -> None:
    clock = ManualClock(_T0)
    usdc = _currency(clock)
    seller = derive_address("seller")
    offerer = derive_address("offerer")
    supply = 1_000_000
    units = TokenLedger("U", "U", initial_supply=supply, holder=_TREASURY, clock=clock)
    unwrap(units.transfer(_TREASURY, offerer, 800_000))
    unwrap(units.transfer(_TREASURY, seller, 200_000))
    unwrap(usdc.transfer(_TREASURY, offerer, 100_000))

    round_ = BuyoutRound(
        address=derive_address("buyout"), listing=_OWNER, listing_units=units,
        funding_currency=usdc, clock=clock,
    )
    unwrap(units.approve(offerer, round_.address, 800_000))
    _approve(usdc, offerer, round_.address, 100_000)
    unwrap(round_.offer(offerer, 800_000, 100_000))
    target = round_.counter_offer_target()

    bidders = _PARTIES[:len(stakes)]
    for party, stake in zip(bidders, stakes, strict=False):
        if round_.status() is not BuyoutStatus.OPEN:
            break
        _approve(usdc, party, round_.address, stake)
        unwrap(round_.counter_offer(party, stake))
    if round_.counter_offer_amount() < target:
        top_up = target - round_.counter_offer_amount()
        _approve(usdc, bidders[0], round_.address, top_up)
        unwrap(round_.counter_offer(bidders[0], top_up))
    assert round_.status() is BuyoutStatus.COUNTERED

    for amount in surrenders:
        unwrap(units.approve(seller, round_.address, amount))
        unwrap(round_.surrender_tokens(seller, amount))
        for party in round_.counter_bidders():
            if round_.units_due(party) > 0:
                unwrap(round_.withdraw_units(party))

    withdrawn = sum(units.balance_of(p) for p in bidders)
    assert withdrawn <= round_.surrendered_total() == sum(surrenders)
    assert round_.surrendered_total() - withdrawn < len(bidders)
    assert usdc.balance_of(seller) <= round_.counter_offer_amount()
