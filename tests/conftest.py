"""Hypothesis profiles and pytest fixtures for fractor.

Fixtures build the world step by step: a manual clock, an event bus, a
funding currency with funded actors, a directory, and a listing at each
lifecycle stage (NEW, IRO, AWAITING_NFT, LIVE).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest
from hypothesis import HealthCheck, settings

from fractor.core.clock import ManualClock
from fractor.core.identifiers import Address, derive_address
from fractor.core.result import unwrap
from fractor.core.types import UtcDatetime
from fractor.escrow.directory import Directory, default_templates
from fractor.escrow.listing import Listing
from fractor.escrow.roles import Role
from fractor.infra.config import DEFAULT_CONFIG
from fractor.infra.memory_adapter import InMemoryEventBus
from fractor.ledger.title import TitleRegistry
from fractor.ledger.token import TokenLedger

# ---------------------------------------------------------------------------
# Hypothesis global settings
# ---------------------------------------------------------------------------

settings.register_profile(
    "ci",
    max_examples=200,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    deadline=None,
)
settings.register_profile(
    "dev",
    max_examples=50,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    deadline=None,
)
settings.load_profile("dev")


T0 = UtcDatetime(value=datetime(2025, 6, 15, 10, 0, 0, tzinfo=UTC))
GOAL = 1_000_000
STARTING_BALANCE = 10_000_000
PAST_FUNDING = DEFAULT_CONFIG.funding_period + timedelta(seconds=1)
PAST_BUYOUT = DEFAULT_CONFIG.buyout_period + timedelta(seconds=1)


@dataclass(frozen=True)
class Actors:
    admin: Address
    due_diligence: Address
    director: Address
    beneficiary: Address
    treasury: Address
    alice: Address
    bob: Address
    carol: Address
    dave: Address

    def holders(self) -> tuple[Address, ...]:
        return (self.alice, self.bob, self.carol, self.dave)


# ---------------------------------------------------------------------------
# Primitive fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def actors() -> Actors:
    return Actors(
        admin=derive_address("actor:admin"),
        due_diligence=derive_address("actor:due-diligence"),
        director=derive_address("actor:director"),
        beneficiary=derive_address("actor:beneficiary"),
        treasury=derive_address("actor:treasury"),
        alice=derive_address("actor:alice"),
        bob=derive_address("actor:bob"),
        carol=derive_address("actor:carol"),
        dave=derive_address("actor:dave"),
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def usdc(clock: ManualClock, actors: Actors) -> TokenLedger:
    """Funding currency; every holder starts with STARTING_BALANCE."""
    ledger = TokenLedger(
        "USD Coin", "USDC",
        initial_supply=100 * STARTING_BALANCE, holder=actors.treasury,
        clock=clock, decimals=6,
    )
    for holder in actors.holders():
        unwrap(ledger.transfer(actors.treasury, holder, STARTING_BALANCE))
    return ledger


@pytest.fixture
def registry(clock: ManualClock, actors: Actors) -> TitleRegistry:
    """Title registry with title #0 minted to the director."""
    titles = TitleRegistry("Land Registry", minter=actors.admin, clock=clock)
    unwrap(titles.safe_mint(actors.admin, actors.director, "ipfs://deed-0"))
    return titles


# ---------------------------------------------------------------------------
# Listing at each stage
# ---------------------------------------------------------------------------


@pytest.fixture
def directory(clock: ManualClock, bus: InMemoryEventBus, actors: Actors) -> Directory:
    return Directory(templates=default_templates(), admin=actors.admin, clock=clock, bus=bus)


@pytest.fixture
def listing(directory: Directory, usdc: TokenLedger, actors: Actors) -> Listing:
    """NEW listing with due diligence and director roles granted."""
    listing_id = unwrap(directory.new_listing(
        actors.admin, "Harbour Villa", usdc, GOAL, "ipfs://villa",
    ))
    created = unwrap(directory.listing(listing_id))
    unwrap(created.grant_role(actors.admin, Role.DUE_DILIGENCE, actors.due_diligence))
    unwrap(created.grant_role(actors.admin, Role.DIRECTOR, actors.director))
    return created


@pytest.fixture
def iro_listing(listing: Listing, actors: Actors) -> Listing:
    """Listing in IRO with an open funding round."""
    unwrap(listing.start_iro(actors.due_diligence, actors.beneficiary))
    return listing


@pytest.fixture
def funded_listing(
    iro_listing: Listing, usdc: TokenLedger, clock: ManualClock, actors: Actors,
) -> Listing:
    """Funding round reached its goal (alice 800k, bob 200k) and is AWAITING_NFT."""
    iro = iro_listing.iro()
    assert iro is not None
    for who, amount in ((actors.alice, 800_000), (actors.bob, 200_000)):
        unwrap(usdc.approve(who, iro.address, amount))
        unwrap(iro.commit(who, amount))
    clock.advance(PAST_FUNDING)
    return iro_listing


@pytest.fixture
def live_listing(
    funded_listing: Listing, registry: TitleRegistry, actors: Actors,
) -> Listing:
    """LIVE listing: title registered, alice holds 800k units and bob 200k."""
    unwrap(registry.approve(actors.director, funded_listing.address, 0))
    unwrap(funded_listing.register_nft(actors.director, registry, 0))
    iro = funded_listing.iro()
    assert iro is not None
    unwrap(iro.withdraw_tokens(actors.alice))
    unwrap(iro.withdraw_tokens(actors.bob))
    return funded_listing
