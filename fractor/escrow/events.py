"""Domain events emitted by the directory, listings and rounds.

Events are published after the state change and the ledger movement have
both succeeded, serialized with canonical_bytes and keyed by the address of
the emitting escrow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import final

from fractor.core.identifiers import Address
from fractor.core.result import Err, Ok
from fractor.core.serialization import canonical_bytes
from fractor.core.types import UtcDatetime
from fractor.infra.protocols import EventBus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Directory / listing
# ---------------------------------------------------------------------------


@final
@dataclass(frozen=True, slots=True)
class ListingCreated:
    listing_id: int
    listing: Address
    creator: Address
    name: str
    goal: int
    at: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class RoleGranted:
    listing: Address
    role: str
    account: Address
    by: Address
    at: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class RoleRevoked:
    listing: Address
    role: str
    account: Address
    by: Address
    at: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class IroStarted:
    listing: Address
    round: Address
    beneficiary: Address
    goal: int
    deadline: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class TitleRegistered:
    listing: Address
    registry: Address
    token_id: int
    unit_token: Address
    unit_supply: int
    at: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class BuyoutStarted:
    listing: Address
    round: Address
    index: int
    by: Address
    at: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class TitleClaimed:
    listing: Address
    round: Address
    token_id: int
    to: Address
    at: UtcDatetime


# ---------------------------------------------------------------------------
# Funding round
# ---------------------------------------------------------------------------


@final
@dataclass(frozen=True, slots=True)
class Committed:
    round: Address
    contributor: Address
    amount: int
    committed_total: int
    at: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class RefundWithdrawn:
    round: Address
    contributor: Address
    amount: int
    at: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class FundsWithdrawn:
    round: Address
    beneficiary: Address
    amount: int
    at: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class UnitsWithdrawn:
    round: Address
    contributor: Address
    units: int
    at: UtcDatetime


# ---------------------------------------------------------------------------
# Buyout round
# ---------------------------------------------------------------------------


@final
@dataclass(frozen=True, slots=True)
class OfferPlaced:
    round: Address
    offerer: Address
    units: int
    funding: int
    target: int
    deadline: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class CounterOfferPlaced:
    round: Address
    party: Address
    amount: int
    counter_total: int
    countered: bool
    at: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class CounterOfferWithdrawn:
    round: Address
    party: Address
    amount: int
    at: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class OfferWithdrawn:
    round: Address
    offerer: Address
    units: int
    funding: int
    at: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class UnitsSurrendered:
    round: Address
    holder: Address
    units: int
    payout: int
    at: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class BuyoutUnitsWithdrawn:
    round: Address
    party: Address
    units: int
    at: UtcDatetime


@final
@dataclass(frozen=True, slots=True)
class BuyoutSuperseded:
    round: Address
    listing: Address
    at: UtcDatetime


type DomainEvent = (
    ListingCreated | RoleGranted | RoleRevoked | IroStarted | TitleRegistered
    | BuyoutStarted | TitleClaimed
    | Committed | RefundWithdrawn | FundsWithdrawn | UnitsWithdrawn
    | OfferPlaced | CounterOfferPlaced | CounterOfferWithdrawn | OfferWithdrawn
    | UnitsSurrendered | BuyoutUnitsWithdrawn | BuyoutSuperseded
)


def emit(bus: EventBus | None, topic: str, key: Address, event: DomainEvent) -> None:
    """Publish an event. Transport failures are logged, never rolled back into state."""
    if bus is None:
        return
    match canonical_bytes(event):
        case Err(e):
            logger.error("Cannot serialize %s: %s", type(event).__name__, e)
            return
        case Ok(payload):
            pass
    match bus.publish(topic, key.value, payload):
        case Err(pe):
            logger.error("Publishing %s to %s failed: %s", type(event).__name__, topic, pe.message)
        case Ok(_):
            pass
