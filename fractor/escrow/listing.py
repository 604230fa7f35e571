"""Listing: one real-world asset moving through fundraising, titling and buyouts.

    NEW --start_iro--> IRO --register_nft--> LIVE

The listing owns the funding round, holds the title record in custody once
it is registered, mints the fractional unit token into the funding round
and keeps an append-only list of buyout rounds. Role checks use the
listing's Capabilities table against the caller passed to each operation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import final

from fractor.core.clock import Clock
from fractor.core.errors import (
    BAD_STATUS,
    INVALID_INDEX,
    WRONG_IRO_STAGE,
    BadStatusError,
    FieldViolation,
    LedgerError,
    UnauthorizedError,
    ValidationError,
    WrongIroStageError,
)
from fractor.core.identifiers import Address, derive_address
from fractor.core.result import Err, Ok
from fractor.escrow import _validation as v
from fractor.escrow.buyout import BuyoutRound
from fractor.escrow.events import (
    BuyoutStarted,
    IroStarted,
    RoleGranted,
    RoleRevoked,
    TitleClaimed,
    TitleRegistered,
    emit,
)
from fractor.escrow.funding import FundingRound
from fractor.escrow.lifecycle import (
    LISTING_TRANSITIONS,
    FundingStatus,
    ListingStatus,
    check_transition,
)
from fractor.escrow.roles import Capabilities, Role
from fractor.infra.config import (
    DEFAULT_CONFIG,
    TOPIC_LISTINGS,
    TOPIC_TITLES,
    EscrowConfig,
)
from fractor.infra.protocols import EventBus
from fractor.ledger.title import TitleRegistry
from fractor.ledger.token import TokenLedger

logger = logging.getLogger(__name__)

_SRC = "escrow.listing.Listing"

type UnitFactory = Callable[..., TokenLedger]


@final
class Listing:
    """Escrow and lifecycle for one tokenized asset."""

    def __init__(
        self,
        *,
        listing_id: int,
        address: Address,
        name: str,
        funding_currency: TokenLedger,
        goal: int,
        media: str,
        admin: Address,
        clock: Clock,
        bus: EventBus | None = None,
        config: EscrowConfig = DEFAULT_CONFIG,
        unit_factory: UnitFactory = TokenLedger,
    ) -> None:
        if isinstance(goal, bool) or not isinstance(goal, int) or goal <= 0:
            raise TypeError(f"Listing.goal must be int > 0, got {goal!r}")
        self._id = listing_id
        self._address = address
        self._name = name
        self._currency = funding_currency
        self._goal = goal
        self._media = media
        self._clock = clock
        self._bus = bus
        self._config = config
        self._unit_factory = unit_factory
        self._capabilities = Capabilities(admin, clock)
        self._status = ListingStatus.NEW
        self._iro: FundingRound | None = None
        self._title: tuple[TitleRegistry, int] | None = None
        self._title_claimed_by: Address | None = None
        self._unit_ledger: TokenLedger | None = None
        self._buyouts: list[BuyoutRound] = []

    # -- Parameters --

    @property
    def listing_id(self) -> int:
        return self._id

    @property
    def address(self) -> Address:
        return self._address

    @property
    def name(self) -> str:
        return self._name

    @property
    def funding_currency(self) -> TokenLedger:
        return self._currency

    @property
    def goal(self) -> int:
        return self._goal

    @property
    def media(self) -> str:
        return self._media

    @property
    def capabilities(self) -> Capabilities:
        return self._capabilities

    # -- Queries --

    def status(self) -> ListingStatus:
        return self._status

    def iro(self) -> FundingRound | None:
        return self._iro

    def listing_token(self) -> TokenLedger | None:
        return self._unit_ledger

    def title(self) -> tuple[TitleRegistry, int] | None:
        """Registry and token id of the title, once registered."""
        return self._title

    def title_claimed_by(self) -> Address | None:
        return self._title_claimed_by

    def num_buyouts(self) -> int:
        return len(self._buyouts)

    def buyouts(self) -> tuple[BuyoutRound, ...]:
        return tuple(self._buyouts)

    def buyout(self, index: int) -> Ok[BuyoutRound] | Err[ValidationError]:
        if 0 <= index < len(self._buyouts):
            return Ok(self._buyouts[index])
        return v.val_err(
            f"No buyout #{index} (listing has {len(self._buyouts)})",
            INVALID_INDEX, self._clock.now(), f"{_SRC}.buyout",
            (FieldViolation(
                path="index", constraint=f"must be in [0, {len(self._buyouts)})",
                actual_value=str(index),
            ),),
        )

    # -- Roles --

    def grant_role(
        self, caller: Address, role: Role, account: Address,
    ) -> Ok[bool] | Err[UnauthorizedError]:
        match self._capabilities.grant(caller, role, account):
            case Err() as e:
                return e
            case Ok(changed):
                pass
        if changed:
            emit(self._bus, TOPIC_LISTINGS, self._address, RoleGranted(
                listing=self._address, role=role.value, account=account, by=caller,
                at=self._clock.now(),
            ))
        return Ok(changed)

    def revoke_role(
        self, caller: Address, role: Role, account: Address,
    ) -> Ok[bool] | Err[UnauthorizedError]:
        match self._capabilities.revoke(caller, role, account):
            case Err() as e:
                return e
            case Ok(changed):
                pass
        if changed:
            emit(self._bus, TOPIC_LISTINGS, self._address, RoleRevoked(
                listing=self._address, role=role.value, account=account, by=caller,
                at=self._clock.now(),
            ))
        return Ok(changed)

    # -- Lifecycle --

    def start_iro(
        self, caller: Address, beneficiary: Address,
    ) -> Ok[FundingRound] | Err[UnauthorizedError | BadStatusError]:
        """Open the funding round. Due diligence only."""
        src = f"{_SRC}.start_iro"
        match self._capabilities.require(caller, Role.DUE_DILIGENCE, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        now = self._clock.now()
        match v.require_status(self._status, (ListingStatus.NEW,), now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass

        iro = FundingRound(
            address=derive_address(f"{self._address}:iro"),
            owner=self._address,
            funding_currency=self._currency,
            goal=self._goal,
            beneficiary=beneficiary,
            clock=self._clock,
            bus=self._bus,
            config=self._config,
        )
        self._iro = iro
        self._move_to(ListingStatus.IRO)
        emit(self._bus, TOPIC_LISTINGS, self._address, IroStarted(
            listing=self._address, round=iro.address, beneficiary=beneficiary,
            goal=self._goal, deadline=iro.deadline(),
        ))
        return Ok(iro)

    def register_nft(
        self, caller: Address, registry: TitleRegistry, token_id: int,
    ) -> Ok[TokenLedger] | Err[UnauthorizedError | WrongIroStageError | LedgerError]:
        """Take custody of the title and mint the unit token into the IRO.

        Director only. The caller must own the title and have approved the
        listing for it. Returns the new unit ledger.
        """
        src = f"{_SRC}.register_nft"
        match self._capabilities.require(caller, Role.DIRECTOR, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        now = self._clock.now()
        stage = self._iro.status() if self._iro is not None else None
        if self._iro is None or stage is not FundingStatus.AWAITING_NFT:
            stage_name = stage.value if stage is not None else "NONE"
            logger.debug("%s rejected: IRO stage %s", src, stage_name)
            return Err(WrongIroStageError(
                message=f"IRO is {stage_name}, title needs AWAITING_NFT",
                code=WRONG_IRO_STAGE, timestamp=now, source=src, stage=stage_name,
            ))
        iro = self._iro
        match registry.safe_transfer_from(self._address, caller, self._address, token_id):
            case Err() as e:
                return e
            case Ok(_):
                pass

        units = self._unit_factory(
            f"{self._name} units",
            self._config.unit_symbol(self._id),
            initial_supply=self._goal,
            holder=iro.address,
            clock=self._clock,
            decimals=self._config.unit_decimals,
            address=derive_address(f"{self._address}:units"),
        )
        match iro.bind_units(self._address, units):
            case Err(e):
                raise RuntimeError(f"Listing {self._address}: cannot bind units: {e.message}")
            case Ok(_):
                pass
        self._title = (registry, token_id)
        self._unit_ledger = units
        self._move_to(ListingStatus.LIVE)

        logger.info(
            "Listing %s: title %s#%d registered by %s, %d %s minted",
            self._address, registry.name, token_id, caller, self._goal, units.symbol,
        )
        emit(self._bus, TOPIC_TITLES, self._address, TitleRegistered(
            listing=self._address, registry=registry.address, token_id=token_id,
            unit_token=units.address, unit_supply=units.total_supply(), at=now,
        ))
        return Ok(units)

    def start_buyout(
        self, caller: Address,
    ) -> Ok[BuyoutRound] | Err[BadStatusError | UnauthorizedError]:
        """Open a new buyout round. Any current unit holder may start one."""
        src = f"{_SRC}.start_buyout"
        now = self._clock.now()
        match v.require_status(self._status, (ListingStatus.LIVE,), now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        if self._title_claimed_by is not None:
            logger.debug("%s rejected: title already claimed", src)
            return Err(BadStatusError(
                message=f"Title already claimed by {self._title_claimed_by}",
                code=BAD_STATUS, timestamp=now, source=src,
                actual=self._status.value, required=(ListingStatus.LIVE.value,),
            ))
        assert self._unit_ledger is not None  # LIVE implies minted
        if self._unit_ledger.balance_of(caller) == 0:
            return v.unauthorized(caller, "UNIT_HOLDER", now, src)

        index = len(self._buyouts)
        round_ = BuyoutRound(
            address=derive_address(f"{self._address}:buyout:{index}"),
            listing=self._address,
            listing_units=self._unit_ledger,
            funding_currency=self._currency,
            clock=self._clock,
            bus=self._bus,
            config=self._config,
        )
        self._buyouts.append(round_)
        logger.info("Listing %s: buyout #%d started by %s", self._address, index, caller)
        emit(self._bus, TOPIC_LISTINGS, self._address, BuyoutStarted(
            listing=self._address, round=round_.address, index=index, by=caller, at=now,
        ))
        return Ok(round_)

    def claim_nft(
        self, caller: Address,
    ) -> Ok[BuyoutRound] | Err[BadStatusError | UnauthorizedError | LedgerError]:
        """Hand the title to the winner of a resolved buyout. Once.

        Every other round of the listing is superseded by the claim.
        """
        src = f"{_SRC}.claim_nft"
        now = self._clock.now()
        if self._title_claimed_by is not None:
            logger.debug("%s rejected: title already claimed", src)
            return Err(BadStatusError(
                message=f"Title already claimed by {self._title_claimed_by}",
                code=BAD_STATUS, timestamp=now, source=src,
                actual=self._status.value, required=(ListingStatus.LIVE.value,),
            ))
        if self._title is None:
            return v.unauthorized(caller, "BUYER", now, src)
        won = next((r for r in self._buyouts if r.buyer() == caller), None)
        if won is None:
            return v.unauthorized(caller, "BUYER", now, src)

        registry, token_id = self._title
        match registry.safe_transfer_from(self._address, self._address, caller, token_id):
            case Err() as e:
                return e
            case Ok(_):
                pass
        self._title_claimed_by = caller
        for other in self._buyouts:
            if other is won:
                continue
            match other.supersede(self._address):
                case Err(e):
                    raise RuntimeError(f"Listing {self._address}: cannot supersede: {e.message}")
                case Ok(_):
                    pass

        logger.info(
            "Listing %s: title claimed by %s via buyout %s (%s)",
            self._address, caller, won.address, won.status().value,
        )
        emit(self._bus, TOPIC_TITLES, self._address, TitleClaimed(
            listing=self._address, round=won.address, token_id=token_id, to=caller, at=now,
        ))
        return Ok(won)

    # -- Internals --

    def _move_to(self, target: ListingStatus) -> None:
        match check_transition(self._status, target, LISTING_TRANSITIONS, self._clock.now()):
            case Err(e):
                raise RuntimeError(f"Listing {self._address}: {e.message}")
            case Ok(_):
                pass
        logger.info("Listing %s: %s -> %s", self._address, self._status.value, target.value)
        self._status = target
