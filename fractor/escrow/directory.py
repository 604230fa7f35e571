"""Listing directory and versioned contract templates.

New listings are built from the latest registered ``listing`` template and
mint their units with the latest ``unit_token`` template. Registering a new
version changes what future listings are built from; existing listings keep
the versions they were created with.

Usage::

    templates = default_templates()
    directory = Directory(templates=templates, admin=admin, clock=clock)
    listing_id = unwrap(directory.new_listing(creator, "Villa", usdc, 1_000_000, "ipfs://..."))
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, final

from fractor.core.clock import Clock
from fractor.core.errors import (
    INVALID_INDEX,
    INVALID_NAME,
    INVALID_TEMPLATE,
    FieldViolation,
    ValidationError,
)
from fractor.core.identifiers import Address, derive_address
from fractor.core.result import Err, Ok
from fractor.core.types import NonEmptyStr
from fractor.escrow import _validation as v
from fractor.escrow.events import ListingCreated, emit
from fractor.escrow.listing import Listing
from fractor.infra.config import DEFAULT_CONFIG, TOPIC_LISTINGS, EscrowConfig
from fractor.infra.protocols import EventBus
from fractor.ledger.token import TokenLedger

logger = logging.getLogger(__name__)

type Factory = Callable[..., Any]


class TemplateKind(Enum):
    LISTING = "listing"
    UNIT_TOKEN = "unit_token"


@final
@dataclass(frozen=True, slots=True)
class TemplateId:
    kind: TemplateKind
    version: int


# ---------------------------------------------------------------------------
# Template registry
# ---------------------------------------------------------------------------


@final
@dataclass
class TemplateRegistry:
    """Factories per kind. Versions count from 1 in registration order."""

    _factories: dict[TemplateKind, list[Factory]] = field(default_factory=dict)

    def register(self, kind: TemplateKind, factory: Factory) -> TemplateId:
        versions = self._factories.setdefault(kind, [])
        versions.append(factory)
        template_id = TemplateId(kind=kind, version=len(versions))
        logger.info("Template %s v%d registered", kind.value, template_id.version)
        return template_id

    def latest(self, kind: TemplateKind) -> TemplateId | None:
        versions = self._factories.get(kind)
        if not versions:
            return None
        return TemplateId(kind=kind, version=len(versions))

    def versions(self, kind: TemplateKind) -> int:
        return len(self._factories.get(kind, []))

    def factory(self, template_id: TemplateId) -> Factory | None:
        versions = self._factories.get(template_id.kind, [])
        if not 1 <= template_id.version <= len(versions):
            return None
        return versions[template_id.version - 1]

    def instantiate(
        self, template_id: TemplateId, clock: Clock, /, **kwargs: Any,
    ) -> Ok[Any] | Err[ValidationError]:
        """Build an instance from a registered template version."""
        factory = self.factory(template_id)
        if factory is None:
            return v.val_err(
                f"No template {template_id.kind.value} v{template_id.version}",
                INVALID_TEMPLATE, clock.now(), "escrow.directory.TemplateRegistry.instantiate",
                (FieldViolation(
                    path="template_id.version",
                    constraint=f"must be in [1, {self.versions(template_id.kind)}]",
                    actual_value=str(template_id.version),
                ),),
            )
        return Ok(factory(**kwargs))


def default_templates() -> TemplateRegistry:
    """Registry holding the bundled Listing and TokenLedger implementations."""
    templates = TemplateRegistry()
    templates.register(TemplateKind.LISTING, Listing)
    templates.register(TemplateKind.UNIT_TOKEN, TokenLedger)
    return templates


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


@final
class Directory:
    """Creates listings and indexes them by id, from 0 upward."""

    def __init__(
        self,
        *,
        templates: TemplateRegistry,
        admin: Address,
        clock: Clock,
        bus: EventBus | None = None,
        config: EscrowConfig = DEFAULT_CONFIG,
        address: Address | None = None,
    ) -> None:
        self._templates = templates
        self._admin = admin
        self._clock = clock
        self._bus = bus
        self._config = config
        self._address = address or derive_address(f"directory:{admin}")
        self._listings: list[Listing] = []

    @property
    def address(self) -> Address:
        return self._address

    @property
    def admin(self) -> Address:
        return self._admin

    @property
    def templates(self) -> TemplateRegistry:
        return self._templates

    def listing_count(self) -> int:
        return len(self._listings)

    def listings(self, listing_id: int) -> Ok[Address] | Err[ValidationError]:
        """Address of the listing with this id."""
        match self.listing(listing_id):
            case Err() as e:
                return e
            case Ok(listing):
                return Ok(listing.address)

    def listing(self, listing_id: int) -> Ok[Listing] | Err[ValidationError]:
        if 0 <= listing_id < len(self._listings):
            return Ok(self._listings[listing_id])
        return v.val_err(
            f"No listing #{listing_id}", INVALID_INDEX, self._clock.now(),
            "escrow.directory.Directory.listing",
            (FieldViolation(
                path="listing_id", constraint=f"must be in [0, {len(self._listings)})",
                actual_value=str(listing_id),
            ),),
        )

    def new_listing(
        self,
        caller: Address,
        name: str,
        funding_currency: TokenLedger,
        goal: int,
        media: str,
    ) -> Ok[int] | Err[ValidationError]:
        """Create a listing from the latest templates. Returns its id."""
        src = "escrow.directory.Directory.new_listing"
        now = self._clock.now()
        match NonEmptyStr.parse(name):
            case Err(msg):
                return v.val_err(
                    f"Listing name invalid: {msg}", INVALID_NAME, now, src,
                    (FieldViolation(path="name", constraint="non-empty", actual_value=repr(name)),),
                )
            case Ok(_):
                pass
        match v.parse_positive(goal, "goal", now, src):
            case Err() as e:
                return e
            case Ok(_):
                pass
        listing_template = self._templates.latest(TemplateKind.LISTING)
        unit_template = self._templates.latest(TemplateKind.UNIT_TOKEN)
        if listing_template is None or unit_template is None:
            missing = TemplateKind.LISTING if listing_template is None else TemplateKind.UNIT_TOKEN
            return v.val_err(
                f"No {missing.value} template registered", INVALID_TEMPLATE, now, src,
            )
        unit_factory = self._templates.factory(unit_template)

        listing_id = len(self._listings)
        address = derive_address(f"{self._address}:listing:{listing_id}")
        match self._templates.instantiate(
            listing_template,
            self._clock,
            listing_id=listing_id,
            address=address,
            name=name,
            funding_currency=funding_currency,
            goal=goal,
            media=media,
            admin=self._admin,
            clock=self._clock,
            bus=self._bus,
            config=self._config,
            unit_factory=unit_factory,
        ):
            case Err() as e:
                return e
            case Ok(listing):
                pass
        self._listings.append(listing)

        logger.info(
            "Directory %s: listing #%d %r created by %s at %s (goal %d)",
            self._address, listing_id, name, caller, address, goal,
        )
        emit(self._bus, TOPIC_LISTINGS, address, ListingCreated(
            listing_id=listing_id, listing=address, creator=caller,
            name=name, goal=goal, at=now,
        ))
        return Ok(listing_id)
