"""Non-fungible title registry.

Each token id is the unique title record of one real-world asset. Ids are
assigned from 0 in mint order. A transfer needs the owner's own call or a
per-token approval; the approval is cleared by every transfer.
"""

from __future__ import annotations

import logging
from typing import final

from fractor.core.clock import Clock
from fractor.core.errors import (
    NOT_APPROVED,
    NOT_OWNER,
    UNAUTHORIZED,
    UNKNOWN_TOKEN,
    LedgerError,
)
from fractor.core.identifiers import Address, derive_address
from fractor.core.result import Err, Ok

logger = logging.getLogger(__name__)


@final
class TitleRegistry:
    """Ownership and transfer of title records."""

    def __init__(
        self, name: str, *, minter: Address, clock: Clock, address: Address | None = None,
    ) -> None:
        self._name = name
        self._minter = minter
        self._clock = clock
        self._address = address or derive_address(f"titles:{name}")
        self._owners: dict[int, Address] = {}
        self._metadata: dict[int, str] = {}
        self._approvals: dict[int, Address] = {}
        self._next_id = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def address(self) -> Address:
        return self._address

    def safe_mint(
        self, caller: Address, to: Address, metadata: str = "",
    ) -> Ok[int] | Err[LedgerError]:
        """Mint the next title to ``to``. Minter only."""
        if caller != self._minter:
            return Err(self._error(f"{caller} may not mint", UNAUTHORIZED, "safe_mint"))
        token_id = self._next_id
        self._next_id += 1
        self._owners[token_id] = to
        self._metadata[token_id] = metadata
        logger.info("Title %s#%d minted to %s", self._name, token_id, to)
        return Ok(token_id)

    def owner_of(self, token_id: int) -> Ok[Address] | Err[LedgerError]:
        owner = self._owners.get(token_id)
        if owner is None:
            return Err(self._error(f"No title #{token_id}", UNKNOWN_TOKEN, "owner_of"))
        return Ok(owner)

    def metadata_of(self, token_id: int) -> Ok[str] | Err[LedgerError]:
        if token_id not in self._owners:
            return Err(self._error(f"No title #{token_id}", UNKNOWN_TOKEN, "metadata_of"))
        return Ok(self._metadata[token_id])

    def get_approved(self, token_id: int) -> Address | None:
        return self._approvals.get(token_id)

    def approve(
        self, caller: Address, spender: Address, token_id: int,
    ) -> Ok[None] | Err[LedgerError]:
        match self.owner_of(token_id):
            case Err() as e:
                return e
            case Ok(owner):
                pass
        if caller != owner:
            return Err(self._error(
                f"{caller} does not own title #{token_id}", NOT_OWNER, "approve",
            ))
        self._approvals[token_id] = spender
        return Ok(None)

    def can_transfer(
        self, caller: Address, from_: Address, token_id: int,
    ) -> Ok[None] | Err[LedgerError]:
        """Check safe_transfer_from preconditions without moving anything."""
        match self.owner_of(token_id):
            case Err() as e:
                return e
            case Ok(owner):
                pass
        if owner != from_:
            return Err(self._error(
                f"{from_} does not own title #{token_id}", NOT_OWNER, "safe_transfer_from",
            ))
        if caller != owner and self._approvals.get(token_id) != caller:
            return Err(self._error(
                f"{caller} is not approved for title #{token_id}",
                NOT_APPROVED, "safe_transfer_from",
            ))
        return Ok(None)

    def safe_transfer_from(
        self, caller: Address, from_: Address, to: Address, token_id: int,
    ) -> Ok[None] | Err[LedgerError]:
        match self.can_transfer(caller, from_, token_id):
            case Err() as e:
                return e
            case Ok(_):
                pass
        self._owners[token_id] = to
        self._approvals.pop(token_id, None)
        logger.info("Title %s#%d moved %s -> %s", self._name, token_id, from_, to)
        return Ok(None)

    def _error(self, message: str, code: str, fn: str) -> LedgerError:
        return LedgerError(
            message=message,
            code=code,
            timestamp=self._clock.now(),
            source=f"ledger.title.TitleRegistry.{fn}",
            ledger=self._name,
        )
