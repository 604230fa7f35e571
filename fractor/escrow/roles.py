"""Capability sets for role-gated listing transitions.

Each listing owns one Capabilities table. Checks happen at the call
boundary against the acting principal passed in explicitly; there is no
ambient "current sender".
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import final

from fractor.core.clock import Clock
from fractor.core.errors import UNAUTHORIZED, UnauthorizedError
from fractor.core.identifiers import Address
from fractor.core.result import Err, Ok

logger = logging.getLogger(__name__)


class Role(Enum):
    ADMIN = "ADMIN"
    DUE_DILIGENCE = "DUE_DILIGENCE"
    DIRECTOR = "DIRECTOR"


@final
class Capabilities:
    """Membership sets keyed by role. Only ADMIN members grant and revoke."""

    def __init__(self, admin: Address, clock: Clock) -> None:
        self._clock = clock
        self._members: dict[Role, set[Address]] = {role: set() for role in Role}
        self._members[Role.ADMIN].add(admin)

    def has_role(self, account: Address, role: Role) -> bool:
        return account in self._members[role]

    def members(self, role: Role) -> frozenset[Address]:
        return frozenset(self._members[role])

    def require(
        self, account: Address, role: Role, source: str,
    ) -> Ok[None] | Err[UnauthorizedError]:
        if self.has_role(account, role):
            return Ok(None)
        logger.debug("%s lacks %s for %s", account, role.value, source)
        return Err(UnauthorizedError(
            message=f"Account {account} is missing role {role.value}",
            code=UNAUTHORIZED,
            timestamp=self._clock.now(),
            source=source,
            account=account.value,
            capability=role.value,
        ))

    def grant(
        self, caller: Address, role: Role, account: Address,
    ) -> Ok[bool] | Err[UnauthorizedError]:
        """Add account to role. Ok(False) when it already held the role."""
        match self.require(caller, Role.ADMIN, "escrow.roles.Capabilities.grant"):
            case Err() as e:
                return e
            case Ok(_):
                pass
        if account in self._members[role]:
            return Ok(False)
        self._members[role].add(account)
        logger.info("Role %s granted to %s by %s", role.value, account, caller)
        return Ok(True)

    def revoke(
        self, caller: Address, role: Role, account: Address,
    ) -> Ok[bool] | Err[UnauthorizedError]:
        """Remove account from role. Ok(False) when it did not hold the role."""
        match self.require(caller, Role.ADMIN, "escrow.roles.Capabilities.revoke"):
            case Err() as e:
                return e
            case Ok(_):
                pass
        if account not in self._members[role]:
            return Ok(False)
        self._members[role].discard(account)
        logger.info("Role %s revoked from %s by %s", role.value, account, caller)
        return Ok(True)
