"""Account addresses.

Address: "0x" + 40 lowercase hex digits. Escrow accounts (listings, rounds)
get deterministic addresses from derive_address(seed) so that a replay of
the same sequence of calls reproduces the same accounts.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import final

from fractor.core.result import Err, Ok

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")

ZERO_ADDRESS_HEX = "0x" + "0" * 40


@final
@dataclass(frozen=True, slots=True, order=True)
class Address:
    """Canonical (lowercase) 20-byte hex account address."""

    value: str

    def __post_init__(self) -> None:
        if not _ADDRESS_RE.match(self.value):
            raise TypeError(f"Address must be 0x + 40 lowercase hex digits, got {self.value!r}")

    @staticmethod
    def parse(raw: str) -> Ok[Address] | Err[str]:
        """Parse and normalize case. Rejects the zero address."""
        if not isinstance(raw, str):
            return Err(f"Address requires str, got {type(raw).__name__}")
        lowered = raw.strip().lower()
        if not _ADDRESS_RE.match(lowered):
            return Err(f"Address must be 0x + 40 hex digits, got {raw!r}")
        if lowered == ZERO_ADDRESS_HEX:
            return Err("Address must not be the zero address")
        return Ok(Address(value=lowered))

    def __str__(self) -> str:
        return self.value


def derive_address(seed: str) -> Address:
    """Deterministic address: last 20 bytes of SHA-256(seed)."""
    digest = hashlib.sha256(seed.encode("utf-8")).hexdigest()
    return Address(value="0x" + digest[-40:])
