"""Escrow timing parameters and event topic names.

Pure configuration data. No environment or file access.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import final

# ---------------------------------------------------------------------------
# Topic names
# ---------------------------------------------------------------------------

TOPIC_LISTINGS: str = "fractor.listings"
TOPIC_FUNDING: str = "fractor.funding"
TOPIC_BUYOUTS: str = "fractor.buyouts"
TOPIC_TITLES: str = "fractor.titles"

ALL_TOPICS: tuple[str, ...] = (
    TOPIC_LISTINGS,
    TOPIC_FUNDING,
    TOPIC_BUYOUTS,
    TOPIC_TITLES,
)


# ---------------------------------------------------------------------------
# Escrow configuration
# ---------------------------------------------------------------------------

FUNDING_PERIOD: timedelta = timedelta(days=28)
BUYOUT_PERIOD: timedelta = timedelta(days=14)


@final
@dataclass(frozen=True, slots=True)
class EscrowConfig:
    """Deadlines and unit-token parameters shared by a directory's listings."""

    funding_period: timedelta = FUNDING_PERIOD
    buyout_period: timedelta = BUYOUT_PERIOD
    unit_decimals: int = 18
    unit_symbol_prefix: str = "FRAC"

    def __post_init__(self) -> None:
        if self.funding_period <= timedelta(0):
            raise TypeError(f"funding_period must be positive, got {self.funding_period}")
        if self.buyout_period <= timedelta(0):
            raise TypeError(f"buyout_period must be positive, got {self.buyout_period}")
        if self.unit_decimals < 0:
            raise TypeError(f"unit_decimals must be >= 0, got {self.unit_decimals}")

    def unit_symbol(self, listing_id: int) -> str:
        """Ticker of the ownership units minted for a listing."""
        return f"{self.unit_symbol_prefix}-{listing_id}"


DEFAULT_CONFIG = EscrowConfig()
