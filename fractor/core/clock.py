"""Injected clocks.

Round status is a pure function of stored counters and "now", so the only
source of "now" is the Clock handed to a ledger, round or listing. Nothing
in fractor calls datetime.now() directly outside SystemClock.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Protocol, final, runtime_checkable

from fractor.core.types import UtcDatetime


@runtime_checkable
class Clock(Protocol):
    """Source of the current UTC time."""

    def now(self) -> UtcDatetime: ...


@final
class SystemClock:
    """Wall clock."""

    def now(self) -> UtcDatetime:
        return UtcDatetime.now()


@final
class ManualClock:
    """Clock that only moves when told to. Must never move backwards."""

    def __init__(self, start: UtcDatetime) -> None:
        self._now = start

    def now(self) -> UtcDatetime:
        return self._now

    def advance(self, delta: timedelta) -> UtcDatetime:
        if delta < timedelta(0):
            raise ValueError(f"ManualClock cannot move backwards: {delta}")
        self._now = self._now.plus(delta)
        return self._now

    def set(self, when: UtcDatetime) -> UtcDatetime:
        if when < self._now:
            raise ValueError(f"ManualClock cannot move backwards to {when.value.isoformat()}")
        self._now = when
        return self._now
