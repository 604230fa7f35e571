"""Refined integer amounts and exact integer arithmetic.

Ledger quantities are unsigned integers in base units (the token's
``decimals`` only matter for display). No float and no Decimal ever touches
a balance: every ratio is computed as a single floor division.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import final

from fractor.core.result import Err, Ok


def _is_int(raw: object) -> bool:
    # bool is an int subclass; a True amount is a bug, not 1
    return isinstance(raw, int) and not isinstance(raw, bool)


@final
@dataclass(frozen=True, slots=True, order=True)
class PositiveAmount:
    """Integer amount constrained to be > 0."""

    value: int

    def __post_init__(self) -> None:
        if not _is_int(self.value) or self.value <= 0:
            raise TypeError(f"PositiveAmount requires int > 0, got {self.value!r}")

    @staticmethod
    def parse(raw: int) -> Ok[PositiveAmount] | Err[str]:
        if not _is_int(raw):
            return Err(f"PositiveAmount requires int, got {type(raw).__name__}")
        if raw <= 0:
            return Err(f"PositiveAmount requires > 0, got {raw}")
        return Ok(PositiveAmount(value=raw))


@final
@dataclass(frozen=True, slots=True, order=True)
class NonNegativeAmount:
    """Integer amount constrained to be >= 0."""

    value: int

    def __post_init__(self) -> None:
        if not _is_int(self.value) or self.value < 0:
            raise TypeError(f"NonNegativeAmount requires int >= 0, got {self.value!r}")

    @staticmethod
    def parse(raw: int) -> Ok[NonNegativeAmount] | Err[str]:
        if not _is_int(raw):
            return Err(f"NonNegativeAmount requires int, got {type(raw).__name__}")
        if raw < 0:
            return Err(f"NonNegativeAmount requires >= 0, got {raw}")
        return Ok(NonNegativeAmount(value=raw))


def mul_div(a: int, b: int, denominator: int) -> int:
    """Exact floor of a * b / denominator for non-negative operands."""
    if denominator <= 0:
        raise ZeroDivisionError(f"mul_div denominator must be > 0, got {denominator}")
    if a < 0 or b < 0:
        raise ValueError(f"mul_div operands must be >= 0, got {a}, {b}")
    return (a * b) // denominator
