"""Ledger journal types: Move, Transaction, ExecuteResult.

A Transaction is an atomic batch of Moves against one token ledger. Each
Move takes exactly what it gives, so the sum of all balances of a token is
unchanged by every transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import final

from fractor.core.amounts import PositiveAmount
from fractor.core.identifiers import Address
from fractor.core.types import UtcDatetime


class ExecuteResult(Enum):
    APPLIED = "APPLIED"
    ALREADY_APPLIED = "ALREADY_APPLIED"


@final
@dataclass(frozen=True, slots=True)
class Move:
    """One balance transfer: source loses quantity, destination gains it."""

    source: Address
    destination: Address
    unit: str
    quantity: PositiveAmount
    spender: Address | None = None  # set when pulled under an allowance


@final
@dataclass(frozen=True, slots=True)
class Transaction:
    """Atomic batch of moves."""

    tx_id: str
    moves: tuple[Move, ...]
    timestamp: UtcDatetime

    def __post_init__(self) -> None:
        if not self.tx_id:
            raise TypeError("Transaction.tx_id must be non-empty")
        if not self.moves:
            raise TypeError("Transaction must contain at least one move")
