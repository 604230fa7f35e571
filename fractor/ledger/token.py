"""Fungible token ledger with allowance-gated pulls.

Backs both the funding currency and the per-listing ownership units.
Total supply is minted once at construction and never changes afterwards.

Core invariant: sum of all balances == total_supply() after every execute().

TokenLedger is @final but NOT a dataclass — it holds mutable internal state.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import final

from fractor.core.amounts import PositiveAmount
from fractor.core.clock import Clock
from fractor.core.errors import (
    CONSERVATION_VIOLATION,
    INSUFFICIENT_ALLOWANCE,
    INSUFFICIENT_BALANCE,
    INVALID_AMOUNT,
    LedgerError,
)
from fractor.core.identifiers import Address, derive_address
from fractor.core.result import Err, Ok
from fractor.ledger.transactions import ExecuteResult, Move, Transaction

logger = logging.getLogger(__name__)


@final
class TokenLedger:
    """Balances, allowances and an append-only journal for one token."""

    def __init__(
        self,
        name: str,
        symbol: str,
        *,
        initial_supply: int,
        holder: Address,
        clock: Clock,
        decimals: int = 18,
        address: Address | None = None,
    ) -> None:
        if not symbol:
            raise TypeError("TokenLedger.symbol must be non-empty")
        if isinstance(initial_supply, bool) or not isinstance(initial_supply, int):
            raise TypeError(f"initial_supply must be int, got {initial_supply!r}")
        if initial_supply < 0:
            raise TypeError(f"initial_supply must be >= 0, got {initial_supply}")
        if decimals < 0:
            raise TypeError(f"decimals must be >= 0, got {decimals}")
        self._name = name
        self._symbol = symbol
        self._decimals = decimals
        self._clock = clock
        self._address = address or derive_address(f"token:{symbol}:{name}")
        self._supply = initial_supply
        self._balances: dict[Address, int] = defaultdict(int)
        self._allowances: dict[tuple[Address, Address], int] = defaultdict(int)
        self._transactions: list[Transaction] = []
        self._applied_tx_ids: set[str] = set()
        self._seq = 0
        if initial_supply > 0:
            self._balances[holder] = initial_supply
        logger.info("Token %s created: supply=%d holder=%s", symbol, initial_supply, holder)

    # -- Metadata --

    @property
    def name(self) -> str:
        return self._name

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def decimals(self) -> int:
        return self._decimals

    @property
    def address(self) -> Address:
        return self._address

    # -- Queries --

    def total_supply(self) -> int:
        return self._supply

    def balance_of(self, account: Address) -> int:
        return self._balances.get(account, 0)

    def allowance(self, owner: Address, spender: Address) -> int:
        return self._allowances.get((owner, spender), 0)

    def transactions(self) -> tuple[Transaction, ...]:
        return tuple(self._transactions)

    def transaction_count(self) -> int:
        return len(self._transactions)

    # -- Mutations --

    def approve(
        self, owner: Address, spender: Address, amount: int,
    ) -> Ok[None] | Err[LedgerError]:
        """Set (not add to) the amount spender may pull from owner."""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            return Err(self._error(
                f"Allowance must be an int >= 0, got {amount!r}", INVALID_AMOUNT, "approve",
            ))
        self._allowances[(owner, spender)] = amount
        logger.debug("%s approve %s -> %s: %d", self._symbol, owner, spender, amount)
        return Ok(None)

    def transfer(
        self, sender: Address, to: Address, amount: int,
    ) -> Ok[Transaction] | Err[LedgerError]:
        match self._quantity(amount, "transfer"):
            case Err() as e:
                return e
            case Ok(qty):
                pass
        tx = self._next_tx((Move(source=sender, destination=to, unit=self._symbol, quantity=qty),))
        match self.execute(tx):
            case Err() as e:
                return e
            case Ok(_):
                return Ok(tx)

    def transfer_from(
        self, spender: Address, owner: Address, to: Address, amount: int,
    ) -> Ok[Transaction] | Err[LedgerError]:
        """Pull amount from owner to ``to`` under owner's allowance to spender.

        The allowance is consumed atomically with the balance move: if the
        move fails the allowance is left untouched.
        """
        match self._quantity(amount, "transfer_from"):
            case Err() as e:
                return e
            case Ok(qty):
                pass
        available = self.allowance(owner, spender)
        if available < amount:
            return Err(self._error(
                f"Allowance {available} from {owner} to {spender} is below {amount}",
                INSUFFICIENT_ALLOWANCE, "transfer_from",
            ))
        tx = self._next_tx((Move(
            source=owner, destination=to, unit=self._symbol, quantity=qty, spender=spender,
        ),))
        match self.execute(tx):
            case Err() as e:
                return e
            case Ok(_):
                self._allowances[(owner, spender)] = available - amount
                return Ok(tx)

    def execute(self, tx: Transaction) -> Ok[ExecuteResult] | Err[LedgerError]:
        """Execute a transaction atomically.

        1. Already applied tx_id -> Ok(ALREADY_APPLIED)
        2. Every move must be denominated in this token
        3. Apply moves in order, rejecting any overdraft
        4. Post-verify sum of balances == total supply
        5. Record the transaction

        On any failure every balance touched so far is restored.
        """
        if tx.tx_id in self._applied_tx_ids:
            return Ok(ExecuteResult.ALREADY_APPLIED)

        for move in tx.moves:
            if move.unit != self._symbol:
                return Err(self._error(
                    f"Move unit {move.unit} does not match ledger {self._symbol}",
                    INVALID_AMOUNT, "execute",
                ))

        old_balances: dict[Address, int] = {}
        for move in tx.moves:
            for key in (move.source, move.destination):
                if key not in old_balances:
                    old_balances[key] = self._balances.get(key, 0)
            qty = move.quantity.value
            if self._balances.get(move.source, 0) < qty:
                self._restore(old_balances)
                return Err(self._error(
                    f"Balance of {move.source} is {self._balances.get(move.source, 0)}, "
                    f"cannot move {qty}",
                    INSUFFICIENT_BALANCE, "execute",
                ))
            self._balances[move.source] -= qty
            self._balances[move.destination] += qty

        post = sum(self._balances.values())
        if post != self._supply:
            self._restore(old_balances)
            return Err(self._error(
                f"Conservation violated: balances sum to {post}, supply is {self._supply}",
                CONSERVATION_VIOLATION, "execute",
            ))

        self._transactions.append(tx)
        self._applied_tx_ids.add(tx.tx_id)
        for move in tx.moves:
            logger.debug(
                "%s %s: %s -> %s %d",
                self._symbol, tx.tx_id, move.source, move.destination, move.quantity.value,
            )
        return Ok(ExecuteResult.APPLIED)

    # -- Internals --

    def _restore(self, old_balances: dict[Address, int]) -> None:
        for key, val in old_balances.items():
            self._balances[key] = val

    def _next_tx(self, moves: tuple[Move, ...]) -> Transaction:
        self._seq += 1
        return Transaction(
            tx_id=f"{self._symbol}-{self._seq}", moves=moves, timestamp=self._clock.now(),
        )

    def _quantity(self, amount: int, fn: str) -> Ok[PositiveAmount] | Err[LedgerError]:
        match PositiveAmount.parse(amount):
            case Err(e):
                return Err(self._error(f"{fn}: {e}", INVALID_AMOUNT, fn))
            case Ok(q):
                return Ok(q)

    def _error(self, message: str, code: str, fn: str) -> LedgerError:
        return LedgerError(
            message=message,
            code=code,
            timestamp=self._clock.now(),
            source=f"ledger.token.TokenLedger.{fn}",
            ledger=self._symbol,
        )
