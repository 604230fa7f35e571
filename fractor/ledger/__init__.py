"""fractor.ledger — token ledger, title registry and journal types."""

from fractor.ledger.title import TitleRegistry as TitleRegistry
from fractor.ledger.token import TokenLedger as TokenLedger
from fractor.ledger.transactions import ExecuteResult as ExecuteResult
from fractor.ledger.transactions import Move as Move
from fractor.ledger.transactions import Transaction as Transaction
