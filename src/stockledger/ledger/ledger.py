from __future__ import annotations

from decimal import Decimal
from typing import Dict, Optional

from .model import ItemState, format_money

REASON_MALFORMED = "malformed"
REASON_UNKNOWN_COMMAND = "unknown_command"
REASON_INVALID_VALUE = "invalid_value"
REASON_INSUFFICIENT_STOCK = "insufficient_stock"
REASON_UNMATCHED_RETURN = "unmatched_return"

REASONS = (
    REASON_MALFORMED,
    REASON_UNKNOWN_COMMAND,
    REASON_INVALID_VALUE,
    REASON_INSUFFICIENT_STOCK,
    REASON_UNMATCHED_RETURN,
)


class Ledger:
    """Per-file inventory state: items, running profit and the invalid latch.

    `invalid` only ever goes from False to True. The reason of the first
    invalidation is kept in `invalid_reason`; later ones are ignored.
    """

    def __init__(self) -> None:
        # insertion order is CHECK order
        self.items: Dict[str, ItemState] = {}
        self.profit = Decimal(0)
        self.invalid = False
        self.invalid_reason: Optional[str] = None

    def get_item(self, name: str) -> ItemState:
        state = self.items.get(name)
        if state is None:
            state = ItemState()
            self.items[name] = state
        return state

    def invalidate(self, reason: str) -> bool:
        """Latch the ledger invalid. Returns True only for the first call."""
        if self.invalid:
            return False
        self.invalid = True
        self.invalid_reason = reason
        return True

    def stock_levels(self) -> Dict[str, int]:
        return {name: state.total_stock_quantity for name, state in self.items.items()}

    def profit_text(self) -> str:
        return format_money(self.profit)
