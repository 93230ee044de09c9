"""
CommandEngine applies inventory commands to a single Ledger.

One engine owns one ledger for the lifetime of one input file. Each line is
split on single spaces and dispatched on its first token. Rule violations never
raise: they latch the ledger invalid, after which only PROFIT produces output
("Profit/Loss: NA") and every other line is consumed silently.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from decimal import Decimal, localcontext
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..events.bus import publish as publish_event
from ..events.schema import EventEnvelope, LedgerInvalidated
from ..ledger.ledger import (
    Ledger,
    REASON_INSUFFICIENT_STOCK,
    REASON_INVALID_VALUE,
    REASON_MALFORMED,
    REASON_UNKNOWN_COMMAND,
    REASON_UNMATCHED_RETURN,
)
from ..ledger.model import (
    LEDGER_CONTEXT,
    ItemState,
    NegativeQuantityError,
    SaleRecord,
    SaleSegment,
    StockBatch,
    apply_discount,
    format_price_key,
    parse_decimal,
    parse_int,
    parse_quantity,
)
from ..metrics.ledger import (
    get_commands_total,
    get_invalidations_total,
    get_units_expired_total,
    get_units_returned_total,
    get_units_sold_total,
)

logger = logging.getLogger("stockledger.engine")

PROFIT_NA = "Profit/Loss: NA"

Handler = Callable[[List[str]], Optional[List[str]]]


class CommandEngine:
    def __init__(self, ledger: Optional[Ledger] = None, source: str = "<memory>"):
        self.ledger = ledger if ledger is not None else Ledger()
        self.source = source
        self.line_no = 0
        self._handlers: Dict[str, Handler] = {
            "STOCK": self._handle_stock,
            "ORDER": self._handle_order,
            "EXPIRE": self._handle_expire,
            "RETURN": self._handle_return,
            "DISCOUNT": self._handle_discount,
            "DISCOUNT_END": self._handle_discount_end,
            "CHECK": self._handle_check,
            "PROFIT": self._handle_profit,
        }
        # Metrics
        self.commands_total = get_commands_total()
        self.invalidations_total = get_invalidations_total()
        self.units_sold = get_units_sold_total()
        self.units_expired = get_units_expired_total()
        self.units_returned = get_units_returned_total()

    def process_lines(self, lines: Iterable[str]) -> List[str]:
        out: List[str] = []
        for line in lines:
            out.extend(self.process_line(line))
        return out

    def process_line(self, line: str) -> List[str]:
        self.line_no += 1
        line = line.strip()
        if not line:
            return []
        return self.apply(line.split(" "))

    def apply(self, tokens: List[str]) -> List[str]:
        """Dispatch one tokenized command and return its output lines."""
        cmd = tokens[0]
        if self.ledger.invalid:
            if cmd.upper() == "PROFIT":
                return [PROFIT_NA]
            return []
        handler = self._handlers.get(cmd)
        if handler is None:
            self._invalidate(REASON_UNKNOWN_COMMAND, cmd)
            return []
        logger.debug("%s line %d: %s", self.source, self.line_no, " ".join(tokens))
        self.commands_total.labels(cmd).inc()
        with localcontext(LEDGER_CONTEXT):
            return handler(tokens) or []

    # ---------- handlers ----------

    def _handle_stock(self, t: List[str]) -> None:
        if len(t) != 4:
            return self._invalidate(REASON_MALFORMED, t[0])
        try:
            qty = parse_quantity(t[2])
            cost = parse_decimal(t[3])
        except NegativeQuantityError:
            return self._invalidate(REASON_INVALID_VALUE, t[0])
        except ValueError:
            return self._invalidate(REASON_MALFORMED, t[0])
        if cost <= 0:
            return self._invalidate(REASON_INVALID_VALUE, t[0])
        if qty == 0:
            return None

        state = self.ledger.get_item(t[1])
        state.stock_queue.append(StockBatch(qty, cost))
        state.total_stock_quantity += qty
        return None

    def _handle_order(self, t: List[str]) -> None:
        if len(t) != 4:
            return self._invalidate(REASON_MALFORMED, t[0])
        try:
            qty = parse_quantity(t[2])
            sell = parse_decimal(t[3])
        except NegativeQuantityError:
            return self._invalidate(REASON_INVALID_VALUE, t[0])
        except ValueError:
            return self._invalidate(REASON_MALFORMED, t[0])
        if sell < 0:
            return self._invalidate(REASON_INVALID_VALUE, t[0])
        if qty == 0:
            return None

        state = self.ledger.get_item(t[1])
        if state.total_stock_quantity < qty:
            return self._invalidate(REASON_INSUFFICIENT_STOCK, t[0])

        # discount is read once here and frozen into the record
        effective_sell = apply_discount(sell, state.active_discount)
        sale = SaleRecord(format_price_key(sell), effective_sell, qty)
        for taken, unit_cost in self._consume_stock(state, qty):
            self.ledger.profit += taken * (effective_sell - unit_cost)
            sale.segments.append(SaleSegment(taken, unit_cost))

        state.sales_by_base_price.setdefault(sale.base_price_key, deque()).appendleft(sale)
        self.units_sold.inc(qty)
        return None

    def _handle_expire(self, t: List[str]) -> None:
        if len(t) != 3:
            return self._invalidate(REASON_MALFORMED, t[0])
        try:
            qty = parse_quantity(t[2])
        except NegativeQuantityError:
            return self._invalidate(REASON_INVALID_VALUE, t[0])
        except ValueError:
            return self._invalidate(REASON_MALFORMED, t[0])
        if qty == 0:
            return None

        state = self.ledger.get_item(t[1])
        if state.total_stock_quantity < qty:
            return self._invalidate(REASON_INSUFFICIENT_STOCK, t[0])

        for taken, unit_cost in self._consume_stock(state, qty):
            self.ledger.profit -= taken * unit_cost
        self.units_expired.inc(qty)
        return None

    def _handle_return(self, t: List[str]) -> None:
        if len(t) != 4:
            return self._invalidate(REASON_MALFORMED, t[0])
        try:
            qty = parse_quantity(t[2])
            sell = parse_decimal(t[3])
        except NegativeQuantityError:
            return self._invalidate(REASON_INVALID_VALUE, t[0])
        except ValueError:
            return self._invalidate(REASON_MALFORMED, t[0])
        if qty == 0:
            return None

        state = self.ledger.get_item(t[1])
        key = format_price_key(sell)
        sales = state.sales_by_base_price.get(key)
        if not sales:
            return self._invalidate(REASON_UNMATCHED_RETURN, t[0])

        needed = qty
        while needed > 0:
            if not sales:
                return self._invalidate(REASON_UNMATCHED_RETURN, t[0])
            sale = sales[0]  # most recent sale at this nominal price
            can_take = min(needed, sale.remaining_quantity)
            if can_take <= 0:
                sales.popleft()
                continue
            self._reverse_sale(sale, can_take)
            needed -= can_take
            if sale.exhausted:
                sales.popleft()

        if not sales:
            del state.sales_by_base_price[key]
        # Returned units are not put back into stock.
        self.units_returned.inc(qty)
        return None

    def _handle_discount(self, t: List[str]) -> None:
        if len(t) != 3:
            return self._invalidate(REASON_MALFORMED, t[0])
        try:
            percent = parse_int(t[2])
        except ValueError:
            return self._invalidate(REASON_MALFORMED, t[0])

        self.ledger.get_item(t[1]).discount_stack.append(percent)
        return None

    def _handle_discount_end(self, t: List[str]) -> None:
        if len(t) != 2:
            return self._invalidate(REASON_MALFORMED, t[0])
        state = self.ledger.get_item(t[1])
        if state.discount_stack:
            state.discount_stack.pop()
        return None

    def _handle_check(self, t: List[str]) -> List[str]:
        if self.ledger.invalid:
            return []
        return [f"{name}: {qty}" for name, qty in self.ledger.stock_levels().items()]

    def _handle_profit(self, t: List[str]) -> List[str]:
        if self.ledger.invalid:
            return [PROFIT_NA]
        return [f"Profit/Loss: ${self.ledger.profit_text()}"]

    # ---------- helpers ----------

    @staticmethod
    def _consume_stock(state: ItemState, qty: int) -> List[Tuple[int, Decimal]]:
        """Take `qty` units oldest batch first; caller has checked availability.

        Returns the (units, unit_cost) portions in consumption order.
        """
        portions: List[Tuple[int, Decimal]] = []
        remaining = qty
        while remaining > 0:
            batch = state.stock_queue[0]
            taken = min(remaining, batch.quantity)
            batch.quantity -= taken
            if batch.quantity == 0:
                state.stock_queue.popleft()
            state.total_stock_quantity -= taken
            remaining -= taken
            portions.append((taken, batch.unit_cost))
        return portions

    def _reverse_sale(self, sale: SaleRecord, qty: int) -> None:
        """Undo `qty` units of a sale using its own cost layers, oldest first."""
        remaining = qty
        while remaining > 0:
            segment = sale.segments[0]
            taken = min(remaining, segment.quantity)
            self.ledger.profit -= taken * (sale.effective_sell_price - segment.unit_cost)
            segment.quantity -= taken
            if segment.quantity == 0:
                sale.segments.popleft()
            remaining -= taken
        sale.remaining_quantity -= qty

    def _invalidate(self, reason: str, command: str) -> None:
        if not self.ledger.invalidate(reason):
            return None
        logger.warning(f"{self.source} invalidated at line {self.line_no} ({command}): {reason}")
        self.invalidations_total.labels(reason).inc()
        try:
            evt = LedgerInvalidated(
                ts=int(time.time() * 1000),
                source=self.source,
                reason=reason,
                command=command,
                line_no=self.line_no or None,
            )
            publish_event(EventEnvelope(correlation_id=f"{self.source}:{self.line_no}", event=evt))
        except Exception:
            pass
        return None
