"""
Ledger entities and pure helpers.

Money is carried as `decimal.Decimal` end to end. Command fields arrive as text
and are parsed straight into Decimal, so a price such as "2.005" keeps its
exact decimal value and renders the same on every platform.

Price keys and the profit figure share one rendering: two fraction digits,
rounded half-up, period as the decimal point. Two nominal prices that render
alike are the same key for RETURN matching (2.004 and 2.001 both key "2.00").
"""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import Deque, Dict, List

# Wide enough that sums of double-range prices stay exact.
LEDGER_CONTEXT = Context(prec=400, rounding=ROUND_HALF_UP)
CENT = Decimal("0.01")

INT_MIN = -(2**31)
INT_MAX = 2**31 - 1
# Largest decimal exponent accepted for a price (double range).
MAX_PRICE_EXPONENT = 308

_INT_RE = re.compile(r"[+-]?[0-9]+")
_DECIMAL_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


class NegativeQuantityError(ValueError):
    """A quantity field parsed as an integer but was below zero."""


@dataclass
class StockBatch:
    """One purchase lot: `quantity` units bought at `unit_cost` each."""

    quantity: int
    unit_cost: Decimal


@dataclass
class SaleSegment:
    """Units a sale took from a single cost layer."""

    quantity: int
    unit_cost: Decimal


@dataclass
class SaleRecord:
    """A completed ORDER kept open for later RETURNs.

    Attributes:
        base_price_key: nominal sell price as a price key (e.g. "8.00")
        effective_sell_price: sell price after the discount active at ORDER time
        remaining_quantity: units that can still be returned
        segments: cost layers in the order the sale consumed them
    """

    base_price_key: str
    effective_sell_price: Decimal
    remaining_quantity: int
    segments: Deque[SaleSegment] = field(default_factory=deque)

    @property
    def exhausted(self) -> bool:
        return self.remaining_quantity == 0 and not self.segments


@dataclass
class ItemState:
    stock_queue: Deque[StockBatch] = field(default_factory=deque)
    discount_stack: List[int] = field(default_factory=list)
    # price key -> records, most recent sale at index 0
    sales_by_base_price: Dict[str, Deque[SaleRecord]] = field(default_factory=dict)
    total_stock_quantity: int = 0

    @property
    def active_discount(self) -> int:
        return self.discount_stack[-1] if self.discount_stack else 0


def format_price_key(price: Decimal) -> str:
    return f"{price.quantize(CENT, rounding=ROUND_HALF_UP, context=LEDGER_CONTEXT):f}"


def format_money(value: Decimal) -> str:
    # Same rendering as price keys; kept separate because callers mean different things.
    return format_price_key(value)


def apply_discount(base: Decimal, percent: int) -> Decimal:
    return LEDGER_CONTEXT.multiply(base, 1 - LEDGER_CONTEXT.divide(Decimal(percent), Decimal(100)))


def parse_int(text: str) -> int:
    """Parse a signed 32-bit integer; raises ValueError on anything else."""
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"not an integer: {text!r}")
    value = int(text)
    if value < INT_MIN or value > INT_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return value


def parse_quantity(text: str) -> int:
    """Parse a quantity field. Zero is allowed, negatives are rejected."""
    value = parse_int(text)
    if value < 0:
        raise NegativeQuantityError(f"negative quantity not allowed: {text!r}")
    return value


def parse_decimal(text: str) -> Decimal:
    """Parse a price field into an exact Decimal.

    Accepts plain and exponent notation. NaN, infinities, digit separators and
    exponents beyond the double range are rejected with ValueError.
    """
    if not _DECIMAL_RE.fullmatch(text):
        raise ValueError(f"not a number: {text!r}")
    value = Decimal(text)
    if value and value.adjusted() > MAX_PRICE_EXPONENT:
        raise ValueError(f"number out of range: {text!r}")
    return value
