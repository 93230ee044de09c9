"""Ledger package.

Public API:
- Ledger: per-file stock levels, running profit/loss and the invalid latch.
- model: stock batches, sale records, price keys and field parsing.
"""

from .ledger import Ledger  # re-export
