"""Command engine for inventory operation logs."""

from .processor import CommandEngine, PROFIT_NA

__all__ = ["CommandEngine", "PROFIT_NA"]
