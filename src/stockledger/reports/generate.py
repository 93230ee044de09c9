"""
Write a per-run summary table: one row per processed input file.

Columns: file, outcome, lines, invalid, reason, profit, items, error.
`outcome` is valid|invalid|error; `profit` is the two-digit text the PROFIT
command would print, or empty when the file's ledger was invalidated or the
file could not be read. `error` carries the read failure message.
"""

from __future__ import annotations

import os
from typing import Iterable

import pandas as pd

COLUMNS = ["file", "outcome", "lines", "invalid", "reason", "profit", "items", "error"]


def summary_frame(results: Iterable) -> pd.DataFrame:
    rows = [
        {
            "file": r.path,
            "outcome": r.outcome,
            "lines": r.lines,
            "invalid": r.invalid,
            "reason": r.reason or "",
            "profit": r.profit or "",
            "items": r.items,
            "error": r.error or "",
        }
        for r in results
    ]
    return pd.DataFrame(rows, columns=COLUMNS)


def write_summary(results: Iterable, path: str) -> str:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    summary_frame(results).to_csv(path, index=False)
    return path
