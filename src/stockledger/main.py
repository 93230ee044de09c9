"""
Main entrypoint for stockledger.

What it does:
- Resolves the input files: command-line arguments, or else one path per line
  from the configured list file (`input_files.txt` by default; blank lines and
  `#` comments skipped).
- Runs every file through a fresh Ledger + CommandEngine and prints each
  file's output lines to stdout, separated by exactly one blank line.
- Optionally starts the Prometheus exporter, appends a JSONL audit record per
  file and writes a CSV run summary (see `stockledger.config.loader`).

Where it is used:
- Invoked by the `stockledger` console script or `python -m stockledger.main`.

Key related modules:
- `stockledger.engine.processor.CommandEngine`
- `stockledger.config.loader.Settings` and `load_settings`
"""
from __future__ import annotations

import logging
import os
import sys
import time
from dataclasses import dataclass, field
from typing import List, Optional

from .config.loader import load_settings
from .engine.processor import CommandEngine
from .events.bus import publish as publish_event
from .events.schema import EventEnvelope, FileProcessed
from .logs.audit_log import append_jsonl
from .metrics.core import start_server_safe
from .metrics.ledger import get_files_processed_total
from .reports.generate import write_summary

log = logging.getLogger("stockledger.main")

USAGE = """Usage:
  stockledger <file1> <file2> ...
or place paths one per line in {list_file}
"""


@dataclass
class FileResult:
    path: str
    output: List[str] = field(default_factory=list)
    lines: int = 0
    invalid: bool = False
    reason: Optional[str] = None
    profit: Optional[str] = None
    items: int = 0
    error: Optional[str] = None

    @property
    def outcome(self) -> str:
        if self.error is not None:
            return "error"
        return "invalid" if self.invalid else "valid"

    def audit_record(self) -> dict:
        return {
            "ts": int(time.time() * 1000),
            "source": self.path,
            "lines": self.lines,
            "invalid": self.invalid,
            "reason": self.reason,
            "profit": self.profit,
            "items": self.items,
            "error": self.error,
        }


def resolve_input_files(argv: List[str], list_file: str) -> Optional[List[str]]:
    """Return the files to process, or None when there is nothing to go on."""
    if argv:
        return list(argv)
    if not os.path.exists(list_file):
        return None
    with open(list_file, "r", encoding="utf-8") as f:
        paths = [ln.strip() for ln in f]
    return [p for p in paths if p and not p.startswith("#")]


def read_command_lines(path: str) -> List[str]:
    with open(path, "r", encoding="utf-8") as f:
        return [ln.rstrip("\n") for ln in f]


def process_file(path: str) -> FileResult:
    """Run one input file through a fresh ledger."""
    result = FileResult(path=path)
    try:
        lines = read_command_lines(path)
    except (OSError, UnicodeDecodeError) as e:
        log.error(f"Failed to read {path}: {e}")
        result.error = str(e)
        get_files_processed_total().labels(result.outcome).inc()
        return result

    engine = CommandEngine(source=path)
    result.output = engine.process_lines(lines)
    ledger = engine.ledger
    result.lines = len(lines)
    result.invalid = ledger.invalid
    result.reason = ledger.invalid_reason
    result.profit = None if ledger.invalid else ledger.profit_text()
    result.items = len(ledger.items)
    get_files_processed_total().labels(result.outcome).inc()
    try:
        evt = FileProcessed(
            ts=int(time.time() * 1000),
            source=path,
            lines=result.lines,
            invalid=result.invalid,
            reason=result.reason,
            profit=result.profit,
            items=result.items,
        )
        publish_event(EventEnvelope(correlation_id=path, event=evt))
    except Exception:
        pass
    return result


def main(argv: Optional[List[str]] = None) -> int:
    settings = load_settings()
    logging.basicConfig(level=settings.log_level_value, format="%(asctime)s %(levelname)s %(message)s")
    if argv is None:
        argv = sys.argv[1:]

    if settings.metrics_port:
        start_server_safe(settings.metrics_port)

    files = resolve_input_files(argv, settings.input_list_file)
    if files is None:
        print(USAGE.format(list_file=settings.input_list_file), file=sys.stderr)
        return 2

    results: List[FileResult] = []
    for i, path in enumerate(files):
        if i > 0:
            print()  # blank line between different files' outputs
        result = process_file(path)
        for line in result.output:
            print(line)
        results.append(result)
        if settings.audit_log_path:
            append_jsonl(settings.audit_log_path, result.audit_record())

    if settings.report_path:
        out = write_summary(results, settings.report_path)
        log.info(f"Run summary written to: {out}")

    log.info(f"processed {len(results)} file(s)")
    return 1 if any(r.error is not None for r in results) else 0


if __name__ == "__main__":
    sys.exit(main())
