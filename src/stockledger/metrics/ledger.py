from __future__ import annotations

from typing import Optional
import os
from prometheus_client import Counter, REGISTRY

_commands_total: Optional[Counter] = None
_invalidations_total: Optional[Counter] = None
_files_processed_total: Optional[Counter] = None
_units_sold_total: Optional[Counter] = None
_units_expired_total: Optional[Counter] = None
_units_returned_total: Optional[Counter] = None
_events_total: Optional[Counter] = None
_audit_appends_total: Optional[Counter] = None
_audit_errors_total: Optional[Counter] = None


class _NoOp:
    def labels(self, *args, **kwargs):
        return self
    def inc(self, *args, **kwargs):
        return None
    def set(self, *args, **kwargs):
        return None


def _safe_counter(name: str, doc: str, labelnames=()):
    if os.getenv("DISABLE_PROMETHEUS", "0") == "1":
        return _NoOp()
    try:
        return Counter(name, doc, labelnames)
    except ValueError:
        # Already registered (module re-imported under another name); reuse it
        try:
            coll = getattr(REGISTRY, "_names_to_collectors", {}).get(name)
            if coll is not None:
                return coll
            for coll in list(getattr(REGISTRY, "_collector_to_names", {}).keys()):  # type: ignore[attr-defined]
                if getattr(coll, "_name", None) == name:
                    return coll
        except Exception:
            pass
        return _NoOp()


def get_commands_total():
    global _commands_total
    if _commands_total is None:
        _commands_total = _safe_counter("ledger_commands_total", "Commands dispatched on a valid ledger", ["command"])
    return _commands_total


def get_invalidations_total():
    """Counter: ledgers latched invalid, labeled by the first error's reason."""
    global _invalidations_total
    if _invalidations_total is None:
        _invalidations_total = _safe_counter(
            "ledger_invalidations_total", "Ledgers invalidated", ["reason"]
        )
    return _invalidations_total


def get_files_processed_total():
    """Counter: input files processed, labeled by outcome (valid|invalid|error)."""
    global _files_processed_total
    if _files_processed_total is None:
        _files_processed_total = _safe_counter(
            "ledger_files_processed_total", "Input files processed", ["outcome"]
        )
    return _files_processed_total


def get_units_sold_total():
    global _units_sold_total
    if _units_sold_total is None:
        _units_sold_total = _safe_counter("ledger_units_sold_total", "Units sold")
    return _units_sold_total


def get_units_expired_total():
    global _units_expired_total
    if _units_expired_total is None:
        _units_expired_total = _safe_counter("ledger_units_expired_total", "Units written off as expired")
    return _units_expired_total


def get_units_returned_total():
    global _units_returned_total
    if _units_returned_total is None:
        _units_returned_total = _safe_counter("ledger_units_returned_total", "Units reversed by returns")
    return _units_returned_total


def get_events_total():
    global _events_total
    if _events_total is None:
        _events_total = _safe_counter("ledger_events_total", "Ledger events published", ["type"])
    return _events_total


def get_audit_counters():
    global _audit_appends_total, _audit_errors_total
    if _audit_appends_total is None:
        _audit_appends_total = _safe_counter("audit_log_appends_total", "Audit records appended")
    if _audit_errors_total is None:
        _audit_errors_total = _safe_counter("audit_log_errors_total", "Audit log errors", ["reason"])
    return _audit_appends_total, _audit_errors_total
