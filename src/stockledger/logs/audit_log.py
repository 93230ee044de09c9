from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List

from ..metrics.ledger import get_audit_counters

log = logging.getLogger("stockledger.audit")


REQUIRED_KEYS = {
    "ts", "source", "lines", "invalid", "reason", "profit", "items",
}


def validate_record(rec: Dict[str, Any]) -> List[str]:
    missing = [k for k in REQUIRED_KEYS if k not in rec]
    return missing


def append_jsonl(path: str, rec: Dict[str, Any]) -> bool:
    """Append one per-file audit record as a JSON line.

    Returns False (and counts the error) instead of raising when the record is
    incomplete or the file cannot be written.
    """
    app, err = get_audit_counters()
    missing = validate_record(rec)
    if missing:
        log.warning(f"audit record for {rec.get('source', '?')} missing fields: {sorted(missing)}")
        err.labels("missing_fields").inc()
        return False
    try:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")
        app.inc()
        return True
    except OSError as e:
        log.warning(f"Failed to append audit record to {path}: {e}")
        err.labels("io_error").inc()
        return False
