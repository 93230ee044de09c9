from __future__ import annotations

import json
import logging

from .schema import EventEnvelope
from ..metrics.ledger import get_events_total


log = logging.getLogger("stockledger.events")


def publish(env: EventEnvelope) -> None:
    """Count the event and log it as a single-line JSON record.

    Safe: never raises, so a broken log handler cannot disturb ledger processing.
    """
    try:
        get_events_total().labels(env.event.event_type).inc()
    except Exception:
        pass

    line = json.dumps({
        "schema_version": env.schema_version,
        "correlation_id": env.correlation_id,
        "sequence": env.sequence,
        "event": env.event.model_dump(),
    }, separators=(",", ":"))
    try:
        log.info(line)
    except Exception:
        pass
