"""Prometheus exporter for a stockledger run.

The exporter is optional: a port that cannot be bound is reported on the
`stockledger.metrics` logger and the run carries on without it.
"""

import logging
from typing import Optional

from prometheus_client import start_http_server

log = logging.getLogger("stockledger.metrics")


def start_server_safe(port: int) -> Optional[int]:
    """Expose ledger counters on `port`; return the port, or None if unbound."""
    try:
        start_http_server(port)
    except OSError as e:
        log.warning(f"metrics exporter disabled, cannot bind :{port}: {e}")
        return None
    log.info(f"metrics exporter listening on :{port}")
    return port
