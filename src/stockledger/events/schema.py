from __future__ import annotations

from typing import Literal, Optional, Union
from pydantic import BaseModel


# ---- Base + envelope ----

class BaseEvent(BaseModel):
    event_type: str
    ts: int
    source: str  # input file the ledger belongs to


class EventEnvelope(BaseModel):
    schema_version: str = "v1"
    correlation_id: str
    sequence: int = 0
    event: BaseEvent


# ---- Event types ----

class LedgerInvalidated(BaseEvent):
    event_type: Literal["ledger_invalidated"] = "ledger_invalidated"
    reason: str
    command: str
    line_no: Optional[int] = None


class FileProcessed(BaseEvent):
    event_type: Literal["file_processed"] = "file_processed"
    lines: int
    invalid: bool
    reason: Optional[str] = None
    profit: Optional[str] = None  # two-digit text; None when invalid
    items: int = 0


AnyEvent = Union[
    LedgerInvalidated,
    FileProcessed,
]
