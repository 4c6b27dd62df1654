"""
Stream events emitted during a workflow run.
"""

from typing import Any
from enum import Enum

from pydantic import BaseModel, Field

from nodeflow.engine.state import utc_now


class EventKind(str, Enum):
    LOG = "log"
    NODE_START = "nodeStart"
    NODE_COMPLETE = "nodeComplete"
    ERROR = "error"
    COMPLETE = "complete"


class StreamEvent(BaseModel):
    """One progress event. Payloads are plain JSON-ready data."""

    kind: EventKind
    payload: Any = None
    timestamp: str = Field(default_factory=utc_now)

    def to_sse(self) -> str:
        """Server-sent-events frame for this event."""
        return f"data: {self.model_dump_json()}\n\n"
