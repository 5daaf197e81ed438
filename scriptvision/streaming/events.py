"""Typed events emitted over the image stream."""

import json
from typing import Any, Dict

from pydantic import BaseModel, Field

from scriptvision.core.constants import StreamErrorCode, StreamEventType


class StreamEvent(BaseModel):
    """One event in the stream. Serialized as a single `data:` record."""
    type: StreamEventType
    data: Dict[str, Any] = Field(default_factory=dict)

    def payload(self) -> Dict[str, Any]:
        return {"type": self.type.value, **self.data}

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.payload())}\n\n"

    @property
    def is_fatal_error(self) -> bool:
        return self.type == StreamEventType.ERROR and bool(self.data.get("fatal"))


def error_event(code: StreamErrorCode, message: str, fatal: bool = True, **extra: Any) -> StreamEvent:
    """Build an error event carrying a machine-readable code."""
    return StreamEvent(
        type=StreamEventType.ERROR,
        data={"code": code.value, "message": message, "fatal": fatal, **extra},
    )
