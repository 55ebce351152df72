"""
Server-sent event helpers and per-user conversation slots.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Generic, TypeVar

from fastapi import HTTPException

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

S = TypeVar("S")


def sse_event(event: str, data: Dict[str, Any]) -> str:
    payload = json.dumps(data, ensure_ascii=False)
    return f"event: {event}\ndata: {payload}\n\n"


@dataclass
class ConversationSlot(Generic[S]):
    """
    Holds one user's in-progress conversation state. The state itself is
    immutable and swapped wholesale; the flags gate concurrent requests.
    """
    state: S
    streaming: bool = False
    saving: bool = False

    def ensure_idle(self):
        if self.streaming:
            raise HTTPException(status_code=409, detail="A reply is still streaming")
        if self.saving:
            raise HTTPException(status_code=409, detail="Still saving")
