"""
Stream events and the channel that carries them.

The orchestrator writes ``StreamEvent`` values into an ``EventChannel``;
the stream adapter reads them. Closing the channel from the reading side
stops delivery: later sends are dropped and report False, while the
producer keeps running.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class EventType(str, Enum):
    CONTENT = "content"
    TOOL_START = "tool_start"
    TOOL_RESULT = "tool_result"
    TOOL_ERROR = "tool_error"
    AUTHENTICATED = "authenticated"
    ERROR = "error"
    DONE = "done"


TERMINAL_TYPES = {EventType.DONE, EventType.ERROR}


@dataclass(frozen=True)
class StreamEvent:
    """One event of a turn. ``to_dict`` is the wire payload."""

    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.type in TERMINAL_TYPES

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, **self.payload}

    # Constructors

    @classmethod
    def content(cls, text: str) -> "StreamEvent":
        return cls(EventType.CONTENT, {"content": text})

    @classmethod
    def tool_start(cls, names: List[str]) -> "StreamEvent":
        return cls(EventType.TOOL_START, {"tools": list(names)})

    @classmethod
    def tool_result(cls, name: str, result: Dict[str, Any], trace: str) -> "StreamEvent":
        return cls(EventType.TOOL_RESULT, {"name": name, "result": result, "trace": trace})

    @classmethod
    def tool_error(cls, name: str, error: str, trace: str) -> "StreamEvent":
        return cls(EventType.TOOL_ERROR, {"name": name, "error": error, "trace": trace})

    @classmethod
    def authenticated(cls, user: Dict[str, Any]) -> "StreamEvent":
        return cls(EventType.AUTHENTICATED, {"user": user})

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls(EventType.ERROR, {"error": message})

    @classmethod
    def done(cls) -> "StreamEvent":
        return cls(EventType.DONE)


_END = object()


class EventChannel:
    """
    Unbounded single-producer / single-consumer event queue.

    - ``send`` accepts events until the first terminal event or until the
      consumer closes the channel; after that it returns False.
    - ``finish`` marks the end of production (with or without a terminal).
    - Iterating yields events in send order and stops at ``finish`` or
      ``close``.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._terminated = False

    async def send(self, event: StreamEvent) -> bool:
        if self._closed or self._terminated:
            return False
        if event.terminal:
            self._terminated = True
        self._queue.put_nowait(event)
        return True

    def finish(self) -> None:
        if not self._closed:
            self._queue.put_nowait(_END)

    def close(self) -> None:
        """Consumer side: stop delivery and drop anything queued."""
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_END)

    def __aiter__(self):
        return self

    async def __anext__(self) -> StreamEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        return item
