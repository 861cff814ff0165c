"""
Procura Chat Streaming - event stream adapter and SSE framing

``EventStreamAdapter`` turns a pending-message token into an ordered,
numbered, finite event sequence:

- ids start at 1 and increase by one per event
- exactly one terminal event (``done`` or ``error``) ends every stream;
  ``done`` is synthesized if the turn ends without one
- an uncaught turn failure becomes a single ``error`` event
- when the client goes away, delivery stops; the turn itself keeps running
  and persists its history unless ``cancel_on_disconnect`` is set
"""

import asyncio
import json
import logging
from typing import AsyncIterator, Optional, Set, Tuple

from config import runtime_config
from logging_config import log_stream
from routers.chat_orchestration.events import EventChannel, StreamEvent
from routers.chat_orchestration.orchestrator import TurnOrchestrator
from services.pending_store import PendingMessageStore

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Error processing message"


def format_sse(event_id: int, event: StreamEvent) -> str:
    """Frame one event as a Server-Sent Events message."""
    data = json.dumps(event.to_dict(), ensure_ascii=False, default=str)
    return f"id: {event_id}\ndata: {data}\n\n"


class EventStreamAdapter:

    def __init__(
        self,
        pending_store: PendingMessageStore,
        orchestrator: TurnOrchestrator,
        cancel_on_disconnect: Optional[bool] = None,
    ):
        self.pending_store = pending_store
        self.orchestrator = orchestrator
        self._cancel_on_disconnect = cancel_on_disconnect
        self._background_turns: Set[asyncio.Task] = set()

    @property
    def cancel_on_disconnect(self) -> bool:
        if self._cancel_on_disconnect is not None:
            return self._cancel_on_disconnect
        return runtime_config.cancel_turn_on_disconnect

    @property
    def background_turns(self) -> int:
        """Turns still running after their client disconnected."""
        return len(self._background_turns)

    async def open(self, conversation_id: str, token: str) -> str:
        """Consume the token. Raises ExpiredOrInvalidTokenError before any event is produced."""
        return await self.pending_store.consume(token, conversation_id)

    async def _produce(self, conversation_id: str, text: str, channel: EventChannel) -> None:
        try:
            await self.orchestrator.run_turn(conversation_id, text, channel)
        except asyncio.CancelledError:
            logger.info(f"Turn cancelled: conversation={conversation_id}")
            raise
        except Exception as e:
            logger.error(f"Turn failed: conversation={conversation_id}: {e}", exc_info=True)
            await channel.send(StreamEvent.error(str(e) or GENERIC_ERROR))
        finally:
            channel.finish()

    async def events(self, conversation_id: str, text: str) -> AsyncIterator[Tuple[int, StreamEvent]]:
        """Run the turn and yield ``(event_id, event)`` pairs until the terminal event."""
        channel = EventChannel()
        task = asyncio.create_task(self._produce(conversation_id, text, channel))
        log_stream(logger, "open", conversation=conversation_id)

        event_id = 0
        finished = False
        try:
            async for event in channel:
                event_id += 1
                yield event_id, event
                if event.terminal:
                    finished = True
                    break

            if not finished:
                logger.warning(f"Turn ended without a terminal event: conversation={conversation_id}")
                event_id += 1
                finished = True
                yield event_id, StreamEvent.done()
        finally:
            channel.close()
            if not task.done():
                if self.cancel_on_disconnect and not finished:
                    task.cancel()
                else:
                    self._background_turns.add(task)
                    task.add_done_callback(self._background_turns.discard)
            log_stream(logger, "closed" if finished else "disconnected", conversation=conversation_id, events=event_id)

    async def stream(self, conversation_id: str, text: str) -> AsyncIterator[str]:
        """SSE-framed variant of ``events`` for StreamingResponse."""
        async for event_id, event in self.events(conversation_id, text):
            yield format_sse(event_id, event)

    async def drain(self) -> None:
        """Wait for background turns (call on shutdown)."""
        if self._background_turns:
            await asyncio.gather(*self._background_turns, return_exceptions=True)
