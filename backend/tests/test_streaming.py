"""
Tests for the event stream adapter and SSE framing.
"""

import asyncio
import json

import pytest

from errors import ExpiredOrInvalidTokenError
from routers.chat_orchestration.events import EventChannel, EventType, StreamEvent
from routers.chat_streaming import EventStreamAdapter, format_sse
from services.pending_store import InMemoryPendingStore


class ScriptedOrchestrator:
    """Sends a fixed list of events, optionally raising afterwards."""

    def __init__(self, events, error=None, pause=0.0):
        self.events = events
        self.error = error
        self.pause = pause
        self.completed = False
        self.delivered = []

    async def run_turn(self, conversation_id, text, channel):
        for event in self.events:
            if self.pause:
                await asyncio.sleep(self.pause)
            self.delivered.append(await channel.send(event))
        if self.error is not None:
            raise self.error
        self.completed = True


async def _collect(adapter, conversation_id="conv-1", text="hola"):
    return [pair async for pair in adapter.events(conversation_id, text)]


class TestFormatSSE:
    """Wire framing."""

    def test_frame(self):
        frame = format_sse(3, StreamEvent.content("¡Hola!"))
        assert frame == 'id: 3\ndata: {"type": "content", "content": "¡Hola!"}\n\n'

    def test_payload_shapes(self):
        assert StreamEvent.tool_start(["a", "b"]).to_dict() == {"type": "tool_start", "tools": ["a", "b"]}
        assert StreamEvent.tool_error("a", "boom", "trace").to_dict() == {
            "type": "tool_error", "name": "a", "error": "boom", "trace": "trace",
        }
        assert StreamEvent.done().to_dict() == {"type": "done"}


class TestEventChannel:
    """Delivery rules."""

    def test_nothing_after_terminal(self):
        async def scenario():
            channel = EventChannel()
            assert await channel.send(StreamEvent.done()) is True
            assert await channel.send(StreamEvent.content("late")) is False
            channel.finish()
            return [e async for e in channel]

        assert [e.type for e in asyncio.run(scenario())] == [EventType.DONE]

    def test_closed_channel_drops_sends(self):
        async def scenario():
            channel = EventChannel()
            await channel.send(StreamEvent.content("queued"))
            channel.close()
            assert await channel.send(StreamEvent.content("dropped")) is False
            return [e async for e in channel]

        assert asyncio.run(scenario()) == []


class TestEventStreamAdapter:
    """Ordering, termination, failure and disconnect."""

    def test_ids_start_at_one_and_stop_at_done(self):
        orchestrator = ScriptedOrchestrator([
            StreamEvent.content("a"),
            StreamEvent.content("b"),
            StreamEvent.done(),
            StreamEvent.content("after done"),
        ])
        adapter = EventStreamAdapter(InMemoryPendingStore(), orchestrator)
        pairs = asyncio.run(_collect(adapter))

        assert [i for i, _ in pairs] == [1, 2, 3]
        assert [e.type for _, e in pairs] == [EventType.CONTENT, EventType.CONTENT, EventType.DONE]
        assert orchestrator.delivered[-1] is False

    def test_done_is_synthesized(self):
        adapter = EventStreamAdapter(InMemoryPendingStore(), ScriptedOrchestrator([StreamEvent.content("a")]))
        pairs = asyncio.run(_collect(adapter))
        assert [(i, e.type) for i, e in pairs] == [(1, EventType.CONTENT), (2, EventType.DONE)]

    def test_uncaught_failure_becomes_single_error(self):
        orchestrator = ScriptedOrchestrator([StreamEvent.content("a")], error=RuntimeError("db down"))
        pairs = asyncio.run(_collect(EventStreamAdapter(InMemoryPendingStore(), orchestrator)))

        types = [e.type for _, e in pairs]
        assert types == [EventType.CONTENT, EventType.ERROR]
        assert pairs[-1][1].payload == {"error": "db down"}

    def test_open_consumes_token(self):
        async def scenario():
            store = InMemoryPendingStore()
            adapter = EventStreamAdapter(store, ScriptedOrchestrator([]))
            token = await store.enqueue("conv-1", "hola")
            assert await adapter.open("conv-1", token) == "hola"
            with pytest.raises(ExpiredOrInvalidTokenError):
                await adapter.open("conv-1", token)

        asyncio.run(scenario())

    def test_disconnect_lets_turn_finish_in_background(self):
        orchestrator = ScriptedOrchestrator(
            [StreamEvent.content("a"), StreamEvent.content("b"), StreamEvent.done()], pause=0.01
        )
        adapter = EventStreamAdapter(InMemoryPendingStore(), orchestrator)

        async def scenario():
            stream = adapter.events("conv-1", "hola")
            first = await stream.__anext__()
            await stream.aclose()
            assert adapter.background_turns == 1
            await adapter.drain()
            return first

        event_id, event = asyncio.run(scenario())
        assert (event_id, event.type) == (1, EventType.CONTENT)
        assert orchestrator.completed is True
        assert orchestrator.delivered[1:] == [False, False]

    def test_disconnect_cancels_when_configured(self):
        orchestrator = ScriptedOrchestrator(
            [StreamEvent.content("a"), StreamEvent.content("b"), StreamEvent.done()], pause=0.01
        )
        adapter = EventStreamAdapter(InMemoryPendingStore(), orchestrator, cancel_on_disconnect=True)

        async def scenario():
            stream = adapter.events("conv-1", "hola")
            await stream.__anext__()
            await stream.aclose()
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert orchestrator.completed is False
        assert adapter.background_turns == 0

    def test_disconnect_policy_follows_runtime_config(self, live_config):
        adapter = EventStreamAdapter(InMemoryPendingStore(), ScriptedOrchestrator([]))
        live_config.update(cancel_turn_on_disconnect=False)
        assert adapter.cancel_on_disconnect is False
        live_config.update(cancel_turn_on_disconnect=True)
        assert adapter.cancel_on_disconnect is True

    def test_sse_stream(self):
        adapter = EventStreamAdapter(InMemoryPendingStore(), ScriptedOrchestrator([StreamEvent.content("a")]))

        async def scenario():
            return [frame async for frame in adapter.stream("conv-1", "hola")]

        frames = asyncio.run(scenario())
        assert frames[0].startswith("id: 1\n")
        assert json.loads(frames[1].split("data: ", 1)[1]) == {"type": "done"}
