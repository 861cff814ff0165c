"""
Shared pytest fixtures for the Procura backend tests.

Collaborators are replaced with in-process fakes:
- FakeLLMClient: replays scripted rounds of ChatFragments
- RecordingEmailService: keeps sent messages instead of delivering them
- FakeRedis: the handful of commands RedisPendingStore uses
"""

import asyncio
import copy
from dataclasses import fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from config import runtime_config
from models import Conversation
from services.database import InMemoryDatabase, seed_users
from services.email import EmailService
from services.llm_client import ChatFragment, ToolCallFragment

FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fragment builders
# ---------------------------------------------------------------------------

def text(content: str) -> ChatFragment:
    return ChatFragment(content=content)


def call(index: int, id: Optional[str] = None, name: Optional[str] = None, arguments: str = "") -> ChatFragment:
    return ChatFragment(tool_calls=[ToolCallFragment(index=index, id=id, name=name, arguments=arguments)])


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeLLMClient:
    """Streams one scripted round per ``stream_chat`` call.

    A round is a list of ChatFragments; an Exception in the list is raised
    at that point of the stream.
    """

    model = "fake-model"

    def __init__(self, rounds: Optional[List[List[Any]]] = None):
        self.rounds = list(rounds or [])
        self.calls: List[Dict[str, Any]] = []

    async def stream_chat(self, messages, tools=None):
        self.calls.append({"messages": copy.deepcopy(messages), "tools": tools})
        script = self.rounds.pop(0) if self.rounds else [text("ok")]
        for item in script:
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self):
        pass


class RecordingEmailService(EmailService):
    def __init__(self, error: Optional[Exception] = None):
        self.sent: List[Dict[str, Any]] = []
        self.error = error

    async def send(self, address: str, template: str, data: Dict[str, Any]) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append({"address": address, "template": template, "data": data})


class FakeRedis:
    """In-memory subset of redis.asyncio.Redis (SET ex, GET, GETDEL)."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.expiry: Dict[str, int] = {}

    async def set(self, key, value, ex=None):
        self.store[key] = value
        if ex is not None:
            self.expiry[key] = ex
        return True

    async def get(self, key):
        return self.store.get(key)

    async def getdel(self, key):
        self.expiry.pop(key, None)
        return self.store.pop(key, None)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def db():
    """Database seeded with the default identities (Olvadis, Monica)."""
    database = InMemoryDatabase()
    asyncio.run(seed_users(database))
    return database


@pytest.fixture
def conversation(db) -> Conversation:
    return asyncio.run(db.create_conversation())


@pytest.fixture
def email():
    return RecordingEmailService()


@pytest.fixture
def live_config():
    """The runtime_config singleton, restored after the test."""
    saved = {f.name: getattr(runtime_config, f.name) for f in fields(runtime_config) if not f.name.startswith("_")}
    yield runtime_config
    for name, value in saved.items():
        setattr(runtime_config, name, value)
