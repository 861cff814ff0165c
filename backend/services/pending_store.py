"""
Pending Message Store - staging area between "submit message" and "open stream".

A submitted message is parked under a one-time correlation token. Opening
the stream consumes the token; abandoned entries expire after a fixed TTL.

Key pattern (Redis backend): procura:pending:{token}

Usage:
    store = InMemoryPendingStore(ttl_seconds=300)
    token = await store.enqueue(conversation_id, "necesito un cable")
    text = await store.consume(token, conversation_id)   # exactly once
"""

import asyncio
import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from errors import ExpiredOrInvalidTokenError

logger = logging.getLogger(__name__)

PENDING_PREFIX = "procura:pending:"


@dataclass(frozen=True)
class PendingMessage:
    token: str
    conversation_id: str
    text: str
    enqueued_at: float


class PendingMessageStore(ABC):
    """Contract shared by the in-process and Redis-backed stores."""

    backend: str = "abstract"

    @abstractmethod
    async def enqueue(self, conversation_id: str, text: str) -> str:
        """Park ``text`` for ``conversation_id`` and return a fresh token."""

    @abstractmethod
    async def consume(self, token: str, conversation_id: str) -> str:
        """Remove and return the parked text.

        Raises:
            ExpiredOrInvalidTokenError: token unknown, already consumed,
                expired, or bound to another conversation
        """

    async def close(self) -> None:
        """Release resources held by the store."""


class InMemoryPendingStore(PendingMessageStore):
    """
    Single-process store backed by a dict.

    Enqueue, consume and eviction run on the event loop thread and never
    await between reading and removing an entry, so each token is consumed
    at most once.
    """

    backend = "memory"

    def __init__(self, ttl_seconds: float = 300, time_fn: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._time = time_fn
        self._entries: Dict[str, PendingMessage] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def enqueue(self, conversation_id: str, text: str) -> str:
        token = str(uuid.uuid4())
        self._entries[token] = PendingMessage(token, conversation_id, text, self._time())
        loop = asyncio.get_running_loop()
        self._timers[token] = loop.call_later(self.ttl_seconds, self._evict, token)
        logger.debug(f"Pending message queued: {token} (conversation={conversation_id})")
        return token

    async def consume(self, token: str, conversation_id: str) -> str:
        entry = self._entries.get(token)
        if entry is None:
            raise ExpiredOrInvalidTokenError(token)
        if self._time() - entry.enqueued_at >= self.ttl_seconds:
            self._evict(token)
            raise ExpiredOrInvalidTokenError(token, details="expired")
        if entry.conversation_id != conversation_id:
            raise ExpiredOrInvalidTokenError(token, details="conversation mismatch")

        self._evict(token)
        return entry.text

    def _evict(self, token: str) -> None:
        self._entries.pop(token, None)
        timer = self._timers.pop(token, None)
        if timer is not None:
            timer.cancel()

    async def close(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._entries.clear()


class RedisPendingStore(PendingMessageStore):
    """
    Multi-instance store. Redis owns the TTL and GETDEL makes the removal
    atomic, so two instances racing on one token cannot both win.
    """

    backend = "redis"

    def __init__(self, client: Any, ttl_seconds: int = 300):
        self.client = client
        self.ttl_seconds = int(ttl_seconds)

    def _make_key(self, token: str) -> str:
        return f"{PENDING_PREFIX}{token}"

    async def enqueue(self, conversation_id: str, text: str) -> str:
        token = str(uuid.uuid4())
        payload = json.dumps({"conversationId": conversation_id, "text": text, "enqueuedAt": time.time()})
        await self.client.set(self._make_key(token), payload, ex=self.ttl_seconds)
        return token

    async def consume(self, token: str, conversation_id: str) -> str:
        key = self._make_key(token)
        raw = await self.client.get(key)
        if raw is None:
            raise ExpiredOrInvalidTokenError(token)

        data = json.loads(raw)
        if data.get("conversationId") != conversation_id:
            raise ExpiredOrInvalidTokenError(token, details="conversation mismatch")

        # Another consumer may have taken it between GET and GETDEL
        if await self.client.getdel(key) is None:
            raise ExpiredOrInvalidTokenError(token)
        return data["text"]


async def build_pending_store(config, redis_manager: Optional[Any] = None) -> PendingMessageStore:
    """Pick the store for this process from ``config.pending_backend``.

    Falls back to the in-process store when Redis is requested but
    unreachable, and logs the downgrade.
    """
    if config.pending_backend == "redis" and redis_manager is not None:
        if await redis_manager.connect():
            return RedisPendingStore(redis_manager.client, ttl_seconds=config.pending_ttl_seconds)
        logger.warning("Pending store: Redis unavailable, using in-memory store (single instance only)")
    return InMemoryPendingStore(ttl_seconds=config.pending_ttl_seconds)
