"""
Procura Services - collaborators consumed by the conversation core.

- database: conversation/message/user/request persistence
- pending_store: one-time correlation tokens with TTL (memory or Redis)
- redis_client: Redis connection manager with health checks
- llm_client: streamed chat completions over the OpenAI SDK
- email: one-time code delivery (Courier)
- knowledge: policy document search
- catalog: product search and ranking (Suconel)
"""

from .redis_client import RedisManager
from .pending_store import PendingMessageStore, InMemoryPendingStore, RedisPendingStore, build_pending_store

__all__ = [
    "RedisManager",
    "PendingMessageStore",
    "InMemoryPendingStore",
    "RedisPendingStore",
    "build_pending_store",
]
