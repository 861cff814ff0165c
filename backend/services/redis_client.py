"""
Redis Connection Manager - shared store for multi-instance deployments.

Provides:
- Async connection with a ping on connect
- Health check with latency
- Clean shutdown

Usage:
    manager = RedisManager(url=runtime_config.redis_url)
    if await manager.connect():
        store = RedisPendingStore(manager.client, ttl_seconds=300)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import redis.asyncio as redis_async

logger = logging.getLogger(__name__)


@dataclass
class RedisManager:
    """
    Redis connection manager.

    ``connect`` never raises: it reports whether Redis is reachable so the
    caller can pick an in-process store instead.
    """

    url: str = "redis://localhost:6379/0"

    _client: Any = field(default=None, repr=False)
    _available: bool = field(default=False, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def available(self) -> bool:
        return self._available

    @property
    def client(self) -> Optional[Any]:
        return self._client if self._available else None

    async def connect(self) -> bool:
        """
        Establish Redis connection.

        Returns:
            True if connected, False if Redis could not be reached
        """
        async with self._lock:
            if self._available:
                return True

            try:
                self._client = redis_async.from_url(
                    self.url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5.0,
                    socket_timeout=5.0,
                )
                await self._client.ping()
                self._available = True
                logger.info(f"Redis connected: {self.url}")
                return True
            except (redis_async.RedisError, OSError) as e:
                logger.warning(f"Redis connection failed: {e}")
                self._client = None
                self._available = False
                return False

    async def disconnect(self) -> None:
        """Close Redis connection."""
        async with self._lock:
            if self._client:
                try:
                    await self._client.aclose()
                except (redis_async.RedisError, OSError) as e:
                    logger.warning(f"Error closing Redis: {e}")
                finally:
                    self._client = None
                    self._available = False

    async def health_check(self) -> Dict[str, Any]:
        """
        Check Redis health status.

        Returns:
            Dict with status and latency info
        """
        if not self._client:
            return {"status": "disconnected"}

        try:
            loop = asyncio.get_running_loop()
            start = loop.time()
            await self._client.ping()
            latency_ms = (loop.time() - start) * 1000
            return {"status": "connected", "latency_ms": round(latency_ms, 2)}
        except (redis_async.RedisError, OSError) as e:
            logger.warning(f"Redis health check failed: {e}")
            return {"status": "error", "error": str(e)}
