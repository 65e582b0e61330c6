"""
Redis service backing the Luna engine's persisted state.

The engine's save/load cycle is synchronous, so PersistenceAdapter talks to
the sync client (get_sync/set_sync). Async variants exist for host
applications that read the same record from an event loop.

When Redis is unreachable every call degrades to a miss (None/False);
PersistenceAdapter then falls back to defaults and logs the failure.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import ssl
from collections import deque
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

import redis
import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


class StateJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for engine records that handles:
    - dataclasses → dict via to_dict() when available, else dataclasses.asdict()
    - datetime/date → .isoformat()
    - timedelta → total seconds
    - Enum → .value
    - set/frozenset/deque/tuple → list

    Anything else falls back to str() and never raises.
    """

    def default(self, obj: Any) -> Any:
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            to_dict = getattr(obj, "to_dict", None)
            return to_dict() if callable(to_dict) else dataclasses.asdict(obj)

        if isinstance(obj, (datetime, date)):
            return obj.isoformat()

        if isinstance(obj, timedelta):
            return obj.total_seconds()

        if isinstance(obj, Enum):
            return obj.value

        if isinstance(obj, (set, frozenset)):
            return sorted(obj, key=str)

        if isinstance(obj, deque):
            return list(obj)

        try:
            return str(obj)
        except Exception:  # Intentional catch-all: JSON encoder last-resort fallback, must never raise
            return f"<non-serializable: {type(obj).__name__}>"


def dumps(value: Any) -> str:
    return json.dumps(value, cls=StateJSONEncoder)


class RedisService:
    """Redis-backed key-value store for the engine record.

    Args:
        url: Redis URL; defaults to REDIS_URL or redis://localhost:6379/0
    """

    def __init__(self, url: str | None = None) -> None:
        self._url = url or os.environ.get("REDIS_URL", DEFAULT_REDIS_URL)
        self._client: aioredis.Redis | None = None
        self._sync_client: redis.Redis | None = None

    @staticmethod
    def _tls_kwargs(redis_url: str) -> dict[str, Any]:
        """Build TLS keyword arguments when using rediss:// URLs."""
        if not redis_url.startswith("rediss://"):
            return {}

        cert_path = os.environ.get("REDIS_TLS_CERT_PATH")
        if cert_path:
            ssl_ctx = ssl.create_default_context(cafile=cert_path)
        else:
            ssl_ctx = ssl.create_default_context()
        ssl_ctx.check_hostname = True
        ssl_ctx.verify_mode = ssl.CERT_REQUIRED
        return {"ssl": ssl_ctx}

    # -------------------------------------------------------------------------
    # Clients
    # -------------------------------------------------------------------------

    def _get_sync_client(self) -> redis.Redis | None:
        """Get or create the synchronous client, None if Redis is unreachable."""
        if self._sync_client is None:
            try:
                client = redis.from_url(  # type: ignore[no-untyped-call]
                    self._url,
                    decode_responses=True,
                    **self._tls_kwargs(self._url),
                )
                client.ping()
            except redis.RedisError as exc:
                logger.warning("Redis unavailable at %s: %s", self._url, exc)
                return None
            self._sync_client = client
        return self._sync_client

    async def _ensure_async_client(self) -> aioredis.Redis | None:
        """Get or create the async client, None if Redis is unreachable."""
        if self._client is None:
            try:
                client = aioredis.from_url(  # type: ignore[no-untyped-call]
                    self._url,
                    decode_responses=True,
                    **self._tls_kwargs(self._url),
                )
                await client.ping()
            except redis.RedisError as exc:
                logger.warning("Redis unavailable at %s: %s", self._url, exc)
                return None
            self._client = client
        return self._client

    async def close(self) -> None:
        """Close both clients."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._sync_client is not None:
            self._sync_client.close()
            self._sync_client = None

    # -------------------------------------------------------------------------
    # Sync API (used by PersistenceAdapter)
    # -------------------------------------------------------------------------

    def get_sync(self, key: str) -> str | None:
        """Get the raw JSON string stored under key."""
        client = self._get_sync_client()
        if client is None:
            return None
        result = client.get(key)
        return str(result) if result is not None else None

    def set_sync(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """JSON-encode value and store it, with optional TTL (seconds)."""
        client = self._get_sync_client()
        if client is None:
            return False
        if ttl:
            return bool(client.setex(key, ttl, dumps(value)))
        return bool(client.set(key, dumps(value)))

    def delete_sync(self, key: str) -> bool:
        client = self._get_sync_client()
        if client is None:
            return False
        return bool(client.delete(key))

    # -------------------------------------------------------------------------
    # Async API
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        client = await self._ensure_async_client()
        if client is None:
            return None
        result = await client.get(key)
        return str(result) if result is not None else None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        client = await self._ensure_async_client()
        if client is None:
            return False
        if ttl:
            return bool(await client.setex(key, ttl, dumps(value)))
        return bool(await client.set(key, dumps(value)))

    async def delete(self, key: str) -> bool:
        client = await self._ensure_async_client()
        if client is None:
            return False
        return bool(await client.delete(key))


# Singleton instance
_redis_service: RedisService | None = None


def get_redis_service() -> RedisService:
    """Get Redis service singleton."""
    global _redis_service
    if _redis_service is None:
        _redis_service = RedisService()
    return _redis_service
