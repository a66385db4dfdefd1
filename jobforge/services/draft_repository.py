"""Draft repository: persists editor query and UDF text across reloads.

Two keys per editor: QUERY_KEY and UDF_KEY. Values are raw text, the empty
string included. Drafts are a convenience: storage errors are logged and
never raised, so a Redis outage never blocks editing.
"""

from typing import Protocol

import structlog
from redis.asyncio import Redis

from jobforge.core.config import settings
from jobforge.core.metrics import draft_operations_total

logger = structlog.stdlib.get_logger(__name__)

QUERY_KEY = "query"
UDF_KEY = "udf"


class DraftRepository(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, text: str) -> None: ...

    async def clear(self, key: str) -> None: ...


class InMemoryDraftRepository:
    """Process-local drafts, for tests and single-process development."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._drafts: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._drafts.get(key)

    async def set(self, key: str, text: str) -> None:
        self._drafts[key] = text

    async def clear(self, key: str) -> None:
        self._drafts.pop(key, None)


class RedisDraftRepository:
    """Drafts stored in Redis under {prefix}{editor_id}:{key}, without expiry."""

    def __init__(self, redis: Redis, editor_id: str, prefix: str | None = None):
        self._redis = redis
        self._editor_id = editor_id
        self._prefix = prefix if prefix is not None else settings.redis.draft_key_prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{self._editor_id}:{key}"

    async def get(self, key: str) -> str | None:
        """Read a draft. Returns None when absent or on error."""
        try:
            raw = await self._redis.get(self._key(key))
        except Exception:
            draft_operations_total.labels(operation="get", status="error").inc()
            logger.warning("draft_read_failed", key=self._key(key), exc_info=True)
            return None
        draft_operations_total.labels(
            operation="get", status="hit" if raw is not None else "miss"
        ).inc()
        if isinstance(raw, bytes):
            return raw.decode()
        return raw

    async def set(self, key: str, text: str) -> None:
        """Write a draft. Errors are logged, never raised."""
        try:
            await self._redis.set(self._key(key), text)
            draft_operations_total.labels(operation="set", status="ok").inc()
        except Exception:
            draft_operations_total.labels(operation="set", status="error").inc()
            logger.warning("draft_write_failed", key=self._key(key), exc_info=True)

    async def clear(self, key: str) -> None:
        try:
            await self._redis.delete(self._key(key))
            draft_operations_total.labels(operation="clear", status="ok").inc()
        except Exception:
            draft_operations_total.labels(operation="clear", status="error").inc()
            logger.warning("draft_clear_failed", key=self._key(key), exc_info=True)
