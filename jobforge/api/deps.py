"""Dependency injection for FastAPI routes.

All services are provided via Depends() from this module.
Route handlers never instantiate services directly.
"""

from fastapi import Depends
from redis.asyncio import Redis
from starlette.requests import HTTPConnection

from jobforge.core.api_client import PipelineApiClient
from jobforge.core.redis import get_redis as _get_redis
from jobforge.services.editor_session import EditorSession, EditorSessionRegistry


async def get_redis() -> Redis:
    """Provide the Redis client."""
    return await _get_redis()


async def get_api_client(conn: HTTPConnection) -> PipelineApiClient:
    """Return the shared remote API client from app state."""
    return conn.app.state.api_client


async def get_session_registry(conn: HTTPConnection) -> EditorSessionRegistry:
    """Return the editor session registry from app state.

    Takes an HTTPConnection so WebSocket routes can depend on it too.
    """
    return conn.app.state.session_registry


async def get_editor_session(
    editor_id: str,
    registry: EditorSessionRegistry = Depends(get_session_registry),
) -> EditorSession:
    return await registry.get(editor_id)
