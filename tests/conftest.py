"""Shared test fixtures.

The remote pipeline API and Redis are mocked.
Tests never require running instances of these services.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from fakes import JOB_ID, graph_result, job_details, stream_of
from jobforge.api.deps import get_session_registry
from jobforge.core.api_client import PipelineApiClient
from jobforge.main import app
from jobforge.schemas.job import JobLifecycleState
from jobforge.services.draft_repository import InMemoryDraftRepository
from jobforge.services.editor_session import EditorSessionRegistry


@pytest.fixture
def api():
    """Mock PipelineApiClient with async remote operations."""
    mock = MagicMock(spec=PipelineApiClient)
    mock.validate_graph = AsyncMock(return_value=graph_result())
    mock.launch_job = AsyncMock(return_value=JOB_ID)
    mock.get_job_details = AsyncMock(return_value=job_details(JobLifecycleState.RUNNING))
    mock.update_job = AsyncMock(return_value=None)
    mock.get_pipeline = AsyncMock()
    mock.get_sources = AsyncMock(return_value=[])
    mock.get_sinks = AsyncMock(return_value=[])
    mock.ping = AsyncMock(return_value=True)
    mock.subscribe_outputs = MagicMock(side_effect=lambda job_id: stream_of([]))
    return mock


@pytest.fixture
def drafts():
    return InMemoryDraftRepository()


@pytest.fixture
def mock_redis():
    """In-memory Redis mock that supports get/set/delete."""
    store: dict[str, str] = {}

    redis = AsyncMock()

    async def fake_get(key: str):
        return store.get(key)

    async def fake_set(key: str, value: str, ex: int | None = None):
        store[key] = value

    async def fake_delete(*keys: str):
        return sum(1 for k in keys if store.pop(k, None) is not None)

    redis.get = AsyncMock(side_effect=fake_get)
    redis.set = AsyncMock(side_effect=fake_set)
    redis.delete = AsyncMock(side_effect=fake_delete)
    redis.ping = AsyncMock(return_value=True)
    redis._store = store
    return redis


@pytest.fixture
def registry(api, drafts):
    """Registry whose editors all share the in-memory drafts."""
    return EditorSessionRegistry(api=api, draft_factory=lambda editor_id: drafts)


@pytest.fixture
async def client(registry) -> AsyncClient:
    """Provide an httpx AsyncClient wired to the FastAPI app.

    The lifespan does not run; app state is replaced by dependency overrides.
    """
    app.dependency_overrides[get_session_registry] = lambda: registry

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.pop(get_session_registry, None)
    await registry.close_all()
