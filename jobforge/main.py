"""jobforge FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jobforge.api.routes import editors, health, metrics, ws
from jobforge.core.api_client import get_api_client
from jobforge.core.config import settings
from jobforge.core.logging_config import configure_logging
from jobforge.core.metrics import app_info
from jobforge.core.middleware import ObservabilityMiddleware
from jobforge.core.redis import close_redis, get_redis
from jobforge.services.draft_repository import RedisDraftRepository
from jobforge.services.editor_session import EditorSessionRegistry

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle events."""
    app_info.info({"version": "0.1.0", "env": settings.app_env})

    api_client = get_api_client()
    app.state.api_client = api_client

    redis = await get_redis()
    app.state.session_registry = EditorSessionRegistry(
        api=api_client,
        draft_factory=lambda editor_id: RedisDraftRepository(redis, editor_id),
    )

    yield

    # Shutdown: cancel preview tasks before closing the clients they use
    await app.state.session_registry.close_all()
    await api_client.aclose()
    await close_redis()


app = FastAPI(
    title="jobforge",
    description="Query editor backend: validate, preview and launch streaming SQL pipelines",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes: all REST under /api/v1/
app.include_router(health.router, tags=["health"])
app.include_router(editors.router, prefix="/api/v1/editors", tags=["editors"])
app.include_router(ws.router, tags=["websocket"])
app.include_router(metrics.router, tags=["metrics"])
