"""Tests for the preview snapshot WebSocket."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from fakes import output
from jobforge.api.deps import get_session_registry
from jobforge.main import app
from jobforge.schemas.job import JobLifecycleState
from jobforge.services.preview_session import PreviewSession

URL = "/ws/editors/ed-1/preview"


@pytest.fixture
def preview() -> PreviewSession:
    session = PreviewSession()
    session.begin_validation()
    session.assign_job_id("job_1")
    session.observe_status(JobLifecycleState.RUNNING)
    session.open_stream()
    return session


@pytest.fixture
def ws_client(preview):
    editor = SimpleNamespace(preview_session=preview)
    registry = MagicMock()
    registry.get = AsyncMock(return_value=editor)
    app.dependency_overrides[get_session_registry] = lambda: registry
    yield TestClient(app), editor
    app.dependency_overrides.pop(get_session_registry, None)


def test_pushes_current_snapshot_on_connect(ws_client):
    client, _ = ws_client

    with client.websocket_connect(URL) as ws:
        message = ws.receive_json()

    assert message["type"] == "preview"
    assert message["data"]["job_id"] == "job_1"
    assert message["data"]["phase"] == "streaming"
    assert message["data"]["active"] is True


def test_pushes_again_when_session_changes(ws_client, preview):
    client, _ = ws_client

    with client.websocket_connect(URL) as ws:
        assert ws.receive_json()["data"]["outputs"] == []

        preview.append_output(output(1))
        message = ws.receive_json()

    assert [r["sequence_id"] for r in message["data"]["outputs"]] == [1]


def test_pushes_replacement_session(ws_client):
    client, editor = ws_client

    with client.websocket_connect(URL) as ws:
        ws.receive_json()

        replacement = PreviewSession()
        replacement.begin_validation()
        editor.preview_session = replacement
        message = ws.receive_json()

    assert message["data"]["phase"] == "validating"
    assert message["data"]["job_id"] is None


def test_ping_pong(ws_client):
    client, _ = ws_client

    with client.websocket_connect(URL) as ws:
        ws.receive_json()
        ws.send_json({"action": "ping"})
        assert ws.receive_json() == {"type": "pong"}

        ws.send_json({"action": "dance"})
        assert ws.receive_json()["type"] == "error"


def test_no_message_before_a_preview_exists():
    editor = SimpleNamespace(preview_session=None)
    registry = MagicMock()
    registry.get = AsyncMock(return_value=editor)
    app.dependency_overrides[get_session_registry] = lambda: registry
    try:
        with TestClient(app).websocket_connect(URL) as ws:
            ws.send_json({"action": "ping"})
            assert ws.receive_json() == {"type": "pong"}
    finally:
        app.dependency_overrides.pop(get_session_registry, None)
