"""WebSocket endpoint pushing preview session snapshots.

The preview session is owned by the orchestrator; this endpoint only reads
it. A snapshot is sent whenever the session's version changes or a new
session replaces the old one.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from jobforge.api.deps import get_session_registry
from jobforge.services.editor_session import EditorSessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter()

# How often to check the session for changes (seconds)
PUSH_INTERVAL = 0.25


@router.websocket("/ws/editors/{editor_id}/preview")
async def preview_updates(
    websocket: WebSocket,
    editor_id: str,
    registry: EditorSessionRegistry = Depends(get_session_registry),
):
    """Stream {"type": "preview", "data": PreviewSnapshot} messages.

    Clients may send {"action": "ping"} and receive {"type": "pong"}.
    """
    await websocket.accept()
    session = await registry.get(editor_id)

    last_preview = None
    last_version = -1
    try:
        while True:
            preview = session.preview_session
            if preview is not None and (
                preview is not last_preview or preview.version != last_version
            ):
                # Read the version first; the snapshot may include later changes
                version = preview.version
                await websocket.send_json(
                    {"type": "preview", "data": preview.snapshot().model_dump(mode="json")}
                )
                last_preview, last_version = preview, version

            try:
                msg = await asyncio.wait_for(
                    websocket.receive_json(), timeout=PUSH_INTERVAL
                )
            except asyncio.TimeoutError:
                continue

            if isinstance(msg, dict) and msg.get("action") == "ping":
                await websocket.send_json({"type": "pong"})
            else:
                await websocket.send_json({"type": "error", "detail": "Unknown action"})

    except WebSocketDisconnect:
        logger.info("Preview WebSocket for editor %s disconnected", editor_id)
    except Exception:
        logger.exception("Preview WebSocket error for editor %s", editor_id)
