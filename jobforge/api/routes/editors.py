"""Editor session endpoints.

Draft editing, validation, preview lifecycle and durable start for one
query editor, addressed by an opaque editor id chosen by the client.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status

from jobforge.api.deps import get_editor_session, get_session_registry
from jobforge.core.errors import (
    PollTimeoutError,
    PreviewCancelledError,
    PreviewNotActiveError,
    RemoteRejectedError,
    TerminalJobError,
    TransportError,
    ValidationError,
)
from jobforge.schemas.editor import CheckResponse, DraftUpdate, EditorStateResponse, RunResponse
from jobforge.schemas.job import PreviewSnapshot
from jobforge.schemas.pipeline import (
    ErrorsResult,
    GraphResult,
    LaunchOutcome,
    SinkOption,
    SourceDef,
    StartOptions,
)
from jobforge.services.editor_session import EditorSession, EditorSessionRegistry

router = APIRouter()


def _transport_exception(exc: TransportError) -> HTTPException:
    if isinstance(exc, RemoteRejectedError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.raw_message)
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Pipeline API unavailable: {exc}",
    )


def _state(session: EditorSession) -> EditorStateResponse:
    return EditorStateResponse(
        editor_id=session.editor_id,
        draft=session.draft,
        graph=session.graph,
        error=session.error,
        suggested_name=session.suggested_name,
    )


@router.get("/{editor_id}", response_model=EditorStateResponse)
async def get_editor(session: EditorSession = Depends(get_editor_session)):
    """Current draft text, last graph and last error."""
    return _state(session)


@router.post("/{editor_id}/copy/{pipeline_id}", response_model=EditorStateResponse)
async def copy_pipeline(
    editor_id: str,
    pipeline_id: str,
    registry: EditorSessionRegistry = Depends(get_session_registry),
):
    """Seed the editor with an existing pipeline's query and UDFs."""
    try:
        session = await registry.get(editor_id, copy_from=pipeline_id)
    except TransportError as exc:
        raise _transport_exception(exc)
    return _state(session)


@router.put("/{editor_id}/draft", response_model=EditorStateResponse)
async def update_draft(
    body: DraftUpdate,
    session: EditorSession = Depends(get_editor_session),
):
    if body.query is not None:
        await session.update_query(body.query)
    if body.udfs is not None:
        await session.update_udfs(body.udfs)
    return _state(session)


@router.post("/{editor_id}/check", response_model=CheckResponse)
async def check_query(session: EditorSession = Depends(get_editor_session)):
    """Validate the draft. A compiler rejection is a normal 200 response."""
    try:
        result = await session.check()
    except TransportError as exc:
        raise _transport_exception(exc)

    match result:
        case GraphResult(graph=graph):
            return CheckResponse(valid=True, graph=graph)
        case ErrorsResult(errors=errors):
            return CheckResponse(valid=False, error=result.first_message, errors=errors)


@router.post("/{editor_id}/run", response_model=RunResponse)
async def run_query(session: EditorSession = Depends(get_editor_session)):
    """Check the draft before the start dialog opens."""
    try:
        ok = await session.run()
    except TransportError as exc:
        raise _transport_exception(exc)
    return RunResponse(can_start=ok, error=session.error)


@router.get("/{editor_id}/sources", response_model=list[SourceDef])
async def list_sources(session: EditorSession = Depends(get_editor_session)):
    try:
        return await session.list_sources()
    except TransportError as exc:
        raise _transport_exception(exc)


@router.get("/{editor_id}/sinks", response_model=list[SinkOption])
async def list_sinks(session: EditorSession = Depends(get_editor_session)):
    try:
        return await session.sink_options()
    except TransportError as exc:
        raise _transport_exception(exc)


@router.post(
    "/{editor_id}/preview",
    response_model=PreviewSnapshot,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_preview(session: EditorSession = Depends(get_editor_session)):
    """Validate and launch a preview job. Output arrives via the WebSocket."""
    try:
        preview = await session.preview()
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": exc.message,
                "errors": [e.model_dump() for e in exc.errors],
            },
        )
    except PreviewCancelledError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except TransportError as exc:
        raise _transport_exception(exc)
    return preview.snapshot()


@router.get("/{editor_id}/preview", response_model=PreviewSnapshot)
async def get_preview(session: EditorSession = Depends(get_editor_session)):
    preview = session.preview_session
    if preview is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No preview")
    return preview.snapshot()


@router.post("/{editor_id}/preview/stop", response_model=PreviewSnapshot)
async def stop_preview(session: EditorSession = Depends(get_editor_session)):
    """Stop the preview job and wait until the job reports Stopped."""
    try:
        preview = await session.stop_preview()
    except PreviewNotActiveError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except PollTimeoutError as exc:
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(exc))
    except TerminalJobError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except TransportError as exc:
        raise _transport_exception(exc)
    return preview.snapshot()


@router.post("/{editor_id}/start", response_model=LaunchOutcome)
async def start_pipeline(
    body: StartOptions,
    session: EditorSession = Depends(get_editor_session),
):
    """Launch a durable pipeline. Disabled and failed launches are outcomes, not errors."""
    return await session.start(body)


@router.delete("/{editor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_editor(
    editor_id: str,
    registry: EditorSessionRegistry = Depends(get_session_registry),
):
    """Tear down the editor: cancels any in-flight preview polling or stream."""
    await registry.remove(editor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
