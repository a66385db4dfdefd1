"""Editor Session: per-editor state tying drafts, validation, preview and launch.

One EditorSession backs one query editor. The registry keeps them by editor
id for the HTTP surface and tears them down on shutdown.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from jobforge.core.api_client import PipelineApiClient
from jobforge.core.errors import (
    PreviewNotActiveError,
    RemoteRejectedError,
    TransportError,
    ValidationError,
)
from jobforge.schemas.pipeline import (
    BuiltinKind,
    BuiltinSink,
    ErrorsResult,
    GraphResult,
    JobGraph,
    LaunchOutcome,
    NamedSink,
    QueryDraft,
    SinkOption,
    SourceDef,
    StartOptions,
    ValidationResult,
)
from jobforge.services.draft_repository import QUERY_KEY, UDF_KEY, DraftRepository
from jobforge.services.pipeline_launcher import FALLBACK_ERROR_MESSAGE, PipelineLauncher
from jobforge.services.preview_orchestrator import PreviewOrchestrator
from jobforge.services.preview_session import PreviewSession
from jobforge.services.query_validator import QueryValidator
from jobforge.services.stop_controller import StopController

logger = structlog.stdlib.get_logger(__name__)

BUILTIN_SINK_OPTIONS = [
    SinkOption(label="Web", selection=BuiltinSink(value=BuiltinKind.WEB)),
    SinkOption(label="Log", selection=BuiltinSink(value=BuiltinKind.LOG)),
    SinkOption(label="Null", selection=BuiltinSink(value=BuiltinKind.NULL)),
]


class EditorSession:
    """State behind one query editor."""

    def __init__(
        self,
        editor_id: str,
        api: PipelineApiClient,
        drafts: DraftRepository,
        *,
        validator: QueryValidator | None = None,
        orchestrator: PreviewOrchestrator | None = None,
        stopper: StopController | None = None,
        launcher: PipelineLauncher | None = None,
    ):
        self.editor_id = editor_id
        self._api = api
        self._drafts = drafts
        self._validator = validator or QueryValidator(api)
        self._orchestrator = orchestrator or PreviewOrchestrator(
            api, self._validator, editor_id=editor_id
        )
        self._stopper = stopper or StopController(api)
        self._launcher = launcher or PipelineLauncher(api, drafts)

        self.query = ""
        self.udfs = ""
        self.graph: JobGraph | None = None
        self.error: str | None = None
        self.suggested_name: str | None = None
        self._loaded = False
        self._load_lock = asyncio.Lock()

    @property
    def draft(self) -> QueryDraft:
        return QueryDraft(query=self.query, udfs=self.udfs)

    @property
    def preview_session(self) -> PreviewSession | None:
        return self._orchestrator.session

    async def load(self, copy_from: str | None = None) -> QueryDraft:
        """Seed the editor from an existing pipeline, or from saved drafts.

        Copying does not overwrite the saved drafts until the user edits.
        """
        if copy_from is not None:
            pipeline = await self._api.get_pipeline(copy_from)
            self.query = pipeline.definition
            self.udfs = pipeline.udfs[0].definition if pipeline.udfs else ""
            self.suggested_name = f"{pipeline.name}-copy"
            logger.info("editor_copied_pipeline", editor_id=self.editor_id, source=copy_from)
        else:
            saved_query = await self._drafts.get(QUERY_KEY)
            saved_udfs = await self._drafts.get(UDF_KEY)
            if saved_query is not None:
                self.query = saved_query
            if saved_udfs is not None:
                self.udfs = saved_udfs
        self._loaded = True
        return self.draft

    async def ensure_loaded(self, copy_from: str | None = None) -> QueryDraft:
        """Load from drafts once, or from a pipeline whenever a copy is asked for."""
        async with self._load_lock:
            if copy_from is not None or not self._loaded:
                await self.load(copy_from)
            return self.draft

    async def update_query(self, text: str) -> None:
        await self._drafts.set(QUERY_KEY, text)
        self.query = text

    async def update_udfs(self, text: str) -> None:
        await self._drafts.set(UDF_KEY, text)
        self.udfs = text

    async def check(self) -> ValidationResult:
        """Validate the current text. The graph is only set by a GraphResult."""
        self.graph = None
        self.error = None
        result = await self._validator.validate(self.query, self.udfs)
        match result:
            case GraphResult(graph=graph):
                self.graph = graph
            case ErrorsResult():
                self.error = result.first_message
        return result

    async def run(self) -> bool:
        """Check before opening the start dialog. True when start may proceed."""
        result = await self.check()
        return isinstance(result, GraphResult)

    async def list_sources(self) -> list[SourceDef]:
        return await self._api.get_sources()

    async def sink_options(self) -> list[SinkOption]:
        """Builtin sinks first, then user-defined sinks in remote order."""
        sinks = await self._api.get_sinks()
        return [
            *BUILTIN_SINK_OPTIONS,
            *(SinkOption(label=s.name, selection=NamedSink(name=s.name)) for s in sinks),
        ]

    async def preview(self) -> PreviewSession:
        """Start (or restart) a preview of the current text."""
        self.error = None
        try:
            session = await self._orchestrator.start_preview(self.query, self.udfs)
        except ValidationError as exc:
            self.graph = None
            self.error = exc.message
            raise
        except RemoteRejectedError as exc:
            self.error = exc.raw_message
            raise
        except TransportError:
            self.error = FALLBACK_ERROR_MESSAGE
            raise
        self.graph = session.graph
        return session

    async def stop_preview(self) -> PreviewSession:
        session = self._orchestrator.session
        if session is None or session.job_id is None:
            raise PreviewNotActiveError(f"Editor {self.editor_id} has no preview job")
        await self._stopper.stop_preview(session)
        return session

    async def start(self, options: StartOptions) -> LaunchOutcome:
        return await self._launcher.start(options, self.query, self.udfs)

    async def close(self) -> None:
        await self._orchestrator.close()


class EditorSessionRegistry:
    """Editor sessions by id. Sessions are loaded from drafts on first use."""

    def __init__(
        self,
        api: PipelineApiClient,
        draft_factory: Callable[[str], DraftRepository],
    ):
        self._api = api
        self._draft_factory = draft_factory
        self._sessions: dict[str, EditorSession] = {}
        self._lock = asyncio.Lock()

    async def get(self, editor_id: str, copy_from: str | None = None) -> EditorSession:
        # Only the dict is guarded here; loading holds the session's own lock
        async with self._lock:
            session = self._sessions.get(editor_id)
            if session is None:
                session = EditorSession(editor_id, self._api, self._draft_factory(editor_id))
                self._sessions[editor_id] = session
                logger.info("editor_session_opened", editor_id=editor_id)
        await session.ensure_loaded(copy_from)
        return session

    async def remove(self, editor_id: str) -> None:
        async with self._lock:
            session = self._sessions.pop(editor_id, None)
        if session is not None:
            await session.close()
            logger.info("editor_session_closed", editor_id=editor_id)

    async def close_all(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            await session.close()

    def __len__(self) -> int:
        return len(self._sessions)
