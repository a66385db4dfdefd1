"""Pydantic schemas for queries, validation results, sinks and launches."""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from jobforge.core.config import settings


class UdfLanguage(str, Enum):
    RUST = "rust"


class UdfDefinition(BaseModel):
    language: UdfLanguage = UdfLanguage.RUST
    definition: str = ""


class QueryDraft(BaseModel):
    """Editor text persisted across reloads."""

    query: str = ""
    udfs: str = ""


class JobNode(BaseModel):
    model_config = ConfigDict(extra="allow")

    node_id: str
    operator: str
    parallelism: int = 1


class JobEdge(BaseModel):
    model_config = ConfigDict(extra="allow")

    src_id: str
    dest_id: str
    key_type: str = ""
    value_type: str = ""
    edge_type: str = ""


class JobGraph(BaseModel):
    """Compiled pipeline topology, as returned by the compiler."""

    nodes: list[JobNode] = []
    edges: list[JobEdge] = []


class ErrorMessage(BaseModel):
    message: str


class GraphResult(BaseModel):
    kind: Literal["graph"] = "graph"
    graph: JobGraph


class ErrorsResult(BaseModel):
    kind: Literal["errors"] = "errors"
    errors: list[ErrorMessage] = Field(min_length=1)

    @property
    def first_message(self) -> str:
        """The message shown to the user. The rest are kept for completeness."""
        return self.errors[0].message


ValidationResult = Annotated[GraphResult | ErrorsResult, Field(discriminator="kind")]


class BuiltinKind(str, Enum):
    WEB = "web"
    LOG = "log"
    NULL = "null"


class BuiltinSink(BaseModel):
    kind: Literal["builtin"] = "builtin"
    value: BuiltinKind


class NamedSink(BaseModel):
    """A user-defined sink, referenced by name."""

    kind: Literal["named"] = "named"
    name: str = Field(min_length=1)


SinkSelection = Annotated[BuiltinSink | NamedSink, Field(discriminator="kind")]


class SinkOption(BaseModel):
    label: str
    selection: SinkSelection


class SinkDef(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str


class SourceDef(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    connector: str | None = None


class PipelineDef(BaseModel):
    """An existing pipeline, used to seed the editor when copying."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    definition: str = ""
    udfs: list[UdfDefinition] = []


class StartOptions(BaseModel):
    name: str = ""
    sink: SinkSelection | None = None
    parallelism: int = Field(
        default_factory=lambda: settings.launcher.default_parallelism, ge=1
    )
    checkpoint_interval_ms: int = Field(
        default_factory=lambda: settings.launcher.default_checkpoint_interval_ms, ge=1
    )


class LaunchRequest(BaseModel):
    """Body of a job launch, preview or durable."""

    name: str
    query: str
    udfs: list[UdfDefinition]
    sink: SinkSelection
    preview: bool = False
    parallelism: int | None = None
    checkpoint_interval_ms: int | None = None


class LaunchStatus(str, Enum):
    DISABLED = "disabled"
    LAUNCHED = "launched"
    FAILED = "failed"


class LaunchOutcome(BaseModel):
    status: LaunchStatus
    job_id: str | None = None
    redirect_to: str | None = None
    error: str | None = None
