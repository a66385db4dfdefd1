"""Pydantic schemas for job status, output records and preview snapshots."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class JobLifecycleState(str, Enum):
    CREATED = "Created"
    COMPILING = "Compiling"
    SCHEDULING = "Scheduling"
    RUNNING = "Running"
    CHECKPOINTING = "Checkpointing"
    RESCALING = "Rescaling"
    RECOVERING = "Recovering"
    RESTARTING = "Restarting"
    STOPPING = "Stopping"
    STOPPED = "Stopped"
    FINISHING = "Finishing"
    FINISHED = "Finished"
    FAILED = "Failed"


TERMINAL_STATES = frozenset(
    {JobLifecycleState.STOPPED, JobLifecycleState.FINISHED, JobLifecycleState.FAILED}
)


class StopMode(str, Enum):
    IMMEDIATE = "immediate"
    GRACEFUL = "graceful"


class JobStatus(BaseModel):
    model_config = ConfigDict(extra="allow")

    state: JobLifecycleState
    failure_message: str | None = None
    start_time: str | None = None
    finish_time: str | None = None


class JobDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    job_id: str
    job_status: JobStatus


class OutputData(BaseModel):
    """One message from a job's output subscription. Unknown fields are kept."""

    model_config = ConfigDict(extra="allow")

    operator_id: str = ""
    timestamp: int = 0
    key: str = ""
    value: str = ""


class OutputRecord(BaseModel):
    sequence_id: int = Field(ge=1)
    payload: OutputData


class PreviewPhase(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    STARTING = "starting"
    AWAITING_RUNNING = "awaiting_running"
    STREAMING = "streaming"
    TERMINATED = "terminated"


class PreviewOutcome(str, Enum):
    FINISHED = "finished"
    STOPPED = "stopped"
    FAILED = "failed"
    STREAM_ERROR = "stream_error"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class PreviewSnapshot(BaseModel):
    """Read-only view of a preview session for displays."""

    job_id: str | None = None
    status: JobLifecycleState | None = None
    phase: PreviewPhase
    outcome: PreviewOutcome | None = None
    active: bool = False
    stopping: bool = False
    error: str | None = None
    outputs: list[OutputRecord] = []
    version: int = 0
