"""Preview session state shared by the orchestrator and the stop controller.

The orchestrator is the only writer of the phase and the output buffer.
The stop controller only touches the stop flags, status and active.
Every mutation bumps `version` so observers can push on change.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator

from jobforge.schemas.job import (
    JobLifecycleState,
    OutputData,
    OutputRecord,
    PreviewOutcome,
    PreviewPhase,
    PreviewSnapshot,
)
from jobforge.schemas.pipeline import JobGraph

OUTPUT_BUFFER_LIMIT = 100

_LIVE_PHASES = frozenset(
    {
        PreviewPhase.VALIDATING,
        PreviewPhase.STARTING,
        PreviewPhase.AWAITING_RUNNING,
        PreviewPhase.STREAMING,
    }
)


class OutputBuffer:
    """Bounded FIFO of output records with never-reused sequence ids."""

    __slots__ = ("_records", "_next_id")

    def __init__(self, limit: int = OUTPUT_BUFFER_LIMIT):
        self._records: deque[OutputRecord] = deque(maxlen=limit)
        self._next_id = 1

    def append(self, payload: OutputData) -> OutputRecord:
        """Append with the next sequence id, evicting the oldest when full."""
        record = OutputRecord(sequence_id=self._next_id, payload=payload)
        self._next_id += 1
        self._records.append(record)
        return record

    @property
    def limit(self) -> int:
        return self._records.maxlen or 0

    @property
    def last_sequence_id(self) -> int:
        """Highest id handed out so far; 0 before the first record."""
        return self._next_id - 1

    def records(self) -> list[OutputRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[OutputRecord]:
        return iter(self._records)


class PreviewSession:
    """One ephemeral preview job: id, lifecycle status and buffered output."""

    def __init__(self) -> None:
        self._job_id: str | None = None
        self.status: JobLifecycleState | None = None
        self.phase = PreviewPhase.IDLE
        self.outcome: PreviewOutcome | None = None
        self.outputs = OutputBuffer()
        self.active = False
        self.graph: JobGraph | None = None
        self.error: str | None = None
        self.stopping = False
        self.stop_requested = False
        self.running_observed = False
        self.stop_confirmed = False
        self.version = 0

    @property
    def job_id(self) -> str | None:
        return self._job_id

    @property
    def is_live(self) -> bool:
        """True while the orchestrator still has work pending for this session."""
        return self.phase in _LIVE_PHASES

    def _touch(self) -> None:
        self.version += 1

    def _require_open(self, transition: str) -> None:
        if self.phase is PreviewPhase.TERMINATED:
            raise RuntimeError(f"Preview session already terminated, refusing {transition}")

    # --- orchestrator transitions ---

    def begin_validation(self) -> None:
        self.phase = PreviewPhase.VALIDATING
        self._touch()

    def reject(self, error: str, graph: JobGraph | None = None) -> None:
        """Validation failed or never ran; no job was launched."""
        if self.phase is PreviewPhase.TERMINATED:
            return
        self.phase = PreviewPhase.IDLE
        self.error = error
        self.graph = graph
        self._touch()

    def begin_launch(self, graph: JobGraph) -> None:
        self._require_open("begin_launch")
        self.phase = PreviewPhase.STARTING
        self.graph = graph
        self._touch()

    def assign_job_id(self, job_id: str) -> None:
        self._require_open("assign_job_id")
        if self._job_id is not None:
            raise RuntimeError(
                f"Preview session already bound to job {self._job_id}, refusing {job_id}"
            )
        self._job_id = job_id
        self.phase = PreviewPhase.AWAITING_RUNNING
        self._touch()

    def observe_status(self, state: JobLifecycleState) -> None:
        self._require_open("observe_status")
        self.status = state
        if state is JobLifecycleState.RUNNING:
            self.running_observed = True
        self._touch()

    def open_stream(self) -> None:
        self._require_open("open_stream")
        if not self.running_observed:
            raise RuntimeError("Output stream opened before the job was observed running")
        self.phase = PreviewPhase.STREAMING
        # A confirmed stop wins over a stale Running observation
        if not self.stop_confirmed:
            self.active = True
        self._touch()

    def append_output(self, payload: OutputData) -> OutputRecord:
        if self.phase is not PreviewPhase.STREAMING:
            raise RuntimeError(f"Output received in phase {self.phase.value}")
        record = self.outputs.append(payload)
        self._touch()
        return record

    def terminate(self, outcome: PreviewOutcome, error: str | None = None) -> None:
        """Final transition. The buffer is kept for display."""
        if self.phase is PreviewPhase.TERMINATED:
            return
        self.phase = PreviewPhase.TERMINATED
        self.outcome = outcome
        self.active = False
        if error is not None:
            self.error = error
        self._touch()

    # --- stop controller transitions ---

    def begin_stop(self) -> None:
        self.stopping = True
        self.stop_requested = True
        self._touch()

    def confirm_stopped(self) -> None:
        self.stop_confirmed = True
        self.status = JobLifecycleState.STOPPED
        self.active = False
        self.stopping = False
        self._touch()

    def abort_stop(self, error: str) -> None:
        self.stopping = False
        self.error = error
        self._touch()

    def snapshot(self) -> PreviewSnapshot:
        return PreviewSnapshot(
            job_id=self._job_id,
            status=self.status,
            phase=self.phase,
            outcome=self.outcome,
            active=self.active,
            stopping=self.stopping,
            error=self.error,
            outputs=self.outputs.records(),
            version=self.version,
        )
