"""Tests for StopController: stop command, confirmation polling, failure modes."""

import asyncio
from unittest.mock import patch

import pytest

from fakes import JOB_ID, job_details, output, stream_of
from jobforge.core.errors import PollTimeoutError, TerminalJobError, TransportError
from jobforge.schemas.job import JobLifecycleState, PreviewOutcome, StopMode
from jobforge.services.preview_orchestrator import PreviewOrchestrator
from jobforge.services.preview_session import PreviewSession
from jobforge.services.query_validator import QueryValidator
from jobforge.services.stop_controller import StopController

RUNNING = JobLifecycleState.RUNNING
STOPPING = JobLifecycleState.STOPPING
STOPPED = JobLifecycleState.STOPPED


def _controller(api, **overrides) -> StopController:
    kwargs = {"poll_interval": 0.001, "max_backoff": 0.004, "max_wait": 2.0}
    kwargs.update(overrides)
    return StopController(api, **kwargs)


def _streaming_session(job_id: str = JOB_ID) -> PreviewSession:
    session = PreviewSession()
    session.begin_validation()
    session.assign_job_id(job_id)
    session.observe_status(RUNNING)
    session.open_stream()
    return session


class TestStopPreview:
    async def test_active_cleared_only_after_stopped_observed(self, api):
        session = _streaming_session()
        active_at_poll = []
        states = iter([RUNNING, STOPPING, STOPPED])

        async def fake_details(job_id):
            active_at_poll.append(session.active)
            return job_details(next(states))

        api.get_job_details.side_effect = fake_details

        with patch.object(
            session, "confirm_stopped", wraps=session.confirm_stopped
        ) as confirm:
            await _controller(api).stop_preview(session)

        api.update_job.assert_awaited_once_with(JOB_ID, StopMode.IMMEDIATE)
        assert active_at_poll == [True, True, True]
        confirm.assert_called_once()
        assert session.active is False
        assert session.status is STOPPED
        assert session.stopping is False
        assert session.stop_requested is True

    async def test_stopping_flag_set_while_waiting(self, api):
        session = _streaming_session()
        flags = []

        async def fake_details(job_id):
            flags.append(session.stopping)
            return job_details(STOPPED)

        api.get_job_details.side_effect = fake_details

        await _controller(api).stop_preview(session)

        assert flags == [True]
        assert session.stopping is False

    async def test_no_session_is_noop(self, api):
        await _controller(api).stop_preview(None)

        api.update_job.assert_not_awaited()
        api.get_job_details.assert_not_awaited()

    async def test_session_without_job_is_noop(self, api):
        session = PreviewSession()
        session.begin_validation()

        await _controller(api).stop_preview(session)

        api.update_job.assert_not_awaited()
        assert session.stop_requested is False

    async def test_stop_command_failure_propagates(self, api):
        session = _streaming_session()
        api.update_job.side_effect = TransportError("update_job returned HTTP 502")

        with pytest.raises(TransportError):
            await _controller(api).stop_preview(session)

        api.get_job_details.assert_not_awaited()
        assert session.active is True
        assert session.stopping is False
        assert "502" in session.error

    async def test_transient_poll_errors_are_retried(self, api):
        session = _streaming_session()
        api.get_job_details.side_effect = [
            TransportError("timeout"),
            job_details(STOPPING),
            TransportError("timeout"),
            job_details(STOPPED),
        ]

        await _controller(api).stop_preview(session)

        assert api.get_job_details.await_count == 4
        assert session.active is False

    async def test_wait_is_bounded(self, api):
        session = _streaming_session()
        api.get_job_details.return_value = job_details(STOPPING)

        with pytest.raises(PollTimeoutError) as exc_info:
            await _controller(api, max_wait=0.05).stop_preview(session)

        assert exc_info.value.expected == "Stopped"
        assert session.active is True
        assert session.stopping is False

    async def test_failed_instead_of_stopped(self, api):
        session = _streaming_session()
        api.get_job_details.return_value = job_details(
            JobLifecycleState.FAILED, failure_message="worker lost"
        )

        with pytest.raises(TerminalJobError, match="worker lost"):
            await _controller(api).stop_preview(session)

        assert session.active is True

    async def test_finished_before_stop(self, api):
        session = _streaming_session()
        api.get_job_details.return_value = job_details(JobLifecycleState.FINISHED)

        await _controller(api).stop_preview(session)

        assert session.stop_confirmed is False
        assert session.stopping is False
        assert "finished" in session.error


class TestStopWithOrchestrator:
    async def test_stopping_a_streaming_preview(self, api):
        hold = asyncio.Event()
        api.subscribe_outputs.side_effect = lambda job_id: stream_of(
            [output(1), output(2)], hold=hold
        )
        orch = PreviewOrchestrator(
            api, QueryValidator(api), poll_interval=0.001, max_backoff=0.004, max_wait=2.0
        )

        session = await orch.start_preview("SELECT 1", "")
        while len(session.outputs) < 2:
            await asyncio.sleep(0.001)

        api.get_job_details.return_value = job_details(STOPPED)
        await _controller(api).stop_preview(session)

        assert session.active is False
        hold.set()
        await orch.wait()

        assert session.outcome is PreviewOutcome.STOPPED
        assert [r.sequence_id for r in session.outputs] == [1, 2]
        assert session.active is False
