"""Tests for PipelineLauncher: start gating, launch request and error messages."""

import pytest

from jobforge.core.errors import RemoteRejectedError, TransportError
from jobforge.schemas.pipeline import (
    BuiltinKind,
    BuiltinSink,
    LaunchStatus,
    NamedSink,
    StartOptions,
)
from jobforge.services.draft_repository import QUERY_KEY, UDF_KEY, InMemoryDraftRepository
from jobforge.services.pipeline_launcher import (
    FALLBACK_ERROR_MESSAGE,
    PipelineLauncher,
)


@pytest.fixture
def launcher(api, drafts):
    return PipelineLauncher(api, drafts)


class TestCanStart:
    @pytest.mark.parametrize(
        "name,sink,expected",
        [
            ("", None, False),
            ("orders", None, False),
            ("", BuiltinSink(value=BuiltinKind.LOG), False),
            ("   ", BuiltinSink(value=BuiltinKind.LOG), False),
            ("orders", BuiltinSink(value=BuiltinKind.LOG), True),
            ("orders", NamedSink(name="kafka_out"), True),
        ],
    )
    def test_requires_name_and_sink(self, name, sink, expected):
        assert PipelineLauncher.can_start(StartOptions(name=name, sink=sink)) is expected

    async def test_disabled_start_makes_no_remote_call(self, api, launcher):
        outcome = await launcher.start(StartOptions(name="orders"), "SELECT 1", "")

        assert outcome.status is LaunchStatus.DISABLED
        api.launch_job.assert_not_awaited()


class TestStart:
    async def test_success_clears_query_draft_and_redirects(self, api):
        drafts = InMemoryDraftRepository({QUERY_KEY: "SELECT 1", UDF_KEY: "fn f() {}"})
        api.launch_job.return_value = "job_42"

        outcome = await PipelineLauncher(api, drafts).start(
            StartOptions(name="orders", sink=BuiltinSink(value=BuiltinKind.NULL)),
            "SELECT 1",
            "fn f() {}",
        )

        assert outcome.status is LaunchStatus.LAUNCHED
        assert outcome.job_id == "job_42"
        assert outcome.redirect_to == "/jobs/job_42"
        assert outcome.error is None
        assert await drafts.get(QUERY_KEY) is None
        assert await drafts.get(UDF_KEY) == "fn f() {}"

    async def test_launch_request_contents(self, api, launcher):
        options = StartOptions(
            name="orders",
            sink=NamedSink(name="kafka_out"),
            parallelism=8,
            checkpoint_interval_ms=10_000,
        )

        await launcher.start(options, "SELECT * FROM orders", "fn f() {}")

        request = api.launch_job.await_args.args[0]
        assert request.name == "orders"
        assert request.preview is False
        assert request.query == "SELECT * FROM orders"
        assert request.sink == NamedSink(name="kafka_out")
        assert request.parallelism == 8
        assert request.checkpoint_interval_ms == 10_000
        assert len(request.udfs) == 1
        assert request.udfs[0].definition == "fn f() {}"

    async def test_defaults_come_from_settings(self, api, launcher):
        await launcher.start(
            StartOptions(name="orders", sink=BuiltinSink(value=BuiltinKind.WEB)), "q", ""
        )

        request = api.launch_job.await_args.args[0]
        assert request.parallelism == 4
        assert request.checkpoint_interval_ms == 5000

    async def test_rejection_surfaces_server_message(self, api, drafts, launcher):
        await drafts.set(QUERY_KEY, "SELECT 1")
        api.launch_job.side_effect = RemoteRejectedError(
            "A pipeline named 'orders' already exists", status_code=400
        )

        outcome = await launcher.start(
            StartOptions(name="orders", sink=BuiltinSink(value=BuiltinKind.LOG)),
            "SELECT 1",
            "",
        )

        assert outcome.status is LaunchStatus.FAILED
        assert outcome.error == "A pipeline named 'orders' already exists"
        assert outcome.job_id is None
        assert await drafts.get(QUERY_KEY) == "SELECT 1"

    async def test_transport_failure_uses_fallback_message(self, api, drafts, launcher):
        await drafts.set(QUERY_KEY, "SELECT 1")
        api.launch_job.side_effect = TransportError("connection refused")

        outcome = await launcher.start(
            StartOptions(name="orders", sink=BuiltinSink(value=BuiltinKind.LOG)),
            "SELECT 1",
            "",
        )

        assert outcome.status is LaunchStatus.FAILED
        assert outcome.error == FALLBACK_ERROR_MESSAGE
        assert await drafts.get(QUERY_KEY) == "SELECT 1"
