"""Unit tests for JobController.

Covers starting and joining jobs, re-attaching on selection, switching
repositories mid-job, completion, cancellation, subscriptions and the
commit listing helpers. The backend is a FakeBackend; its stream is fed by
each test so message timing is explicit.
"""

from __future__ import annotations

import asyncio

import pytest

from skilltrace.services.analysis import JobController, JobSnapshot, JobState
from skilltrace.services.backend import BackendAPIError, CommitHistory
from tests.helpers.factories import OTHER_REPO_URL, REPO_URL, make_change, make_result, stream_message
from tests.helpers.mock_factories import FakeBackend, make_start, make_status, settle


def _gate(backend_method, result):
    """Make an AsyncMock wait on an event before returning `result`."""
    released = asyncio.Event()

    async def gated(*args, **kwargs):
        await released.wait()
        return result

    backend_method.side_effect = gated
    return released


# ═══════════════════════════════════════════════════════════════════════════
# Starting a job
# ═══════════════════════════════════════════════════════════════════════════


class TestStartAnalysis:
    """Tests for JobController.start_analysis()."""

    @pytest.mark.anyio
    async def test_accepted_start_opens_stream(self, controller: JobController, backend: FakeBackend):
        snapshot = await controller.start_analysis(REPO_URL)

        assert snapshot.state == JobState.STREAMING
        assert snapshot.repo_key == "repoA"
        backend.start_analysis.assert_awaited_once_with(REPO_URL)
        await settle()
        assert backend.stream(REPO_URL).opened == 1

    @pytest.mark.anyio
    async def test_already_running_attaches_like_accepted(self, controller: JobController, backend: FakeBackend):
        backend.start_analysis.return_value = make_start(409, message="Analysis already in progress")

        snapshot = await controller.start_analysis(REPO_URL)

        assert snapshot.state == JobState.STREAMING
        assert snapshot.message == "Analysis already in progress"
        assert backend.start_analysis.await_count == 1

    @pytest.mark.anyio
    async def test_backend_can_choose_polling(self, controller: JobController, backend: FakeBackend):
        backend.start_analysis.return_value = make_start(202, transport="poll")

        snapshot = await controller.start_analysis(REPO_URL)

        assert snapshot.state == JobState.POLLING
        assert backend.streams == {}

    @pytest.mark.anyio
    async def test_second_start_while_pending_is_noop(self, controller: JobController, backend: FakeBackend):
        released = _gate(backend.start_analysis, make_start(202))

        first = asyncio.create_task(controller.start_analysis(REPO_URL))
        await settle()
        snapshot = await controller.start_analysis(REPO_URL)
        assert snapshot.state == JobState.STARTING

        released.set()
        await first
        await controller.start_analysis(REPO_URL)
        await settle()

        assert backend.start_analysis.await_count == 1
        assert backend.stream(REPO_URL).opened == 1
        assert controller.get_state() == JobState.STREAMING

    @pytest.mark.anyio
    async def test_start_failure_surfaces_backend_message(self, controller: JobController, backend: FakeBackend):
        backend.start_analysis.side_effect = BackendAPIError("Repository not found", 404)

        snapshot = await controller.start_analysis(REPO_URL)

        assert snapshot.state == JobState.ERROR
        assert snapshot.message == "Repository not found"
        assert controller.transport is None

    @pytest.mark.anyio
    async def test_restart_after_error(self, controller: JobController, backend: FakeBackend):
        backend.start_analysis.side_effect = [BackendAPIError("Failed to start analysis: backend error (500)", 500), make_start(202)]

        await controller.start_analysis(REPO_URL)
        snapshot = await controller.start_analysis(REPO_URL)

        assert snapshot.state == JobState.STREAMING
        assert backend.start_analysis.await_count == 2

    @pytest.mark.anyio
    async def test_invalid_url_raises(self, controller: JobController, backend: FakeBackend):
        with pytest.raises(ValueError):
            await controller.start_analysis("   ")
        backend.start_analysis.assert_not_awaited()


# ═══════════════════════════════════════════════════════════════════════════
# Following a job
# ═══════════════════════════════════════════════════════════════════════════


class TestTracking:
    """Tests for transport events flowing into the controller."""

    @pytest.mark.anyio
    async def test_progress_and_results_accumulate(self, controller: JobController, backend: FakeBackend):
        await controller.start_analysis(REPO_URL)
        backend.stream(REPO_URL).push(
            stream_message(progress=25, file_data=make_result("s1", "a.py")),
            stream_message(progress=50, file_data=make_result("s1", "a.py")),
            stream_message(progress=60, file_data=make_result("s2", "b.py")),
        )
        await settle()

        snapshot = controller.snapshot()
        assert snapshot.state == JobState.STREAMING
        assert snapshot.progress == 60
        assert snapshot.message == "Analysis in progress... 60%"
        assert snapshot.result_count == 2

    @pytest.mark.anyio
    async def test_completion_loads_authoritative_snapshot(self, controller: JobController, backend: FakeBackend):
        stored = [make_result("s1", "a.py"), make_result("s2", "b.py"), make_result("s3", "c.py")]
        backend.fetch_snapshot.return_value = stored
        await controller.start_analysis(REPO_URL)

        backend.stream(REPO_URL).push(
            stream_message(progress=50, file_data=make_result("s1", "a.py")),
            stream_message(progress=100),
        )
        await settle()

        snapshot = controller.snapshot()
        assert snapshot.state == JobState.COMPLETED
        assert snapshot.progress == 100
        assert snapshot.message == "Analysis complete."
        assert controller.store.results() == stored
        assert controller.transport is None
        backend.fetch_snapshot.assert_awaited_once_with("repoA")

    @pytest.mark.anyio
    async def test_completion_with_empty_snapshot(self, controller: JobController, backend: FakeBackend):
        await controller.start_analysis(REPO_URL)
        backend.stream(REPO_URL).push(stream_message(progress=100))
        await settle()

        assert controller.get_state() == JobState.COMPLETED
        assert controller.snapshot().message == "No analysis data found for this repository."

    @pytest.mark.anyio
    async def test_snapshot_failure_after_completion_is_error(self, controller: JobController, backend: FakeBackend):
        backend.fetch_snapshot.side_effect = BackendAPIError("Failed to fetch analysis data: backend error (500)", 500)
        await controller.start_analysis(REPO_URL)
        backend.stream(REPO_URL).push(stream_message(progress=100))
        await settle()

        snapshot = controller.snapshot()
        assert snapshot.state == JobState.ERROR
        assert snapshot.message == "Failed to fetch analysis data: backend error (500)"

    @pytest.mark.anyio
    async def test_stream_error_moves_to_error(self, controller: JobController, backend: FakeBackend):
        await controller.start_analysis(REPO_URL)
        backend.stream(REPO_URL).push(stream_message(error="Clone failed"))
        await settle()

        assert controller.get_state() == JobState.ERROR
        assert controller.snapshot().message == "Analysis failed: Clone failed"
        assert controller.transport is None

    @pytest.mark.anyio
    async def test_polling_job_completes(self, controller: JobController, backend: FakeBackend):
        backend.start_analysis.return_value = make_start(202, transport="poll")
        backend.get_status.side_effect = [make_status("in-progress", 40), make_status("completed", 100)]
        backend.fetch_snapshot.return_value = [make_result("s1", "a.py")]

        await controller.start_analysis(REPO_URL)
        await settle(0.1)

        assert controller.get_state() == JobState.COMPLETED
        assert controller.snapshot().result_count == 1


# ═══════════════════════════════════════════════════════════════════════════
# Switching repositories
# ═══════════════════════════════════════════════════════════════════════════


class TestRepositorySwitch:
    """Tests for changing the active repository while a job is tracked."""

    @pytest.mark.anyio
    async def test_switch_cancels_old_tracker_and_clears_results(
        self, controller: JobController, backend: FakeBackend
    ):
        await controller.start_analysis(REPO_URL)
        backend.stream(REPO_URL).push(stream_message(progress=30, file_data=make_result("s1", "a.py")))
        await settle()
        assert controller.snapshot().result_count == 1

        await controller.start_analysis(OTHER_REPO_URL)
        await settle()

        assert controller.repo_key == "repoB"
        assert controller.snapshot().result_count == 0
        assert backend.stream(REPO_URL).closed == 1

        backend.stream(REPO_URL).push(stream_message(progress=90, file_data=make_result("s9", "z.py")))
        await settle()
        assert controller.snapshot().result_count == 0
        assert controller.snapshot().progress == 0

    @pytest.mark.anyio
    async def test_late_start_response_for_old_repository_is_ignored(
        self, controller: JobController, backend: FakeBackend
    ):
        released = _gate(backend.start_analysis, make_start(202))

        first = asyncio.create_task(controller.start_analysis(REPO_URL))
        await settle()
        backend.start_analysis.side_effect = None
        backend.start_analysis.return_value = make_start(202)
        await controller.start_analysis(OTHER_REPO_URL)

        released.set()
        await first
        await settle()

        assert controller.repo_key == "repoB"
        assert controller.get_state() == JobState.STREAMING
        assert REPO_URL not in backend.streams
        assert backend.stream(OTHER_REPO_URL).opened == 1


# ═══════════════════════════════════════════════════════════════════════════
# Selecting a repository (re-attach)
# ═══════════════════════════════════════════════════════════════════════════


class TestSelectRepository:
    """Tests for JobController.select_repository()."""

    @pytest.mark.anyio
    async def test_in_progress_job_is_polled_without_new_start(
        self, controller: JobController, backend: FakeBackend
    ):
        backend.fetch_snapshot.return_value = [make_result("s1", "a.py")]
        backend.get_status.side_effect = [
            make_status("in-progress", 40),
            make_status("in-progress", 70),
            make_status("completed", 100),
        ]

        snapshot = await controller.select_repository(REPO_URL)

        assert snapshot.state == JobState.POLLING
        assert snapshot.progress == 40
        assert snapshot.result_count == 1
        backend.start_analysis.assert_not_awaited()

        await settle(0.1)
        assert controller.get_state() == JobState.COMPLETED
        assert controller.snapshot().progress == 100

    @pytest.mark.anyio
    async def test_completed_job_shows_stored_results(self, controller: JobController, backend: FakeBackend):
        backend.fetch_snapshot.return_value = [make_result("s1", "a.py")]
        backend.get_status.return_value = make_status("completed", 100)

        snapshot = await controller.select_repository(REPO_URL)

        assert snapshot.state == JobState.COMPLETED
        assert snapshot.progress == 100
        assert snapshot.message == "Analysis complete."
        assert controller.transport is None

    @pytest.mark.anyio
    async def test_idle_repository_without_data(self, controller: JobController, backend: FakeBackend):
        snapshot = await controller.select_repository(REPO_URL)

        assert snapshot.state == JobState.IDLE
        assert snapshot.message == "No analysis data found for this repository."

    @pytest.mark.anyio
    async def test_failed_job_reports_failure_and_stays_idle(self, controller: JobController, backend: FakeBackend):
        backend.get_status.return_value = make_status("error", 10, error="Clone failed")

        snapshot = await controller.select_repository(REPO_URL)

        assert snapshot.state == JobState.IDLE
        assert snapshot.message == "Analysis failed: Clone failed"

    @pytest.mark.anyio
    async def test_status_failure_is_error(self, controller: JobController, backend: FakeBackend):
        backend.get_status.side_effect = BackendAPIError("Fetching analysis status: backend error (503)", 503)

        snapshot = await controller.select_repository(REPO_URL)

        assert snapshot.state == JobState.ERROR
        assert snapshot.message == "Fetching analysis status: backend error (503)"

    @pytest.mark.anyio
    async def test_start_during_reattach_check_goes_ahead(
        self, controller: JobController, backend: FakeBackend
    ):
        released = _gate(backend.fetch_snapshot, [make_result("s1", "a.py")])

        attach = asyncio.create_task(controller.select_repository(REPO_URL))
        await settle()
        assert controller.get_state() == JobState.ATTACHING

        snapshot = await controller.start_analysis(REPO_URL)
        assert snapshot.state == JobState.STREAMING

        released.set()
        await attach
        await settle()

        assert controller.get_state() == JobState.STREAMING
        backend.start_analysis.assert_awaited_once_with(REPO_URL)
        backend.get_status.assert_not_awaited()
        assert controller.snapshot().result_count == 0

    @pytest.mark.anyio
    async def test_snapshot_failure_keeps_loaded_results(self, controller: JobController, backend: FakeBackend):
        backend.fetch_snapshot.return_value = [make_result("s1", "a.py")]
        backend.get_status.return_value = make_status("completed", 100)
        await controller.select_repository(REPO_URL)

        backend.fetch_snapshot.side_effect = BackendAPIError("Failed to fetch analysis data: backend error (503)", 503)
        snapshot = await controller.select_repository(REPO_URL)

        assert snapshot.state == JobState.ERROR
        assert snapshot.message == "Failed to fetch analysis data: backend error (503)"
        assert snapshot.result_count == 1

    @pytest.mark.anyio
    async def test_snapshot_failure_on_idle_repository(self, controller: JobController, backend: FakeBackend):
        backend.fetch_snapshot.side_effect = BackendAPIError("Failed to fetch analysis data: backend error (503)", 503)

        snapshot = await controller.select_repository(REPO_URL)

        assert snapshot.state == JobState.IDLE
        assert snapshot.message == "Failed to fetch analysis data: backend error (503)"
        assert snapshot.result_count == 0

    @pytest.mark.anyio
    async def test_selecting_tracked_repository_is_noop(self, controller: JobController, backend: FakeBackend):
        await controller.start_analysis(REPO_URL)

        snapshot = await controller.select_repository(REPO_URL)

        assert snapshot.state == JobState.STREAMING
        backend.get_status.assert_not_awaited()


# ═══════════════════════════════════════════════════════════════════════════
# Cancel, reset, subscriptions
# ═══════════════════════════════════════════════════════════════════════════


class TestCancelAndReset:
    @pytest.mark.anyio
    async def test_cancel_stops_tracking(self, controller: JobController, backend: FakeBackend):
        await controller.start_analysis(REPO_URL)
        await settle()

        controller.cancel()
        await settle()

        snapshot = controller.snapshot()
        assert snapshot.state == JobState.IDLE
        assert snapshot.message == "Analysis tracking stopped."
        assert snapshot.repo_key == "repoA"
        assert controller.transport is None
        assert backend.stream(REPO_URL).closed == 1

    @pytest.mark.anyio
    async def test_cancel_when_idle_is_harmless(self, controller: JobController):
        controller.cancel()
        controller.cancel()

        assert controller.get_state() == JobState.IDLE

    @pytest.mark.anyio
    async def test_reset_forgets_repository(self, controller: JobController, backend: FakeBackend):
        backend.fetch_snapshot.return_value = [make_result("s1", "a.py")]
        await controller.select_repository(REPO_URL)

        controller.reset()

        snapshot = controller.snapshot()
        assert snapshot.repo_key is None
        assert snapshot.result_count == 0
        assert snapshot.state == JobState.IDLE


class TestSubscribe:
    @pytest.mark.anyio
    async def test_listener_sees_transitions_until_unsubscribed(self, controller: JobController):
        seen: list[JobSnapshot] = []
        unsubscribe = controller.subscribe(seen.append)

        await controller.start_analysis(REPO_URL)
        states = [s.state for s in seen]
        assert states[0] == JobState.STARTING
        assert states[-1] == JobState.STREAMING

        unsubscribe()
        unsubscribe()
        controller.cancel()
        assert seen[-1].state == JobState.STREAMING

    @pytest.mark.anyio
    async def test_failing_listener_does_not_block_others(self, controller: JobController):
        seen: list[JobState] = []

        def broken(snapshot: JobSnapshot) -> None:
            raise RuntimeError("listener bug")

        controller.subscribe(broken)
        controller.subscribe(lambda s: seen.append(s.state))

        await controller.start_analysis(REPO_URL)

        assert seen[-1] == JobState.STREAMING


# ═══════════════════════════════════════════════════════════════════════════
# Results window, commits and history
# ═══════════════════════════════════════════════════════════════════════════


class TestQueries:
    @pytest.mark.anyio
    async def test_filtered_results_clamp_month_selection(self, controller: JobController, backend: FakeBackend):
        backend.fetch_snapshot.return_value = [
            make_result("s1", "a.py", "2024-01-05T00:00:00Z"),
            make_result("s2", "b.py", "2024-03-10T00:00:00Z"),
            make_result("s3", "c.py", "2024-03-20T00:00:00Z"),
        ]
        await controller.select_repository(REPO_URL)

        assert [r.sha for r in controller.get_filtered_results(0)] == ["s2", "s3"]
        assert [r.sha for r in controller.get_filtered_results(1)] == ["s2", "s3"]
        assert len(controller.get_filtered_results(99)) == 3

    @pytest.mark.anyio
    async def test_filtered_results_empty_store(self, controller: JobController):
        assert controller.get_filtered_results(3) == []

    @pytest.mark.anyio
    async def test_load_commits_requires_repository(self, controller: JobController):
        with pytest.raises(RuntimeError):
            await controller.load_commits(30)

    @pytest.mark.anyio
    async def test_load_commits_groups_changes(self, controller: JobController, backend: FakeBackend):
        backend.fetch_commits.return_value = [
            make_change("c1", "a.py"),
            make_change("c1", "b.py"),
            make_change("c2", "a.py", "2024-03-09T12:00:00Z"),
        ]
        await controller.select_repository(REPO_URL)

        commits = await controller.load_commits(10)

        assert [c.sha for c in commits] == ["c1", "c2"]
        assert [len(c.file_changes) for c in commits] == [2, 1]
        assert controller.total_files == 3
        backend.fetch_commits.assert_awaited_once_with(REPO_URL, 10)

    @pytest.mark.anyio
    async def test_history_tolerates_analyzed_timestamp_failure(
        self, controller: JobController, backend: FakeBackend
    ):
        backend.fetch_commit_history.return_value = ["2024-03-10T12:00:00Z"]
        backend.fetch_analyzed_timestamps.side_effect = BackendAPIError("Fetching analyzed commit timestamps: backend error (500)", 500)
        await controller.select_repository(REPO_URL)

        history = await controller.history()

        assert history == CommitHistory(commit_dates=["2024-03-10T12:00:00Z"], analyzed=[])
        backend.fetch_commit_history.assert_awaited_once_with(REPO_URL)
