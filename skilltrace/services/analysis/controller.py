"""
Analysis job controller: the state machine behind the dashboard's analysis view.

The controller tracks one repository at a time. It starts (or joins) the
backend analysis job for that repository, follows it through a
TransportSession, accumulates incoming results in a ResultStore, and on
completion swaps in the authoritative snapshot from the backend.

State transitions (initial: idle):
- idle|completed|error -> starting     start_analysis()
- starting -> streaming|polling        start accepted (202) or already running (409)
- (selection) -> attaching             select_repository() re-attach check
- attaching -> polling                 backend reports the job in progress
- streaming|polling -> completed       transport completes and snapshot loads
- starting|attaching|streaming|polling -> error   any failure, message verbatim
- (any) -> idle                        cancel(), reset(), or repository change

Every await is followed by a generation check: switching repository,
cancelling, or starting again bumps the generation, so responses belonging to
an abandoned attempt are ignored instead of overwriting the new one.
"""

import logging
from collections.abc import Callable

from skilltrace.config import settings
from skilltrace.schemas.analysis import AnalysisResult, TransportKind
from skilltrace.services.analysis.aggregator import group_commits
from skilltrace.services.analysis.result_store import ResultStore
from skilltrace.services.analysis.time_window import clamp_months, filter_results
from skilltrace.services.analysis.transport import TransportSession, failure_message, transport_for
from skilltrace.services.analysis.types import (
    Commit,
    CompleteEvent,
    ErrorEvent,
    JobSnapshot,
    JobState,
    ProgressEvent,
    ResultEvent,
    TransportEvent,
)
from skilltrace.services.backend import BackendAPIError, BackendClient, CommitHistory, repo_key_from_url

logger = logging.getLogger(__name__)

Listener = Callable[[JobSnapshot], None]
TransportFactory = Callable[..., TransportSession]

STARTING_MESSAGE = "Starting analysis..."
ATTACHING_MESSAGE = "Checking analysis status..."
COMPLETED_MESSAGE = "Analysis complete."
CANCELLED_MESSAGE = "Analysis tracking stopped."
NO_DATA_MESSAGE = "No analysis data found for this repository."


class JobController:
    """
    Owns the job state, the live transport and the result store for the
    active repository.

    Single event loop, single writer: all mutation happens in coroutines
    scheduled on one loop, so no locking is needed. Correctness rests on
    cancelling the previous transport before a new one is created.
    """

    def __init__(
        self,
        backend: BackendClient | None = None,
        *,
        transport_factory: TransportFactory = transport_for,
        default_transport: TransportKind | None = None,
        poll_interval: float | None = None,
        settle_delay: float | None = None,
    ) -> None:
        self.backend = backend if backend is not None else BackendClient()
        self.default_transport: TransportKind = default_transport or settings.default_transport
        self._transport_factory = transport_factory
        self._poll_interval = poll_interval
        self._settle_delay = settle_delay

        self.repo_url: str | None = None
        self.repo_key: str | None = None
        self.store = ResultStore()
        self.commits: list[Commit] = []
        self.total_files = 0

        self._state = JobState.IDLE
        self._progress = 0
        self._message = ""
        self._transport: TransportSession | None = None
        self._generation = 0
        self._listeners: list[Listener] = []

    # ─────────────────────────────────────────────────────────────────────
    # Read side
    # ─────────────────────────────────────────────────────────────────────

    @property
    def transport(self) -> TransportSession | None:
        return self._transport

    def get_state(self) -> JobState:
        return self._state

    def snapshot(self) -> JobSnapshot:
        return JobSnapshot(
            repo_key=self.repo_key,
            repo_url=self.repo_url,
            state=self._state,
            progress=self._progress,
            message=self._message,
            result_count=len(self.store),
            total_months=self.store.total_months,
        )

    def get_filtered_results(self, selected_months: int) -> list[AnalysisResult]:
        """Results in a window of `selected_months` months (clamped to what the store spans)."""
        return filter_results(self.store, clamp_months(selected_months, self.store.total_months))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for state and progress changes.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ─────────────────────────────────────────────────────────────────────
    # Job lifecycle
    # ─────────────────────────────────────────────────────────────────────

    async def start_analysis(self, repo_url: str) -> JobSnapshot:
        """
        Start analysing a repository, or keep following the job already tracked.

        Calling this again for the same repository while a job is starting or
        being tracked is a no-op: no second request, no second transport.
        A start during a re-attach check goes ahead and supersedes the check.
        A backend "already running" answer attaches to the existing job.

        Raises:
            ValueError: if no repository key can be derived from `repo_url`
        """
        key = repo_key_from_url(repo_url)
        if key == self.repo_key and self._state.tracking:
            logger.info(f"Analysis for {key} already {self._state.value}; keeping current tracker")
            return self.snapshot()

        self._activate(repo_url, key)
        generation = self._next_generation()
        self._set_state(JobState.STARTING, progress=0, message=STARTING_MESSAGE)

        try:
            start = await self.backend.start_analysis(repo_url)
        except BackendAPIError as e:
            if self._is_current(generation):
                self._set_state(JobState.ERROR, message=e.message)
            return self.snapshot()

        if not self._is_current(generation):
            logger.debug(f"Ignoring start response for abandoned attempt on {key}")
            return self.snapshot()

        if start.already_running:
            logger.info(f"Analysis already running for {key}; attaching")
        kind = start.transport or self.default_transport
        self._open_transport(kind, repo_url, message=start.message or STARTING_MESSAGE)
        return self.snapshot()

    async def select_repository(self, repo_url: str) -> JobSnapshot:
        """
        Make a repository active and re-attach to any job already running for it.

        Loads the stored results, then asks the backend for the job status: an
        in-progress job is followed by polling from its reported progress
        without sending a new start request.

        Raises:
            ValueError: if no repository key can be derived from `repo_url`
        """
        key = repo_key_from_url(repo_url)
        if key == self.repo_key and self._state.in_flight:
            return self.snapshot()

        self._activate(repo_url, key)
        generation = self._next_generation()
        self._set_state(JobState.ATTACHING, progress=0, message=ATTACHING_MESSAGE)

        snapshot_error: str | None = None
        try:
            results = await self.backend.fetch_snapshot(key)
        except BackendAPIError as e:
            logger.warning(f"Could not load stored results for {key}: {e.message}")
            snapshot_error = e.message
        if not self._is_current(generation):
            return self.snapshot()
        if snapshot_error is None:
            self.store.replace_all(results)

        try:
            status = await self.backend.get_status(key)
        except BackendAPIError as e:
            if self._is_current(generation):
                self._set_state(JobState.ERROR, message=e.message)
            return self.snapshot()
        if not self._is_current(generation):
            return self.snapshot()

        if status.status == "in-progress":
            logger.info(f"Re-attaching to running analysis for {key} at {status.progress}%")
            self._progress = max(0, min(status.progress, 100))
            self._open_transport(
                "poll", repo_url, message=f"Analysis in progress... {self._progress}%"
            )
        elif status.status == "completed":
            if snapshot_error is not None:
                self._set_state(JobState.ERROR, message=snapshot_error)
            else:
                self._set_state(JobState.COMPLETED, progress=100, message=self._loaded_message())
        elif status.status == "error":
            self._set_state(JobState.IDLE, message=failure_message(status.error_message))
        else:
            self._set_state(JobState.IDLE, message=snapshot_error or self._loaded_message())
        return self.snapshot()

    def cancel(self) -> None:
        """Stop tracking the current job (the backend job itself keeps running)."""
        self._next_generation()
        had_transport = self._cancel_transport()
        if had_transport or self._state.in_flight:
            self._set_state(JobState.IDLE, message=CANCELLED_MESSAGE)

    def reset(self) -> None:
        """Forget the active repository and its results."""
        self.cancel()
        self._activate(None, None)
        self._set_state(JobState.IDLE, progress=0, message="")

    async def close(self) -> None:
        """Cancel tracking and wait for the transport to wind down."""
        transport = self._transport
        self._next_generation()
        self._cancel_transport()
        if transport is not None:
            await transport.wait()

    # ─────────────────────────────────────────────────────────────────────
    # Commit listing and history (for the commit list and history chart)
    # ─────────────────────────────────────────────────────────────────────

    async def load_commits(self, limit: int | None) -> list[Commit]:
        """
        Fetch and group the active repository's commits.

        Args:
            limit: Number of commits to scan (None = all)

        Raises:
            RuntimeError: if no repository is active
            BackendAPIError: if the listing fails
        """
        repo_url = self._require_repository()
        events = await self.backend.fetch_commits(repo_url, limit)
        if repo_url != self.repo_url:
            # repository changed while the listing was in flight
            return []
        self.commits = group_commits(events)
        self.total_files = len(events)
        logger.info(f"Loaded {len(self.commits)} commits ({self.total_files} file changes) for {self.repo_key}")
        return self.commits

    async def history(self) -> CommitHistory:
        """Timestamps of every commit and of the commits already analysed."""
        repo_url = self._require_repository()
        commit_dates = await self.backend.fetch_commit_history(repo_url)
        try:
            analyzed = await self.backend.fetch_analyzed_timestamps(repo_key_from_url(repo_url))
        except BackendAPIError as e:
            logger.warning(f"Error fetching analyzed commit timestamps: {e.message}")
            analyzed = []
        return CommitHistory(commit_dates=commit_dates, analyzed=analyzed)

    # ─────────────────────────────────────────────────────────────────────
    # Transport events
    # ─────────────────────────────────────────────────────────────────────

    async def _handle_event(self, session: TransportSession, event: TransportEvent) -> None:
        if session is not self._transport:
            logger.debug(f"Dropped {type(event).__name__} from stale transport {session!r}")
            return

        if isinstance(event, ProgressEvent):
            self._set_state(self._state, progress=event.progress, message=event.message)
        elif isinstance(event, ResultEvent):
            if self.store.append(event.result):
                self._notify()
        elif isinstance(event, ErrorEvent):
            self._cancel_transport()
            self._set_state(JobState.ERROR, message=event.message)
        elif isinstance(event, CompleteEvent):
            await self._complete(session)

    async def _complete(self, session: TransportSession) -> None:
        key = session.repo_key
        try:
            results = await self.backend.fetch_snapshot(key)
        except BackendAPIError as e:
            if session is self._transport:
                self._cancel_transport()
                self._set_state(JobState.ERROR, message=e.message)
            return

        if session is not self._transport:
            return
        self._cancel_transport()
        self.store.replace_all(results)
        self._set_state(JobState.COMPLETED, progress=100, message=self._loaded_message())

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _open_transport(self, kind: TransportKind, repo_url: str, *, message: str) -> None:
        self._cancel_transport()

        session: TransportSession

        async def on_event(event: TransportEvent) -> None:
            await self._handle_event(session, event)

        session = self._transport_factory(
            kind,
            repo_url,
            on_event,
            self.backend,
            poll_interval=self._poll_interval,
            settle_delay=self._settle_delay,
        )
        self._transport = session
        session.start()

        state = JobState.STREAMING if kind == "stream" else JobState.POLLING
        self._set_state(state, message=message)

    def _cancel_transport(self) -> bool:
        transport, self._transport = self._transport, None
        if transport is None:
            return False
        transport.cancel()
        return True

    def _activate(self, repo_url: str | None, key: str | None) -> None:
        """Point the controller at a repository; a different key gets a fresh store."""
        if key != self.repo_key:
            self._cancel_transport()
            if self.repo_key is not None:
                logger.info(f"Switching repository {self.repo_key} -> {key}")
            self.store.clear()
            self.store = ResultStore()
            self.commits = []
            self.total_files = 0
            self.repo_key = key
            self._state = JobState.IDLE
            self._progress = 0
            self._message = ""
        self.repo_url = repo_url

    def _require_repository(self) -> str:
        if self.repo_url is None:
            raise RuntimeError("No repository selected")
        return self.repo_url

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _loaded_message(self) -> str:
        return COMPLETED_MESSAGE if len(self.store) else NO_DATA_MESSAGE

    def _set_state(
        self,
        state: JobState,
        *,
        progress: int | None = None,
        message: str | None = None,
    ) -> None:
        if state is not self._state:
            logger.info(f"Analysis job {self.repo_key}: {self._state.value} -> {state.value}")
        self._state = state
        if progress is not None:
            self._progress = progress
        if message is not None:
            self._message = message
        self._notify()

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Analysis job listener failed")
