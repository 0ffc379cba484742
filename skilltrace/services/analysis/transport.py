"""
Transport sessions: how the controller learns about a running analysis job.

A TransportSession owns exactly one channel to the backend for one
repository, either the server-sent-event stream or a status polling loop, and
normalises whatever that channel reports into TransportEvents delivered, in
arrival order, to a single async handler.

Lifecycle guarantees:
- At most one terminal event (ErrorEvent or CompleteEvent) is delivered, and
  nothing is delivered after it.
- `cancel()` is synchronous, idempotent, and safe from any state, including
  from inside the session's own event handler. Once it returns no further
  event reaches the handler, even if a message was already in flight.
- Failures are never retried here; retrying is the caller's decision.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from contextlib import aclosing
from typing import ClassVar

from skilltrace.config import settings
from skilltrace.schemas.analysis import TransportKind
from skilltrace.services.analysis.types import (
    CompleteEvent,
    ErrorEvent,
    ProgressEvent,
    ResultEvent,
    TransportEvent,
)
from skilltrace.services.backend import BackendAPIError, BackendClient, repo_key_from_url, same_repository

logger = logging.getLogger(__name__)

EventHandler = Callable[[TransportEvent], Awaitable[None]]

STREAM_CLOSED_MESSAGE = "Failed to connect to analysis stream."
UNEXPECTED_FAILURE_MESSAGE = "Analysis tracking failed unexpectedly."


def progress_message(progress: int) -> str:
    return f"Analysis in progress... {progress}%"


def failure_message(error: str | None) -> str:
    return f"Analysis failed: {error or 'unknown error'}"


class TransportSession(ABC):
    """Base class for one tracked analysis job on one channel."""

    kind: ClassVar[TransportKind]

    def __init__(self, repo_url: str, on_event: EventHandler, backend: BackendClient) -> None:
        self.repo_url = repo_url
        self.repo_key = repo_key_from_url(repo_url)
        self._on_event = on_event
        self._backend = backend
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} repo={self.repo_key} active={self.is_active}>"

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._closed

    def start(self) -> None:
        """Start tracking in a background task on the running event loop."""
        if self._task is not None or self._closed:
            raise RuntimeError(f"{self!r} cannot be started twice")
        self._task = asyncio.create_task(self._run(), name=f"{self.kind}:{self.repo_key}")
        logger.debug(f"Opened {self.kind} transport for {self.repo_key}")

    def cancel(self) -> None:
        """Stop delivering events and release the channel."""
        if self._closed:
            return
        self._closed = True
        task = self._task
        # From inside our own handler the task unwinds on its own once the handler returns.
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        logger.debug(f"Cancelled {self.kind} transport for {self.repo_key}")

    async def wait(self) -> None:
        """Wait until the background task has finished. Never raises."""
        if self._task is not None:
            await asyncio.wait([self._task])

    async def _emit(self, event: TransportEvent) -> bool:
        """Deliver an event. Returns False once the session is closed."""
        if self._closed:
            return False
        await self._on_event(event)
        return not self._closed

    async def _run(self) -> None:
        try:
            await self._track()
        except BackendAPIError as e:
            logger.warning(f"{self.kind} transport for {self.repo_key} failed: {e.message}")
            await self._emit(ErrorEvent(e.message))
        except Exception:
            logger.exception(f"{self.kind} transport for {self.repo_key} crashed")
            await self._emit(ErrorEvent(UNEXPECTED_FAILURE_MESSAGE))
        finally:
            self._closed = True

    @abstractmethod
    async def _track(self) -> None:
        """Follow the job, emitting events, until a terminal event has been sent."""


class StreamingTransport(TransportSession):
    """
    Follows the job over the backend's server-sent-event stream.

    Each message carries the repository it belongs to; messages for any other
    repository are dropped, which keeps a stream that hasn't finished closing
    from leaking into the next repository's view.
    """

    kind = "stream"

    def __init__(
        self,
        repo_url: str,
        on_event: EventHandler,
        backend: BackendClient,
        settle_delay: float | None = None,
    ) -> None:
        super().__init__(repo_url, on_event, backend)
        self.settle_delay = (
            settings.completion_settle_seconds if settle_delay is None else settle_delay
        )

    async def _track(self) -> None:
        async with aclosing(self._backend.stream_analysis(self.repo_url)) as messages:
            async for message in messages:
                if not same_repository(message.repo_url, self.repo_key):
                    logger.debug(f"Dropped stream message for {message.repo_url!r} on {self.repo_key}")
                    continue

                if message.error:
                    await self._emit(ErrorEvent(failure_message(message.error)))
                    return

                if message.progress is None:
                    continue
                progress = max(0, min(message.progress, 100))
                if not await self._emit(ProgressEvent(progress, progress_message(progress))):
                    return

                result = message.file_data
                if result is not None:
                    if result.repo_url is None or same_repository(result.repo_url, self.repo_key):
                        if not await self._emit(ResultEvent(result)):
                            return
                    else:
                        logger.debug(f"Dropped result for {result.repo_url!r} on {self.repo_key}")

                if progress == 100:
                    # Backend persists the last results just after reporting 100%
                    await asyncio.sleep(self.settle_delay)
                    await self._emit(CompleteEvent())
                    return

        logger.warning(f"Analysis stream for {self.repo_key} ended before completion")
        await self._emit(ErrorEvent(STREAM_CLOSED_MESSAGE))


class PollingTransport(TransportSession):
    """Follows the job by querying its status at a fixed interval."""

    kind = "poll"

    def __init__(
        self,
        repo_url: str,
        on_event: EventHandler,
        backend: BackendClient,
        interval: float | None = None,
    ) -> None:
        super().__init__(repo_url, on_event, backend)
        self.interval = settings.poll_interval_seconds if interval is None else interval

    async def _track(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self._closed:
                return

            status = await self._backend.get_status(self.repo_key)
            logger.debug(f"Polled {self.repo_key}: {status.status} {status.progress}%")

            if status.status == "error":
                await self._emit(ErrorEvent(failure_message(status.error_message)))
                return

            if status.status == "completed":
                if await self._emit(ProgressEvent(100, progress_message(100))):
                    await self._emit(CompleteEvent())
                return

            progress = max(0, min(status.progress, 100))
            if not await self._emit(ProgressEvent(progress, progress_message(progress))):
                return


def transport_for(
    kind: TransportKind,
    repo_url: str,
    on_event: EventHandler,
    backend: BackendClient,
    *,
    poll_interval: float | None = None,
    settle_delay: float | None = None,
) -> TransportSession:
    """Build the transport session for `kind` (not yet started)."""
    if kind == "stream":
        return StreamingTransport(repo_url, on_event, backend, settle_delay=settle_delay)
    if kind == "poll":
        return PollingTransport(repo_url, on_event, backend, interval=poll_interval)
    raise ValueError(f"Unknown transport: {kind!r}")
