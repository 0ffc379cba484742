"""
Analysis backend API client.

Wraps the backend's HTTP/event contract:
- Commit listing (`POST /commits`)
- Analysis start (`GET /analyze`) and its server-sent-event stream
- Job status (`GET /analysis_status`)
- Result snapshots (`GET /analyzedb`)
- Commit timestamps for the history chart (`GET /historytime`, `GET /timestamps`)

Every failure, whether a connection error, a non-2xx answer or a body that
doesn't match the contract, is raised as BackendAPIError.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from skilltrace.config import settings
from skilltrace.schemas.analysis import (
    AnalysisResult,
    AnalysisStatusResponse,
    FileChangeEvent,
    StartAnalysisBody,
    StreamMessage,
)
from skilltrace.services.backend.cache import cached_backend_call, commits_cache, history_cache
from skilltrace.services.backend.exceptions import BackendAPIError, MalformedPayloadError
from skilltrace.services.backend.helpers import (
    ANALYSIS_ACCEPTED_STATUSES,
    ANALYSIS_ALREADY_RUNNING,
    decode_json_object,
    handle_error_response,
    iter_sse_data,
)
from skilltrace.services.backend.http_client import get_backend_client
from skilltrace.services.backend.types import AnalysisStart

logger = logging.getLogger(__name__)

_file_changes = TypeAdapter(list[FileChangeEvent])
_results = TypeAdapter(list[AnalysisResult])
_timestamps = TypeAdapter(list[str])


class BackendClient:
    """
    Client for the analysis backend.

    Uses the shared HTTP client singleton unless one is injected (tests pass
    a client built on `httpx.MockTransport`).
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client if self._client is not None else get_backend_client()

    async def _request(self, method: str, url: str, context: str, **kwargs: Any) -> httpx.Response:
        """Send a request, turning connection-level failures into BackendAPIError."""
        try:
            return await self.client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            logger.warning(f"Backend request failed ({context}): {e!r}")
            raise BackendAPIError(f"{context}: {e or type(e).__name__}") from e

    @staticmethod
    def _json(response: httpx.Response, context: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise MalformedPayloadError(context, "body is not JSON") from e

    @cached_backend_call(commits_cache)
    async def fetch_commits(self, repo_url: str, limit: int | None = None) -> list[FileChangeEvent]:
        """
        List per-file changes for the repository's most recent commits.

        Results are cached for `settings.cache_ttl_seconds`; the backend walks
        the whole history for every call.

        Args:
            repo_url: Repository URL as registered in the dashboard
            limit: Number of commits to scan (None = all)

        Returns:
            One FileChangeEvent per file touched by each commit
        """
        context = "Fetching commits"
        response = await self._request(
            "POST", "/commits", context, json={"repo_url": repo_url, "limit": limit}
        )
        handle_error_response(response, context)

        data = self._json(response, "commit listing") or []
        try:
            return _file_changes.validate_python(data)
        except ValidationError as e:
            raise MalformedPayloadError("commit listing", str(e)) from e

    async def start_analysis(self, repo_url: str) -> AnalysisStart:
        """
        Ask the backend to begin analysing a repository.

        A 409 ("already running") is a success: the caller attaches to the
        running job instead of starting another one.

        Raises:
            BackendAPIError: for any other status or a connection failure
        """
        context = "Failed to start analysis"
        response = await self._request(
            "GET",
            "/analyze",
            context,
            params={"repo_url": repo_url},
            headers={"Accept": "application/json"},
        )
        if response.status_code not in ANALYSIS_ACCEPTED_STATUSES:
            handle_error_response(response, context)
            # 2xx outside the accepted set (e.g. 204): treat like a plain accept
            logger.info(f"Analysis start for {repo_url} returned {response.status_code}")

        body = StartAnalysisBody()
        try:
            body = StartAnalysisBody.model_validate(response.json())
        except (ValueError, ValidationError):
            logger.debug(f"Analysis start response for {repo_url} carried no usable body")

        already_running = response.status_code == ANALYSIS_ALREADY_RUNNING
        return AnalysisStart(
            status_code=response.status_code,
            already_running=already_running,
            message=body.message,
            transport=body.transport,
        )

    async def get_status(self, repo_key: str) -> AnalysisStatusResponse:
        """Fetch the backend's job status for a repository key."""
        context = "Fetching analysis status"
        response = await self._request(
            "GET", "/analysis_status", context, params={"repo_name": repo_key}
        )
        handle_error_response(response, context)

        try:
            return AnalysisStatusResponse.model_validate(self._json(response, "analysis status"))
        except ValidationError as e:
            raise MalformedPayloadError("analysis status", str(e)) from e

    async def fetch_snapshot(self, repo_key: str) -> list[AnalysisResult]:
        """Fetch the authoritative, persisted result set for a repository key."""
        context = "Failed to fetch analysis data"
        response = await self._request("GET", "/analyzedb", context, params={"repo_name": repo_key})
        handle_error_response(response, context)

        data = self._json(response, "analysis snapshot") or []
        try:
            return _results.validate_python(data)
        except ValidationError as e:
            raise MalformedPayloadError("analysis snapshot", str(e)) from e

    async def fetch_analyzed_timestamps(self, repo_key: str) -> list[str]:
        """Fetch ISO timestamps of commits that already have stored results."""
        context = "Fetching analyzed commit timestamps"
        response = await self._request("GET", "/timestamps", context, params={"repo_name": repo_key})
        handle_error_response(response, context)

        data = self._json(response, "analyzed timestamps") or []
        try:
            return _timestamps.validate_python(data)
        except ValidationError as e:
            raise MalformedPayloadError("analyzed timestamps", str(e)) from e

    @cached_backend_call(history_cache)
    async def fetch_commit_history(self, repo_url: str) -> list[str]:
        """Fetch ISO timestamps of every commit in the repository."""
        context = "Fetching commit timestamps"
        response = await self._request("GET", "/historytime", context, params={"repo_url": repo_url})
        handle_error_response(response, context)

        data = self._json(response, "commit history")
        if not isinstance(data, dict) or "commit_dates" not in data:
            logger.warning(f"No commit dates found in history response for {repo_url}")
            return []
        try:
            return _timestamps.validate_python(data["commit_dates"] or [])
        except ValidationError as e:
            raise MalformedPayloadError("commit history", str(e)) from e

    async def stream_analysis(self, repo_url: str) -> AsyncIterator[StreamMessage]:
        """
        Open the analysis event stream and yield its messages in arrival order.

        The generator ends when the server closes the stream. Close it (or
        cancel the consuming task) to drop the connection early.
        """
        context = "Failed to connect to analysis stream."
        timeout = httpx.Timeout(
            settings.request_timeout_seconds,
            connect=settings.connect_timeout_seconds,
            read=settings.stream_idle_timeout_seconds,
        )
        try:
            async with self.client.stream(
                "GET",
                "/analyze",
                params={"repo_url": repo_url},
                headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
                timeout=timeout,
            ) as response:
                if not response.is_success:
                    await response.aread()
                    handle_error_response(response, context)

                async for raw in iter_sse_data(response.aiter_lines()):
                    payload = decode_json_object(raw, "stream message")
                    try:
                        yield StreamMessage.model_validate(payload)
                    except ValidationError as e:
                        raise MalformedPayloadError("stream message", str(e)) from e
        except httpx.RequestError as e:
            logger.warning(f"Analysis stream for {repo_url} failed: {e!r}")
            raise BackendAPIError(context) from e
