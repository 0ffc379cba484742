"""Analysis job endpoints: select, start, follow and window the active repository."""

import logging

from fastapi import APIRouter, Depends, Query

from skilltrace.api.deps import get_controller, require_active_repository
from skilltrace.core.exceptions import BackendUnavailableError, ValidationError
from skilltrace.schemas.dashboard import (
    CommitHistoryResponse,
    CommitResponse,
    CommitsRequest,
    CommitsResponse,
    FilteredResultsResponse,
    JobStatusResponse,
    MonthBucketsResponse,
    RepositoryRequest,
)
from skilltrace.services.analysis import JobController, JobSnapshot, TimeWindow, clamp_months
from skilltrace.services.backend import BackendAPIError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analysis", tags=["analysis"])


def _status(snapshot: JobSnapshot) -> JobStatusResponse:
    return JobStatusResponse(
        repo_key=snapshot.repo_key,
        repo_url=snapshot.repo_url,
        state=snapshot.state.value,
        progress=snapshot.progress,
        message=snapshot.message,
        result_count=snapshot.result_count,
        total_months=snapshot.total_months,
    )


@router.post("/select", response_model=JobStatusResponse)
async def select_repository(
    data: RepositoryRequest,
    controller: JobController = Depends(get_controller),
) -> JobStatusResponse:
    """
    Make a repository active.

    Loads its stored results and, if the backend reports an analysis already
    running for it, follows that job by polling instead of starting a new one.
    """
    try:
        snapshot = await controller.select_repository(data.repo_url)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    return _status(snapshot)


@router.post("/start", response_model=JobStatusResponse)
async def start_analysis(
    data: RepositoryRequest,
    controller: JobController = Depends(get_controller),
) -> JobStatusResponse:
    """
    Start (or attach to) the analysis of a repository.

    Backend failures don't fail the request: they come back as state "error"
    with the backend's message. Poll GET /analysis/status for progress.
    """
    try:
        snapshot = await controller.start_analysis(data.repo_url)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    return _status(snapshot)


@router.post("/cancel", response_model=JobStatusResponse)
async def cancel_analysis(
    controller: JobController = Depends(get_controller),
) -> JobStatusResponse:
    """Stop following the current job. The backend job itself is not aborted."""
    controller.cancel()
    return _status(controller.snapshot())


@router.get("/status", response_model=JobStatusResponse)
async def get_status(
    controller: JobController = Depends(get_controller),
) -> JobStatusResponse:
    """Current job state, progress and status message."""
    return _status(controller.snapshot())


@router.get("/results", response_model=FilteredResultsResponse)
async def get_results(
    months: int | None = Query(default=None, ge=1, description="Window width; defaults to all months"),
    controller: JobController = Depends(require_active_repository),
) -> FilteredResultsResponse:
    """Results for the newest `months` calendar months (clamped to the available range)."""
    store = controller.store
    selected = clamp_months(months or store.total_months, store.total_months)
    bounds = TimeWindow(selected).bounds(store)

    return FilteredResultsResponse(
        selected_months=selected,
        total_months=store.total_months,
        window_start=bounds[0] if bounds else None,
        window_end=bounds[1] if bounds else None,
        min_timestamp=store.min_timestamp,
        max_timestamp=store.max_timestamp,
        results=controller.get_filtered_results(selected),
    )


@router.get("/buckets", response_model=MonthBucketsResponse)
async def get_month_buckets(
    controller: JobController = Depends(require_active_repository),
) -> MonthBucketsResponse:
    """Result counts per month, for the window slider."""
    return MonthBucketsResponse(buckets=controller.store.month_buckets())


@router.post("/commits", response_model=CommitsResponse)
async def list_commits(
    data: CommitsRequest,
    controller: JobController = Depends(require_active_repository),
) -> CommitsResponse:
    """List the active repository's commits with their changed files."""
    try:
        commits = await controller.load_commits(data.limit)
    except BackendAPIError as e:
        logger.error(f"Error fetching commits for {controller.repo_key}: {e.message}")
        raise BackendUnavailableError(e.message) from e

    return CommitsResponse(
        commits=[
            CommitResponse(
                sha=c.sha,
                author=c.author,
                timestamp=c.timestamp,
                file_changes=c.file_changes,
            )
            for c in commits
        ],
        total_files=controller.total_files,
    )


@router.get("/history", response_model=CommitHistoryResponse)
async def get_history(
    controller: JobController = Depends(require_active_repository),
) -> CommitHistoryResponse:
    """Commit timestamps (all and analysed) for the history chart."""
    try:
        history = await controller.history()
    except BackendAPIError as e:
        logger.error(f"Error fetching commit timestamps for {controller.repo_key}: {e.message}")
        raise BackendUnavailableError(e.message) from e
    return CommitHistoryResponse(commit_dates=history.commit_dates, analyzed=history.analyzed)
