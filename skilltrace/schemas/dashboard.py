"""Request and response schemas for the dashboard-facing analysis API."""

from datetime import datetime

from pydantic import BaseModel, Field

from skilltrace.config import settings
from skilltrace.schemas.analysis import AnalysisResult, FileChangeEvent


class RepositoryRequest(BaseModel):
    """Body for selecting or analysing a repository."""

    repo_url: str = Field(min_length=1, description="Repository URL, e.g. https://github.com/org/repo.git")


class CommitsRequest(BaseModel):
    """Body for listing the active repository's commits."""

    limit: int | None = Field(
        default_factory=lambda: settings.default_commit_limit,
        ge=1,
        description="Number of commits to scan; null scans the whole history",
    )


class JobStatusResponse(BaseModel):
    """Current analysis job state for the active repository."""

    repo_key: str | None
    repo_url: str | None
    state: str = Field(description="idle|starting|attaching|streaming|polling|completed|error")
    progress: int = Field(ge=0, le=100)
    message: str
    result_count: int
    total_months: int


class FilteredResultsResponse(BaseModel):
    """Results inside the selected month window."""

    selected_months: int
    total_months: int
    window_start: datetime | None
    window_end: datetime | None
    min_timestamp: datetime | None
    max_timestamp: datetime | None
    results: list[AnalysisResult]


class MonthBucketsResponse(BaseModel):
    buckets: dict[str, int] = Field(description="Result counts per YYYY-MM, oldest first")


class CommitResponse(BaseModel):
    sha: str
    author: str
    timestamp: datetime
    file_changes: list[FileChangeEvent]


class CommitsResponse(BaseModel):
    commits: list[CommitResponse]
    total_files: int


class CommitHistoryResponse(BaseModel):
    commit_dates: list[str]
    analyzed: list[str]
