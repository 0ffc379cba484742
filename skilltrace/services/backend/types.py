"""Data types for analysis backend responses."""

from dataclasses import dataclass, field

from skilltrace.schemas.analysis import TransportKind


@dataclass
class AnalysisStart:
    """Outcome of a successful `GET /analyze` start request."""

    status_code: int  # 202 (job created) or 409 (already running)
    already_running: bool
    message: str | None = None
    transport: TransportKind | None = None  # None = backend didn't say


@dataclass
class CommitHistory:
    """Commit timestamps for the history chart."""

    commit_dates: list[str] = field(default_factory=list)  # every commit in the repo
    analyzed: list[str] = field(default_factory=list)  # commits with stored results
