"""Data types for the analysis job lifecycle."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from skilltrace.schemas.analysis import AnalysisResult, FileChangeEvent


class JobState(str, Enum):
    """Lifecycle state of the analysis job for the active repository."""

    IDLE = "idle"
    STARTING = "starting"
    ATTACHING = "attaching"
    STREAMING = "streaming"
    POLLING = "polling"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def in_flight(self) -> bool:
        """True while a job is being started, attached to, or tracked."""
        return self in (JobState.STARTING, JobState.ATTACHING, JobState.STREAMING, JobState.POLLING)

    @property
    def tracking(self) -> bool:
        """True once a job has been started or joined and is being followed."""
        return self in (JobState.STARTING, JobState.STREAMING, JobState.POLLING)


@dataclass
class Commit:
    """File changes grouped under one commit."""

    sha: str
    author: str
    timestamp: datetime
    file_changes: list[FileChangeEvent] = field(default_factory=list)


# Transport events: the only inputs a TransportSession feeds the controller.


@dataclass(frozen=True)
class ProgressEvent:
    progress: int  # 0..100
    message: str


@dataclass(frozen=True)
class ResultEvent:
    result: AnalysisResult


@dataclass(frozen=True)
class ErrorEvent:
    message: str


@dataclass(frozen=True)
class CompleteEvent:
    pass


TransportEvent = ProgressEvent | ResultEvent | ErrorEvent | CompleteEvent


@dataclass(frozen=True)
class JobSnapshot:
    """Point-in-time view of the controller, handed to subscribers."""

    repo_key: str | None
    repo_url: str | None
    state: JobState
    progress: int
    message: str
    result_count: int
    total_months: int
