"""Pydantic schemas: backend wire payloads and dashboard API responses."""

from skilltrace.schemas.analysis import (
    AnalysisResult,
    AnalysisStatus,
    AnalysisStatusResponse,
    FileChangeEvent,
    StartAnalysisBody,
    StreamMessage,
    TransportKind,
)
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

__all__ = [
    "AnalysisResult",
    "AnalysisStatus",
    "AnalysisStatusResponse",
    "CommitHistoryResponse",
    "CommitResponse",
    "CommitsRequest",
    "CommitsResponse",
    "FileChangeEvent",
    "FilteredResultsResponse",
    "JobStatusResponse",
    "MonthBucketsResponse",
    "RepositoryRequest",
    "StartAnalysisBody",
    "StreamMessage",
    "TransportKind",
]
