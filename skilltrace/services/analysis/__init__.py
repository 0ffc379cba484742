"""
Analysis job lifecycle package.

Module structure:
- controller.py: JobController state machine (start, attach, cancel, complete)
- transport.py: Streaming and polling TransportSessions
- result_store.py: Deduplicating ResultStore with derived time range
- time_window.py: Month-window filtering over a ResultStore
- aggregator.py: Grouping of per-file change events into commits
- months.py: Calendar-month arithmetic
- types.py: JobState, Commit, transport events, JobSnapshot
"""

from skilltrace.services.analysis.aggregator import group_commits
from skilltrace.services.analysis.controller import JobController
from skilltrace.services.analysis.result_store import ResultStore
from skilltrace.services.analysis.time_window import TimeWindow, clamp_months, filter_results
from skilltrace.services.analysis.transport import (
    PollingTransport,
    StreamingTransport,
    TransportSession,
    transport_for,
)
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

__all__ = [
    "JobController",
    "TransportSession",
    "StreamingTransport",
    "PollingTransport",
    "transport_for",
    "ResultStore",
    "TimeWindow",
    "clamp_months",
    "filter_results",
    "group_commits",
    "Commit",
    "JobSnapshot",
    "JobState",
    "TransportEvent",
    "ProgressEvent",
    "ResultEvent",
    "ErrorEvent",
    "CompleteEvent",
]
