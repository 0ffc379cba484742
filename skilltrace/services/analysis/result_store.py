"""
Deduplicating accumulator of per-file analysis results.

Results arrive in two ways: one at a time from the analysis stream, and in
bulk when the authoritative snapshot is loaded after a job completes. Both
paths keep exactly one result per `(sha, filename)` and keep the derived
time range in step with the contents.
"""

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime

from skilltrace.schemas.analysis import AnalysisResult
from skilltrace.services.analysis.months import month_label, months_between

logger = logging.getLogger(__name__)

ResultKey = tuple[str, str]


class ResultStore:
    """Insertion-ordered set of AnalysisResult keyed by `(sha, filename)`."""

    def __init__(self, results: Iterable[AnalysisResult] = ()) -> None:
        self._results: dict[ResultKey, AnalysisResult] = {}
        self.min_timestamp: datetime | None = None
        self.max_timestamp: datetime | None = None
        self.replace_all(results)

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[AnalysisResult]:
        return iter(self._results.values())

    def __contains__(self, key: object) -> bool:
        return key in self._results

    @property
    def total_months(self) -> int:
        """Calendar months spanned by the results, counting both ends (0 when empty)."""
        if self.min_timestamp is None or self.max_timestamp is None:
            return 0
        return months_between(self.min_timestamp, self.max_timestamp) + 1

    def results(self) -> list[AnalysisResult]:
        return list(self._results.values())

    def append(self, result: AnalysisResult) -> bool:
        """
        Add a result unless one with the same `(sha, filename)` is present.

        Returns:
            True if the result was inserted, False if it was a duplicate
        """
        if result.key in self._results:
            return False

        self._results[result.key] = result
        ts = result.timestamp
        if self.min_timestamp is None or ts < self.min_timestamp:
            self.min_timestamp = ts
        if self.max_timestamp is None or ts > self.max_timestamp:
            self.max_timestamp = ts
        return True

    def replace_all(self, results: Iterable[AnalysisResult]) -> None:
        """
        Replace the contents with an authoritative snapshot.

        Duplicate keys in the input keep the last value seen, at the position
        where the key first appeared.
        """
        replacement: dict[ResultKey, AnalysisResult] = {}
        received = 0
        for result in results:
            replacement[result.key] = result
            received += 1

        if received > len(replacement):
            logger.debug(f"Snapshot contained {received - len(replacement)} duplicate results")

        self._results = replacement
        self._recompute()

    def clear(self) -> None:
        self._results = {}
        self._recompute()

    def month_buckets(self) -> dict[str, int]:
        """Result counts per calendar month (`YYYY-MM`), oldest first."""
        buckets: dict[str, int] = {}
        for result in sorted(self._results.values(), key=lambda r: r.timestamp):
            label = month_label(result.timestamp)
            buckets[label] = buckets.get(label, 0) + 1
        return buckets

    def _recompute(self) -> None:
        if not self._results:
            self.min_timestamp = None
            self.max_timestamp = None
            return
        timestamps = [r.timestamp for r in self._results.values()]
        self.min_timestamp = min(timestamps)
        self.max_timestamp = max(timestamps)
