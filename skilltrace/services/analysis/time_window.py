"""
Time-windowed view over a ResultStore.

The window always ends at the newest result and reaches back a number of
whole calendar months: a one-month window covers the newest result's month,
a three-month window that month plus the two before it. Both ends are
inclusive. Results keep the store's insertion order.
"""

from dataclasses import dataclass
from datetime import datetime

from skilltrace.schemas.analysis import AnalysisResult
from skilltrace.services.analysis.months import month_start
from skilltrace.services.analysis.result_store import ResultStore


def clamp_months(selected_months: int, total_months: int) -> int:
    """Clamp a requested window width into `[1, total_months]` (1 for an empty store)."""
    return max(1, min(selected_months, max(total_months, 1)))


@dataclass(frozen=True)
class TimeWindow:
    """A window `selected_months` calendar months wide, ending at the newest result."""

    selected_months: int

    def bounds(self, store: ResultStore) -> tuple[datetime, datetime] | None:
        """Inclusive `(start, end)` of the window, or None for an empty store."""
        if store.max_timestamp is None:
            return None
        end = store.max_timestamp
        return month_start(end, self.selected_months - 1), end

    def apply(self, store: ResultStore) -> list[AnalysisResult]:
        bounds = self.bounds(store)
        if bounds is None:
            return []
        start, end = bounds
        return [r for r in store if start <= r.timestamp <= end]


def filter_results(store: ResultStore, selected_months: int) -> list[AnalysisResult]:
    """
    Results falling inside a window of `selected_months` months.

    Callers clamp with `clamp_months` first; an empty store yields `[]` for
    any width.

    Raises:
        ValueError: if `selected_months` is outside `[1, store.total_months]`
    """
    if not len(store):
        return []
    if not 1 <= selected_months <= store.total_months:
        raise ValueError(
            f"selected_months must be within [1, {store.total_months}], got {selected_months}"
        )
    return TimeWindow(selected_months).apply(store)
