"""Calendar-month arithmetic for result windows.

All datetimes handled here are timezone-aware UTC (see schemas.analysis).
"""

from datetime import UTC, datetime


def months_between(start: datetime, end: datetime) -> int:
    """Whole calendar months from `start`'s month to `end`'s month (Jan 31 -> Feb 1 is 1)."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def month_start(value: datetime, months_back: int = 0) -> datetime:
    """First instant of the month lying `months_back` calendar months before `value`'s month."""
    index = value.year * 12 + (value.month - 1) - months_back
    year, month = divmod(index, 12)
    return datetime(year, month + 1, 1, tzinfo=UTC)


def month_label(value: datetime) -> str:
    return f"{value.year:04d}-{value.month:02d}"
