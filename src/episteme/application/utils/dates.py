"""
Datetime helpers shared by the scheduling services.

Timestamps are expected to be timezone-aware. Naive values are read as
local wall-clock time, the same way datetime.astimezone() does.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(dt: datetime) -> datetime:
    """Attach the local timezone to a naive datetime; aware values pass through."""
    if dt.tzinfo is None:
        return dt.astimezone()
    return dt


def align(ts: datetime, ref: datetime) -> datetime:
    """
    Express `ts` on the wall clock of `ref`.

    The result is comparable with `ref` (both naive or both aware) and its
    date/hour fields are the ones an observer in ref's timezone would read.
    """
    if ref.tzinfo is None:
        if ts.tzinfo is None:
            return ts
        return ts.astimezone().replace(tzinfo=None)
    return ensure_aware(ts).astimezone(ref.tzinfo)


def ms_between(start: datetime, end: datetime) -> int:
    """Whole milliseconds from start to end (negative if end is earlier)."""
    delta = align(end, start) - start
    return int(delta.total_seconds() * 1000)


def whole_days_between(start: datetime, end: datetime) -> int:
    """Whole days elapsed from start to end, floored at zero."""
    delta = align(end, start) - start
    return max(0, delta.days)
