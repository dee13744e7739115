"""Half-open time intervals and the slot arithmetic built on them.

Pure functions only: callers hand in already-validated datetimes, so none of
these raise.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import NamedTuple


class Interval(NamedTuple):
    """[start, end) time window."""

    start: datetime
    end: datetime

    @classmethod
    def from_duration(cls, start: datetime, minutes: int) -> "Interval":
        return cls(start, start + timedelta(minutes=minutes))


def overlaps(a: Interval, b: Interval) -> bool:
    """True iff a and b share positive-length time. Touching endpoints do not overlap."""
    return a.start < b.end and b.start < a.end


def merge(intervals: Iterable[Interval]) -> list[Interval]:
    """Sort by start and coalesce overlapping or touching intervals."""
    merged: list[Interval] = []
    for current in sorted(i for i in intervals if i.start < i.end):
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = Interval(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged


def subtract_busy_from_window(window: Interval, busy: Iterable[Interval]) -> list[Interval]:
    """Ordered sub-intervals of window not covered by any busy interval."""
    free: list[Interval] = []
    cursor = window.start
    for b in merge(busy):
        if b.end <= cursor:
            continue
        if b.start >= window.end:
            break
        if b.start > cursor:
            free.append(Interval(cursor, b.start))
        cursor = max(cursor, b.end)
        if cursor >= window.end:
            break
    if cursor < window.end:
        free.append(Interval(cursor, window.end))
    return free


def quantize(
    free: Iterable[Interval],
    step_minutes: int,
    slot_duration_minutes: int,
    anchor: datetime | None = None,
) -> list[datetime]:
    """Start instants every step_minutes inside each free interval where the whole slot fits.

    With an anchor, candidates lie on the grid anchor + k * step (so a gap that opens
    at 10:45 on a grid anchored at 09:00 yields 11:00, not 10:45). Without one, each
    free interval starts its own grid.
    """
    step = timedelta(minutes=step_minutes)
    duration = timedelta(minutes=slot_duration_minutes)
    starts: list[datetime] = []
    for interval in free:
        current = interval.start
        if anchor is not None and current > anchor:
            offset = (current - anchor) % step
            if offset:
                current += step - offset
        while current + duration <= interval.end:
            starts.append(current)
            current += step
    return starts
