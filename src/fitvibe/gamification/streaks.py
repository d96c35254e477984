"""Streak computation over activity completion timestamps.

A streak is a run of consecutive calendar days with at least one completed
activity. Days are bucketed in ``tz`` (UTC unless the caller passes the
user's zone); naive timestamps are taken to be UTC.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo

STREAK_MILESTONES = (3, 7, 14, 30, 60, 100, 365)


@dataclass(frozen=True)
class StreakSummary:
    current: int
    longest: int
    last_active_date: date | None
    active_days: int


def _day_key(ts: datetime, tz: tzinfo) -> date:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(tz).date()


def activity_days(timestamps: Iterable[datetime], tz: tzinfo = timezone.utc) -> list[date]:
    """Distinct active days, ascending."""
    return sorted({_day_key(ts, tz) for ts in timestamps})


def compute_streaks(
    timestamps: Iterable[datetime],
    today: date | None = None,
    tz: tzinfo = timezone.utc,
) -> StreakSummary:
    """Current and longest streak.

    The current streak counts back from the latest active day, but only if
    that day is ``today`` or yesterday; otherwise it is 0. Days after
    ``today`` are ignored.
    """
    if today is None:
        today = datetime.now(tz).date()
    days = [d for d in activity_days(timestamps, tz) if d <= today]
    if not days:
        return StreakSummary(current=0, longest=0, last_active_date=None, active_days=0)

    longest = run = 1
    for prev, cur in zip(days, days[1:]):
        run = run + 1 if cur - prev == timedelta(days=1) else 1
        longest = max(longest, run)

    last = days[-1]
    current = 0
    if today - last <= timedelta(days=1):
        current = 1
        for prev, cur in zip(reversed(days[:-1]), reversed(days[1:])):
            if cur - prev != timedelta(days=1):
                break
            current += 1

    return StreakSummary(current=current, longest=longest, last_active_date=last, active_days=len(days))


def activity_calendar(
    timestamps: Iterable[datetime],
    start: date,
    end: date,
    tz: tzinfo = timezone.utc,
) -> list[tuple[date, int]]:
    """Per-day activity counts for every day in ``[start, end]``."""
    if end < start:
        msg = "end must not be before start"
        raise ValueError(msg)
    counts = Counter(_day_key(ts, tz) for ts in timestamps)
    span = (end - start).days + 1
    return [(start + timedelta(days=i), counts.get(start + timedelta(days=i), 0)) for i in range(span)]


def reached_milestone(previous: int, current: int) -> int | None:
    """Largest milestone crossed when the streak moved from ``previous`` to ``current``."""
    crossed = [m for m in STREAK_MILESTONES if previous < m <= current]
    return crossed[-1] if crossed else None
