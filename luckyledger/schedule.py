"""
schedule.py - Draw-date rules.

A draw may start only when the day of month of the current time is one of the
configured draw days (7, 17 and 27 by default). Two rules are provided:

calendar_day_of_month
    The Gregorian day of month of the timestamp. This is the default.

approximate_day_of_month
    Day of month derived from whole days elapsed since an epoch, treating every
    year as 365 days and every month as 30 days:

        day = ((elapsed_days % 365) % 30) + 1

    It drifts from the calendar (days 31 and the 361st-365th day of a year wrap
    around) and is kept for parity with deployments that use it.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Callable, Iterable

EPOCH = datetime(1970, 1, 1)

SECONDS_PER_DAY = 86_400


def calendar_day_of_month(ts: datetime) -> int:
    """Gregorian day of month; aware timestamps are read in UTC."""
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return ts.day


def approximate_day_of_month(ts: datetime, epoch: datetime = EPOCH) -> int:
    """
    365-day-year / 30-day-month approximation.

    Raises:
        ValueError: If ts is before the epoch
    """
    if (ts.tzinfo is None) != (epoch.tzinfo is None):
        raise ValueError("ts and epoch must both be naive or both be aware")
    elapsed = ts - epoch
    if elapsed.total_seconds() < 0:
        raise ValueError(f"{ts} is before epoch {epoch}")
    elapsed_days = int(elapsed.total_seconds()) // SECONDS_PER_DAY
    return (elapsed_days % 365) % 30 + 1


def approximate_rule(epoch: datetime = EPOCH) -> Callable[[datetime], int]:
    """Bind approximate_day_of_month to an epoch for use as a DrawConfig.day_rule."""
    def rule(ts: datetime) -> int:
        return approximate_day_of_month(ts, epoch)
    rule.__name__ = "approximate_day_of_month"
    return rule


def is_draw_day(
    ts: datetime,
    days: Iterable[int],
    rule: Callable[[datetime], int] = calendar_day_of_month,
) -> bool:
    return rule(ts) in tuple(days)
