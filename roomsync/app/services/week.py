"""
services/week.py — Calendar week helpers.

A week opens on Sunday. week_start(d) is the most recent Sunday on or before
d. Weeks are keyed by that date; time of day never enters the key.

Instants (deadlines) are placed on the calendar by their LOCAL date: a task
due Saturday 20:00 local belongs to that Saturday even when the stored UTC
value is already Sunday.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo

WEEK_LENGTH = timedelta(days=7)


def local_date(moment: datetime, tz: tzinfo | None = None) -> date:
    """
    Calendar date of `moment` in `tz` (the system zone when None).
    Naive datetimes are taken as UTC, which is how they come back from SQLite.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def week_start(day: date) -> date:
    if isinstance(day, datetime):
        day = day.date()
    # date.weekday(): Monday == 0 ... Sunday == 6
    return day - timedelta(days=(day.weekday() + 1) % 7)


def in_week(day: date, start: date, tz: tzinfo | None = None) -> bool:
    """True if `day` (a date, or an instant read in `tz`) falls in the 7-day window opening on `start`."""
    if isinstance(day, datetime):
        day = local_date(day, tz)
    return start <= day < start + WEEK_LENGTH


def on_day(moment: datetime, day: date, tz: tzinfo | None = None) -> bool:
    """True if the instant `moment` falls on the local calendar date `day`."""
    return local_date(moment, tz) == day
