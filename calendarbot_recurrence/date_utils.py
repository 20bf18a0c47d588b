"""Calendar-day arithmetic helpers for recurrence expansion.

All helpers work on wall-clock values. Naive datetimes are the norm; aware
datetimes are accepted as long as every value shares one tzinfo, in which case
Python's same-zone arithmetic keeps the wall clock and re-derives the UTC
offset (so a 21:00 event stays at 21:00 across a DST transition).
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from .models import CalendarEvent


class MasterOffset(NamedTuple):
    """Start-to-end gap of a master event expressed in calendar units."""

    day_span: int
    hours: int
    minutes: int
    seconds: int
    microseconds: int


def normalize_date(dt: datetime) -> datetime:
    """Return the start of the day for ``dt`` (tzinfo is preserved)."""
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(dt: datetime) -> datetime:
    """Return the last representable instant of the day for ``dt``."""
    return dt.replace(hour=23, minute=59, second=59, microsecond=999999)


def day_span(a: datetime, b: datetime) -> int:
    """Number of calendar days from ``a``'s date to ``b``'s date.

    Uses date ordinals rather than ``(b - a).days`` so that a 23 or 25 hour
    day never changes the result.
    """
    return b.date().toordinal() - a.date().toordinal()


def add_days(dt: datetime, days: int) -> datetime:
    """Shift ``dt`` by whole calendar days, keeping its time of day."""
    return dt + timedelta(days=days)


def apply_offset(
    base: datetime,
    days: int,
    hours: int = 0,
    minutes: int = 0,
    seconds: int = 0,
    microseconds: int = 0,
) -> datetime:
    """Build a timestamp ``days`` calendar days after ``base``.

    Each time component of ``base`` is incremented by the matching delta and
    normal carry applies, so an hour of 25 rolls into the next day and a
    negative minute borrows from the hour.

    Args:
        base: Timestamp providing the date and the starting time of day
        days: Calendar days to add to ``base``'s date
        hours: Delta added to ``base.hour``
        minutes: Delta added to ``base.minute``
        seconds: Delta added to ``base.second``
        microseconds: Delta added to ``base.microsecond``

    Returns:
        New timestamp with ``base``'s tzinfo
    """
    midnight = normalize_date(base)
    return midnight + timedelta(
        days=days,
        hours=base.hour + hours,
        minutes=base.minute + minutes,
        seconds=base.second + seconds,
        microseconds=base.microsecond + microseconds,
    )


def master_offset(master: CalendarEvent) -> MasterOffset:
    """Describe a master's start-to-end gap as day span plus per-field deltas."""
    start, end = master.start, master.end
    return MasterOffset(
        day_span=day_span(start, end),
        hours=end.hour - start.hour,
        minutes=end.minute - start.minute,
        seconds=end.second - start.second,
        microseconds=end.microsecond - start.microsecond,
    )


def offset_end(master: CalendarEvent, start: datetime) -> datetime:
    """End of an instance of ``master`` starting at ``start``.

    Never ``start + (master.end - master.start)``: a fixed duration drifts by
    an hour when the instance and the master sit on opposite sides of a DST
    change.
    """
    offset = master_offset(master)
    return apply_offset(
        start,
        offset.day_span,
        offset.hours,
        offset.minutes,
        offset.seconds,
        offset.microseconds,
    )


def to_iso8601(dt: datetime) -> str:
    """Format ``dt`` as ``YYYY-MM-DDTHH:MM:SS.mmm``.

    Microseconds are appended only when the value is not a whole millisecond.
    No zone suffix is ever written; occurrence ids rely on this being
    bit-exact, e.g. ``2024-06-10T00:00:00.000``.
    """
    local = dt.replace(tzinfo=None)
    if local.microsecond % 1000:
        return local.isoformat(timespec="microseconds")
    return local.isoformat(timespec="milliseconds")


def coerce_datetime(value: object, *, end_of_range: bool = False) -> object:
    """Turn a bare ``date`` into a ``datetime``; leave anything else alone.

    Args:
        value: Raw input (datetime, date, string, ...)
        end_of_range: Map a bare date to the last instant of that day instead
            of midnight

    Returns:
        A datetime for date inputs, otherwise ``value`` unchanged
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.max if end_of_range else time.min)
    return value
