"""Per-series storage of recurrence exceptions.

Each series maps the normalized original date of an occurrence to at most one
override. Putting a second override for the same day replaces the first.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Optional

from .date_utils import normalize_date
from .recurrence_exceptions import RecurrenceException

logger = logging.getLogger(__name__)

_EMPTY: Mapping[datetime, RecurrenceException] = {}


class ExceptionStore:
    """Map of ``series_id -> {normalized date -> exception}``."""

    def __init__(self) -> None:
        self._by_series: dict[str, dict[datetime, RecurrenceException]] = {}

    def __contains__(self, series_id: object) -> bool:
        return series_id in self._by_series

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._by_series.values())

    def put(self, series_id: str, exception: RecurrenceException) -> bool:
        """Store ``exception`` under its key.

        Returns:
            True if an existing exception for that day was overwritten
        """
        entries = self._by_series.setdefault(series_id, {})
        key = exception.key
        overwrote = key in entries
        entries[key] = exception
        if overwrote:
            logger.debug("Overwrote %s exception for %s on %s", exception.kind, series_id, key.date())
        return overwrote

    def put_many(self, series_id: str, exceptions: Iterable[RecurrenceException]) -> int:
        """Store every exception for ``series_id``; later entries win on key clashes."""
        entries = self._by_series.setdefault(series_id, {})
        stored = 0
        for exception in exceptions:
            entries[exception.key] = exception
            stored += 1
        return stored

    def remove(self, series_id: str, original_date: datetime) -> Optional[RecurrenceException]:
        entries = self._by_series.get(series_id)
        if not entries:
            return None
        removed = entries.pop(normalize_date(original_date), None)
        if not entries:
            del self._by_series[series_id]
        return removed

    def get(self, series_id: str, original_date: datetime) -> Optional[RecurrenceException]:
        entries = self._by_series.get(series_id)
        if entries is None:
            return None
        return entries.get(normalize_date(original_date))

    def for_series(self, series_id: str) -> Mapping[datetime, RecurrenceException]:
        """Read view of a series' exceptions (empty mapping when there are none)."""
        return self._by_series.get(series_id, _EMPTY)

    def list(self, series_id: str) -> list[RecurrenceException]:
        """Exceptions of a series ordered by original date."""
        entries = self._by_series.get(series_id, _EMPTY)
        return [entries[key] for key in sorted(entries)]

    def drop_series(self, series_id: str) -> int:
        removed = self._by_series.pop(series_id, None)
        return len(removed) if removed else 0

    def clear(self) -> None:
        self._by_series.clear()

    def split_off(self, series_id: str, new_series_id: str, from_date: datetime) -> int:
        """Move exceptions dated on or after ``from_date`` to ``new_series_id``.

        Args:
            series_id: Series losing the exceptions
            new_series_id: Series receiving them
            from_date: First day (by normalized date) that moves

        Returns:
            Number of exceptions moved
        """
        entries = self._by_series.get(series_id)
        if not entries:
            return 0

        boundary = normalize_date(from_date)
        moving = [key for key in entries if key >= boundary]
        if not moving:
            return 0

        target = self._by_series.setdefault(new_series_id, {})
        for key in moving:
            target[key] = entries.pop(key)
        if not entries:
            del self._by_series[series_id]

        logger.debug("Moved %d exceptions from %s to %s", len(moving), series_id, new_series_id)
        return len(moving)
