"""Single-slot cache of expanded occurrences per series.

Entries are only valid for one globally tracked active window. Activating a
different window drops every entry; there is no per-range memoization.
Each entry holds the full candidate list computed over the padded range, so
callers re-filter by overlap on every read.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .date_utils import to_iso8601
from .models import CalendarEvent, DateRange
from .recurrence_exceptions import DeletedOccurrence, RecurrenceException

logger = logging.getLogger(__name__)


class ExpansionCache:
    """Occurrence lists keyed by series id, valid under ``active_window`` only.

    Example:
        cache = ExpansionCache()

        cached = cache.get("standup", window)
        if cached is None:
            cached = expand(...)
            cache.store("standup", window, cached)

        # After adding a Deleted exception for one day
        cache.patch("standup", exception, master)
    """

    def __init__(self) -> None:
        self.entries: dict[str, list[CalendarEvent]] = {}
        self.active_window: Optional[DateRange] = None
        self.stats = {
            "hits": 0,
            "misses": 0,
            "invalidations": 0,
            "patches": 0,
        }

    def __contains__(self, series_id: object) -> bool:
        return series_id in self.entries

    def activate(self, window: DateRange) -> bool:
        """Make ``window`` the active window.

        Returns:
            True if the window changed and every entry was dropped
        """
        if window == self.active_window:
            return False

        dropped = len(self.entries)
        self.entries.clear()
        self.active_window = window
        if dropped:
            self.stats["invalidations"] += 1
            logger.debug(
                "Active window changed to %s..%s, dropped %d cached series",
                window.start,
                window.end,
                dropped,
            )
        return True

    def get(self, series_id: str, window: DateRange) -> Optional[list[CalendarEvent]]:
        """Cached candidates for ``series_id`` if ``window`` is the active one."""
        if window == self.active_window and series_id in self.entries:
            self.stats["hits"] += 1
            logger.debug("Expansion cache hit for series: %s", series_id)
            return self.entries[series_id]

        self.stats["misses"] += 1
        logger.debug("Expansion cache miss for series: %s", series_id)
        return None

    def store(self, series_id: str, window: DateRange, occurrences: list[CalendarEvent]) -> None:
        self.activate(window)
        self.entries[series_id] = occurrences
        logger.debug("Cached %d occurrences for series: %s", len(occurrences), series_id)

    def invalidate(self, series_id: str) -> bool:
        """Drop one series entry; returns True if there was one."""
        if self.entries.pop(series_id, None) is None:
            return False
        self.stats["invalidations"] += 1
        logger.debug("Invalidated cached expansion for series: %s", series_id)
        return True

    def invalidate_all(self) -> None:
        """Drop every entry and forget the active window."""
        old_size = len(self.entries)
        self.entries.clear()
        self.active_window = None
        self.stats["invalidations"] += 1
        logger.debug("Invalidated all cached expansions (cleared %d series)", old_size)

    def patch(self, series_id: str, exception: RecurrenceException, master: CalendarEvent) -> None:
        """Apply a newly added, non-overwriting exception to a cached entry in place.

        - Deleted: the occurrence originally on that day is removed
        - Rescheduled: that occurrence is re-timed to ``new_start``
        - Modified: that occurrence is replaced by the replacement event

        When no cached occurrence carries the exception's key, a deletion has
        nothing to do, while a reschedule or modification may now land in the
        active window, so the series entry is dropped instead.
        """
        cached = self.entries.get(series_id)
        if cached is None:
            return

        occurrence_id = to_iso8601(exception.key)
        index = next(
            (i for i, event in enumerate(cached) if event.occurrence_id == occurrence_id),
            None,
        )

        if index is None:
            if not isinstance(exception, DeletedOccurrence):
                self.invalidate(series_id)
            return

        replacement = exception.resolve(master)
        if replacement is None:
            del cached[index]
        else:
            cached[index] = replacement
            # Keep the candidate list in start order for later reads
            cached.sort(key=lambda event: event.start)

        self.stats["patches"] += 1
        logger.debug(
            "Patched cached expansion for %s: %s on %s",
            series_id,
            exception.kind,
            occurrence_id,
        )

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dict with hits, misses, hit_rate (0-100), invalidations, patches,
            current_size (cached series) and the active window bounds
        """
        total_requests = self.stats["hits"] + self.stats["misses"]
        hit_rate = (self.stats["hits"] / total_requests * 100) if total_requests > 0 else 0.0

        return {
            "hits": self.stats["hits"],
            "misses": self.stats["misses"],
            "hit_rate": round(hit_rate, 2),
            "invalidations": self.stats["invalidations"],
            "patches": self.stats["patches"],
            "current_size": len(self.entries),
            "active_window": (
                (self.active_window.start, self.active_window.end) if self.active_window else None
            ),
        }

    def clear_stats(self) -> None:
        """Clear cache statistics (useful for testing)."""
        self.stats = {
            "hits": 0,
            "misses": 0,
            "invalidations": 0,
            "patches": 0,
        }
