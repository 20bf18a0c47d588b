"""Occurrence generation for recurring master events.

For one master and one query window the engine:

1. Serves the cached candidates when the window is the active one
2. Pads the window start back by the master's duration so multi-day
   occurrences starting before the window are still enumerated
3. Fast-forwards DTSTART for daily/weekly rules without a count
4. Asks the evaluator for raw starts and overlays the series' exceptions
5. Adds orphaned reschedules/modifications whose effective dates land in the
   window
6. Caches the sorted candidates and returns those overlapping the window
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Optional

from .date_utils import normalize_date
from .errors import RecurrenceExpansionError
from .exception_store import ExceptionStore
from .expansion_cache import ExpansionCache
from .models import CalendarEvent, DateRange, Frequency, RecurrenceRule, Weekday
from .recurrence_exceptions import build_occurrence
from .rrule_evaluator import RecurrenceEvaluator, RRuleEvaluator

logger = logging.getLogger(__name__)


def advance_dtstart(origin: datetime, rule: RecurrenceRule, target: datetime) -> datetime:
    """Move ``origin`` forward to within one period of ``target``.

    Daily rules skip whole ``interval``-day periods and weekly rules whole
    ``interval * 7``-day periods, so the cadence stays aligned with the real
    origin. One full period of margin is always kept before ``target`` so a
    BYDAY selection early in that period is not skipped. Monthly and yearly
    rules are returned unchanged because their by-rules are anchored to the
    original origin.

    Args:
        origin: The master's real start
        rule: The master's recurrence rule
        target: Earliest instant the caller is interested in

    Returns:
        A start no later than ``target`` that produces the same occurrences
        after ``target`` as ``origin`` would
    """
    if target <= origin:
        return origin

    if rule.frequency == Frequency.DAILY:
        period_days = rule.interval
    elif rule.frequency == Frequency.WEEKLY:
        period_days = rule.interval * 7
    else:
        return origin

    periods = (target - origin).days // period_days
    safe_periods = max(periods - 1, 0)
    if safe_periods == 0:
        return origin
    return origin + timedelta(days=safe_periods * period_days)


def overlapping(events: list[CalendarEvent], window: DateRange) -> list[CalendarEvent]:
    """Events touching ``window``, in their existing order."""
    return [event for event in events if window.overlaps(event.start, event.end)]


class ExpansionEngine:
    """Expands recurring masters into occurrences with exceptions applied."""

    def __init__(
        self,
        cache: Optional[ExpansionCache] = None,
        exceptions: Optional[ExceptionStore] = None,
        evaluator: Optional[RecurrenceEvaluator] = None,
        week_start_provider: Optional[Callable[[], Weekday]] = None,
    ):
        """Initialize engine.

        Args:
            cache: Expansion cache shared with the owning controller
            exceptions: Exception store shared with the owning controller
            evaluator: Raw occurrence source (dateutil-backed by default)
            week_start_provider: Returns the fallback week start for rules
                without their own WKST
        """
        self.cache = cache if cache is not None else ExpansionCache()
        self.exceptions = exceptions if exceptions is not None else ExceptionStore()
        self.evaluator = evaluator if evaluator is not None else RRuleEvaluator()
        self._week_start_provider = week_start_provider or (lambda: Weekday.MONDAY)

    def expand(self, master: CalendarEvent, window: DateRange) -> list[CalendarEvent]:
        """Occurrences of ``master`` overlapping ``window``, ascending by start.

        Non-recurring masters yield themselves when they overlap. A rule the
        evaluator cannot handle yields no occurrences rather than an error.
        """
        if master.recurrence_rule is None:
            return [master] if window.contains_event(master) else []

        cached = self.cache.get(master.id, window)
        if cached is not None:
            return overlapping(cached, window)

        try:
            candidates = self._compute(master, window, fast_forward=True)
        except RecurrenceExpansionError as e:
            logger.warning("Failed to expand recurring event %s: %s", master.id, e)
            return []

        self.cache.store(master.id, window, candidates)
        return overlapping(candidates, window)

    def expand_from_origin(self, master: CalendarEvent, window: DateRange) -> list[CalendarEvent]:
        """Same result as ``expand`` but enumerated from the true origin, uncached."""
        if master.recurrence_rule is None:
            return [master] if window.contains_event(master) else []
        try:
            candidates = self._compute(master, window, fast_forward=False)
        except RecurrenceExpansionError as e:
            logger.warning("Failed to expand recurring event %s: %s", master.id, e)
            return []
        return overlapping(candidates, window)

    def _compute(
        self, master: CalendarEvent, window: DateRange, fast_forward: bool
    ) -> list[CalendarEvent]:
        rule = master.recurrence_rule
        assert rule is not None

        # The evaluator excludes `after`; step back one more microsecond so an
        # occurrence ending exactly at window.start is still enumerated
        padded_after = window.start - (master.end - master.start) - timedelta(microseconds=1)
        origin = master.start
        if fast_forward and not rule.is_count_limited:
            origin = advance_dtstart(master.start, rule, padded_after)

        raw_starts = self.evaluator.get_occurrences(
            rule, origin, padded_after, window.end, self._week_start_provider()
        )

        exceptions = self.exceptions.for_series(master.id)
        candidates: list[CalendarEvent] = []
        consumed: set[datetime] = set()

        for start in raw_starts:
            key = normalize_date(start)
            consumed.add(key)
            exception = exceptions.get(key)
            if exception is None:
                candidates.append(build_occurrence(master, start, key))
                continue
            effective = exception.resolve(master)
            if effective is not None and window.contains_event(effective):
                candidates.append(effective)

        for key, exception in exceptions.items():
            if key in consumed:
                continue
            effective = exception.resolve(master)
            if effective is not None and window.contains_event(effective):
                candidates.append(effective)

        candidates.sort(key=lambda event: event.start)
        logger.debug(
            "Expanded %s: %d raw starts, %d candidates (origin=%s, window=%s..%s)",
            master.id,
            len(raw_starts),
            len(candidates),
            origin,
            window.start,
            window.end,
        )
        return candidates
