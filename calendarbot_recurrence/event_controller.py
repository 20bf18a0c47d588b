"""Event store, range query facade and recurring series lifecycle.

The controller owns three pieces of state: master events by id, recurrence
exceptions per series and the expansion cache. Every public operation holds a
single re-entrant lock so the three stay consistent when a host calls in from
several threads.

Example:
    controller = EventController()
    controller.add_events([
        CalendarEvent(
            id="standup",
            title="Standup",
            start=datetime(2024, 6, 1, 9, 0),
            end=datetime(2024, 6, 1, 9, 15),
            recurrence_rule=RecurrenceRule(frequency=Frequency.DAILY),
        )
    ])
    controller.add_exception("standup", DeletedOccurrence(original_date=date(2024, 6, 11)))
    events = controller.get_events_for_range(DateRange.between(date(2024, 6, 10), date(2024, 6, 12)))
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any, Optional

from .date_utils import normalize_date, offset_end, to_iso8601
from .errors import InvalidSeriesOperationError, SeriesNotFoundError
from .exception_store import ExceptionStore
from .expansion_cache import ExpansionCache
from .expansion_engine import ExpansionEngine
from .models import CalendarEvent, ChangeType, DateRange, EventChangeInfo, Weekday
from .recurrence_exceptions import ModifiedOccurrence, RecurrenceException
from .rrule_evaluator import RecurrenceEvaluator, RRuleEvaluator

if TYPE_CHECKING:
    from .config_loader import EngineConfig

logger = logging.getLogger(__name__)

ChangeListener = Callable[[EventChangeInfo], Any]


class EventController:
    """Holds master events and answers range queries with expanded occurrences."""

    def __init__(
        self,
        first_day_of_week: Optional[Weekday] = None,
        evaluator: Optional[RecurrenceEvaluator] = None,
        config: Optional[EngineConfig] = None,
    ):
        """Initialize controller.

        Args:
            first_day_of_week: Fallback week start for rules without WKST;
                overrides ``config.first_day_of_week`` when given
            evaluator: Raw occurrence source; defaults to a dateutil evaluator
                capped at ``config.max_occurrences_per_rule``
            config: Engine configuration
        """
        if evaluator is None:
            evaluator = (
                RRuleEvaluator(config.max_occurrences_per_rule) if config else RRuleEvaluator()
            )
        if first_day_of_week is None:
            first_day_of_week = config.first_day_of_week if config else Weekday.MONDAY

        self._lock = threading.RLock()
        self._events_by_id: dict[str, CalendarEvent] = {}
        self._first_day_of_week = Weekday.parse(first_day_of_week)
        self._listeners: list[ChangeListener] = []
        self._last_change: Optional[EventChangeInfo] = None

        self.exceptions = ExceptionStore()
        self.cache = ExpansionCache()
        self.engine = ExpansionEngine(
            cache=self.cache,
            exceptions=self.exceptions,
            evaluator=evaluator,
            week_start_provider=lambda: self._first_day_of_week,
        )

    # Settings

    @property
    def first_day_of_week(self) -> Weekday:
        return self._first_day_of_week

    @first_day_of_week.setter
    def first_day_of_week(self, value: Any) -> None:
        weekday = Weekday.parse(value)
        with self._lock:
            if weekday == self._first_day_of_week:
                return
            self._first_day_of_week = weekday
            # Fallback WKST feeds every expansion
            self.cache.invalidate_all()
            logger.debug("first_day_of_week set to %s, expansion cache cleared", weekday.name)

    # Observers

    @property
    def last_change(self) -> Optional[EventChangeInfo]:
        return self._last_change

    def add_listener(self, listener: ChangeListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                logger.debug("Listener %r was not registered", listener)

    def _emit(
        self,
        kind: ChangeType,
        affected_ids: Iterable[str],
        affected_range: Optional[DateRange] = None,
    ) -> EventChangeInfo:
        change = EventChangeInfo(
            kind=kind, affected_ids=frozenset(affected_ids), affected_range=affected_range
        )
        self._last_change = change
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Change listener %r failed for %s", listener, kind.value)
        return change

    # Event store

    @property
    def all_events(self) -> list[CalendarEvent]:
        with self._lock:
            return list(self._events_by_id.values())

    def get_event(self, event_id: str) -> Optional[CalendarEvent]:
        with self._lock:
            return self._events_by_id.get(event_id)

    def add_events(self, events: Iterable[CalendarEvent]) -> None:
        """Insert or replace master events by id."""
        with self._lock:
            added = []
            for event in events:
                self._events_by_id[event.id] = event
                # A replaced master must not keep serving stale occurrences
                self.cache.invalidate(event.id)
                added.append(event.id)
            logger.debug("Added %d events", len(added))
            self._emit(ChangeType.ADDED, added)

    def remove_events(self, event_ids: Iterable[str]) -> None:
        """Remove masters together with their exceptions and cached occurrences."""
        with self._lock:
            removed = list(event_ids)
            for event_id in removed:
                self._events_by_id.pop(event_id, None)
                self.exceptions.drop_series(event_id)
                self.cache.invalidate(event_id)
            logger.debug("Removed %d events", len(removed))
            self._emit(ChangeType.REMOVED, removed)

    def clear_events(self) -> None:
        with self._lock:
            cleared = list(self._events_by_id)
            self._events_by_id.clear()
            self.exceptions.clear()
            self.cache.invalidate_all()
            logger.debug("Cleared %d events", len(cleared))
            self._emit(ChangeType.BULK, cleared)

    def load_events(self, start: Any, end: Any) -> list[CalendarEvent]:
        """Return events for ``start..end``.

        Subclasses backed by a remote source override this to fetch masters,
        hand them to ``add_events`` and then defer to this implementation.
        """
        return self.get_events_for_range(DateRange.between(start, end))

    # Queries

    def get_events_for_range(self, window: DateRange) -> list[CalendarEvent]:
        """Standalone events overlapping ``window`` plus expanded occurrences.

        Querying a window other than the active one drops the whole expansion
        cache first.
        """
        with self._lock:
            if self.cache.activate(window):
                logger.debug("Expansion window is now %s..%s", window.start, window.end)

            results: list[CalendarEvent] = []
            for event in self._events_by_id.values():
                if event.recurrence_rule is not None:
                    results.extend(self.engine.expand(event, window))
                elif window.contains_event(event):
                    results.append(event)

            results.sort(key=lambda event: event.start)
            return results

    def get_events_for_date(self, day: date | datetime) -> list[CalendarEvent]:
        return self.get_events_for_range(DateRange.for_day(day))

    # Exceptions

    def add_exception(self, series_id: str, exception: RecurrenceException) -> RecurrenceException:
        """Attach ``exception`` to a series.

        The first exception on a day patches the cached occurrences in place;
        overwriting an existing one drops the series' cache entry instead,
        since the earlier patch may already have removed the slot.
        """
        with self._lock:
            overwrote = self.exceptions.put(series_id, exception)
            master = self._events_by_id.get(series_id)
            if overwrote or master is None:
                self.cache.invalidate(series_id)
            else:
                self.cache.patch(series_id, exception, master)

            self._emit(ChangeType.EXCEPTION_ADDED, [series_id], exception.affected_range())
            return exception

    def add_exceptions(self, series_id: str, exceptions: Iterable[RecurrenceException]) -> None:
        with self._lock:
            stored = self.exceptions.put_many(series_id, exceptions)
            self.cache.invalidate(series_id)
            logger.debug("Added %d exceptions to %s", stored, series_id)
            self._emit(ChangeType.BULK, [series_id])

    def remove_exception(
        self, series_id: str, original_date: date | datetime
    ) -> Optional[RecurrenceException]:
        """Remove the exception for ``original_date``; returns it, or None if absent."""
        with self._lock:
            removed = self.exceptions.remove(series_id, _as_datetime(original_date))
            if removed is None:
                return None
            # No incremental un-patch: the series is simply re-expanded
            self.cache.invalidate(series_id)
            self._emit(ChangeType.EXCEPTION_REMOVED, [series_id], removed.affected_range())
            return removed

    def get_exceptions(self, series_id: str) -> list[RecurrenceException]:
        with self._lock:
            return self.exceptions.list(series_id)

    def modify_occurrence(
        self, series_id: str, original_date: date | datetime, replacement: CalendarEvent
    ) -> RecurrenceException:
        return self.add_exception(
            series_id,
            ModifiedOccurrence(original_date=original_date, replacement=replacement),
        )

    # Series lifecycle

    def update_recurring_event(self, event: CalendarEvent) -> None:
        """Replace a master; its exceptions keep applying to the new pattern.

        Raises:
            SeriesNotFoundError: If no event with ``event.id`` exists
        """
        with self._lock:
            if event.id not in self._events_by_id:
                raise SeriesNotFoundError(event.id)
            self._events_by_id[event.id] = event
            self.cache.invalidate(event.id)
            self._emit(ChangeType.UPDATED, [event.id])

    def delete_recurring_event(self, event_id: str) -> None:
        """Remove a master, its exceptions and its cached occurrences together.

        Raises:
            SeriesNotFoundError: If no event with ``event_id`` exists
        """
        with self._lock:
            if self._events_by_id.pop(event_id, None) is None:
                raise SeriesNotFoundError(event_id)
            self.exceptions.drop_series(event_id)
            self.cache.invalidate(event_id)
            self._emit(ChangeType.REMOVED, [event_id])

    def split_series(self, series_id: str, from_date: date | datetime) -> str:
        """Split a series into two at ``from_date`` ("this and following").

        The original series is truncated to end on the day before
        ``from_date``. A new master ``"{series_id}_split_{from_date}"`` takes
        over the untruncated pattern from ``from_date`` on, at the original
        time of day, together with every exception dated on or after that day.
        Since the new master starts on ``from_date``, a weekly rule without
        BYDAY recurs on the weekday of ``from_date`` from then on.

        Args:
            series_id: Id of the recurring master to split
            from_date: First day that belongs to the new series

        Returns:
            The new series id

        Raises:
            SeriesNotFoundError: If no event with ``series_id`` exists
            InvalidSeriesOperationError: If the event has no recurrence rule, or
                a split with the same id already exists
        """
        split_at = _as_datetime(from_date)
        with self._lock:
            master = self._events_by_id.get(series_id)
            if master is None:
                raise SeriesNotFoundError(series_id)
            rule = master.recurrence_rule
            if rule is None:
                raise InvalidSeriesOperationError(f'Event "{series_id}" is not a recurring event.')

            new_id = f"{series_id}_split_{to_iso8601(split_at)}"
            if new_id in self._events_by_id:
                raise InvalidSeriesOperationError(
                    f'Series "{series_id}" was already split into "{new_id}".'
                )

            boundary = normalize_date(split_at)
            until = boundary - timedelta(microseconds=1)
            if rule.until is not None and rule.until.replace(tzinfo=None) < until.replace(tzinfo=None):
                # Already ends before the split; never extend it
                until = rule.until
            truncated_rule = rule.model_copy(update={"count": None, "until": until})
            self._events_by_id[series_id] = master.model_copy(
                update={"recurrence_rule": truncated_rule}
            )

            new_start = datetime.combine(boundary.date(), master.start.timetz())
            new_master = master.model_copy(
                update={
                    "id": new_id,
                    "start": new_start,
                    "end": offset_end(master, new_start),
                    "recurrence_rule": rule,
                }
            )
            self._events_by_id[new_id] = new_master

            moved = self.exceptions.split_off(series_id, new_id, boundary)
            self.cache.invalidate(series_id)
            self.cache.invalidate(new_id)

            logger.info(
                "Split series %s at %s into %s (%d exceptions moved)",
                series_id,
                boundary.date(),
                new_id,
                moved,
            )
            self._emit(ChangeType.SERIES_SPLIT, [series_id, new_id])
            return new_id

    def get_cache_stats(self) -> dict[str, Any]:
        with self._lock:
            return self.cache.get_stats()


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, datetime.min.time())
