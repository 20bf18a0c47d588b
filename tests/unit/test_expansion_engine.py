"""Unit tests for calendarbot_recurrence.expansion_engine."""

import logging
from datetime import date, datetime, timedelta

import pytest

from calendarbot_recurrence.errors import RecurrenceExpansionError
from calendarbot_recurrence.exception_store import ExceptionStore
from calendarbot_recurrence.expansion_cache import ExpansionCache
from calendarbot_recurrence.expansion_engine import ExpansionEngine, advance_dtstart
from calendarbot_recurrence.models import CalendarEvent, DateRange, Frequency, RecurrenceRule, Weekday
from calendarbot_recurrence.recurrence_exceptions import (
    DeletedOccurrence,
    ModifiedOccurrence,
    RescheduledOccurrence,
)

pytestmark = pytest.mark.unit


def _engine(**kwargs) -> ExpansionEngine:
    return ExpansionEngine(cache=ExpansionCache(), exceptions=ExceptionStore(), **kwargs)


class TestAdvanceDtstart:
    """Tests for DTSTART fast-forward."""

    def test_advance_when_daily_then_keeps_one_period_margin(self) -> None:
        origin = datetime(2020, 1, 1, 9, 0)
        rule = RecurrenceRule(frequency=Frequency.DAILY, interval=3)
        target = datetime(2024, 6, 10)
        advanced = advance_dtstart(origin, rule, target)
        assert advanced <= target - timedelta(days=3)
        assert advanced > target - timedelta(days=7)
        assert (advanced - origin).days % 3 == 0
        assert advanced.time() == origin.time()

    def test_advance_when_weekly_then_whole_weeks_times_interval(self) -> None:
        origin = datetime(2022, 1, 4, 9, 0)
        rule = RecurrenceRule(frequency=Frequency.WEEKLY, interval=2)
        advanced = advance_dtstart(origin, rule, datetime(2024, 6, 10))
        assert (advanced - origin).days % 14 == 0
        assert advanced.weekday() == origin.weekday()
        assert datetime(2024, 6, 10) - advanced >= timedelta(days=14)

    @pytest.mark.parametrize("frequency", [Frequency.MONTHLY, Frequency.YEARLY])
    def test_advance_when_monthly_or_yearly_then_unchanged(self, frequency) -> None:
        origin = datetime(2020, 1, 31, 9, 0)
        rule = RecurrenceRule(frequency=frequency)
        assert advance_dtstart(origin, rule, datetime(2024, 6, 10)) == origin

    def test_advance_when_target_before_origin_then_unchanged(self) -> None:
        origin = datetime(2024, 6, 10, 9)
        rule = RecurrenceRule(frequency=Frequency.DAILY)
        assert advance_dtstart(origin, rule, datetime(2024, 6, 1)) == origin

    def test_advance_when_target_within_two_periods_then_unchanged(self) -> None:
        origin = datetime(2024, 6, 1, 9)
        rule = RecurrenceRule(frequency=Frequency.WEEKLY)
        assert advance_dtstart(origin, rule, datetime(2024, 6, 12)) == origin


class TestExpand:
    """Tests for full expansion with exceptions."""

    def test_expand_when_daily_then_occurrences_with_ids(self, standup) -> None:
        result = _engine().expand(standup, DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12)))
        assert [e.id for e in result] == [
            "standup_2024-06-10T00:00:00.000",
            "standup_2024-06-11T00:00:00.000",
            "standup_2024-06-12T00:00:00.000",
        ]
        assert all(e.end - e.start == timedelta(minutes=15) for e in result)

    def test_expand_when_multi_day_master_starts_before_window_then_included(self) -> None:
        master = CalendarEvent(
            id="trip",
            title="Trip",
            start=datetime(2024, 6, 1, 18, 0),
            end=datetime(2024, 6, 4, 10, 0),
            recurrence_rule=RecurrenceRule(frequency="weekly"),
        )
        result = _engine().expand(master, DateRange(start=date(2024, 6, 10), end=date(2024, 6, 10)))
        assert len(result) == 1
        assert result[0].start == datetime(2024, 6, 8, 18, 0)
        assert result[0].end == datetime(2024, 6, 11, 10, 0)

    def test_expand_when_occurrence_straddles_window_start_then_included(self, standup) -> None:
        window = DateRange(start=datetime(2024, 6, 10, 9, 10), end=datetime(2024, 6, 10, 12))
        result = _engine().expand(standup, window)
        assert [e.start for e in result] == [datetime(2024, 6, 10, 9, 0)]

    def test_expand_when_cached_superset_then_reads_refiltered(self, standup) -> None:
        engine = _engine()
        engine.exceptions.put(
            "standup",
            RescheduledOccurrence(original_date=date(2024, 6, 11), new_start=datetime(2024, 6, 30, 9)),
        )
        window = DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12))
        engine.expand(standup, window)
        # The cache may hold more than the window; reads never leak it
        assert all(window.contains_event(e) for e in engine.expand(standup, window))

    def test_expand_when_non_recurring_then_self_if_overlapping(self) -> None:
        single = CalendarEvent(id="one", title="One", start=datetime(2024, 6, 11, 9), end=datetime(2024, 6, 11, 10))
        engine = _engine()
        assert engine.expand(single, DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12))) == [single]
        assert engine.expand(single, DateRange(start=date(2024, 6, 12), end=date(2024, 6, 13))) == []

    def test_expand_when_zero_duration_at_window_start_then_included(self) -> None:
        master = CalendarEvent(
            id="tick",
            title="Tick",
            start=datetime(2024, 6, 1),
            end=datetime(2024, 6, 1),
            recurrence_rule=RecurrenceRule(frequency="daily"),
        )
        result = _engine().expand(master, DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12)))
        assert [e.start for e in result] == [datetime(2024, 6, day) for day in (10, 11, 12)]

    def test_expand_when_occurrence_ends_exactly_at_window_start_then_included(self) -> None:
        master = CalendarEvent(
            id="late",
            title="Late",
            start=datetime(2024, 6, 1, 23),
            end=datetime(2024, 6, 2),
            recurrence_rule=RecurrenceRule(frequency="daily"),
        )
        window = DateRange(start=date(2024, 6, 10), end=date(2024, 6, 10))
        result = _engine().expand(master, window)
        assert [(e.start, e.end) for e in result] == [
            (datetime(2024, 6, 9, 23), datetime(2024, 6, 10)),
            (datetime(2024, 6, 10, 23), datetime(2024, 6, 11)),
        ]
        # Same inclusive rule as for a standalone event with those times
        single = CalendarEvent(id="one", title="One", start=datetime(2024, 6, 9, 23), end=datetime(2024, 6, 10))
        assert _engine().expand(single, window) == [single]

    def test_expand_when_deleted_exception_then_day_omitted(self, standup) -> None:
        engine = _engine()
        engine.exceptions.put("standup", DeletedOccurrence(original_date=date(2024, 6, 11)))
        result = engine.expand(standup, DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12)))
        assert [e.start.day for e in result] == [10, 12]

    def test_expand_when_rescheduled_out_of_window_then_excluded(self, standup) -> None:
        engine = _engine()
        engine.exceptions.put(
            "standup",
            RescheduledOccurrence(original_date=date(2024, 6, 11), new_start=datetime(2024, 6, 20, 9)),
        )
        result = engine.expand(standup, DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12)))
        assert [e.start.day for e in result] == [10, 12]

    def test_expand_when_rescheduled_from_outside_window_then_orphan_included(self, standup) -> None:
        engine = _engine()
        engine.exceptions.put(
            "standup",
            RescheduledOccurrence(original_date=date(2024, 6, 3), new_start=datetime(2024, 6, 11, 14)),
        )
        result = engine.expand(standup, DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12)))
        assert len(result) == 4
        moved = [e for e in result if e.occurrence_id == "2024-06-03T00:00:00.000"]
        assert moved[0].start == datetime(2024, 6, 11, 14)
        assert moved[0].end == datetime(2024, 6, 11, 14, 15)

    def test_expand_when_modified_then_replacement_included(self, standup) -> None:
        engine = _engine()
        replacement = CalendarEvent(id="r", title="Retro", start=datetime(2024, 6, 11, 15), end=datetime(2024, 6, 11, 16))
        engine.exceptions.put("standup", ModifiedOccurrence(original_date=date(2024, 6, 11), replacement=replacement))
        result = engine.expand(standup, DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12)))
        assert [e.title for e in result] == ["Standup", "Retro", "Standup"]
        assert result[1].occurrence_id == "2024-06-11T00:00:00.000"

    def test_expand_when_modified_orphan_from_later_day_then_included(self, standup) -> None:
        engine = _engine()
        replacement = CalendarEvent(id="r", title="Early", start=datetime(2024, 6, 12, 8), end=datetime(2024, 6, 12, 8, 30))
        engine.exceptions.put("standup", ModifiedOccurrence(original_date=date(2024, 6, 20), replacement=replacement))
        result = engine.expand(standup, DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12)))
        assert [e.title for e in result] == ["Standup", "Standup", "Early", "Standup"]

    def test_expand_when_results_then_sorted_by_start(self, standup) -> None:
        engine = _engine()
        engine.exceptions.put(
            "standup",
            RescheduledOccurrence(original_date=date(2024, 6, 12), new_start=datetime(2024, 6, 10, 7)),
        )
        result = engine.expand(standup, DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12)))
        starts = [e.start for e in result]
        assert starts == sorted(starts)


class TestEvaluatorInteraction:
    """Tests for the calls made to the evaluator."""

    def test_expand_when_called_then_padded_after_and_window_end(self, standup, recording_evaluator) -> None:
        window = DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12))
        _engine(evaluator=recording_evaluator).expand(standup, window)
        call = recording_evaluator.calls[0]
        assert call["after"] == datetime(2024, 6, 9, 23, 44, 59, 999999)
        assert call["before"] == window.end

    def test_expand_when_no_count_then_origin_advanced(self, standup, recording_evaluator) -> None:
        _engine(evaluator=recording_evaluator).expand(standup, DateRange(start=date(2025, 6, 10), end=date(2025, 6, 12)))
        assert recording_evaluator.calls[0]["origin"] > standup.start

    def test_expand_when_count_limited_then_true_origin(self, recording_evaluator) -> None:
        master = CalendarEvent(
            id="c",
            title="Counted",
            start=datetime(2024, 1, 1, 9),
            end=datetime(2024, 1, 1, 10),
            recurrence_rule=RecurrenceRule(frequency="daily", count=500),
        )
        _engine(evaluator=recording_evaluator).expand(master, DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12)))
        assert recording_evaluator.calls[0]["origin"] == master.start

    def test_expand_when_week_start_provider_then_passed_as_fallback(self, standup, recording_evaluator) -> None:
        engine = _engine(evaluator=recording_evaluator, week_start_provider=lambda: Weekday.SUNDAY)
        engine.expand(standup, DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12)))
        assert recording_evaluator.calls[0]["fallback_week_start"] is Weekday.SUNDAY

    def test_expand_when_repeated_then_served_from_cache(self, standup, recording_evaluator) -> None:
        engine = _engine(evaluator=recording_evaluator)
        window = DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12))
        engine.expand(standup, window)
        engine.expand(standup, window)
        assert len(recording_evaluator.calls) == 1
        assert engine.cache.get_stats()["hits"] == 1

    def test_expand_from_origin_when_called_then_true_origin_and_uncached(self, standup, recording_evaluator) -> None:
        engine = _engine(evaluator=recording_evaluator)
        window = DateRange(start=date(2025, 6, 10), end=date(2025, 6, 12))
        engine.expand_from_origin(standup, window)
        assert recording_evaluator.calls[0]["origin"] == standup.start
        assert "standup" not in engine.cache


class TestSoftFailure:
    """Tests for fail-soft expansion."""

    def test_expand_when_evaluator_raises_expansion_error_then_empty(self, standup, caplog) -> None:
        class FailingEvaluator:
            def get_occurrences(self, *args, **kwargs):
                raise RecurrenceExpansionError("boom")

        engine = _engine(evaluator=FailingEvaluator())
        with caplog.at_level(logging.WARNING, logger="calendarbot_recurrence.expansion_engine"):
            assert engine.expand(standup, DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12))) == []
        assert "Failed to expand recurring event standup" in caplog.text
        assert "standup" not in engine.cache

    def test_expand_when_rule_rejected_by_dateutil_then_empty(self) -> None:
        master = CalendarEvent(
            id="bad",
            title="Bad",
            start=datetime(2024, 1, 1, 9),
            end=datetime(2024, 1, 1, 10),
            recurrence_rule=RecurrenceRule(frequency="monthly", by_month_days=(1,), by_set_positions=(0,)),
        )
        assert _engine().expand(master, DateRange(start=date(2024, 6, 1), end=date(2024, 6, 30))) == []
