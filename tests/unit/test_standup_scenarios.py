"""End-to-end scenarios for a daily standup, each from a fresh controller."""

from datetime import date, datetime

import pytest

from calendarbot_recurrence.models import DateRange
from calendarbot_recurrence.recurrence_exceptions import DeletedOccurrence, RescheduledOccurrence

pytestmark = pytest.mark.unit


class TestDailyStandup:
    """A 09:00-09:15 daily standup starting 2024-06-01."""

    def test_expand_when_three_day_window_then_three_occurrences(self, controller, june_10_to_12) -> None:
        result = controller.get_events_for_range(june_10_to_12)
        assert [(e.start, e.end) for e in result] == [
            (datetime(2024, 6, day, 9, 0), datetime(2024, 6, day, 9, 15)) for day in (10, 11, 12)
        ]
        assert [e.id for e in result] == [
            "standup_2024-06-10T00:00:00.000",
            "standup_2024-06-11T00:00:00.000",
            "standup_2024-06-12T00:00:00.000",
        ]

    def test_deleted_when_added_then_day_missing(self, controller, june_10_to_12) -> None:
        controller.add_exception("standup", DeletedOccurrence(original_date=date(2024, 6, 11)))
        result = controller.get_events_for_range(june_10_to_12)
        assert [e.start.date() for e in result] == [date(2024, 6, 10), date(2024, 6, 12)]

    def test_rescheduled_when_added_then_moves_between_windows(self, controller, june_10_to_12, june_14_to_16) -> None:
        controller.add_exception(
            "standup",
            RescheduledOccurrence(original_date=date(2024, 6, 11), new_start=datetime(2024, 6, 15, 9, 0)),
        )
        first = controller.get_events_for_range(june_10_to_12)
        assert date(2024, 6, 11) not in [e.start.date() for e in first]

        second = controller.get_events_for_range(june_14_to_16)
        moved = [e for e in second if e.occurrence_id == "2024-06-11T00:00:00.000"]
        assert len(moved) == 1
        assert moved[0].start == datetime(2024, 6, 15, 9, 0)
        assert moved[0].end == datetime(2024, 6, 15, 9, 15)

    def test_split_when_mid_window_then_each_side_owned_by_one_series(self, controller, june_14_to_16) -> None:
        new_id = controller.split_series("standup", date(2024, 6, 15))
        result = controller.get_events_for_range(june_14_to_16)
        original = [e.start.date() for e in result if e.id.startswith("standup_2024")]
        split = [e.start.date() for e in result if e.id.startswith(new_id)]
        assert original == [date(2024, 6, 14)]
        assert split == [date(2024, 6, 15), date(2024, 6, 16)]

    def test_window_when_given_as_range_between_then_same_as_direct(self, controller, june_10_to_12) -> None:
        assert controller.get_events_for_range(
            DateRange.between(date(2024, 6, 10), date(2024, 6, 12))
        ) == controller.get_events_for_range(june_10_to_12)
