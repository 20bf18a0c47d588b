"""Shared fixtures for the recurrence engine test suite."""

from collections.abc import Generator
from datetime import date, datetime
from typing import Any

import pytest

from calendarbot_recurrence.event_controller import EventController
from calendarbot_recurrence.models import CalendarEvent, DateRange, Frequency, RecurrenceRule


def pytest_configure(config: Any) -> None:
    """Register the markers used across the suite."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "property: Randomized invariant checks with fixed seeds")


class RecordingEvaluator:
    """Evaluator stub that returns canned starts and records every call."""

    def __init__(self, starts: list[datetime] | None = None) -> None:
        self.starts = starts or []
        self.calls: list[dict[str, Any]] = []

    def get_occurrences(self, rule, origin, after, before, fallback_week_start):  # noqa: ANN001
        self.calls.append(
            {
                "rule": rule,
                "origin": origin,
                "after": after,
                "before": before,
                "fallback_week_start": fallback_week_start,
            }
        )
        return [start for start in self.starts if after < start <= before]


@pytest.fixture
def standup() -> CalendarEvent:
    """Daily 09:00-09:15 standup starting 2024-06-01."""
    return CalendarEvent(
        id="standup",
        title="Standup",
        start=datetime(2024, 6, 1, 9, 0),
        end=datetime(2024, 6, 1, 9, 15),
        recurrence_rule=RecurrenceRule(frequency=Frequency.DAILY),
    )


@pytest.fixture
def controller(standup: CalendarEvent) -> EventController:
    """Controller pre-loaded with the standup series."""
    ctrl = EventController()
    ctrl.add_events([standup])
    return ctrl


@pytest.fixture
def june_10_to_12() -> DateRange:
    return DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12))


@pytest.fixture
def june_14_to_16() -> DateRange:
    return DateRange(start=date(2024, 6, 14), end=date(2024, 6, 16))


@pytest.fixture
def recording_evaluator() -> RecordingEvaluator:
    return RecordingEvaluator()


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, Any, None]:
    """Clear CALENDARBOT_* overrides so the host environment never leaks in."""
    for name in (
        "CALENDARBOT_DEBUG",
        "CALENDARBOT_LOG_LEVEL",
        "CALENDARBOT_FIRST_DAY_OF_WEEK",
        "CALENDARBOT_MAX_OCCURRENCES",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
