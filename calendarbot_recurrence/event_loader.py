"""Build master events and recurrence exceptions from YAML documents.

Expected shape::

    events:
      - id: standup
        title: Daily standup
        start: 2024-06-01T09:00:00
        end: 2024-06-01T09:15:00
        rrule: FREQ=DAILY            # or recurrence_rule: {frequency: daily}
    exceptions:
      standup:
        - kind: deleted
          original_date: 2024-06-11
        - kind: rescheduled
          original_date: 2024-06-12
          new_start: 2024-06-12T10:30:00
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .errors import EventDataError, RRuleParseError
from .models import CalendarEvent, RecurrenceRule
from .recurrence_exceptions import RecurrenceException, parse_recurrence_exception

logger = logging.getLogger(__name__)


@dataclass
class EventDocument:
    """Masters and per-series exceptions read from one document."""

    events: list[CalendarEvent] = field(default_factory=list)
    exceptions: dict[str, list[RecurrenceException]] = field(default_factory=dict)

    def apply_to(self, controller: Any) -> None:
        """Load everything into an EventController."""
        controller.add_events(self.events)
        for series_id, series_exceptions in self.exceptions.items():
            controller.add_exceptions(series_id, series_exceptions)


def _parse_event(raw: Any, index: int) -> CalendarEvent:
    if not isinstance(raw, dict):
        raise EventDataError(f"Event #{index} must be a mapping, got {type(raw).__name__}")

    data = dict(raw)
    rrule_text = data.pop("rrule", None)
    if rrule_text is not None:
        if "recurrence_rule" in data:
            raise EventDataError(f"Event #{index} sets both rrule and recurrence_rule")
        try:
            data["recurrence_rule"] = RecurrenceRule.from_rrule_string(str(rrule_text))
        except RRuleParseError as e:
            raise EventDataError(f"Event #{index} ({data.get('id')!r}): {e}") from e

    try:
        return CalendarEvent.model_validate(data)
    except ValidationError as e:
        raise EventDataError(f"Event #{index} ({data.get('id')!r}) is invalid: {e}") from e


def _parse_exceptions(series_id: str, raw: Any) -> list[RecurrenceException]:
    if not isinstance(raw, list):
        raise EventDataError(f"Exceptions for {series_id!r} must be a list")

    parsed = []
    for index, item in enumerate(raw):
        try:
            parsed.append(parse_recurrence_exception(item))
        except ValidationError as e:
            raise EventDataError(f"Exception #{index} for {series_id!r} is invalid: {e}") from e
    return parsed


def parse_event_document(data: Any) -> EventDocument:
    """Validate a mapping with ``events`` and optional ``exceptions`` keys.

    Raises:
        EventDataError: If the shape or any entry is invalid
    """
    if data is None:
        return EventDocument()
    if not isinstance(data, dict):
        raise EventDataError("Event document must contain a mapping at top level")

    raw_events = data.get("events") or []
    if not isinstance(raw_events, list):
        raise EventDataError("`events` must be a list")
    events = [_parse_event(raw, index) for index, raw in enumerate(raw_events)]

    raw_exceptions = data.get("exceptions") or {}
    if not isinstance(raw_exceptions, dict):
        raise EventDataError("`exceptions` must map series ids to lists")
    exceptions = {
        str(series_id): _parse_exceptions(str(series_id), items)
        for series_id, items in raw_exceptions.items()
    }

    known_ids = {event.id for event in events}
    for series_id in exceptions:
        if series_id not in known_ids:
            logger.warning("Exceptions given for unknown series %s", series_id)

    logger.debug(
        "Parsed %d events and exceptions for %d series", len(events), len(exceptions)
    )
    return EventDocument(events=events, exceptions=exceptions)


def load_event_file(path: str | Path) -> EventDocument:
    """Read and validate a YAML event document.

    Raises:
        EventDataError: If the file is missing, not YAML, or has invalid entries
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise EventDataError(f"Cannot read event file {p}: {e}") from e

    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise EventDataError(f"Event file {p} is not valid YAML: {e}") from e

    document = parse_event_document(loaded)
    logger.info("Loaded %d events from %s", len(document.events), p)
    return document
