"""Per-occurrence overrides ("recurrence exceptions") for a series.

Three variants, each carrying only its own fields:

- DeletedOccurrence: suppress the occurrence on ``original_date``
- RescheduledOccurrence: move it to ``new_start``; the end is derived from the
  master's start-to-end offset
- ModifiedOccurrence: substitute a fully formed ``replacement`` event

Within one series the normalized ``original_date`` is the key; adding a second
override for the same day replaces the first.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from .date_utils import add_days, coerce_datetime, normalize_date, offset_end, to_iso8601
from .models import CalendarEvent, DateRange


def tag_occurrence(event: CalendarEvent, series_id: str, key: datetime) -> CalendarEvent:
    """Stamp ``event`` as the occurrence of ``series_id`` originally on ``key``."""
    occurrence_id = to_iso8601(key)
    return event.model_copy(
        update={"id": f"{series_id}_{occurrence_id}", "occurrence_id": occurrence_id}
    )


def build_occurrence(master: CalendarEvent, start: datetime, key: datetime) -> CalendarEvent:
    """Instance of ``master`` starting at ``start``; the end keeps the master's offset."""
    occurrence = master.model_copy(update={"start": start, "end": offset_end(master, start)})
    return tag_occurrence(occurrence, master.id, key)


class _OccurrenceOverride(BaseModel):
    original_date: datetime

    model_config = ConfigDict(frozen=True)

    @field_validator("original_date", mode="before")
    @classmethod
    def _coerce_original_date(cls, value: Any) -> Any:
        return coerce_datetime(value)

    @property
    def key(self) -> datetime:
        """Normalized original date used as the store and cache key."""
        return normalize_date(self.original_date)

    def affected_range(self) -> DateRange:
        day = self.key
        return DateRange(start=day, end=add_days(day, 1))

    def resolve(self, master: CalendarEvent) -> Optional[CalendarEvent]:
        """Effective occurrence for this override, or None when suppressed."""
        raise NotImplementedError


class DeletedOccurrence(_OccurrenceOverride):
    """Suppress the occurrence on ``original_date``."""

    kind: Literal["deleted"] = "deleted"

    def resolve(self, master: CalendarEvent) -> Optional[CalendarEvent]:
        return None


class RescheduledOccurrence(_OccurrenceOverride):
    """Move the occurrence on ``original_date`` to ``new_start``."""

    kind: Literal["rescheduled"] = "rescheduled"
    new_start: datetime

    @field_validator("new_start", mode="before")
    @classmethod
    def _coerce_new_start(cls, value: Any) -> Any:
        return coerce_datetime(value)

    def affected_range(self) -> DateRange:
        original_day = self.key
        new_day = normalize_date(self.new_start)
        first, last = sorted((original_day, new_day))
        return DateRange(start=first, end=add_days(last, 1))

    def resolve(self, master: CalendarEvent) -> Optional[CalendarEvent]:
        return build_occurrence(master, self.new_start, self.key)


class ModifiedOccurrence(_OccurrenceOverride):
    """Replace the occurrence on ``original_date`` with ``replacement``."""

    kind: Literal["modified"] = "modified"
    replacement: CalendarEvent

    def resolve(self, master: CalendarEvent) -> Optional[CalendarEvent]:
        return tag_occurrence(self.replacement, master.id, self.key)


RecurrenceException = Annotated[
    Union[DeletedOccurrence, RescheduledOccurrence, ModifiedOccurrence],
    Field(discriminator="kind"),
]

recurrence_exception_adapter: TypeAdapter[RecurrenceException] = TypeAdapter(RecurrenceException)


def parse_recurrence_exception(data: Any) -> RecurrenceException:
    """Validate a mapping such as ``{"kind": "deleted", "original_date": ...}``."""
    return recurrence_exception_adapter.validate_python(data)
