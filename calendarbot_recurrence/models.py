"""Data models for recurring event expansion."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .date_utils import coerce_datetime, end_of_day
from .errors import RRuleParseError

logger = logging.getLogger(__name__)


class Frequency(str, Enum):
    """Supported recurrence frequencies."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Weekday(IntEnum):
    """Day of week, numbered like ``datetime.weekday()``."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def parse(cls, value: Any) -> Weekday:
        """Accept a Weekday, an int, a full name ("sunday") or an RRULE code ("SU")."""
        if isinstance(value, Weekday):
            return value
        if isinstance(value, int):
            return cls(value)
        text = str(value).strip().upper()
        if text in _RRULE_DAY_CODES:
            return _RRULE_DAY_CODES[text]
        try:
            return cls[text]
        except KeyError:
            raise ValueError(f"Unknown weekday: {value!r}") from None

    @property
    def rrule_code(self) -> str:
        return _DAY_CODES_BY_WEEKDAY[self]


_RRULE_DAY_CODES = {
    "MO": Weekday.MONDAY,
    "TU": Weekday.TUESDAY,
    "WE": Weekday.WEDNESDAY,
    "TH": Weekday.THURSDAY,
    "FR": Weekday.FRIDAY,
    "SA": Weekday.SATURDAY,
    "SU": Weekday.SUNDAY,
}
_DAY_CODES_BY_WEEKDAY = {day: code for code, day in _RRULE_DAY_CODES.items()}

_RRULE_FREQUENCIES = {
    "DAILY": Frequency.DAILY,
    "WEEKLY": Frequency.WEEKLY,
    "MONTHLY": Frequency.MONTHLY,
    "YEARLY": Frequency.YEARLY,
}

_BYDAY_PATTERN = re.compile(r"^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$")


class WeekdayNum(BaseModel):
    """A BYDAY entry: every ``day``, or only its nth ``occurrence`` in the period.

    ``occurrence`` may be negative to count from the end of the period
    (``-1`` is the last one).
    """

    day: Weekday
    occurrence: Optional[int] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("day", mode="before")
    @classmethod
    def _parse_day(cls, value: Any) -> Weekday:
        return Weekday.parse(value)

    @field_validator("occurrence")
    @classmethod
    def _check_occurrence(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and (value == 0 or not -53 <= value <= 53):
            raise ValueError(f"occurrence must be in -53..-1 or 1..53, got {value}")
        return value

    def to_rrule_token(self) -> str:
        prefix = "" if self.occurrence is None else str(self.occurrence)
        return f"{prefix}{self.day.rrule_code}"


class RecurrenceRule(BaseModel):
    """A recurrence pattern.

    The engine only reads ``frequency``, ``interval``, ``count`` and ``until``
    itself; the by-rules are handed to the rule evaluator untouched.
    """

    frequency: Frequency
    interval: int = Field(default=1, description="Periods between occurrences")
    count: Optional[int] = Field(default=None, description="Total number of occurrences")
    until: Optional[datetime] = Field(default=None, description="Inclusive upper bound")

    by_week_days: Optional[tuple[WeekdayNum, ...]] = None
    by_month_days: Optional[tuple[int, ...]] = None
    by_months: Optional[tuple[int, ...]] = None
    by_set_positions: Optional[tuple[int, ...]] = None
    by_year_days: Optional[tuple[int, ...]] = None
    by_week_numbers: Optional[tuple[int, ...]] = None

    # None means "use the caller's fallback week start"
    week_start: Optional[Weekday] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("frequency", mode="before")
    @classmethod
    def _parse_frequency(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("by_week_days", mode="before")
    @classmethod
    def _parse_by_week_days(cls, value: Any) -> Any:
        # Accept RRULE tokens such as "MO" or "-1FR" alongside mappings
        if isinstance(value, (list, tuple)):
            return tuple(_parse_byday(item) if isinstance(item, str) else item for item in value)
        return value

    @field_validator("until", mode="before")
    @classmethod
    def _coerce_until(cls, value: Any) -> Any:
        return coerce_datetime(value, end_of_range=True)

    @field_validator("week_start", mode="before")
    @classmethod
    def _parse_week_start(cls, value: Any) -> Optional[Weekday]:
        return None if value is None else Weekday.parse(value)

    @model_validator(mode="after")
    def _check_consistency(self) -> RecurrenceRule:
        if self.count is not None and self.until is not None:
            raise ValueError("count and until are mutually exclusive; only one may be specified.")
        if self.interval < 1:
            raise ValueError(f"interval must be >= 1, but was {self.interval}.")
        if self.count is not None and self.count < 1:
            raise ValueError(f"count must be >= 1, but was {self.count}.")
        if self.by_year_days is not None and self.frequency != Frequency.YEARLY:
            raise ValueError(
                f"by_year_days is only valid with yearly frequency, but frequency was {self.frequency.value}."
            )
        if self.by_week_numbers is not None and self.frequency != Frequency.YEARLY:
            raise ValueError(
                f"by_week_numbers is only valid with yearly frequency, but frequency was {self.frequency.value}."
            )
        return self

    @property
    def is_count_limited(self) -> bool:
        return self.count is not None

    @classmethod
    def from_rrule_string(cls, rrule_string: str) -> RecurrenceRule:
        """Parse an RFC 5545 RRULE value such as ``FREQ=WEEKLY;BYDAY=MO,WE``.

        The ``RRULE:`` prefix is optional. UNTIL values are read as wall-clock
        times in the implicit zone; a date-only UNTIL covers that whole day.

        Raises:
            RRuleParseError: If the string is empty, malformed, uses an
                unsupported frequency or describes an invalid rule
        """
        if not rrule_string or not rrule_string.strip():
            raise RRuleParseError("Empty RRULE string")

        text = rrule_string.strip()
        if text.upper().startswith("RRULE:"):
            text = text[len("RRULE:"):]

        fields: dict[str, Any] = {}
        try:
            for part in text.split(";"):
                if not part.strip():
                    continue
                if "=" not in part:
                    raise RRuleParseError(f"Invalid RRULE component {part!r} in {rrule_string!r}")
                key, value = part.split("=", 1)
                key = key.strip().upper()
                value = value.strip()

                if key == "FREQ":
                    freq = value.upper()
                    if freq not in _RRULE_FREQUENCIES:
                        raise RRuleParseError(
                            f"Unsupported frequency: {value}. Only DAILY, WEEKLY, MONTHLY, and YEARLY are supported."
                        )
                    fields["frequency"] = _RRULE_FREQUENCIES[freq]
                elif key == "INTERVAL":
                    fields["interval"] = int(value)
                elif key == "COUNT":
                    fields["count"] = int(value)
                elif key == "UNTIL":
                    fields["until"] = _parse_until(value)
                elif key == "BYDAY":
                    fields["by_week_days"] = tuple(_parse_byday(token) for token in value.split(","))
                elif key == "BYMONTHDAY":
                    fields["by_month_days"] = _parse_int_list(value)
                elif key == "BYMONTH":
                    fields["by_months"] = _parse_int_list(value)
                elif key == "BYSETPOS":
                    fields["by_set_positions"] = _parse_int_list(value)
                elif key == "BYYEARDAY":
                    fields["by_year_days"] = _parse_int_list(value)
                elif key == "BYWEEKNO":
                    fields["by_week_numbers"] = _parse_int_list(value)
                elif key == "WKST":
                    fields["week_start"] = Weekday.parse(value)
                else:
                    logger.debug("Ignoring unsupported RRULE component %s=%s", key, value)
        except (ValueError, OverflowError) as e:
            raise RRuleParseError(f"Invalid RRULE format: {rrule_string}") from e

        if "frequency" not in fields:
            raise RRuleParseError("RRULE missing required FREQ parameter")

        try:
            return cls(**fields)
        except ValidationError as e:
            raise RRuleParseError(f"Invalid RRULE: {rrule_string}: {e}") from e

    def to_rrule_string(self) -> str:
        """Serialize to an ``RRULE:`` line (DTSTART is not part of the rule)."""
        parts = [f"FREQ={self.frequency.value.upper()}", f"INTERVAL={self.interval}"]
        if self.count is not None:
            parts.append(f"COUNT={self.count}")
        if self.until is not None:
            parts.append(f"UNTIL={self.until.strftime('%Y%m%dT%H%M%S')}")
        if self.by_week_days:
            parts.append("BYDAY=" + ",".join(wd.to_rrule_token() for wd in self.by_week_days))
        for key, values in (
            ("BYMONTHDAY", self.by_month_days),
            ("BYMONTH", self.by_months),
            ("BYSETPOS", self.by_set_positions),
            ("BYYEARDAY", self.by_year_days),
            ("BYWEEKNO", self.by_week_numbers),
        ):
            if values:
                parts.append(f"{key}=" + ",".join(str(v) for v in values))
        if self.week_start is not None:
            parts.append(f"WKST={self.week_start.rrule_code}")
        return "RRULE:" + ";".join(parts)


def _parse_until(value: str) -> datetime:
    parsed = date_parser.parse(value)
    # Single implicit zone: a UTC "Z" suffix is read as wall-clock time
    parsed = parsed.replace(tzinfo=None)
    if "T" not in value.upper():
        return end_of_day(parsed)
    return parsed


def _parse_byday(token: str) -> WeekdayNum:
    match = _BYDAY_PATTERN.match(token.strip().upper())
    if not match:
        raise ValueError(f"Invalid BYDAY value: {token!r}")
    ordinal, code = match.groups()
    return WeekdayNum(day=_RRULE_DAY_CODES[code], occurrence=int(ordinal) if ordinal else None)


def _parse_int_list(value: str) -> tuple[int, ...]:
    return tuple(int(v) for v in value.split(",") if v.strip())


class CalendarEvent(BaseModel):
    """A master event or one expanded occurrence of it."""

    id: str = Field(..., description="Event ID; occurrences use '{masterId}_{occurrenceId}'")
    title: str = Field(..., description="Event title")
    start: datetime = Field(..., description="Event start")
    end: datetime = Field(..., description="Event end, never before start")
    is_all_day: bool = Field(default=False, description="All-day event flag")

    # Metadata
    comment: Optional[str] = Field(default=None, description="Free-form note")
    external_id: Optional[str] = Field(default=None, description="ID in an external system")
    color: Optional[str] = Field(default=None, description="Display color, e.g. '#1e88e5'")

    # Recurrence
    occurrence_id: Optional[str] = Field(
        default=None, description="ISO-8601 of the normalized original date for occurrences"
    )
    recurrence_rule: Optional[RecurrenceRule] = Field(
        default=None, description="Recurrence pattern for master events"
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("start", "end", mode="before")
    @classmethod
    def _coerce_dates(cls, value: Any) -> Any:
        return coerce_datetime(value)

    @model_validator(mode="after")
    def _check_end_after_start(self) -> CalendarEvent:
        if self.end < self.start:
            raise ValueError(f"Event {self.id!r} ends ({self.end}) before it starts ({self.start})")
        return self

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_rule is not None

    @property
    def is_occurrence(self) -> bool:
        return self.occurrence_id is not None


class DateRange(BaseModel):
    """An inclusive query window.

    A bare ``date`` start means midnight of that day and a bare ``date`` end
    means the last instant of that day, so
    ``DateRange(start=date(2024, 6, 10), end=date(2024, 6, 12))`` spans three
    whole days.
    """

    start: datetime
    end: datetime

    model_config = ConfigDict(frozen=True)

    @field_validator("start", mode="before")
    @classmethod
    def _coerce_start(cls, value: Any) -> Any:
        return coerce_datetime(value)

    @field_validator("end", mode="before")
    @classmethod
    def _coerce_end(cls, value: Any) -> Any:
        return coerce_datetime(value, end_of_range=True)

    @model_validator(mode="after")
    def _check_order(self) -> DateRange:
        if self.end < self.start:
            raise ValueError(f"Range end {self.end} is before start {self.start}")
        return self

    @classmethod
    def between(cls, start: Any, end: Any) -> DateRange:
        return cls(start=start, end=end)

    @classmethod
    def for_day(cls, day: Any) -> DateRange:
        """Window covering the whole calendar day of ``day``."""
        if isinstance(day, datetime):
            day = day.date()
        return cls(start=day, end=day)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """True if ``[start, end]`` touches this window (both ends inclusive)."""
        return start <= self.end and end >= self.start

    def contains_event(self, event: CalendarEvent) -> bool:
        return self.overlaps(event.start, event.end)


class ChangeType(str, Enum):
    """Kind of mutation reported to observers."""

    ADDED = "added"
    REMOVED = "removed"
    UPDATED = "updated"
    EXCEPTION_ADDED = "exception_added"
    EXCEPTION_REMOVED = "exception_removed"
    SERIES_SPLIT = "series_split"
    BULK = "bulk"


class EventChangeInfo(BaseModel):
    """Describes the most recent mutation so observers can rebuild selectively."""

    kind: ChangeType
    affected_ids: frozenset[str] = Field(default_factory=frozenset)
    affected_range: Optional[DateRange] = None

    model_config = ConfigDict(frozen=True)
