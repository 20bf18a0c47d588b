"""Recurrence rule evaluation backed by dateutil.rrule.

The engine never expands by-day/by-month rules itself. It hands a
RecurrenceRule plus an origin and a window to an evaluator and gets back raw
occurrence starts, ignoring overrides entirely.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol

from dateutil import rrule as du_rrule

from .models import Frequency, RecurrenceRule, Weekday

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES = 5000

_DATEUTIL_FREQUENCIES = {
    Frequency.DAILY: du_rrule.DAILY,
    Frequency.WEEKLY: du_rrule.WEEKLY,
    Frequency.MONTHLY: du_rrule.MONTHLY,
    Frequency.YEARLY: du_rrule.YEARLY,
}


class RecurrenceEvaluator(Protocol):
    """Protocol for anything that can enumerate raw occurrence starts."""

    def get_occurrences(
        self,
        rule: RecurrenceRule,
        origin: datetime,
        after: datetime,
        before: datetime,
        fallback_week_start: Weekday,
    ) -> list[datetime]:
        """Return ascending occurrence starts with ``after < t <= before``.

        Must use ``rule.week_start`` when set, else ``fallback_week_start``, and
        must return an empty list instead of raising for a rule it cannot
        evaluate.
        """
        ...


class RRuleEvaluator:
    """Evaluator that builds a ``dateutil.rrule.rrule`` per call."""

    def __init__(self, max_occurrences: int = DEFAULT_MAX_OCCURRENCES):
        """Initialize evaluator.

        Args:
            max_occurrences: Upper bound on occurrences returned by one call
        """
        self.max_occurrences = max_occurrences

    def get_occurrences(
        self,
        rule: RecurrenceRule,
        origin: datetime,
        after: datetime,
        before: datetime,
        fallback_week_start: Weekday,
    ) -> list[datetime]:
        try:
            compiled = self.build_rrule(rule, origin, fallback_week_start)
            occurrences: list[datetime] = []
            for occurrence in compiled.xafter(after, inc=False):
                if occurrence > before:
                    break
                if len(occurrences) >= self.max_occurrences:
                    logger.warning(
                        "RRULE evaluation limited to %d occurrences (origin=%s, window=%s..%s)",
                        self.max_occurrences,
                        origin,
                        after,
                        before,
                    )
                    break
                occurrences.append(occurrence)
        except (ValueError, TypeError, OverflowError) as e:
            logger.warning("Failed to evaluate recurrence rule %s: %s", rule.to_rrule_string(), e)
            return []

        return occurrences

    @staticmethod
    def build_rrule(
        rule: RecurrenceRule,
        origin: datetime,
        fallback_week_start: Weekday = Weekday.MONDAY,
    ) -> du_rrule.rrule:
        """Translate a RecurrenceRule into a dateutil rrule anchored at ``origin``.

        Raises:
            ValueError: If dateutil rejects the rule
        """
        week_start = rule.week_start if rule.week_start is not None else fallback_week_start
        kwargs = {
            "dtstart": origin,
            "interval": rule.interval,
            "wkst": int(week_start),
        }
        if rule.count is not None:
            kwargs["count"] = rule.count
        if rule.until is not None:
            kwargs["until"] = _align_until(rule.until, origin)
        if rule.by_week_days:
            kwargs["byweekday"] = [
                du_rrule.weekday(int(wd.day), wd.occurrence) for wd in rule.by_week_days
            ]
        if rule.by_month_days:
            kwargs["bymonthday"] = rule.by_month_days
        if rule.by_months:
            kwargs["bymonth"] = rule.by_months
        if rule.by_set_positions:
            kwargs["bysetpos"] = rule.by_set_positions
        if rule.by_year_days:
            kwargs["byyearday"] = rule.by_year_days
        if rule.by_week_numbers:
            kwargs["byweekno"] = rule.by_week_numbers

        return du_rrule.rrule(_DATEUTIL_FREQUENCIES[rule.frequency], **kwargs)


def _align_until(until: datetime, origin: datetime) -> datetime:
    # dateutil requires UNTIL and DTSTART to agree on tz-awareness
    if origin.tzinfo is not None and until.tzinfo is None:
        return until.replace(tzinfo=origin.tzinfo)
    if origin.tzinfo is None and until.tzinfo is not None:
        return until.replace(tzinfo=None)
    return until
