"""calendarbot_recurrence - recurring event expansion with per-occurrence overrides.

Given master events, some carrying a recurrence rule, the package materializes
the occurrences that fall inside a query window, applies deletions,
reschedules and modifications, and caches expansions for the active window.
"""

__version__ = "0.1.0"

from typing import Optional

from .config_loader import EngineConfig, apply_env_overrides, load_config
from .errors import (
    EventDataError,
    InvalidSeriesOperationError,
    RecurrenceEngineError,
    RecurrenceExpansionError,
    RRuleParseError,
    SeriesNotFoundError,
)
from .event_controller import EventController
from .event_loader import EventDocument, load_event_file, parse_event_document
from .expansion_engine import ExpansionEngine, advance_dtstart
from .models import (
    CalendarEvent,
    ChangeType,
    DateRange,
    EventChangeInfo,
    Frequency,
    RecurrenceRule,
    Weekday,
    WeekdayNum,
)
from .recurrence_exceptions import (
    DeletedOccurrence,
    ModifiedOccurrence,
    RecurrenceException,
    RescheduledOccurrence,
)
from .rrule_evaluator import RecurrenceEvaluator, RRuleEvaluator

__all__ = [
    "CalendarEvent",
    "ChangeType",
    "DateRange",
    "DeletedOccurrence",
    "EngineConfig",
    "EventChangeInfo",
    "EventController",
    "EventDataError",
    "EventDocument",
    "ExpansionEngine",
    "Frequency",
    "InvalidSeriesOperationError",
    "ModifiedOccurrence",
    "RRuleEvaluator",
    "RRuleParseError",
    "RecurrenceEngineError",
    "RecurrenceEvaluator",
    "RecurrenceException",
    "RecurrenceExpansionError",
    "RecurrenceRule",
    "RescheduledOccurrence",
    "SeriesNotFoundError",
    "Weekday",
    "WeekdayNum",
    "advance_dtstart",
    "apply_env_overrides",
    "load_config",
    "load_event_file",
    "parse_event_document",
]


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Installs a single stderr handler when the root logger has none, so CLI
    output and early warnings are visible. Honors CALENDARBOT_DEBUG (truthy
    values: "1", "true", "yes", "on"), which forces DEBUG verbosity.
    """
    import logging
    import os
    import sys

    debug_env = os.environ.get("CALENDARBOT_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none are present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        try:
            from colorlog import ColoredFormatter

            # HH:MM:SS  LEVEL   logger.name: message (only the level is colorized)
            fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
            log_colors = {
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            }
            formatter = ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors)
        except ImportError:
            # Fall back to plain logging if colorlog isn't installed.
            fmt = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
            formatter = logging.Formatter(fmt, datefmt="%H:%M:%S")

        handler.setFormatter(formatter)
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        candidate = logging.getLevelName(level_name.upper())
        if isinstance(candidate, int):
            level = candidate
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )
