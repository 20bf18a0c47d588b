"""Command-line entry for calendarbot_recurrence.

Expands the events in a YAML document over a date window and prints the
resulting occurrences as JSON.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import date, datetime
from typing import Any, Optional, Sequence

import yaml

from . import _init_logging
from .config_loader import apply_env_overrides, load_config
from .errors import RecurrenceEngineError
from .event_controller import EventController
from .event_loader import load_event_file
from .models import DateRange, Weekday
from .recurrence_logging import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USAGE = 2


def _parse_when(value: str) -> date | datetime:
    """Accept ``YYYY-MM-DD`` or a full ISO-8601 date-time."""
    try:
        if "T" in value or " " in value.strip():
            return datetime.fromisoformat(value)
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 date or date-time: {value!r}") from None


def _parse_weekday(value: str) -> Weekday:
    try:
        return Weekday.parse(int(value) if value.isdigit() else value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"unknown weekday: {value!r}") from None


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for calendarbot_recurrence CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="calendarbot_recurrence",
        description="Expand recurring events from a YAML file over a date window",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m calendarbot_recurrence events.yaml --start 2024-06-10 --end 2024-06-12
  python -m calendarbot_recurrence events.yaml --start 2024-06-10 --end 2024-06-16 \\
      --first-day-of-week sunday --debug
        """,
    )

    parser.add_argument("events_file", metavar="EVENTS.yaml", help="YAML document with events")
    parser.add_argument(
        "--start",
        type=_parse_when,
        required=True,
        metavar="DATE",
        help="Window start (a bare date means midnight)",
    )
    parser.add_argument(
        "--end",
        type=_parse_when,
        required=True,
        metavar="DATE",
        help="Window end, inclusive (a bare date means the end of that day)",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="YAML engine configuration file",
    )
    parser.add_argument(
        "--first-day-of-week",
        type=_parse_weekday,
        metavar="DAY",
        help="Fallback week start for rules without WKST (default: from config, else monday)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    return parser


def _occurrence_to_json(event: Any) -> dict[str, Any]:
    return event.model_dump(mode="json", exclude_none=True)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the calendarbot_recurrence CLI.

    Returns:
        Process exit code (0 on success, 2 on argument or data errors)
    """
    parser = _create_parser()
    args = parser.parse_args(argv)

    _init_logging(os.environ.get("CALENDARBOT_LOG_LEVEL"))

    try:
        config = apply_env_overrides(load_config(args.config))
        root_level = configure_logging(debug_mode=args.debug or config.log_level == "DEBUG")
        if root_level != logging.DEBUG:
            # Config (or CALENDARBOT_LOG_LEVEL, already folded in) sets the root level
            logging.getLogger().setLevel(config.log_level)

        window = DateRange.between(args.start, args.end)
        document = load_event_file(args.events_file)
    except (RecurrenceEngineError, ValueError, yaml.YAMLError) as e:
        logger.error("%s", e)
        return EXIT_USAGE

    controller = EventController(first_day_of_week=args.first_day_of_week, config=config)
    document.apply_to(controller)

    occurrences = controller.get_events_for_range(window)
    logger.debug("Cache stats: %s", controller.get_cache_stats())

    json.dump([_occurrence_to_json(event) for event in occurrences], sys.stdout, indent=2)
    sys.stdout.write("\n")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
