"""
Central logging configuration for calendarbot_recurrence.

Sets the level of the package's module loggers and quiets third-party
loggers that are noisy at DEBUG while keeping WARNING and above visible.
"""

import logging
import os
from typing import Optional

PACKAGE_MODULES = [
    "calendarbot_recurrence",
    "calendarbot_recurrence.event_controller",
    "calendarbot_recurrence.expansion_engine",
    "calendarbot_recurrence.expansion_cache",
    "calendarbot_recurrence.exception_store",
    "calendarbot_recurrence.rrule_evaluator",
    "calendarbot_recurrence.event_loader",
    "calendarbot_recurrence.config_loader",
    "calendarbot_recurrence.models",
]

THIRD_PARTY_LEVELS: dict[str, int] = {
    "dateutil": logging.WARNING,
    "yaml": logging.WARNING,
}


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> int:
    """
    Configure logging levels for calendarbot_recurrence modules.

    Args:
        debug_mode: Whether to enable debug logging for package modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        CALENDARBOT_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        CALENDARBOT_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        The root log level that was applied
    """
    env_debug = os.getenv("CALENDARBOT_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("CALENDARBOT_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Handlers are installed by _init_logging in __init__; only levels change here
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    logger_config = dict(THIRD_PARTY_LEVELS)
    package_level = logging.DEBUG if final_debug else logging.INFO
    for module in PACKAGE_MODULES:
        logger_config[module] = package_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.debug("Debug logging enabled for calendarbot_recurrence modules")
    return root_level


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ["calendarbot_recurrence", *THIRD_PARTY_LEVELS]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
