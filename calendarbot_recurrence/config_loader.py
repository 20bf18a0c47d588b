"""calendarbot_recurrence.config_loader

Config loader for the recurrence engine.

- Reads YAML (PyYAML) from an optional path; a missing file means defaults.
- Exposes a typed dataclass `EngineConfig`, a `load_config()` helper and
  `apply_env_overrides()` for CALENDARBOT_* environment variables.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from .models import Weekday

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES_PER_RULE = 5000
MIN_MAX_OCCURRENCES_PER_RULE = 1
MAX_MAX_OCCURRENCES_PER_RULE = 100000

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class EngineConfig:
    """Typed configuration for the recurrence engine.

    Fields:
        first_day_of_week: fallback week start for rules without WKST
        max_occurrences_per_rule: cap on occurrences one rule evaluation may
            return (1..100000)
        log_level: logging level name
    """

    first_day_of_week: Weekday = Weekday.MONDAY
    max_occurrences_per_rule: int = DEFAULT_MAX_OCCURRENCES_PER_RULE
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EngineConfig:
        """Create EngineConfig from a plain mapping, applying defaults and validation.

        Unknown weekday names and non-numeric caps fall back to the defaults
        with a warning; the cap is clamped into its allowed range.
        """
        if data is None:
            data = {}

        first_day_raw = data.get("first_day_of_week", Weekday.MONDAY)
        try:
            first_day = Weekday.parse(first_day_raw)
        except ValueError:
            logger.warning("Config first_day_of_week=%r is not a weekday; using MONDAY", first_day_raw)
            first_day = Weekday.MONDAY

        max_raw = data.get("max_occurrences_per_rule", DEFAULT_MAX_OCCURRENCES_PER_RULE)
        try:
            max_occurrences = int(max_raw)
        except (TypeError, ValueError):
            logger.warning(
                "Config max_occurrences_per_rule=%r is not an int; using default %d",
                max_raw,
                DEFAULT_MAX_OCCURRENCES_PER_RULE,
            )
            max_occurrences = DEFAULT_MAX_OCCURRENCES_PER_RULE
        max_occurrences = _clamp_max_occurrences(max_occurrences)

        log_level = data.get("log_level", "INFO")
        log_level = str(log_level).upper() if log_level is not None else "INFO"
        if log_level not in _LOG_LEVELS:
            logger.warning("Config log_level=%r is not a level name; using INFO", log_level)
            log_level = "INFO"

        return cls(
            first_day_of_week=first_day,
            max_occurrences_per_rule=max_occurrences,
            log_level=log_level,
        )


def _clamp_max_occurrences(value: int) -> int:
    if value < MIN_MAX_OCCURRENCES_PER_RULE:
        logger.warning(
            "max_occurrences_per_rule %d below minimum; coercing to %d",
            value,
            MIN_MAX_OCCURRENCES_PER_RULE,
        )
        return MIN_MAX_OCCURRENCES_PER_RULE
    if value > MAX_MAX_OCCURRENCES_PER_RULE:
        logger.warning(
            "max_occurrences_per_rule %d above maximum; coercing to %d",
            value,
            MAX_MAX_OCCURRENCES_PER_RULE,
        )
        return MAX_MAX_OCCURRENCES_PER_RULE
    return value


def _load_yaml(path: Path) -> Any:
    loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    # safe_load returns None for empty files
    return {} if loaded is None else loaded


def load_config(path: str | Path | None = None) -> EngineConfig:
    """Load configuration from a YAML file and return an EngineConfig instance.

    Args:
        path: Optional path to the config file. Without one, defaults are used.

    Returns:
        EngineConfig with values from file (or defaults).

    Raises:
        ValueError: If the file exists but its top level is not a mapping
        yaml.YAMLError: If the file is not valid YAML
    """
    if path is None:
        logger.debug("No config path given; using defaults")
        return EngineConfig()

    p = Path(path)
    logger.debug("Attempting to load config from %s", p)
    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        return EngineConfig()

    raw = _load_yaml(p)
    if not isinstance(raw, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
        raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
    cfg = EngineConfig.from_dict(raw)
    logger.info("Loaded configuration from %s", p)
    logger.debug("Configuration values: %s", cfg)
    return cfg


def apply_env_overrides(cfg: EngineConfig) -> EngineConfig:
    """Return ``cfg`` with CALENDARBOT_* environment overrides applied.

    Recognizes:
    - CALENDARBOT_FIRST_DAY_OF_WEEK -> first_day_of_week ("sunday", "SU", "6")
    - CALENDARBOT_MAX_OCCURRENCES -> max_occurrences_per_rule (int)
    - CALENDARBOT_LOG_LEVEL -> log_level
    """
    overrides: dict[str, Any] = {}

    first_day = os.environ.get("CALENDARBOT_FIRST_DAY_OF_WEEK")
    if first_day:
        try:
            overrides["first_day_of_week"] = Weekday.parse(
                int(first_day) if first_day.isdigit() else first_day
            )
        except ValueError:
            logger.warning("Invalid CALENDARBOT_FIRST_DAY_OF_WEEK=%r; ignoring", first_day)

    max_occurrences = os.environ.get("CALENDARBOT_MAX_OCCURRENCES")
    if max_occurrences:
        try:
            overrides["max_occurrences_per_rule"] = _clamp_max_occurrences(int(max_occurrences))
        except ValueError:
            logger.warning("Invalid CALENDARBOT_MAX_OCCURRENCES=%r; ignoring", max_occurrences)

    log_level = os.environ.get("CALENDARBOT_LOG_LEVEL", "").upper()
    if log_level:
        if log_level in _LOG_LEVELS:
            overrides["log_level"] = log_level
        else:
            logger.warning("Invalid CALENDARBOT_LOG_LEVEL=%r; ignoring", log_level)

    if overrides:
        logger.debug("Applying environment overrides: %s", sorted(overrides))
        return replace(cfg, **overrides)
    return cfg
