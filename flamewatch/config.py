"""
Runtime settings read from FLAMEWATCH_* environment variables.

Every value here is also a default for the matching CLI option.
"""

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    poll_interval: float = 0.25
    sample_interval: float = 0.1
    log_capacity: int = 1000
    log_visible_lines: int = 8
    ignore_case: bool = False
    py_spy: str = "py-spy"
    dump_timeout: float = 10.0


def _env_number(name: str, default, cast):
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a valid %s", name, raw, cast.__name__)
        return default
    if value <= 0:
        logger.warning("Ignoring %s=%r: must be positive", name, raw)
        return default
    return value


def load_settings() -> Settings:
    defaults = Settings()
    return Settings(
        poll_interval=_env_number("FLAMEWATCH_POLL_INTERVAL", defaults.poll_interval, float),
        sample_interval=_env_number("FLAMEWATCH_SAMPLE_INTERVAL", defaults.sample_interval, float),
        log_capacity=_env_number("FLAMEWATCH_LOG_CAPACITY", defaults.log_capacity, int),
        log_visible_lines=_env_number("FLAMEWATCH_LOG_VISIBLE_LINES", defaults.log_visible_lines, int),
        ignore_case=os.environ.get("FLAMEWATCH_IGNORE_CASE", "").lower() in _TRUE_VALUES,
        py_spy=os.environ.get("FLAMEWATCH_PY_SPY") or defaults.py_spy,
        dump_timeout=_env_number("FLAMEWATCH_DUMP_TIMEOUT", defaults.dump_timeout, float),
    )
