from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_PORT_ENV = "ARDUINO_PORT"
_BAUD_RATE_ENV = "ARDUINO_BAUD_RATE"
_MOCK_ENV = "ARDUINO_MOCK"
_READ_TIMEOUT_ENV = "ARDUINO_READ_TIMEOUT"
_LOW_THRESHOLD_ENV = "STOCK_LOW_THRESHOLD"
_EMPTY_THRESHOLD_ENV = "STOCK_EMPTY_THRESHOLD"
_DB_PATH_ENV = "HEALTHPOD_DB_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_LOW_THRESHOLD = 150
DEFAULT_EMPTY_THRESHOLD = 200

_TRUTHY = {"true", "1", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    arduino_port: str
    arduino_baud_rate: int
    arduino_mock: bool
    arduino_read_timeout: float
    low_threshold: int
    empty_threshold: int
    db_path: Optional[str]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if not candidate:
        return default
    return candidate in _TRUTHY


def _read_int_env(name: str, default: int, minimum: Optional[int] = None) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    if minimum is not None and parsed < minimum:
        return default
    return parsed


def _read_positive_float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_thresholds() -> tuple[int, int]:
    low = _read_int_env(_LOW_THRESHOLD_ENV, DEFAULT_LOW_THRESHOLD, minimum=0)
    empty = _read_int_env(_EMPTY_THRESHOLD_ENV, DEFAULT_EMPTY_THRESHOLD, minimum=0)
    if low > empty:
        return DEFAULT_LOW_THRESHOLD, DEFAULT_EMPTY_THRESHOLD
    return low, empty


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    low_threshold, empty_threshold = _read_thresholds()
    return Settings(
        arduino_port=_read_str_env(_PORT_ENV, "COM14"),
        arduino_baud_rate=_read_int_env(_BAUD_RATE_ENV, 115200, minimum=1),
        arduino_mock=_read_bool_env(_MOCK_ENV, False),
        arduino_read_timeout=_read_positive_float_env(_READ_TIMEOUT_ENV, 1.0),
        low_threshold=low_threshold,
        empty_threshold=empty_threshold,
        db_path=_read_optional_env(_DB_PATH_ENV, "./data/db.json"),
        log_level=_read_log_level("INFO"),
    )
