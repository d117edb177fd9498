"""Map raw analog sensor values onto discrete stock levels."""

from __future__ import annotations

from dataclasses import dataclass

from models.records import SensorReading, StockLevel, StockLevelSet
from settings import DEFAULT_EMPTY_THRESHOLD, DEFAULT_LOW_THRESHOLD


@dataclass(frozen=True)
class StockThresholds:
    """Boundaries between FULL/MED (``low``) and MED/LOW (``empty``).

    A low reading means the sensor is blocked by pills, so values below
    ``low`` are FULL and values at or above ``empty`` are LOW.
    """

    low: int = DEFAULT_LOW_THRESHOLD
    empty: int = DEFAULT_EMPTY_THRESHOLD

    def __post_init__(self) -> None:
        if self.low > self.empty:
            raise ValueError(
                f"Low threshold {self.low} must not exceed empty threshold {self.empty}."
            )


DEFAULT_THRESHOLDS = StockThresholds()


def classify(raw: int, thresholds: StockThresholds = DEFAULT_THRESHOLDS) -> StockLevel:
    if raw < thresholds.low:
        return StockLevel.FULL
    if raw < thresholds.empty:
        return StockLevel.MED
    return StockLevel.LOW


def classify_reading(
    reading: SensorReading, thresholds: StockThresholds = DEFAULT_THRESHOLDS
) -> StockLevelSet:
    return StockLevelSet(
        c1=classify(reading.c1, thresholds),
        c2=classify(reading.c2, thresholds),
        c3=classify(reading.c3, thresholds),
    )
