"""Unit tests for the stock level classifier."""

from __future__ import annotations

import pytest

from models.records import SensorReading, StockLevel, StockLevelSet
from services.classifier import StockThresholds, classify, classify_reading


def test_classify_boundaries() -> None:
    assert classify(0) is StockLevel.FULL
    assert classify(149) is StockLevel.FULL
    assert classify(150) is StockLevel.MED
    assert classify(199) is StockLevel.MED
    assert classify(200) is StockLevel.LOW
    assert classify(1023) is StockLevel.LOW


def test_classify_accepts_any_integer() -> None:
    assert classify(-5) is StockLevel.FULL
    assert classify(10**9) is StockLevel.LOW


def test_classify_with_custom_thresholds() -> None:
    thresholds = StockThresholds(low=500, empty=900)

    assert classify(499, thresholds) is StockLevel.FULL
    assert classify(500, thresholds) is StockLevel.MED
    assert classify(900, thresholds) is StockLevel.LOW


def test_equal_thresholds_skip_the_middle_level() -> None:
    thresholds = StockThresholds(low=300, empty=300)

    assert classify(299, thresholds) is StockLevel.FULL
    assert classify(300, thresholds) is StockLevel.LOW


def test_inverted_thresholds_are_rejected() -> None:
    with pytest.raises(ValueError):
        StockThresholds(low=250, empty=200)


def test_classify_reading_maps_each_container() -> None:
    levels = classify_reading(SensorReading(c1=100, c2=300, c3=180))

    assert levels == StockLevelSet(c1=StockLevel.FULL, c2=StockLevel.LOW, c3=StockLevel.MED)
    assert levels.for_container(2) is StockLevel.LOW
    assert levels.for_container(4) is None


def test_stock_levels_are_ordered_by_amount_present() -> None:
    assert StockLevel.FULL > StockLevel.MED > StockLevel.LOW
    assert sorted([StockLevel.MED, StockLevel.FULL, StockLevel.LOW]) == [
        StockLevel.LOW,
        StockLevel.MED,
        StockLevel.FULL,
    ]
    assert max(StockLevel) is StockLevel.FULL
