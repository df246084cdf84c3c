import math

import pytest

from history_tracker import HistoryTracker
from pool_schema import HistoryStats


def test_series_is_bounded_fifo():
    tracker = HistoryTracker(3, clock=lambda: 100.0)
    for value in [1, 2, 3, 4, 5]:
        tracker.record("0xpool", value)

    assert tracker.values("0xpool") == [3.0, 4.0, 5.0]
    assert len(tracker.series("0xpool")) == 3


def test_record_stamps_points_with_clock():
    now = [10.0]
    tracker = HistoryTracker(10, clock=lambda: now[0])
    tracker.record("0xpool", 1)
    now[0] = 25.0
    tracker.record("0xpool", 2)

    assert [point.t for point in tracker.series("0xpool")] == [10.0, 25.0]


def test_unknown_address_returns_zero_stats():
    tracker = HistoryTracker(10)

    assert tracker.stats("0xmissing") == HistoryStats(0.0, 0.0, 0.0)
    assert "0xmissing" not in tracker


def test_stats_average_trend_and_volatility():
    tracker = HistoryTracker(10)
    for value in [10, 20, 30]:
        tracker.record("0xpool", value)

    stats = tracker.stats("0xpool")

    assert stats.average == pytest.approx(20.0)
    assert stats.trend == pytest.approx(2.0)
    expected_std = math.sqrt((100 + 0 + 100) / 3)
    assert stats.volatility == pytest.approx(expected_std / 20.0 * 100.0)


def test_trend_uses_only_recent_window():
    tracker = HistoryTracker(100, trend_window=12)
    for value in range(1, 16):
        tracker.record("0xpool", value)

    # Most recent twelve points are 4..15.
    assert tracker.stats("0xpool").trend == pytest.approx((15 - 4) / 4)


def test_trend_zero_when_window_starts_at_zero():
    tracker = HistoryTracker(10)
    tracker.record("0xpool", 0)
    tracker.record("0xpool", 50)

    assert tracker.stats("0xpool").trend == 0.0


def test_single_point_has_no_trend_or_volatility():
    tracker = HistoryTracker(10)
    tracker.record("0xpool", 42)

    stats = tracker.stats("0xpool")
    assert stats.average == pytest.approx(42.0)
    assert stats.trend == 0.0
    assert stats.volatility == 0.0


def test_zero_average_yields_zero_volatility():
    tracker = HistoryTracker(10)
    tracker.record("0xpool", 0)
    tracker.record("0xpool", 0)

    assert tracker.stats("0xpool").volatility == 0.0


def test_non_numeric_values_are_recorded_as_zero():
    tracker = HistoryTracker(10)
    tracker.record("0xpool", "n/a")
    tracker.record("0xpool", None)

    assert tracker.values("0xpool") == [0.0, 0.0]


def test_load_dict_skips_bad_points_and_trims():
    tracker = HistoryTracker(2)
    loaded = tracker.load_dict(
        {
            "0xa": [{"t": 1, "v": 5}, {"t": 2, "v": 6}, {"t": 3, "v": 7}],
            "0xb": [{"t": 1}, "junk", {"t": 2, "v": "9"}],
            "0xc": "not-a-list",
        }
    )

    assert loaded == 2
    assert tracker.values("0xa") == [6.0, 7.0]
    assert tracker.values("0xb") == [9.0]
    assert tracker.to_dict()["0xa"] == [{"t": 2.0, "v": 6.0}, {"t": 3.0, "v": 7.0}]
