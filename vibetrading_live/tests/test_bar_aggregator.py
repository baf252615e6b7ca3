from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from vibetrading_live.core.series import BarSeries
from vibetrading_live.market_data.aggregator import BarAggregator, BarUpdate
from vibetrading_live.tests.fakes import candle, make_bars

UTC = timezone.utc
T = datetime(2026, 1, 5, 10, 0, tzinfo=UTC)


def _aggregator_with_seed(**kwargs) -> BarAggregator:
    aggregator = BarAggregator(**kwargs)
    aggregator.install("BTCUSDT", "5m", make_bars(T - timedelta(minutes=15), 3, timedelta(minutes=5)))
    return aggregator


def test_ticks_in_one_bucket_replace_then_next_bucket_appends() -> None:
    aggregator = _aggregator_with_seed()
    series = aggregator.get("BTCUSDT", "5m")

    first = aggregator.apply_tick("BTCUSDT", "5m", candle("BTCUSDT", "5m", T.replace(minute=2), "101"))
    second = aggregator.apply_tick("BTCUSDT", "5m", candle("BTCUSDT", "5m", T.replace(minute=4), "102"))
    assert (first, second) == (BarUpdate.APPENDED, BarUpdate.REPLACED)
    assert len(series) == 4
    assert series.last_bar.close == Decimal("102")
    assert series.last_bar.start_time == T.replace(minute=2)

    third = aggregator.apply_tick("BTCUSDT", "5m", candle("BTCUSDT", "5m", T.replace(minute=6), "103"))
    assert third == BarUpdate.APPENDED
    assert len(series) == 5
    assert series.end_index == 4


def test_missing_close_time_is_derived_from_interval() -> None:
    aggregator = _aggregator_with_seed()
    aggregator.apply_tick("BTCUSDT", "5m", candle("BTCUSDT", "5m", T, "101"))

    assert aggregator.get("BTCUSDT", "5m").last_bar.end_time == T + timedelta(minutes=5)


def test_out_of_order_tick_is_rejected() -> None:
    aggregator = _aggregator_with_seed()
    aggregator.apply_tick("BTCUSDT", "5m", candle("BTCUSDT", "5m", T, "101"))

    stale = aggregator.apply_tick("BTCUSDT", "5m", candle("BTCUSDT", "5m", T - timedelta(minutes=7), "99"))

    assert stale == BarUpdate.REJECTED
    assert aggregator.get("BTCUSDT", "5m").last_bar.close == Decimal("101")


def test_tick_without_series_is_rejected() -> None:
    aggregator = BarAggregator()

    assert aggregator.apply_tick("ETHUSDT", "5m", candle("ETHUSDT", "5m", T, "1")) == BarUpdate.REJECTED


def test_install_does_not_reseed_an_existing_series() -> None:
    aggregator = _aggregator_with_seed()
    original = aggregator.get("BTCUSDT", "5m")

    again = aggregator.install("BTCUSDT", "5m", make_bars(T, 50, timedelta(minutes=5)))

    assert again is original
    assert len(original) == 3


def test_install_sorts_and_drops_duplicate_seed_bars() -> None:
    bars = make_bars(T, 3, timedelta(minutes=5))
    aggregator = BarAggregator()

    series = aggregator.install("BTCUSDT", "5m", [bars[2], bars[0], bars[1], bars[1]])

    assert [b.start_time for b in series.bars()] == [b.start_time for b in bars]


def test_max_bar_count_keeps_absolute_indexes() -> None:
    aggregator = BarAggregator(max_bar_count=3)
    aggregator.install("BTCUSDT", "5m", make_bars(T - timedelta(minutes=15), 3, timedelta(minutes=5)))
    series = aggregator.get("BTCUSDT", "5m")

    aggregator.apply_tick("BTCUSDT", "5m", candle("BTCUSDT", "5m", T, "120"))

    assert len(series) == 3
    assert series.begin_index == 1
    assert series.end_index == 3
    assert series.bar(3).close == Decimal("120")
    with pytest.raises(IndexError):
        series.bar(0)


def test_bar_series_guards_start_time_invariants() -> None:
    bars = make_bars(T, 2, timedelta(minutes=5))
    series = BarSeries("BTCUSDT", "5m", bars)

    with pytest.raises(ValueError):
        series.append(bars[0])
    with pytest.raises(ValueError):
        series.replace_last(bars[0])
