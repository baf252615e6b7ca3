"""
Bar Aggregator
Turns streamed candle updates into an append-or-replace bar series per (symbol, interval).
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from vibetrading_live.core.intervals import close_time_for, period_start
from vibetrading_live.core.series import Bar, BarSeries
from vibetrading_live.models import Candle

logger = logging.getLogger(__name__)

SeriesKey = Tuple[str, str]


class BarUpdate(str, Enum):
    """What a tick did to its series."""
    APPENDED = "appended"
    REPLACED = "replaced"
    REJECTED = "rejected"


class BarAggregator:
    """
    Owns one bar series per (symbol, interval).

    A tick whose period bucket equals the last bar's bucket replaces that
    bar in place (start time kept); a later bucket appends a new bar.
    Ticks for a bucket older than the last bar are dropped.

    Series are created lazily by `install` and are never torn down when a
    strategy stops; other strategies may still hold them.
    """

    def __init__(
        self,
        tz: tzinfo = timezone.utc,
        max_bar_count: Optional[int] = None,
    ) -> None:
        """
        Initialize aggregator.

        Args:
            tz: Calendar in which period buckets are aligned
            max_bar_count: Cap on retained bars per series
        """
        self._tz = tz
        self._max_bar_count = max_bar_count
        self._series: Dict[SeriesKey, BarSeries] = {}
        self._lock = threading.Lock()

    def get(self, symbol: str, interval: str) -> Optional[BarSeries]:
        """Get the series for a key, if one was installed."""
        with self._lock:
            return self._series.get((symbol, interval))

    def install(self, symbol: str, interval: str, bars: Iterable[Bar]) -> BarSeries:
        """
        Create the series for a key from seed bars.

        If a series already exists it is returned unchanged; seeding twice
        would rewind history that live ticks have already advanced.
        """
        ordered = sorted(bars, key=lambda b: b.start_time)
        with self._lock:
            existing = self._series.get((symbol, interval))
            if existing is not None:
                return existing

            series = BarSeries(symbol, interval, max_bar_count=self._max_bar_count)
            for bar in ordered:
                bar = self._aware_bar(bar)
                last = series.last_bar
                if last is not None and bar.start_time <= last.start_time:
                    logger.debug(f"Skipping non-advancing seed bar {bar.start_time} for {series.name}")
                    continue
                series.append(bar)

            self._series[(symbol, interval)] = series
            logger.info(f"Installed bar series {series.name} with {len(series)} bars")
            return series

    def apply_tick(self, symbol: str, interval: str, candle: Candle) -> BarUpdate:
        """
        Apply one candle update to the series for (symbol, interval).

        Must be called in tick arrival order for a given key.
        """
        series = self.get(symbol, interval)
        if series is None:
            logger.debug(f"No series for {symbol}_{interval}, tick ignored")
            return BarUpdate.REJECTED

        bar = self.bar_from_candle(candle, interval)
        last = series.last_bar
        if last is None:
            series.append(bar)
            return BarUpdate.APPENDED

        new_bucket = period_start(bar.start_time, interval, self._tz)
        last_bucket = period_start(last.start_time, interval, self._tz)

        if new_bucket == last_bucket:
            series.replace_last(replace(bar, start_time=last.start_time))
            return BarUpdate.REPLACED

        if new_bucket < last_bucket:
            logger.warning(
                f"Out-of-order tick for {series.name}: bucket {new_bucket} precedes {last_bucket}, dropped"
            )
            return BarUpdate.REJECTED

        series.append(bar)
        return BarUpdate.APPENDED

    def bar_from_candle(self, candle: Candle, interval: str) -> Bar:
        """Build a bar, deriving the close time from the interval when absent."""
        open_time = self._aware(candle.open_time)
        if candle.close_time is not None:
            end_time = self._aware(candle.close_time)
        else:
            end_time = close_time_for(open_time, interval)

        return Bar(
            start_time=open_time,
            end_time=end_time,
            open=candle.open,
            high=candle.high,
            low=candle.low,
            close=candle.close,
            volume=candle.volume,
        )

    def _aware(self, ts: datetime) -> datetime:
        if ts.tzinfo is None:
            return ts.replace(tzinfo=self._tz)
        return ts

    def _aware_bar(self, bar: Bar) -> Bar:
        if bar.start_time.tzinfo is not None and bar.end_time.tzinfo is not None:
            return bar
        return replace(bar, start_time=self._aware(bar.start_time), end_time=self._aware(bar.end_time))
