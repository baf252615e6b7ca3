"""Bar series shared by every strategy running on one (symbol, interval)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional


@dataclass(frozen=True)
class Bar:
    start_time: datetime
    end_time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal


class BarSeries:
    """
    Ordered bar history with absolute indexing.

    Only the last bar may change in place, and only its OHLCV fields.
    When `max_bar_count` is set the oldest bars are evicted, but indexes
    keep counting from the first bar ever added so evaluators bound to
    the series see stable positions.
    """

    def __init__(
        self,
        symbol: str,
        interval: str,
        bars: Iterable[Bar] = (),
        max_bar_count: Optional[int] = None,
    ) -> None:
        self.symbol = symbol
        self.interval = interval
        self._max_bar_count = max_bar_count
        self._bars: list[Bar] = []
        self._removed = 0
        for bar in bars:
            self.append(bar)

    @property
    def name(self) -> str:
        return f"{self.symbol}_{self.interval}"

    @property
    def is_empty(self) -> bool:
        return not self._bars

    def __len__(self) -> int:
        return len(self._bars)

    @property
    def begin_index(self) -> int:
        return self._removed

    @property
    def end_index(self) -> int:
        """Index of the last bar, or begin_index - 1 when empty."""
        return self._removed + len(self._bars) - 1

    @property
    def last_bar(self) -> Optional[Bar]:
        return self._bars[-1] if self._bars else None

    def bar(self, index: int) -> Bar:
        position = index - self._removed
        if position < 0 or position >= len(self._bars):
            raise IndexError(
                f"Bar index {index} outside [{self.begin_index}, {self.end_index}] for {self.name}"
            )
        return self._bars[position]

    def bars(self) -> tuple[Bar, ...]:
        """Snapshot of the retained bars."""
        return tuple(self._bars)

    def append(self, bar: Bar) -> None:
        last = self.last_bar
        if last is not None and bar.start_time <= last.start_time:
            raise ValueError(
                f"Bar start {bar.start_time} does not advance past {last.start_time} in {self.name}"
            )
        self._bars.append(bar)
        if self._max_bar_count is not None and len(self._bars) > self._max_bar_count:
            overflow = len(self._bars) - self._max_bar_count
            del self._bars[:overflow]
            self._removed += overflow

    def replace_last(self, bar: Bar) -> None:
        last = self.last_bar
        if last is None:
            raise ValueError(f"Cannot replace last bar of empty series {self.name}")
        if bar.start_time != last.start_time:
            raise ValueError(
                f"Replacement bar start {bar.start_time} differs from open bar {last.start_time}"
            )
        self._bars[-1] = bar
