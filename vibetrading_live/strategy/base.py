"""Base class for signal evaluators bound to a live bar series."""

from __future__ import annotations

from vibetrading_live.core.series import Bar, BarSeries


class BarSeriesEvaluator:
    """
    Evaluator holding a reference to the shared series it was built from.

    The series keeps growing after construction; subclasses must read
    bars through absolute indexes and never cache a copy.
    """

    name = "base"

    def __init__(self, series: BarSeries) -> None:
        self.series = series

    def lookback(self, index: int, count: int) -> list[Bar]:
        """Up to `count` bars strictly before `index` that are still retained."""
        first = max(self.series.begin_index, index - count)
        return [self.series.bar(i) for i in range(first, index)]

    def should_enter(self, index: int) -> bool:
        raise NotImplementedError

    def should_exit(self, index: int) -> bool:
        raise NotImplementedError
