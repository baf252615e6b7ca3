"""
Turtle Breakout Strategy
Simple trend-following evaluator for system validation.

Entry: close breaks above the highest high of the previous N bars
Exit: close breaks below the lowest low of the previous M bars

No strategy-specific code exists in the engine itself.
"""

import logging
from functools import partial

from vibetrading_live.core.series import BarSeries
from vibetrading_live.strategy.base import BarSeriesEvaluator
from vibetrading_live.strategy.registry import EvaluatorRegistry

logger = logging.getLogger(__name__)


class TurtleBreakoutEvaluator(BarSeriesEvaluator):
    """
    Turtle Breakout

    Rules:
    - Long Entry: Close > highest high of the prior `entry_lookback` bars
    - Long Exit: Close < lowest low of the prior `exit_lookback` bars

    The bar at `index` is excluded from its own breakout level to
    prevent look-ahead.
    """

    name = "turtle_breakout"

    def __init__(
        self,
        series: BarSeries,
        entry_lookback: int = 20,
        exit_lookback: int = 10,
    ) -> None:
        super().__init__(series)
        self.entry_lookback = entry_lookback
        self.exit_lookback = exit_lookback

    def should_enter(self, index: int) -> bool:
        window = self.lookback(index, self.entry_lookback)
        # Need full lookback before trading
        if len(window) < self.entry_lookback:
            return False
        entry_high = max(bar.high for bar in window)
        close = self.series.bar(index).close
        if close > entry_high:
            logger.debug(f"Entry breakout on {self.series.name}: {close} > {entry_high}")
            return True
        return False

    def should_exit(self, index: int) -> bool:
        window = self.lookback(index, self.exit_lookback)
        if len(window) < self.exit_lookback:
            return False
        exit_low = min(bar.low for bar in window)
        return self.series.bar(index).close < exit_low


def register_builtin_strategies(registry: EvaluatorRegistry) -> EvaluatorRegistry:
    """Register the bundled evaluators."""
    registry.register("turtle_breakout", TurtleBreakoutEvaluator)
    registry.register(
        "turtle_breakout_fast",
        partial(TurtleBreakoutEvaluator, entry_lookback=10, exit_lookback=5),
    )
    return registry
