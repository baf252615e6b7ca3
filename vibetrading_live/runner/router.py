"""
Signal Router
Fans a tick out to every running strategy on its (symbol, interval).
"""

import logging
from typing import Optional

from vibetrading_live.core.intervals import interval_duration
from vibetrading_live.core.ports import Clock
from vibetrading_live.execution.pipeline import OrderExecutionPipeline
from vibetrading_live.market_data.aggregator import BarAggregator, BarUpdate
from vibetrading_live.models import (
    Candle,
    OrderSide,
    PositionStatus,
    RunningStrategyState,
    StrategyStatus,
)
from vibetrading_live.runner.registry import StrategyRuntimeRegistry

logger = logging.getLogger(__name__)


class SignalRouter:
    """
    Tick dispatch path.

    `on_tick` is synchronous and runs on the engine loop, so the gating
    check and the hand-off to the pipeline happen without a suspension
    point in between.
    """

    def __init__(
        self,
        aggregator: BarAggregator,
        registry: StrategyRuntimeRegistry,
        pipeline: OrderExecutionPipeline,
        clock: Clock,
    ) -> None:
        self.aggregator = aggregator
        self.registry = registry
        self.pipeline = pipeline
        self.clock = clock

    def on_tick(self, symbol: str, interval: str, candle: Candle) -> int:
        """
        Apply the tick to its series, then evaluate each matching strategy.

        Returns:
            Number of orders submitted
        """
        update = self.aggregator.apply_tick(symbol, interval, candle)
        if update == BarUpdate.REJECTED:
            return 0

        series = self.aggregator.get(symbol, interval)
        index = series.end_index
        same_bar_update = update == BarUpdate.REPLACED

        submitted = 0
        for state in self.registry.matching(symbol, interval):
            try:
                side = self.evaluate(state, index, candle)
                if side is None:
                    continue
                logger.info(f"{side.value.upper()} signal for {state.key} at index {index}, price {candle.close}")
                self.pipeline.submit(state, candle, side, same_bar_update)
                submitted += 1
            except Exception as e:
                logger.error(f"Signal evaluation failed for {state.key}: {e}", exc_info=True)
        return submitted

    def evaluate(self, state: RunningStrategyState, index: int, candle: Candle) -> Optional[OrderSide]:
        """
        Gate the evaluator's signals against the state as it was before this tick.

        - BUY: should_enter, FLAT, and more than one interval since the last trade
        - SELL: should_exit and LONG
        """
        now = self.clock.now()
        state.current_price = candle.close
        state.last_update_time = now

        if state.status != StrategyStatus.RUNNING or not state.is_active:
            return None
        if state.has_inflight_order:
            logger.debug(f"{state.key} has an order in flight, tick not evaluated")
            return None

        evaluator = state.evaluator
        if evaluator is None:
            return None

        position = state.position_status
        enter = evaluator.should_enter(index)
        exit_ = evaluator.should_exit(index)

        if enter and position == PositionStatus.FLAT and self.outside_last_trade_period(state, now):
            return OrderSide.BUY
        if exit_ and position == PositionStatus.LONG:
            return OrderSide.SELL
        return None

    def outside_last_trade_period(self, state: RunningStrategyState, now) -> bool:
        if state.last_trade_time is None:
            return True
        return now - state.last_trade_time > interval_duration(state.interval)
