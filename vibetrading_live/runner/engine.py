"""
Live Strategy Engine
Start/stop/recovery lifecycle over the aggregator, router and execution pipeline.
"""

import asyncio
import logging
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from typing import List, Optional, Set
from zoneinfo import ZoneInfo

from vibetrading_live.config import EngineSettings, get_settings
from vibetrading_live.core.errors import SubscriptionError
from vibetrading_live.core.ports import (
    Clock,
    HistoricalBarSource,
    MarketDataTransport,
    Notifier,
    OrderExecutor,
    StrategyRepository,
)
from vibetrading_live.execution.pipeline import OrderExecutionPipeline
from vibetrading_live.market_data.aggregator import BarAggregator
from vibetrading_live.market_data.subscriptions import SubscriptionManager
from vibetrading_live.models import (
    Candle,
    EngineSnapshot,
    OrderSide,
    PositionStatus,
    RunningStrategyState,
    StartResult,
    StartStatus,
    StrategyKey,
    StrategyRow,
    StrategyStatus,
    StrategySummary,
    utc_now,
)
from vibetrading_live.runner.registry import StrategyRuntimeRegistry
from vibetrading_live.runner.router import SignalRouter
from vibetrading_live.strategy.registry import EvaluatorRegistry

logger = logging.getLogger(__name__)


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return utc_now()


def resolve_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


class LiveStrategyEngine:
    """
    Runs many strategies against shared live bar series.

    Everything runs on one asyncio loop. Ticks enter through `on_tick`
    (on the loop) or `dispatch_threadsafe` (from a transport thread).
    Orders run as background tasks owned by the pipeline.
    """

    def __init__(
        self,
        evaluators: EvaluatorRegistry,
        transport: MarketDataTransport,
        history: HistoricalBarSource,
        executor: OrderExecutor,
        repository: StrategyRepository,
        notifier: Notifier,
        clock: Optional[Clock] = None,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        settings = settings or get_settings().engine
        self.evaluators = evaluators
        self.history = history
        self.repository = repository
        self.clock = clock or SystemClock()
        self.seed_bar_count = settings.seed_bar_count
        self.default_trade_amount = settings.default_trade_amount

        self.aggregator = BarAggregator(
            tz=resolve_timezone(settings.bar_timezone),
            max_bar_count=settings.max_bar_count,
        )
        self.subscriptions = SubscriptionManager(transport)
        self.registry = StrategyRuntimeRegistry()
        self.pipeline = OrderExecutionPipeline(
            executor=executor,
            repository=repository,
            notifier=notifier,
            registry=self.registry,
            subscriptions=self.subscriptions,
            clock=self.clock,
        )
        self.router = SignalRouter(self.aggregator, self.registry, self.pipeline, self.clock)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._starting: Set[StrategyKey] = set()

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # Market data ingress
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def attach_loop(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Bind the loop that `dispatch_threadsafe` hands ticks to."""
        self._loop = loop or asyncio.get_running_loop()

    def on_tick(self, symbol: str, interval: str, candle: Candle) -> int:
        """Process one candle update. Must run on the engine loop."""
        return self.router.on_tick(symbol, interval, candle)

    def dispatch_threadsafe(self, symbol: str, interval: str, candle: Candle) -> None:
        """
        Hand a tick from another thread to the engine loop.

        Callbacks scheduled this way run in FIFO order, so ticks keep
        their arrival order per (symbol, interval).
        """
        if self._loop is None:
            raise RuntimeError("Engine is not attached to an event loop")
        self._loop.call_soon_threadsafe(self.on_tick, symbol, interval, candle)

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # Lifecycle
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    async def start_strategy(
        self,
        strategy_code: str,
        symbol: str,
        interval: str,
        trade_amount: Optional[Decimal] = None,
        strategy_name: str = "",
    ) -> StartResult:
        """
        Start a new strategy instance; failures come back as CANCELED results.

        Without `trade_amount` the configured `ENGINE_DEFAULT_TRADE_AMOUNT` is used.
        """
        if trade_amount is None:
            trade_amount = self.default_trade_amount
        state = RunningStrategyState(
            strategy_code=strategy_code,
            strategy_name=strategy_name or strategy_code,
            symbol=symbol,
            interval=interval,
            trade_amount=trade_amount,
        )
        return await self.start_state(state)

    async def start_state(self, state: RunningStrategyState) -> StartResult:
        """Start (or resume) an existing state object."""
        key = state.key
        if key in self.registry or key in self._starting:
            logger.warning(f"Strategy {key} is already running")
            return self._canceled(state, "Strategy already running")

        self._starting.add(key)
        try:
            return await self._start(state)
        finally:
            self._starting.discard(key)

    async def _start(self, state: RunningStrategyState) -> StartResult:
        if self._loop is None:
            self.attach_loop()

        if state.trade_amount <= 0:
            return self._canceled(state, f"Trade amount must be positive, got {state.trade_amount}")

        symbol, interval = state.symbol, state.interval
        series = self.aggregator.get(symbol, interval)
        if series is None:
            try:
                seed = await self.history.fetch_recent_bars(symbol, interval, self.seed_bar_count)
            except Exception as e:
                logger.error(f"Failed to load history for {symbol}_{interval}: {e}")
                return self._canceled(state, f"Failed to load historical bars: {e}")
            if seed is not None and not seed.is_empty:
                series = self.aggregator.install(symbol, interval, seed.bars())
            else:
                series = seed

        try:
            await self.subscriptions.acquire(symbol, interval)
        except SubscriptionError as e:
            logger.error(f"Subscription failed for {state.key}: {e}")
            return self._canceled(state, f"Subscription failed: {e}")

        try:
            evaluator = self.evaluators.create(series, state.strategy_code)
        except Exception as e:
            logger.error(f"Failed to create strategy {state.key}: {e}")
            await self.subscriptions.release(symbol, interval)
            return self._canceled(state, f"Failed to create strategy: {e}")

        state.bind_evaluator(evaluator)
        state.set_inflight(None)
        state.status = StrategyStatus.RUNNING
        state.is_active = True
        state.start_time = self.clock.now()
        state.end_time = None
        state.error_message = None

        try:
            state.id = await self.repository.save_state(state)
        except Exception as e:
            logger.error(f"Failed to persist strategy {state.key}: {e}")
            await self.subscriptions.release(symbol, interval)
            return self._canceled(state, f"Failed to save strategy: {e}")

        state.attach_completion(asyncio.get_running_loop().create_future())
        self.registry.insert(state)

        logger.info(
            f"Started strategy {state.key} (id={state.id}, amount={state.trade_amount}, "
            f"position={state.position_status.value})"
        )
        return StartResult(
            status=StartStatus.SUCCESS,
            message="Strategy started",
            state_id=state.id,
            strategy_code=state.strategy_code,
            strategy_name=state.strategy_name,
            symbol=symbol,
            interval=interval,
            trade_amount=state.trade_amount,
            start_time=state.start_time,
        )

    def _canceled(self, state: RunningStrategyState, message: str) -> StartResult:
        if self.registry.get(state.key) is not state:
            state.status = StrategyStatus.CANCELED
        return StartResult(
            status=StartStatus.CANCELED,
            message=message,
            state_id=state.id,
            strategy_code=state.strategy_code,
            strategy_name=state.strategy_name,
            symbol=state.symbol,
            interval=state.interval,
            trade_amount=state.trade_amount,
        )

    async def stop_strategy(
        self,
        strategy_code: str,
        symbol: str,
        interval: str,
        liquidate: bool = False,
    ) -> Optional[StrategySummary]:
        """
        Stop a running strategy.

        Waits for an in-flight order before building the summary. With
        `liquidate`, an open position is sold at the last known price
        first. Returns None if the key was not running.
        """
        key = StrategyKey(strategy_code, symbol, interval)
        state = self.registry.remove(key)
        if state is None:
            logger.info(f"Strategy {key} is not running, nothing to stop")
            return None

        await self._wait_inflight(state)

        if liquidate and state.status == StrategyStatus.RUNNING and state.position_status == PositionStatus.LONG:
            candle = self._last_candle(state)
            if candle is not None:
                logger.info(f"Liquidating {state.key} at {candle.close}")
                await self.pipeline.execute(state, candle, OrderSide.SELL)
            else:
                logger.warning(f"No price to liquidate {state.key}, position left open")

        await self.subscriptions.release(symbol, interval)

        if state.status != StrategyStatus.ERROR:
            state.status = StrategyStatus.STOPPED
            state.is_active = False
            state.end_time = self.clock.now()
            await self._save_quietly(state)
            summary = state.build_summary(StrategyStatus.COMPLETED)
            state.resolve(summary)
        else:
            summary = state.build_summary(StrategyStatus.ERROR)

        logger.info(
            f"Stopped strategy {state.key}: trades={summary.total_trades}, "
            f"profit={summary.total_profit}, success_rate={summary.success_rate:.2%}"
        )
        return summary

    async def recover(self) -> List[StartResult]:
        """Restart every strategy flagged for auto-start; one failure never blocks the rest."""
        try:
            candidates = await self.repository.load_auto_start_candidates()
        except Exception as e:
            logger.error(f"Failed to load auto-start strategies: {e}")
            return []

        logger.info(f"Recovering {len(candidates)} strategies")
        results = []
        for candidate in candidates:
            try:
                candidate.status = StrategyStatus.STARTING
                result = await self.start_state(candidate)
                if not result.ok:
                    logger.warning(f"Auto-start of {candidate.key} canceled: {result.message}")
                results.append(result)
            except Exception as e:
                logger.error(f"Auto-start of {candidate.key} failed: {e}", exc_info=True)
        return results

    async def shutdown(self) -> None:
        """
        Stop everything for process exit.

        States are marked STOPPED but stay active so the next `recover`
        picks them up again.
        """
        states = self.registry.values()
        for state in states:
            if self.registry.remove(state.key, expected=state) is None:
                continue
            await self._wait_inflight(state)
            await self.subscriptions.release(state.symbol, state.interval)
            if state.status == StrategyStatus.ERROR:
                continue
            state.status = StrategyStatus.STOPPED
            state.end_time = self.clock.now()
            await self._save_quietly(state)
            state.complete(StrategyStatus.STOPPED)

        await self.pipeline.drain()
        logger.info(f"Engine shut down, {len(states)} strategies stopped")

    async def resubscribe_all(self) -> int:
        """Re-issue every live subscription after a transport reconnect."""
        return await self.subscriptions.resubscribe_all()

    async def drain(self) -> None:
        """Wait for all in-flight orders."""
        await self.pipeline.drain()

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # Queries
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def get(self, strategy_code: str, symbol: str, interval: str) -> Optional[RunningStrategyState]:
        return self.registry.get(StrategyKey(strategy_code, symbol, interval))

    def running_strategies(self) -> List[RunningStrategyState]:
        return self.registry.values()

    def snapshot(self) -> EngineSnapshot:
        """Aggregate view of every running strategy."""
        states = self.registry.values()
        rows = [
            StrategyRow(
                id=state.id,
                key=str(state.key),
                position_status=state.position_status,
                trade_amount=state.trade_amount,
                total_profit=state.total_profit,
                total_trades=state.total_trades,
                last_trade_price=state.last_trade_price,
                current_price=state.current_price,
            )
            for state in states
        ]
        return EngineSnapshot(
            running_count=len(states),
            holding_count=sum(1 for s in states if s.position_status == PositionStatus.LONG),
            total_invested=sum((s.trade_amount for s in states), Decimal("0")),
            total_realized_profit=sum((s.total_profit for s in states), Decimal("0")),
            strategies=rows,
        )

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # Helpers
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    async def _wait_inflight(self, state: RunningStrategyState) -> None:
        task = state.inflight
        if task is not None and not task.done():
            logger.info(f"Waiting for in-flight order of {state.key}")
            await asyncio.wait({task})

    async def _save_quietly(self, state: RunningStrategyState) -> None:
        try:
            state.id = await self.repository.save_state(state)
        except Exception as e:
            logger.error(f"Failed to persist final state of {state.key}: {e}")

    def _last_candle(self, state: RunningStrategyState) -> Optional[Candle]:
        series = self.aggregator.get(state.symbol, state.interval)
        bar = series.last_bar if series is not None else None
        if bar is None:
            return None
        return Candle(
            symbol=state.symbol,
            interval=state.interval,
            open_time=bar.start_time,
            close_time=bar.end_time,
            open=bar.open,
            high=bar.high,
            low=bar.low,
            close=state.current_price or bar.close,
            volume=bar.volume,
        )
