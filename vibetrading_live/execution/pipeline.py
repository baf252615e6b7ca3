"""
Order Execution Pipeline
Places orders for approved signals and applies fills to strategy state.

Each approved signal runs as its own asyncio task. The task handle is
stored on the strategy state, and the router skips a state while that
task is pending, so at most one order per strategy is in flight.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Optional, Set

from vibetrading_live.core.ports import Clock, Notifier, OrderExecutor, StrategyRepository
from vibetrading_live.market_data.subscriptions import SubscriptionManager
from vibetrading_live.models import (
    Candle,
    ExchangeOrder,
    OrderRequest,
    OrderSide,
    RunningStrategyState,
    StrategyStatus,
    TradeRecord,
)
from vibetrading_live.runner.registry import StrategyRuntimeRegistry

logger = logging.getLogger(__name__)

SIGNAL_TYPES = {
    OrderSide.BUY: "BUY_SIGNAL",
    OrderSide.SELL: "SELL_SIGNAL",
}


class OrderExecutionPipeline:
    """Fire-and-forget order execution with per-strategy failure isolation."""

    def __init__(
        self,
        executor: OrderExecutor,
        repository: StrategyRepository,
        notifier: Notifier,
        registry: StrategyRuntimeRegistry,
        subscriptions: SubscriptionManager,
        clock: Clock,
    ) -> None:
        self.executor = executor
        self.repository = repository
        self.notifier = notifier
        self.registry = registry
        self.subscriptions = subscriptions
        self.clock = clock
        self._tasks: Set[asyncio.Task] = set()

    def submit(
        self,
        state: RunningStrategyState,
        candle: Candle,
        side: OrderSide,
        same_bar_update: bool = False,
    ) -> asyncio.Task:
        """
        Schedule `execute` on the running loop and mark the state busy.

        Must be called from the loop thread; the caller does not await
        the returned task.
        """
        loop = asyncio.get_running_loop()
        task = loop.create_task(
            self.execute(state, candle, side, same_bar_update),
            name=f"order-{state.key}-{side.value}",
        )
        state.set_inflight(task)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until every submitted order task has finished."""
        while self._tasks:
            await asyncio.wait(set(self._tasks))

    async def execute(
        self,
        state: RunningStrategyState,
        candle: Candle,
        side: OrderSide,
        same_bar_update: bool = False,
    ) -> Optional[ExchangeOrder]:
        """
        Place one order and record it.

        Any exception stops this strategy only: it is deactivated and
        marked ERROR. Nothing is raised to the caller.
        """
        try:
            return await self._execute(state, candle, side, same_bar_update)
        except Exception as e:
            logger.error(f"Order execution failed for {state.key}: {e}", exc_info=True)
            await self.deactivate(state, str(e) or type(e).__name__)
            return None

    def build_request(
        self,
        state: RunningStrategyState,
        side: OrderSide,
        reference_price: Optional[Decimal] = None,
    ) -> Optional[OrderRequest]:
        """
        Size an order from the state's last trade.

        BUY spends the configured trade amount before the first trade,
        afterwards the proceeds of the last sell. SELL closes the full
        quantity of the last buy. Returns None when there is nothing to size.
        """
        if side == OrderSide.BUY:
            amount = state.trade_amount if state.last_trade_side is None else state.last_trade_amount
            if amount is None or amount <= 0:
                logger.warning(f"Skipping BUY for {state.key}: no spendable amount ({amount})")
                return None
            return OrderRequest(
                symbol=state.symbol,
                side=side,
                amount=amount,
                reference_price=reference_price,
                strategy_id=state.id,
            )

        quantity = state.last_trade_quantity if state.last_trade_side == OrderSide.BUY else None
        if quantity is None or quantity <= 0:
            logger.warning(f"Skipping SELL for {state.key}: no position quantity recorded")
            return None
        return OrderRequest(
            symbol=state.symbol,
            side=side,
            quantity=quantity,
            reference_price=reference_price,
            strategy_id=state.id,
        )

    def apply_fill(
        self,
        state: RunningStrategyState,
        request: OrderRequest,
        order: ExchangeOrder,
        side: OrderSide,
        signal_price: Optional[Decimal],
        same_bar_update: bool = False,
    ) -> TradeRecord:
        """
        Update counters and last-trade fields; return the order record to persist.

        The record keeps what was asked for (`request`) next to what filled.
        """
        record = TradeRecord(
            strategy_id=state.id,
            strategy_code=state.strategy_code,
            symbol=state.symbol,
            order_id=order.order_id,
            client_order_id=order.client_order_id,
            side=side,
            signal_type=SIGNAL_TYPES[side],
            signal_price=signal_price,
            same_bar_update=same_bar_update,
            pre_amount=request.amount,
            pre_quantity=request.quantity,
            executed_amount=order.executed_amount,
            executed_qty=order.executed_qty,
            price=order.price,
            fee=order.fee,
            fee_currency=order.fee_currency,
            status=order.status,
            created_at=order.created_at,
        )

        # Profit is realized on the sell against the amount the last buy spent
        if side == OrderSide.SELL and state.last_trade_amount is not None:
            profit = order.executed_amount - state.last_trade_amount
            record.profit = profit
            if state.last_trade_amount:
                record.profit_rate = profit / state.last_trade_amount
            state.last_trade_profit = profit
            state.total_profit = state.total_profit + profit
            if state.trade_amount:
                state.total_profit_rate = state.total_profit / state.trade_amount

        state.total_fees = state.total_fees + order.fee
        state.last_trade_fee = order.fee
        state.last_trade_side = side
        state.last_trade_price = order.price
        state.last_trade_amount = order.executed_amount
        state.last_trade_quantity = order.executed_qty
        state.last_trade_time = order.created_at
        state.total_trades += 1
        if order.is_filled:
            state.successful_trades += 1
        return record

    async def _execute(
        self,
        state: RunningStrategyState,
        candle: Candle,
        side: OrderSide,
        same_bar_update: bool,
    ) -> Optional[ExchangeOrder]:
        request = self.build_request(state, side, candle.close)
        if request is None:
            return None

        order = await self.executor.place_order(request)
        if order is None:
            logger.info(f"Executor returned no order for {state.key} {side.value}, nothing recorded")
            return None

        record = self.apply_fill(state, request, order, side, candle.close, same_bar_update)
        state.id = await self.repository.save_state(state)
        record.strategy_id = state.id
        record.id = await self.repository.save_order(record)

        logger.info(
            f"{state.key} {side.value.upper()} filled: qty={order.executed_qty} @ {order.price}, "
            f"amount={order.executed_amount}, total_profit={state.total_profit}"
        )

        try:
            await self.notifier.notify_trade(state, order, side, candle.close)
        except Exception as e:
            logger.error(f"Trade notification failed for {state.key}: {e}")

        return order

    async def deactivate(self, state: RunningStrategyState, message: str) -> None:
        """
        Take a failed strategy out of service.

        Whoever removes the registry entry owns the subscription release,
        so a concurrent stop and this path never release twice.
        """
        removed = self.registry.remove(state.key, expected=state)

        state.is_active = False
        state.status = StrategyStatus.ERROR
        state.end_time = self.clock.now()
        state.error_message = message

        try:
            await self.repository.save_state(state)
        except Exception as e:
            logger.error(f"Failed to persist ERROR state for {state.key}: {e}")

        if removed is not None:
            await self.subscriptions.release(state.symbol, state.interval)

        try:
            await self.notifier.notify_error(state, message)
        except Exception as e:
            logger.error(f"Error notification failed for {state.key}: {e}")

        state.complete(StrategyStatus.ERROR)
        logger.warning(f"Strategy {state.key} stopped with ERROR: {message}")
