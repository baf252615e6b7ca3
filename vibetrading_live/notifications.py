"""
Strategy Notifiers
Trade and error announcements, published on NATS or written to the log.
"""

import logging
from decimal import Decimal
from typing import Any, Optional

from vibetrading_live.messaging import Subjects
from vibetrading_live.models import (
    ExchangeOrder,
    OrderSide,
    RunningStrategyState,
    StrategyErrorNotification,
    TradeNotification,
)

logger = logging.getLogger(__name__)


def build_trade_notification(
    state: RunningStrategyState,
    order: ExchangeOrder,
    side: OrderSide,
    signal_price: Optional[Decimal],
) -> TradeNotification:
    return TradeNotification(
        strategy_id=state.id,
        strategy_code=state.strategy_code,
        strategy_name=state.strategy_name,
        symbol=state.symbol,
        interval=state.interval,
        side=side,
        order_id=order.order_id,
        signal_price=signal_price,
        price=order.price,
        executed_qty=order.executed_qty,
        executed_amount=order.executed_amount,
        fee=order.fee,
        total_profit=state.total_profit,
        total_trades=state.total_trades,
    )


def build_error_notification(state: RunningStrategyState, message: str) -> StrategyErrorNotification:
    return StrategyErrorNotification(
        strategy_id=state.id,
        strategy_code=state.strategy_code,
        strategy_name=state.strategy_name,
        symbol=state.symbol,
        interval=state.interval,
        message=message,
    )


class NatsNotifier:
    """
    Publishes notifications through a connected `NatsMessaging`.

    Publish failures propagate; the pipeline treats every notification
    as best-effort and logs them.
    """

    def __init__(self, messaging: Any) -> None:
        self.messaging = messaging

    async def notify_trade(
        self,
        state: RunningStrategyState,
        order: ExchangeOrder,
        side: OrderSide,
        signal_price: Optional[Decimal],
    ) -> None:
        event = build_trade_notification(state, order, side, signal_price)
        await self.messaging.publish(
            Subjects.trades(state.symbol),
            event,
            msg_id=f"{order.order_id}-{side.value}",
        )

    async def notify_error(self, state: RunningStrategyState, message: str) -> None:
        event = build_error_notification(state, message)
        await self.messaging.publish(Subjects.ERRORS, event, msg_id=str(event.id))


class LoggingNotifier:
    """Notifier for standalone mode: writes events to the log."""

    async def notify_trade(
        self,
        state: RunningStrategyState,
        order: ExchangeOrder,
        side: OrderSide,
        signal_price: Optional[Decimal],
    ) -> None:
        event = build_trade_notification(state, order, side, signal_price)
        logger.info(
            f"[TRADE] {state.key} {event.side.value.upper()} {event.executed_qty} @ {event.price} "
            f"(signal {event.signal_price}, total_profit={event.total_profit})"
        )

    async def notify_error(self, state: RunningStrategyState, message: str) -> None:
        logger.error(f"[STRATEGY ERROR] {state.key}: {message}")
