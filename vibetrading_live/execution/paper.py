"""
Paper Order Executor
Fills market orders locally with slippage and fees, no exchange involved.
"""

import logging
from datetime import datetime
from decimal import ROUND_DOWN, Decimal
from typing import Callable, Optional
from uuid import uuid4

from vibetrading_live.config import PaperSettings, get_settings
from vibetrading_live.core.errors import OrderExecutionError
from vibetrading_live.models import (
    ExchangeOrder,
    OrderRequest,
    OrderSide,
    OrderStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

BPS = Decimal("10000")
QTY_STEP = Decimal("0.00000001")


class PaperOrderExecutor:
    """
    Execution collaborator for paper mode.

    Market orders fill completely at the request's reference price (or the
    mark price when no reference is given), moved against the trader by
    `slippage_bps`. Fees are charged in the quote currency:

    - BUY: the fee comes out of the notional, so less quantity is acquired
    - SELL: the fee comes out of the proceeds
    """

    def __init__(
        self,
        settings: Optional[PaperSettings] = None,
        mark_price: Optional[Callable[[str], Optional[Decimal]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        settings = settings or get_settings().paper
        self.fee_rate = settings.fee_bps / BPS
        self.slippage_rate = settings.slippage_bps / BPS
        self.quote_currency = settings.quote_currency
        self.mark_price = mark_price or (lambda _symbol: None)
        self.clock = clock or utc_now

    def fill_price(self, side: OrderSide, base_price: Decimal) -> Decimal:
        """Slippage is always pessimistic: buys fill higher, sells lower."""
        adjustment = base_price * self.slippage_rate
        if side == OrderSide.BUY:
            return base_price + adjustment
        return base_price - adjustment

    async def place_order(self, request: OrderRequest) -> Optional[ExchangeOrder]:
        base_price = request.reference_price or self.mark_price(request.symbol)
        if base_price is None or base_price <= 0:
            raise OrderExecutionError(f"No price available to fill {request.symbol} {request.side.value}")

        price = self.fill_price(request.side, base_price)

        if request.side == OrderSide.BUY:
            if not request.amount or request.amount <= 0:
                logger.warning(f"Paper BUY for {request.symbol} has no amount, nothing placed")
                return None
            fee = request.amount * self.fee_rate
            quantity = ((request.amount - fee) / price).quantize(QTY_STEP, rounding=ROUND_DOWN)
            executed_amount = request.amount
        else:
            if not request.quantity or request.quantity <= 0:
                logger.warning(f"Paper SELL for {request.symbol} has no quantity, nothing placed")
                return None
            quantity = request.quantity
            proceeds = quantity * price
            fee = proceeds * self.fee_rate
            executed_amount = proceeds - fee

        order = ExchangeOrder(
            order_id=f"paper-{uuid4().hex[:16]}",
            client_order_id=request.client_order_id,
            symbol=request.symbol,
            side=request.side,
            status=OrderStatus.FILLED,
            price=price,
            executed_qty=quantity,
            executed_amount=executed_amount,
            fee=fee,
            fee_currency=self.quote_currency,
            created_at=self.clock(),
        )

        logger.info(
            f"Paper fill: {order.side.value} {order.executed_qty} {order.symbol} "
            f"@ {order.price} (amount={order.executed_amount}, fee={order.fee})"
        )
        return order
