"""Port definitions for the engine's external collaborators."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Protocol, Sequence

from vibetrading_live.core.series import BarSeries

if TYPE_CHECKING:
    from vibetrading_live.models import (
        ExchangeOrder,
        OrderRequest,
        OrderSide,
        RunningStrategyState,
        TradeRecord,
    )


class SignalEvaluator(Protocol):
    def should_enter(self, index: int) -> bool:
        """Return True when the strategy wants to open a position at `index`."""

    def should_exit(self, index: int) -> bool:
        """Return True when the strategy wants to close its position at `index`."""


class MarketDataTransport(Protocol):
    async def subscribe(self, symbol: str, interval: str) -> None:
        """Start candle delivery; already-subscribed is not an error."""

    async def unsubscribe(self, symbol: str, interval: str) -> None:
        """Stop candle delivery; not-subscribed is not an error."""


class HistoricalBarSource(Protocol):
    async def fetch_recent_bars(self, symbol: str, interval: str, count: int) -> Optional[BarSeries]:
        """Return up to `count` most recent closed bars, oldest first."""


class OrderExecutor(Protocol):
    async def place_order(self, request: "OrderRequest") -> Optional["ExchangeOrder"]:
        """Place a market order; None means nothing was done."""


class StrategyRepository(Protocol):
    async def save_state(self, state: "RunningStrategyState") -> int:
        """Upsert a strategy state and return its persistent id."""

    async def save_order(self, record: "TradeRecord") -> int:
        """Insert an order record and return its persistent id."""

    async def load_auto_start_candidates(self) -> Sequence["RunningStrategyState"]:
        """Return every strategy flagged for automatic start."""


class Notifier(Protocol):
    async def notify_trade(
        self,
        state: "RunningStrategyState",
        order: "ExchangeOrder",
        side: "OrderSide",
        signal_price: Optional[Decimal],
    ) -> None:
        """Announce a recorded trade."""

    async def notify_error(self, state: "RunningStrategyState", message: str) -> None:
        """Announce that a strategy was stopped by an error."""


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current aware time."""
