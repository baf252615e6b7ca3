"""
Shared Models for the Live Strategy Engine
Pydantic schemas for candles, orders, strategy state and notifications.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, NamedTuple, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Enums
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class TradingMode(str, Enum):
    """Trading mode enum."""
    PAPER = "paper"
    LIVE = "live"


class OrderSide(str, Enum):
    """Order side enum."""
    BUY = "buy"
    SELL = "sell"


class OrderStatus(str, Enum):
    """Exchange order status enum."""
    NEW = "new"
    PARTIALLY_FILLED = "partially_filled"
    FILLED = "filled"
    CANCELED = "canceled"
    REJECTED = "rejected"


class PositionStatus(str, Enum):
    """Position status derived from the last executed side."""
    FLAT = "FLAT"
    LONG = "LONG"


class StrategyStatus(str, Enum):
    """Lifecycle status of a running strategy (persisted as-is)."""
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"
    ERROR = "ERROR"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"


class StartStatus(str, Enum):
    """Outcome of a start request."""
    SUCCESS = "SUCCESS"
    CANCELED = "CANCELED"


class StrategyKey(NamedTuple):
    """Composite registry key of a running strategy."""
    strategy_code: str
    symbol: str
    interval: str

    def __str__(self) -> str:
        return f"{self.strategy_code}_{self.symbol}_{self.interval}"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Market Data Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class Candle(BaseModel):
    """OHLCV candle update pushed by the market-data transport."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    symbol: str
    interval: str
    open_time: datetime
    close_time: Optional[datetime] = None  # derived from interval when absent
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal = Decimal("0")
    is_closed: bool = False  # exchange "confirm" flag, informational only


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Order Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class OrderRequest(BaseModel):
    """Market order request handed to the execution collaborator."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    client_order_id: str = Field(default_factory=lambda: uuid4().hex)
    symbol: str
    side: OrderSide
    quantity: Optional[Decimal] = None  # sells: base quantity
    amount: Optional[Decimal] = None  # buys: quote notional
    reference_price: Optional[Decimal] = None
    strategy_id: Optional[int] = None


class ExchangeOrder(BaseModel):
    """Order as reported back by the execution collaborator."""
    model_config = ConfigDict(extra="forbid")

    order_id: str
    client_order_id: Optional[str] = None
    symbol: str
    side: OrderSide
    order_type: str = "market"
    status: OrderStatus
    price: Decimal
    executed_qty: Decimal
    executed_amount: Decimal  # quote amount, net of fees
    fee: Decimal = Decimal("0")
    fee_currency: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Exchanges report UTC; a naive fill time must still compare with the engine clock."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def is_filled(self) -> bool:
        return self.status == OrderStatus.FILLED


class TradeRecord(BaseModel):
    """Persisted order record tagged with the signal that produced it."""
    model_config = ConfigDict(extra="forbid")

    id: Optional[int] = None
    strategy_id: Optional[int] = None
    strategy_code: str
    symbol: str
    order_id: str
    client_order_id: Optional[str] = None
    side: OrderSide
    signal_type: str
    signal_price: Optional[Decimal] = None
    same_bar_update: bool = False
    pre_amount: Optional[Decimal] = None
    pre_quantity: Optional[Decimal] = None
    executed_amount: Decimal
    executed_qty: Decimal
    price: Decimal
    fee: Decimal = Decimal("0")
    fee_currency: Optional[str] = None
    status: OrderStatus
    profit: Optional[Decimal] = None
    profit_rate: Optional[Decimal] = None
    created_at: datetime = Field(default_factory=utc_now)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Strategy State Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class StrategySummary(BaseModel):
    """Final summary delivered through a strategy's completion handle."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    status: StrategyStatus
    total_trades: int
    total_profit: Decimal
    successful_trades: int
    success_rate: float


class RunningStrategyState(BaseModel):
    """
    Mutable state of one running strategy.

    Identity fields are frozen. Position status is derived from the last
    executed side and cannot be set directly. Runtime handles (evaluator,
    completion future, in-flight order task) live in private attributes
    and never reach persistence.
    """
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    id: Optional[int] = None
    strategy_code: str = Field(frozen=True)
    strategy_name: str = ""
    symbol: str = Field(frozen=True)
    interval: str = Field(frozen=True)
    trade_amount: Decimal

    status: StrategyStatus = StrategyStatus.STARTING
    is_active: bool = True
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    error_message: Optional[str] = None

    last_trade_side: Optional[OrderSide] = None
    last_trade_price: Optional[Decimal] = None
    last_trade_amount: Optional[Decimal] = None
    last_trade_quantity: Optional[Decimal] = None
    last_trade_fee: Optional[Decimal] = None
    last_trade_profit: Optional[Decimal] = None
    last_trade_time: Optional[datetime] = None

    total_trades: int = 0
    successful_trades: int = 0
    total_profit: Decimal = Decimal("0")
    total_profit_rate: Decimal = Decimal("0")
    total_fees: Decimal = Decimal("0")

    current_price: Optional[Decimal] = None
    last_update_time: Optional[datetime] = None

    _evaluator: Any = PrivateAttr(default=None)
    _completion: Optional[asyncio.Future] = PrivateAttr(default=None)
    _inflight: Optional[asyncio.Task] = PrivateAttr(default=None)

    @property
    def key(self) -> StrategyKey:
        return StrategyKey(self.strategy_code, self.symbol, self.interval)

    @property
    def position_status(self) -> PositionStatus:
        if self.last_trade_side == OrderSide.BUY:
            return PositionStatus.LONG
        return PositionStatus.FLAT

    @property
    def evaluator(self) -> Any:
        return self._evaluator

    def bind_evaluator(self, evaluator: Any) -> None:
        self._evaluator = evaluator

    @property
    def completion(self) -> Optional[asyncio.Future]:
        return self._completion

    def attach_completion(self, future: asyncio.Future) -> None:
        self._completion = future

    @property
    def inflight(self) -> Optional[asyncio.Task]:
        return self._inflight

    @property
    def has_inflight_order(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def set_inflight(self, task: Optional[asyncio.Task]) -> None:
        self._inflight = task

    def build_summary(self, status: StrategyStatus = StrategyStatus.COMPLETED) -> StrategySummary:
        success_rate = (
            self.successful_trades / self.total_trades if self.total_trades > 0 else 0.0
        )
        return StrategySummary(
            status=status,
            total_trades=self.total_trades,
            total_profit=self.total_profit,
            successful_trades=self.successful_trades,
            success_rate=success_rate,
        )

    def complete(self, status: StrategyStatus = StrategyStatus.COMPLETED) -> bool:
        return self.resolve(self.build_summary(status))

    def resolve(self, summary: StrategySummary) -> bool:
        """Resolve the completion handle once; later calls are no-ops."""
        future = self._completion
        if future is None or future.done():
            return False
        future.set_result(summary)
        return True


class StartResult(BaseModel):
    """Result of a start request, SUCCESS or CANCELED with a reason."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    status: StartStatus
    message: str
    state_id: Optional[int] = None
    strategy_code: str
    strategy_name: str = ""
    symbol: str
    interval: str
    trade_amount: Decimal
    start_time: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.status == StartStatus.SUCCESS


class StrategyRow(BaseModel):
    """One running strategy in an engine snapshot."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Optional[int]
    key: str
    position_status: PositionStatus
    trade_amount: Decimal
    total_profit: Decimal
    total_trades: int
    last_trade_price: Optional[Decimal] = None
    current_price: Optional[Decimal] = None


class EngineSnapshot(BaseModel):
    """Aggregate view over every running strategy."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    running_count: int
    holding_count: int
    total_invested: Decimal
    total_realized_profit: Decimal
    strategies: list[StrategyRow] = Field(default_factory=list)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Notification Events
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class BaseEvent(BaseModel):
    """Base class for all published events."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=utc_now)


class TradeNotification(BaseEvent):
    """Published after a strategy order is filled and recorded."""
    strategy_id: Optional[int] = None
    strategy_code: str
    strategy_name: str = ""
    symbol: str
    interval: str
    side: OrderSide
    order_id: str
    signal_price: Optional[Decimal] = None
    price: Decimal
    executed_qty: Decimal
    executed_amount: Decimal
    fee: Decimal
    total_profit: Decimal
    total_trades: int


class StrategyErrorNotification(BaseEvent):
    """Published when a strategy is stopped by an execution failure."""
    strategy_id: Optional[int] = None
    strategy_code: str
    strategy_name: str = ""
    symbol: str
    interval: str
    message: str
