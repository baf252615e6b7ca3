"""Pure core contracts: errors, interval math, bar series and ports."""

from vibetrading_live.core.errors import (
    EmptySeriesError,
    LiveEngineError,
    OrderExecutionError,
    PersistenceError,
    StrategyConfigurationError,
    StrategyNotFoundError,
    SubscriptionError,
)

__all__ = [
    "LiveEngineError",
    "StrategyConfigurationError",
    "StrategyNotFoundError",
    "EmptySeriesError",
    "SubscriptionError",
    "OrderExecutionError",
    "PersistenceError",
]
