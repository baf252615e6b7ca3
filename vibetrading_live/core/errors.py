"""Typed errors for the live strategy engine."""


class LiveEngineError(Exception):
    """Base class for live engine errors."""


class StrategyConfigurationError(LiveEngineError):
    """Raised when a strategy cannot be built from its configuration."""


class StrategyNotFoundError(StrategyConfigurationError):
    """Raised when no evaluator factory is registered for an identifier."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Unsupported strategy identifier: {identifier}")


class EmptySeriesError(StrategyConfigurationError):
    """Raised when an evaluator is requested for a series with no bars."""


class SubscriptionError(LiveEngineError):
    """Raised when the market-data transport refuses a subscription."""

    def __init__(self, message: str, symbol: str, interval: str) -> None:
        self.symbol = symbol
        self.interval = interval
        super().__init__(f"[{symbol} {interval}] {message}")


class OrderExecutionError(LiveEngineError):
    """Raised when an order cannot be placed or recorded."""


class PersistenceError(LiveEngineError):
    """Raised when strategy state or orders cannot be stored."""
