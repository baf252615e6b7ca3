"""Market-data side of the engine: bar aggregation, subscriptions, seeding."""

from vibetrading_live.market_data.aggregator import BarAggregator, BarUpdate
from vibetrading_live.market_data.subscriptions import SubscriptionManager

__all__ = ["BarAggregator", "BarUpdate", "SubscriptionManager"]
