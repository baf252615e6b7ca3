"""Strategy repositories."""

from vibetrading_live.persistence.memory import InMemoryStrategyRepository
from vibetrading_live.persistence.postgres import PostgresStrategyRepository

__all__ = ["InMemoryStrategyRepository", "PostgresStrategyRepository"]
