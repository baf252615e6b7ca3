"""
Engine Composition
Wires concrete collaborators into a LiveStrategyEngine from settings.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from vibetrading_live.config import LiveTradingSettings, get_settings
from vibetrading_live.core.errors import StrategyConfigurationError
from vibetrading_live.core.ports import MarketDataTransport, OrderExecutor
from vibetrading_live.database import PostgresDatabase
from vibetrading_live.execution.paper import PaperOrderExecutor
from vibetrading_live.logging_config import configure_logging
from vibetrading_live.market_data.questdb_source import QuestDBBarSource
from vibetrading_live.messaging import NatsMessaging
from vibetrading_live.models import TradingMode
from vibetrading_live.notifications import LoggingNotifier, NatsNotifier
from vibetrading_live.persistence.memory import InMemoryStrategyRepository
from vibetrading_live.persistence.postgres import PostgresStrategyRepository
from vibetrading_live.runner.engine import LiveStrategyEngine
from vibetrading_live.strategies.turtle_breakout import register_builtin_strategies
from vibetrading_live.strategy.registry import EvaluatorRegistry

logger = logging.getLogger(__name__)


@dataclass
class EngineApp:
    """A composed engine plus the connections it owns."""
    engine: LiveStrategyEngine
    resources: List[Any] = field(default_factory=list)

    async def close(self) -> None:
        await self.engine.shutdown()
        for resource in reversed(self.resources):
            try:
                await resource.close()
            except Exception as e:
                logger.error(f"Error closing {type(resource).__name__}: {e}")


async def build_engine(
    transport: MarketDataTransport,
    settings: Optional[LiveTradingSettings] = None,
    executor: Optional[OrderExecutor] = None,
    evaluators: Optional[EvaluatorRegistry] = None,
) -> EngineApp:
    """
    Compose an engine for the configured mode.

    Standalone mode keeps state in memory and logs notifications;
    otherwise state goes to PostgreSQL and notifications to NATS.
    Live mode needs an exchange `executor` supplied by the caller.
    """
    settings = settings or get_settings()
    configure_logging(settings.logging)
    evaluators = evaluators or register_builtin_strategies(EvaluatorRegistry())

    if executor is None:
        if settings.mode == TradingMode.LIVE:
            raise StrategyConfigurationError("Live trading mode requires an exchange order executor")
        executor = PaperOrderExecutor(settings.paper)

    resources: List[Any] = []
    if settings.standalone_mode:
        repository = InMemoryStrategyRepository()
        notifier = LoggingNotifier()
        logger.info("Standalone mode: in-memory persistence, log-only notifications")
    else:
        database = PostgresDatabase(settings.database)
        await database.require_connection()
        resources.append(database)
        repository = PostgresStrategyRepository(database)
        await repository.init_schema()

        messaging = NatsMessaging(settings.nats)
        await messaging.connect()
        resources.append(messaging)
        notifier = NatsNotifier(messaging)

    engine = LiveStrategyEngine(
        evaluators=evaluators,
        transport=transport,
        history=QuestDBBarSource(settings.questdb),
        executor=executor,
        repository=repository,
        notifier=notifier,
        settings=settings.engine,
    )
    engine.attach_loop()
    logger.info(f"Engine composed in {settings.mode.value} mode")
    return EngineApp(engine=engine, resources=resources)
