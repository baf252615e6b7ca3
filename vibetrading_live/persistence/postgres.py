"""
PostgreSQL Strategy Repository
Raw-SQL persistence for running strategy state and order records.
"""

import logging
from typing import Any, Dict, List, Protocol

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from vibetrading_live.core.errors import PersistenceError
from vibetrading_live.models import RunningStrategyState, TradeRecord

logger = logging.getLogger(__name__)


class SessionProvider(Protocol):
    def session(self) -> Any:
        """Async context manager yielding a session that commits on exit."""


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Schema
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS live_strategies (
        id BIGSERIAL PRIMARY KEY,
        strategy_code VARCHAR(100) NOT NULL,
        strategy_name VARCHAR(200) NOT NULL DEFAULT '',
        symbol VARCHAR(50) NOT NULL,
        interval VARCHAR(10) NOT NULL,
        trade_amount NUMERIC(30, 10) NOT NULL,
        status VARCHAR(20) NOT NULL,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        start_time TIMESTAMPTZ,
        end_time TIMESTAMPTZ,
        error_message TEXT,
        last_trade_side VARCHAR(10),
        last_trade_price NUMERIC(30, 10),
        last_trade_amount NUMERIC(30, 10),
        last_trade_quantity NUMERIC(30, 10),
        last_trade_fee NUMERIC(30, 10),
        last_trade_profit NUMERIC(30, 10),
        last_trade_time TIMESTAMPTZ,
        total_trades INTEGER NOT NULL DEFAULT 0,
        successful_trades INTEGER NOT NULL DEFAULT 0,
        total_profit NUMERIC(30, 10) NOT NULL DEFAULT 0,
        total_profit_rate NUMERIC(30, 10) NOT NULL DEFAULT 0,
        total_fees NUMERIC(30, 10) NOT NULL DEFAULT 0,
        current_price NUMERIC(30, 10),
        last_update_time TIMESTAMPTZ
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_live_strategies_active
        ON live_strategies (is_active)
    """,
    """
    CREATE TABLE IF NOT EXISTS live_strategy_orders (
        id BIGSERIAL PRIMARY KEY,
        strategy_id BIGINT REFERENCES live_strategies (id),
        strategy_code VARCHAR(100) NOT NULL,
        symbol VARCHAR(50) NOT NULL,
        order_id VARCHAR(100) NOT NULL,
        client_order_id VARCHAR(100),
        side VARCHAR(10) NOT NULL,
        signal_type VARCHAR(20) NOT NULL,
        signal_price NUMERIC(30, 10),
        same_bar_update BOOLEAN NOT NULL DEFAULT FALSE,
        pre_amount NUMERIC(30, 10),
        pre_quantity NUMERIC(30, 10),
        executed_amount NUMERIC(30, 10) NOT NULL,
        executed_qty NUMERIC(30, 10) NOT NULL,
        price NUMERIC(30, 10) NOT NULL,
        fee NUMERIC(30, 10) NOT NULL DEFAULT 0,
        fee_currency VARCHAR(20),
        status VARCHAR(20) NOT NULL,
        profit NUMERIC(30, 10),
        profit_rate NUMERIC(30, 10),
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
)

STATE_COLUMNS = (
    "strategy_code", "strategy_name", "symbol", "interval", "trade_amount",
    "status", "is_active", "start_time", "end_time", "error_message",
    "last_trade_side", "last_trade_price", "last_trade_amount", "last_trade_quantity",
    "last_trade_fee", "last_trade_profit", "last_trade_time",
    "total_trades", "successful_trades", "total_profit", "total_profit_rate", "total_fees",
    "current_price", "last_update_time",
)

ORDER_COLUMNS = (
    "strategy_id", "strategy_code", "symbol", "order_id", "client_order_id",
    "side", "signal_type", "signal_price", "same_bar_update", "pre_amount", "pre_quantity",
    "executed_amount", "executed_qty", "price", "fee", "fee_currency", "status",
    "profit", "profit_rate", "created_at",
)

INSERT_STATE_SQL = (
    f"INSERT INTO live_strategies ({', '.join(STATE_COLUMNS)}) "
    f"VALUES ({', '.join(':' + c for c in STATE_COLUMNS)}) RETURNING id"
)

UPDATE_STATE_SQL = (
    "UPDATE live_strategies SET "
    + ", ".join(f"{c} = :{c}" for c in STATE_COLUMNS)
    + " WHERE id = :id RETURNING id"
)

INSERT_ORDER_SQL = (
    f"INSERT INTO live_strategy_orders ({', '.join(ORDER_COLUMNS)}) "
    f"VALUES ({', '.join(':' + c for c in ORDER_COLUMNS)}) RETURNING id"
)

SELECT_AUTO_START_SQL = (
    f"SELECT id, {', '.join(STATE_COLUMNS)} FROM live_strategies "
    "WHERE is_active = true ORDER BY id"
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Repository
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class PostgresStrategyRepository:
    """
    Strategy repository over an async SQLAlchemy session provider.

    `database` is anything with a `session()` async context manager,
    normally `vibetrading_live.database.PostgresDatabase`.
    """

    def __init__(self, database: SessionProvider) -> None:
        self.database = database

    async def init_schema(self) -> None:
        """Create tables if they do not exist."""
        async with self.database.session() as session:
            for statement in SCHEMA_STATEMENTS:
                await session.execute(text(statement))
        logger.info("Live strategy schema initialized")

    async def save_state(self, state: RunningStrategyState) -> int:
        params = self._state_params(state)
        try:
            async with self.database.session() as session:
                if state.id is None:
                    result = await session.execute(text(INSERT_STATE_SQL), params)
                else:
                    params["id"] = state.id
                    result = await session.execute(text(UPDATE_STATE_SQL), params)
                state_id = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save strategy {state.key}: {e}") from e

        if state_id is None:
            raise PersistenceError(f"Strategy row {state.id} for {state.key} no longer exists")
        return int(state_id)

    async def save_order(self, record: TradeRecord) -> int:
        params = record.model_dump(include=set(ORDER_COLUMNS))
        params["side"] = record.side.value
        params["status"] = record.status.value
        try:
            async with self.database.session() as session:
                result = await session.execute(text(INSERT_ORDER_SQL), params)
                return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save order {record.order_id}: {e}") from e

    async def load_auto_start_candidates(self) -> List[RunningStrategyState]:
        try:
            async with self.database.session() as session:
                result = await session.execute(text(SELECT_AUTO_START_SQL))
                rows = result.mappings().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load auto-start strategies: {e}") from e

        candidates = []
        for row in rows:
            try:
                candidates.append(RunningStrategyState.model_validate(dict(row)))
            except ValueError as e:
                logger.error(f"Skipping unreadable strategy row {row.get('id')}: {e}")
        return candidates

    @staticmethod
    def _state_params(state: RunningStrategyState) -> Dict[str, Any]:
        params = state.model_dump(include=set(STATE_COLUMNS))
        params["status"] = state.status.value
        params["last_trade_side"] = state.last_trade_side.value if state.last_trade_side else None
        return params
