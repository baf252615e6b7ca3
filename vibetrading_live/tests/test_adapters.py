from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from decimal import Decimal

import pytest
import requests
from sqlalchemy.exc import OperationalError

from vibetrading_live.config import DatabaseSettings, QuestDBSettings
from vibetrading_live.core.errors import PersistenceError
from vibetrading_live.database import PostgresDatabase
from vibetrading_live.market_data import questdb_source
from vibetrading_live.market_data.questdb_source import QuestDBBarSource
from vibetrading_live.messaging import Subjects, serialize_message
from vibetrading_live.models import (
    ExchangeOrder,
    OrderSide,
    OrderStatus,
    RunningStrategyState,
    StrategyStatus,
    TradeRecord,
)
from vibetrading_live.notifications import LoggingNotifier, NatsNotifier
from vibetrading_live.persistence.postgres import PostgresStrategyRepository


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PostgreSQL repository
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class _Result:
    def __init__(self, scalar=None, rows=None) -> None:
        self._scalar = scalar
        self._rows = rows or []

    def scalar_one_or_none(self):
        return self._scalar

    def scalar_one(self):
        return self._scalar

    def mappings(self):
        return self

    def all(self):
        return self._rows


class _Session:
    def __init__(self, database: "_Database") -> None:
        self.database = database

    async def execute(self, statement, params=None):
        sql = str(statement)
        self.database.executed.append((sql, params))
        if self.database.error is not None:
            raise self.database.error
        if sql.lstrip().startswith("SELECT"):
            return _Result(rows=self.database.rows)
        return _Result(scalar=self.database.next_id)


class _Database:
    def __init__(self) -> None:
        self.executed: list[tuple[str, dict]] = []
        self.rows: list[dict] = []
        self.next_id = 7
        self.error = None

    @asynccontextmanager
    async def session(self):
        yield _Session(self)


def _state(**fields) -> RunningStrategyState:
    return RunningStrategyState(
        strategy_code="turtle_breakout",
        symbol="BTCUSDT",
        interval="1H",
        trade_amount=Decimal("1000"),
        **fields,
    )


def test_save_state_inserts_then_updates() -> None:
    database = _Database()
    repository = PostgresStrategyRepository(database)
    state = _state(status=StrategyStatus.RUNNING, last_trade_side=OrderSide.BUY)

    state.id = asyncio.run(repository.save_state(state))
    asyncio.run(repository.save_state(state))

    (insert_sql, insert_params), (update_sql, update_params) = database.executed
    assert state.id == 7
    assert insert_sql.startswith("INSERT INTO live_strategies")
    assert insert_params["status"] == "RUNNING"
    assert insert_params["last_trade_side"] == "buy"
    assert "id" not in insert_params
    assert update_sql.startswith("UPDATE live_strategies")
    assert update_params["id"] == 7


def test_save_state_for_vanished_row_raises() -> None:
    database = _Database()
    database.next_id = None
    repository = PostgresStrategyRepository(database)

    with pytest.raises(PersistenceError):
        asyncio.run(repository.save_state(_state(id=3)))


def test_driver_errors_become_persistence_errors() -> None:
    database = _Database()
    database.error = OperationalError("INSERT", {}, Exception("connection refused"))
    repository = PostgresStrategyRepository(database)

    with pytest.raises(PersistenceError):
        asyncio.run(repository.save_state(_state()))


def test_save_order_serializes_enums() -> None:
    database = _Database()
    repository = PostgresStrategyRepository(database)
    record = TradeRecord(
        strategy_id=7,
        strategy_code="turtle_breakout",
        symbol="BTCUSDT",
        order_id="o-1",
        side=OrderSide.SELL,
        signal_type="SELL_SIGNAL",
        executed_amount=Decimal("1100"),
        executed_qty=Decimal("10"),
        price=Decimal("110"),
        status=OrderStatus.FILLED,
        profit=Decimal("100"),
    )

    assert asyncio.run(repository.save_order(record)) == 7
    sql, params = database.executed[0]
    assert sql.startswith("INSERT INTO live_strategy_orders")
    assert params["side"] == "sell"
    assert params["status"] == "filled"
    assert params["profit"] == Decimal("100")


def test_load_auto_start_candidates_builds_states() -> None:
    database = _Database()
    database.rows = [
        {
            **_state(last_trade_side=OrderSide.BUY, total_trades=3).model_dump(),
            "id": 11,
            "status": "STOPPED",
            "last_trade_side": "buy",
        },
    ]
    repository = PostgresStrategyRepository(database)

    candidates = asyncio.run(repository.load_auto_start_candidates())

    assert "WHERE is_active = true" in database.executed[0][0]
    assert len(candidates) == 1
    assert candidates[0].id == 11
    assert candidates[0].status == StrategyStatus.STOPPED
    assert candidates[0].position_status.value == "LONG"
    assert candidates[0].total_trades == 3


def test_init_schema_runs_every_statement() -> None:
    database = _Database()

    asyncio.run(PostgresStrategyRepository(database).init_schema())

    statements = [sql for sql, _ in database.executed]
    assert any("CREATE TABLE IF NOT EXISTS live_strategies" in s for s in statements)
    assert any("CREATE TABLE IF NOT EXISTS live_strategy_orders" in s for s in statements)


def test_unreachable_database_fails_startup(monkeypatch) -> None:
    database = PostgresDatabase(DatabaseSettings(host="db.invalid"))
    closed = []

    async def unreachable() -> bool:
        return False

    async def close() -> None:
        closed.append(True)

    monkeypatch.setattr(database, "health_check", unreachable)
    monkeypatch.setattr(database, "close", close)

    with pytest.raises(PersistenceError):
        asyncio.run(database.require_connection())
    assert closed == [True]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Notifications
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class _Messaging:
    def __init__(self) -> None:
        self.published: list[tuple[str, object, str]] = []

    async def publish(self, subject, data, headers=None, msg_id=None) -> None:
        self.published.append((subject, data, msg_id))


def _order() -> ExchangeOrder:
    return ExchangeOrder(
        order_id="o-9",
        symbol="btcusdt",
        side=OrderSide.BUY,
        status=OrderStatus.FILLED,
        price=Decimal("100"),
        executed_qty=Decimal("10"),
        executed_amount=Decimal("1000"),
        fee=Decimal("1"),
    )


def test_nats_notifier_publishes_trade_and_error_events() -> None:
    messaging = _Messaging()
    notifier = NatsNotifier(messaging)
    state = _state(id=4, strategy_name="Turtle")

    asyncio.run(notifier.notify_trade(state, _order(), OrderSide.BUY, Decimal("99.5")))
    asyncio.run(notifier.notify_error(state, "exchange down"))

    (trade_subject, trade, trade_msg_id), (error_subject, error, _) = messaging.published
    assert trade_subject == Subjects.trades("BTCUSDT") == "STRATEGY.TRADES.BTCUSDT"
    assert trade.signal_price == Decimal("99.5")
    assert trade.strategy_id == 4
    assert trade_msg_id == "o-9-buy"
    assert error_subject == Subjects.ERRORS
    assert error.message == "exchange down"

    payload = json.loads(serialize_message(trade))
    assert payload["side"] == "buy"
    assert payload["executed_amount"] == "1000"


def test_logging_notifier_writes_to_log(caplog) -> None:
    notifier = LoggingNotifier()

    with caplog.at_level("INFO"):
        asyncio.run(notifier.notify_trade(_state(), _order(), OrderSide.BUY, Decimal("100")))
        asyncio.run(notifier.notify_error(_state(), "boom"))

    assert "[TRADE] turtle_breakout_BTCUSDT_1H BUY" in caplog.text
    assert "boom" in caplog.text


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# QuestDB history
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class _Response:
    def __init__(self, payload: dict) -> None:
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self) -> dict:
        return self._payload


def test_questdb_source_returns_bars_oldest_first(monkeypatch) -> None:
    captured = {}

    def fake_get(url, params=None, timeout=None):
        captured.update(url=url, params=params, timeout=timeout)
        return _Response({
            "columns": [{"name": n} for n in ("timestamp", "open", "high", "low", "close", "volume")],
            "dataset": [
                ["2026-01-05T11:00:00.000000Z", 101, 103, 100, 102, 5],
                ["2026-01-05T10:00:00.000000Z", 100, 101, 99, 101, 4],
            ],
        })

    monkeypatch.setattr(questdb_source.requests, "get", fake_get)
    source = QuestDBBarSource(QuestDBSettings(host="qdb", http_port=9000, query_timeout=5))

    series = asyncio.run(source.fetch_recent_bars("BTCUSDT", "1H", 2))

    assert captured["url"] == "http://qdb:9000/exec"
    assert "LIMIT 2" in captured["params"]["query"]
    assert "symbol = 'BTCUSDT'" in captured["params"]["query"]
    assert len(series) == 2
    first, second = series.bars()
    assert first.start_time.hour == 10
    assert first.end_time == second.start_time
    assert second.close == Decimal("102")


def test_questdb_query_escapes_literals() -> None:
    source = QuestDBBarSource(QuestDBSettings())

    assert "symbol = 'O''BRIEN'" in source.build_query("O'BRIEN", "1m", 10)


def test_questdb_errors_propagate(monkeypatch) -> None:
    def fake_get(url, params=None, timeout=None):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(questdb_source.requests, "get", fake_get)
    source = QuestDBBarSource(QuestDBSettings())

    with pytest.raises(requests.RequestException):
        asyncio.run(source.fetch_recent_bars("BTCUSDT", "1m", 10))
