from __future__ import annotations

import threading
from decimal import Decimal

import pytest
from pydantic import ValidationError

from vibetrading_live.models import RunningStrategyState, StrategyKey
from vibetrading_live.runner.registry import StrategyRuntimeRegistry


def _state(code: str, symbol: str = "BTCUSDT", interval: str = "1m") -> RunningStrategyState:
    return RunningStrategyState(
        strategy_code=code,
        symbol=symbol,
        interval=interval,
        trade_amount=Decimal("100"),
    )


def test_insert_rejects_duplicate_keys() -> None:
    registry = StrategyRuntimeRegistry()

    assert registry.insert(_state("a"))
    assert not registry.insert(_state("a"))
    assert len(registry) == 1


def test_matching_and_series_usage() -> None:
    registry = StrategyRuntimeRegistry()
    registry.insert(_state("a"))
    registry.insert(_state("b"))
    registry.insert(_state("a", "ETHUSDT"))

    assert {s.strategy_code for s in registry.matching("BTCUSDT", "1m")} == {"a", "b"}
    assert registry.is_series_in_use("ETHUSDT", "1m")
    assert not registry.is_series_in_use("ETHUSDT", "5m")


def test_remove_with_expected_only_evicts_that_object() -> None:
    registry = StrategyRuntimeRegistry()
    stale = _state("a")
    current = _state("a")
    registry.insert(current)

    assert registry.remove(stale.key, expected=stale) is None
    assert registry.get(StrategyKey("a", "BTCUSDT", "1m")) is current
    assert registry.remove(current.key, expected=current) is current
    assert registry.remove(current.key) is None


def test_concurrent_inserts_from_threads_are_atomic() -> None:
    registry = StrategyRuntimeRegistry()
    wins: list[bool] = []
    lock = threading.Lock()

    def worker() -> None:
        won = registry.insert(_state("race"))
        with lock:
            wins.append(won)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert wins.count(True) == 1
    assert len(registry) == 1


def test_position_status_and_identity_are_derived_and_frozen() -> None:
    state = _state("a")

    assert str(state.key) == "a_BTCUSDT_1m"
    assert state.position_status.value == "FLAT"
    state.last_trade_side = "buy"
    assert state.position_status.value == "LONG"
    with pytest.raises(ValidationError):
        state.symbol = "ETHUSDT"
