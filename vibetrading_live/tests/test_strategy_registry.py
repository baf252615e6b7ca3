from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from vibetrading_live.core.errors import (
    EmptySeriesError,
    StrategyConfigurationError,
    StrategyNotFoundError,
)
from vibetrading_live.core.series import Bar, BarSeries
from vibetrading_live.strategies.turtle_breakout import (
    TurtleBreakoutEvaluator,
    register_builtin_strategies,
)
from vibetrading_live.strategy.registry import EvaluatorRegistry

T = datetime(2026, 1, 5, tzinfo=timezone.utc)


def _series(closes: list[str], highs: list[str] | None = None, lows: list[str] | None = None) -> BarSeries:
    highs = highs or closes
    lows = lows or closes
    bars = [
        Bar(
            start_time=T + timedelta(hours=i),
            end_time=T + timedelta(hours=i + 1),
            open=Decimal(c),
            high=Decimal(h),
            low=Decimal(lo),
            close=Decimal(c),
            volume=Decimal("1"),
        )
        for i, (c, h, lo) in enumerate(zip(closes, highs, lows))
    ]
    return BarSeries("BTCUSDT", "1H", bars)


def test_builtin_registration() -> None:
    registry = register_builtin_strategies(EvaluatorRegistry())

    assert registry.identifiers() == ["turtle_breakout", "turtle_breakout_fast"]
    assert isinstance(registry.create(_series(["1"]), "turtle_breakout"), TurtleBreakoutEvaluator)


def test_unknown_identifier_is_checked_before_series() -> None:
    registry = EvaluatorRegistry()

    with pytest.raises(StrategyNotFoundError) as excinfo:
        registry.create(None, "missing")
    assert excinfo.value.identifier == "missing"


def test_empty_series_is_a_configuration_error() -> None:
    registry = register_builtin_strategies(EvaluatorRegistry())

    with pytest.raises(EmptySeriesError):
        registry.create(BarSeries("BTCUSDT", "1H"), "turtle_breakout")
    with pytest.raises(StrategyConfigurationError):
        registry.create(None, "turtle_breakout")


def test_decorator_registration_and_duplicates() -> None:
    registry = EvaluatorRegistry()

    @registry.register("always")
    class Always:
        def __init__(self, series):
            self.series = series

        def should_enter(self, index):
            return True

        def should_exit(self, index):
            return False

    assert "always" in registry
    assert registry.create(_series(["1"]), "always").should_enter(0)
    with pytest.raises(ValueError):
        registry.register("always", Always)
    registry.register("always", Always, replace=True)


def test_factory_without_signal_methods_is_rejected() -> None:
    registry = EvaluatorRegistry()
    registry.register("broken", lambda series: object())

    with pytest.raises(StrategyConfigurationError):
        registry.create(_series(["1"]), "broken")


def test_turtle_breakout_signals() -> None:
    series = _series(
        closes=["10", "11", "12", "11", "13", "9"],
        highs=["10", "11", "12", "11", "13", "10"],
        lows=["10", "11", "12", "11", "12", "9"],
    )
    evaluator = TurtleBreakoutEvaluator(series, entry_lookback=3, exit_lookback=2)

    # not enough history yet
    assert not evaluator.should_enter(2)
    # 13 breaks the prior three highs (11, 12, 11)
    assert evaluator.should_enter(4)
    assert not evaluator.should_enter(3)
    # 9 breaks the prior two lows (11, 12)
    assert evaluator.should_exit(5)
    assert not evaluator.should_exit(4)
