"""
Strategy Factory Registry
Maps strategy identifiers to evaluator constructors.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from vibetrading_live.core.errors import (
    EmptySeriesError,
    StrategyConfigurationError,
    StrategyNotFoundError,
)
from vibetrading_live.core.ports import SignalEvaluator
from vibetrading_live.core.series import BarSeries

logger = logging.getLogger(__name__)

EvaluatorFactory = Callable[[BarSeries], SignalEvaluator]


class EvaluatorRegistry:
    """
    Identifier -> evaluator factory table.

    The engine only ever calls `create`; which strategies exist is decided
    by whoever composes the registry.
    """

    def __init__(self) -> None:
        self._factories: Dict[str, EvaluatorFactory] = {}

    def register(
        self,
        identifier: str,
        factory: Optional[EvaluatorFactory] = None,
        *,
        replace: bool = False,
    ):
        """
        Register a factory, directly or as a decorator.

            @registry.register("my_strategy")
            class MyEvaluator(BarSeriesEvaluator): ...
        """
        def decorator(fn: EvaluatorFactory) -> EvaluatorFactory:
            if identifier in self._factories and not replace:
                raise ValueError(f"Strategy identifier already registered: {identifier}")
            self._factories[identifier] = fn
            logger.debug(f"Registered strategy factory '{identifier}'")
            return fn

        if factory is not None:
            return decorator(factory)
        return decorator

    def identifiers(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._factories

    def create(self, series: Optional[BarSeries], identifier: str) -> SignalEvaluator:
        """
        Build the evaluator for `identifier` bound to `series`.

        Raises:
            StrategyNotFoundError: If nothing is registered under `identifier`
            EmptySeriesError: If the series is missing or has no bars
            StrategyConfigurationError: If the factory returns something
                without should_enter/should_exit
        """
        factory = self._factories.get(identifier)
        if factory is None:
            raise StrategyNotFoundError(identifier)
        if series is None or series.is_empty:
            raise EmptySeriesError(f"Bar series for '{identifier}' is empty")

        evaluator = factory(series)
        if not callable(getattr(evaluator, "should_enter", None)) or not callable(
            getattr(evaluator, "should_exit", None)
        ):
            raise StrategyConfigurationError(
                f"Factory for '{identifier}' returned {type(evaluator).__name__}, "
                "which lacks should_enter/should_exit"
            )

        logger.info(f"Created evaluator '{identifier}' on {series.name}")
        return evaluator
