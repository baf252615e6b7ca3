"""Signal evaluator contract and the identifier -> factory registry."""

from vibetrading_live.strategy.base import BarSeriesEvaluator
from vibetrading_live.strategy.registry import EvaluatorFactory, EvaluatorRegistry

__all__ = ["BarSeriesEvaluator", "EvaluatorFactory", "EvaluatorRegistry"]
