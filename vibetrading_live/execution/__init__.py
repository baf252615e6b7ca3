"""Order execution: the per-signal pipeline and the paper executor."""

from vibetrading_live.execution.paper import PaperOrderExecutor
from vibetrading_live.execution.pipeline import OrderExecutionPipeline

__all__ = ["OrderExecutionPipeline", "PaperOrderExecutor"]
