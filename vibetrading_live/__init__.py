"""Live strategy execution engine for streaming exchange candles."""

__version__ = "0.1.0"
