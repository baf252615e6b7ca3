"""Bundled signal evaluators."""
