"""Compute-unit benchmarks for on-chain order book programs."""

__version__ = "0.1.0"
