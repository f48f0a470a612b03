"""
Quotex Signals — Error Taxonomy

Only InvalidCandleError reaches callers of the engine. Prediction failures are
recovered by the local fallback, and short history is reported per indicator.
"""

from __future__ import annotations

from typing import Optional


class SignalEngineError(Exception):
    """Base class for all engine errors."""


class InvalidCandleError(SignalEngineError, ValueError):
    """A candle (or the series ordering) violates the OHLCV invariants."""

    def __init__(self, reason: str, index: Optional[int] = None):
        self.reason = reason
        self.index = index
        where = f"candle {index}: " if index is not None else ""
        super().__init__(f"Invalid candle series — {where}{reason}")


class InsufficientHistoryError(SignalEngineError):
    """Series is shorter than an indicator's lookback."""

    def __init__(self, indicator: str, required: int, available: int):
        self.indicator = indicator
        self.required = required
        self.available = available
        super().__init__(
            f"{indicator} needs {required} candles, only {available} available"
        )


class ExternalPredictionError(SignalEngineError):
    """External predictor failed, timed out, or returned a malformed payload."""
