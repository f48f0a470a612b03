"""
Quotex Signals — Technical Analysis & Signal Fusion Engine

    from quotex_signals import SignalEngine, build_series

    series = build_series(rows, "1m")
    with SignalEngine() as engine:
        signal = engine.evaluate(series)
"""

from quotex_signals.engines.signal_engine import (
    EngineContext,
    SeriesRegistry,
    SignalEngine,
    evaluate,
    get_signal_engine,
    record_outcome,
)
from quotex_signals.errors import (
    ExternalPredictionError,
    InsufficientHistoryError,
    InvalidCandleError,
    SignalEngineError,
)
from quotex_signals.models import Candle, CandleSeries, Signal, Timeframe
from quotex_signals.utils.validators import build_series

__all__ = [
    "Candle",
    "CandleSeries",
    "EngineContext",
    "ExternalPredictionError",
    "InsufficientHistoryError",
    "InvalidCandleError",
    "SeriesRegistry",
    "Signal",
    "SignalEngine",
    "SignalEngineError",
    "Timeframe",
    "build_series",
    "evaluate",
    "get_signal_engine",
    "record_outcome",
]
