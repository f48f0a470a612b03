"""
Quotex Signals — Signal Engine

Orchestrates one evaluation end to end:

    validate → indicator snapshot → prediction fusion → scorer → Signal

and routes realized outcomes to the accuracy tracker. All mutable state
(latest series per timeframe, accuracy counters) lives in an EngineContext the
caller owns; two engines with separate contexts share nothing.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Optional, Union

import structlog

from quotex_signals.config import Settings, get_settings
from quotex_signals.engines.accuracy_engine import AccuracyTracker, build_accuracy_store
from quotex_signals.engines.fusion_engine import Predictor, PredictionFusion
from quotex_signals.engines.indicator_engine import IndicatorEngine
from quotex_signals.engines.signal_scorer import SignalScorer
from quotex_signals.models import (
    CandleSeries,
    Outcome,
    Signal,
    SignalType,
    Timeframe,
)
from quotex_signals.utils.validators import build_series, validate_series

log = structlog.get_logger(__name__)

SeriesInput = Union[CandleSeries, Iterable[Any]]


def _now_ms() -> int:
    return int(time.time() * 1000)


# ──────────────────────────────────────────────
# Engine Context
# ──────────────────────────────────────────────

class SeriesRegistry:
    """Latest evaluated series per timeframe."""

    def __init__(self):
        self._series: dict[Timeframe, CandleSeries] = {}
        self._lock = threading.Lock()

    def put(self, series: CandleSeries) -> None:
        with self._lock:
            self._series[series.timeframe] = series

    def get(self, timeframe: Union[Timeframe, str]) -> Optional[CandleSeries]:
        with self._lock:
            return self._series.get(Timeframe.parse(timeframe))

    def timeframes(self) -> list[Timeframe]:
        with self._lock:
            return list(self._series)


@dataclass
class EngineContext:
    registry: SeriesRegistry = field(default_factory=SeriesRegistry)
    tracker: AccuracyTracker = field(default_factory=AccuracyTracker)


# ──────────────────────────────────────────────
# Engine
# ──────────────────────────────────────────────

class SignalEngine:
    """Public entry point.

    Usage:
        engine = SignalEngine()
        signal = engine.evaluate(series, predictor=my_model)
        engine.record_outcome(signal.type, "win")
    """

    def __init__(
        self,
        context: Optional[EngineContext] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.settings = settings or get_settings()
        self.context = context or EngineContext(
            tracker=AccuracyTracker(build_accuracy_store(self.settings)),
        )
        self._clock = clock or _now_ms
        self.indicators = IndicatorEngine()
        self.fusion = PredictionFusion(self.settings)
        self.scorer = SignalScorer()

    def close(self) -> None:
        self.fusion.close()

    def __enter__(self) -> "SignalEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ──────────────────────────────────────────
    # Evaluation
    # ──────────────────────────────────────────

    def evaluate(
        self,
        series: SeriesInput,
        timeframe: Optional[Union[Timeframe, str]] = None,
        predictor: Optional[Predictor] = None,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Signal:
        """Score the last candle of `series`.

        Raises InvalidCandleError if any candle or the ordering is invalid.
        Predictor failures never raise: the local fallback is used instead.
        """
        series = self._prepare(series, timeframe)
        snapshot = self.indicators.compute_snapshot(series)
        estimate = self.fusion.fuse(
            series,
            snapshot,
            predictor,
            timeout=timeout,
            cancel_event=cancel_event,
        )
        return self._finish(series, snapshot, estimate)

    async def evaluate_async(
        self,
        series: SeriesInput,
        timeframe: Optional[Union[Timeframe, str]] = None,
        predictor: Optional[Predictor] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Signal:
        """asyncio flavour of evaluate(); cancelling the task aborts it."""
        series = self._prepare(series, timeframe)
        snapshot = await asyncio.to_thread(self.indicators.compute_snapshot, series)
        estimate = await self.fusion.fuse_async(series, snapshot, predictor, timeout=timeout)
        return self._finish(series, snapshot, estimate)

    def evaluate_many(
        self,
        series_by_timeframe: Mapping[Union[Timeframe, str], SeriesInput],
        predictor: Optional[Predictor] = None,
        *,
        timeout: Optional[float] = None,
    ) -> dict[Timeframe, Signal]:
        """Evaluate several timeframes in parallel, one worker each."""
        if not series_by_timeframe:
            return {}

        jobs = {Timeframe.parse(tf): s for tf, s in series_by_timeframe.items()}
        with ThreadPoolExecutor(
            max_workers=len(jobs),
            thread_name_prefix="evaluate",
        ) as pool:
            futures = {
                tf: pool.submit(self.evaluate, s, tf, predictor, timeout=timeout)
                for tf, s in jobs.items()
            }
            return {tf: future.result() for tf, future in futures.items()}

    # ──────────────────────────────────────────
    # Feedback
    # ──────────────────────────────────────────

    def record_outcome(
        self,
        signal_type: Union[SignalType, str],
        outcome: Union[Outcome, str],
    ) -> float:
        """Record a realized outcome; returns the running accuracy ratio."""
        return self.context.tracker.record(signal_type, outcome)

    # ──────────────────────────────────────────
    # Private Helpers
    # ──────────────────────────────────────────

    def _prepare(
        self,
        series: SeriesInput,
        timeframe: Optional[Union[Timeframe, str]],
    ) -> CandleSeries:
        if isinstance(series, CandleSeries):
            if timeframe is not None and Timeframe.parse(timeframe) != series.timeframe:
                raise ValueError(
                    f"timeframe {Timeframe.parse(timeframe).value} does not match "
                    f"series timeframe {series.timeframe.value}"
                )
            return validate_series(series)
        if timeframe is None:
            raise ValueError("timeframe is required when passing raw candle rows")
        return build_series(series, timeframe)

    def _finish(self, series, snapshot, estimate) -> Signal:
        signal = self.scorer.score(
            snapshot,
            estimate,
            created_at=self._clock(),
            timeframe=series.timeframe,
        )
        self.context.registry.put(series)
        log.info(
            "signal_engine.evaluated",
            timeframe=series.timeframe.value,
            candles=len(series),
            full_coverage=series.has_full_coverage,
            type=signal.type.value,
            strength=round(signal.strength, 2),
            source=signal.ai_source.value,
            unavailable=list(signal.unavailable),
        )
        return signal


# ──────────────────────────────────────────────
# Module-level API
# ──────────────────────────────────────────────

@lru_cache
def get_signal_engine() -> SignalEngine:
    """Process-wide default engine, created on first use."""
    return SignalEngine()


def evaluate(
    series: SeriesInput,
    timeframe: Optional[Union[Timeframe, str]] = None,
    predictor: Optional[Predictor] = None,
    **kwargs,
) -> Signal:
    return get_signal_engine().evaluate(series, timeframe, predictor, **kwargs)


def record_outcome(
    signal_type: Union[SignalType, str],
    outcome: Union[Outcome, str],
) -> float:
    return get_signal_engine().record_outcome(signal_type, outcome)
