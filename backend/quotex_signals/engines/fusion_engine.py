"""
Quotex Signals — Prediction Fusion

Turns an external predictor's answer, or the local fallback when there is no
usable answer, into one DirectionalEstimate.

The external call is the only blocking step in the pipeline. It runs in a
worker pool (sync callers) or under asyncio.wait_for (async callers) and is
bounded by a timeout. Timeouts, exceptions, malformed payloads, cancellation
and an open circuit all land on the same deterministic fallback built from
the indicator snapshot plus the pattern detector.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import math
import re
import threading
import time
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Awaitable, Callable, Optional, Union

import numpy as np
import structlog

from quotex_signals.config import Settings, get_settings
from quotex_signals.engines.evidence import (
    band_bias,
    crossover_bias,
    macd_bias,
    rsi_bias,
    volume_bias,
)
from quotex_signals.engines.pattern_engine import PatternEngine, PatternResult
from quotex_signals.errors import ExternalPredictionError
from quotex_signals.models import (
    CandleSeries,
    Direction,
    DirectionalEstimate,
    EstimateSource,
    IndicatorSnapshot,
    PredictionContext,
    PriceStatistics,
)
from quotex_signals.utils.circuit_breaker import CircuitBreaker, CircuitOpenError

log = structlog.get_logger(__name__)

# A predictor receives the context and returns a DirectionalEstimate, a
# {"direction"|"prediction", "confidence"} mapping, or text holding such a
# JSON object. It may be a plain function or a coroutine function.
Predictor = Callable[[PredictionContext], Union[Any, Awaitable[Any]]]

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_POLL_INTERVAL = 0.05


class _Cancelled(Exception):
    """The caller gave up on the external call."""


# ──────────────────────────────────────────────
# Payload Parsing
# ──────────────────────────────────────────────

def parse_prediction(payload: Any) -> DirectionalEstimate:
    """Validate a predictor payload into an external DirectionalEstimate.

    Raises ExternalPredictionError for anything without a known direction
    and a finite confidence in [0, 1].
    """
    if isinstance(payload, DirectionalEstimate):
        data: Any = {"direction": payload.direction.value, "confidence": payload.confidence}
    elif isinstance(payload, (str, bytes)):
        text = payload.decode("utf-8", errors="replace") if isinstance(payload, bytes) else payload
        match = _JSON_OBJECT_RE.search(text)
        if not match:
            raise ExternalPredictionError("no JSON object in predictor response")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise ExternalPredictionError(f"unparseable predictor response: {exc}") from exc
    else:
        data = payload

    if not isinstance(data, Mapping):
        raise ExternalPredictionError(f"unsupported payload type {type(payload).__name__}")

    raw_direction = data.get("direction", data.get("prediction"))
    if raw_direction is None:
        raise ExternalPredictionError("payload is missing 'direction'")
    try:
        direction = Direction(str(raw_direction).strip().lower())
    except ValueError:
        raise ExternalPredictionError(f"unknown direction '{raw_direction}'") from None

    raw_confidence = data.get("confidence")
    if isinstance(raw_confidence, bool) or not isinstance(raw_confidence, (int, float)):
        raise ExternalPredictionError(f"confidence must be a number, got {raw_confidence!r}")
    confidence = float(raw_confidence)
    if not math.isfinite(confidence) or not 0.0 <= confidence <= 1.0:
        raise ExternalPredictionError(f"confidence {confidence} outside [0, 1]")

    return DirectionalEstimate(
        direction=direction,
        confidence=confidence,
        source=EstimateSource.EXTERNAL,
    )


def _invoke(predictor: Predictor, context: PredictionContext) -> Any:
    """Worker-thread entry point; drives coroutine predictors to completion."""
    result = predictor(context)
    if inspect.isawaitable(result):
        return asyncio.run(_await(result))
    return result


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


def _predictor_name(predictor: Predictor) -> str:
    return (
        getattr(predictor, "name", None)
        or getattr(predictor, "__qualname__", None)
        or type(predictor).__name__
    )


# ──────────────────────────────────────────────
# Fusion
# ──────────────────────────────────────────────

class PredictionFusion:
    """External-or-fallback directional estimate.

    Usage:
        fusion = PredictionFusion()
        estimate = fusion.fuse(series, snapshot, predictor=my_model, timeout=2.0)
    """

    # Fallback weights (points) and confidence increments per category.
    EMA_WEIGHT, EMA_CONFIDENCE = 25.0, 0.10
    MACD_WEIGHT, MACD_CONFIDENCE = 20.0, 0.08
    RSI_WEIGHT, RSI_CONFIDENCE = 15.0, 0.06
    BB_WEIGHT, BB_CONFIDENCE = 20.0, 0.08
    VOLUME_WEIGHT, VOLUME_CONFIDENCE = 10.0, 0.04

    BASE_CONFIDENCE = 0.5
    MIN_CONFIDENCE = 0.3
    MAX_CONFIDENCE = 0.85
    DIRECTION_THRESHOLD = 15.0

    def __init__(
        self,
        settings: Optional[Settings] = None,
        pattern_engine: Optional[PatternEngine] = None,
    ):
        self._settings = settings or get_settings()
        self._patterns = pattern_engine or PatternEngine()
        self._executor = ThreadPoolExecutor(
            max_workers=self._settings.predictor_max_workers,
            thread_name_prefix="predictor",
        )
        self._breakers: dict[str, CircuitBreaker] = {}
        self._breakers_lock = threading.Lock()

    def close(self) -> None:
        """Release the worker pool without waiting on abandoned calls."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def breaker_for(self, predictor: Predictor) -> CircuitBreaker:
        name = _predictor_name(predictor)
        with self._breakers_lock:
            if name not in self._breakers:
                self._breakers[name] = CircuitBreaker(
                    name,
                    failure_threshold=self._settings.predictor_failure_threshold,
                    recovery_timeout=self._settings.predictor_recovery_timeout,
                )
            return self._breakers[name]

    # ──────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────

    def build_context(self, series: CandleSeries, snapshot: IndicatorSnapshot) -> PredictionContext:
        """Context handed to the external predictor: snapshot + recent window."""
        window = series.tail(self._settings.prediction_window)
        return PredictionContext(
            timeframe=series.timeframe,
            snapshot=snapshot,
            recent_candles=window,
            statistics=self._price_statistics([c.close for c in window]),
        )

    def fuse(
        self,
        series: CandleSeries,
        snapshot: IndicatorSnapshot,
        predictor: Optional[Predictor] = None,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> DirectionalEstimate:
        """Ask the external predictor, falling back locally on any failure.

        Never blocks longer than `timeout` seconds (default from settings) and
        returns early if `cancel_event` is set.
        """
        if predictor is None:
            return self._fallback(series, snapshot, "no_predictor")

        name = _predictor_name(predictor)
        breaker = self.breaker_for(predictor)
        try:
            breaker.guard()
        except CircuitOpenError as exc:
            log.info("fusion.circuit_open", predictor=name, retry_after=round(exc.retry_after, 1))
            return self._fallback(series, snapshot, "circuit_open")

        timeout = self._settings.predictor_timeout_seconds if timeout is None else timeout
        context = self.build_context(series, snapshot)
        try:
            estimate = self._call_sync(predictor, context, timeout, cancel_event)
        except _Cancelled:
            breaker.release()
            log.info("fusion.external_cancelled", predictor=name)
            return self._fallback(series, snapshot, "cancelled")
        except ExternalPredictionError as exc:
            breaker.record_failure(str(exc))
            log.warning("fusion.external_failed", predictor=name, error=str(exc))
            return self._fallback(series, snapshot, str(exc))

        breaker.record_success()
        log.debug(
            "fusion.external_estimate",
            predictor=name,
            direction=estimate.direction.value,
            confidence=estimate.confidence,
        )
        return estimate

    async def fuse_async(
        self,
        series: CandleSeries,
        snapshot: IndicatorSnapshot,
        predictor: Optional[Predictor] = None,
        *,
        timeout: Optional[float] = None,
    ) -> DirectionalEstimate:
        """asyncio flavour of fuse(); coroutine predictors are awaited directly."""
        if predictor is None:
            return self._fallback(series, snapshot, "no_predictor")

        name = _predictor_name(predictor)
        breaker = self.breaker_for(predictor)
        try:
            breaker.guard()
        except CircuitOpenError as exc:
            log.info("fusion.circuit_open", predictor=name, retry_after=round(exc.retry_after, 1))
            return self._fallback(series, snapshot, "circuit_open")

        timeout = self._settings.predictor_timeout_seconds if timeout is None else timeout
        context = self.build_context(series, snapshot)
        try:
            estimate = await asyncio.wait_for(self._call_async(predictor, context), timeout)
        except asyncio.TimeoutError:
            reason = f"timed out after {timeout}s"
            breaker.record_failure(reason)
            log.warning("fusion.external_timeout", predictor=name, timeout=timeout)
            return self._fallback(series, snapshot, reason)
        except asyncio.CancelledError:
            breaker.release()
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            log.info("fusion.external_cancelled", predictor=name)
            return self._fallback(series, snapshot, "cancelled")
        except ExternalPredictionError as exc:
            breaker.record_failure(str(exc))
            log.warning("fusion.external_failed", predictor=name, error=str(exc))
            return self._fallback(series, snapshot, str(exc))

        breaker.record_success()
        return estimate

    def fallback_estimate(
        self,
        snapshot: IndicatorSnapshot,
        pattern: PatternResult,
        reason: Optional[str] = None,
    ) -> DirectionalEstimate:
        """Deterministic local estimate from the snapshot and pattern result.

        Same inputs always give a bit-identical estimate: a fixed summation
        order and no clock or randomness.
        """
        score = 0.0
        confidence = self.BASE_CONFIDENCE

        categories = (
            (crossover_bias(snapshot.ema), self.EMA_WEIGHT, self.EMA_CONFIDENCE),
            (macd_bias(snapshot.macd), self.MACD_WEIGHT, self.MACD_CONFIDENCE),
            (rsi_bias(snapshot.rsi), self.RSI_WEIGHT, self.RSI_CONFIDENCE),
            (band_bias(snapshot.bollinger), self.BB_WEIGHT, self.BB_CONFIDENCE),
        )
        for bias, weight, increment in categories:
            if bias:
                score += bias * weight
                confidence += increment

        volume = volume_bias(snapshot.volume, score)
        if volume:
            score += volume * self.VOLUME_WEIGHT
            confidence += self.VOLUME_CONFIDENCE

        score += pattern.score
        confidence += pattern.confidence

        if score > self.DIRECTION_THRESHOLD:
            direction = Direction.UP
        elif score < -self.DIRECTION_THRESHOLD:
            direction = Direction.DOWN
        else:
            direction = Direction.NEUTRAL

        return DirectionalEstimate(
            direction=direction,
            confidence=min(max(confidence, self.MIN_CONFIDENCE), self.MAX_CONFIDENCE),
            source=EstimateSource.PATTERN,
            score=score,
            pattern=pattern.name,
            fallback_reason=reason,
        )

    # ──────────────────────────────────────────
    # Private Helpers
    # ──────────────────────────────────────────

    def _fallback(
        self,
        series: CandleSeries,
        snapshot: IndicatorSnapshot,
        reason: str,
    ) -> DirectionalEstimate:
        pattern = self._patterns.detect(series.candles)
        estimate = self.fallback_estimate(snapshot, pattern, reason)
        log.debug(
            "fusion.fallback_estimate",
            reason=reason,
            pattern=pattern.name,
            score=estimate.score,
            direction=estimate.direction.value,
            confidence=estimate.confidence,
        )
        return estimate

    def _call_sync(
        self,
        predictor: Predictor,
        context: PredictionContext,
        timeout: float,
        cancel_event: Optional[threading.Event],
    ) -> DirectionalEstimate:
        deadline = time.monotonic() + timeout
        future = self._executor.submit(_invoke, predictor, context)

        while not future.done():
            if cancel_event is not None and cancel_event.is_set():
                future.cancel()
                raise _Cancelled()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                # A running call cannot be interrupted; it is abandoned.
                future.cancel()
                raise ExternalPredictionError(f"timed out after {timeout}s")
            wait([future], timeout=min(remaining, _POLL_INTERVAL))

        try:
            payload = future.result()
        except Exception as exc:
            raise ExternalPredictionError(f"{type(exc).__name__}: {exc}") from exc
        return parse_prediction(payload)

    @staticmethod
    async def _call_async(predictor: Predictor, context: PredictionContext) -> DirectionalEstimate:
        try:
            if inspect.iscoroutinefunction(predictor):
                payload = await predictor(context)
            else:
                payload = await asyncio.to_thread(predictor, context)
                if inspect.isawaitable(payload):
                    payload = await payload
        except (ExternalPredictionError, asyncio.CancelledError):
            raise
        except Exception as exc:
            raise ExternalPredictionError(f"{type(exc).__name__}: {exc}") from exc
        return parse_prediction(payload)

    @staticmethod
    def _price_statistics(closes: list[float]) -> PriceStatistics:
        """Net change, % change and mean absolute % move over the window."""
        if len(closes) < 2:
            return PriceStatistics()

        prices = np.asarray(closes, dtype=float)
        price_change = float(prices[-1] - prices[0])
        price_change_pct = price_change / prices[0] * 100 if prices[0] != 0 else 0.0

        previous = prices[:-1]
        mask = previous != 0
        moves = np.abs(np.diff(prices))[mask] / previous[mask]
        volatility = float(moves.mean() * 100) if moves.size else 0.0

        return PriceStatistics(
            price_change=price_change,
            price_change_pct=float(price_change_pct),
            volatility=volatility,
        )
