"""
Quotex Signals — Indicator Engine

Pure domain logic for the five indicator families the scorer reads:
EMA-20/50 crossover, MACD(12, 26, 9), RSI(14), Bollinger Bands(20, 2) and
10-bar volume trend. Stateless and reentrant.

Short history never produces a number: each reading comes back with None
fields so the scorer can tell "no data" from "balanced market".

Bollinger Bands use the `ta` library on a pandas Series; EMA and RSI are
computed directly because their seeding rules (SMA seed, Wilder SMA seed)
differ from the `ta` implementations.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np
import pandas as pd
import structlog
from ta.volatility import BollingerBands

from quotex_signals.models import (
    BandPosition,
    BollingerReading,
    CandleSeries,
    Crossover,
    EMAReading,
    IndicatorSnapshot,
    MACDReading,
    RSIReading,
    VolumeReading,
    VolumeTrend,
)

log = structlog.get_logger(__name__)

# Relative magnitude below which MACD histogram values are treated as zero.
_NOISE_FLOOR = 1e-9


class IndicatorEngine:
    """Technical indicator calculator over a CandleSeries.

    Usage:
        engine = IndicatorEngine()
        snapshot = engine.compute_snapshot(series)
    """

    EMA_FAST = 20
    EMA_SLOW = 50
    CROSSOVER_MIN_CANDLES = 52

    MACD_FAST = 12
    MACD_SLOW = 26
    MACD_SIGNAL = 9

    RSI_PERIOD = 14

    BB_PERIOD = 20
    BB_STD_DEV = 2.0

    VOLUME_LOOKBACK = 10
    VOLUME_SPIKE_RATIO = 1.5
    VOLUME_DRY_RATIO = 0.5

    def compute_snapshot(self, series: CandleSeries) -> IndicatorSnapshot:
        """Compute every indicator for the last candle of a validated series."""
        closes = series.closes
        volumes = series.volumes

        ema_fast = self.ema(closes, self.EMA_FAST)
        ema_slow = self.ema(closes, self.EMA_SLOW)

        snapshot = IndicatorSnapshot(
            ema=EMAReading(
                ema20=ema_fast[-1] if ema_fast else None,
                ema50=ema_slow[-1] if ema_slow else None,
                crossover=self.ema_crossover(closes),
            ),
            macd=self.macd(closes),
            rsi=RSIReading(value=self.rsi(closes, self.RSI_PERIOD)),
            bollinger=self.bollinger(closes, self.BB_PERIOD, self.BB_STD_DEV),
            volume=self.volume_trend(volumes, closes),
            close=closes[-1] if closes else None,
            candle_count=len(closes),
        )

        if snapshot.unavailable:
            log.debug(
                "indicator_engine.insufficient_history",
                timeframe=series.timeframe.value,
                candles=len(closes),
                unavailable=list(snapshot.unavailable),
            )
        return snapshot

    # ──────────────────────────────────────────────
    # Trend
    # ──────────────────────────────────────────────

    @staticmethod
    def ema(values: Sequence[float], period: int) -> list[Optional[float]]:
        """Exponential Moving Average.

        Returns a list the same length as `values`. The seed is the simple
        mean of the first `period` values, placed at index `period - 1`;
        earlier positions are None.
        """
        result: list[Optional[float]] = [None] * len(values)
        if period < 1 or len(values) < period:
            return result

        seed = math.fsum(values[:period]) / period
        result[period - 1] = seed

        multiplier = 2 / (period + 1)
        prev = seed
        for i in range(period, len(values)):
            prev = (values[i] - prev) * multiplier + prev
            result[i] = prev
        return result

    @classmethod
    def ema_crossover(cls, closes: Sequence[float]) -> Optional[Crossover]:
        """EMA-20 vs EMA-50 between the last two points, or None if < 52 closes."""
        if len(closes) < cls.CROSSOVER_MIN_CANDLES:
            return None

        fast = cls.ema(closes, cls.EMA_FAST)
        slow = cls.ema(closes, cls.EMA_SLOW)
        prev_fast, prev_slow = fast[-2], slow[-2]
        cur_fast, cur_slow = fast[-1], slow[-1]

        if prev_fast <= prev_slow and cur_fast > cur_slow:
            return Crossover.BULLISH
        if prev_fast >= prev_slow and cur_fast < cur_slow:
            return Crossover.BEARISH
        return Crossover.NONE

    # ──────────────────────────────────────────────
    # Momentum
    # ──────────────────────────────────────────────

    @classmethod
    def macd(cls, closes: Sequence[float]) -> MACDReading:
        """MACD line, signal and histogram for the last close.

        The line needs 26 closes, the signal line (EMA-9 of the defined part
        of the line) 34, and the previous histogram 35.
        """
        if len(closes) < cls.MACD_SLOW:
            return MACDReading()

        fast = cls.ema(closes, cls.MACD_FAST)
        slow = cls.ema(closes, cls.MACD_SLOW)
        start = cls.MACD_SLOW - 1
        line = [f - s for f, s in zip(fast[start:], slow[start:])]

        signal = cls.ema(line, cls.MACD_SIGNAL)
        histogram = [
            None if sig is None else value - sig
            for value, sig in zip(line, signal)
        ]

        reference = abs(closes[-1])
        previous = histogram[-2] if len(histogram) >= 2 else None
        return MACDReading(
            line=line[-1],
            signal=signal[-1],
            histogram=_denoise(histogram[-1], reference),
            previous_histogram=_denoise(previous, reference),
        )

    @staticmethod
    def rsi(closes: Sequence[float], period: int = 14) -> Optional[float]:
        """Wilder's RSI of the last close, or None with fewer than period + 1 closes.

        A zero average loss yields exactly 100.
        """
        if period < 1 or len(closes) < period + 1:
            return None

        gains = []
        losses = []
        for i in range(1, len(closes)):
            diff = closes[i] - closes[i - 1]
            gains.append(max(0.0, diff))
            losses.append(max(0.0, -diff))

        avg_gain = sum(gains[:period]) / period
        avg_loss = sum(losses[:period]) / period

        for i in range(period, len(gains)):
            avg_gain = (avg_gain * (period - 1) + gains[i]) / period
            avg_loss = (avg_loss * (period - 1) + losses[i]) / period

        if avg_loss == 0:
            return 100.0
        rs = avg_gain / avg_loss
        return 100 - 100 / (1 + rs)

    # ──────────────────────────────────────────────
    # Volatility
    # ──────────────────────────────────────────────

    @staticmethod
    def bollinger(
        closes: Sequence[float],
        period: int = 20,
        std_dev: float = 2.0,
    ) -> BollingerReading:
        """Bollinger Bands (population σ) and the last close's position.

        Position is `upper` when the close is at or above the upper band,
        `lower` at or below the lower band, `middle` otherwise.
        """
        if len(closes) < period:
            return BollingerReading()

        bb = BollingerBands(pd.Series(closes, dtype=float), window=period, window_dev=std_dev)
        upper = _safe_float(bb.bollinger_hband().iloc[-1])
        middle = _safe_float(bb.bollinger_mavg().iloc[-1])
        lower = _safe_float(bb.bollinger_lband().iloc[-1])
        if upper is None or middle is None or lower is None:
            return BollingerReading()

        width = (upper - lower) / middle if middle != 0 else 0.0

        last = closes[-1]
        if last >= upper:
            position = BandPosition.UPPER
        elif last <= lower:
            position = BandPosition.LOWER
        else:
            position = BandPosition.MIDDLE

        return BollingerReading(
            upper=upper,
            middle=middle,
            lower=lower,
            width=width,
            position=position,
        )

    # ──────────────────────────────────────────────
    # Volume
    # ──────────────────────────────────────────────

    @classmethod
    def volume_trend(cls, volumes: Sequence[float], closes: Sequence[float]) -> VolumeReading:
        """Classify the last bar's volume against the 10-bar average (itself included)."""
        if len(volumes) < cls.VOLUME_LOOKBACK or len(closes) < 2:
            return VolumeReading()

        average = _safe_float(
            pd.Series(volumes, dtype=float).rolling(cls.VOLUME_LOOKBACK).mean().iloc[-1]
        )
        if average is None:
            return VolumeReading()
        current = float(volumes[-1])

        if current > average * cls.VOLUME_SPIKE_RATIO:
            change = closes[-1] - closes[-2]
            if change > 0:
                trend = VolumeTrend.INCREASING
            elif change < 0:
                trend = VolumeTrend.DECREASING
            else:
                trend = VolumeTrend.HIGH
        elif current < average * cls.VOLUME_DRY_RATIO:
            trend = VolumeTrend.LOW
        else:
            trend = VolumeTrend.STABLE

        return VolumeReading(current=current, average=average, trend=trend)


# ──────────────────────────────────────────────
# Private Helpers
# ──────────────────────────────────────────────

def _safe_float(value) -> Optional[float]:
    """Convert numpy scalars to float, mapping NaN/Inf to None."""
    if value is None:
        return None
    try:
        if not np.isfinite(value):
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _denoise(value: Optional[float], reference: float) -> Optional[float]:
    """Snap floating-point residue (relative to the price level) to 0.0."""
    if value is None:
        return None
    if abs(value) < _NOISE_FLOOR * reference:
        return 0.0
    return value
