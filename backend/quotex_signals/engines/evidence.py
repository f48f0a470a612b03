"""
Quotex Signals — Indicator Evidence Rules

The directional reading of each indicator, shared by the fallback estimate
and the signal scorer so both always agree on what "bullish MACD" means.
Each rule returns +1 (bullish), -1 (bearish) or 0 (no evidence). Unavailable
readings are always 0.
"""

from __future__ import annotations

from quotex_signals.models import (
    BandPosition,
    BollingerReading,
    Crossover,
    EMAReading,
    MACDReading,
    RSIReading,
    VolumeReading,
    VolumeTrend,
)

RSI_OVERSOLD = 30.0
RSI_OVERBOUGHT = 70.0


def crossover_bias(ema: EMAReading) -> int:
    if ema.crossover == Crossover.BULLISH:
        return 1
    if ema.crossover == Crossover.BEARISH:
        return -1
    return 0


def macd_bias(macd: MACDReading) -> int:
    """Positive and rising histogram → +1, negative and falling → -1."""
    if not macd.available:
        return 0
    hist, prev = macd.histogram, macd.previous_histogram
    if hist > 0 and hist > prev:
        return 1
    if hist < 0 and hist < prev:
        return -1
    return 0


def rsi_bias(rsi: RSIReading) -> int:
    """Oversold → +1, overbought → -1."""
    if rsi.value is None:
        return 0
    if rsi.value < RSI_OVERSOLD:
        return 1
    if rsi.value > RSI_OVERBOUGHT:
        return -1
    return 0


def band_bias(bollinger: BollingerReading) -> int:
    """Close at the lower band → +1, at the upper band → -1."""
    if bollinger.position == BandPosition.LOWER:
        return 1
    if bollinger.position == BandPosition.UPPER:
        return -1
    return 0


def volume_bias(volume: VolumeReading, running_score: float) -> int:
    """Volume spike that agrees with the direction already scored.

    A spike on a rising close confirms a positive score, a spike on a falling
    close confirms a negative one. Nothing else counts.
    """
    if volume.trend == VolumeTrend.INCREASING and running_score > 0:
        return 1
    if volume.trend == VolumeTrend.DECREASING and running_score < 0:
        return -1
    return 0
