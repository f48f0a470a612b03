"""
Quotex Signals — Pattern Detection Engine

Rule-based candlestick classifier over the last five candles, used only as
the local fallback source when no external predictor answers.

Checks, first match wins:
  Doji            indecision, short-circuits everything else
  Hammer          reversal against the prevailing 10-bar trend
  Engulfing       bullish / bearish
  Three in a row  three white soldiers / three black crows
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from quotex_signals.models import Candle


# ──────────────────────────────────────────────
# Pattern Result Data Model
# ──────────────────────────────────────────────

UPTREND = "uptrend"
DOWNTREND = "downtrend"
SIDEWAYS = "sideways"


@dataclass(frozen=True)
class PatternResult:
    """Pattern detector output fed into the fallback estimate."""
    name: Optional[str]    # None when nothing matched
    score: float           # -10 … +10
    confidence: float      # 0.0 – 0.05
    trend: str = SIDEWAYS


class PatternEngine:
    """Heuristic candlestick detector.

    Usage:
        engine = PatternEngine()
        result = engine.detect(series.candles)
    """

    MIN_CANDLES = 5
    TREND_LOOKBACK = 10
    TREND_THRESHOLD_PCT = 2.0

    DOJI_BODY_RATIO = 0.10
    HAMMER_LOWER_WICK_RATIO = 2.0
    HAMMER_UPPER_WICK_RATIO = 0.5

    PATTERN_SCORE = 10.0
    DOJI_CONFIDENCE = 0.02
    HAMMER_CONFIDENCE = 0.04
    PATTERN_CONFIDENCE = 0.05

    def detect_trend(self, candles: Sequence[Candle]) -> str:
        """Regime from the % change in close over the last 10 candles."""
        if len(candles) < self.TREND_LOOKBACK:
            return SIDEWAYS

        recent = candles[-self.TREND_LOOKBACK:]
        first_price = recent[0].close
        if first_price == 0:
            return SIDEWAYS

        change_pct = (recent[-1].close - first_price) / first_price * 100
        if change_pct > self.TREND_THRESHOLD_PCT:
            return UPTREND
        if change_pct < -self.TREND_THRESHOLD_PCT:
            return DOWNTREND
        return SIDEWAYS

    def detect(self, candles: Sequence[Candle]) -> PatternResult:
        """Classify the most recent candles. Fewer than five → no pattern."""
        if len(candles) < self.MIN_CANDLES:
            return PatternResult(name=None, score=0.0, confidence=0.0)

        trend = self.detect_trend(candles)
        recent = candles[-self.MIN_CANDLES:]
        last, prev, third = recent[-1], recent[-2], recent[-3]

        body = abs(last.close - last.open)
        total_range = last.high - last.low

        # A zero-range candle has no body either: pure indecision.
        if total_range == 0 or body / total_range < self.DOJI_BODY_RATIO:
            return PatternResult("doji", 0.0, self.DOJI_CONFIDENCE, trend)

        lower_wick = min(last.open, last.close) - last.low
        upper_wick = last.high - max(last.open, last.close)
        if (
            lower_wick > body * self.HAMMER_LOWER_WICK_RATIO
            and upper_wick < body * self.HAMMER_UPPER_WICK_RATIO
        ):
            if trend == DOWNTREND:
                return PatternResult("hammer", self.PATTERN_SCORE, self.HAMMER_CONFIDENCE, trend)
            if trend == UPTREND:
                return PatternResult("hanging_man", -self.PATTERN_SCORE, self.HAMMER_CONFIDENCE, trend)
            # sideways: not a reversal, keep looking

        last_bullish = last.close > last.open
        prev_bullish = prev.close > prev.open

        if last_bullish and not prev_bullish:
            if last.open < prev.close and last.close > prev.open:
                return PatternResult("bullish_engulfing", self.PATTERN_SCORE, self.PATTERN_CONFIDENCE, trend)
        elif not last_bullish and prev_bullish:
            if last.open > prev.close and last.close < prev.open:
                return PatternResult("bearish_engulfing", -self.PATTERN_SCORE, self.PATTERN_CONFIDENCE, trend)

        third_bullish = third.close > third.open
        third_bearish = third.close < third.open
        if last_bullish and prev_bullish and third_bullish:
            if last.close > prev.close > third.close:
                return PatternResult("three_white_soldiers", self.PATTERN_SCORE, self.PATTERN_CONFIDENCE, trend)
        if not last_bullish and not prev_bullish and third_bearish:
            if last.close < prev.close < third.close:
                return PatternResult("three_black_crows", -self.PATTERN_SCORE, self.PATTERN_CONFIDENCE, trend)

        return PatternResult(name=None, score=0.0, confidence=0.0, trend=trend)
