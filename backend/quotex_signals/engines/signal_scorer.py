"""
Quotex Signals — Signal Scorer

Weighted vote over the indicator snapshot plus the directional estimate:

    EMA crossover       ±20
    MACD histogram      ±20
    RSI extreme         ±15
    Bollinger position  ±15
    Volume confirmation ±10  (only when it agrees with the running score)
    Directional estimate ±20 × confidence

Above +30 is a buy, below -30 a sell, anything in between neutral.
"""

from __future__ import annotations

from typing import Optional

from quotex_signals.engines.evidence import (
    band_bias,
    crossover_bias,
    macd_bias,
    rsi_bias,
    volume_bias,
)
from quotex_signals.models import (
    Direction,
    DirectionalEstimate,
    IndicatorContribution,
    IndicatorSnapshot,
    Recommendation,
    Signal,
    SignalType,
    Timeframe,
)


class SignalScorer:
    """Pure snapshot + estimate → Signal mapping.

    Usage:
        scorer = SignalScorer()
        signal = scorer.score(snapshot, estimate, created_at=now_ms)
    """

    EMA_WEIGHT = 20.0
    MACD_WEIGHT = 20.0
    RSI_WEIGHT = 15.0
    BB_WEIGHT = 15.0
    VOLUME_WEIGHT = 10.0
    ESTIMATE_WEIGHT = 20.0

    BUY_THRESHOLD = 30.0
    SELL_THRESHOLD = -30.0

    def score(
        self,
        snapshot: IndicatorSnapshot,
        estimate: DirectionalEstimate,
        *,
        created_at: int,
        timeframe: Optional[Timeframe] = None,
    ) -> Signal:
        rationale: dict[str, IndicatorContribution] = {}
        total = 0.0

        ema_points = crossover_bias(snapshot.ema) * self.EMA_WEIGHT
        total += ema_points
        rationale["ema"] = IndicatorContribution(
            value=snapshot.ema.crossover.value if snapshot.ema.crossover else None,
            points=ema_points,
            available=snapshot.ema.available,
        )

        macd_points = macd_bias(snapshot.macd) * self.MACD_WEIGHT
        total += macd_points
        rationale["macd"] = IndicatorContribution(
            value=snapshot.macd.histogram,
            points=macd_points,
            available=snapshot.macd.available,
        )

        rsi_points = rsi_bias(snapshot.rsi) * self.RSI_WEIGHT
        total += rsi_points
        rationale["rsi"] = IndicatorContribution(
            value=snapshot.rsi.value,
            points=rsi_points,
            available=snapshot.rsi.available,
        )

        bb_points = band_bias(snapshot.bollinger) * self.BB_WEIGHT
        total += bb_points
        rationale["bollinger"] = IndicatorContribution(
            value=snapshot.bollinger.position.value if snapshot.bollinger.position else None,
            points=bb_points,
            available=snapshot.bollinger.available,
        )

        volume_points = volume_bias(snapshot.volume, total) * self.VOLUME_WEIGHT
        total += volume_points
        rationale["volume"] = IndicatorContribution(
            value=snapshot.volume.trend.value if snapshot.volume.trend else None,
            points=volume_points,
            available=snapshot.volume.available,
        )

        estimate_points = self._estimate_points(estimate)
        total += estimate_points
        rationale["prediction"] = IndicatorContribution(
            value=estimate.direction.value,
            points=estimate_points,
        )

        if total > self.BUY_THRESHOLD:
            signal_type, recommendation = SignalType.BUY, Recommendation.BUY
        elif total < self.SELL_THRESHOLD:
            signal_type, recommendation = SignalType.SELL, Recommendation.SELL
        else:
            signal_type, recommendation = SignalType.NEUTRAL, Recommendation.HOLD

        return Signal(
            type=signal_type,
            strength=min(abs(total), 100.0),
            recommendation=recommendation,
            ai_confidence=estimate.confidence,
            ai_direction=estimate.direction,
            ai_source=estimate.source,
            score=total,
            rationale=rationale,
            unavailable=snapshot.unavailable,
            timeframe=timeframe,
            created_at=created_at,
        )

    def _estimate_points(self, estimate: DirectionalEstimate) -> float:
        if estimate.direction == Direction.UP:
            return self.ESTIMATE_WEIGHT * estimate.confidence
        if estimate.direction == Direction.DOWN:
            return -self.ESTIMATE_WEIGHT * estimate.confidence
        return 0.0
