"""
Quotex Signals — Pydantic Models

All I/O schemas for the engine. Calculators return these, the scorer consumes
them, callers serialize them. Every model is frozen: results are produced
fresh per evaluation and never mutated.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ──────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────

class Timeframe(str, Enum):
    """Supported chart timeframes."""
    M1 = "1m"
    M5 = "5m"
    M15 = "15m"

    @property
    def milliseconds(self) -> int:
        return _TIMEFRAME_MS[self]

    @classmethod
    def parse(cls, value: Union[str, "Timeframe"]) -> "Timeframe":
        """Accept '1m' style values as well as the 'M1' style labels.

        >>> Timeframe.parse("M5")
        <Timeframe.M5: '5m'>
        """
        if isinstance(value, cls):
            return value
        raw = str(value).strip()
        try:
            return cls(raw.lower())
        except ValueError:
            pass
        try:
            return cls[raw.upper()]
        except KeyError:
            raise ValueError(f"Unsupported timeframe '{value}'") from None


_TIMEFRAME_MS = {
    Timeframe.M1: 60 * 1000,
    Timeframe.M5: 5 * 60 * 1000,
    Timeframe.M15: 15 * 60 * 1000,
}


class Crossover(str, Enum):
    """EMA-20 / EMA-50 crossover state."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NONE = "none"


class BandPosition(str, Enum):
    """Where the last close sits relative to the Bollinger Bands."""
    UPPER = "upper"
    MIDDLE = "middle"
    LOWER = "lower"


class VolumeTrend(str, Enum):
    """Volume of the last bar relative to its 10-bar average."""
    INCREASING = "increasing"   # volume spike on a rising close
    DECREASING = "decreasing"   # volume spike on a falling close
    HIGH = "high"               # volume spike, close unchanged
    LOW = "low"
    STABLE = "stable"


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


class EstimateSource(str, Enum):
    EXTERNAL = "external"
    PATTERN = "pattern"


class SignalType(str, Enum):
    BUY = "buy"
    SELL = "sell"
    NEUTRAL = "neutral"


class Recommendation(str, Enum):
    BUY = "Buy"
    SELL = "Sell"
    HOLD = "Hold"


class Outcome(str, Enum):
    WIN = "win"
    LOSS = "loss"


# ──────────────────────────────────────────────
# Market Data Models
# ──────────────────────────────────────────────

FULL_COVERAGE_CANDLES = 50


class Candle(_Frozen):
    """Single OHLCV bar. Invariants are enforced by utils.validators."""
    timestamp: int  # ms epoch
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class CandleSeries(_Frozen):
    """Ordered candles for one timeframe."""
    timeframe: Timeframe
    candles: tuple[Candle, ...] = ()

    def __len__(self) -> int:
        return len(self.candles)

    @property
    def closes(self) -> list[float]:
        return [c.close for c in self.candles]

    @property
    def volumes(self) -> list[float]:
        return [c.volume for c in self.candles]

    @property
    def last(self) -> Optional[Candle]:
        return self.candles[-1] if self.candles else None

    def tail(self, n: int) -> tuple[Candle, ...]:
        """Last `n` candles (all of them if the series is shorter)."""
        if n <= 0:
            return ()
        return self.candles[-n:]

    @property
    def has_full_coverage(self) -> bool:
        return len(self.candles) >= FULL_COVERAGE_CANDLES


# ──────────────────────────────────────────────
# Indicator Models
# ──────────────────────────────────────────────
# None on any field means "not enough history", never "neutral".

class EMAReading(_Frozen):
    ema20: Optional[float] = None
    ema50: Optional[float] = None
    crossover: Optional[Crossover] = None

    @property
    def available(self) -> bool:
        return self.crossover is not None


class MACDReading(_Frozen):
    line: Optional[float] = None
    signal: Optional[float] = None
    histogram: Optional[float] = None
    previous_histogram: Optional[float] = None

    @property
    def available(self) -> bool:
        return self.histogram is not None and self.previous_histogram is not None


class RSIReading(_Frozen):
    value: Optional[float] = Field(default=None, ge=0, le=100)

    @property
    def available(self) -> bool:
        return self.value is not None


class BollingerReading(_Frozen):
    upper: Optional[float] = None
    middle: Optional[float] = None
    lower: Optional[float] = None
    width: Optional[float] = None
    position: Optional[BandPosition] = None

    @property
    def available(self) -> bool:
        return self.position is not None


class VolumeReading(_Frozen):
    current: Optional[float] = None
    average: Optional[float] = None
    trend: Optional[VolumeTrend] = None

    @property
    def available(self) -> bool:
        return self.trend is not None


class IndicatorSnapshot(_Frozen):
    """All indicator readings for one evaluation point."""
    ema: EMAReading = Field(default_factory=EMAReading)
    macd: MACDReading = Field(default_factory=MACDReading)
    rsi: RSIReading = Field(default_factory=RSIReading)
    bollinger: BollingerReading = Field(default_factory=BollingerReading)
    volume: VolumeReading = Field(default_factory=VolumeReading)
    close: Optional[float] = None
    candle_count: int = 0

    @property
    def unavailable(self) -> tuple[str, ...]:
        """Names of readings that lacked history."""
        readings = {
            "ema": self.ema,
            "macd": self.macd,
            "rsi": self.rsi,
            "bollinger": self.bollinger,
            "volume": self.volume,
        }
        return tuple(name for name, r in readings.items() if not r.available)


# ──────────────────────────────────────────────
# Prediction Models
# ──────────────────────────────────────────────

class DirectionalEstimate(_Frozen):
    """Normalized up/down/neutral call from an external or local source."""
    direction: Direction
    confidence: float = Field(ge=0.0, le=1.0)
    source: EstimateSource
    score: Optional[float] = None            # fallback raw score
    pattern: Optional[str] = None            # pattern that fed the fallback
    fallback_reason: Optional[str] = None    # why the external path was skipped


class PriceStatistics(_Frozen):
    """Summary of the recent window handed to external predictors."""
    price_change: float = 0.0
    price_change_pct: float = 0.0
    volatility: float = 0.0  # mean absolute close-to-close move, in %


class PredictionContext(_Frozen):
    """Everything an external predictor gets to see."""
    timeframe: Timeframe
    snapshot: IndicatorSnapshot
    recent_candles: tuple[Candle, ...]
    statistics: PriceStatistics = Field(default_factory=PriceStatistics)


# ──────────────────────────────────────────────
# Signal Models
# ──────────────────────────────────────────────

class IndicatorContribution(_Frozen):
    """Raw reading of one indicator and the points it added to the score."""
    value: Optional[Union[float, str]] = None
    points: float = 0.0
    available: bool = True


class Signal(_Frozen):
    """Final engine output. Owned by the caller once returned."""
    type: SignalType
    strength: float = Field(ge=0.0, le=100.0)
    recommendation: Recommendation
    ai_confidence: float = Field(ge=0.0, le=1.0)
    ai_direction: Direction = Direction.NEUTRAL
    ai_source: EstimateSource = EstimateSource.PATTERN
    score: float = 0.0
    rationale: dict[str, IndicatorContribution] = Field(default_factory=dict)
    unavailable: tuple[str, ...] = ()
    timeframe: Optional[Timeframe] = None
    created_at: int  # ms epoch


class AccuracyStats(_Frozen):
    """Running signal accuracy counters."""
    total_signals: int = Field(default=0, ge=0)
    correct_signals: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _correct_within_total(self) -> "AccuracyStats":
        if self.correct_signals > self.total_signals:
            raise ValueError("correct_signals cannot exceed total_signals")
        return self

    @property
    def accuracy(self) -> Optional[float]:
        """correct / total, or None before anything was recorded."""
        if self.total_signals == 0:
            return None
        return self.correct_signals / self.total_signals
