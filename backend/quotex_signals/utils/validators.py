"""
Quotex Signals — Candle Validators

Reject, never repair: any candle that breaks the OHLC invariant, carries a
non-finite price, a negative volume, or a timestamp older than its predecessor
invalidates the whole series. Raise InvalidCandleError so callers can surface
the index and reason.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Union

from quotex_signals.errors import InsufficientHistoryError, InvalidCandleError
from quotex_signals.models import Candle, CandleSeries, Timeframe

# Accepted key spellings for dict rows: long names first, then the short
# o/h/l/c/v format some chart feeds use.
_LONG_KEYS = ("open", "high", "low", "close")
_SHORT_KEYS = ("o", "h", "l", "c")
_TIMESTAMP_KEYS = ("timestamp", "time", "t", "ts")


def validate_candle(candle: Candle, index: int | None = None) -> Candle:
    """Check a single candle. Returns it unchanged or raises InvalidCandleError."""
    prices = (candle.open, candle.high, candle.low, candle.close)
    if not all(math.isfinite(p) for p in prices):
        raise InvalidCandleError("prices must be finite", index)
    if not math.isfinite(candle.volume) or candle.volume < 0:
        raise InvalidCandleError(f"volume must be a finite value >= 0, got {candle.volume}", index)
    body_low = min(candle.open, candle.close)
    body_high = max(candle.open, candle.close)
    if not (candle.low <= body_low and body_high <= candle.high):
        raise InvalidCandleError(
            f"expected low <= min(open, close) <= max(open, close) <= high, "
            f"got o={candle.open} h={candle.high} l={candle.low} c={candle.close}",
            index,
        )
    return candle


def validate_series(series: CandleSeries) -> CandleSeries:
    """Validate every candle and the timestamp ordering of a series."""
    if not series.candles:
        raise InvalidCandleError("series is empty")
    previous_ts = None
    for i, candle in enumerate(series.candles):
        validate_candle(candle, i)
        if previous_ts is not None and candle.timestamp < previous_ts:
            raise InvalidCandleError(
                f"timestamp {candle.timestamp} is earlier than previous {previous_ts}", i
            )
        previous_ts = candle.timestamp
    return series


def require_history(series: CandleSeries, required: int, indicator: str) -> None:
    """Strict guard for callers that cannot work with a partial snapshot."""
    if len(series) < required:
        raise InsufficientHistoryError(indicator, required, len(series))


def normalize_candle_row(row: Union[Sequence[Any], Mapping[str, Any], Candle], index: int) -> Candle:
    """Convert one raw row into a Candle.

    Supported shapes:
      - ``[timestamp, open, high, low, close, volume?]``
      - ``{"timestamp"|"time": ..., "open": ..., "high": ..., ...}``
      - ``{"t"|"ts": ..., "o": ..., "h": ..., "l": ..., "c": ..., "v"?: ...}``

    A missing volume means 0; a missing timestamp or price is an error.
    """
    if isinstance(row, Candle):
        return row

    if isinstance(row, Mapping):
        if "open" in row:
            keys, volume_key = _LONG_KEYS, "volume"
        elif "o" in row:
            keys, volume_key = _SHORT_KEYS, "v"
        else:
            raise InvalidCandleError("row has no open price", index)
        ts = next((row[k] for k in _TIMESTAMP_KEYS if row.get(k) is not None), None)
        values = [row.get(k) for k in keys]
        volume = row.get(volume_key)
    elif isinstance(row, Sequence) and not isinstance(row, (str, bytes)):
        if len(row) < 5:
            raise InvalidCandleError(f"expected at least 5 columns, got {len(row)}", index)
        ts = row[0]
        values = list(row[1:5])
        volume = row[5] if len(row) > 5 else None
    else:
        raise InvalidCandleError(f"unsupported row type {type(row).__name__}", index)

    if ts is None:
        raise InvalidCandleError("missing timestamp", index)
    if any(v is None for v in values):
        raise InvalidCandleError("missing price field", index)

    try:
        candle = Candle(
            timestamp=int(ts),
            open=float(values[0]),
            high=float(values[1]),
            low=float(values[2]),
            close=float(values[3]),
            volume=float(volume) if volume is not None else 0.0,
        )
    except (TypeError, ValueError, OverflowError) as exc:
        raise InvalidCandleError(f"non-numeric field ({exc})", index) from exc

    return validate_candle(candle, index)


def build_series(
    rows: Iterable[Union[Sequence[Any], Mapping[str, Any], Candle]],
    timeframe: Union[str, Timeframe],
) -> CandleSeries:
    """Normalize raw rows and return a validated CandleSeries."""
    candles = tuple(normalize_candle_row(row, i) for i, row in enumerate(rows))
    series = CandleSeries(timeframe=Timeframe.parse(timeframe), candles=candles)
    return validate_series(series)
