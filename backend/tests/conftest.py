"""
Quotex Signals — shared test fixtures

Candle factories for synthetic series. Every candle produced here satisfies
the OHLC invariant so tests only fail on the behaviour they target.
"""

import random

import pytest


def _series_from_closes(closes, timeframe="1m", volumes=None, start_ts=1_700_000_000_000):
    from quotex_signals.models import Candle, CandleSeries, Timeframe

    tf = Timeframe.parse(timeframe)
    candles = []
    prev = closes[0]
    for i, close in enumerate(closes):
        open_ = prev if i else close
        volume = volumes[i] if volumes is not None else 100.0
        candles.append(Candle(
            timestamp=start_ts + i * tf.milliseconds,
            open=open_,
            high=max(open_, close) + 0.2,
            low=min(open_, close) - 0.2,
            close=close,
            volume=volume,
        ))
        prev = close
    return CandleSeries(timeframe=tf, candles=tuple(candles))


def _random_walk(seed, length, timeframe="1m"):
    rng = random.Random(seed)
    closes = [100.0]
    for _ in range(length - 1):
        closes.append(closes[-1] * (1 + rng.uniform(-0.01, 0.01)))
    volumes = [rng.uniform(50, 500) for _ in range(length)]
    return _series_from_closes(closes, timeframe, volumes)


@pytest.fixture
def make_series():
    """Factory: make_series(closes, timeframe="1m", volumes=None) → CandleSeries."""
    return _series_from_closes


@pytest.fixture
def random_walk():
    """Factory: random_walk(seed, length, timeframe="1m") → CandleSeries."""
    return _random_walk


@pytest.fixture
def uptrend(make_series):
    """60 candles, each close one above the previous, constant volume."""
    return make_series([100.0 + i for i in range(60)])
