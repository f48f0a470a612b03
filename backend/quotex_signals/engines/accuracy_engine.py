"""
Quotex Signals — Accuracy Engine

Running win-rate of emitted signals. Every recorded outcome counts towards
the total; a buy or sell that won also counts as correct.

Counters live in a pluggable store:
  memory  process-local, lock-protected (default)
  file    JSON file rewritten after every update
  redis   hash updated with HINCRBY inside MULTI, shared across processes
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Optional, Protocol, Union

import redis
import structlog

from quotex_signals.config import Settings, get_settings
from quotex_signals.models import AccuracyStats, Outcome, SignalType

log = structlog.get_logger(__name__)

_DIRECTIONAL = (SignalType.BUY, SignalType.SELL)


# ──────────────────────────────────────────────
# Stores
# ──────────────────────────────────────────────

class AccuracyStore(Protocol):
    """Atomic counter pair. `increment` must be safe under concurrent callers."""

    def load(self) -> AccuracyStats: ...

    def increment(self, correct: bool) -> AccuracyStats: ...

    def replace(self, stats: AccuracyStats) -> None: ...


class InMemoryAccuracyStore:
    def __init__(self, initial: Optional[AccuracyStats] = None):
        self._stats = initial or AccuracyStats()
        self._lock = threading.Lock()

    def load(self) -> AccuracyStats:
        with self._lock:
            return self._stats

    def increment(self, correct: bool) -> AccuracyStats:
        with self._lock:
            stats = AccuracyStats(
                total_signals=self._stats.total_signals + 1,
                correct_signals=self._stats.correct_signals + (1 if correct else 0),
            )
            self._commit(stats)
            return stats

    def replace(self, stats: AccuracyStats) -> None:
        with self._lock:
            self._commit(stats)

    def _commit(self, stats: AccuracyStats) -> None:
        # caller holds the lock
        self._stats = stats


class JsonFileAccuracyStore(InMemoryAccuracyStore):
    """In-memory counters mirrored to a JSON file after every update.

    The in-memory counters only move once the file write succeeded, so a
    failed write leaves both at the previous value.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        super().__init__(self._read())

    def _commit(self, stats: AccuracyStats) -> None:
        self._write(stats)
        self._stats = stats

    def _read(self) -> AccuracyStats:
        if not self.path.exists():
            return AccuracyStats()
        with self.path.open(encoding="utf-8") as fh:
            data = json.load(fh)
        stats = AccuracyStats.model_validate(data)
        log.debug(
            "accuracy.file_loaded",
            path=str(self.path),
            total=stats.total_signals,
            correct=stats.correct_signals,
        )
        return stats

    def _write(self, stats: AccuracyStats) -> None:
        # caller holds the lock; write-then-rename so readers never see half a file
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(stats.model_dump(), fh)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


class RedisAccuracyStore:
    """Counters in a Redis hash, safe across processes."""

    TOTAL_FIELD = "total_signals"
    CORRECT_FIELD = "correct_signals"

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        *,
        url: Optional[str] = None,
        key: str = "quotex_signals:accuracy",
    ):
        if client is None:
            client = redis.from_url(url or get_settings().redis_url, decode_responses=True)
        self._client = client
        self.key = key

    def load(self) -> AccuracyStats:
        data = self._client.hgetall(self.key) or {}
        return AccuracyStats(
            total_signals=int(data.get(self.TOTAL_FIELD, 0)),
            correct_signals=int(data.get(self.CORRECT_FIELD, 0)),
        )

    def increment(self, correct: bool) -> AccuracyStats:
        pipe = self._client.pipeline(transaction=True)
        pipe.hincrby(self.key, self.TOTAL_FIELD, 1)
        pipe.hincrby(self.key, self.CORRECT_FIELD, 1 if correct else 0)
        total, correct_count = pipe.execute()
        return AccuracyStats(total_signals=int(total), correct_signals=int(correct_count))

    def replace(self, stats: AccuracyStats) -> None:
        self._client.hset(
            self.key,
            mapping={
                self.TOTAL_FIELD: stats.total_signals,
                self.CORRECT_FIELD: stats.correct_signals,
            },
        )


def build_accuracy_store(settings: Optional[Settings] = None) -> AccuracyStore:
    """Store selected by `accuracy_backend`."""
    settings = settings or get_settings()
    if settings.accuracy_backend == "file":
        return JsonFileAccuracyStore(settings.accuracy_file_path)
    if settings.accuracy_backend == "redis":
        return RedisAccuracyStore(url=settings.redis_url, key=settings.accuracy_redis_key)
    return InMemoryAccuracyStore()


# ──────────────────────────────────────────────
# Tracker
# ──────────────────────────────────────────────

class AccuracyTracker:
    """Signal outcome recorder.

    Usage:
        tracker = AccuracyTracker()
        tracker.record("buy", "win")    # → 1.0
        tracker.record("sell", "loss")  # → 0.5
    """

    def __init__(
        self,
        store: Optional[AccuracyStore] = None,
        on_update: Optional[Callable[[AccuracyStats], None]] = None,
    ):
        self._store = store or InMemoryAccuracyStore()
        self._on_update = on_update
        # on_update sees snapshots in increment order
        self._record_lock = threading.Lock()

    @property
    def stats(self) -> AccuracyStats:
        return self._store.load()

    @property
    def accuracy(self) -> Optional[float]:
        return self.stats.accuracy

    def record(
        self,
        signal_type: Union[SignalType, str],
        outcome: Union[Outcome, str],
    ) -> float:
        """Count one outcome and return the accuracy ratio after it (0.0 – 1.0).

        Raises ValueError for labels outside buy/sell/neutral and win/loss.
        """
        signal_type = SignalType(signal_type)
        outcome = Outcome(outcome)

        correct = signal_type in _DIRECTIONAL and outcome == Outcome.WIN
        with self._record_lock:
            stats = self._store.increment(correct)
            if self._on_update is not None:
                self._on_update(stats)
        ratio = stats.accuracy or 0.0

        log.info(
            "accuracy.recorded",
            signal_type=signal_type.value,
            outcome=outcome.value,
            total=stats.total_signals,
            correct=stats.correct_signals,
            accuracy=round(ratio, 4),
        )
        return ratio

    def restore(self, stats: AccuracyStats) -> None:
        """Seed the counters from previously persisted stats."""
        with self._record_lock:
            self._store.replace(stats)
        log.info(
            "accuracy.restored",
            total=stats.total_signals,
            correct=stats.correct_signals,
        )
