"""
Quotex Signals — Accuracy Engine Tests

Tests for:
- Win / loss bookkeeping
- Label validation
- Atomicity under concurrent recording
- JSON file and Redis stores
- Store selection from settings
"""

import json
import threading
import time
from unittest.mock import MagicMock

import pytest


# ════════════════════════════════════════════════
#  TRACKER
# ════════════════════════════════════════════════


class TestAccuracyTracker:

    def test_buy_win_then_sell_loss(self):
        from quotex_signals.engines.accuracy_engine import AccuracyTracker
        tracker = AccuracyTracker()
        assert tracker.record("buy", "win") == 1.0
        assert tracker.record("sell", "loss") == 0.5
        assert tracker.stats.total_signals == 2
        assert tracker.stats.correct_signals == 1

    def test_neutral_win_is_not_correct(self):
        from quotex_signals.engines.accuracy_engine import AccuracyTracker
        from quotex_signals.models import Outcome, SignalType
        tracker = AccuracyTracker()
        assert tracker.record(SignalType.NEUTRAL, Outcome.WIN) == 0.0
        assert tracker.stats.total_signals == 1

    def test_accuracy_none_before_first_record(self):
        from quotex_signals.engines.accuracy_engine import AccuracyTracker
        assert AccuracyTracker().accuracy is None

    @pytest.mark.parametrize("signal_type,outcome", [
        ("long", "win"),
        ("buy", "draw"),
        ("", ""),
    ])
    def test_invalid_labels_rejected(self, signal_type, outcome):
        from quotex_signals.engines.accuracy_engine import AccuracyTracker
        tracker = AccuracyTracker()
        with pytest.raises(ValueError):
            tracker.record(signal_type, outcome)
        assert tracker.stats.total_signals == 0

    def test_concurrent_records_are_not_lost(self):
        from quotex_signals.engines.accuracy_engine import AccuracyTracker
        tracker = AccuracyTracker()

        def worker():
            for i in range(250):
                tracker.record("buy", "win" if i % 2 == 0 else "loss")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert tracker.stats.total_signals == 2000
        assert tracker.stats.correct_signals == 1000
        assert tracker.accuracy == 0.5

    def test_on_update_receives_stats(self):
        from quotex_signals.engines.accuracy_engine import AccuracyTracker
        updates = []
        tracker = AccuracyTracker(on_update=updates.append)
        tracker.record("buy", "win")
        tracker.record("buy", "loss")
        assert [u.total_signals for u in updates] == [1, 2]
        assert updates[-1].correct_signals == 1

    def test_slow_on_update_keeps_snapshot_order(self):
        from quotex_signals.engines.accuracy_engine import AccuracyTracker
        persisted = []
        entered = threading.Event()

        def persist(stats):
            if not entered.is_set():
                entered.set()
                time.sleep(0.3)
            persisted.append(stats.total_signals)

        tracker = AccuracyTracker(on_update=persist)
        first = threading.Thread(target=tracker.record, args=("buy", "win"))
        first.start()
        assert entered.wait(1)
        tracker.record("sell", "loss")
        first.join()

        assert persisted == [1, 2]
        assert tracker.stats.total_signals == 2

    def test_restore(self):
        from quotex_signals.engines.accuracy_engine import AccuracyTracker
        from quotex_signals.models import AccuracyStats
        tracker = AccuracyTracker()
        tracker.restore(AccuracyStats(total_signals=10, correct_signals=7))
        assert tracker.record("sell", "win") == pytest.approx(8 / 11)


# ════════════════════════════════════════════════
#  STORES
# ════════════════════════════════════════════════


class TestJsonFileStore:

    def test_persists_after_every_update(self, tmp_path):
        from quotex_signals.engines.accuracy_engine import AccuracyTracker, JsonFileAccuracyStore
        path = tmp_path / "stats" / "accuracy.json"
        tracker = AccuracyTracker(JsonFileAccuracyStore(path))
        tracker.record("buy", "win")
        assert json.loads(path.read_text()) == {"total_signals": 1, "correct_signals": 1}
        tracker.record("sell", "loss")
        assert json.loads(path.read_text()) == {"total_signals": 2, "correct_signals": 1}

    def test_reloads_previous_counters(self, tmp_path):
        from quotex_signals.engines.accuracy_engine import AccuracyTracker, JsonFileAccuracyStore
        path = tmp_path / "accuracy.json"
        path.write_text(json.dumps({"total_signals": 4, "correct_signals": 3}))
        tracker = AccuracyTracker(JsonFileAccuracyStore(path))
        assert tracker.accuracy == 0.75
        assert tracker.record("buy", "loss") == pytest.approx(0.6)

    def test_failed_write_leaves_counters_unchanged(self, tmp_path, monkeypatch):
        from quotex_signals.engines.accuracy_engine import AccuracyTracker, JsonFileAccuracyStore
        path = tmp_path / "accuracy.json"
        store = JsonFileAccuracyStore(path)
        tracker = AccuracyTracker(store)
        tracker.record("buy", "win")

        def failing(stats):
            raise OSError("disk full")

        monkeypatch.setattr(store, "_write", failing)
        with pytest.raises(OSError):
            tracker.record("sell", "win")

        assert tracker.stats.total_signals == 1
        assert tracker.stats.correct_signals == 1
        assert json.loads(path.read_text()) == {"total_signals": 1, "correct_signals": 1}

    def test_corrupt_counters_rejected(self, tmp_path):
        from pydantic import ValidationError
        from quotex_signals.engines.accuracy_engine import JsonFileAccuracyStore
        path = tmp_path / "accuracy.json"
        path.write_text(json.dumps({"total_signals": 1, "correct_signals": 5}))
        with pytest.raises(ValidationError):
            JsonFileAccuracyStore(path)


class TestRedisStore:

    def test_increment_uses_transaction(self):
        from quotex_signals.engines.accuracy_engine import AccuracyTracker, RedisAccuracyStore
        client = MagicMock()
        pipe = client.pipeline.return_value
        pipe.execute.return_value = [3, 2]

        tracker = AccuracyTracker(RedisAccuracyStore(client, key="acc"))
        ratio = tracker.record("buy", "win")

        assert ratio == pytest.approx(2 / 3)
        client.pipeline.assert_called_once_with(transaction=True)
        pipe.hincrby.assert_any_call("acc", "total_signals", 1)
        pipe.hincrby.assert_any_call("acc", "correct_signals", 1)

    def test_loss_increments_only_total(self):
        from quotex_signals.engines.accuracy_engine import RedisAccuracyStore
        client = MagicMock()
        pipe = client.pipeline.return_value
        pipe.execute.return_value = [1, 0]

        RedisAccuracyStore(client, key="acc").increment(False)

        pipe.hincrby.assert_any_call("acc", "correct_signals", 0)

    def test_load_and_replace(self):
        from quotex_signals.engines.accuracy_engine import RedisAccuracyStore
        from quotex_signals.models import AccuracyStats
        client = MagicMock()
        client.hgetall.return_value = {"total_signals": "4", "correct_signals": "1"}
        store = RedisAccuracyStore(client, key="acc")

        assert store.load() == AccuracyStats(total_signals=4, correct_signals=1)

        store.replace(AccuracyStats(total_signals=9, correct_signals=2))
        client.hset.assert_called_once_with(
            "acc", mapping={"total_signals": 9, "correct_signals": 2},
        )

    def test_empty_hash_is_zero(self):
        from quotex_signals.engines.accuracy_engine import RedisAccuracyStore
        client = MagicMock()
        client.hgetall.return_value = {}
        assert RedisAccuracyStore(client).load().total_signals == 0


class TestBuildAccuracyStore:

    def test_default_is_memory(self):
        from quotex_signals.config import Settings
        from quotex_signals.engines.accuracy_engine import InMemoryAccuracyStore, build_accuracy_store
        store = build_accuracy_store(Settings(accuracy_backend="memory"))
        assert isinstance(store, InMemoryAccuracyStore)

    def test_file_backend(self, tmp_path):
        from quotex_signals.config import Settings
        from quotex_signals.engines.accuracy_engine import JsonFileAccuracyStore, build_accuracy_store
        settings = Settings(accuracy_backend="file", accuracy_file_path=str(tmp_path / "a.json"))
        store = build_accuracy_store(settings)
        assert isinstance(store, JsonFileAccuracyStore)

    def test_redis_backend_is_lazy(self):
        from quotex_signals.config import Settings
        from quotex_signals.engines.accuracy_engine import RedisAccuracyStore, build_accuracy_store
        settings = Settings(accuracy_backend="redis", accuracy_redis_key="custom:key")
        store = build_accuracy_store(settings)
        assert isinstance(store, RedisAccuracyStore)
        assert store.key == "custom:key"
