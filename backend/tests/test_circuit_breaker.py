"""
Quotex Signals — Circuit Breaker Tests

Tests for the CLOSED / OPEN / HALF_OPEN state machine guarding external
predictors.
"""

import time

import pytest


class TestCircuitBreakerStates:

    def test_starts_closed(self):
        from quotex_signals.utils.circuit_breaker import CircuitBreaker, CircuitState
        cb = CircuitBreaker("predictor_1", failure_threshold=3, recovery_timeout=1)
        assert cb.state == CircuitState.CLOSED
        cb.guard()

    def test_opens_after_threshold_failures(self):
        from quotex_signals.utils.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState
        cb = CircuitBreaker("predictor_2", failure_threshold=3, recovery_timeout=60)
        for _ in range(3):
            cb.guard()
            cb.record_failure("boom")
        assert cb.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError) as exc_info:
            cb.guard()
        assert exc_info.value.service == "predictor_2"
        assert 0 < exc_info.value.retry_after <= 60

    def test_success_resets_failure_count(self):
        from quotex_signals.utils.circuit_breaker import CircuitBreaker, CircuitState
        cb = CircuitBreaker("predictor_3", failure_threshold=3)
        cb.record_failure()
        cb.record_failure()
        cb.record_success()
        assert cb.failure_count == 0
        cb.record_failure()
        assert cb.state == CircuitState.CLOSED

    def test_half_open_allows_single_probe(self):
        from quotex_signals.utils.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState
        cb = CircuitBreaker("predictor_4", failure_threshold=1, recovery_timeout=0.05)
        cb.record_failure()
        time.sleep(0.1)
        assert cb.state == CircuitState.HALF_OPEN
        cb.guard()
        with pytest.raises(CircuitOpenError):
            cb.guard()

    def test_probe_success_closes(self):
        from quotex_signals.utils.circuit_breaker import CircuitBreaker, CircuitState
        cb = CircuitBreaker("predictor_5", failure_threshold=1, recovery_timeout=0.05)
        cb.record_failure()
        time.sleep(0.1)
        cb.guard()
        cb.record_success()
        assert cb.state == CircuitState.CLOSED

    def test_probe_failure_reopens(self):
        from quotex_signals.utils.circuit_breaker import CircuitBreaker, CircuitState
        cb = CircuitBreaker("predictor_6", failure_threshold=1, recovery_timeout=0.05)
        cb.record_failure()
        time.sleep(0.1)
        cb.guard()
        cb.record_failure("still down")
        assert cb.state == CircuitState.OPEN

    def test_release_frees_probe_slot(self):
        from quotex_signals.utils.circuit_breaker import CircuitBreaker, CircuitState
        cb = CircuitBreaker("predictor_7", failure_threshold=1, recovery_timeout=0.05)
        cb.record_failure()
        time.sleep(0.1)
        cb.guard()
        cb.release()
        cb.guard()
        assert cb.state == CircuitState.HALF_OPEN

    def test_manual_reset(self):
        from quotex_signals.utils.circuit_breaker import CircuitBreaker, CircuitState
        cb = CircuitBreaker("predictor_8", failure_threshold=1, recovery_timeout=60)
        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0
