"""
Quotex Signals — Predictor Circuit Breaker

Keeps a failing external predictor from stalling every evaluation for the full
timeout. Fusion consults the breaker before each call and reports the outcome
afterwards; while the circuit is open the local fallback is used straight away.

State machine:
    CLOSED    → calls pass; consecutive failures are counted
    OPEN      → calls are rejected; after the recovery timeout → HALF_OPEN
    HALF_OPEN → one probe call allowed; success → CLOSED, failure → OPEN

Usage::

    breaker = CircuitBreaker("gemini", failure_threshold=3, recovery_timeout=60)
    try:
        breaker.guard()
    except CircuitOpenError:
        return fallback()
    try:
        result = predictor(context)
    except Exception as exc:
        breaker.record_failure(str(exc))
        return fallback()
    breaker.record_success()
"""

from __future__ import annotations

import threading
import time
from enum import Enum, auto

import structlog

log = structlog.get_logger(__name__)


class CircuitState(Enum):
    CLOSED = auto()
    OPEN = auto()
    HALF_OPEN = auto()


class CircuitOpenError(Exception):
    """Raised when the circuit is open and the call is rejected."""

    def __init__(self, service: str, retry_after: float):
        self.service = service
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker OPEN for '{service}' — retry after {retry_after:.0f}s"
        )


class CircuitBreaker:
    """Per-predictor circuit breaker with thread-safe state."""

    def __init__(
        self,
        service_name: str,
        failure_threshold: int = 3,
        recovery_timeout: float = 60.0,
    ):
        """
        Args:
            service_name: Identifier for the external predictor.
            failure_threshold: Consecutive failures before opening the circuit.
            recovery_timeout: Seconds to wait before allowing a probe call.
        """
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float = 0.0
        self._probe_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._current_state()

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    def _current_state(self) -> CircuitState:
        # caller holds the lock
        if self._state == CircuitState.OPEN:
            elapsed = time.monotonic() - self._opened_at
            if elapsed >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._probe_in_flight = False
                log.info(
                    "circuit_breaker.half_open",
                    service=self.service_name,
                    elapsed=round(elapsed, 1),
                )
        return self._state

    def guard(self) -> None:
        """Raise CircuitOpenError unless a call may go through right now."""
        with self._lock:
            state = self._current_state()
            if state == CircuitState.CLOSED:
                return
            if state == CircuitState.HALF_OPEN and not self._probe_in_flight:
                self._probe_in_flight = True
                return
            retry_after = self.recovery_timeout - (time.monotonic() - self._opened_at)
            raise CircuitOpenError(self.service_name, max(0.0, retry_after))

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                log.info(
                    "circuit_breaker.closed",
                    service=self.service_name,
                    detail="probe succeeded, circuit recovered",
                )
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._probe_in_flight = False

    def record_failure(self, reason: str = "") -> None:
        with self._lock:
            self._failure_count += 1
            self._probe_in_flight = False

            if self._state == CircuitState.HALF_OPEN:
                self._trip()
                log.warning(
                    "circuit_breaker.reopened",
                    service=self.service_name,
                    error=reason,
                )
            elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._trip()
                log.warning(
                    "circuit_breaker.opened",
                    service=self.service_name,
                    failures=self._failure_count,
                    threshold=self.failure_threshold,
                    error=reason,
                )

    def release(self) -> None:
        """Call abandoned by the caller: free the probe slot, count nothing."""
        with self._lock:
            self._probe_in_flight = False

    def _trip(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = time.monotonic()

    def reset(self) -> None:
        """Manually reset the circuit to CLOSED."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._opened_at = 0.0
            self._probe_in_flight = False
            log.info("circuit_breaker.reset", service=self.service_name)
