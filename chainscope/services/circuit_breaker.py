"""
CircuitBreaker - Stops attempting an operation after repeated recent failures.

States:
- CLOSED: Normal operation, attempts pass through
- OPEN: failure_count >= failure_threshold and the last failure is
  within trip_window; attempts are rejected immediately

Transitions:
- CLOSED → OPEN: When failure_threshold is reached
- OPEN → CLOSED: On any success, or once trip_window elapses with no new failure

Breakers are keyed by operation name. Fan-out sub-calls use
"{operation}:{chain}" so one flaky chain never blocks its siblings.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable

from loguru import logger


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Blocking attempts


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5  # Failures before opening
    trip_window: timedelta = timedelta(seconds=60)  # How long a trip lasts


class CircuitBreaker:
    """
    Circuit breaker for a single operation name.

    Usage:
        cb = CircuitBreaker("search_by_owner:ethereum")

        if cb.is_open():
            raise CircuitOpenError(...)

        try:
            result = await make_request()
            cb.record_success()
            return result
        except Exception:
            cb.record_failure()
            raise

    All mutation happens under a lock so parallel fan-out calls sharing an
    operation name never lose increments.
    """

    def __init__(
        self,
        operation: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.operation = operation
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._failure_count = 0
        self._last_failure_at: float | None = None
        self._last_failure_time: datetime | None = None
        self._lock = threading.Lock()

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def state(self) -> CircuitState:
        """Current state, derived from the counter and the trip window."""
        return CircuitState.OPEN if self.is_open() else CircuitState.CLOSED

    def is_open(self) -> bool:
        """Check if attempts for this operation should be short-circuited."""
        with self._lock:
            return self._is_open_locked()

    def _is_open_locked(self) -> bool:
        if self._failure_count < self.config.failure_threshold:
            return False
        if self._last_failure_at is None:
            return False
        elapsed = self._clock() - self._last_failure_at
        return elapsed < self.config.trip_window.total_seconds()

    def record_success(self) -> None:
        """Record a successful attempt; resets the failure counter."""
        with self._lock:
            was_open = self._is_open_locked()
            self._failure_count = 0
        if was_open:
            logger.info(f"Circuit breaker '{self.operation}' CLOSED (recovered)")

    def record_failure(self) -> None:
        """Record a failed attempt."""
        with self._lock:
            was_open = self._is_open_locked()
            self._failure_count += 1
            self._last_failure_at = self._clock()
            self._last_failure_time = datetime.now()
            now_open = self._is_open_locked()
            count = self._failure_count

        if now_open and not was_open:
            logger.warning(
                f"Circuit breaker '{self.operation}' OPENED after {count} failures"
            )

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        with self._lock:
            self._failure_count = 0
            self._last_failure_at = None
            self._last_failure_time = None
        logger.info(f"Circuit breaker '{self.operation}' manually reset")

    def get_time_until_reset(self) -> float | None:
        """Get seconds until the trip window elapses."""
        with self._lock:
            if not self._is_open_locked() or self._last_failure_at is None:
                return None
            remaining = self.config.trip_window.total_seconds() - (
                self._clock() - self._last_failure_at
            )
        return max(0.0, remaining)

    def get_status(self) -> dict[str, Any]:
        """Get current status as dictionary."""
        return {
            "operation": self.operation,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "last_failure": (
                self._last_failure_time.isoformat() if self._last_failure_time else None
            ),
            "time_until_reset": self.get_time_until_reset(),
        }


class CircuitBreakerRegistry:
    """
    Process-wide table of circuit breakers keyed by operation name.

    Usage:
        registry = CircuitBreakerRegistry()
        registry.record_failure("verify_asset:sui")
        if registry.is_open("verify_asset:sui"):
            ...
    """

    def __init__(
        self,
        default_config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._breakers: dict[str, CircuitBreaker] = {}
        self._default_config = default_config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()

    def get(self, operation: str) -> CircuitBreaker:
        """Get or create the circuit breaker for an operation."""
        with self._lock:
            breaker = self._breakers.get(operation)
            if breaker is None:
                breaker = CircuitBreaker(operation, self._default_config, self._clock)
                self._breakers[operation] = breaker
            return breaker

    def record_failure(self, operation: str) -> None:
        self.get(operation).record_failure()

    def record_success(self, operation: str) -> None:
        self.get(operation).record_success()

    def is_open(self, operation: str) -> bool:
        with self._lock:
            breaker = self._breakers.get(operation)
        return breaker.is_open() if breaker else False

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        """Get status of all circuit breakers."""
        with self._lock:
            breakers = dict(self._breakers)
        return {operation: cb.get_status() for operation, cb in breakers.items()}

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        with self._lock:
            breakers = list(self._breakers.values())
        for cb in breakers:
            cb.reset()
        logger.info(f"Reset {len(breakers)} circuit breakers")

    def reset(self, operation: str) -> bool:
        """Reset a specific circuit breaker."""
        with self._lock:
            breaker = self._breakers.get(operation)
        if breaker is None:
            return False
        breaker.reset()
        return True

    def get_open_circuits(self) -> list[str]:
        """Get list of operations with open circuits."""
        with self._lock:
            breakers = dict(self._breakers)
        return sorted(op for op, cb in breakers.items() if cb.is_open())
