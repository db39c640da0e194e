"""Per-provider circuit breaker with a count-based sliding window.

The breaker starts CLOSED and records the outcome of every call it admits.
Once enough outcomes are buffered and the failure rate reaches the configured
threshold it moves to OPEN and rejects calls without touching the upstream.
After the cooldown the next caller moves it to HALF_OPEN, where a limited
number of probe calls decide between CLOSED and a fresh OPEN period.

Calls run on a worker thread so the call timeout can be enforced here rather
than by the caller. A timed out call is recorded as a failure straight away;
whatever it eventually returns is discarded.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Callable, TypeVar

from ..domain.errors import ErrorKind, WeatherProviderError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    sliding_window_size: int = 10
    failure_rate_threshold_percent: float = 50.0
    minimum_number_of_calls: int | None = None
    wait_duration_in_open_state_seconds: float = 10.0
    permitted_calls_in_half_open_state: int = 5
    call_timeout_seconds: float | None = 2.0

    def __post_init__(self) -> None:
        if self.sliding_window_size < 1:
            raise ValueError("sliding_window_size must be >= 1")
        if not 0 < self.failure_rate_threshold_percent <= 100:
            raise ValueError("failure_rate_threshold_percent must be in (0, 100]")
        if self.minimum_number_of_calls is not None and self.minimum_number_of_calls < 1:
            raise ValueError("minimum_number_of_calls must be >= 1")
        if self.wait_duration_in_open_state_seconds < 0:
            raise ValueError("wait_duration_in_open_state_seconds must be >= 0")
        if self.permitted_calls_in_half_open_state < 1:
            raise ValueError("permitted_calls_in_half_open_state must be >= 1")
        if self.call_timeout_seconds is not None and self.call_timeout_seconds <= 0:
            raise ValueError("call_timeout_seconds must be > 0")

    @property
    def effective_minimum_calls(self) -> int:
        if self.minimum_number_of_calls is None:
            return self.sliding_window_size
        return min(self.minimum_number_of_calls, self.sliding_window_size)


@dataclass(frozen=True, slots=True)
class CircuitBreakerSnapshot:
    name: str
    state: CircuitState
    buffered_calls: int
    failed_calls: int
    failure_rate_percent: float | None


@dataclass(frozen=True, slots=True)
class _Permit:
    generation: int
    state: CircuitState


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._executor = executor
        self._owns_executor = executor is None
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._generation = 0
        self._outcomes: deque[bool] = deque(maxlen=self.config.sliding_window_size)
        self._opened_at: float | None = None
        self._half_open_admitted = 0
        self._half_open_succeeded = 0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._refresh_open_state()
            return self._state

    def snapshot(self) -> CircuitBreakerSnapshot:
        with self._lock:
            self._refresh_open_state()
            buffered = len(self._outcomes)
            failed = sum(self._outcomes)
            rate = (failed / buffered * 100.0) if buffered else None
            return CircuitBreakerSnapshot(
                name=self.name,
                state=self._state,
                buffered_calls=buffered,
                failed_calls=failed,
                failure_rate_percent=rate,
            )

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        permit = self._acquire_permission()
        try:
            result = self._run_with_timeout(func, *args, **kwargs)
        except Exception:
            self._record(permit, failed=True)
            raise
        except BaseException:
            self._release(permit)
            raise
        self._record(permit, failed=False)
        return result

    def close(self) -> None:
        """Release the timeout worker threads; a call already running is left to finish."""
        with self._lock:
            executor, self._executor = self._executor, None
            owned = self._owns_executor
        if executor is not None and owned:
            executor.shutdown(wait=False, cancel_futures=True)

    def _run_with_timeout(self, func: Callable[..., T], *args, **kwargs) -> T:
        timeout = self.config.call_timeout_seconds
        if timeout is None:
            return func(*args, **kwargs)

        future = self._get_executor().submit(func, *args, **kwargs)
        done, _ = wait([future], timeout=timeout)
        if not done:
            future.cancel()
            LOGGER.warning("Call through circuit '%s' timed out after %.2fs", self.name, timeout)
            raise WeatherProviderError(
                ErrorKind.UNKNOWN_PROVIDER_FAULT,
                f"{self.name} did not respond within {timeout:g}s",
                provider=self.name,
            )
        return future.result()

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(thread_name_prefix=f"circuit-{self.name}")
                self._owns_executor = True
            return self._executor

    def _acquire_permission(self) -> _Permit:
        with self._lock:
            self._refresh_open_state()
            if self._state is CircuitState.OPEN:
                raise self._rejection()
            if self._state is CircuitState.HALF_OPEN:
                if self._half_open_admitted >= self.config.permitted_calls_in_half_open_state:
                    raise self._rejection()
                self._half_open_admitted += 1
            return _Permit(generation=self._generation, state=self._state)

    def _release(self, permit: _Permit) -> None:
        with self._lock:
            if permit.generation == self._generation and permit.state is CircuitState.HALF_OPEN:
                self._half_open_admitted -= 1

    def _record(self, permit: _Permit, *, failed: bool) -> None:
        with self._lock:
            # Outcomes from calls admitted before the last transition are stale.
            if permit.generation != self._generation:
                return

            if self._state is CircuitState.HALF_OPEN:
                if failed:
                    LOGGER.warning("Circuit '%s' probe failed; reopening", self.name)
                    self._transition(CircuitState.OPEN)
                    return
                self._half_open_succeeded += 1
                if self._half_open_succeeded >= self.config.permitted_calls_in_half_open_state:
                    self._transition(CircuitState.CLOSED)
                return

            self._outcomes.append(failed)
            if self._failure_threshold_reached():
                LOGGER.warning(
                    "Circuit '%s' failure rate %.1f%% reached threshold %.1f%%; opening",
                    self.name,
                    sum(self._outcomes) / len(self._outcomes) * 100.0,
                    self.config.failure_rate_threshold_percent,
                )
                self._transition(CircuitState.OPEN)

    def _failure_threshold_reached(self) -> bool:
        buffered = len(self._outcomes)
        if buffered < self.config.effective_minimum_calls:
            return False
        rate = sum(self._outcomes) / buffered * 100.0
        return rate >= self.config.failure_rate_threshold_percent

    def _refresh_open_state(self) -> None:
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return
        elapsed = self._clock() - self._opened_at
        if elapsed >= self.config.wait_duration_in_open_state_seconds:
            self._transition(CircuitState.HALF_OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._generation += 1
        self._half_open_admitted = 0
        self._half_open_succeeded = 0
        if new_state is CircuitState.OPEN:
            self._opened_at = self._clock()
        else:
            self._opened_at = None
        if new_state is CircuitState.CLOSED:
            self._outcomes.clear()
        if old_state is not new_state:
            LOGGER.info("Circuit '%s' transitioned %s -> %s", self.name, old_state.value, new_state.value)

    def _rejection(self) -> WeatherProviderError:
        return WeatherProviderError(
            ErrorKind.PROVIDER_UNAVAILABLE,
            f"{self.name} service is currently unavailable",
            provider=self.name,
        )
