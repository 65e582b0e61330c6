"""
Circuit Breaker for the Luna engine's external collaborators.

Guards the command interpreter (typically an LLM-backed service) so a
failing backend is short-circuited instead of being awaited on every
interpret_command call.

States:
- CLOSED: Normal operation, calls pass through.
- OPEN: Backend is unhealthy, calls are rejected immediately.
- HALF_OPEN: Recovery timeout elapsed, a limited number of trial calls allowed.

Usage:
    breaker = CircuitBreaker(name="command_interpreter")
    async with breaker:
        suggestions = await interpreter.interpret(text, context)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from src.lib.exceptions import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(StrEnum):
    """Possible states for a circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker, serialized with an asyncio.Lock.

    Args:
        name: Identifier for the protected collaborator (used in logging).
        failure_threshold: Consecutive failures before opening.
        recovery_timeout: Seconds to stay OPEN before allowing a trial call.
        half_open_max_calls: Trial calls allowed in HALF_OPEN.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        recovery_timeout: float = 60.0,
        half_open_max_calls: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._half_open_calls = 0
        self._opened_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def retry_after_seconds(self) -> float:
        """Seconds until an OPEN circuit allows a trial call (0 otherwise)."""
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self.recovery_timeout - (self._clock() - self._opened_at))

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        logger.info(
            "Circuit breaker '%s' state transition: %s -> %s",
            self.name,
            old_state.value,
            new_state.value,
        )

    async def allow_request(self) -> bool:
        """
        Check whether a call may go through.

        Returns:
            True if the call is allowed, False if it should be rejected.
        """
        async with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if self.retry_after_seconds() > 0:
                    return False
                self._transition_to(CircuitState.HALF_OPEN)
                self._half_open_calls = 0

            if self._half_open_calls < self.half_open_max_calls:
                self._half_open_calls += 1
                return True
            return False

    async def record_success(self) -> None:
        """Reset the failure count; a successful trial call closes the circuit."""
        async with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED)
                self._half_open_calls = 0
                self._opened_at = None

    async def record_failure(self) -> None:
        """Count a failure; opens the circuit at the threshold or on a failed trial."""
        async with self._lock:
            self._failure_count += 1
            if self._state == CircuitState.HALF_OPEN:
                logger.warning(
                    "Circuit breaker '%s' trial call failed. Reopening circuit.", self.name
                )
                self._open()
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                logger.warning(
                    "Circuit breaker '%s' failure threshold reached (%d/%d). Opening circuit.",
                    self.name,
                    self._failure_count,
                    self.failure_threshold,
                )
                self._open()

    def _open(self) -> None:
        self._transition_to(CircuitState.OPEN)
        self._opened_at = self._clock()
        self._half_open_calls = 0

    async def reset(self) -> None:
        """Force the circuit back to CLOSED."""
        async with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._failure_count = 0
            self._half_open_calls = 0
            self._opened_at = None

    async def __aenter__(self) -> CircuitBreaker:
        """Raises CircuitOpenError if the call is not allowed."""
        if not await self.allow_request():
            raise CircuitOpenError(self.name, self.retry_after_seconds())
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if exc_type is None:
            await self.record_success()
        elif not issubclass(exc_type, asyncio.CancelledError):
            await self.record_failure()
