"""
Circuit breaker guarding calls to the external AI provider.

One instance is shared by the sentiment classifier and the insight author
so a failing provider is shielded from both. The instance is passed in
explicitly; tests build their own.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(slots=True)
class CircuitBreakerState:
    name: str
    state: BreakerState
    failure_count: int
    last_failure_at: datetime | None
    last_failure_reason: str | None
    failure_threshold: int
    cooldown_seconds: float

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_at": self.last_failure_at.isoformat() if self.last_failure_at else None,
            "last_failure_reason": self.last_failure_reason,
            "failure_threshold": self.failure_threshold,
            "cooldown_seconds": self.cooldown_seconds,
        }


@dataclass(slots=True)
class Admission:
    """
    Ticket for one admitted call.

    generation identifies the breaker state the call was admitted under;
    outcomes reported against an older generation are ignored once the
    breaker has moved on.
    """

    generation: int
    is_probe: bool = False
    settled: bool = False


class CircuitBreaker:
    """
    closed -> open after failure_threshold consecutive failures.
    open -> half_open once cooldown_seconds have elapsed; exactly one probe
    call is let through. The probe's outcome alone closes or reopens it.

    Callers hold the Admission returned by allow_request, report the outcome
    against it and release it when done, so an abandoned probe reopens the
    breaker instead of wedging it half-open.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        name: str = "ai_provider",
        clock: Callable[[], float] = time.monotonic,
        probe_timeout_seconds: float = 300.0,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self.probe_timeout_seconds = probe_timeout_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        self._state = BreakerState.CLOSED
        self._generation = 0
        self._failure_count = 0
        self._opened_at: float | None = None
        self._probe_started_at: float | None = None
        self._last_failure_at: datetime | None = None
        self._last_failure_reason: str | None = None

    @property
    def state(self) -> BreakerState:
        return self._state

    async def allow_request(self) -> Admission | None:
        """Admit a call, or return None to short-circuit it. May move open -> half_open."""
        async with self._lock:
            if self._state == BreakerState.CLOSED:
                return Admission(generation=self._generation)

            if self._state == BreakerState.OPEN:
                elapsed = self._clock() - (self._opened_at or 0.0)
                if elapsed < self.cooldown_seconds:
                    return None
                self._transition(BreakerState.HALF_OPEN)
                logger.info("Circuit breaker half-open, allowing probe", breaker=self.name)
                return self._start_probe()

            # HALF_OPEN: one probe at a time; a probe that never reports is replaced
            probe_age = self._clock() - (self._probe_started_at or 0.0)
            if probe_age < self.probe_timeout_seconds:
                return None
            logger.warning(
                "Circuit breaker probe went silent, admitting a new probe",
                breaker=self.name,
                probe_age_seconds=round(probe_age, 1),
            )
            self._generation += 1
            return self._start_probe()

    async def record_success(self, admission: Admission) -> None:
        async with self._lock:
            if not self._accepts(admission):
                return
            admission.settled = True
            if self._state == BreakerState.HALF_OPEN:
                logger.info("Circuit breaker closed after successful probe", breaker=self.name)
                self._transition(BreakerState.CLOSED)
            self._failure_count = 0

    async def record_failure(self, admission: Admission, reason: str | None = None) -> None:
        async with self._lock:
            if not self._accepts(admission):
                return
            admission.settled = True
            self._failure_count += 1
            self._last_failure_at = datetime.now(UTC)
            self._last_failure_reason = reason

            if self._state == BreakerState.HALF_OPEN:
                self._transition(BreakerState.OPEN)
                logger.warning("Circuit breaker probe failed, reopening", breaker=self.name, reason=reason)
            elif self._failure_count >= self.failure_threshold:
                self._transition(BreakerState.OPEN)
                logger.error(
                    "Circuit breaker opened",
                    breaker=self.name,
                    failure_count=self._failure_count,
                    cooldown_seconds=self.cooldown_seconds,
                    reason=reason,
                )

    async def release(self, admission: Admission) -> None:
        """
        Close out an admission. A probe released without an outcome
        (cancelled, or an error the caller did not classify) reopens the
        breaker so the next cooldown admits a fresh probe.
        """
        if admission.settled or not admission.is_probe:
            return
        async with self._lock:
            if not self._accepts(admission):
                return
            admission.settled = True
            self._last_failure_at = datetime.now(UTC)
            self._last_failure_reason = "probe abandoned"
            self._transition(BreakerState.OPEN)
            logger.warning("Circuit breaker probe abandoned, reopening", breaker=self.name)

    def _accepts(self, admission: Admission) -> bool:
        if admission.settled or admission.generation != self._generation:
            return False
        if self._state == BreakerState.HALF_OPEN:
            return admission.is_probe
        return self._state == BreakerState.CLOSED

    def _start_probe(self) -> Admission:
        self._probe_started_at = self._clock()
        return Admission(generation=self._generation, is_probe=True)

    def _transition(self, state: BreakerState) -> None:
        self._state = state
        self._generation += 1
        self._probe_started_at = None
        if state == BreakerState.OPEN:
            self._opened_at = self._clock()
        elif state == BreakerState.CLOSED:
            self._opened_at = None

    def snapshot(self) -> CircuitBreakerState:
        return CircuitBreakerState(
            name=self.name,
            state=self._state,
            failure_count=self._failure_count,
            last_failure_at=self._last_failure_at,
            last_failure_reason=self._last_failure_reason,
            failure_threshold=self.failure_threshold,
            cooldown_seconds=self.cooldown_seconds,
        )


# Process-wide default, wired into the default classifier and insight engine
ai_circuit_breaker = CircuitBreaker(
    failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
    cooldown_seconds=settings.CIRCUIT_COOLDOWN_SECONDS,
    probe_timeout_seconds=settings.CIRCUIT_PROBE_TIMEOUT_SECONDS,
)
