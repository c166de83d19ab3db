# -*- coding: utf-8 -*-
"""
Source Circuit Breakers - EcoTrace Carbon Calculation Pipeline

Explicit finite-state machine guarding each emission-factor source::

    CLOSED --(failure_threshold consecutive failures)--> OPEN
    OPEN   --(cooldown elapsed, one trial call)--------> HALF_OPEN
    HALF_OPEN --(trial succeeds)-----------------------> CLOSED
    HALF_OPEN --(trial fails, cooldown x multiplier)---> OPEN

The clock is injectable so cooldown expiry is testable without sleeping.
Breakers are owned by a ``CircuitBreakerRegistry`` that is passed to the
source hub explicitly; there is no module-level breaker state.

Example:
    >>> breaker = CircuitBreaker("live_grid", failure_threshold=2)
    >>> breaker.record_failure(); breaker.record_failure()
    >>> breaker.state
    <CircuitState.OPEN: 'open'>
    >>> breaker.allow_request()
    False

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from ecotrace.carbon_calculation.config import CarbonCalculationConfig, get_config
from ecotrace.carbon_calculation.metrics import record_breaker_state
from ecotrace.carbon_calculation.models import CircuitState, SourceHealth

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class CircuitBreaker:
    """Circuit breaker for one emission-factor source.

    Attributes:
        name: Source the breaker guards.
        state: Current CircuitState.
        failure_count: Consecutive failures while closed.
        trips: Number of times the breaker has opened.
        cooldown_seconds: Cooldown applied the next time the breaker is open.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        backoff_multiplier: float = 2.0,
        max_cooldown_seconds: float = 900.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = max(1, failure_threshold)
        self.base_cooldown_seconds = cooldown_seconds
        self.backoff_multiplier = backoff_multiplier
        self.max_cooldown_seconds = max_cooldown_seconds
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.trips = 0
        self.cooldown_seconds = cooldown_seconds
        self.opened_at: Optional[float] = None
        self._trial_in_flight = False

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def allow_request(self) -> bool:
        """Return whether a call may go through now.

        An open breaker whose cooldown has elapsed moves to HALF_OPEN and
        lets exactly one trial call through.
        """
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if self.retry_in_seconds() > 0:
                return False
            self._transition(CircuitState.HALF_OPEN)
            self._trial_in_flight = True
            logger.info("Circuit breaker %s half-open (trial call)", self.name)
            return True

        # HALF_OPEN: only the single trial call
        if self._trial_in_flight:
            return False
        self._trial_in_flight = True
        return True

    def record_success(self) -> None:
        """Record a successful call."""
        if self.state == CircuitState.HALF_OPEN:
            self.cooldown_seconds = self.base_cooldown_seconds
            self._transition(CircuitState.CLOSED)
            logger.info("Circuit breaker %s closed (recovered)", self.name)
        self.failure_count = 0
        self._trial_in_flight = False

    def record_failure(self) -> None:
        """Record a failed call (error or timeout)."""
        self._trial_in_flight = False

        if self.state == CircuitState.HALF_OPEN:
            self.cooldown_seconds = min(
                self.cooldown_seconds * self.backoff_multiplier,
                self.max_cooldown_seconds,
            )
            self._open()
            return

        if self.state == CircuitState.OPEN:
            return

        self.failure_count += 1
        if self.failure_count >= self.failure_threshold:
            self._open()

    def retry_in_seconds(self) -> float:
        """Seconds until an open breaker allows a trial call (0 otherwise)."""
        if self.state != CircuitState.OPEN or self.opened_at is None:
            return 0.0
        remaining = self.opened_at + self.cooldown_seconds - self._clock()
        return max(0.0, remaining)

    def reset(self) -> None:
        """Force the breaker closed and clear its counters."""
        self.failure_count = 0
        self.cooldown_seconds = self.base_cooldown_seconds
        self.opened_at = None
        self._trial_in_flight = False
        self._transition(CircuitState.CLOSED)

    def snapshot(self) -> SourceHealth:
        return SourceHealth(
            source=self.name,
            state=self.state,
            failure_count=self.failure_count,
            trips=self.trips,
            cooldown_seconds=self.cooldown_seconds,
            retry_in_seconds=(
                self.retry_in_seconds() if self.state == CircuitState.OPEN else None
            ),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _open(self) -> None:
        self.opened_at = self._clock()
        self.trips += 1
        self._transition(CircuitState.OPEN)
        logger.warning(
            "Circuit breaker %s opened after %d failures; cooldown %.0fs",
            self.name, self.failure_count, self.cooldown_seconds,
        )

    def _transition(self, state: CircuitState) -> None:
        self.state = state
        record_breaker_state(self.name, state)


class CircuitBreakerRegistry:
    """Owns one CircuitBreaker per source name.

    Example:
        >>> registry = CircuitBreakerRegistry()
        >>> registry.get("epa_egrid").allow_request()
        True
    """

    def __init__(
        self,
        config: Optional[CarbonCalculationConfig] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.config = config or get_config()
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        """Return the breaker for ``name``, creating it on first use."""
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(
                name,
                failure_threshold=self.config.breaker_failure_threshold,
                cooldown_seconds=self.config.breaker_cooldown_seconds,
                backoff_multiplier=self.config.breaker_backoff_multiplier,
                max_cooldown_seconds=self.config.breaker_max_cooldown_seconds,
                clock=self._clock,
            )
            self._breakers[name] = breaker
        return breaker

    def snapshot(self) -> Dict[str, SourceHealth]:
        """Health of every known source, keyed by name."""
        return {name: breaker.snapshot() for name, breaker in self._breakers.items()}

    def reset(self, name: Optional[str] = None) -> None:
        """Reset one breaker, or all when ``name`` is None."""
        if name is None:
            targets = list(self._breakers.values())
        else:
            targets = [self._breakers[name]] if name in self._breakers else []
        for breaker in targets:
            breaker.reset()

    def __len__(self) -> int:
        return len(self._breakers)


__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
]
