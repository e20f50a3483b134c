"""Per-dependency circuit breaker with half-open probing."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from engagement_jobs.domain.circuits import (
    CircuitBreakerConfig,
    CircuitBreakerStatus,
    CircuitState,
)
from engagement_jobs.domain.errors import CircuitOpenError

T = TypeVar("T")

Fallback = Callable[[], Any]
CircuitOpenListener = Callable[[CircuitBreakerStatus], Awaitable[None]]

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True)
class _Circuit:
    config: CircuitBreakerConfig
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_at: datetime | None = None
    next_attempt_at: datetime | None = None
    probe_in_flight: bool = False


class CircuitBreaker:
    """Process-local registry of circuits keyed by service id.

    Closed circuits pass calls through and count consecutive failures. Reaching
    the threshold opens the circuit until `timeout_seconds` elapse; the next
    call then runs as a single half-open probe that either closes the circuit
    or reopens it with a fresh cooldown.
    """

    def __init__(
        self,
        *,
        default_config: CircuitBreakerConfig | None = None,
        clock: Callable[[], datetime] = _utc_now,
        on_open: CircuitOpenListener | None = None,
    ) -> None:
        self._default_config = default_config or CircuitBreakerConfig()
        self._clock = clock
        self._on_open = on_open
        self._circuits: dict[str, _Circuit] = {}
        self._configs: dict[str, CircuitBreakerConfig] = {}
        self._fallbacks: dict[str, Fallback] = {}

    def set_open_listener(self, listener: CircuitOpenListener | None) -> None:
        """Install the callback fired when a circuit opens."""

        self._on_open = listener

    def configure(self, service_id: str, config: CircuitBreakerConfig) -> None:
        """Set threshold and cooldown for one service."""

        self._configs[service_id] = config
        circuit = self._circuits.get(service_id)
        if circuit is not None:
            circuit.config = config

    def register_fallback(self, service_id: str, fallback: Fallback) -> None:
        """Use `fallback()` instead of raising while the circuit is open."""

        self._fallbacks[service_id] = fallback

    async def execute(
        self,
        service_id: str,
        operation: Callable[[], Awaitable[T]],
        config: CircuitBreakerConfig | None = None,
    ) -> T:
        """Run `operation` through the circuit for `service_id`.

        Raises `CircuitOpenError` when short-circuited and no fallback exists;
        otherwise re-raises the operation's own error after recording it.
        """

        circuit = self._circuit(service_id, config)
        try:
            self._before_call(service_id, circuit)
        except CircuitOpenError:
            fallback = self._fallbacks.get(service_id)
            if fallback is None:
                raise
            logger.info("Circuit for '%s' is open; using registered fallback.", service_id)
            result = fallback()
            if inspect.isawaitable(result):
                result = await result
            return result  # type: ignore[no-any-return]

        try:
            result = await operation()
        except asyncio.CancelledError:
            circuit.probe_in_flight = False
            raise
        except Exception:
            await self._record_failure(service_id, circuit)
            raise

        self._record_success(service_id, circuit)
        return result

    def get_status(self, service_id: str) -> CircuitBreakerStatus:
        """Return a snapshot; unknown services report a closed circuit."""

        circuit = self._circuits.get(service_id)
        if circuit is None:
            circuit = _Circuit(config=self._config_for(service_id))
        return self._snapshot(service_id, circuit)

    def get_all_statuses(self) -> list[CircuitBreakerStatus]:
        """Return snapshots for every circuit created so far."""

        return [
            self._snapshot(service_id, circuit)
            for service_id, circuit in sorted(self._circuits.items())
        ]

    def reset(self, service_id: str) -> None:
        """Force a circuit back to closed with no recorded failures."""

        circuit = self._circuits.get(service_id)
        if circuit is None:
            return
        self._close(circuit)
        logger.info("Circuit for '%s' reset.", service_id)

    def _before_call(self, service_id: str, circuit: _Circuit) -> None:
        if circuit.state is CircuitState.CLOSED:
            return

        now = self._clock()
        if circuit.state is CircuitState.OPEN:
            if circuit.next_attempt_at is not None and now < circuit.next_attempt_at:
                raise CircuitOpenError(service_id, self._seconds_until_retry(circuit, now))
            circuit.state = CircuitState.HALF_OPEN
            circuit.probe_in_flight = True
            logger.info("Circuit for '%s' half-open; allowing one probe call.", service_id)
            return

        if circuit.probe_in_flight:
            raise CircuitOpenError(service_id, 0.0)
        circuit.probe_in_flight = True

    def _record_success(self, service_id: str, circuit: _Circuit) -> None:
        if circuit.state is not CircuitState.CLOSED:
            logger.info("Circuit for '%s' closed after successful probe.", service_id)
        self._close(circuit)

    async def _record_failure(self, service_id: str, circuit: _Circuit) -> None:
        now = self._clock()
        was_open = circuit.state is CircuitState.OPEN
        circuit.failure_count += 1
        circuit.last_failure_at = now
        circuit.probe_in_flight = False

        should_open = (
            circuit.state is CircuitState.HALF_OPEN
            or circuit.failure_count >= circuit.config.failure_threshold
        )
        if not should_open:
            return

        circuit.state = CircuitState.OPEN
        circuit.next_attempt_at = now + timedelta(seconds=circuit.config.timeout_seconds)
        logger.warning(
            "Circuit for '%s' opened after %s failures; next attempt at %s.",
            service_id,
            circuit.failure_count,
            circuit.next_attempt_at.isoformat(),
        )
        if not was_open and self._on_open is not None:
            try:
                await self._on_open(self._snapshot(service_id, circuit))
            except Exception:
                logger.exception("Circuit-open listener failed for '%s'.", service_id)

    def _close(self, circuit: _Circuit) -> None:
        circuit.state = CircuitState.CLOSED
        circuit.failure_count = 0
        circuit.next_attempt_at = None
        circuit.probe_in_flight = False

    def _circuit(self, service_id: str, config: CircuitBreakerConfig | None) -> _Circuit:
        if config is not None:
            self._configs[service_id] = config
        circuit = self._circuits.get(service_id)
        if circuit is None:
            circuit = _Circuit(config=self._config_for(service_id))
            self._circuits[service_id] = circuit
        elif config is not None:
            circuit.config = config
        return circuit

    def _config_for(self, service_id: str) -> CircuitBreakerConfig:
        return self._configs.get(service_id, self._default_config)

    def _snapshot(self, service_id: str, circuit: _Circuit) -> CircuitBreakerStatus:
        return CircuitBreakerStatus(
            service_id=service_id,
            state=circuit.state,
            failure_count=circuit.failure_count,
            failure_threshold=circuit.config.failure_threshold,
            last_failure_at=circuit.last_failure_at,
            next_attempt_at=circuit.next_attempt_at,
            seconds_until_retry=self._seconds_until_retry(circuit, self._clock()),
            has_fallback=service_id in self._fallbacks,
        )

    def _seconds_until_retry(self, circuit: _Circuit, now: datetime) -> float:
        if circuit.state is not CircuitState.OPEN or circuit.next_attempt_at is None:
            return 0.0
        return max((circuit.next_attempt_at - now).total_seconds(), 0.0)


__all__ = ["CircuitBreaker", "CircuitOpenListener", "Fallback"]
