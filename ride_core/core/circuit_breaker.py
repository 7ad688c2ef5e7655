from typing import Any, Dict, Tuple

import pybreaker
from loguru import logger

from ride_core.config.settings import Settings
from ride_core.monitoring.metrics import MetricsCollector

# kind -> (breaker name, settings prefix, exceptions that do not count as outages)
BREAKERS: Dict[str, Tuple[str, str, Tuple[type, ...]]] = {
    # a malformed GPS sample is a data problem, the provider is still up
    "gps": ("gps_track", "cb_gps", (KeyError, ValueError)),
    "notify": ("notifications", "cb_notify", ()),
}


class LoggingCircuitBreakerListener(pybreaker.CircuitBreakerListener):
    def state_change(self, cb, old_state, new_state) -> None:
        old_name = getattr(old_state, "name", old_state)
        new_name = getattr(new_state, "name", new_state)
        logger.warning(
            f"Breaker '{cb.name}' {old_name} -> {new_name} "
            f"after {cb.fail_counter}/{cb.fail_max} failures"
        )
        MetricsCollector.record_circuit_breaker_state(cb.name, str(new_name))

    def failure(self, cb, exc) -> None:
        logger.debug(f"Breaker '{cb.name}' counted failure: {exc!r}")
        MetricsCollector.record_circuit_breaker_failure(cb.name)


class CircuitBreakerConfig:
    """Lazily builds one breaker per external dependency from settings."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._listener = LoggingCircuitBreakerListener()
        self._breakers: Dict[str, pybreaker.CircuitBreaker] = {}

    def get(self, kind: str) -> pybreaker.CircuitBreaker:
        breaker = self._breakers.get(kind)
        if breaker is None:
            name, prefix, exclude = BREAKERS[kind]
            breaker = pybreaker.CircuitBreaker(
                name=name,
                fail_max=getattr(self.settings, f"{prefix}_fail_max"),
                reset_timeout=getattr(self.settings, f"{prefix}_reset_timeout"),
                exclude=exclude,
                listeners=[self._listener],
            )
            self._breakers[kind] = breaker
        return breaker

    def get_gps_breaker(self) -> pybreaker.CircuitBreaker:
        return self.get("gps")

    def get_notify_breaker(self) -> pybreaker.CircuitBreaker:
        return self.get("notify")

    def get_breaker_stats(self) -> Dict[str, Dict[str, Any]]:
        return {
            kind: {
                "name": breaker.name,
                "state": breaker.current_state,
                "fail_counter": breaker.fail_counter,
                "fail_max": breaker.fail_max,
                "reset_timeout": breaker.reset_timeout,
            }
            for kind, breaker in self._breakers.items()
        }
