"""Constitution counters, mirrored to Prometheus."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Dict, Optional

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, generate_latest

logger = logging.getLogger(__name__)


class StatEvent(str, Enum):
    """Counted pipeline events."""

    TOTAL_VALIDATED = "total_validated"
    INPUT_BLOCKED = "input_blocked"
    OUTPUT_BLOCKED = "output_blocked"
    INPUT_WARNINGS = "input_warnings"
    OUTPUT_WARNINGS = "output_warnings"
    CRISIS_DETECTED = "crisis_detected"
    RATE_LIMITED = "rate_limited"
    SYSTEM_PROMPTS_INJECTED = "system_prompts_injected"


_CAMEL_NAMES = {
    StatEvent.TOTAL_VALIDATED: "totalValidated",
    StatEvent.INPUT_BLOCKED: "inputBlocked",
    StatEvent.OUTPUT_BLOCKED: "outputBlocked",
    StatEvent.INPUT_WARNINGS: "inputWarnings",
    StatEvent.OUTPUT_WARNINGS: "outputWarnings",
    StatEvent.CRISIS_DETECTED: "crisisDetected",
    StatEvent.RATE_LIMITED: "rateLimited",
    StatEvent.SYSTEM_PROMPTS_INJECTED: "systemPromptsInjected",
}


class ConstitutionStats:
    """Monotonic in-process counters.

    Each instance owns its Prometheus registry so several gateways (or
    tests) in one process never share series.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self._lock = threading.Lock()
        self._counts: Dict[StatEvent, int] = {event: 0 for event in StatEvent}
        self.registry = registry or CollectorRegistry()
        self._events = Counter(
            "llmgate_constitution_events",
            "Constitution enforcement events by type",
            ["event"],
            registry=self.registry,
        )
        for event in StatEvent:
            self._events.labels(event=event.value)

    def increment(self, event: StatEvent, amount: int = 1) -> None:
        with self._lock:
            self._counts[event] += amount
        self._events.labels(event=event.value).inc(amount)

    def get(self, event: StatEvent) -> int:
        with self._lock:
            return self._counts[event]

    def snapshot(self) -> Dict[str, int]:
        """Read-only copy of every counter, keyed by snake_case name."""
        with self._lock:
            return {event.value: count for event, count in self._counts.items()}

    def to_dict(self) -> Dict[str, int]:
        """Counters keyed by the camelCase names of the public API."""
        with self._lock:
            return {_CAMEL_NAMES[event]: count for event, count in self._counts.items()}

    def render(self) -> tuple[bytes, str]:
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
