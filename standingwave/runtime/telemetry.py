"""
Telemetry Collection - Span timing for model calls, dispatch and turns

WHAT: Lightweight spans recording duration and success of runtime stages
WHERE: standingwave/runtime/telemetry.py - observability layer
WHO: OllamaModelEngine (wave.model_call), ModelOrchestrator (wave.dispatch),
     ConsciousnessCore (wave.turn)
TIME: Zero-overhead when disabled, <0.1ms overhead when enabled

Boundary Notes:
- Spans never swallow exceptions; success=False is recorded and the error
  propagates to the caller
- Sinks are pluggable; the logging sink routes through the stdlib logger
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TelemetrySpan(AbstractContextManager["TelemetrySpan"]):
    """Context manager capturing span metadata and duration."""

    def __init__(
        self,
        client: "TelemetryClient",
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._client = client
        self.name = name
        self.attributes: Dict[str, Any] = dict(attributes or {})
        self._start: float = 0.0

    def __enter__(self) -> "TelemetrySpan":
        self._start = time.perf_counter()
        return self

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def __exit__(self, exc_type, exc, exc_tb) -> bool:
        duration_ms = (time.perf_counter() - self._start) * 1000.0
        self.attributes.setdefault("success", exc is None)
        if exc is not None:
            self.attributes.setdefault("error", type(exc).__name__)
        self.attributes["duration_ms"] = duration_ms
        self._client.emit_span(self.name, self.attributes)
        return False


class TelemetryClient:
    """Base telemetry client; override `emit_span` for custom sinks."""

    def span(
        self,
        name: str,
        *,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> TelemetrySpan:
        return TelemetrySpan(self, name, attributes)

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        raise NotImplementedError


@dataclass(slots=True)
class NoOpTelemetryClient(TelemetryClient):
    """Telemetry client that silently discards spans."""

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:  # noqa: D401 - intentionally empty
        pass


class LoggingTelemetryClient(TelemetryClient):
    """Emits each finished span as one debug line."""

    def __init__(self, level: int = logging.DEBUG) -> None:
        self.level = level

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        payload = {k: attributes[k] for k in sorted(attributes)}
        logger.log(self.level, "[telemetry] %s: %s", name, payload)


class RecordingTelemetryClient(TelemetryClient):
    """Keeps the most recent finished spans in memory for inspection in tests."""

    def __init__(self, max_spans: int = 1000) -> None:
        self._lock = threading.Lock()
        self.spans: Deque[Tuple[str, Dict[str, Any]]] = deque(maxlen=max_spans)

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        with self._lock:
            self.spans.append((name, dict(attributes)))

    def named(self, name: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [attrs for span_name, attrs in self.spans if span_name == name]


__all__ = [
    "LoggingTelemetryClient",
    "NoOpTelemetryClient",
    "RecordingTelemetryClient",
    "TelemetryClient",
    "TelemetrySpan",
]
