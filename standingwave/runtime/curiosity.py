"""
Curiosity Research - Autonomous lookup of open questions

WHAT: Instant-answer HTTP client, rate limiting, and provenance-tagged research memories
WHERE: standingwave/runtime/curiosity.py - called from the background cycle only
WHO: ConsciousnessCore.run_background_tick
TIME: One lookup per N background ticks, each bounded by a 10s timeout

Every Nth background tick the first curiosity that has not been researched
yet is sent to the external lookup backend. The answer is stored as a
Curiosity memory with source ``curiosity_lookup`` and confidence 0.75 so it
is never mistaken for direct experience.

Boundary Notes:
- Lookups respect a minimum spacing between calls; a call inside the
  window fails fast with ExternalLookupError instead of sleeping
- The resolution log keeps the last 100 entries (oldest 10 dropped at once)
- Researching a curiosity does not remove it from the agent state
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence, Tuple

import requests

from ..errors import ExternalLookupError
from .memory.models import MemoryRecord
from .state import Curiosity

logger = logging.getLogger(__name__)

NO_ANSWER = "No clear answer found via search."
ANSWER_FIELDS = ("AbstractText", "Abstract", "Answer", "Definition")
RESEARCH_CONFIDENCE = 0.75
RESOLUTION_LOG_LIMIT = 100
RESOLUTION_LOG_DROP = 10


class RateLimiter:
    """Minimum spacing between outbound calls."""

    def __init__(self, min_interval: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.lock = threading.Lock()
        self.min_interval = min_interval
        self.last_request_time: Optional[float] = None
        self.request_count = 0
        self._clock = clock

    def can_make_request(self) -> bool:
        with self.lock:
            if self.last_request_time is None:
                return True
            return self._clock() - self.last_request_time >= self.min_interval

    def record_request(self) -> None:
        with self.lock:
            self.last_request_time = self._clock()
            self.request_count += 1


class ExternalLookupClient:
    """GET ``<lookup_url>?q=...&format=json`` and pick the first non-empty answer field."""

    def __init__(
        self,
        *,
        base_url: str = "https://api.duckduckgo.com/",
        timeout: float = 10.0,
        min_interval: float = 30.0,
        session: Optional[Any] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._limiter = rate_limiter or RateLimiter(min_interval)

    def search(self, question: str) -> str:
        if not self._limiter.can_make_request():
            raise ExternalLookupError("Lookup rate limit: minimum spacing not yet elapsed")
        self._limiter.record_request()

        params = {"q": question, "format": "json", "no_html": "1", "skip_disambig": "1"}
        logger.debug("External lookup for %r", question)
        try:
            response = self._session.get(self.base_url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise ExternalLookupError(f"Lookup request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise ExternalLookupError(f"Lookup backend returned HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise ExternalLookupError("Lookup backend returned non-JSON body") from exc

        if isinstance(body, dict):
            for key in ANSWER_FIELDS:
                value = body.get(key)
                if isinstance(value, str) and value.strip():
                    return value
        return NO_ANSWER


def research_memory(question: str, answer: str) -> MemoryRecord:
    return MemoryRecord.with_source(
        f"Autonomous Research:\nQuery: {question}\nAnswer: {answer}\n\n"
        "[Source: External lookup via curiosity engine]",
        "curiosity",
        0.0,
        "curiosity_lookup",
        RESEARCH_CONFIDENCE,
    )


@dataclass
class ResolutionLog:
    entries: List[Tuple[datetime, str]]

    @classmethod
    def empty(cls) -> "ResolutionLog":
        return cls(entries=[])

    def record(self, question: str, at: Optional[datetime] = None) -> None:
        self.entries.append((at or datetime.now(timezone.utc), question))
        if len(self.entries) > RESOLUTION_LOG_LIMIT:
            del self.entries[:RESOLUTION_LOG_DROP]

    def contains(self, question: str) -> bool:
        return any(q == question for _, q in self.entries)

    def __len__(self) -> int:
        return len(self.entries)


class CuriosityResearcher:
    """Counts background ticks and researches one open curiosity every ``interval`` ticks."""

    def __init__(self, client: ExternalLookupClient, *, interval: int = 25, enabled: bool = True) -> None:
        self.client = client
        self.interval = max(1, interval)
        self.enabled = enabled
        self.tick_counter = 0
        self.log = ResolutionLog.empty()

    def should_search_this_tick(self) -> bool:
        if not self.enabled:
            return False
        self.tick_counter += 1
        if self.tick_counter >= self.interval:
            self.tick_counter = 0
            return True
        return False

    def next_question(self, curiosities: Sequence[Curiosity]) -> Optional[Curiosity]:
        for curiosity in curiosities:
            if not self.log.contains(curiosity.question):
                return curiosity
        return None

    def research(self, curiosities: Sequence[Curiosity]) -> Optional[MemoryRecord]:
        """Look up the first unresearched question; ``None`` when there is nothing to do or it failed."""

        curiosity = self.next_question(curiosities)
        if curiosity is None:
            logger.debug("No unresearched curiosities")
            return None
        try:
            answer = self.client.search(curiosity.question)
        except ExternalLookupError as exc:
            logger.warning("Curiosity lookup failed for %r: %s", curiosity.question, exc)
            return None

        self.log.record(curiosity.question)
        logger.info("Researched curiosity %r", curiosity.question)
        return research_memory(curiosity.question, answer)


__all__ = [
    "CuriosityResearcher",
    "ExternalLookupClient",
    "NO_ANSWER",
    "RateLimiter",
    "ResolutionLog",
    "research_memory",
]
