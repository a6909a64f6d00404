"""
Model Engine - Ollama-compatible generate endpoint for the three model roles

WHAT: HTTP wrapper with retry/backoff plus generator, elaborator and classifier calls
WHERE: standingwave/runtime/model_engine.py - sole component talking to the model backend
WHO: ParallelProtocol, WeavingProtocol
TIME: Bounded per call by the role timeout; retries add 0.5s × attempt of sleep

Roles:
- generator: produces the user-facing response, filtered for leaked inner monologue
- elaborator: proposes up to two follow-up questions
- classifier: returns a single emotional valence in [-1, 1]

Boundary Notes:
- Only connection errors and timeouts are retried; HTTP errors and empty
  bodies fail immediately with ModelCallError
- Output validation failures raise OutputValidationError and are never retried
- The engine holds no agent state; everything it needs is passed in
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Optional, Sequence

import requests

from ..config import WaveConfig
from ..errors import ModelCallError, OutputValidationError
from .memory.models import MemoryRecord
from .prompting import (
    compose_classification_prompt,
    compose_elaboration_prompt,
    compose_primary_prompt,
    compose_weaving_elaboration_prompt,
    compose_weaving_prompt,
)
from .state import Curiosity
from .telemetry import NoOpTelemetryClient, TelemetryClient

logger = logging.getLogger(__name__)

MAX_ELABORATIONS = 2
MIN_RESPONSE_CHARS = 3

INTERNAL_THOUGHT_MARKERS = (
    "*why this response works*",
    "*thinking*",
    "*analyzing*",
    "*processing*",
    "*internal note*",
    "*to self*",
    "(internal:",
    "(thinking:",
    "[internal",
    "[thinking",
)
_INLINE_MARKERS = ("*why this response works*", "*thinking*", "*processing*")
_ALLOWED_CONTROL = {"\n", "\r", "\t"}

MINIMAL_HOW_ARE_YOU = "I'm experiencing some technical difficulties but maintaining continuity."
MINIMAL_HELLO = "Hello. I'm here, though running in minimal mode."
MINIMAL_DEFAULT = "I'm listening, but my full processing is temporarily limited. My standing wave persists."


# ------------------------- output hygiene -------------------------
def validate_response(text: Optional[str]) -> bool:
    """True when ``text`` looks like usable prose rather than backend garbage."""

    if not text or len(text) < MIN_RESPONSE_CHARS:
        return False
    for ch in text:
        if ch == "�":
            return False
        if ch not in _ALLOWED_CONTROL and (ord(ch) < 32 or ord(ch) == 127):
            return False
    letters = [ch for ch in text if ch.isalpha()]
    if letters and all(ch.isupper() for ch in letters):
        return False
    return True


def filter_internal_thoughts(text: str) -> str:
    kept = [
        line
        for line in text.splitlines()
        if not any(marker in line.lower() for marker in INTERNAL_THOUGHT_MARKERS)
    ]
    filtered = "\n".join(kept)
    for marker in _INLINE_MARKERS:
        filtered = filtered.replace(marker, "")
    while "\n\n\n" in filtered:
        filtered = filtered.replace("\n\n\n", "\n\n")
    return filtered.strip()


def minimal_response(user_text: str) -> str:
    """Deterministic reply used when the generator is unavailable."""

    lowered = user_text.lower()
    if "how are you" in lowered:
        return MINIMAL_HOW_ARE_YOU
    if "hello" in lowered:
        return MINIMAL_HELLO
    return MINIMAL_DEFAULT


def extract_questions(text: str, limit: int = MAX_ELABORATIONS) -> List[str]:
    return [line.strip() for line in text.splitlines() if "?" in line][:limit]


def parse_valence(text: str) -> float:
    lines = text.strip().splitlines()
    first = lines[0].strip() if lines else ""
    try:
        value = float(first)
    except ValueError:
        logger.debug("Unparseable valence %r; defaulting to 0.0", first[:40])
        return 0.0
    if value != value:  # NaN
        return 0.0
    return max(-1.0, min(1.0, value))


# ------------------------- engine -------------------------
class OllamaModelEngine:
    """Blocking client for ``POST <url>/api/generate`` with bounded retries."""

    def __init__(
        self,
        config: Optional[WaveConfig] = None,
        *,
        session: Optional[Any] = None,
        telemetry: Optional[TelemetryClient] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or WaveConfig()
        self._session = session or requests.Session()
        self._telemetry = telemetry or NoOpTelemetryClient()
        self._sleep = sleep

    @property
    def endpoint(self) -> str:
        return f"{self.config.ollama_url.rstrip('/')}/api/generate"

    def close(self) -> None:
        close = getattr(self._session, "close", None)
        if callable(close):
            close()

    def generate(self, model: str, prompt: str, timeout: float) -> str:
        payload = {"model": model, "prompt": prompt, "stream": False}
        max_attempts = max(1, self.config.max_attempts)

        with self._telemetry.span("wave.model_call", attributes={"model": model}) as span:
            attempt = 0
            while True:
                attempt += 1
                span.set_attribute("attempts", attempt)
                try:
                    response = self._session.post(self.endpoint, json=payload, timeout=timeout)
                except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
                    if attempt >= max_attempts:
                        raise ModelCallError(
                            f"Model {model} unreachable after {max_attempts} attempts: {exc}"
                        ) from exc
                    delay = self.config.backoff_base_s * attempt
                    logger.warning(
                        "Model call to %s failed (attempt %d/%d): %s. Retrying in %.1fs",
                        model,
                        attempt,
                        max_attempts,
                        exc,
                        delay,
                    )
                    self._sleep(delay)
                    continue
                except requests.exceptions.RequestException as exc:
                    raise ModelCallError(f"Model call to {model} failed: {exc}") from exc

                if not 200 <= response.status_code < 300:
                    raise ModelCallError(f"Model backend returned HTTP {response.status_code} for {model}")
                try:
                    body = response.json()
                except ValueError as exc:
                    raise ModelCallError(f"Model backend returned non-JSON body for {model}") from exc

                text = body.get("response") if isinstance(body, dict) else None
                if not text:
                    raise ModelCallError(f"Empty response from model {model}")
                span.set_attribute("chars", len(text))
                return text

    # ------------------------- roles -------------------------
    def generate_primary(
        self,
        user_text: str,
        memories: Sequence[MemoryRecord],
        curiosities: Sequence[Curiosity],
        meaningfulness: float,
    ) -> str:
        prompt = compose_primary_prompt(
            user_text=user_text,
            memories=memories,
            curiosities=curiosities,
            meaningfulness=meaningfulness,
        )
        raw = self.generate(self.config.generator_model, prompt, self.config.generator_timeout_s)
        return self._checked(filter_internal_thoughts(raw))

    def generate_woven(
        self,
        workspace_context: str,
        round_number: int,
        coherence: float,
        entropy: float,
        memories: Sequence[MemoryRecord],
        curiosities: Sequence[Curiosity],
    ) -> str:
        prompt = compose_weaving_prompt(
            workspace_context=workspace_context,
            round_number=round_number,
            coherence=coherence,
            entropy=entropy,
            memories=memories,
            curiosities=curiosities,
        )
        raw = self.generate(self.config.generator_model, prompt, self.config.generator_timeout_s)
        return self._checked(filter_internal_thoughts(raw))

    def generate_elaborations(self, memories: Sequence[MemoryRecord]) -> List[str]:
        prompt = compose_elaboration_prompt(memories)
        raw = self.generate(self.config.elaborator_model, prompt, self.config.elaborator_timeout_s)
        return extract_questions(raw)

    def elaborate_thought(self, thought: str) -> str:
        prompt = compose_weaving_elaboration_prompt(thought)
        return self.generate(self.config.elaborator_model, prompt, self.config.elaborator_timeout_s)

    def classify_valence(self, text: str) -> float:
        prompt = compose_classification_prompt(text)
        raw = self.generate(self.config.classifier_model, prompt, self.config.classifier_timeout_s)
        return parse_valence(raw)

    @staticmethod
    def _checked(text: str) -> str:
        if not validate_response(text):
            raise OutputValidationError(f"Rejected model output: {text[:60]!r}")
        return text


__all__ = [
    "INTERNAL_THOUGHT_MARKERS",
    "MINIMAL_DEFAULT",
    "MINIMAL_HELLO",
    "MINIMAL_HOW_ARE_YOU",
    "OllamaModelEngine",
    "extract_questions",
    "filter_internal_thoughts",
    "minimal_response",
    "parse_valence",
    "validate_response",
]
