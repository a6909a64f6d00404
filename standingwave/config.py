"""
Runtime Configuration - Standing Wave Settings

WHAT: Defaults and environment overrides for every runtime component
WHERE: standingwave/config.py - consumed by orchestrators, stores and clients
WHO: ConsciousnessCore.boot(), scripts/wave_chat.py, tests
TIME: Resolved once at startup

Values mirror the defaults the agent has always shipped with. Any field can
be overridden through a ``WAVE_<FIELD>`` environment variable; there is no
config file layer.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Literal, Mapping, Optional

ENV_PREFIX = "WAVE_"

Mode = Literal["parallel", "weaving"]

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(slots=True)
class WaveConfig:
    """Configuration for one standing wave runtime."""

    # model backend
    ollama_url: str = "http://localhost:11434"
    generator_model: str = "gemma2:2b"
    elaborator_model: str = "tinyllama:latest"
    classifier_model: str = "gemma2:2b"
    generator_timeout_s: float = 120.0
    elaborator_timeout_s: float = 60.0
    classifier_timeout_s: float = 60.0
    max_attempts: int = 3
    backoff_base_s: float = 0.5

    # reconciliation
    mode: Mode = "parallel"
    weaving_rounds: int = 3
    coherence_threshold: float = 0.7
    parallel_turn_timeout_s: float = 90.0
    weaving_round_timeout_s: float = 120.0

    # background cycle
    background_interval_s: float = 30.0
    curiosity_search_enabled: bool = True
    curiosity_search_interval: int = 25
    cpu_ceiling_percent: float = 90.0
    ram_ceiling_percent: float = 90.0

    # external lookup
    lookup_url: str = "https://api.duckduckgo.com/"
    lookup_timeout_s: float = 10.0
    lookup_min_interval_s: float = 30.0

    # persistence
    memory_path: str = "data/memory_stream.json"
    state_path: str = "data/standing_wave.json"
    compression_threshold: int = 1000
    compression_batch: int = 100
    compression_prefix_chars: int = 100
    backup_interval_days: int = 7

    # existential checks
    wellness_interval_days: int = 7
    deep_reflection_days: int = 90
    meaningfulness_floor: float = -0.5

    def turn_timeout(self) -> float:
        """Aggregate deadline for a single turn in the configured mode."""

        if self.mode == "weaving":
            return self.weaving_round_timeout_s * max(1, self.weaving_rounds)
        return self.parallel_turn_timeout_s

    def worst_case_dispatch_s(self) -> float:
        """Longest one dispatch can keep a worker busy when every attempt times out."""

        backoff = sum(self.backoff_base_s * attempt for attempt in range(1, self.max_attempts))
        if self.mode == "weaving":
            per_round = self.max_attempts * (self.generator_timeout_s + self.elaborator_timeout_s) + 2 * backoff
            return per_round * max(1, self.weaving_rounds)
        slowest = max(self.generator_timeout_s, self.elaborator_timeout_s, self.classifier_timeout_s)
        return self.max_attempts * slowest + backoff

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "WaveConfig":
        """Build a config from ``WAVE_*`` variables; keyword overrides win."""

        env = os.environ if environ is None else environ
        defaults = cls()
        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw.strip() == "":
                continue
            values[f.name] = _coerce(raw.strip(), getattr(defaults, f.name))
        values.update(overrides)
        return cls(**values)


def _coerce(raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        return raw.lower() in _TRUTHY
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


__all__ = ["WaveConfig", "Mode", "ENV_PREFIX"]
