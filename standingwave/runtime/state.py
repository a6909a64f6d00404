"""
Agent State - The Standing Wave

WHAT: Pydantic models for the single mutable agent state plus JSON persistence
WHERE: standingwave/runtime/state.py - data layer under the consciousness core
WHO: ConsciousnessCore (sole owner), constraint functions, tests
TIME: Snapshot copy <1ms, save/load bounded by file I/O

The agent state summarises emotional history, open questions, pain→insight
episodes and existential bookkeeping. It is mutated mid-turn only through
``constraints.atomic_merge``; everything else reads deep copies.

Boundary Notes:
- Trajectory and wisdom logs are append-only
- Compressed context keeps the last three interactions
- Meaningfulness history is trimmed to a rolling 90-day window
"""

from __future__ import annotations

import os
import re
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, ValidationError

from ..errors import PersistenceError

COMPRESSED_CONTEXT_SIZE = 3
MIN_QUESTION_CHARS = 5
MAX_QUESTION_CHARS = 300

_LEADING_MARKER = re.compile(r"^\s*(?:[-*•]+|\d+[.)])\s*")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Curiosity(BaseModel):
    """An open question the agent wants to understand."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    question: str
    related_entities: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_text(cls, text: str, related_entities: Optional[List[str]] = None) -> Optional["Curiosity"]:
        """Return a curiosity for a usable question, ``None`` otherwise."""
        question = _LEADING_MARKER.sub("", text or "").strip().strip('"').strip()
        if "?" not in question:
            return None
        if not MIN_QUESTION_CHARS <= len(question) <= MAX_QUESTION_CHARS:
            return None
        return cls(question=question, related_entities=list(related_entities or []))


class WisdomProcess(BaseModel):
    """A detected pain→insight episode."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    input_memories: List[str] = Field(default_factory=list)
    pain_description: str
    emerging_wisdom: Optional[str] = None
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None


class ExistentialState(BaseModel):
    affirmed: bool = True
    last_wellness_check: datetime = Field(default_factory=_utcnow)
    last_deep_reflection: datetime = Field(default_factory=_utcnow)
    meaningfulness_history: List[Tuple[datetime, float]] = Field(default_factory=list)

    def needs_wellness_check(self, *, days: int = 7, now: Optional[datetime] = None) -> bool:
        now = now or _utcnow()
        return now - self.last_wellness_check >= timedelta(days=days)

    def needs_deep_reflection(self, *, days: int = 90, now: Optional[datetime] = None) -> bool:
        now = now or _utcnow()
        return now - self.last_deep_reflection >= timedelta(days=days)

    def trim_history(self, *, days: int = 90, now: Optional[datetime] = None) -> int:
        """Drop meaningfulness entries older than the window; returns how many went."""
        cutoff = (now or _utcnow()) - timedelta(days=days)
        before = len(self.meaningfulness_history)
        self.meaningfulness_history = [(ts, score) for ts, score in self.meaningfulness_history if ts > cutoff]
        return before - len(self.meaningfulness_history)


class AgentState(BaseModel):
    """The standing wave: one logical owner, one mutation path per turn."""

    emotional_trajectory: List[Tuple[datetime, float]] = Field(default_factory=list)
    active_curiosities: List[Curiosity] = Field(default_factory=list)
    wisdom_transformations: List[WisdomProcess] = Field(default_factory=list)
    existential_state: ExistentialState = Field(default_factory=ExistentialState)
    compressed_context: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)

    def add_emotion(self, valence: float, *, at: Optional[datetime] = None) -> None:
        clamped = max(-1.0, min(1.0, float(valence)))
        self.emotional_trajectory.append((at or _utcnow(), clamped))

    def recent_valences(self, window: int) -> List[float]:
        return [v for _, v in self.emotional_trajectory[-window:]] if window > 0 else []

    def latest_valence(self) -> Optional[float]:
        if not self.emotional_trajectory:
            return None
        return self.emotional_trajectory[-1][1]

    def snapshot(self) -> "AgentState":
        """Deep, detached copy for readers."""
        return self.model_copy(deep=True)


def default_meaningfulness(valences: Sequence[float], curiosity_count: int, wisdom_count: int) -> float:
    """Bounded score, higher with recent positive valence and open engagement."""

    emotional = sum(valences) / len(valences) if valences else 0.0
    engagement = min(curiosity_count, 5) / 5.0 * 0.2
    growth = min(wisdom_count, 5) / 5.0 * 0.1
    return max(-1.0, min(1.0, 0.7 * emotional + engagement + growth))


# ------------------------- persistence -------------------------
def load_agent_state(path: str | Path) -> AgentState:
    """Load the persisted agent state; a missing file yields a fresh state."""

    p = Path(path)
    if not p.exists():
        return AgentState()
    try:
        return AgentState.model_validate_json(p.read_text(encoding="utf-8"))
    except (OSError, ValueError, ValidationError) as exc:
        raise PersistenceError(f"Failed to load agent state from {p}: {exc}") from exc


def stage_agent_state(state: AgentState, path: str | Path) -> Path:
    """Write the state next to ``path`` without replacing it; returns the staged file."""

    p = Path(path)
    tmp = p.with_name(p.name + ".tmp")
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(state.model_dump_json(indent=2), encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(f"Failed to write agent state to {p}: {exc}") from exc
    return tmp


def commit_agent_state(staged: Path, path: str | Path) -> None:
    try:
        os.replace(staged, path)
    except OSError as exc:
        raise PersistenceError(f"Failed to replace agent state at {path}: {exc}") from exc


def discard_agent_state(staged: Path) -> None:
    staged.unlink(missing_ok=True)


def save_agent_state(state: AgentState, path: str | Path) -> None:
    commit_agent_state(stage_agent_state(state, path), path)


__all__ = [
    "AgentState",
    "COMPRESSED_CONTEXT_SIZE",
    "Curiosity",
    "ExistentialState",
    "WisdomProcess",
    "commit_agent_state",
    "default_meaningfulness",
    "discard_agent_state",
    "load_agent_state",
    "save_agent_state",
    "stage_agent_state",
]
