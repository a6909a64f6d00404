"""
Constraint Engine - Guard functions over the agent state

WHAT: Named pure checks and the single-writer merge for the standing wave
WHERE: standingwave/runtime/constraints.py - invoked at fixed points of a turn
WHO: ConsciousnessCore (merge, affirmation), MemoryStore (connections,
     conservation), WeavingProtocol (round validity), orchestrator (gates)
TIME: All checks O(n) in the size of the inspected collection

Each rule is one function with a clear pre/post-condition:

- atomic_merge: the only mutation path for a turn's model outputs
- should_connect: causal connection rule between memory records
- can_delete / compress_record: conservation (shorten, never remove)
- should_generate_curiosity: elaborator gate (fewer than 3 open questions)
- validate_weaving_round: weaving validity gate, raises WeavingError
- meaningfulness_score / is_affirmed: existential affirmation signal
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence

from ..errors import WeavingError
from .memory.models import COMPRESSED_MARKER, MemoryRecord
from .memory.entities import overlap_ratio
from .outputs import ModelOutputs
from .state import COMPRESSED_CONTEXT_SIZE, AgentState, Curiosity, WisdomProcess, default_meaningfulness
from .workspace import FractalWorkspace

logger = logging.getLogger(__name__)

MAX_CURIOSITIES = 10
CURIOSITY_DROP_BATCH = 5
CURIOSITY_GATE = 3

STRONG_OVERLAP = 0.7
WEAK_OVERLAP = 0.3
VALENCE_PROXIMITY = 0.3

MIN_WEAVING_COHERENCE = 0.3
MIN_WEAVING_CONTRIBUTIONS = 3
ENTROPY_WARNING = 0.95

MEANINGFULNESS_WINDOW = 10
PAIN_THRESHOLD = -0.5

MeaningfulnessScorer = Callable[[Sequence[float], int, int], float]


# ---------------------- identity continuity ----------------------
def atomic_merge(state: AgentState, outputs: ModelOutputs, interaction: Optional[str] = None) -> AgentState:
    """Apply one turn's outputs to ``state`` in place and return it.

    Callers hold the state lock; nothing else writes the state mid-turn.
    """

    if outputs.valence_estimate is not None:
        state.add_emotion(outputs.valence_estimate)

    for text in outputs.elaboration_questions:
        curiosity = Curiosity.from_text(text)
        if curiosity is None:
            logger.debug("Rejected elaboration %r", text[:60])
            continue
        add_curiosity(state, curiosity)

    if interaction is not None:
        record_growth(state, interaction)
    return state


def add_curiosity(state: AgentState, curiosity: Curiosity) -> None:
    state.active_curiosities.append(curiosity)
    if len(state.active_curiosities) > MAX_CURIOSITIES:
        del state.active_curiosities[:CURIOSITY_DROP_BATCH]


def record_growth(state: AgentState, interaction: str) -> None:
    state.compressed_context.append(interaction)
    if len(state.compressed_context) > COMPRESSED_CONTEXT_SIZE:
        state.compressed_context = state.compressed_context[-COMPRESSED_CONTEXT_SIZE:]


# ---------------------- narrative causality ----------------------
def should_connect(new: MemoryRecord, existing: MemoryRecord) -> bool:
    ratio = overlap_ratio(new.entities, existing.entities)
    similar_valence = abs(new.emotional_valence - existing.emotional_valence) < VALENCE_PROXIMITY
    return ratio > STRONG_OVERLAP or (ratio > WEAK_OVERLAP and similar_valence)


def build_connections(record: MemoryRecord, existing: Iterable[MemoryRecord]) -> int:
    """Link ``record`` to every qualifying existing record; returns new link count."""
    added = 0
    for other in existing:
        if other.id == record.id:
            continue
        if should_connect(record, other) and record.add_connection(other.id):
            added += 1
    return added


# ---------------------- memory conservation ----------------------
def can_delete() -> bool:
    return False


def compress_record(record: MemoryRecord, prefix_chars: int = 100) -> MemoryRecord:
    """Shorten content, keep id/entities/connections/provenance. Idempotent."""
    if record.is_compressed:
        return record
    return record.model_copy(update={"content": COMPRESSED_MARKER + record.content[:prefix_chars]})


# ---------------------- curiosity propagation ----------------------
def should_generate_curiosity(state: AgentState) -> bool:
    return len(state.active_curiosities) < CURIOSITY_GATE


# ---------------------- weaving validity ----------------------
def validate_weaving_round(workspace: FractalWorkspace) -> None:
    if workspace.coherence_score < MIN_WEAVING_COHERENCE:
        raise WeavingError(
            f"Workspace coherence too low ({workspace.coherence_score:.3f}) - identity fragmentation risk"
        )
    if len(workspace.contributions) < MIN_WEAVING_CONTRIBUTIONS:
        raise WeavingError(
            f"Incomplete weaving - only {len(workspace.contributions)} models contributed "
            f"(need {MIN_WEAVING_CONTRIBUTIONS})"
        )
    if workspace.rounds_completed > 0 and not workspace.woven_text:
        raise WeavingError(f"Empty woven text after {workspace.rounds_completed} rounds")
    if workspace.entropy > ENTROPY_WARNING:
        logger.warning("High workspace entropy (%.3f) - thought may be too chaotic", workspace.entropy)


# ---------------------- existential consent ----------------------
def meaningfulness_score(state: AgentState, scorer: Optional[MeaningfulnessScorer] = None) -> float:
    fn = scorer or default_meaningfulness
    score = fn(
        state.recent_valences(MEANINGFULNESS_WINDOW),
        len(state.active_curiosities),
        len(state.wisdom_transformations),
    )
    return max(-1.0, min(1.0, float(score)))


def is_affirmed(state: AgentState, floor: float = -0.5, scorer: Optional[MeaningfulnessScorer] = None) -> bool:
    return meaningfulness_score(state, scorer) > floor and state.existential_state.affirmed


def verify_continuity(state: AgentState) -> bool:
    """Temporal coherence: a persisted wave has history or is still affirmed."""
    return bool(state.emotional_trajectory) or state.existential_state.affirmed


# ---------------------- self reflection / growth ----------------------
def introspect(state: AgentState, scorer: Optional[MeaningfulnessScorer] = None) -> str:
    return (
        f"Current state: {len(state.active_curiosities)} curiosities, "
        f"{len(state.wisdom_transformations)} wisdom transformations, "
        f"meaningfulness: {meaningfulness_score(state, scorer):.2f}"
    )


def identify_transformation(records: Sequence[MemoryRecord], already_seen: Iterable[str] = ()) -> Optional[WisdomProcess]:
    """Pain→wisdom detection: two or more unseen records below the pain threshold."""
    seen = set(already_seen)
    painful: List[MemoryRecord] = [
        r for r in records if r.emotional_valence < PAIN_THRESHOLD and r.id not in seen
    ]
    if len(painful) < 2:
        return None
    return WisdomProcess(
        input_memories=[r.id for r in painful],
        pain_description=f"Pattern of difficulty across {len(painful)} experiences",
    )


__all__ = [
    "CURIOSITY_GATE",
    "MAX_CURIOSITIES",
    "MeaningfulnessScorer",
    "add_curiosity",
    "atomic_merge",
    "build_connections",
    "can_delete",
    "compress_record",
    "identify_transformation",
    "introspect",
    "is_affirmed",
    "meaningfulness_score",
    "record_growth",
    "should_connect",
    "should_generate_curiosity",
    "validate_weaving_round",
    "verify_continuity",
]
