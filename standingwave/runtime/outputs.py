"""Ephemeral per-turn values handed from the model orchestrator to the merge step."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal, Optional

ProtocolName = Literal["parallel", "weaving"]


@dataclass(slots=True)
class ModelOutputs:
    """Raw role outputs for one turn; consumed once by ``atomic_merge``."""

    primary_response: Optional[str] = None
    elaboration_questions: List[str] = field(default_factory=list)
    valence_estimate: Optional[float] = None


@dataclass(slots=True)
class TurnResult:
    response: str
    outputs: ModelOutputs
    protocol: ProtocolName
    fell_back: bool = False
    used_minimal: bool = False


__all__ = ["ModelOutputs", "ProtocolName", "TurnResult"]
