"""
Memory Models - Type-safe records for the append-only memory stream

WHAT: Pydantic models for memory records and the persisted stream snapshot
WHERE: standingwave/runtime/memory/models.py - data layer
WHO: MemoryStore, ConsolidationEngine, CuriosityResearcher
TIME: Model validation <1ms

Every record carries provenance (source + confidence) so externally sourced
facts can be told apart from direct experience later. Records are never
removed; content may be shortened by compression while id, entities,
connections and provenance are preserved.

Boundary Notes:
- Valence and confidence are clamped on construction, not rejected
- Entities and connections are unique, order of first appearance kept
- The snapshot model doubles as the backup file format
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

MemoryType = Literal["interaction", "reflection", "existential_reflection", "curiosity"]
MemorySource = Literal["direct", "curiosity_lookup", "constitutional_event", "system_recovery"]

COMPRESSED_MARKER = "[Compressed] "


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _unique(values: List[str]) -> List[str]:
    seen: set[str] = set()
    ordered: List[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


class MemoryRecord(BaseModel):
    """
    One experience in the memory stream.

    Examples:
    - "User: Alice called about the garden" (interaction, direct)
    - "Weekly wellness check: ..." (existential_reflection, constitutional_event)
    - "Autonomous Research: ..." (curiosity, curiosity_lookup, confidence 0.75)
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    content: str
    entities: List[str] = Field(default_factory=list)
    memory_type: MemoryType = "interaction"
    timestamp: datetime = Field(default_factory=_utcnow)
    emotional_valence: float = 0.0
    connections: List[str] = Field(default_factory=list)
    source: MemorySource = "direct"
    confidence: float = 1.0

    @field_validator("emotional_valence")
    @classmethod
    def _clamp_valence(cls, value: float) -> float:
        return max(-1.0, min(1.0, float(value)))

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return max(0.0, min(1.0, float(value)))

    @field_validator("entities", "connections")
    @classmethod
    def _dedupe(cls, value: List[str]) -> List[str]:
        return _unique(list(value))

    @classmethod
    def create(
        cls,
        content: str,
        entities: List[str],
        memory_type: MemoryType,
        emotional_valence: float,
    ) -> "MemoryRecord":
        return cls(
            content=content,
            entities=entities,
            memory_type=memory_type,
            emotional_valence=emotional_valence,
        )

    @classmethod
    def with_source(
        cls,
        content: str,
        memory_type: MemoryType,
        emotional_valence: float,
        source: MemorySource,
        confidence: float,
        entities: Optional[List[str]] = None,
    ) -> "MemoryRecord":
        """Build a record with explicit provenance (external facts, system events)."""
        return cls(
            content=content,
            entities=entities or [],
            memory_type=memory_type,
            emotional_valence=emotional_valence,
            source=source,
            confidence=confidence,
        )

    @property
    def is_compressed(self) -> bool:
        return self.content.startswith(COMPRESSED_MARKER)

    def add_connection(self, record_id: str) -> bool:
        """Connect to another record; returns True when the link is new."""
        if record_id == self.id or record_id in self.connections:
            return False
        self.connections.append(record_id)
        return True

    def score(self, valence_weight: float) -> float:
        """Recall weight: recency plus emotional intensity."""
        return self.timestamp.timestamp() + abs(self.emotional_valence) * valence_weight


class MemorySnapshot(BaseModel):
    """Persisted memory stream (and backup) format."""

    records: List[MemoryRecord] = Field(default_factory=list)
    entity_index: Dict[str, List[str]] = Field(default_factory=dict)
    backup_created_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "COMPRESSED_MARKER",
    "MemoryRecord",
    "MemorySnapshot",
    "MemorySource",
    "MemoryType",
]
