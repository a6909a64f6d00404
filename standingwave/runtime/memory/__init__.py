"""
Experiential Memory Stream - Append-only records, entity index, recall

WHAT: Local library for the agent's memory stream (no network services)
WHERE: standingwave/runtime/memory/ - persistence subsystem of the runtime
WHO: ConsciousnessCore, background maintenance cycle
TIME: Recall well under 10ms for streams of a few thousand records

Memory Types:
- interaction: user and assistant turns
- reflection: system reflections (including recovery notices)
- existential_reflection: wellness and deep-reflection notes
- curiosity: results of autonomous research

Operations:
- append(content, type, valence): extract entities, connect, index, persist
- append_with_provenance(record): externally sourced facts with confidence
- recall_weighted(entities, recent_n): recency + emotional intensity ranking
- consolidate(): merge-candidate report and causal connection rebuild
- compress_if_needed() / backup() / restore_from_backup()

Boundary Notes:
- Records are conserved; compression shortens content only
- Provenance (source, confidence) is never rewritten after append
"""

from .consolidation import ConsolidationConfig, ConsolidationEngine  # noqa: F401
from .entities import extract_entities, overlap_ratio  # noqa: F401
from .memory_store import MemoryStore, MemoryStoreConfig  # noqa: F401
from .models import (  # noqa: F401
    COMPRESSED_MARKER,
    MemoryRecord,
    MemorySnapshot,
    MemorySource,
    MemoryType,
)

__all__ = [
    "COMPRESSED_MARKER",
    "ConsolidationConfig",
    "ConsolidationEngine",
    "MemoryRecord",
    "MemorySnapshot",
    "MemorySource",
    "MemoryStore",
    "MemoryStoreConfig",
    "MemoryType",
    "extract_entities",
    "overlap_ratio",
]
