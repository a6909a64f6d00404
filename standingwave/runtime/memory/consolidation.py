"""
Memory Consolidation Engine - Merge candidates, causal links, pain→wisdom

WHAT: Offline passes over the whole memory stream (no model calls)
WHERE: standingwave/runtime/memory/consolidation.py - consolidation layer
WHO: MemoryStore.consolidate, background cycle existential checks
TIME: O(n^2) over records, run only from the background cycle

Consolidation never merges or removes anything. Pairs of records whose
entity sets overlap strongly are reported as merge candidates and logged;
causal connections are recomputed for every record against every other.

Boundary Notes:
- Connections only grow; a rebuild adds links, it never drops one
- Wisdom detection skips records already claimed by an earlier episode
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from ..constraints import build_connections, identify_transformation
from ..state import WisdomProcess
from .entities import overlap_ratio
from .models import MemoryRecord

logger = logging.getLogger(__name__)


@dataclass
class ConsolidationConfig:
    """Configuration for consolidation passes."""

    merge_overlap: float = 0.7  # Strictly greater than this to be a candidate
    max_logged_candidates: int = 20


class ConsolidationEngine:
    """Finds merge candidates and rebuilds causal connections in place."""

    def __init__(self, config: Optional[ConsolidationConfig] = None):
        self.config = config or ConsolidationConfig()

    def find_merge_candidates(self, records: Sequence[MemoryRecord]) -> List[Tuple[str, str, float]]:
        candidates: List[Tuple[str, str, float]] = []
        for i in range(len(records)):
            left = records[i]
            if not left.entities:
                continue
            for j in range(i + 1, len(records)):
                right = records[j]
                ratio = overlap_ratio(left.entities, right.entities)
                if ratio > self.config.merge_overlap:
                    candidates.append((left.id, right.id, ratio))

        for left_id, right_id, ratio in candidates[: self.config.max_logged_candidates]:
            logger.info("Merge candidate %s <-> %s (overlap %.2f)", left_id, right_id, ratio)
        return candidates

    def rebuild_connections(self, records: Sequence[MemoryRecord]) -> int:
        """Connect every qualifying pair; returns the number of new links."""
        added = 0
        for record in records:
            added += build_connections(record, records)
        if added:
            logger.debug("Consolidation added %d causal connections", added)
        return added

    def identify_transformation(
        self,
        records: Sequence[MemoryRecord],
        existing: Iterable[WisdomProcess] = (),
    ) -> Optional[WisdomProcess]:
        seen = {memory_id for process in existing for memory_id in process.input_memories}
        process = identify_transformation(records, already_seen=seen)
        if process is not None:
            logger.info("Wisdom transformation detected: %s", process.pain_description)
        return process


__all__ = ["ConsolidationConfig", "ConsolidationEngine"]
