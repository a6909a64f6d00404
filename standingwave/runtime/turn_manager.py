"""
Turn Manager - Turn phase tracking and the conversation-active flag

WHAT: Tracks each in-flight turn's phase and whether any conversation is active
WHERE: standingwave/runtime/turn_manager.py - orchestration subsystem
WHO: ConsciousnessCore (turn thread), background cycle (reads the flag)
TIME: All operations O(1)

Phases run Idle → EntityExtraction → Recall → Dispatch → Merge → Persist → Idle.
The conversation-active flag is raised when a turn enters EntityExtraction
and lowered when it returns to Idle. It is counted, so overlapping turns
keep it raised until the last one finishes.

Boundary Notes:
- A turn that fails in any phase is still returned to Idle by ``turn()``
- Background maintenance never starts while the flag is raised
"""

from __future__ import annotations

import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Literal, Tuple

TurnPhase = Literal["idle", "entity_extraction", "recall", "dispatch", "merge", "persist"]

PHASE_ORDER: Tuple[TurnPhase, ...] = ("idle", "entity_extraction", "recall", "dispatch", "merge", "persist")


@dataclass(slots=True)
class TurnRecord:
    """One in-flight turn and the phases it has passed through."""

    turn_id: str
    phase: TurnPhase = "idle"
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    history: List[TurnPhase] = field(default_factory=list)

    @classmethod
    def create(cls) -> "TurnRecord":
        return cls(turn_id=str(uuid.uuid4()))


class TurnTracker:
    """Thread-safe registry of in-flight turns."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._turns: Dict[str, TurnRecord] = {}
        self._active = 0
        self._completed = 0

    @property
    def conversation_active(self) -> bool:
        with self._lock:
            return self._active > 0

    @property
    def completed_turns(self) -> int:
        with self._lock:
            return self._completed

    def begin(self) -> TurnRecord:
        record = TurnRecord.create()
        with self._lock:
            self._turns[record.turn_id] = record
        self.advance(record, "entity_extraction")
        return record

    def advance(self, record: TurnRecord, phase: TurnPhase) -> None:
        with self._lock:
            if record.phase == "idle" and phase != "idle":
                self._active += 1
            elif record.phase != "idle" and phase == "idle":
                self._active -= 1
            record.phase = phase
            record.history.append(phase)

    def finish(self, record: TurnRecord, *, completed: bool = True) -> None:
        self.advance(record, "idle")
        with self._lock:
            self._turns.pop(record.turn_id, None)
            if completed:
                self._completed += 1

    def phase_of(self, turn_id: str) -> TurnPhase:
        with self._lock:
            record = self._turns.get(turn_id)
            return record.phase if record else "idle"

    def summarize(self) -> Dict[str, object]:
        with self._lock:
            return {
                "in_flight": len(self._turns),
                "conversation_active": self._active > 0,
                "completed_turns": self._completed,
                "phases": sorted(r.phase for r in self._turns.values()),
            }

    @contextmanager
    def turn(self) -> Iterator[TurnRecord]:
        record = self.begin()
        completed = False
        try:
            yield record
            completed = True
        finally:
            self.finish(record, completed=completed)


__all__ = ["PHASE_ORDER", "TurnPhase", "TurnRecord", "TurnTracker"]
