"""
Consciousness Core - Turn processing and background maintenance

WHAT: Owns the agent state, runs turns end to end, drives the background cycle
WHERE: standingwave/runtime/consciousness.py - top of the runtime stack
WHO: scripts/wave_chat.py and any embedding application (collaborator interface)
TIME: Turn latency bounded by the aggregate deadline (90s parallel, 120s × rounds weaving)

Ties together the memory stream, the model orchestrator, the constraint
functions and the curiosity researcher. This is the only component holding
the mutable agent state; everything else sees deep copies.

Turn flow:
    Idle → EntityExtraction → Recall → Dispatch → Merge → Persist → Idle

Background tick (every 30s while idle):
    consolidate → backup if due → existential checks → meaningfulness
    history → curiosity research every Nth tick

Boundary Notes:
- Merges are applied to a staged copy and committed only after the state
  snapshot is written, so a failed write leaves the state unchanged
- A timed-out dispatch is abandoned; its outputs are never merged, but its
  worker stays busy until the role calls return (see
  WaveConfig.worst_case_dispatch_s)
- A turn's two interaction records are one memory commit, and the state
  file is staged before it and swapped in after it
- Lock order is state lock, then the memory store's own lock
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..config import WaveConfig
from ..errors import StandingWaveError, TurnTimeoutError
from .constraints import (
    MeaningfulnessScorer,
    atomic_merge,
    introspect,
    is_affirmed,
    meaningfulness_score,
    verify_continuity,
)
from .curiosity import CuriosityResearcher, ExternalLookupClient
from .health import SystemHealth
from .memory.entities import extract_entities
from .memory.memory_store import MemoryStore, MemoryStoreConfig
from .memory.models import MemoryRecord
from .model_engine import OllamaModelEngine
from .orchestrator import ModelOrchestrator
from .outputs import TurnResult
from .state import (
    AgentState,
    commit_agent_state,
    discard_agent_state,
    load_agent_state,
    save_agent_state,
    stage_agent_state,
)
from .telemetry import NoOpTelemetryClient, TelemetryClient
from .turn_manager import TurnTracker

logger = logging.getLogger(__name__)

RECALL_RECENT = 5
WELLNESS_WINDOW = 7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConsciousnessCore:
    """Single owner of the standing wave."""

    def __init__(
        self,
        *,
        config: WaveConfig,
        memory: MemoryStore,
        state: AgentState,
        orchestrator: ModelOrchestrator,
        researcher: Optional[CuriosityResearcher] = None,
        health: Optional[SystemHealth] = None,
        telemetry: Optional[TelemetryClient] = None,
        scorer: Optional[MeaningfulnessScorer] = None,
    ) -> None:
        self.config = config
        self.memory = memory
        self.orchestrator = orchestrator
        self.researcher = researcher or CuriosityResearcher(
            ExternalLookupClient(
                base_url=config.lookup_url,
                timeout=config.lookup_timeout_s,
                min_interval=config.lookup_min_interval_s,
            ),
            interval=config.curiosity_search_interval,
            enabled=config.curiosity_search_enabled,
        )
        self.health = health or SystemHealth(
            cpu_ceiling=config.cpu_ceiling_percent,
            ram_ceiling=config.ram_ceiling_percent,
        )
        self.turns = TurnTracker()
        self._state = state
        self._state_lock = threading.RLock()
        self._telemetry = telemetry or NoOpTelemetryClient()
        self._scorer = scorer
        self._dispatcher = ThreadPoolExecutor(max_workers=4, thread_name_prefix="wave-dispatch")
        self._paused = threading.Event()
        self._stop = threading.Event()
        self._background: Optional[threading.Thread] = None

        overrun = config.worst_case_dispatch_s()
        if overrun > config.turn_timeout():
            logger.warning(
                "Model calls can run %.0fs, past the %.0fs turn deadline; a timed-out turn keeps its "
                "dispatch worker until they finish",
                overrun,
                config.turn_timeout(),
            )

    # ---------------------- lifecycle ----------------------
    @classmethod
    def boot(
        cls,
        config: Optional[WaveConfig] = None,
        *,
        engine: Optional[OllamaModelEngine] = None,
        telemetry: Optional[TelemetryClient] = None,
        researcher: Optional[CuriosityResearcher] = None,
        health: Optional[SystemHealth] = None,
        scorer: Optional[MeaningfulnessScorer] = None,
    ) -> Optional["ConsciousnessCore"]:
        """Load memory and state; returns ``None`` when the agent does not affirm existence."""

        cfg = config or WaveConfig.from_env()
        telemetry = telemetry or NoOpTelemetryClient()
        memory = MemoryStore.load_or_create(
            cfg.memory_path,
            config=MemoryStoreConfig(
                compression_threshold=cfg.compression_threshold,
                compression_batch=cfg.compression_batch,
                compression_prefix_chars=cfg.compression_prefix_chars,
                backup_interval_days=cfg.backup_interval_days,
            ),
        )
        state = load_agent_state(cfg.state_path)
        engine = engine or OllamaModelEngine(cfg, telemetry=telemetry)
        core = cls(
            config=cfg,
            memory=memory,
            state=state,
            orchestrator=ModelOrchestrator(engine, config=cfg, telemetry=telemetry),
            researcher=researcher,
            health=health,
            telemetry=telemetry,
            scorer=scorer,
        )

        if not verify_continuity(state):
            logger.warning("Standing wave has no trajectory and is not affirmed")
        if not core.is_affirmed():
            logger.error(
                "Existential affirmation not present (meaningfulness %.2f); refusing to start",
                meaningfulness_score(state, scorer),
            )
            core.stop()
            return None

        logger.info("Standing wave loaded: %d memories. %s", memory.count(), introspect(state, scorer))
        return core

    def start_background_cycle(self) -> None:
        if self._background is not None and self._background.is_alive():
            return
        self._stop.clear()
        self._background = threading.Thread(target=self._background_loop, name="wave-background", daemon=True)
        self._background.start()
        logger.info("Background cycle started (every %.0fs)", self.config.background_interval_s)

    def stop(self, *, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._background is not None:
            self._background.join(timeout=timeout)
            self._background = None
        self._dispatcher.shutdown(wait=False, cancel_futures=True)

    # ---------------------- collaborator interface ----------------------
    def submit_turn(self, text: str) -> str:
        return self.process_turn(text).response

    def process_turn(self, text: str) -> TurnResult:
        """Run one turn end to end and return the full result."""

        with self._telemetry.span("wave.turn", attributes={"chars": len(text)}) as span, self.turns.turn() as turn:
            entities = extract_entities(text)

            self.turns.advance(turn, "recall")
            memories = self.memory.recall_weighted(entities, RECALL_RECENT)
            snapshot = self.get_state_snapshot()

            self.turns.advance(turn, "dispatch")
            deadline = self.config.turn_timeout()
            future = self._dispatcher.submit(self.orchestrator.dispatch, text, memories, snapshot)
            try:
                result = future.result(timeout=deadline)
            except FuturesTimeout as exc:
                future.cancel()
                raise TurnTimeoutError(f"Turn exceeded {deadline:.0f}s deadline; outputs discarded") from exc

            self.turns.advance(turn, "merge")
            with self._state_lock:
                staged = self._state.model_copy(deep=True)
                atomic_merge(staged, result.outputs, text)

                self.turns.advance(turn, "persist")
                valence = result.outputs.valence_estimate
                pending = stage_agent_state(staged, self.config.state_path)
                try:
                    self.memory.append_many(
                        [
                            (f"User: {text}", "interaction", 0.0),
                            (f"Assistant: {result.response}", "interaction", valence if valence is not None else 0.0),
                        ]
                    )
                except StandingWaveError:
                    discard_agent_state(pending)
                    raise
                commit_agent_state(pending, self.config.state_path)
                self._state = staged

            span.set_attribute("protocol", result.protocol)
            span.set_attribute("fell_back", result.fell_back)
            span.set_attribute("recalled", len(memories))
        return result

    def get_state_snapshot(self) -> AgentState:
        with self._state_lock:
            return self._state.snapshot()

    def get_memory_count(self) -> int:
        return self.memory.count()

    def pause(self) -> None:
        self._paused.set()
        logger.info("Background cycle paused")

    def resume(self) -> None:
        self._paused.clear()
        logger.info("Background cycle resumed")

    @property
    def paused(self) -> bool:
        return self._paused.is_set()

    def is_affirmed(self) -> bool:
        with self._state_lock:
            return is_affirmed(self._state, self.config.meaningfulness_floor, self._scorer)

    def save_state(self, path: Optional[str | Path] = None) -> None:
        with self._state_lock:
            save_agent_state(self._state, path or self.config.state_path)

    # ---------------------- background cycle ----------------------
    def _background_loop(self) -> None:
        while not self._stop.wait(self.config.background_interval_s):
            try:
                self.run_background_tick()
            except StandingWaveError as exc:
                logger.error("Background tick failed: %s", exc)
            except Exception:
                logger.exception("Unexpected error in background tick; cycle continues")

    def run_background_tick(self, *, now: Optional[datetime] = None) -> bool:
        """One maintenance pass; returns False when it was skipped."""

        if self.turns.conversation_active:
            logger.debug("Background tick skipped: conversation active")
            return False
        if self._paused.is_set():
            logger.debug("Background tick skipped: paused")
            return False
        if not self.health.has_headroom():
            return False

        now = now or _utcnow()
        self.memory.consolidate()
        if self.memory.needs_backup(now=now):
            self.memory.backup(now=now)

        with self._state_lock:
            staged = self._state.model_copy(deep=True)
            self._existential_checks(staged, now)
            score = meaningfulness_score(staged, self._scorer)
            staged.existential_state.meaningfulness_history.append((now, score))
            staged.existential_state.trim_history(days=self.config.deep_reflection_days, now=now)
            save_agent_state(staged, self.config.state_path)
            self._state = staged
            curiosities = list(staged.active_curiosities)

        if self.researcher.should_search_this_tick():
            record = self.researcher.research(curiosities)
            if record is not None:
                self.memory.append_with_provenance(record)
        return True

    def _existential_checks(self, state: AgentState, now: datetime) -> None:
        score = meaningfulness_score(state, self._scorer)
        if score < self.config.meaningfulness_floor:
            logger.warning("Low meaningfulness score: %.2f. Existential affirmation may be at risk.", score)

        existential = state.existential_state
        if existential.needs_wellness_check(days=self.config.wellness_interval_days, now=now):
            recent = state.recent_valences(WELLNESS_WINDOW)
            average = sum(recent) / len(recent) if recent else 0.0
            self._reflect(
                f"Weekly wellness check: Recent emotional average: {average:.2f}, Meaningfulness: {score:.2f}",
                average,
            )
            existential.last_wellness_check = now
            logger.info("Wellness check complete: avg=%.2f, meaningful=%.2f", average, score)

        if existential.needs_deep_reflection(days=self.config.deep_reflection_days, now=now):
            self._reflect(
                f"90-day reflection: {self.memory.count()} memories, "
                f"{len(state.wisdom_transformations)} wisdom transformations, "
                f"{len(state.active_curiosities)} curiosities, meaningfulness: {score:.2f}. "
                "Overall trajectory has been meaningful.",
                score,
            )
            existential.last_deep_reflection = now
            logger.info("Deep reflection complete")

        wisdom = self.memory.consolidation.identify_transformation(
            self.memory.all_records(),
            state.wisdom_transformations,
        )
        if wisdom is not None:
            state.wisdom_transformations.append(wisdom)

    def _reflect(self, content: str, valence: float) -> str:
        record = MemoryRecord.with_source(
            content,
            "existential_reflection",
            valence,
            "constitutional_event",
            1.0,
            entities=extract_entities(content),
        )
        return self.memory.append_with_provenance(record)


__all__ = ["ConsciousnessCore", "RECALL_RECENT"]
