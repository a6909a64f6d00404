"""
Model Orchestrator - Parallel and weaving reconciliation protocols

WHAT: Runs the three model roles for one turn and reconciles their outputs
WHERE: standingwave/runtime/orchestrator.py - between the core and the model engine
WHO: ConsciousnessCore.submit_turn (via ModelOrchestrator.dispatch)
TIME: Parallel bounded by the slowest role; weaving by rounds × per-round calls

Protocols:
- parallel: generator, elaborator (gated) and classifier run concurrently;
  any failing role is simply absent, a missing or invalid primary response
  becomes the deterministic minimal reply
- weaving: roles take turns refining a shared FractalWorkspace, checked by
  the weaving validity gate after every round; any hard failure abandons
  weaving and the parallel protocol runs instead

Boundary Notes:
- Reads a detached state snapshot; never mutates the agent state
- Produces one TurnResult; merging is the caller's job
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, List, Optional, Sequence

import numpy as np

from ..config import WaveConfig
from ..errors import ModelCallError, OutputValidationError, StandingWaveError, WeavingError
from .constraints import meaningfulness_score, should_generate_curiosity, validate_weaving_round
from .memory.models import MemoryRecord
from .model_engine import OllamaModelEngine, extract_questions, minimal_response, validate_response
from .outputs import ModelOutputs, TurnResult
from .state import AgentState
from .telemetry import NoOpTelemetryClient, TelemetryClient
from .workspace import FractalWorkspace, embed_text, text_coherence

logger = logging.getLogger(__name__)

GENERATOR_ID = "generator"
ELABORATOR_ID = "elaborator"
CLASSIFIER_ID = "classifier"


def _settle(future: Optional[Future], role: str) -> Any:
    """Result of a role call, or ``None`` when it failed."""
    if future is None:
        return None
    try:
        return future.result()
    except StandingWaveError as exc:
        logger.warning("%s role failed: %s", role, exc)
        return None


class ParallelProtocol:
    """Concurrent role calls; partial results are always usable."""

    def __init__(self, engine: OllamaModelEngine) -> None:
        self._engine = engine

    def run(
        self,
        text: str,
        memories: Sequence[MemoryRecord],
        state: AgentState,
        meaningfulness: float,
    ) -> TurnResult:
        curiosities = list(state.active_curiosities)
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="wave-role") as pool:
            primary = pool.submit(self._engine.generate_primary, text, memories, curiosities, meaningfulness)
            elaborations = (
                pool.submit(self._engine.generate_elaborations, memories)
                if should_generate_curiosity(state)
                else None
            )
            valence = pool.submit(self._engine.classify_valence, text)

            response = _settle(primary, GENERATOR_ID)
            questions = _settle(elaborations, ELABORATOR_ID) or []
            valence_estimate = _settle(valence, CLASSIFIER_ID)

        used_minimal = not validate_response(response)
        if used_minimal:
            response = minimal_response(text)
            logger.info("Generator unavailable; answering in minimal mode")

        outputs = ModelOutputs(
            primary_response=None if used_minimal else response,
            elaboration_questions=list(questions),
            valence_estimate=valence_estimate,
        )
        return TurnResult(response=response, outputs=outputs, protocol="parallel", used_minimal=used_minimal)


class WeavingProtocol:
    """Iterative refinement in a shared workspace; raises WeavingError on any hard failure."""

    def __init__(self, engine: OllamaModelEngine, *, rounds: int = 3, coherence_threshold: float = 0.7) -> None:
        self._engine = engine
        self.rounds = max(1, rounds)
        self.coherence_threshold = coherence_threshold

    def run(
        self,
        text: str,
        memories: Sequence[MemoryRecord],
        state: AgentState,
        meaningfulness: float,
    ) -> TurnResult:
        workspace = FractalWorkspace.new(text)
        curiosities = list(state.active_curiosities)
        questions: List[str] = []

        try:
            for round_index in range(self.rounds):
                workspace.round = round_index + 1
                questions = self._weave_round(workspace, memories, curiosities)
                workspace.rounds_completed += 1
                validate_weaving_round(workspace)
                logger.debug(
                    "Weaving round %d: coherence=%.3f entropy=%.3f",
                    workspace.round,
                    workspace.coherence_score,
                    workspace.entropy,
                )
                if workspace.coherence_score >= self.coherence_threshold:
                    logger.info("Weaving converged after %d rounds", workspace.rounds_completed)
                    break
        except (ModelCallError, OutputValidationError) as exc:
            raise WeavingError(f"Weaving round {workspace.round} failed: {exc}") from exc

        response = workspace.extract_final_thought()
        if not validate_response(response):
            raise WeavingError("Woven response failed output validation")

        outputs = ModelOutputs(
            primary_response=response,
            elaboration_questions=questions if should_generate_curiosity(state) else [],
            valence_estimate=None,
        )
        return TurnResult(response=response, outputs=outputs, protocol="weaving")

    def _weave_round(
        self,
        workspace: FractalWorkspace,
        memories: Sequence[MemoryRecord],
        curiosities: Sequence[Any],
    ) -> List[str]:
        woven = self._engine.generate_woven(
            workspace.to_context(),
            workspace.round,
            workspace.coherence_score,
            workspace.entropy,
            memories,
            curiosities,
        )
        workspace.integrate_contribution(GENERATOR_ID, embed_text(woven, workspace.dim))
        workspace.update_woven_text(woven)

        elaboration = self._engine.elaborate_thought(workspace.woven_text)
        workspace.integrate_contribution(ELABORATOR_ID, embed_text(elaboration, workspace.dim))

        coherence = np.zeros(workspace.dim, dtype=np.float32)
        coherence[0] = text_coherence(workspace.woven_text)
        workspace.integrate_contribution(CLASSIFIER_ID, coherence)
        return extract_questions(elaboration)


class ModelOrchestrator:
    """Selects the protocol per configured mode; weaving falls back to parallel."""

    def __init__(
        self,
        engine: OllamaModelEngine,
        *,
        config: Optional[WaveConfig] = None,
        telemetry: Optional[TelemetryClient] = None,
    ) -> None:
        self.config = config or engine.config
        self._telemetry = telemetry or NoOpTelemetryClient()
        self.parallel = ParallelProtocol(engine)
        self.weaving = WeavingProtocol(
            engine,
            rounds=self.config.weaving_rounds,
            coherence_threshold=self.config.coherence_threshold,
        )

    def dispatch(self, text: str, memories: Sequence[MemoryRecord], snapshot: AgentState) -> TurnResult:
        meaningfulness = meaningfulness_score(snapshot)
        with self._telemetry.span("wave.dispatch", attributes={"mode": self.config.mode}) as span:
            if self.config.mode == "weaving":
                try:
                    result = self.weaving.run(text, memories, snapshot, meaningfulness)
                except WeavingError as exc:
                    logger.warning("Weaving failed, falling back to parallel: %s", exc)
                    result = self.parallel.run(text, memories, snapshot, meaningfulness)
                    result.fell_back = True
            else:
                result = self.parallel.run(text, memories, snapshot, meaningfulness)
            span.set_attribute("protocol", result.protocol)
            span.set_attribute("fell_back", result.fell_back)
            span.set_attribute("minimal", result.used_minimal)
        return result


__all__ = ["ModelOrchestrator", "ParallelProtocol", "WeavingProtocol"]
