import threading

import pytest

from standingwave.config import WaveConfig
from standingwave.errors import ModelCallError, OutputValidationError, WeavingError
from standingwave.runtime.model_engine import MINIMAL_DEFAULT, OllamaModelEngine
from standingwave.runtime.orchestrator import ModelOrchestrator, ParallelProtocol, WeavingProtocol
from standingwave.runtime.state import AgentState, Curiosity
from standingwave.runtime.telemetry import TelemetryClient

WOVEN = (
    "I have been thinking about gardens and the way they change across seasons. "
    "Each visit shows me something slightly different about patience and growth. "
    "Do you notice the same thing when you walk outside?"
)


class DummyEngine(OllamaModelEngine):
    """Role calls return scripted values or raise scripted errors; no network."""

    def __init__(self, *, primary="Hello, good to hear from you.", questions=None, valence=0.5,
                 woven=WOVEN, elaboration="Why do gardens change?\nWhat stays the same?"):
        super().__init__(WaveConfig(), session=object())
        self.primary = primary
        self.questions = ["Why does that matter?"] if questions is None else questions
        self.valence = valence
        self.woven = woven
        self.elaboration = elaboration
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, name):
        with self._lock:
            self.calls.append(name)

    @staticmethod
    def _resolve(value):
        if isinstance(value, Exception):
            raise value
        return value

    def generate_primary(self, user_text, memories, curiosities, meaningfulness):
        self._record("primary")
        return self._resolve(self.primary)

    def generate_elaborations(self, memories):
        self._record("elaborations")
        return self._resolve(self.questions)

    def classify_valence(self, text):
        self._record("classify")
        return self._resolve(self.valence)

    def generate_woven(self, workspace_context, round_number, coherence, entropy, memories, curiosities):
        self._record(f"woven:{round_number}")
        return self._resolve(self.woven)

    def elaborate_thought(self, thought):
        self._record("elaborate")
        return self._resolve(self.elaboration)


class CaptureTelemetryClient(TelemetryClient):
    def __init__(self) -> None:
        self.spans: list[tuple[str, dict]] = []

    def emit_span(self, name: str, attributes: dict) -> None:
        self.spans.append((name, attributes))


def test_parallel_collects_all_roles():
    engine = DummyEngine()
    result = ParallelProtocol(engine).run("hi", [], AgentState(), 0.0)

    assert result.response == "Hello, good to hear from you."
    assert result.protocol == "parallel"
    assert result.outputs.elaboration_questions == ["Why does that matter?"]
    assert result.outputs.valence_estimate == pytest.approx(0.5)
    assert sorted(engine.calls) == ["classify", "elaborations", "primary"]


def test_parallel_skips_elaborator_when_gate_closed():
    engine = DummyEngine()
    state = AgentState(active_curiosities=[Curiosity(question=f"Q{i}?") for i in range(3)])
    result = ParallelProtocol(engine).run("hi", [], state, 0.0)

    assert "elaborations" not in engine.calls
    assert result.outputs.elaboration_questions == []


def test_parallel_failed_roles_are_absent():
    engine = DummyEngine(questions=ModelCallError("down"), valence=ModelCallError("down"))
    result = ParallelProtocol(engine).run("hi", [], AgentState(), 0.0)

    assert result.response == "Hello, good to hear from you."
    assert result.outputs.elaboration_questions == []
    assert result.outputs.valence_estimate is None


def test_parallel_all_roles_failing_gives_minimal_reply():
    err = ModelCallError("timed out")
    engine = DummyEngine(primary=err, questions=err, valence=err)
    result = ParallelProtocol(engine).run("tell me something", [], AgentState(), 0.0)

    assert result.response == MINIMAL_DEFAULT
    assert result.used_minimal
    assert result.outputs.primary_response is None
    assert result.outputs.valence_estimate is None
    assert result.outputs.elaboration_questions == []


def test_parallel_invalid_primary_gives_minimal_reply():
    engine = DummyEngine(primary=OutputValidationError("garbage"))
    result = ParallelProtocol(engine).run("hello", [], AgentState(), 0.0)
    assert result.response == "Hello. I'm here, though running in minimal mode."


def test_weaving_runs_roles_in_order_and_produces_text():
    engine = DummyEngine()
    result = WeavingProtocol(engine, rounds=2, coherence_threshold=0.99).run("hi", [], AgentState(), 0.0)

    assert result.protocol == "weaving"
    assert result.response == WOVEN
    assert engine.calls == ["woven:1", "elaborate", "woven:2", "elaborate"]
    assert result.outputs.elaboration_questions == ["Why do gardens change?", "What stays the same?"]
    assert result.outputs.valence_estimate is None


def test_weaving_stops_early_on_convergence():
    engine = DummyEngine()
    WeavingProtocol(engine, rounds=3, coherence_threshold=0.0).run("hi", [], AgentState(), 0.0)
    assert engine.calls == ["woven:1", "elaborate"]


def test_weaving_questions_respect_curiosity_gate():
    engine = DummyEngine()
    state = AgentState(active_curiosities=[Curiosity(question=f"Q{i}?") for i in range(3)])
    result = WeavingProtocol(engine, rounds=1).run("hi", [], state, 0.0)
    assert result.outputs.elaboration_questions == []


def test_weaving_model_failure_raises_weaving_error():
    engine = DummyEngine(woven=ModelCallError("down"))
    with pytest.raises(WeavingError):
        WeavingProtocol(engine, rounds=1).run("hi", [], AgentState(), 0.0)


def test_weaving_gate_failure_raises(monkeypatch):
    def low_coherence(self):
        self.coherence_score = 0.1

    monkeypatch.setattr("standingwave.runtime.workspace.FractalWorkspace.update_coherence", low_coherence)
    with pytest.raises(WeavingError, match="too low"):
        WeavingProtocol(DummyEngine(), rounds=1).run("hi", [], AgentState(), 0.0)


def test_dispatch_uses_parallel_by_default():
    engine = DummyEngine()
    telemetry = CaptureTelemetryClient()
    orchestrator = ModelOrchestrator(engine, config=WaveConfig(), telemetry=telemetry)

    result = orchestrator.dispatch("hi", [], AgentState())

    assert result.protocol == "parallel"
    name, attrs = telemetry.spans[-1]
    assert name == "wave.dispatch"
    assert attrs["protocol"] == "parallel"
    assert attrs["fell_back"] is False


def test_dispatch_weaving_falls_back_to_parallel():
    engine = DummyEngine(woven=ModelCallError("weaver down"))
    orchestrator = ModelOrchestrator(engine, config=WaveConfig(mode="weaving"))

    result = orchestrator.dispatch("hi", [], AgentState())

    assert result.protocol == "parallel"
    assert result.fell_back
    assert result.response == "Hello, good to hear from you."
    assert result.outputs.valence_estimate == pytest.approx(0.5)


def test_dispatch_weaving_success():
    orchestrator = ModelOrchestrator(DummyEngine(), config=WaveConfig(mode="weaving", weaving_rounds=1))
    result = orchestrator.dispatch("hi", [], AgentState())
    assert result.protocol == "weaving"
    assert not result.fell_back
