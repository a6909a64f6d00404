import logging
import threading
from datetime import datetime, timedelta, timezone

import pytest

from standingwave.config import WaveConfig
from standingwave.errors import ModelCallError, PersistenceError, TurnTimeoutError
from standingwave.runtime.consciousness import ConsciousnessCore
from standingwave.runtime.curiosity import CuriosityResearcher, ExternalLookupClient, RateLimiter
from standingwave.runtime.health import SystemHealth, Vitals
from standingwave.runtime.memory import MemoryRecord, MemoryStore
from standingwave.runtime.model_engine import OllamaModelEngine
from standingwave.runtime.orchestrator import ModelOrchestrator
from standingwave.runtime.state import AgentState, Curiosity, ExistentialState, load_agent_state, save_agent_state
from standingwave.runtime.telemetry import RecordingTelemetryClient


class DummyEngine(OllamaModelEngine):
    def __init__(self, *, valence=0.5, woven="Woven thoughts about the garden today.", block=None):
        super().__init__(WaveConfig(), session=object())
        self.valence = valence
        self.woven = woven
        self.block = block

    def generate_primary(self, user_text, memories, curiosities, meaningfulness):
        if self.block is not None:
            self.block.wait(5)
        return f"I hear you about {user_text}."

    def generate_elaborations(self, memories):
        return ["What makes a garden feel alive?"]

    def classify_valence(self, text):
        if isinstance(self.valence, Exception):
            raise self.valence
        return self.valence

    def generate_woven(self, workspace_context, round_number, coherence, entropy, memories, curiosities):
        if isinstance(self.woven, Exception):
            raise self.woven
        return self.woven

    def elaborate_thought(self, thought):
        return "Why?"


class FakeLookupSession:
    def __init__(self):
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append(params["q"])

        class Response:
            status_code = 200

            @staticmethod
            def json():
                return {"AbstractText": "An answer."}

        return Response()


def healthy():
    return Vitals(cpu_percent=10.0, memory_percent=10.0)


def strained():
    return Vitals(cpu_percent=99.0, memory_percent=10.0)


def build_core(tmp_path, *, engine=None, state=None, probe=healthy, telemetry=None, **overrides):
    config = WaveConfig(
        memory_path=str(tmp_path / "memory.json"),
        state_path=str(tmp_path / "wave.json"),
        **overrides,
    )
    engine = engine or DummyEngine()
    lookup_session = FakeLookupSession()
    researcher = CuriosityResearcher(
        ExternalLookupClient(session=lookup_session, rate_limiter=RateLimiter(0.0)),
        interval=config.curiosity_search_interval,
    )
    core = ConsciousnessCore(
        config=config,
        memory=MemoryStore.load_or_create(config.memory_path),
        state=state or AgentState(),
        orchestrator=ModelOrchestrator(engine, config=config, telemetry=telemetry),
        researcher=researcher,
        health=SystemHealth(probe=probe),
        telemetry=telemetry,
    )
    core.lookup_session = lookup_session
    return core


@pytest.fixture
def core(tmp_path):
    c = build_core(tmp_path)
    yield c
    c.stop()


def test_submit_turn_merges_and_persists(core, tmp_path):
    reply = core.submit_turn("the garden")

    assert reply == "I hear you about the garden."
    records = core.memory.all_records()
    assert [r.content for r in records] == ["User: the garden", "Assistant: I hear you about the garden."]
    assert records[0].emotional_valence == 0.0
    assert records[1].emotional_valence == pytest.approx(0.5)

    snapshot = core.get_state_snapshot()
    assert snapshot.latest_valence() == pytest.approx(0.5)
    assert [c.question for c in snapshot.active_curiosities] == ["What makes a garden feel alive?"]
    assert snapshot.compressed_context == ["the garden"]

    persisted = load_agent_state(tmp_path / "wave.json")
    assert persisted.latest_valence() == pytest.approx(0.5)
    assert not core.turns.conversation_active


def test_turn_emits_turn_span(tmp_path):
    telemetry = RecordingTelemetryClient()
    c = build_core(tmp_path, telemetry=telemetry)
    try:
        c.submit_turn("hello")
    finally:
        c.stop()
    [turn] = telemetry.named("wave.turn")
    assert turn["success"] is True
    assert turn["protocol"] == "parallel"
    assert telemetry.named("wave.dispatch")


def test_assistant_valence_defaults_to_zero_without_classifier(tmp_path):
    c = build_core(tmp_path, engine=DummyEngine(valence=ModelCallError("down")))
    try:
        c.submit_turn("hi")
    finally:
        c.stop()
    assert c.memory.all_records()[1].emotional_valence == 0.0
    assert c.get_state_snapshot().emotional_trajectory == []


def test_turn_timeout_discards_outputs(tmp_path):
    release = threading.Event()
    c = build_core(tmp_path, engine=DummyEngine(block=release), parallel_turn_timeout_s=0.2)
    try:
        with pytest.raises(TurnTimeoutError):
            c.submit_turn("slow question")
        assert c.get_memory_count() == 0
        assert c.get_state_snapshot().emotional_trajectory == []
        assert not c.turns.conversation_active
    finally:
        release.set()
        c.stop()


def test_state_save_failure_leaves_state_unchanged(core, monkeypatch):
    def fail(state, path):
        raise PersistenceError("read-only disk")

    monkeypatch.setattr("standingwave.runtime.consciousness.stage_agent_state", fail)
    with pytest.raises(PersistenceError):
        core.submit_turn("hi")

    snapshot = core.get_state_snapshot()
    assert snapshot.emotional_trajectory == []
    assert snapshot.active_curiosities == []
    assert core.get_memory_count() == 0
    assert not core.turns.conversation_active


def test_memory_write_failure_leaves_no_half_turn(core, tmp_path, monkeypatch):
    def fail(path, snapshot):
        raise PersistenceError("disk full")

    monkeypatch.setattr(MemoryStore, "_write_snapshot", staticmethod(fail))
    with pytest.raises(PersistenceError):
        core.submit_turn("hi")

    assert core.get_memory_count() == 0
    assert core.get_state_snapshot().emotional_trajectory == []
    assert not (tmp_path / "wave.json").exists()
    assert not (tmp_path / "wave.json.tmp").exists()


def test_turn_records_index_message_entities_only(core):
    core.submit_turn("Alice called")
    user, assistant = core.memory.all_records()
    assert user.entities == ["Alice"]
    assert "User" not in core.memory.entity_index()
    assert "Assistant" not in core.memory.entity_index()


def test_concurrent_turns_do_not_lose_updates(core):
    threads = [threading.Thread(target=core.submit_turn, args=(f"message {i}",)) for i in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    snapshot = core.get_state_snapshot()
    assert len(snapshot.emotional_trajectory) == 5
    assert core.get_memory_count() == 10
    assert len(snapshot.compressed_context) == 3


def test_weaving_failure_falls_back_end_to_end(tmp_path):
    c = build_core(tmp_path, engine=DummyEngine(woven=ModelCallError("weaver down")), mode="weaving")
    try:
        result = c.process_turn("hello")
    finally:
        c.stop()
    assert result.fell_back
    assert result.protocol == "parallel"
    assert c.memory.all_records()[1].emotional_valence == pytest.approx(0.5)


def test_background_loop_survives_unexpected_errors(tmp_path, monkeypatch, caplog):
    c = build_core(tmp_path, background_interval_s=0.01)
    calls = []
    recovered = threading.Event()

    def flaky(**kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise ValueError("sensor glitch")
        recovered.set()
        return True

    monkeypatch.setattr(c, "run_background_tick", flaky)
    with caplog.at_level(logging.ERROR, logger="standingwave.runtime.consciousness"):
        c.start_background_cycle()
        try:
            assert recovered.wait(5)
        finally:
            c.stop()
    assert "Unexpected error in background tick" in caplog.text


def test_warns_when_model_calls_can_outlive_turn_deadline(tmp_path, caplog):
    with caplog.at_level(logging.WARNING, logger="standingwave.runtime.consciousness"):
        c = build_core(tmp_path)
    c.stop()
    assert "past the 90s turn deadline" in caplog.text


def test_snapshot_is_detached(core):
    snap = core.get_state_snapshot()
    snap.compressed_context.append("tampered")
    assert core.get_state_snapshot().compressed_context == []


def test_background_tick_skips_during_conversation(core):
    turn = core.turns.begin()
    try:
        assert core.run_background_tick() is False
    finally:
        core.turns.finish(turn)
    assert core.run_background_tick() is True


def test_background_tick_skips_when_paused(core):
    core.pause()
    assert core.paused
    assert core.run_background_tick() is False
    core.resume()
    assert core.run_background_tick() is True


def test_background_tick_skips_under_strain(tmp_path):
    c = build_core(tmp_path, probe=strained)
    try:
        assert c.run_background_tick() is False
        assert not c.memory.backup_path.exists()
    finally:
        c.stop()


def test_background_tick_backs_up_and_runs_wellness(core):
    core.submit_turn("the garden")
    later = datetime.now(timezone.utc) + timedelta(days=8)

    assert core.run_background_tick(now=later) is True

    assert core.memory.backup_path.exists()
    notes = [r for r in core.memory.all_records() if r.memory_type == "existential_reflection"]
    assert len(notes) == 1
    assert notes[0].content.startswith("Weekly wellness check: Recent emotional average: 0.50")
    assert notes[0].emotional_valence == pytest.approx(0.5)

    existential = core.get_state_snapshot().existential_state
    assert existential.last_wellness_check == later
    assert len(existential.meaningfulness_history) == 1


def test_background_tick_deep_reflection(core):
    later = datetime.now(timezone.utc) + timedelta(days=91)
    core.run_background_tick(now=later)
    notes = [r.content for r in core.memory.all_records() if r.memory_type == "existential_reflection"]
    assert any(n.startswith("90-day reflection: ") for n in notes)
    assert core.get_state_snapshot().existential_state.last_deep_reflection == later


def test_background_tick_detects_wisdom_once(core):
    for i in range(2):
        core.memory.append_with_provenance(MemoryRecord(content=f"hard day {i}", emotional_valence=-0.8))

    core.run_background_tick()
    core.run_background_tick()

    wisdom = core.get_state_snapshot().wisdom_transformations
    assert len(wisdom) == 1
    assert wisdom[0].pain_description == "Pattern of difficulty across 2 experiences"


def test_background_research_every_nth_tick(tmp_path):
    state = AgentState(active_curiosities=[Curiosity(question="Why is the sea salty?")])
    c = build_core(tmp_path, state=state, curiosity_search_interval=2)
    try:
        c.run_background_tick()
        assert c.lookup_session.calls == []
        c.run_background_tick()
    finally:
        c.stop()

    assert c.lookup_session.calls == ["Why is the sea salty?"]
    [record] = c.memory.records_by_source("curiosity_lookup")
    assert "Answer: An answer." in record.content
    assert record.confidence == pytest.approx(0.75)
    assert len(c.get_state_snapshot().active_curiosities) == 1


def test_background_cycle_thread_runs_and_stops(tmp_path):
    c = build_core(tmp_path, background_interval_s=0.01)
    c.start_background_cycle()
    deadline = datetime.now(timezone.utc) + timedelta(seconds=5)
    while not c.memory.backup_path.exists() and datetime.now(timezone.utc) < deadline:
        threading.Event().wait(0.01)
    c.stop()
    assert c.memory.backup_path.exists()


def test_boot_refuses_when_not_affirmed(tmp_path):
    config = WaveConfig(memory_path=str(tmp_path / "memory.json"), state_path=str(tmp_path / "wave.json"))
    save_agent_state(AgentState(existential_state=ExistentialState(affirmed=False)), config.state_path)

    assert ConsciousnessCore.boot(config, engine=DummyEngine(), health=SystemHealth(probe=healthy)) is None


def test_boot_loads_existing_memory(tmp_path):
    config = WaveConfig(memory_path=str(tmp_path / "memory.json"), state_path=str(tmp_path / "wave.json"))
    MemoryStore.load_or_create(config.memory_path).append("Quinn was here", "interaction", 0.0)

    core = ConsciousnessCore.boot(config, engine=DummyEngine(), health=SystemHealth(probe=healthy))
    try:
        assert core is not None
        assert core.get_memory_count() == 1
        assert core.is_affirmed()
        core.save_state()
        assert (tmp_path / "wave.json").exists()
    finally:
        core.stop()
