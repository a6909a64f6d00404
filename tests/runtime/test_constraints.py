import numpy as np
import pytest

from standingwave.errors import WeavingError
from standingwave.runtime.constraints import (
    atomic_merge,
    can_delete,
    compress_record,
    identify_transformation,
    introspect,
    is_affirmed,
    meaningfulness_score,
    should_connect,
    should_generate_curiosity,
    validate_weaving_round,
    verify_continuity,
)
from standingwave.runtime.memory import MemoryRecord
from standingwave.runtime.outputs import ModelOutputs
from standingwave.runtime.state import AgentState, Curiosity
from standingwave.runtime.workspace import FractalWorkspace


def question(i: int) -> str:
    return f"What is question number {i}?"


def test_merge_appends_valence_and_curiosities():
    state = AgentState()
    outputs = ModelOutputs(elaboration_questions=[question(1), "not a question"], valence_estimate=0.4)

    atomic_merge(state, outputs, "hello there")

    assert state.latest_valence() == pytest.approx(0.4)
    assert [c.question for c in state.active_curiosities] == [question(1)]
    assert state.compressed_context == ["hello there"]


def test_merge_without_valence_leaves_trajectory():
    state = AgentState()
    atomic_merge(state, ModelOutputs(), None)
    assert state.emotional_trajectory == []


def test_curiosity_queue_drops_five_oldest_past_ten():
    state = AgentState()
    for i in range(10):
        state.active_curiosities.append(Curiosity(question=question(i)))

    atomic_merge(state, ModelOutputs(elaboration_questions=[question(10)]))

    assert len(state.active_curiosities) == 6
    assert state.active_curiosities[0].question == question(5)
    assert state.active_curiosities[-1].question == question(10)


def test_curiosity_queue_bound_holds_across_a_batch():
    state = AgentState()
    for i in range(9):
        state.active_curiosities.append(Curiosity(question=question(i)))

    atomic_merge(state, ModelOutputs(elaboration_questions=[question(100), question(101)]))

    assert len(state.active_curiosities) <= 10
    assert state.active_curiosities[-1].question == question(101)


def test_compressed_context_keeps_last_three():
    state = AgentState()
    for text in ["a", "b", "c", "d"]:
        atomic_merge(state, ModelOutputs(), text)
    assert state.compressed_context == ["b", "c", "d"]


def test_curiosity_gate():
    state = AgentState()
    assert should_generate_curiosity(state)
    state.active_curiosities = [Curiosity(question=question(i)) for i in range(3)]
    assert not should_generate_curiosity(state)


def test_connection_rule():
    base = MemoryRecord(content="x", entities=["A", "B", "C"], emotional_valence=0.0)
    strong = MemoryRecord(content="y", entities=["A", "B", "C"], emotional_valence=-1.0)
    weak_close = MemoryRecord(content="z", entities=["A", "B", "D"], emotional_valence=0.1)
    weak_far = MemoryRecord(content="w", entities=["A", "B", "D"], emotional_valence=0.9)
    disjoint = MemoryRecord(content="v", entities=["Q"], emotional_valence=0.0)

    assert should_connect(strong, base)
    assert should_connect(weak_close, base)  # overlap 0.5, close valence
    assert not should_connect(weak_far, base)
    assert not should_connect(disjoint, base)


def test_conservation_helpers():
    assert can_delete() is False
    record = MemoryRecord(content="Hello world, this is long", entities=["Hello"], connections=["x"])
    once = compress_record(record, prefix_chars=5)
    twice = compress_record(once, prefix_chars=5)

    assert once.content == "[Compressed] Hello"
    assert twice.content == once.content
    assert once.id == record.id
    assert once.connections == ["x"]


def _workspace(coherence: float, contributions: int, woven: str = "text", rounds: int = 1) -> FractalWorkspace:
    ws = FractalWorkspace.new("hi")
    for i in range(contributions):
        ws.contributions[f"m{i}"] = np.zeros(ws.dim, dtype=np.float32)
    ws.coherence_score = coherence
    ws.entropy = 0.5
    ws.woven_text = woven
    ws.rounds_completed = rounds
    return ws


def test_weaving_gate_rejects_low_coherence():
    with pytest.raises(WeavingError, match="too low"):
        validate_weaving_round(_workspace(0.25, 3))


def test_weaving_gate_accepts_just_above_floor():
    validate_weaving_round(_workspace(0.31, 3))


def test_weaving_gate_requires_three_contributions():
    with pytest.raises(WeavingError, match="only 2 models"):
        validate_weaving_round(_workspace(0.9, 2))


def test_weaving_gate_requires_woven_text_after_a_round():
    with pytest.raises(WeavingError, match="Empty woven text"):
        validate_weaving_round(_workspace(0.9, 3, woven=""))


def test_weaving_gate_high_entropy_only_warns(caplog):
    ws = _workspace(0.9, 3)
    ws.entropy = 0.99
    with caplog.at_level("WARNING"):
        validate_weaving_round(ws)
    assert "entropy" in caplog.text


def test_meaningfulness_bounded_and_positive_with_good_valence():
    state = AgentState()
    for _ in range(10):
        state.add_emotion(1.0)
    state.active_curiosities = [Curiosity(question=question(i)) for i in range(10)]
    score = meaningfulness_score(state)
    assert 0.0 < score <= 1.0


def test_meaningfulness_scorer_is_pluggable_and_clamped():
    state = AgentState()
    assert meaningfulness_score(state, scorer=lambda v, c, w: 5.0) == 1.0
    assert meaningfulness_score(state, scorer=lambda v, c, w: -5.0) == -1.0


def test_affirmation_requires_score_and_flag():
    state = AgentState()
    assert is_affirmed(state)

    state.existential_state.affirmed = False
    assert not is_affirmed(state)

    state.existential_state.affirmed = True
    for _ in range(10):
        state.add_emotion(-1.0)
    assert not is_affirmed(state)  # 0.7 * -1.0 < -0.5


def test_continuity_and_introspection():
    state = AgentState()
    assert verify_continuity(state)
    summary = introspect(state)
    assert "0 curiosities" in summary
    assert "meaningfulness" in summary


def test_pain_detection_needs_two_unseen_records():
    painful = [MemoryRecord(content=f"p{i}", emotional_valence=-0.8) for i in range(2)]
    calm = MemoryRecord(content="calm", emotional_valence=0.2)

    process = identify_transformation(painful + [calm])
    assert process is not None
    assert process.pain_description == "Pattern of difficulty across 2 experiences"
    assert set(process.input_memories) == {r.id for r in painful}

    assert identify_transformation(painful, already_seen=[painful[0].id]) is None
