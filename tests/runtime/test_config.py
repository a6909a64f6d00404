from standingwave.config import WaveConfig


def test_defaults():
    cfg = WaveConfig()
    assert cfg.ollama_url == "http://localhost:11434"
    assert cfg.mode == "parallel"
    assert cfg.curiosity_search_interval == 25
    assert cfg.turn_timeout() == 90.0


def test_weaving_deadline_scales_with_rounds():
    cfg = WaveConfig(mode="weaving", weaving_rounds=3)
    assert cfg.turn_timeout() == 360.0


def test_from_env_coerces_types_and_overrides_win():
    env = {
        "WAVE_MODE": "weaving",
        "WAVE_WEAVING_ROUNDS": "2",
        "WAVE_COHERENCE_THRESHOLD": "0.5",
        "WAVE_CURIOSITY_SEARCH_ENABLED": "false",
        "WAVE_OLLAMA_URL": "http://gpu-box:11434",
        "WAVE_MEMORY_PATH": "",
    }
    cfg = WaveConfig.from_env(env, state_path="/tmp/state.json")

    assert cfg.mode == "weaving"
    assert cfg.weaving_rounds == 2
    assert cfg.coherence_threshold == 0.5
    assert cfg.curiosity_search_enabled is False
    assert cfg.ollama_url == "http://gpu-box:11434"
    assert cfg.memory_path == "data/memory_stream.json"
    assert cfg.state_path == "/tmp/state.json"


def test_worst_case_dispatch_counts_retries_and_backoff():
    cfg = WaveConfig()
    assert cfg.worst_case_dispatch_s() == 3 * 120.0 + 0.5 + 1.0
    assert cfg.worst_case_dispatch_s() > cfg.turn_timeout()

    tight = WaveConfig(max_attempts=1, generator_timeout_s=30.0, elaborator_timeout_s=20.0, classifier_timeout_s=20.0)
    assert tight.worst_case_dispatch_s() == 30.0
    assert tight.worst_case_dispatch_s() < tight.turn_timeout()
