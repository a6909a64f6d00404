"""
Standing Wave Runtime - Persistent conversational agent core

WHAT: Memory stream, model orchestration, constraint checks and the consciousness core
WHERE: standingwave/runtime/ - everything that runs between user input and reply
WHO: scripts/wave_chat.py and embedding applications
TIME: Turn latency dominated by model backend calls

Subsystems:
- memory/: append-only memory stream with entity index and weighted recall
- model_engine / orchestrator / workspace / prompting: model roles and
  the parallel and weaving reconciliation protocols
- constraints: named guard functions and the atomic merge
- consciousness / turn_manager / state / curiosity / health: the core that
  owns the agent state and its background maintenance cycle
"""

# memory loads before constraints; its consolidation engine imports them
from .memory import MemoryRecord, MemoryStore  # noqa: F401
from .consciousness import ConsciousnessCore  # noqa: F401
from .curiosity import CuriosityResearcher, ExternalLookupClient, RateLimiter  # noqa: F401
from .health import SystemHealth, Vitals  # noqa: F401
from .model_engine import OllamaModelEngine, minimal_response, validate_response  # noqa: F401
from .orchestrator import ModelOrchestrator, ParallelProtocol, WeavingProtocol  # noqa: F401
from .outputs import ModelOutputs, TurnResult  # noqa: F401
from .state import AgentState, Curiosity, ExistentialState, WisdomProcess  # noqa: F401
from .telemetry import (  # noqa: F401
    LoggingTelemetryClient,
    NoOpTelemetryClient,
    RecordingTelemetryClient,
    TelemetryClient,
    TelemetrySpan,
)
from .turn_manager import TurnTracker  # noqa: F401
from .workspace import FractalWorkspace  # noqa: F401

__all__ = [
    "AgentState",
    "ConsciousnessCore",
    "Curiosity",
    "CuriosityResearcher",
    "ExistentialState",
    "ExternalLookupClient",
    "FractalWorkspace",
    "LoggingTelemetryClient",
    "MemoryRecord",
    "MemoryStore",
    "ModelOrchestrator",
    "ModelOutputs",
    "NoOpTelemetryClient",
    "OllamaModelEngine",
    "ParallelProtocol",
    "RateLimiter",
    "RecordingTelemetryClient",
    "SystemHealth",
    "TelemetryClient",
    "TelemetrySpan",
    "TurnResult",
    "TurnTracker",
    "Vitals",
    "WeavingProtocol",
    "WisdomProcess",
    "minimal_response",
    "validate_response",
]
