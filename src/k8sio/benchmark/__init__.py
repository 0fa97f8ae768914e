"""Benchmark execution: phases, run state and orchestration."""

from .orchestrator import (
    OrchestrationError,
    PhaseOrchestrator,
    RunCancelled,
    RunPlan,
    cleanup,
)
from .phases import (
    TRANSITIONS,
    BenchmarkRun,
    InvalidPhaseTransition,
    Phase,
    PhaseChange,
    PhaseObserver,
    can_transition,
)

__all__ = [
    "BenchmarkRun",
    "InvalidPhaseTransition",
    "OrchestrationError",
    "Phase",
    "PhaseChange",
    "PhaseObserver",
    "PhaseOrchestrator",
    "RunCancelled",
    "RunPlan",
    "TRANSITIONS",
    "can_transition",
    "cleanup",
]
