"""Benchmark run phases and the state of one run."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType

from k8sio._constants import TRUNCATED_UUID_LENGTH
from k8sio.k8s import WorkerEndpoint

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    """Steps of a benchmark run, in execution order."""

    BUILDING = "Building"
    STARTING_SERVERS = "StartingServers"
    STARTING_CLIENT = "StartingClient"
    PREFILLING = "Prefilling"
    START_BENCHMARK = "StartBenchmark"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def terminal(self) -> bool:
        return self in (Phase.COMPLETED, Phase.FAILED)


# Allowed moves. Prefilling is the only phase that may be skipped.
TRANSITIONS: MappingProxyType[Phase, frozenset[Phase]] = MappingProxyType(
    {
        Phase.BUILDING: frozenset({Phase.STARTING_SERVERS, Phase.FAILED}),
        Phase.STARTING_SERVERS: frozenset({Phase.STARTING_CLIENT, Phase.FAILED}),
        Phase.STARTING_CLIENT: frozenset({Phase.PREFILLING, Phase.START_BENCHMARK, Phase.FAILED}),
        Phase.PREFILLING: frozenset({Phase.START_BENCHMARK, Phase.FAILED}),
        Phase.START_BENCHMARK: frozenset({Phase.RUNNING, Phase.FAILED}),
        Phase.RUNNING: frozenset({Phase.COMPLETED, Phase.FAILED}),
        Phase.COMPLETED: frozenset(),
        Phase.FAILED: frozenset(),
    }
)


class InvalidPhaseTransition(Exception):
    """Raised when a run is asked to move along an edge not in TRANSITIONS."""

    def __init__(self, current: Phase, requested: Phase):
        super().__init__(f"Invalid phase transition {current.value} -> {requested.value}")
        self.current = current
        self.requested = requested


def can_transition(current: Phase, requested: Phase) -> bool:
    """Check a move against the transition table."""
    return requested in TRANSITIONS[current]


@dataclass
class PhaseChange:
    """One recorded transition."""

    from_phase: Phase
    to_phase: Phase
    timestamp: datetime = field(default_factory=datetime.now)
    reason: str = ""


PhaseObserver = Callable[["BenchmarkRun", Phase, Phase], None]


@dataclass
class BenchmarkRun:
    """State of one benchmark execution.

    Owned by a single orchestrator; not safe for concurrent mutation.
    """

    run_id: str
    namespace: str
    workload: str
    expected_workers: int
    job_timeout: int
    phase: Phase = Phase.BUILDING
    endpoints: tuple[WorkerEndpoint, ...] = ()
    history: list[PhaseChange] = field(default_factory=list)
    error: str = ""
    observers: list[PhaseObserver] = field(default_factory=list, repr=False)

    @property
    def trunc_id(self) -> str:
        """Run id prefix used in resource names."""
        return self.run_id[:TRUNCATED_UUID_LENGTH]

    @property
    def finished(self) -> bool:
        return self.phase.terminal

    def advance(self, to: Phase, reason: str = "") -> None:
        """Move to ``to``, notifying observers.

        Raises:
            InvalidPhaseTransition: If the move is not in the table
        """
        current = self.phase
        if not can_transition(current, to):
            raise InvalidPhaseTransition(current, to)

        self.phase = to
        self.history.append(PhaseChange(current, to, reason=reason))
        logger.info("%s: %s -> %s", self.trunc_id, current.value, to.value)

        for observer in self.observers:
            try:
                observer(self, current, to)
            except Exception as e:
                logger.warning("Phase observer failed: %s", e)

    def fail(self, reason: str) -> None:
        """Move to Failed unless the run already finished."""
        if self.finished:
            return
        self.error = reason
        self.advance(Phase.FAILED, reason=reason)

    def set_endpoints(self, endpoints: list[WorkerEndpoint]) -> None:
        """Record the discovered workers once.

        Raises:
            ValueError: If endpoints were already recorded or the count is wrong
        """
        if self.endpoints:
            raise ValueError("Worker endpoints already recorded for this run")
        if len(endpoints) != self.expected_workers:
            raise ValueError(
                f"Found {len(endpoints)} worker endpoint(s), expected {self.expected_workers}"
            )
        self.endpoints = tuple(endpoints)

    def phase_sequence(self) -> list[Phase]:
        """Every phase the run has been in, in order."""
        if not self.history:
            return [self.phase]
        return [self.history[0].from_phase] + [change.to_phase for change in self.history]
