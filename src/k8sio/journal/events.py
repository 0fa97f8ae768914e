"""Journal event definitions for k8sio run provenance."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class EventType(str, Enum):
    """Types of journal events."""

    # Session lifecycle
    SESSION_START = "session.start"
    SESSION_END = "session.end"

    # Command lifecycle
    COMMAND_START = "command.start"
    COMMAND_END = "command.end"

    CONFIG_LOADED = "config.loaded"

    # Benchmark run
    PHASE_TRANSITION = "run.phase"
    RUN_COMPLETE = "run.complete"
    RUN_FAILED = "run.failed"

    RESULTS_EXPORTED = "results.exported"
    CLEANUP_COMPLETE = "cleanup.complete"


class CommandName(str, Enum):
    """CLI command names for journal tracking."""

    RUN = "run"
    CLEANUP = "cleanup"


@dataclass
class JournalEvent:
    """A single journal entry, serialized as one JSON line."""

    event_type: EventType
    session_id: str
    message: str
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    command: str | None = None
    success: bool | None = None
    details: dict[str, Any] = field(default_factory=dict)
    config_hash: str | None = None
    duration_s: float | None = None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["event_type"] = self.event_type.value
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JournalEvent:
        data = dict(data)
        data["event_type"] = EventType(data["event_type"])
        return cls(**data)
