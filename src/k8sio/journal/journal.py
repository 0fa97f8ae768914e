"""Append-only provenance journal for benchmark runs.

Each session is one JSONL file under ``<output_dir>/journal``. Sessions
are keyed by the run uuid, so ``run`` and a later ``cleanup`` of the
same run append to the same file. ``cleanup`` closes the session; the
file is then archived with a timestamp suffix.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from k8sio import __version__
from k8sio._constants import DEFAULT_OUTPUT_DIR

from .events import CommandName, EventType, JournalEvent

if TYPE_CHECKING:
    from k8sio.benchmark import BenchmarkRun, Phase, PhaseObserver

logger = logging.getLogger(__name__)

DEFAULT_JOURNAL_DIR = str(Path(DEFAULT_OUTPUT_DIR) / "journal")


def _generate_session_id() -> str:
    return datetime.now().strftime("%Y%m%d-%H%M%S") + "-" + uuid.uuid4().hex[:6]


def _sanitize_name(name: str) -> str:
    """Make a run id safe for use in a file name."""
    return re.sub(r"[^a-zA-Z0-9_-]", "_", name) if name else "unnamed"


def _hash_config_file(config_path: Path) -> str:
    try:
        return hashlib.sha256(config_path.read_bytes()).hexdigest()[:16]
    except OSError:
        return "unknown"


class Journal:
    """Append-only journal of commands and run events.

    Usage::

        journal = Journal()
        journal.open_session(config_path=Path("fio.yaml"), run_id=config.uuid)
        journal.begin_command(CommandName.RUN, {"follow": True})
        workload.run(observers=[journal.observer()])
        journal.end_command(success=True)
    """

    def __init__(self, journal_dir: Path | str = DEFAULT_JOURNAL_DIR) -> None:
        self.journal_dir = Path(journal_dir)
        self.session_id: str | None = None
        self._session_file: Path | None = None
        self._current_command: CommandName | None = None
        self._command_start_time: datetime | None = None
        self._event_count: int = 0
        self._command_count: int = 0

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def open_session(self, config_path: Path | None = None, run_id: str = "") -> str:
        """Open or resume the session of ``run_id``.

        Returns:
            The session_id
        """
        self.journal_dir.mkdir(parents=True, exist_ok=True)
        config_hash = _hash_config_file(config_path) if config_path else "none"
        safe_name = _sanitize_name(run_id)

        existing = self._find_resumable_session(safe_name)
        if existing:
            self.session_id = existing["session_id"]
            self._session_file = existing["path"]
            self._event_count = existing["event_count"]
            logger.debug("Resumed session %s for run %s", self.session_id, run_id)
            return self.session_id

        self.session_id = _generate_session_id()
        self._session_file = self.journal_dir / f"session-{safe_name}.jsonl"
        self._event_count = 0
        self._command_count = 0

        self.record(
            EventType.SESSION_START,
            message=f"Session started for run {run_id}",
            details={
                "config_file": str(config_path) if config_path else None,
                "run_id": run_id,
                "config_hash": config_hash,
                "k8sio_version": __version__,
            },
            config_hash=config_hash,
        )
        return self.session_id

    def close_session(self) -> None:
        """Close the session and archive its file."""
        if not self.session_id:
            return

        self.record(
            EventType.SESSION_END,
            message="Session ended",
            details={
                "events_recorded": self._event_count,
                "commands_run": self._command_count,
            },
        )

        # session-<run>.jsonl -> session-<run>-<timestamp>.jsonl
        if self._session_file and self._session_file.exists():
            ts = datetime.now().strftime("%Y%m%d-%H%M%S")
            archive_path = self._session_file.parent / f"{self._session_file.stem}-{ts}.jsonl"
            try:
                self._session_file.rename(archive_path)
                logger.debug("Archived session to %s", archive_path)
            except OSError as e:
                logger.warning("Failed to archive session file: %s", e)

        self.session_id = None
        self._session_file = None

    # ------------------------------------------------------------------
    # Command lifecycle
    # ------------------------------------------------------------------

    def begin_command(self, command: CommandName, args: dict[str, Any] | None = None) -> None:
        self._current_command = command
        self._command_start_time = datetime.now()
        self.record(
            EventType.COMMAND_START,
            message=f"Command '{command.value}' started",
            command=command.value,
            details={"args": args or {}},
        )

    def end_command(self, success: bool, message: str = "") -> None:
        duration = None
        if self._command_start_time:
            duration = (datetime.now() - self._command_start_time).total_seconds()

        cmd_name = self._current_command.value if self._current_command else "unknown"
        self.record(
            EventType.COMMAND_END,
            message=message or f"Command '{cmd_name}' {'succeeded' if success else 'failed'}",
            command=cmd_name,
            success=success,
            duration_s=duration,
            details={"exit_code": 0 if success else 1},
        )
        self._current_command = None
        self._command_start_time = None
        self._command_count += 1

    # ------------------------------------------------------------------
    # Event recording
    # ------------------------------------------------------------------

    def record(
        self,
        event_type: EventType,
        message: str,
        command: str | None = None,
        success: bool | None = None,
        details: dict[str, Any] | None = None,
        config_hash: str | None = None,
        duration_s: float | None = None,
    ) -> JournalEvent:
        """Append one event to the session file.

        Without an open session the event is built but not written.
        """
        if not self.session_id or not self._session_file:
            logger.debug("Journal not open, skipping event")
            return JournalEvent(event_type=event_type, session_id="none", message=message)

        event = JournalEvent(
            event_type=event_type,
            session_id=self.session_id,
            message=message,
            command=command or (self._current_command.value if self._current_command else None),
            success=success,
            details=details or {},
            config_hash=config_hash,
            duration_s=duration_s,
        )

        with open(self._session_file, "a") as f:
            f.write(json.dumps(event.to_dict()) + "\n")

        self._event_count += 1
        return event

    def observer(self) -> PhaseObserver:
        """Phase observer that records every transition of a run."""

        def on_transition(run: BenchmarkRun, old: Phase, new: Phase) -> None:
            details: dict[str, Any] = {"run_id": run.run_id, "from": old.value, "to": new.value}
            if run.error:
                details["error"] = run.error
            self.record(
                EventType.PHASE_TRANSITION,
                message=f"{old.value} -> {new.value}",
                details=details,
            )

        return on_transition

    # ------------------------------------------------------------------
    # Session discovery
    # ------------------------------------------------------------------

    def _find_resumable_session(self, safe_name: str) -> dict[str, Any] | None:
        """Find the unclosed session file of a run."""
        path = self.journal_dir / f"session-{safe_name}.jsonl"
        if not path.exists():
            return None

        try:
            lines = path.read_text().strip().splitlines()
            if not lines:
                return None
            first_event = json.loads(lines[0])
            last_event = json.loads(lines[-1])
            if last_event.get("event_type") == EventType.SESSION_END.value:
                return None
            return {
                "session_id": first_event["session_id"],
                "path": path,
                "event_count": len(lines),
            }
        except (json.JSONDecodeError, KeyError, OSError):
            return None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_sessions(self) -> list[dict[str, Any]]:
        """Summaries of every session, most recent first."""
        sessions = []
        for path in self.journal_dir.glob("session-*.jsonl"):
            try:
                events = self._load_events(path)
            except (json.JSONDecodeError, OSError):
                continue
            if not events:
                continue

            first = events[0]
            last = events[-1]
            closed = last.get("event_type") == EventType.SESSION_END.value
            sessions.append(
                {
                    "session_id": first.get("session_id", ""),
                    "run_id": first.get("details", {}).get("run_id", ""),
                    "started": first.get("timestamp", ""),
                    "ended": last.get("timestamp", "") if closed else None,
                    "closed": closed,
                    "event_count": len(events),
                    "commands": [
                        e.get("command", "")
                        for e in events
                        if e.get("event_type") == EventType.COMMAND_START.value
                    ],
                    "path": str(path),
                }
            )

        sessions.sort(key=lambda s: s.get("started", ""), reverse=True)
        return sessions

    def load_session_events(self, session_id: str) -> list[dict[str, Any]]:
        """All events of one session, in order; empty if unknown."""
        for path in self.journal_dir.glob("session-*.jsonl"):
            try:
                events = self._load_events(path)
            except (json.JSONDecodeError, OSError):
                continue
            if events and events[0].get("session_id") == session_id:
                return events
        return []

    def _load_events(self, path: Path) -> list[dict[str, Any]]:
        events = []
        with open(path) as f:
            for line in f:
                line = line.strip()
                if line:
                    events.append(json.loads(line))
        return events
