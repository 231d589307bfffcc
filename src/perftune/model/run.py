"""Run-level records: run state, manifest entries and the loaded manifest."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from perftune.model.action import Action
from perftune.model.outcome import Outcome, OutcomeStatus


class RunState(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_FAILURES = "completed_with_failures"
    ABORTED = "aborted"
    # Loaded from a manifest that has no footer (process died mid-run)
    INTERRUPTED = "interrupted"


class ActionState(str, Enum):
    """Per-action progress through the applier."""

    PENDING = "pending"
    SNAPSHOTTING = "snapshotting"
    MUTATING = "mutating"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class ManifestEntry:
    """One processed action."""

    seq: int
    action: Action
    outcome: Outcome
    snapshot_ref: str | None = None
    started_at: str = ""
    duration_ms: int = 0

    @property
    def status(self) -> OutcomeStatus:
        return self.outcome.status

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "entry",
            "seq": self.seq,
            "action": self.action.to_dict(),
            "outcome": self.outcome.to_dict(),
            "snapshot": self.snapshot_ref,
            "started_at": self.started_at,
            "duration_ms": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ManifestEntry":
        return cls(
            seq=int(data["seq"]),
            action=Action.from_dict(data["action"]),
            outcome=Outcome.from_dict(data["outcome"]),
            snapshot_ref=data.get("snapshot"),
            started_at=data.get("started_at", ""),
            duration_ms=int(data.get("duration_ms", 0)),
        )


@dataclass
class Manifest:
    """Ordered record of one run (apply or revert)."""

    run_id: str
    mode: str = "apply"
    started_at: str = ""
    finished_at: str | None = None
    state: RunState = RunState.INTERRUPTED
    host: str = ""
    source: str = ""
    total_actions: int = 0
    entries: list[ManifestEntry] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.finished_at is not None

    def header(self) -> dict[str, Any]:
        return {
            "type": "run",
            "run_id": self.run_id,
            "mode": self.mode,
            "started_at": self.started_at,
            "host": self.host,
            "source": self.source,
            "total_actions": self.total_actions,
        }
