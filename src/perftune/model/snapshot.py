"""Snapshot - captured pre-change state for one action."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class Snapshot:
    """Prior state needed to undo one action.

    Attributes:
        action_id: Identity of the action this snapshot belongs to.
        seq: Position of the action in its run (1-based).
        action: Serialized action, so a snapshot alone is enough to revert.
        state: Kind-specific prior state (existed/mode, enabled/active, value...).
        noop: True when the target was already in the desired state.
        content: Original file bytes for write_file snapshots. Persisted by
            the backup store in its mirrored tree, not in the JSON metadata.
        captured_at: ISO timestamp.
    """

    action_id: str
    seq: int
    action: dict[str, Any]
    state: dict[str, Any] = field(default_factory=dict)
    noop: bool = False
    content: bytes | None = field(default=None, repr=False)
    captured_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))

    def to_dict(self) -> dict[str, Any]:
        """Serialize metadata (content excluded)."""
        return {
            "action_id": self.action_id,
            "seq": self.seq,
            "action": self.action,
            "state": self.state,
            "noop": self.noop,
            "captured_at": self.captured_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], content: bytes | None = None) -> "Snapshot":
        return cls(
            action_id=data["action_id"],
            seq=int(data["seq"]),
            action=data["action"],
            state=dict(data.get("state") or {}),
            noop=bool(data.get("noop", False)),
            content=content,
            captured_at=data.get("captured_at", ""),
        )
