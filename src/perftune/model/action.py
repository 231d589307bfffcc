"""Action dataclass - one declared, reversible system change."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ActionKind(str, Enum):
    """Supported action kinds."""

    WRITE_FILE = "write_file"
    SET_SERVICE_STATE = "set_service_state"
    SET_SYSCTL = "set_sysctl"
    RUN_COMMAND = "run_command"


@dataclass(frozen=True)
class Action:
    """A single declarative unit of change.

    Attributes:
        id: Unique key within an action list (e.g. ``sysctl:vm.swappiness``).
        kind: Which handler applies this action.
        target: File path, unit name, kernel key or command name.
        params: Kind-specific desired state (content, mode, enabled, value...).
        fatal: If True, failure aborts the remaining actions of the run.
        timeout: Per-action bound on external commands, in seconds.
        description: Free text shown in reports.
    """

    id: str
    kind: ActionKind
    target: str
    params: dict[str, Any] = field(default_factory=dict)
    fatal: bool = False
    timeout: float | None = None
    description: str = ""

    @property
    def summary(self) -> str:
        """One-line description of the desired state."""
        if self.description:
            return self.description
        if self.kind == ActionKind.WRITE_FILE:
            return f"write {self.target} (mode {int(self.params.get('mode', 0o644)):04o})"
        if self.kind == ActionKind.SET_SERVICE_STATE:
            wanted = [f"{key}={self.params[key]}" for key in ("enabled", "active", "masked")
                      if self.params.get(key) is not None]
            return f"{self.target}: {' '.join(wanted)}"
        if self.kind == ActionKind.SET_SYSCTL:
            return f"{self.target} = {self.params.get('value')}"
        return f"run {self.target}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "target": self.target,
            "params": dict(self.params),
            "fatal": self.fatal,
            "timeout": self.timeout,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Action":
        return cls(
            id=data["id"],
            kind=ActionKind(data["kind"]),
            target=data["target"],
            params=dict(data.get("params") or {}),
            fatal=bool(data.get("fatal", False)),
            timeout=data.get("timeout"),
            description=data.get("description", ""),
        )
