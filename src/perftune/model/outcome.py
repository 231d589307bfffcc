"""Outcome of applying (or reverting) one action."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from perftune.errors import ActionError


class OutcomeStatus(str, Enum):
    APPLIED = "applied"
    ALREADY_SATISFIED = "already_satisfied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class Outcome:
    """Result of one action.

    ``mutated`` is only meaningful for FAILED outcomes: it is True when the
    action changed the host and the in-place rollback could not undo it, so a
    later revert still has work to do.
    """

    status: OutcomeStatus
    reason: str = ""
    error_kind: str | None = None
    mutated: bool = False
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def applied(cls, reason: str = "", warnings: list[str] | None = None) -> "Outcome":
        return cls(OutcomeStatus.APPLIED, reason=reason, warnings=list(warnings or []))

    @classmethod
    def already_satisfied(cls) -> "Outcome":
        return cls(OutcomeStatus.ALREADY_SATISFIED, reason="already in desired state")

    @classmethod
    def skipped(cls, reason: str) -> "Outcome":
        return cls(OutcomeStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, error: ActionError | str, *, error_kind: str | None = None, mutated: bool = False) -> "Outcome":
        if isinstance(error, ActionError):
            return cls(OutcomeStatus.FAILED, reason=str(error), error_kind=error.error_kind, mutated=mutated)
        return cls(OutcomeStatus.FAILED, reason=error, error_kind=error_kind or "error", mutated=mutated)

    @property
    def is_failure(self) -> bool:
        return self.status == OutcomeStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "reason": self.reason,
            "error_kind": self.error_kind,
            "mutated": self.mutated,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Outcome":
        return cls(
            status=OutcomeStatus(data["status"]),
            reason=data.get("reason", ""),
            error_kind=data.get("error_kind"),
            mutated=bool(data.get("mutated", False)),
            warnings=list(data.get("warnings") or []),
        )
