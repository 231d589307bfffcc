"""Run Report - read-only aggregation over a manifest.

CONTRACT:
- read_only: True
- input: an apply manifest (completed, aborted or interrupted) or a revert record
- output: counts, failures, warnings, artifact locations, exit code
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from perftune.model.outcome import OutcomeStatus
from perftune.model.run import Manifest, ManifestEntry, RunState
from perftune.storage.runs import RunPaths

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2


@dataclass
class RunReport:
    """Summary of one apply run or one revert."""

    run_id: str
    mode: str
    state: RunState
    source: str
    host: str
    started_at: str
    finished_at: str | None
    total_actions: int
    entries: list[ManifestEntry] = field(default_factory=list)
    locations: dict[str, str] = field(default_factory=dict)

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for entry in self.entries if entry.status == status)

    @property
    def counts(self) -> dict[str, int]:
        return {status.value: self.count(status) for status in OutcomeStatus}

    @property
    def failures(self) -> list[ManifestEntry]:
        return [entry for entry in self.entries if entry.outcome.is_failure]

    @property
    def warnings(self) -> list[tuple[str, str]]:
        return [(entry.action.id, warning) for entry in self.entries for warning in entry.outcome.warnings]

    @property
    def not_attempted(self) -> int:
        return max(self.total_actions - len(self.entries), 0)

    @property
    def exit_code(self) -> int:
        """0 on full success, 2 on best-effort failures, 1 otherwise."""
        if self.state == RunState.COMPLETED:
            return EXIT_OK
        if self.state == RunState.COMPLETED_WITH_FAILURES:
            return EXIT_PARTIAL
        return EXIT_FATAL

    def summary(self) -> str:
        """Human-readable multi-line summary."""
        counts = self.counts
        verb = "Reverted" if self.mode == "revert" else "Applied"
        lines = [
            f"Run {self.run_id} ({self.mode}): {self.state.value}",
            f"  {verb}: {counts['applied']}  Already satisfied: {counts['already_satisfied']}  "
            f"Skipped: {counts['skipped']}  Failed: {counts['failed']}",
        ]
        if self.not_attempted:
            lines.append(f"  Not attempted: {self.not_attempted}")
        for entry in self.failures:
            lines.append(f"  FAILED {entry.action.id} [{entry.outcome.error_kind}]: {entry.outcome.reason}")
        for action_id, warning in self.warnings:
            lines.append(f"  WARNING {action_id}: {warning}")
        for name, location in self.locations.items():
            lines.append(f"  {name}: {location}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "mode": self.mode,
            "state": self.state.value,
            "source": self.source,
            "host": self.host,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "total_actions": self.total_actions,
            "not_attempted": self.not_attempted,
            "counts": self.counts,
            "exit_code": self.exit_code,
            "entries": [entry.to_dict() for entry in self.entries],
            "locations": dict(self.locations),
        }


def build_report(manifest: Manifest, paths: RunPaths | None = None, record: Path | None = None) -> RunReport:
    """Aggregate a manifest into a RunReport.

    Args:
        manifest: Apply manifest or revert record.
        paths: Run directory, used to list artifact locations.
        record: Path of the revert record when reporting a revert.
    """
    state = manifest.state if manifest.is_complete else RunState.INTERRUPTED
    locations: dict[str, str] = {}
    if paths is not None:
        locations["Manifest"] = str(paths.manifest)
        locations["Backup"] = str(paths.store.backup_dir)
        if paths.revert_plan.exists():
            locations["Revert plan"] = str(paths.revert_plan)
        if paths.log.exists():
            locations["Log"] = str(paths.log)
    if record is not None:
        locations["Revert record"] = str(record)

    return RunReport(
        run_id=manifest.run_id,
        mode=manifest.mode,
        state=state,
        source=manifest.source,
        host=manifest.host,
        started_at=manifest.started_at,
        finished_at=manifest.finished_at,
        total_actions=manifest.total_actions,
        entries=list(manifest.entries),
        locations=locations,
    )
