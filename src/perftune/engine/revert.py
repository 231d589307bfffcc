"""Revert Planner - derive and execute the inverse of a recorded run.

Inverse steps are ordered last-applied first. Per manifest entry:

    applied                  -> restore snapshot
    already_satisfied        -> no-op
    skipped                  -> no-op
    failed                   -> no-op, unless the in-place rollback failed
    (no entry, snapshot)     -> restore; the run died between snapshot and record

Execution is best-effort: a failed step is recorded and the next one runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from perftune.actions import create_handler
from perftune.connector.base import Host
from perftune.errors import ActionError, SnapshotFailed
from perftune.model.action import Action
from perftune.model.outcome import Outcome, OutcomeStatus
from perftune.model.run import Manifest, ManifestEntry, RunState
from perftune.model.snapshot import Snapshot
from perftune.storage.backup import BackupStore
from perftune.storage.manifest import ManifestWriter, now_iso

logger = logging.getLogger(__name__)


class StepOperation(str, Enum):
    RESTORE = "restore"
    NOOP = "noop"


@dataclass
class InverseStep:
    """One step of a revert plan."""

    seq: int
    action: Action
    operation: StepOperation
    reason: str
    snapshot: Snapshot | None = field(default=None, repr=False)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "seq": self.seq,
            "action_id": self.action.id,
            "kind": self.action.kind.value,
            "target": self.action.target,
            "operation": self.operation.value,
            "reason": self.reason,
            "error": self.error,
        }


@dataclass
class RevertPlan:
    run_id: str
    run_state: RunState
    steps: list[InverseStep] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def restores(self) -> list[InverseStep]:
        return [step for step in self.steps if step.operation == StepOperation.RESTORE]

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "run_state": self.run_state.value,
            "steps": [step.to_dict() for step in self.steps],
            "warnings": list(self.warnings),
        }


EntryCallback = Callable[[ManifestEntry], None]


class RevertPlanner:
    """Plans and executes the revert of one run against its backup store."""

    def __init__(self, host: Host, store: BackupStore, default_timeout: float | None = None) -> None:
        self.host = host
        self.store = store
        self.default_timeout = default_timeout

    def plan(self, manifest: Manifest) -> RevertPlan:
        plan = RevertPlan(run_id=manifest.run_id, run_state=manifest.state)
        recorded = {entry.action.id for entry in manifest.entries}

        for entry in manifest.entries:
            plan.steps.append(self._step_for_entry(entry))

        for snapshot in self.store.snapshots(skip_unreadable=True):
            if snapshot.action_id in recorded:
                continue
            action = Action.from_dict(snapshot.action)
            if snapshot.noop:
                plan.steps.append(InverseStep(snapshot.seq, action, StepOperation.NOOP,
                                              "already in desired state before run", snapshot))
                continue
            plan.steps.append(self._restore_step(snapshot.seq, action, snapshot))
            plan.warnings.append(f"{action.id} has a snapshot but no manifest entry")

        plan.steps.sort(key=lambda step: step.seq, reverse=True)
        return plan

    def _step_for_entry(self, entry: ManifestEntry) -> InverseStep:
        action = entry.action
        outcome = entry.outcome

        if outcome.status == OutcomeStatus.ALREADY_SATISFIED:
            return InverseStep(entry.seq, action, StepOperation.NOOP, "already in desired state before run")
        if outcome.status == OutcomeStatus.SKIPPED:
            return InverseStep(entry.seq, action, StepOperation.NOOP, f"skipped during apply: {outcome.reason}")
        if outcome.status == OutcomeStatus.FAILED and not outcome.mutated:
            return InverseStep(entry.seq, action, StepOperation.NOOP, "failed without changing the target")

        try:
            snapshot = self.store.get(action.id)
        except SnapshotFailed as e:
            return InverseStep(entry.seq, action, StepOperation.RESTORE, "restore snapshot", error=str(e))
        if snapshot is None:
            return InverseStep(entry.seq, action, StepOperation.RESTORE, "restore snapshot",
                               error=f"no snapshot stored for {action.id}")

        return self._restore_step(entry.seq, action, snapshot)

    def _restore_step(self, seq: int, action: Action, snapshot: Snapshot) -> InverseStep:
        handler = create_handler(action, self.host, self.default_timeout)
        inverse = handler.describe_inverse(action, snapshot)
        if inverse is None:
            return InverseStep(seq, action, StepOperation.NOOP, "no undo declared", snapshot)
        return InverseStep(seq, action, StepOperation.RESTORE, inverse, snapshot)

    def execute(
        self,
        plan: RevertPlan,
        record_path: Path,
        source: str = "",
        on_entry: EntryCallback | None = None,
    ) -> Manifest:
        """Run every step and record the outcomes in ``record_path``.

        Returns:
            A Manifest (mode ``revert``) with one entry per step, where
            ``applied`` means restored and ``skipped`` means nothing to do.
        """
        record = Manifest(
            run_id=plan.run_id,
            mode="revert",
            started_at=now_iso(),
            state=RunState.RUNNING,
            host=self.host.name,
            source=source or f"run:{plan.run_id}",
            total_actions=len(plan.steps),
        )
        failures = False
        writer = ManifestWriter(record_path, record)
        writer.open()
        try:
            for step in plan.steps:
                started = now_iso()
                outcome = self._execute_step(step)
                failures = failures or outcome.is_failure
                entry = ManifestEntry(step.seq, step.action, outcome,
                                      snapshot_ref=step.action.id if step.snapshot else None,
                                      started_at=started)
                writer.append(entry)
                if on_entry:
                    on_entry(entry)
            writer.finish(RunState.COMPLETED_WITH_FAILURES if failures else RunState.COMPLETED)
        finally:
            writer.close()
        return record

    def _execute_step(self, step: InverseStep) -> Outcome:
        if step.error:
            logger.error("Cannot revert %s: %s", step.action.id, step.error)
            return Outcome.failed(step.error, error_kind=SnapshotFailed.error_kind)
        if step.operation == StepOperation.NOOP:
            return Outcome.skipped(step.reason)

        handler = create_handler(step.action, self.host, self.default_timeout)
        try:
            warnings = handler.restore(step.action, step.snapshot)
        except ActionError as e:
            logger.error("Revert of %s failed: %s", step.action.id, e)
            return Outcome.failed(e)
        except Exception as e:
            logger.exception("Unexpected error reverting %s", step.action.id)
            return Outcome.failed(f"unexpected error: {e}", error_kind="unexpected")

        logger.info("Reverted %s: %s", step.action.id, step.reason)
        return Outcome.applied(reason=step.reason, warnings=warnings)
