"""Applier - apply an action list in declaration order.

CONTRACT:
- read_only: False (MODIFIES HOST)
- requires_backup: True (every mutation is preceded by a stored snapshot)
- crash safety: one manifest record per action, appended and fsynced
- fatal failure: stop, footer ``aborted``
- best-effort failure: record, continue, footer ``completed_with_failures``
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Callable

from perftune import __version__
from perftune.actions import create_handler
from perftune.connector.base import Host
from perftune.engine.revert import RevertPlanner
from perftune.errors import ActionError, SnapshotFailed, TargetNotFound
from perftune.model.action import Action
from perftune.model.outcome import Outcome, OutcomeStatus
from perftune.model.run import ActionState, Manifest, ManifestEntry, RunState
from perftune.model.schema import ActionList
from perftune.model.snapshot import Snapshot
from perftune.storage.backup import write_durable
from perftune.storage.manifest import ManifestWriter, now_iso
from perftune.storage.runs import RunPaths

logger = logging.getLogger(__name__)

EntryCallback = Callable[[ManifestEntry], None]


@dataclass
class PreviewItem:
    """What ``apply`` would do with one action (dry run)."""

    seq: int
    action: Action
    status: str  # change, satisfied, skip, error
    detail: str = ""


class Applier:
    """Drive one run: snapshot, mutate, verify and record each action.

    Args:
        host: Where actions are applied.
        run: Paths of a freshly created run directory.
        default_timeout: Per-command timeout for actions without their own.
        on_entry: Called after every recorded manifest entry.
    """

    def __init__(
        self,
        host: Host,
        run: RunPaths,
        default_timeout: float | None = None,
        on_entry: EntryCallback | None = None,
    ) -> None:
        self.host = host
        self.run_paths = run
        self.store = run.store
        self.default_timeout = default_timeout
        self.on_entry = on_entry

    def run(self, action_list: ActionList) -> Manifest:
        """Apply every action and return the completed manifest."""
        actions = action_list.actions
        manifest = Manifest(
            run_id=self.run_paths.run_id,
            mode="apply",
            started_at=now_iso(),
            state=RunState.RUNNING,
            host=self.host.name,
            source=action_list.source,
            total_actions=len(actions),
        )
        logger.info("Run %s: applying %d actions from %s to %s",
                    manifest.run_id, len(actions), action_list.source, self.host.name)

        writer = ManifestWriter(self.run_paths.manifest, manifest)
        writer.open()
        try:
            state = self._apply_all(actions, writer)
            writer.finish(state)
        finally:
            writer.close()

        logger.info("Run %s finished: %s", manifest.run_id, manifest.state.value)
        self._write_artifacts(manifest)
        return manifest

    def _apply_all(self, actions: list[Action], writer: ManifestWriter) -> RunState:
        failures = False
        for seq, action in enumerate(actions, start=1):
            entry = self._apply_one(seq, action)
            writer.append(entry)
            if self.on_entry:
                self.on_entry(entry)

            if not entry.outcome.is_failure:
                continue
            failures = True
            if action.fatal or entry.outcome.error_kind == "unexpected":
                remaining = len(actions) - seq
                logger.error("Aborting run after %s failed; %d actions not attempted", action.id, remaining)
                return RunState.ABORTED

        return RunState.COMPLETED_WITH_FAILURES if failures else RunState.COMPLETED

    def _apply_one(self, seq: int, action: Action) -> ManifestEntry:
        started_at = now_iso()
        clock = time.monotonic()
        logger.debug("[%d] %s: %s", seq, action.id, ActionState.PENDING.value)

        handler = create_handler(action, self.host, self.default_timeout)
        try:
            outcome, snapshot = handler.apply(
                action,
                seq,
                record_snapshot=lambda snap: self.store.put(snap.action_id, snap),
                on_state=self._log_state,
            )
        except Exception as e:
            logger.exception("Unexpected error while applying %s", action.id)
            snapshot = self._stored_snapshot(action)
            outcome = Outcome.failed(f"unexpected error: {e}", error_kind="unexpected",
                                     mutated=snapshot is not None and not snapshot.noop)

        final = ActionState.FAILED if outcome.is_failure else ActionState.APPLIED
        logger.debug("[%d] %s: %s", seq, action.id, final.value)
        self._log_outcome(seq, action, outcome)

        return ManifestEntry(
            seq=seq,
            action=action,
            outcome=outcome,
            snapshot_ref=action.id if snapshot is not None else None,
            started_at=started_at,
            duration_ms=int((time.monotonic() - clock) * 1000),
        )

    def _stored_snapshot(self, action: Action) -> Snapshot | None:
        # Whatever was stored before the error must still be reverted
        try:
            return self.store.get(action.id)
        except SnapshotFailed as e:
            logger.error("Snapshot of %s unreadable after error: %s", action.id, e)
            return None

    @staticmethod
    def _log_state(action: Action, state: ActionState) -> None:
        logger.debug("%s: %s", action.id, state.value)

    @staticmethod
    def _log_outcome(seq: int, action: Action, outcome: Outcome) -> None:
        if outcome.is_failure:
            level = logging.ERROR if action.fatal else logging.WARNING
            logger.log(level, "[%d] %s failed (%s): %s", seq, action.id, outcome.error_kind, outcome.reason)
        else:
            logger.info("[%d] %s: %s", seq, action.id, outcome.status.value)
        for warning in outcome.warnings:
            logger.warning("[%d] %s: %s", seq, action.id, warning)

    def _write_artifacts(self, manifest: Manifest) -> None:
        """Write revert-plan.json and README next to the manifest."""
        plan = RevertPlanner(self.host, self.store, self.default_timeout).plan(manifest)
        try:
            write_durable(self.run_paths.revert_plan, json.dumps(plan.to_dict(), indent=2).encode("utf-8"))
            write_durable(self.run_paths.readme, render_readme(manifest, self.store.backed_up_files()).encode("utf-8"))
        except OSError as e:
            # The manifest and snapshots alone are enough to revert
            logger.warning("Could not write revert artifacts for %s: %s", manifest.run_id, e)


def preview(host: Host, action_list: ActionList, default_timeout: float | None = None) -> list[PreviewItem]:
    """Query every action without changing anything or creating a run."""
    items = []
    for seq, action in enumerate(action_list.actions, start=1):
        handler = create_handler(action, host, default_timeout)
        try:
            if handler.is_satisfied(action):
                items.append(PreviewItem(seq, action, "satisfied", "already in desired state"))
            else:
                items.append(PreviewItem(seq, action, "change", action.summary))
        except TargetNotFound as e:
            items.append(PreviewItem(seq, action, "skip", str(e)))
        except ActionError as e:
            items.append(PreviewItem(seq, action, "error", str(e)))
    return items


def render_readme(manifest: Manifest, backed_up: list[str]) -> str:
    changed = [entry for entry in manifest.entries if entry.status == OutcomeStatus.APPLIED]
    lines = [
        f"perftune {__version__} run {manifest.run_id}",
        "",
        f"Source:   {manifest.source}",
        f"Host:     {manifest.host}",
        f"Started:  {manifest.started_at}",
        f"Finished: {manifest.finished_at or '-'}",
        f"State:    {manifest.state.value}",
        "",
        f"Changed ({len(changed)}):",
    ]
    lines += [f"  - {entry.action.id}: {entry.action.summary}" for entry in changed] or ["  (none)"]
    lines += ["", "Backed up files (under backup/):"]
    lines += [f"  - /{path}" for path in backed_up] or ["  (none)"]
    lines += [
        "",
        "To restore the previous state:",
        f"  perftune revert {manifest.run_id}",
        "",
        "Preview the inverse steps first with:",
        f"  perftune revert --dry-run {manifest.run_id}",
        "",
    ]
    return "\n".join(lines)
