"""Action handler base - the snapshot-before-mutate contract.

Every handler implements five primitives against a Host:

- is_satisfied: query the target, True if already in the desired state
- capture: read the prior state needed for undo
- mutate: change the target
- verify: cheap postcondition check after mutation
- restore: put a captured snapshot back

``ActionHandler.apply`` sequences them and is the only place that decides the
Outcome. The sequence never mutates before the snapshot has been handed to
``record_snapshot`` (the per-run backup store) and returned successfully.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable

from perftune.connector.base import Host
from perftune.errors import ActionError, MutationFailed, SnapshotFailed, TargetNotFound
from perftune.model.action import Action, ActionKind
from perftune.model.outcome import Outcome
from perftune.model.run import ActionState
from perftune.model.snapshot import Snapshot

logger = logging.getLogger(__name__)

RecordSnapshot = Callable[[Snapshot], None]
StateCallback = Callable[[Action, ActionState], None]


class ActionHandler(ABC):
    """Abstract base for all action kinds.

    Attributes:
        kind: The ActionKind this handler applies.
        rollback_support: Whether a failed mutation is undone in place from
            the snapshot. Handlers that cannot tell what a failed mutation
            changed (commands) set this to False.
    """

    kind: ActionKind
    rollback_support: bool = True

    def __init__(self, host: Host, timeout: float | None = None) -> None:
        self.host = host
        self.timeout = timeout

    @abstractmethod
    def is_satisfied(self, action: Action) -> bool:
        """Query the host. Raises TargetNotFound if the target is absent."""

    @abstractmethod
    def capture(self, action: Action) -> tuple[dict, bytes | None]:
        """Return (state, content) describing the target before mutation."""

    @abstractmethod
    def mutate(self, action: Action, snapshot: Snapshot) -> list[str]:
        """Change the target. Returns non-fatal warnings."""

    @abstractmethod
    def verify(self, action: Action) -> bool:
        """Check the postcondition after mutation."""

    @abstractmethod
    def restore(self, action: Action, snapshot: Snapshot) -> list[str]:
        """Restore the snapshot. Returns non-fatal warnings."""

    @abstractmethod
    def describe_inverse(self, action: Action, snapshot: Snapshot) -> str | None:
        """Human description of what restore() would do, or None if nothing."""

    def apply(
        self,
        action: Action,
        seq: int,
        record_snapshot: RecordSnapshot,
        on_state: StateCallback | None = None,
    ) -> tuple[Outcome, Snapshot | None]:
        """Apply one action and return its outcome and snapshot.

        Args:
            action: The action to apply.
            seq: 1-based position of the action in the run.
            record_snapshot: Persists the snapshot; must raise SnapshotFailed
                if it could not be stored durably.
            on_state: Optional progress callback.

        Returns:
            (Outcome, Snapshot or None). A snapshot is returned whenever one
            was recorded, including the no-op snapshot of a satisfied action.
        """
        notify = on_state or (lambda _action, _state: None)

        # Step 1: Query current state
        try:
            satisfied = self.is_satisfied(action)
        except TargetNotFound as e:
            return Outcome.skipped(str(e)), None
        except ActionError as e:
            return Outcome.failed(e), None

        # Step 2: Nothing to do, still record a no-op snapshot for symmetric revert
        if satisfied:
            snapshot = Snapshot(action_id=action.id, seq=seq, action=action.to_dict(), noop=True)
            outcome = Outcome.already_satisfied()
            try:
                record_snapshot(snapshot)
            except ActionError as e:
                outcome.warnings.append(f"no-op snapshot not recorded: {e}")
            return outcome, snapshot

        # Step 3: Snapshot, fail closed
        notify(action, ActionState.SNAPSHOTTING)
        try:
            state, content = self.capture(action)
            snapshot = Snapshot(
                action_id=action.id,
                seq=seq,
                action=action.to_dict(),
                state=state,
                content=content,
            )
            record_snapshot(snapshot)
        except ActionError as e:
            return Outcome.failed(SnapshotFailed(f"target left untouched: {e}")), None

        # Step 4: Mutate and verify
        notify(action, ActionState.MUTATING)
        try:
            warnings = self.mutate(action, snapshot)
        except ActionError as e:
            mutated = self._rollback_in_place(action, snapshot)
            return Outcome.failed(e, mutated=mutated), snapshot

        try:
            if not self.verify(action):
                raise MutationFailed(f"postcondition not met after changing {action.target}")
        except ActionError as e:
            # mutate() completed, so without in-place rollback the target is changed
            if self.rollback_support:
                mutated = self._rollback_in_place(action, snapshot)
            else:
                mutated = True
            return Outcome.failed(e, mutated=mutated), snapshot

        return Outcome.applied(warnings=warnings), snapshot

    def _rollback_in_place(self, action: Action, snapshot: Snapshot) -> bool:
        """Undo a failed mutation. Returns True if the host may still be changed."""
        if not self.rollback_support:
            return False
        try:
            self.restore(action, snapshot)
        except ActionError as e:
            logger.error("Rollback of %s failed, target may be modified: %s", action.id, e)
            return True
        logger.warning("Rolled back %s after failed mutation", action.id)
        return False
