"""Run Command Action - escape hatch for operations with no queryable state.

CONTRACT:
- snapshot: the declared undo command
- rollback_support: False (a failed command is assumed to have changed nothing;
  a command that succeeded but whose check still fails is recorded as mutated
  so revert runs its undo)
- alternate root: Skipped, commands only run on a real host
- idempotence: via ``check`` when declared, otherwise the command itself must be
"""

import shlex

from perftune.actions.base import ActionHandler
from perftune.errors import MutationFailed
from perftune.model.action import Action, ActionKind
from perftune.model.snapshot import Snapshot


class RunCommandHandler(ActionHandler):
    kind = ActionKind.RUN_COMMAND
    rollback_support = False

    def is_satisfied(self, action: Action) -> bool:
        self.host.require_commands()
        check = action.params.get("check")
        if not check:
            return False
        return self.host.run(check, timeout=self.timeout).success

    def capture(self, action: Action) -> tuple[dict, bytes | None]:
        return {"undo": action.params.get("undo")}, None

    def mutate(self, action: Action, snapshot: Snapshot) -> list[str]:
        result = self.host.run(action.params["command"], timeout=self.timeout)
        if not result.success:
            raise MutationFailed(f"'{result.command}' exited {result.exit_code}: {result.output}")
        return []

    def verify(self, action: Action) -> bool:
        check = action.params.get("check")
        if not check:
            return True
        return self.host.run(check, timeout=self.timeout).success

    def restore(self, action: Action, snapshot: Snapshot) -> list[str]:
        undo = snapshot.state.get("undo")
        if not undo:
            return []
        result = self.host.run(undo, timeout=self.timeout)
        if not result.success:
            raise MutationFailed(f"undo '{result.command}' exited {result.exit_code}: {result.output}")
        return []

    def describe_inverse(self, action: Action, snapshot: Snapshot) -> str | None:
        undo = snapshot.state.get("undo")
        return f"run {shlex.join(undo)}" if undo else None
