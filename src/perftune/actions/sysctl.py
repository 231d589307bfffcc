"""Sysctl Action - set a runtime kernel parameter.

CONTRACT:
- snapshot: prior value
- rollback_support: True
- unknown key: Skipped
"""

from perftune.actions.base import ActionHandler
from perftune.errors import MutationFailed
from perftune.model.action import Action, ActionKind
from perftune.model.snapshot import Snapshot
from perftune.system.kernel import SysctlManager, normalize_value


class SysctlHandler(ActionHandler):
    kind = ActionKind.SET_SYSCTL

    def __init__(self, host, timeout: float | None = None) -> None:
        super().__init__(host, timeout)
        self.kernel = SysctlManager(host, timeout)

    def is_satisfied(self, action: Action) -> bool:
        return self.kernel.get(action.target) == normalize_value(action.params["value"])

    def capture(self, action: Action) -> tuple[dict, bytes | None]:
        return {"value": self.kernel.get(action.target)}, None

    def mutate(self, action: Action, snapshot: Snapshot) -> list[str]:
        self.kernel.set(action.target, action.params["value"])
        return []

    def verify(self, action: Action) -> bool:
        return self.is_satisfied(action)

    def restore(self, action: Action, snapshot: Snapshot) -> list[str]:
        previous = snapshot.state["value"]
        if self.kernel.get(action.target) == normalize_value(previous):
            return []
        self.kernel.set(action.target, previous)
        if self.kernel.get(action.target) != normalize_value(previous):
            raise MutationFailed(f"{action.target} did not return to {previous!r}")
        return []

    def describe_inverse(self, action: Action, snapshot: Snapshot) -> str | None:
        return f"set {action.target} = {snapshot.state['value']}"
