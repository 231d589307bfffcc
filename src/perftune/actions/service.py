"""Service State Action - enable/disable, start/stop, mask/unmask a unit.

CONTRACT:
- snapshot: prior is-enabled state, active flag, masked flag
- rollback_support: True
- absent unit: Skipped ("unit not found"), never an error
"""

from perftune.actions.base import ActionHandler
from perftune.errors import TargetNotFound
from perftune.model.action import Action, ActionKind
from perftune.model.snapshot import Snapshot
from perftune.system.services import DISABLED_STATES, ENABLED_STATES, ServiceManager


class ServiceStateHandler(ActionHandler):
    """Drive a systemd unit to the declared enabled/active/masked state."""

    kind = ActionKind.SET_SERVICE_STATE

    def __init__(self, host, timeout: float | None = None) -> None:
        super().__init__(host, timeout)
        self.services = ServiceManager(host, timeout)

    def _current(self, unit: str) -> dict:
        if not self.services.exists(unit):
            raise TargetNotFound("unit not found")
        enabled_state = self.services.enabled_state(unit)
        return {
            "enabled_state": enabled_state,
            "enabled": enabled_state in ENABLED_STATES,
            "masked": enabled_state.startswith("masked"),
            "active": self.services.is_active(unit),
        }

    def is_satisfied(self, action: Action) -> bool:
        current = self._current(action.target)
        for key in ("enabled", "active", "masked"):
            desired = action.params.get(key)
            if desired is not None and current[key] != desired:
                return False
        return True

    def capture(self, action: Action) -> tuple[dict, bytes | None]:
        return self._current(action.target), None

    def mutate(self, action: Action, snapshot: Snapshot) -> list[str]:
        unit = action.target
        enabled = action.params.get("enabled")
        active = action.params.get("active")
        masked = action.params.get("masked")
        current = snapshot.state

        # Unmask first: a masked unit can be neither enabled nor started
        if masked is False and current["masked"]:
            self.services.unmask(unit)
            current = self._current(unit)
        if enabled is not None and current["enabled"] != enabled:
            self.services.set_enabled(unit, enabled)
        if active is not None and current["active"] != active:
            self.services.set_active(unit, active)
        if masked and not current["masked"]:
            self.services.mask(unit)
        return []

    def verify(self, action: Action) -> bool:
        return self.is_satisfied(action)

    def restore(self, action: Action, snapshot: Snapshot) -> list[str]:
        unit = action.target
        before = snapshot.state
        current = self._current(unit)

        if current["masked"] and not before["masked"]:
            self.services.unmask(unit)
            current = self._current(unit)

        if before["enabled_state"] in ENABLED_STATES and not current["enabled"]:
            self.services.set_enabled(unit, True)
        elif before["enabled_state"] in DISABLED_STATES and current["enabled"]:
            self.services.set_enabled(unit, False)

        if current["active"] != before["active"]:
            self.services.set_active(unit, before["active"])

        if before["masked"] and not current["masked"]:
            self.services.mask(unit)
        return []

    def describe_inverse(self, action: Action, snapshot: Snapshot) -> str | None:
        before = snapshot.state
        steps = []
        if before["masked"]:
            steps.append("mask")
        elif action.params.get("masked"):
            steps.append("unmask")
        if before["enabled_state"] in ENABLED_STATES | DISABLED_STATES:
            steps.append("enable" if before["enabled"] else "disable")
        steps.append("start" if before["active"] else "stop")
        return f"{', '.join(steps)} {action.target} (was {before['enabled_state']})"
