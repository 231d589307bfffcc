"""Service manager - query and change systemd unit state via systemctl."""

from perftune.connector.base import CommandResult, Host
from perftune.errors import MutationFailed, PermissionDenied, TargetNotFound

ENABLED_STATES = frozenset({"enabled", "enabled-runtime"})
DISABLED_STATES = frozenset({"disabled"})


class ServiceManager:
    """Thin wrapper around systemctl.

    Unit names are passed through verbatim; ``cups.service`` and
    ``apt-daily.timer`` are both valid.
    """

    def __init__(self, host: Host, timeout: float | None = None) -> None:
        self.host = host
        self.timeout = timeout

    def _systemctl(self, *args: str) -> CommandResult:
        result = self.host.run(["systemctl", *args], timeout=self.timeout)
        if result.exit_code == 127:
            raise TargetNotFound("systemctl is not available on this host")
        return result

    def _change(self, verb: str, unit: str) -> None:
        result = self._systemctl(verb, unit)
        if result.success:
            return
        if "Access denied" in result.stderr or "Permission denied" in result.stderr:
            raise PermissionDenied(f"systemctl {verb} {unit}: {result.output}")
        raise MutationFailed(f"systemctl {verb} {unit} failed: {result.output}")

    def exists(self, unit: str) -> bool:
        """Check whether a unit file is installed."""
        result = self._systemctl("list-unit-files", "--no-legend", "--no-pager", unit)
        for line in result.stdout.splitlines():
            parts = line.split()
            if parts and parts[0] == unit:
                return True
        return False

    def enabled_state(self, unit: str) -> str:
        """Return the raw ``systemctl is-enabled`` state (enabled, disabled, masked, static...)."""
        # is-enabled exits non-zero for disabled units; stdout is still authoritative
        result = self._systemctl("is-enabled", unit)
        lines = result.stdout.strip().splitlines()
        return lines[0].strip() if lines else "unknown"

    def is_active(self, unit: str) -> bool:
        return self._systemctl("is-active", "--quiet", unit).success

    def set_enabled(self, unit: str, enabled: bool) -> None:
        self._change("enable" if enabled else "disable", unit)

    def set_active(self, unit: str, active: bool) -> None:
        self._change("start" if active else "stop", unit)

    def mask(self, unit: str) -> None:
        self._change("mask", unit)

    def unmask(self, unit: str) -> None:
        self._change("unmask", unit)
