"""Kernel parameter interface - runtime sysctl values."""

from perftune.connector.base import CommandResult, Host
from perftune.errors import MutationFailed, PermissionDenied, TargetNotFound


def normalize_value(value: str) -> str:
    """Collapse whitespace so ``4096\t16384`` compares equal to ``4096 16384``."""
    return " ".join(str(value).split())


class SysctlManager:
    """Read and write kernel parameters with the sysctl binary."""

    def __init__(self, host: Host, timeout: float | None = None) -> None:
        self.host = host
        self.timeout = timeout

    def _raise_for(self, result: CommandResult, key: str, action: str) -> None:
        if result.exit_code == 127:
            raise TargetNotFound("sysctl is not available on this host")
        lowered = result.stderr.lower()
        if "permission denied" in lowered or "operation not permitted" in lowered:
            raise PermissionDenied(f"Cannot {action} {key}: {result.output}")
        if action == "read":
            raise TargetNotFound(f"Unknown kernel parameter {key}")
        raise MutationFailed(f"Cannot {action} {key}: {result.output}")

    def get(self, key: str) -> str:
        result = self.host.run(["sysctl", "-n", key], timeout=self.timeout)
        if not result.success:
            self._raise_for(result, key, "read")
        return normalize_value(result.stdout)

    def set(self, key: str, value: str) -> None:
        result = self.host.run(["sysctl", "-w", f"{key}={value}"], timeout=self.timeout)
        if not result.success:
            self._raise_for(result, key, "write")

