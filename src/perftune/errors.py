"""Error hierarchy for perftune.

ActionError subclasses carry an ``error_kind`` tag that is recorded in the
manifest when an action fails. Everything else is raised to the CLI.
"""


class PerftuneError(Exception):
    """Base exception for all perftune failures."""


class ActionError(PerftuneError):
    """Failure while querying, snapshotting, mutating or restoring a target."""

    error_kind = "error"


class PermissionDenied(ActionError):
    error_kind = "permission_denied"


class TargetNotFound(ActionError):
    """The target (file, unit, kernel key) does not exist on the host."""

    error_kind = "target_not_found"


class SnapshotFailed(ActionError):
    """Prior state could not be captured or persisted. Never mutate after this."""

    error_kind = "snapshot_failed"


class MutationFailed(ActionError):
    error_kind = "mutation_failed"


class TimeoutExceeded(ActionError):
    error_kind = "timeout_exceeded"


class ActionListError(PerftuneError):
    """The action list file is missing or invalid."""


class ManifestError(PerftuneError):
    """A run manifest is missing or unreadable."""


class RunNotFound(ManifestError):
    pass


class HostError(PerftuneError):
    """Connection to the target host failed."""


class ConfigError(PerftuneError):
    """settings.yaml or profiles.yaml is unreadable or invalid."""


__all__ = [
    "ActionError",
    "ActionListError",
    "ConfigError",
    "HostError",
    "ManifestError",
    "MutationFailed",
    "PerftuneError",
    "PermissionDenied",
    "RunNotFound",
    "SnapshotFailed",
    "TargetNotFound",
    "TimeoutExceeded",
]
