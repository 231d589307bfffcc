"""Host interface - the boundary between perftune and the machine being tuned.

Actions never touch the operating system directly. Every command, file read
and file write goes through a Host so the same engine drives the local
machine, an alternate root, or a remote server over SSH.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Sequence


@dataclass
class CommandResult:
    """Result of a command execution."""

    command: str
    stdout: str
    stderr: str
    exit_code: int
    success: bool = field(init=False)

    def __post_init__(self) -> None:
        self.success = self.exit_code == 0

    @property
    def output(self) -> str:
        """Best available diagnostic text (stderr first)."""
        return (self.stderr or self.stdout).strip()


@dataclass(frozen=True)
class FileStat:
    """Subset of stat(2) needed to restore a file exactly."""

    mode: int  # permission bits only
    uid: int
    gid: int
    size: int


class Host(ABC):
    """Abstract target host.

    Path arguments are always absolute paths as seen by the tuned system.
    File methods raise ``PermissionDenied`` when access is refused and
    ``MutationFailed`` for other write errors. ``run`` raises
    ``TimeoutExceeded`` when the timeout elapses.
    """

    name: str = "host"

    @abstractmethod
    def run(self, argv: Sequence[str], *, timeout: float | None = None) -> CommandResult:
        """Execute a command and capture its output."""

    @abstractmethod
    def read_bytes(self, path: str) -> bytes | None:
        """Return file content, or None if the file does not exist."""

    @abstractmethod
    def stat(self, path: str) -> FileStat | None:
        """Return file metadata, or None if the file does not exist."""

    @abstractmethod
    def write_bytes(self, path: str, data: bytes, mode: int) -> None:
        """Atomically replace ``path`` with ``data`` and set its mode."""

    @abstractmethod
    def chown(self, path: str, uid: int, gid: int) -> None:
        """Change file ownership."""

    @abstractmethod
    def remove(self, path: str) -> None:
        """Delete a file. Missing files are ignored."""

    @abstractmethod
    def is_dir(self, path: str) -> bool:
        """Check whether a directory exists."""

    @abstractmethod
    def make_dir(self, path: str, mode: int = 0o755) -> None:
        """Create a single directory (parent must exist)."""

    @abstractmethod
    def remove_dir(self, path: str) -> bool:
        """Remove an empty directory. Returns False if it was not empty."""

    @abstractmethod
    def is_root(self) -> bool:
        """Whether commands run with root privileges."""

    def require_commands(self) -> None:
        """Raise ``TargetNotFound`` if commands cannot run against this host."""

    def missing_parents(self, path: str) -> list[str]:
        """List the ancestors of ``path`` that do not exist, outermost first."""
        missing: list[str] = []
        parent = path.rstrip("/").rsplit("/", 1)[0]
        while parent and not self.is_dir(parent):
            missing.append(parent)
            parent = parent.rsplit("/", 1)[0]
        return list(reversed(missing))
