"""Local Host - run commands and edit files on this machine.

Supports an alternate root directory: absolute target paths such as
``/etc/sysctl.d/99-perf.conf`` are mapped under ``root``. Commands would act
on the running system rather than the tree under ``root``, so with a root set
``run`` refuses them with ``TargetNotFound`` and the service, sysctl and
command actions that need them are Skipped. Only file actions take effect.
"""

import os
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Sequence

from perftune.connector.base import CommandResult, FileStat, Host
from perftune.errors import MutationFailed, PermissionDenied, TargetNotFound, TimeoutExceeded


class LocalHost(Host):
    """Host implementation backed by subprocess and the local filesystem."""

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root).resolve() if root else None
        self.name = f"local:{self.root}" if self.root else "local"

    def resolve(self, path: str) -> Path:
        """Map an absolute target path onto the local filesystem."""
        if not path.startswith("/"):
            raise ValueError(f"Target paths must be absolute: {path}")
        if self.root is None:
            return Path(path)
        return self.root / path.lstrip("/")

    def require_commands(self) -> None:
        if self.root is not None:
            raise TargetNotFound(f"commands are not run under alternate root {self.root}")

    def run(self, argv: Sequence[str], *, timeout: float | None = None) -> CommandResult:
        self.require_commands()
        command = shlex.join(argv)
        try:
            proc = subprocess.run(
                list(argv),
                capture_output=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise TimeoutExceeded(f"'{command}' timed out after {timeout}s") from e
        except FileNotFoundError:
            return CommandResult(
                command=command,
                stdout="",
                stderr=f"{argv[0]}: command not found",
                exit_code=127,
            )
        except PermissionError as e:
            raise PermissionDenied(f"Cannot execute '{command}': {e}") from e

        return CommandResult(
            command=command,
            stdout=proc.stdout.decode("utf-8", errors="replace"),
            stderr=proc.stderr.decode("utf-8", errors="replace"),
            exit_code=proc.returncode,
        )

    def read_bytes(self, path: str) -> bytes | None:
        target = self.resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            return None
        except PermissionError as e:
            raise PermissionDenied(f"Cannot read {path}: {e}") from e
        except IsADirectoryError as e:
            raise MutationFailed(f"{path} is a directory") from e

    def stat(self, path: str) -> FileStat | None:
        target = self.resolve(path)
        try:
            st = target.stat()
        except FileNotFoundError:
            return None
        except PermissionError as e:
            raise PermissionDenied(f"Cannot stat {path}: {e}") from e
        return FileStat(mode=st.st_mode & 0o7777, uid=st.st_uid, gid=st.st_gid, size=st.st_size)

    def write_bytes(self, path: str, data: bytes, mode: int) -> None:
        target = self.resolve(path)
        # Write to a temp file in the same directory and rename for atomicity
        try:
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        except PermissionError as e:
            raise PermissionDenied(f"Cannot write {path}: {e}") from e
        except OSError as e:
            raise MutationFailed(f"Cannot write {path}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, target)
        except PermissionError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise PermissionDenied(f"Cannot write {path}: {e}") from e
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise MutationFailed(f"Cannot write {path}: {e}") from e

    def chown(self, path: str, uid: int, gid: int) -> None:
        try:
            os.chown(self.resolve(path), uid, gid)
        except PermissionError as e:
            raise PermissionDenied(f"Cannot chown {path}: {e}") from e
        except OSError as e:
            raise MutationFailed(f"Cannot chown {path}: {e}") from e

    def remove(self, path: str) -> None:
        try:
            self.resolve(path).unlink(missing_ok=True)
        except PermissionError as e:
            raise PermissionDenied(f"Cannot remove {path}: {e}") from e
        except OSError as e:
            raise MutationFailed(f"Cannot remove {path}: {e}") from e

    def is_dir(self, path: str) -> bool:
        return self.resolve(path).is_dir()

    def make_dir(self, path: str, mode: int = 0o755) -> None:
        try:
            self.resolve(path).mkdir(mode=mode)
        except FileExistsError:
            return
        except PermissionError as e:
            raise PermissionDenied(f"Cannot create {path}: {e}") from e
        except OSError as e:
            raise MutationFailed(f"Cannot create {path}: {e}") from e

    def remove_dir(self, path: str) -> bool:
        target = self.resolve(path)
        if not target.is_dir():
            return True
        if any(target.iterdir()):
            return False
        try:
            target.rmdir()
        except PermissionError as e:
            raise PermissionDenied(f"Cannot remove {path}: {e}") from e
        except OSError as e:
            raise MutationFailed(f"Cannot remove {path}: {e}") from e
        return True

    def is_root(self) -> bool:
        return os.geteuid() == 0
