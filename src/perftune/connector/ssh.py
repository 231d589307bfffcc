"""SSH Host - apply tuning to a remote server.

Commands run over a paramiko session, optionally through sudo. File content
is moved base64-encoded through the shell so that writes work through sudo
without SFTP write access, and bytes round-trip exactly.
"""

import base64
import secrets
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import paramiko
from paramiko.ssh_exception import AuthenticationException, SSHException

from perftune.connector.base import CommandResult, FileStat, Host
from perftune.errors import HostError, MutationFailed, PermissionDenied, TimeoutExceeded


@dataclass
class SSHConfig:
    """SSH connection configuration."""

    host: str
    user: str = "root"
    port: int = 22
    key_path: str | None = None
    password: str | None = None  # Fallback, prefer keys
    use_sudo: bool = True
    timeout: int = 30


class SSHHost(Host):
    """Host implementation for a remote server.

    Example:
        >>> config = SSHConfig(host="192.168.1.100", user="deploy")
        >>> with SSHHost(config) as host:
        ...     result = host.run(["sysctl", "-n", "vm.swappiness"])
        ...     print(result.stdout)
    """

    def __init__(self, config: SSHConfig) -> None:
        self.config = config
        self.name = f"ssh:{config.user}@{config.host}:{config.port}"
        self._client: paramiko.SSHClient | None = None

    def connect(self) -> None:
        """Establish SSH connection."""
        self._client = paramiko.SSHClient()
        self._client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_kwargs: dict = {
            "hostname": self.config.host,
            "port": self.config.port,
            "username": self.config.user,
            "timeout": self.config.timeout,
        }

        # Prefer key-based authentication
        if self.config.key_path:
            key_path = Path(self.config.key_path).expanduser()
            if key_path.exists():
                connect_kwargs["key_filename"] = str(key_path)
        elif self.config.password:
            connect_kwargs["password"] = self.config.password

        try:
            self._client.connect(**connect_kwargs)
        except AuthenticationException as e:
            raise HostError(f"Authentication failed: {e}") from e
        except (SSHException, OSError) as e:
            raise HostError(f"SSH error: {e}") from e

    def disconnect(self) -> None:
        """Close SSH connection."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "SSHHost":
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        self.disconnect()

    def _wrap(self, command: str) -> str:
        if self.config.use_sudo and self.config.user != "root":
            if self.config.password:
                # Use -S to read password from stdin
                return f"echo {shlex.quote(self.config.password)} | sudo -S -p '' sh -c {shlex.quote(command)}"
            return f"sudo -n sh -c {shlex.quote(command)}"
        return command

    def _exec(self, command: str, timeout: float | None) -> CommandResult:
        if not self._client:
            raise RuntimeError("Not connected. Use 'with SSHHost(config):' context.")

        cmd_timeout = timeout if timeout is not None else self.config.timeout
        try:
            _, stdout, stderr = self._client.exec_command(self._wrap(command), timeout=cmd_timeout)
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            exit_code = stdout.channel.recv_exit_status()
        except TimeoutError as e:
            raise TimeoutExceeded(f"'{command}' timed out after {cmd_timeout}s") from e
        except SSHException as e:
            return CommandResult(
                command=command,
                stdout="",
                stderr=f"SSH Execution Error: {e}",
                exit_code=255,
            )

        return CommandResult(command=command, stdout=out, stderr=err, exit_code=exit_code)

    def run(self, argv: Sequence[str], *, timeout: float | None = None) -> CommandResult:
        return self._exec(shlex.join(argv), timeout)

    def _check(self, result: CommandResult, what: str) -> None:
        if result.success:
            return
        if "Permission denied" in result.stderr or "Operation not permitted" in result.stderr:
            raise PermissionDenied(f"{what}: {result.output}")
        raise MutationFailed(f"{what}: {result.output}")

    def read_bytes(self, path: str) -> bytes | None:
        quoted = shlex.quote(path)
        if not self._exec(f"test -e {quoted}", None).success:
            return None
        result = self._exec(f"base64 {quoted}", None)
        self._check(result, f"Cannot read {path}")
        return base64.b64decode(result.stdout)

    def stat(self, path: str) -> FileStat | None:
        quoted = shlex.quote(path)
        if not self._exec(f"test -e {quoted}", None).success:
            return None
        result = self._exec(f"stat -c '%a %u %g %s' {quoted}", None)
        self._check(result, f"Cannot stat {path}")
        mode, uid, gid, size = result.stdout.split()
        return FileStat(mode=int(mode, 8), uid=int(uid), gid=int(gid), size=int(size))

    def write_bytes(self, path: str, data: bytes, mode: int) -> None:
        directory, name = path.rsplit("/", 1)
        temp_file = f"{directory or ''}/.{name}.perftune-{secrets.token_hex(4)}"
        encoded = base64.b64encode(data).decode("ascii")
        # Temp file + mv keeps the replacement atomic on the remote side
        script = (
            f"echo {shlex.quote(encoded)} | base64 -d > {shlex.quote(temp_file)}"
            f" && chmod {mode:o} {shlex.quote(temp_file)}"
            f" && mv -f {shlex.quote(temp_file)} {shlex.quote(path)}"
        )
        result = self._exec(script, None)
        if not result.success:
            self._exec(f"rm -f {shlex.quote(temp_file)}", None)
        self._check(result, f"Cannot write {path}")

    def chown(self, path: str, uid: int, gid: int) -> None:
        self._check(self._exec(f"chown {uid}:{gid} {shlex.quote(path)}", None), f"Cannot chown {path}")

    def remove(self, path: str) -> None:
        self._check(self._exec(f"rm -f {shlex.quote(path)}", None), f"Cannot remove {path}")

    def is_dir(self, path: str) -> bool:
        return self._exec(f"test -d {shlex.quote(path)}", None).success

    def make_dir(self, path: str, mode: int = 0o755) -> None:
        result = self._exec(f"mkdir -m {mode:o} {shlex.quote(path)}", None)
        if not result.success and self.is_dir(path):
            return
        self._check(result, f"Cannot create {path}")

    def remove_dir(self, path: str) -> bool:
        quoted = shlex.quote(path)
        if not self.is_dir(path):
            return True
        if self._exec(f"ls -A {quoted}", None).stdout.strip():
            return False
        self._check(self._exec(f"rmdir {quoted}", None), f"Cannot remove {path}")
        return True

    def is_root(self) -> bool:
        result = self._exec("id -u", None)
        return result.success and result.stdout.strip() == "0"
