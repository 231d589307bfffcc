"""Pytest configuration and fixtures for perftune tests."""

import shlex
import sys
from pathlib import Path
from typing import Callable, Sequence

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from perftune.connector.base import CommandResult
from perftune.connector.local import LocalHost
from perftune.model.schema import ActionList, parse_action_list
from perftune.storage.runs import RunRegistry


class FakeHost(LocalHost):
    """LocalHost over a temporary root with systemctl and sysctl emulated in memory.

    Files are real (under ``root``); units, kernel parameters and any other
    command are answered from the dictionaries below, so commands are allowed
    even though a root is set.
    """

    def __init__(self, root: Path) -> None:
        super().__init__(root=root)
        self.units: dict[str, dict] = {}
        self.kernel: dict[str, str] = {}
        self.readonly_keys: set[str] = set()
        self.commands: dict[str, Callable[[list[str]], CommandResult] | CommandResult] = {}
        self.failing: dict[str, str] = {}
        self.calls: list[str] = []
        self.root_user = True

    def add_unit(self, name: str, enabled: str = "disabled", active: bool = False, masked: bool = False) -> None:
        self.units[name] = {"enabled": enabled, "active": active, "masked": masked}

    def is_root(self) -> bool:
        return self.root_user

    def require_commands(self) -> None:
        pass

    def run(self, argv: Sequence[str], *, timeout: float | None = None) -> CommandResult:
        argv = list(argv)
        command = shlex.join(argv)
        self.calls.append(command)

        if command in self.failing:
            return CommandResult(command, "", self.failing[command], 1)
        if argv[0] == "systemctl":
            return self._systemctl(command, argv[1:])
        if argv[0] == "sysctl":
            return self._sysctl(command, argv[1:])
        if command in self.commands:
            response = self.commands[command]
            return response(argv) if callable(response) else response
        return CommandResult(command, "", f"{argv[0]}: command not found", 127)

    def _systemctl(self, command: str, args: list[str]) -> CommandResult:
        verb, unit = args[0], args[-1]
        state = self.units.get(unit)

        def ok(stdout: str = "") -> CommandResult:
            return CommandResult(command, stdout, "", 0)

        def fail(stderr: str, code: int = 1) -> CommandResult:
            return CommandResult(command, "", stderr, code)

        if verb == "list-unit-files":
            if state is None:
                return fail("", 1)
            return ok(f"{unit} {state['enabled']} enabled\n")
        if state is None:
            return fail(f"Unit {unit} not found.", 5)

        if verb == "is-enabled":
            shown = "masked" if state["masked"] else state["enabled"]
            return CommandResult(command, shown + "\n", "", 0 if shown == "enabled" else 1)
        if verb == "is-active":
            return ok() if state["active"] else CommandResult(command, "", "", 3)
        if verb in ("enable", "start") and state["masked"]:
            return fail(f"Failed to {verb} unit: Unit file /etc/systemd/system/{unit} is masked.")
        if verb == "enable":
            state["enabled"] = "enabled"
        elif verb == "disable":
            state["enabled"] = "disabled"
        elif verb == "start":
            state["active"] = True
        elif verb == "stop":
            state["active"] = False
        elif verb == "mask":
            state["masked"] = True
        elif verb == "unmask":
            state["masked"] = False
        else:
            return fail(f"Unknown command verb {verb}.")
        return ok()

    def _sysctl(self, command: str, args: list[str]) -> CommandResult:
        if args == ["--system"]:
            return CommandResult(command, "", "", 0)
        if args[0] == "-n":
            key = args[1]
            if key not in self.kernel:
                return CommandResult(command, "", f"sysctl: cannot stat /proc/sys/{key.replace('.', '/')}: No such file or directory", 255)
            return CommandResult(command, self.kernel[key] + "\n", "", 0)
        if args[0] == "-w":
            key, _, value = args[1].partition("=")
            if key not in self.kernel:
                return CommandResult(command, "", f"sysctl: cannot stat /proc/sys/{key.replace('.', '/')}: No such file or directory", 255)
            if key in self.readonly_keys:
                return CommandResult(command, "", f"sysctl: permission denied on key '{key}'", 255)
            self.kernel[key] = value
            return CommandResult(command, f"{key} = {value}\n", "", 0)
        return CommandResult(command, "", "sysctl: unknown option", 1)

    def path(self, target: str) -> Path:
        return self.resolve(target)


@pytest.fixture
def host(tmp_path):
    """A FakeHost rooted at tmp_path/root with /etc present."""
    root = tmp_path / "root"
    (root / "etc").mkdir(parents=True)
    return FakeHost(root)


@pytest.fixture
def registry(tmp_path):
    return RunRegistry(tmp_path / "state")


@pytest.fixture
def make_list() -> Callable[..., ActionList]:
    """Build a validated ActionList from raw action dicts."""

    def _make(*actions: dict, **defaults) -> ActionList:
        raw = {"name": "test", "actions": list(actions)}
        if defaults:
            raw["defaults"] = defaults
        return parse_action_list(raw, source="test.yaml")

    return _make


@pytest.fixture
def sysctl_conf():
    return {
        "kind": "write_file",
        "path": "/etc/sysctl.d/99-perf.conf",
        "content": "vm.swappiness = 10\n",
        "mode": "0644",
    }
