"""Action list schema - validation of user supplied action list files.

An action list is a YAML (or JSON) document:

    name: performance
    defaults:
      fatal: false
      timeout: 60
    actions:
      - kind: write_file
        path: /etc/sysctl.d/99-perf.conf
        content: "vm.swappiness = 10\\n"
        reload: [sysctl, --system]
        fatal: true
      - kind: set_service_state
        unit: cups.service
        enabled: false
        active: false
"""

import shlex
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Annotated, Literal, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from perftune.errors import ActionListError
from perftune.model.action import Action, ActionKind

PROFILE_PACKAGE = "perftune.profiles"


def _argv(value: object) -> list[str] | None:
    """Accept an argv list or a shell string (run through ``sh -c``)."""
    if value is None:
        return None
    if isinstance(value, str):
        return ["sh", "-c", value]
    return [str(part) for part in value]


class _ActionSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str | None = Field(None, description="Unique action id; derived from the target when omitted")
    description: str = ""
    fatal: bool | None = Field(None, description="Abort the run if this action fails")
    timeout: float | None = Field(None, gt=0, description="Seconds allowed per external command")


class WriteFileSpec(_ActionSpec):
    kind: Literal["write_file"]
    path: str
    content: str
    mode: int = Field(0o644, description="Permission bits, octal string or int")
    reload: list[str] | None = Field(None, description="Command run after writing or restoring")

    @field_validator("path")
    @classmethod
    def _absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("path must be absolute")
        if value.endswith("/"):
            raise ValueError("path must name a file")
        return value

    @field_validator("mode", mode="before")
    @classmethod
    def _octal(cls, value: object) -> object:
        if isinstance(value, str):
            return int(value, 8)
        return value

    @field_validator("mode")
    @classmethod
    def _mode_range(cls, value: int) -> int:
        if not 0 <= value <= 0o7777:
            raise ValueError("mode must be between 0000 and 7777")
        return value

    @field_validator("reload", mode="before")
    @classmethod
    def _reload_argv(cls, value: object) -> object:
        if isinstance(value, str):
            return shlex.split(value)
        return value


class ServiceStateSpec(_ActionSpec):
    kind: Literal["set_service_state"]
    unit: str
    enabled: bool | None = None
    active: bool | None = None
    masked: bool | None = None

    @model_validator(mode="after")
    def _coherent(self) -> "ServiceStateSpec":
        if self.enabled is None and self.active is None and self.masked is None:
            raise ValueError("set at least one of enabled, active, masked")
        if self.masked and (self.enabled or self.active):
            raise ValueError("a masked unit cannot be enabled or active")
        return self


class SysctlSpec(_ActionSpec):
    kind: Literal["set_sysctl"]
    key: str = Field(..., pattern=r"^[A-Za-z0-9_.\-/]+$")
    value: str

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class RunCommandSpec(_ActionSpec):
    kind: Literal["run_command"]
    id: str = Field(..., description="Commands have no natural target, so an id is required")
    command: list[str]
    check: list[str] | None = Field(None, description="Exit 0 means already satisfied")
    undo: list[str] | None = Field(None, description="Inverse command used by revert")

    @field_validator("command", "check", "undo", mode="before")
    @classmethod
    def _to_argv(cls, value: object) -> object:
        return _argv(value)

    @field_validator("command")
    @classmethod
    def _non_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("command must not be empty")
        return value


ActionSpec = Annotated[
    Union[WriteFileSpec, ServiceStateSpec, SysctlSpec, RunCommandSpec],
    Field(discriminator="kind"),
]


class DefaultsSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    fatal: bool = False
    timeout: float | None = Field(None, gt=0)


class ActionListSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = ""
    description: str = ""
    defaults: DefaultsSpec = Field(default_factory=DefaultsSpec)
    actions: list[ActionSpec] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _unique_ids(self) -> "ActionListSpec":
        seen: set[str] = set()
        for spec in self.actions:
            action_id = default_id(spec)
            if action_id in seen:
                raise ValueError(f"duplicate action id: {action_id}")
            seen.add(action_id)
        return self


def default_id(spec: _ActionSpec) -> str:
    """Return the explicit id, or derive one from the target."""
    if spec.id:
        return spec.id
    if isinstance(spec, WriteFileSpec):
        return f"file:{spec.path}"
    if isinstance(spec, ServiceStateSpec):
        return f"service:{spec.unit}"
    if isinstance(spec, SysctlSpec):
        return f"sysctl:{spec.key}"
    raise ValueError(f"cannot derive an id for {type(spec).__name__}")


def to_action(spec: _ActionSpec, defaults: DefaultsSpec) -> Action:
    """Convert a validated spec into an engine Action."""
    common = {
        "id": default_id(spec),
        "fatal": spec.fatal if spec.fatal is not None else defaults.fatal,
        "timeout": spec.timeout if spec.timeout is not None else defaults.timeout,
        "description": spec.description,
    }
    if isinstance(spec, WriteFileSpec):
        return Action(
            kind=ActionKind.WRITE_FILE,
            target=spec.path,
            params={"content": spec.content, "mode": spec.mode, "reload": spec.reload},
            **common,
        )
    if isinstance(spec, ServiceStateSpec):
        return Action(
            kind=ActionKind.SET_SERVICE_STATE,
            target=spec.unit,
            params={"enabled": spec.enabled, "active": spec.active, "masked": spec.masked},
            **common,
        )
    if isinstance(spec, SysctlSpec):
        return Action(
            kind=ActionKind.SET_SYSCTL,
            target=spec.key,
            params={"value": spec.value},
            **common,
        )
    if isinstance(spec, RunCommandSpec):
        return Action(
            kind=ActionKind.RUN_COMMAND,
            target=shlex.join(spec.command),
            params={"command": spec.command, "check": spec.check, "undo": spec.undo},
            **common,
        )
    raise TypeError(f"Unsupported spec {type(spec).__name__}")


@dataclass
class ActionList:
    """A validated, ordered action list."""

    name: str
    source: str
    actions: list[Action] = field(default_factory=list)
    description: str = ""


def _format_errors(exc: ValidationError) -> str:
    lines = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        lines.append(f"  {loc}: {err['msg']}")
    return "\n".join(lines)


def parse_action_list(raw: object, source: str = "<memory>") -> ActionList:
    """Validate an already-decoded document."""
    try:
        spec = ActionListSpec.model_validate(raw)
    except ValidationError as e:
        raise ActionListError(f"Invalid action list {source}:\n{_format_errors(e)}") from e

    actions = [to_action(item, spec.defaults) for item in spec.actions]
    return ActionList(
        name=spec.name or Path(source).stem,
        source=source,
        actions=actions,
        description=spec.description,
    )


def load_action_list(path: str | Path) -> ActionList:
    """Load and validate an action list file (YAML or JSON)."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ActionListError(f"Cannot read action list {path}: {e}") from e

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ActionListError(f"Action list {path} is not valid YAML: {e}") from e

    return parse_action_list(raw, source=str(path))


def bundled_profiles() -> list[str]:
    """Names of the action lists shipped with perftune."""
    root = resources.files(PROFILE_PACKAGE)
    return sorted(entry.name[:-5] for entry in root.iterdir() if entry.name.endswith(".yaml"))


def resolve_action_list(ref: str) -> ActionList:
    """Load ``ref`` as a file path, falling back to a bundled profile name."""
    path = Path(ref).expanduser()
    if path.exists():
        return load_action_list(path)

    if ref in bundled_profiles():
        resource = resources.files(PROFILE_PACKAGE) / f"{ref}.yaml"
        try:
            raw = yaml.safe_load(resource.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ActionListError(f"Bundled profile {ref} is not valid YAML: {e}") from e
        return parse_action_list(raw, source=f"profile:{ref}")

    raise ActionListError(f"Action list not found: {ref} (not a file or bundled profile)")
