"""Actions package - one handler per action kind.

Each handler declares:
- what its snapshot captures
- whether a failed mutation is rolled back in place
- how it is reverted
"""

from perftune.actions.base import ActionHandler
from perftune.actions.command import RunCommandHandler
from perftune.actions.service import ServiceStateHandler
from perftune.actions.sysctl import SysctlHandler
from perftune.actions.write_file import WriteFileHandler
from perftune.connector.base import Host
from perftune.model.action import Action, ActionKind

HANDLERS: dict[ActionKind, type[ActionHandler]] = {
    ActionKind.WRITE_FILE: WriteFileHandler,
    ActionKind.SET_SERVICE_STATE: ServiceStateHandler,
    ActionKind.SET_SYSCTL: SysctlHandler,
    ActionKind.RUN_COMMAND: RunCommandHandler,
}


def create_handler(action: Action, host: Host, default_timeout: float | None = None) -> ActionHandler:
    """Instantiate the handler for ``action`` with its effective timeout."""
    timeout = action.timeout if action.timeout is not None else default_timeout
    return HANDLERS[action.kind](host, timeout)


__all__ = [
    "ActionHandler",
    "HANDLERS",
    "RunCommandHandler",
    "ServiceStateHandler",
    "SysctlHandler",
    "WriteFileHandler",
    "create_handler",
]
