"""System managers built on top of a Host."""

from perftune.system.kernel import SysctlManager, normalize_value
from perftune.system.services import ServiceManager

__all__ = ["ServiceManager", "SysctlManager", "normalize_value"]
