"""Connector package - Host implementations."""

from perftune.connector.base import CommandResult, FileStat, Host
from perftune.connector.local import LocalHost
from perftune.connector.ssh import SSHConfig, SSHHost

__all__ = ["CommandResult", "FileStat", "Host", "LocalHost", "SSHConfig", "SSHHost"]
