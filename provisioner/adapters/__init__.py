"""Adapters — bindings between the engine and the system.

Public re-exports for convenient access.
"""

from provisioner.adapters.base import CommandRunner, ExistenceCheck, GuardCheckError
from provisioner.adapters.mock import FakeChecks, MockRunner
from provisioner.adapters.shell.command import SubprocessRunner
from provisioner.adapters.shell.existence import SystemChecks

__all__ = [
    "CommandRunner",
    "ExistenceCheck",
    "FakeChecks",
    "GuardCheckError",
    "MockRunner",
    "SubprocessRunner",
    "SystemChecks",
]
