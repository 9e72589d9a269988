"""
Adapter base — the protocol contract between engine and the system.

The engine only talks to the outside world through these two
interfaces, never directly to subprocess or the filesystem:

    CommandRunner   — run one external program, return a CommandResult
    ExistenceCheck  — side-effect-free precondition queries
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from provisioner.core.models.invocation import CommandInvocation, CommandResult


class GuardCheckError(Exception):
    """Raised when a precondition query itself fails (e.g. permission denied).

    A missing resource is never an error: queries return False for that.
    """


class CommandRunner(ABC):
    """Executes a single external command.

    Runners NEVER raise exceptions — launch failures, non-zero exits and
    timeouts are all captured in the CommandResult.

    To create a new runner:
        1. Subclass CommandRunner
        2. Implement name and run
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The runner identifier (e.g., 'subprocess', 'mock')."""

    @abstractmethod
    def run(self, invocation: CommandInvocation) -> CommandResult:
        """Run the invocation to completion and return its result.

        Blocks until the process terminates (or its timeout expires).
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class ExistenceCheck(ABC):
    """Precondition queries used by step guards.

    Each query is pure and tolerates the queried resource being
    entirely absent (returns False).
    """

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        """Whether a file (or directory) exists at ``path``.

        Raises:
            GuardCheckError: If the query itself errors.
        """

    @abstractmethod
    def command_exists(self, name: str, search_path: str | None = None) -> bool:
        """Whether ``name`` resolves to an executable on ``search_path``
        (default: the process PATH)."""

    @abstractmethod
    def is_group_member(self, user: str, group: str) -> bool:
        """Whether ``user`` belongs to ``group``."""
