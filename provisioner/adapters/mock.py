"""
Mock adapters — test doubles for the runner and the existence checks.

Used in mock mode (``provisioner run --mock``) and throughout the tests
to exercise the engine without touching the system.
"""

from __future__ import annotations

from typing import Callable

from provisioner.adapters.base import CommandRunner, ExistenceCheck, GuardCheckError
from provisioner.core.models.invocation import CommandInvocation, CommandResult


class MockRunner(CommandRunner):
    """Universal mock runner.

    By default every invocation succeeds. Responses can be configured
    per full command line (``invocation.display``) or per program name;
    the command line wins when both match.
    """

    def __init__(
        self,
        runner_name: str = "mock",
        default_output: str = "[mock] executed",
        on_run: Callable[[CommandInvocation], None] | None = None,
    ):
        self._name = runner_name
        self._default_output = default_output
        self._on_run = on_run
        self._responses: dict[str, CommandResult] = {}
        self._call_log: list[CommandInvocation] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[CommandInvocation]:
        """All invocations this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def commands(self) -> list[str]:
        """Command lines received, in order."""
        return [inv.display for inv in self._call_log]

    def set_response(self, key: str, result: CommandResult) -> None:
        """Set a custom result for a command line or program name."""
        self._responses[key] = result

    def set_output(self, key: str, stdout: str) -> None:
        """Configure a command to succeed with the given stdout."""
        self._responses[key] = CommandResult.completed(key, exit_code=0, stdout=stdout)

    def set_failure(self, key: str, exit_code: int = 1, stderr: str = "Mock failure") -> None:
        """Configure a command to exit non-zero."""
        self._responses[key] = CommandResult.completed(key, exit_code=exit_code, stderr=stderr)

    def set_launch_failure(self, key: str) -> None:
        """Configure a command whose program cannot be started."""
        self._responses[key] = CommandResult.launch_failure(key, f"Program not found: {key}")

    def run(self, invocation: CommandInvocation) -> CommandResult:
        self._call_log.append(invocation)
        if self._on_run is not None:
            self._on_run(invocation)

        for key in (invocation.display, invocation.program):
            if key in self._responses:
                return self._responses[key]

        return CommandResult.completed(
            invocation.display, exit_code=0, stdout=self._default_output
        )

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._responses.clear()


class FakeChecks(ExistenceCheck):
    """In-memory ExistenceCheck.

    Holds sets of existing files, commands and (user, group) pairs that
    tests mutate directly to simulate system state changes.
    """

    def __init__(
        self,
        files: set[str] | None = None,
        commands: set[str] | None = None,
        memberships: set[tuple[str, str]] | None = None,
    ):
        self.files: set[str] = set(files or ())
        self.commands: set[str] = set(commands or ())
        self.memberships: set[tuple[str, str]] = set(memberships or ())
        self.broken_paths: set[str] = set()
        self.queries: list[tuple[str, str]] = []

    def file_exists(self, path: str) -> bool:
        self.queries.append(("file_exists", path))
        if path in self.broken_paths:
            raise GuardCheckError(f"Cannot check {path}: Permission denied")
        return path in self.files

    def command_exists(self, name: str, search_path: str | None = None) -> bool:
        self.queries.append(("command_exists", name))
        return name in self.commands

    def is_group_member(self, user: str, group: str) -> bool:
        self.queries.append(("is_group_member", f"{user}:{group}"))
        return (user, group) in self.memberships
