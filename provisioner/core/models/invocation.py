"""
Invocation and result models — the execution contract.

A CommandInvocation is a fully rendered request to run one external
program. A CommandResult is what came back. This is the I/O contract
between steps and runners: steps send invocations, runners return
results. Never exceptions.
"""

from __future__ import annotations

import shlex
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# Shell conventions so exit_code is always an integer
LAUNCH_FAILURE_EXIT_CODE = 127
TIMEOUT_EXIT_CODE = 124


class FailureKind(str, Enum):
    """Why a step failed."""

    LAUNCH_FAILURE = "launch_failure"   # program not found / not spawnable
    NON_ZERO_EXIT = "non_zero_exit"     # ran, exit code != 0
    TIMEOUT = "timeout"                 # per-invocation timeout expired
    GUARD_ERROR = "guard_error"         # the precondition query itself errored


class CommandInvocation(BaseModel):
    """One external program to run, with its arguments and environment."""

    model_config = ConfigDict(frozen=True)

    program: str
    args: tuple[str, ...] = ()
    env: dict[str, str] = Field(default_factory=dict)
    cwd: str | None = None
    timeout: float | None = None     # seconds; None = wait forever

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]

    @property
    def display(self) -> str:
        """Shell-quoted command line, for logs and reports."""
        return shlex.join(self.argv)


class CommandResult(BaseModel):
    """Outcome of running one CommandInvocation.

    Produced once per invocation and never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    command: str
    status: Literal["ok", "non_zero_exit", "launch_failure", "timeout"] = "ok"
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failure_kind(self) -> FailureKind | None:
        """FailureKind for a failed result, None when the command succeeded."""
        if self.ok:
            return None
        return FailureKind(self.status)

    @classmethod
    def completed(
        cls,
        command: str,
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
        duration_ms: int = 0,
    ) -> CommandResult:
        """Result for a process that ran to completion (any exit code)."""
        if exit_code == 0:
            return cls(
                command=command,
                status="ok",
                exit_code=0,
                stdout=stdout,
                stderr=stderr,
                duration_ms=duration_ms,
            )
        return cls(
            command=command,
            status="non_zero_exit",
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration_ms=duration_ms,
            error=f"Command exited with code {exit_code}",
        )

    @classmethod
    def launch_failure(cls, command: str, error: str) -> CommandResult:
        """Result for a program that could not be started at all."""
        return cls(
            command=command,
            status="launch_failure",
            exit_code=LAUNCH_FAILURE_EXIT_CODE,
            error=error,
        )

    @classmethod
    def timed_out(
        cls,
        command: str,
        timeout: float,
        stdout: str = "",
        stderr: str = "",
        duration_ms: int = 0,
    ) -> CommandResult:
        """Result for a process killed after its timeout expired."""
        return cls(
            command=command,
            status="timeout",
            exit_code=TIMEOUT_EXIT_CODE,
            stdout=stdout,
            stderr=stderr,
            duration_ms=duration_ms,
            error=f"Command timed out after {timeout:g}s",
        )

    def tail(self, lines: int = 5) -> str:
        """Last few lines of stderr (or stdout if stderr is empty)."""
        text = (self.stderr or self.stdout).strip()
        if not text:
            return ""
        return "\n".join(text.splitlines()[-lines:])
