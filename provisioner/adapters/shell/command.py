"""
Subprocess runner — execute external programs and capture their output.

This is the SINGLE PLACE where ``subprocess.run`` is called. Every
provisioning command goes through here, so logging, timing and error
classification are centralised.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time

from provisioner.adapters.base import CommandRunner
from provisioner.core.models.invocation import CommandInvocation, CommandResult

logger = logging.getLogger(__name__)


def _decode(data: bytes | str | None) -> str:
    """TimeoutExpired carries raw bytes even in text mode."""
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class SubprocessRunner(CommandRunner):
    """Run invocations with ``subprocess.run`` and capture output.

    The invocation's env is layered over ``os.environ``; a ``PATH``
    override also changes where the program itself is looked up.
    """

    @property
    def name(self) -> str:
        return "subprocess"

    def run(self, invocation: CommandInvocation) -> CommandResult:
        command = invocation.display
        env = os.environ.copy()
        env.update(invocation.env)

        logger.info("$ %s", command)
        if invocation.cwd:
            logger.debug("  cwd=%s", invocation.cwd)
        start = time.monotonic()

        try:
            proc = subprocess.run(
                invocation.argv,
                cwd=invocation.cwd,
                env=env,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=invocation.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning("Timed out after %ss: %s", invocation.timeout, command)
            return CommandResult.timed_out(
                command,
                timeout=invocation.timeout or 0,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr),
                duration_ms=elapsed_ms,
            )
        except FileNotFoundError as e:
            if invocation.cwd and e.filename == invocation.cwd:
                return CommandResult.launch_failure(
                    command, f"Working directory does not exist: {invocation.cwd}"
                )
            logger.warning("Program not found: %s", invocation.program)
            return CommandResult.launch_failure(
                command, f"Program not found: {invocation.program}"
            )
        except PermissionError:
            logger.warning("Program not executable: %s", invocation.program)
            return CommandResult.launch_failure(
                command, f"Program not executable: {invocation.program}"
            )
        except OSError as e:
            logger.warning("Cannot launch %s: %s", invocation.program, e)
            return CommandResult.launch_failure(command, f"Cannot launch: {e}")

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if proc.stdout:
            logger.debug("stdout:\n%s", proc.stdout.rstrip())
        if proc.stderr:
            logger.debug("stderr:\n%s", proc.stderr.rstrip())

        return CommandResult.completed(
            command,
            exit_code=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            duration_ms=elapsed_ms,
        )
