"""
Step — one named, idempotent unit of provisioning work.

Evaluation order:
    exports → refresh paths → guard → (dry run?) → commands in order → refresh paths

A satisfied guard short-circuits everything: zero commands are run.
The first command that does not succeed stops the step.
"""

from __future__ import annotations

import json
import logging
import time

from provisioner.adapters.base import CommandRunner, ExistenceCheck, GuardCheckError
from provisioner.core.engine.environment import ProvisionEnvironment
from provisioner.core.engine.guards import evaluate_guard
from provisioner.core.models.invocation import CommandResult, FailureKind
from provisioner.core.models.manifest import CaptureSpec, StepSpec
from provisioner.core.models.outcome import StepOutcome

logger = logging.getLogger(__name__)


class CaptureError(ValueError):
    """A command's output could not be captured into a variable."""


def capture_value(capture: CaptureSpec, stdout: str) -> str:
    """Extract the value a ``capture`` asks for from a command's stdout.

    Raises:
        CaptureError: If JSON is expected but missing, invalid, or lacks the field.
    """
    if capture.json_field is None:
        return stdout.strip()

    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise CaptureError(f"Output is not valid JSON: {e}") from e

    if not isinstance(data, dict) or capture.json_field not in data:
        raise CaptureError(f"Field {capture.json_field!r} not found in output")

    value = data[capture.json_field]
    if value is None or isinstance(value, (dict, list)):
        raise CaptureError(f"Field {capture.json_field!r} is not a scalar")
    return str(value).strip()


class Step:
    """Runtime wrapper around a StepSpec."""

    def __init__(self, spec: StepSpec):
        self.spec = spec

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def advisory(self) -> bool:
        return self.spec.continue_on_failure

    def __repr__(self) -> str:
        return f"<Step name={self.name!r} advisory={self.advisory}>"

    def evaluate(
        self,
        runner: CommandRunner,
        checks: ExistenceCheck,
        env: ProvisionEnvironment,
        dry_run: bool = False,
    ) -> StepOutcome:
        """Evaluate the step and return its outcome. Never raises."""
        start = time.monotonic()
        spec = self.spec

        for key, value in spec.exports.items():
            env.export(key, value)
        # A tool installed by an earlier run may live outside the inherited PATH
        env.refresh_paths(spec.refresh_paths)

        # ── Guard ──────────────────────────────────────────────
        if spec.guard is not None:
            try:
                satisfied = evaluate_guard(spec.guard, checks, env)
            except GuardCheckError as e:
                return self._failed(FailureKind.GUARD_ERROR, str(e), env, start)

            if satisfied:
                return StepOutcome.skip(
                    self.name,
                    reason=f"already satisfied: {spec.guard.describe()}",
                    advisory=self.advisory,
                    duration_ms=_elapsed_ms(start),
                )

        # ── Dry run ────────────────────────────────────────────
        if dry_run:
            planned = tuple(env.render(cmd).display for cmd in spec.commands)
            return StepOutcome.skip(
                self.name,
                reason=f"dry run: would run {len(planned)} command(s)",
                advisory=self.advisory,
                commands=planned,
                duration_ms=_elapsed_ms(start),
            )

        # ── Commands ───────────────────────────────────────────
        ran: list[str] = []
        for cmd in spec.commands:
            invocation = env.render(cmd)
            ran.append(invocation.display)
            try:
                result = runner.run(invocation)
            except Exception as e:
                # Runners should never raise, but a step must still produce an outcome
                logger.error("Runner %s raised on %s: %s", runner.name, invocation.display, e)
                result = CommandResult.launch_failure(invocation.display, f"Unexpected error: {e}")

            if not result.ok:
                kind = result.failure_kind or FailureKind.NON_ZERO_EXIT
                return self._failed(
                    kind,
                    result.error or f"{invocation.display} failed",
                    env,
                    start,
                    result=result,
                    commands=tuple(ran),
                )

            if cmd.capture is not None:
                try:
                    env.set_var(cmd.capture.var, capture_value(cmd.capture, result.stdout))
                except CaptureError as e:
                    return self._failed(
                        FailureKind.NON_ZERO_EXIT,
                        f"Cannot capture {cmd.capture.var}: {e}",
                        env,
                        start,
                        result=result,
                        commands=tuple(ran),
                    )

        env.refresh_paths(spec.refresh_paths)
        return StepOutcome.success(
            self.name,
            advisory=self.advisory,
            commands_run=len(ran),
            commands=tuple(ran),
            duration_ms=_elapsed_ms(start),
            notes=tuple(env.expand(note) for note in spec.notes),
        )

    def _failed(
        self,
        kind: FailureKind,
        error: str,
        env: ProvisionEnvironment,
        start: float,
        result: CommandResult | None = None,
        commands: tuple[str, ...] = (),
    ) -> StepOutcome:
        notes = (env.expand(self.spec.hint),) if self.spec.hint else ()
        return StepOutcome.failure(
            self.name,
            kind,
            error,
            result=result,
            advisory=self.advisory,
            commands_run=len(commands),
            commands=commands,
            duration_ms=_elapsed_ms(start),
            notes=notes,
        )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
