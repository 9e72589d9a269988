"""
Pipeline — the ordered, fail-fast executor of steps.

The pipeline is the heartbeat of the provisioner. It takes an ordered
list of steps, evaluates each one in turn, and records every outcome.

Failure policy:
    - a failed step that is not advisory aborts the run; every step after
      it is recorded as skipped with reason "upstream failure"
    - an advisory step (continue_on_failure) records its failure and the
      run continues
    - nothing is retried

Cancellation is cooperative: the token is checked between steps, never
in the middle of one. A step that fails while the token is set is taken
to have been interrupted, and the run is reported as cancelled.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence

from provisioner.adapters.base import CommandRunner, ExistenceCheck
from provisioner.core.engine.environment import ProvisionEnvironment
from provisioner.core.engine.report import PipelineReport, ReportCollector, describe_outcome
from provisioner.core.engine.step import Step
from provisioner.core.models.manifest import StepSpec
from provisioner.core.models.outcome import CANCELLED, UPSTREAM_FAILURE, StepOutcome
from provisioner.core.observability.logging_config import step_context

logger = logging.getLogger(__name__)


class CancelToken:
    """Thread-safe "please stop" flag, set from a signal handler."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def build_steps(specs: Sequence[StepSpec]) -> list[Step]:
    """Wrap manifest step specs into runnable steps, preserving order."""
    return [Step(spec) for spec in specs]


class Pipeline:
    """Runs steps strictly in order and collects a PipelineReport."""

    def __init__(
        self,
        runner: CommandRunner,
        checks: ExistenceCheck,
        env: ProvisionEnvironment | None = None,
        *,
        dry_run: bool = False,
        cancel_token: CancelToken | None = None,
        name: str = "",
        profile: str | None = None,
        notes: Sequence[str] = (),
    ):
        self.runner = runner
        self.checks = checks
        self.env = env or ProvisionEnvironment()
        self.dry_run = dry_run
        self.cancel_token = cancel_token or CancelToken()
        self.name = name
        self.profile = profile
        self.notes = list(notes)

    def run_all(self, steps: Sequence[Step]) -> PipelineReport:
        """Evaluate every step in order and return the finalized report.

        The report always names every step given, even those never run.
        """
        collector = ReportCollector(name=self.name, profile=self.profile, dry_run=self.dry_run)
        abort_reason: str | None = None

        for step in steps:
            # Also after a failure: Ctrl-C reaches the running child too
            if abort_reason != CANCELLED and self.cancel_token.cancelled:
                logger.warning("Cancelled, skipping remaining steps")
                abort_reason = CANCELLED
                collector.mark_incomplete(cancelled=True)

            if abort_reason is not None:
                collector.record(
                    StepOutcome.skip(step.name, reason=abort_reason, advisory=step.advisory)
                )
                continue

            with step_context(step.name):
                logger.info("▶ %s", step.name)
                outcome = step.evaluate(self.runner, self.checks, self.env, dry_run=self.dry_run)
                collector.record(outcome)

                status_marker = "✓" if outcome.succeeded else "✗" if outcome.failed else "⊘"
                logger.info("%s %s → %s", status_marker, step.name, describe_outcome(outcome))

                if outcome.failed and outcome.advisory:
                    logger.warning("Advisory step %s failed, continuing: %s", step.name, outcome.error)
                elif outcome.fatal:
                    logger.error("Step %s failed: %s", step.name, outcome.error)
                    abort_reason = UPSTREAM_FAILURE
                    collector.mark_incomplete()

        if abort_reason == UPSTREAM_FAILURE and self.cancel_token.cancelled:
            # The last step failed because it was interrupted
            collector.mark_incomplete(cancelled=True)

        collector.add_notes(self.notes)
        report = collector.finalize()
        logger.info(
            "Pipeline %s: %d succeeded, %d skipped, %d failed",
            report.status,
            report.succeeded,
            report.skipped,
            report.failed,
        )
        return report
