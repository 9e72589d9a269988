"""
Run use case — provision the machine from a manifest.

This is the top-level orchestrator: it loads the manifest, selects the
steps, builds the provisioning environment, runs the pipeline, and
records the run in the ledger. The full vertical slice from user intent
to audited execution.
"""

from __future__ import annotations

import logging
import signal
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from provisioner.adapters.base import CommandRunner, ExistenceCheck
from provisioner.core.config.loader import (
    ConfigError,
    load_manifest,
    parse_assignments,
    resolve_manifest_path,
    select_steps,
)
from provisioner.core.engine.environment import ProvisionEnvironment
from provisioner.core.engine.pipeline import CancelToken, Pipeline, build_steps
from provisioner.core.engine.report import EXIT_FAILED, PipelineReport
from provisioner.core.models.manifest import Manifest
from provisioner.core.persistence.audit import AuditWriter, RunEntry

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Result of a provisioning run."""

    report: PipelineReport | None = None
    manifest: Manifest | None = None
    manifest_path: Path | None = None
    audit_path: Path | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error or self.report is None:
            return EXIT_FAILED
        return self.report.exit_code

    def to_dict(self) -> dict:
        result: dict = {}
        if self.error:
            result["error"] = self.error
            return result

        result["manifest"] = self.manifest.name if self.manifest else ""
        result["manifest_path"] = str(self.manifest_path)
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def run_provision(
    manifest_path: Path | None = None,
    profile: str | None = None,
    only: Sequence[str] = (),
    skip: Sequence[str] = (),
    assignments: Sequence[str] = (),
    dry_run: bool = False,
    mock_mode: bool = False,
    runner: CommandRunner | None = None,
    checks: ExistenceCheck | None = None,
    cancel_token: CancelToken | None = None,
    audit_path: Path | None = None,
) -> RunResult:
    """Run the selected manifest steps in order.

    Args:
        manifest_path: Optional explicit manifest path.
        profile: Profile to run (default: manifest's default_profile).
        only: Run only these step names.
        skip: Leave these step names out.
        assignments: ``name=value`` variable overrides.
        dry_run: Evaluate guards but run no commands.
        mock_mode: Use the mock runner (no real execution).
        runner: Optional pre-configured runner.
        checks: Optional pre-configured existence checks.
        cancel_token: Token checked between steps.
        audit_path: Ledger file to append the run to (None = no ledger).

    Returns:
        RunResult with the finalized report, or an error.
    """
    result = RunResult(audit_path=audit_path)

    # ── Load and select ──────────────────────────────────────────
    try:
        path = resolve_manifest_path(manifest_path)
        manifest = load_manifest(path)
        overrides = parse_assignments(assignments)
        effective_profile, specs = select_steps(manifest, profile, only, skip)
    except ConfigError as e:
        result.error = str(e)
        return result

    result.manifest = manifest
    result.manifest_path = path

    # ── Set up adapters ──────────────────────────────────────────
    if runner is None:
        if mock_mode:
            from provisioner.adapters.mock import MockRunner

            runner = MockRunner()
        else:
            from provisioner.adapters.shell.command import SubprocessRunner

            runner = SubprocessRunner()

    if checks is None:
        from provisioner.adapters.shell.existence import SystemChecks

        checks = SystemChecks()

    env = ProvisionEnvironment(
        variables={**manifest.vars, **overrides},
        default_timeout=manifest.defaults.timeout,
    )

    # ── Execute ──────────────────────────────────────────────────
    pipeline = Pipeline(
        runner,
        checks,
        env,
        dry_run=dry_run,
        cancel_token=cancel_token,
        name=manifest.name,
        profile=effective_profile,
        notes=[env.expand(note) for note in manifest.notes],
    )
    report = pipeline.run_all(build_steps(specs))
    result.report = report

    # ── Write ledger ─────────────────────────────────────────────
    if audit_path is not None:
        AuditWriter(audit_path).write(RunEntry.from_report(report, manifest=str(path)))

    return result


@contextmanager
def cancel_on_signals(
    token: CancelToken,
    signals: Sequence[signal.Signals] = (signal.SIGINT, signal.SIGTERM),
) -> Iterator[CancelToken]:
    """Turn SIGINT/SIGTERM into a cooperative cancel for the duration of a run.

    The first signal sets the token; the pipeline stops before the next
    step. A second SIGINT interrupts immediately.
    """

    def _handler(signum: int, frame: object) -> None:
        if token.cancelled and signum == signal.SIGINT:
            raise KeyboardInterrupt
        logger.warning(
            "Received %s, stopping after the current step", signal.Signals(signum).name
        )
        token.cancel()

    previous: dict[signal.Signals, object] = {}
    for sig in signals:
        try:
            previous[sig] = signal.signal(sig, _handler)
        except ValueError:
            # Not the main thread: signals stay with their current handler
            logger.debug("Cannot install handler for %s", sig.name)

    try:
        yield token
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)  # type: ignore[arg-type]
