"""
Pipeline report — ordered step outcomes plus follow-up notes.

The ReportCollector is the only writer. It creates the report empty at
pipeline start, appends one outcome per step in execution order, and
finalizes it when the pipeline ends; a finalized report is read-only.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from provisioner.core.models.outcome import StepOutcome

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130

_MARKERS = {"succeeded": "✓", "skipped": "⊘", "failed": "✗"}


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"


@dataclass
class PipelineReport:
    """Result of running a pipeline."""

    run_id: str = ""
    name: str = ""
    profile: str | None = None
    dry_run: bool = False
    outcomes: Sequence[StepOutcome] = field(default_factory=list)
    follow_ups: Sequence[str] = field(default_factory=list)
    complete: bool = True
    cancelled: bool = False
    finalized: bool = False

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def fatal_failures(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if o.fatal]

    @property
    def advisory_failures(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if o.failed and o.advisory]

    @property
    def status(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.fatal_failures:
            return "failed"
        if self.advisory_failures:
            return "partial"
        return "ok"

    @property
    def exit_code(self) -> int:
        """Process exit status: non-zero only for fatal failures or cancellation.

        A cancelled run reports the cancel even when the interrupted step failed.
        """
        if self.cancelled:
            return EXIT_CANCELLED
        if self.fatal_failures:
            return EXIT_FAILED
        return EXIT_OK

    def get(self, step: str) -> StepOutcome | None:
        """Look up a step's outcome by name."""
        for outcome in self.outcomes:
            if outcome.step == step:
                return outcome
        return None

    def statuses(self) -> list[str]:
        return [o.status for o in self.outcomes]

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "name": self.name,
            "profile": self.profile,
            "dry_run": self.dry_run,
            "status": self.status,
            "exit_code": self.exit_code,
            "complete": self.complete,
            "cancelled": self.cancelled,
            "total": self.total,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "outcomes": [o.model_dump(mode="json") for o in self.outcomes],
            "follow_ups": list(self.follow_ups),
        }

    def render_text(self) -> str:
        """Plain-text listing of every step and its outcome, in order."""
        title = f"Provisioning report: {self.name or 'pipeline'}"
        if self.profile:
            title += f" (profile: {self.profile})"
        if self.dry_run:
            title += " [dry run]"
        lines = [title]

        width = max((len(o.step) for o in self.outcomes), default=0)
        for outcome in self.outcomes:
            marker = _MARKERS[outcome.status]
            label = outcome.step.ljust(width)
            detail = describe_outcome(outcome)
            advisory = " [advisory]" if outcome.advisory and outcome.failed else ""
            lines.append(f"  {marker} {label}  {detail}{advisory}")

        lines.append(
            f"Result: {self.succeeded} succeeded, {self.skipped} skipped, "
            f"{self.failed} failed ({self.status})"
        )

        if self.follow_ups:
            lines.append("Follow-up:")
            for i, note in enumerate(self.follow_ups, start=1):
                lines.append(f"  {i}. {note}")

        return "\n".join(lines)


def describe_outcome(outcome: StepOutcome) -> str:
    """One-line description, e.g. ``skipped (upstream failure)``."""
    if outcome.skipped:
        return f"skipped ({outcome.reason})"
    if outcome.failed:
        kind = outcome.error_kind.value if outcome.error_kind else "error"
        return f"failed ({kind}: {outcome.error})"
    return "succeeded"


class ReportCollector:
    """Builds a PipelineReport one outcome at a time."""

    def __init__(
        self,
        name: str = "",
        profile: str | None = None,
        dry_run: bool = False,
        run_id: str | None = None,
    ):
        self._outcomes: list[StepOutcome] = []
        self._notes: list[str] = []
        self._report = PipelineReport(
            run_id=run_id or generate_run_id(),
            name=name,
            profile=profile,
            dry_run=dry_run,
        )

    @property
    def report(self) -> PipelineReport:
        return self._report

    def _check_open(self) -> None:
        if self._report.finalized:
            raise RuntimeError("report is finalized")

    def record(self, outcome: StepOutcome) -> None:
        """Append a step outcome (and its notes) in execution order."""
        self._check_open()
        self._outcomes.append(outcome)
        self._report.outcomes = self._outcomes
        self.add_notes(outcome.notes)

    def add_notes(self, notes: Sequence[str]) -> None:
        """Attach follow-up notes, skipping blanks and duplicates."""
        self._check_open()
        for note in notes:
            note = note.strip()
            if note and note not in self._notes:
                self._notes.append(note)
        self._report.follow_ups = self._notes

    def mark_incomplete(self, cancelled: bool = False) -> None:
        self._check_open()
        self._report.complete = False
        if cancelled:
            self._report.cancelled = True

    def finalize(self) -> PipelineReport:
        """Freeze the report and return it."""
        if not self._report.finalized:
            self._report.outcomes = tuple(self._outcomes)
            self._report.follow_ups = tuple(self._notes)
            self._report.finalized = True
        return self._report
