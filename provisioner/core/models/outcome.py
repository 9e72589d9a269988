"""
StepOutcome — what happened when a step was evaluated.

Outcomes are created once, when a step finishes evaluation, and are
immutable afterwards. The report collector owns them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from provisioner.core.models.invocation import CommandResult, FailureKind

# Skip reasons the pipeline itself assigns
UPSTREAM_FAILURE = "upstream failure"
CANCELLED = "cancelled"


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepOutcome(BaseModel):
    """Result of evaluating one step: succeeded, skipped(reason) or failed(error)."""

    model_config = ConfigDict(frozen=True)

    step: str
    status: Literal["succeeded", "skipped", "failed"]

    reason: str = ""                        # skipped: why
    error_kind: FailureKind | None = None   # failed: taxonomy
    error: str | None = None                # failed: message
    result: CommandResult | None = None     # failed: the failing invocation's result

    advisory: bool = False
    commands_run: int = 0
    commands: tuple[str, ...] = ()          # command lines run (or planned, in a dry run)
    duration_ms: int = 0
    finished_at: str = Field(default_factory=_now_iso)

    notes: tuple[str, ...] = ()             # follow-ups surfaced in the report

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def fatal(self) -> bool:
        """A failure that aborts the pipeline."""
        return self.failed and not self.advisory

    @classmethod
    def success(cls, step: str, **kwargs: Any) -> StepOutcome:
        """Create a succeeded outcome."""
        return cls(step=step, status="succeeded", **kwargs)

    @classmethod
    def skip(cls, step: str, reason: str, **kwargs: Any) -> StepOutcome:
        """Create a skipped outcome."""
        return cls(step=step, status="skipped", reason=reason, **kwargs)

    @classmethod
    def failure(
        cls,
        step: str,
        kind: FailureKind,
        error: str,
        **kwargs: Any,
    ) -> StepOutcome:
        """Create a failed outcome."""
        return cls(step=step, status="failed", error_kind=kind, error=error, **kwargs)
