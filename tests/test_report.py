"""
Tests for the report collector and report rendering.
"""

import re

import pytest

from provisioner.core.engine.report import (
    EXIT_CANCELLED,
    EXIT_FAILED,
    EXIT_OK,
    ReportCollector,
    describe_outcome,
    generate_run_id,
)
from provisioner.core.models.invocation import FailureKind
from provisioner.core.models.outcome import UPSTREAM_FAILURE, StepOutcome


class TestRunId:
    def test_format(self):
        assert re.fullmatch(r"run-\d{8}-\d{6}-[0-9a-f]{6}", generate_run_id())

    def test_unique(self):
        assert generate_run_id() != generate_run_id()


class TestReportCollector:
    def test_records_in_order(self):
        collector = ReportCollector(name="ubuntu-desktop", profile="full")
        collector.record(StepOutcome.success("a"))
        collector.record(StepOutcome.skip("b", reason="already satisfied"))
        report = collector.finalize()
        assert report.statuses() == ["succeeded", "skipped"]
        assert report.name == "ubuntu-desktop"
        assert report.run_id.startswith("run-")

    def test_finalized_report_is_read_only(self):
        collector = ReportCollector()
        collector.record(StepOutcome.success("a"))
        report = collector.finalize()
        assert isinstance(report.outcomes, tuple)
        with pytest.raises(RuntimeError, match="finalized"):
            collector.record(StepOutcome.success("b"))
        with pytest.raises(RuntimeError):
            collector.add_notes(["late"])

    def test_finalize_twice_returns_same_report(self):
        collector = ReportCollector()
        assert collector.finalize() is collector.finalize()

    def test_notes_deduplicated_and_stripped(self):
        collector = ReportCollector()
        collector.record(StepOutcome.success("a", notes=("Log out and back in.",)))
        collector.add_notes(["  Log out and back in.  ", "", "Configure your tools"])
        assert collector.finalize().follow_ups == ("Log out and back in.", "Configure your tools")


class TestPipelineReport:
    def _report(self, *outcomes: StepOutcome, cancelled: bool = False):
        collector = ReportCollector(name="demo")
        for outcome in outcomes:
            collector.record(outcome)
        if cancelled:
            collector.mark_incomplete(cancelled=True)
        return collector.finalize()

    def test_counts(self):
        report = self._report(
            StepOutcome.success("a"),
            StepOutcome.skip("b", reason="x"),
            StepOutcome.failure("c", FailureKind.NON_ZERO_EXIT, "boom", advisory=True),
        )
        assert (report.total, report.succeeded, report.skipped, report.failed) == (3, 1, 1, 1)

    def test_exit_codes(self):
        ok = self._report(StepOutcome.success("a"))
        advisory = self._report(StepOutcome.failure("a", FailureKind.TIMEOUT, "slow", advisory=True))
        fatal = self._report(StepOutcome.failure("a", FailureKind.TIMEOUT, "slow"))
        cancelled = self._report(StepOutcome.skip("a", reason="cancelled"), cancelled=True)
        assert ok.exit_code == EXIT_OK
        assert advisory.exit_code == EXIT_OK
        assert fatal.exit_code == EXIT_FAILED
        assert cancelled.exit_code == EXIT_CANCELLED

    def test_cancel_beats_failure(self):
        report = self._report(
            StepOutcome.failure("a", FailureKind.NON_ZERO_EXIT, "exit -2"),
            StepOutcome.skip("b", reason="cancelled"),
            cancelled=True,
        )
        assert report.status == "cancelled"
        assert report.exit_code == EXIT_CANCELLED

    def test_to_dict(self):
        report = self._report(StepOutcome.failure("a", FailureKind.LAUNCH_FAILURE, "Program not found: snap"))
        data = report.to_dict()
        assert data["status"] == "failed"
        assert data["exit_code"] == 1
        assert data["outcomes"][0]["error_kind"] == "launch_failure"

    def test_get(self):
        report = self._report(StepOutcome.success("a"))
        assert report.get("a").succeeded
        assert report.get("zzz") is None


class TestRenderText:
    def test_lists_every_step(self):
        collector = ReportCollector(name="ubuntu-desktop", profile="base")
        collector.record(StepOutcome.success("apt-update"))
        collector.record(
            StepOutcome.failure("lazygit", FailureKind.NON_ZERO_EXIT, "Command exited with code 22")
        )
        collector.record(StepOutcome.skip("ssh-key", reason=UPSTREAM_FAILURE))
        collector.add_notes(["Remember to configure your tools"])
        text = collector.finalize().render_text()

        lines = text.splitlines()
        assert lines[0] == "Provisioning report: ubuntu-desktop (profile: base)"
        assert lines[1].startswith("  ✓ apt-update")
        assert "✗ lazygit" in lines[2]
        assert "non_zero_exit: Command exited with code 22" in lines[2]
        assert lines[3].endswith("skipped (upstream failure)")
        assert "Result: 1 succeeded, 1 skipped, 1 failed (failed)" in text
        assert text.endswith("Follow-up:\n  1. Remember to configure your tools")

    def test_dry_run_title(self):
        text = ReportCollector(name="x", dry_run=True).finalize().render_text()
        assert text.splitlines()[0] == "Provisioning report: x [dry run]"


class TestDescribeOutcome:
    def test_variants(self):
        assert describe_outcome(StepOutcome.success("a")) == "succeeded"
        assert describe_outcome(StepOutcome.skip("a", reason="cancelled")) == "skipped (cancelled)"
        assert (
            describe_outcome(StepOutcome.failure("a", FailureKind.GUARD_ERROR, "denied"))
            == "failed (guard_error: denied)"
        )
