"""
Tests for the pipeline — ordering, fail-fast, advisory steps, cancellation, idempotence.
"""

from provisioner.adapters.mock import FakeChecks, MockRunner
from provisioner.core.engine.environment import ProvisionEnvironment
from provisioner.core.engine.pipeline import CancelToken, Pipeline, build_steps
from provisioner.core.models.invocation import CommandInvocation
from provisioner.core.models.manifest import StepSpec
from provisioner.core.models.outcome import CANCELLED, UPSTREAM_FAILURE


def _steps(*specs: dict):
    return build_steps([StepSpec.model_validate(s) for s in specs])


def _pipeline(runner, checks, env, **kwargs) -> Pipeline:
    return Pipeline(runner, checks, env, name="test", **kwargs)


class TestPipelineOrder:
    def test_all_succeed_in_order(self, mock_runner: MockRunner, fake_checks: FakeChecks, env: ProvisionEnvironment):
        steps = _steps(
            {"name": "apt-update", "commands": ["sudo apt update"]},
            {"name": "core-packages", "commands": ["sudo apt install -y git"]},
        )
        report = _pipeline(mock_runner, fake_checks, env).run_all(steps)

        assert report.statuses() == ["succeeded", "succeeded"]
        assert mock_runner.commands == ["sudo apt update", "sudo apt install -y git"]
        assert report.complete
        assert report.status == "ok"
        assert report.exit_code == 0
        assert report.finalized

    def test_empty_pipeline(self, mock_runner: MockRunner, fake_checks: FakeChecks, env: ProvisionEnvironment):
        report = _pipeline(mock_runner, fake_checks, env).run_all([])
        assert report.total == 0
        assert report.exit_code == 0


class TestFailFast:
    def test_middle_failure_skips_rest(self, fake_checks: FakeChecks, env: ProvisionEnvironment):
        runner = MockRunner()
        runner.set_failure("step-two")
        steps = _steps(
            {"name": "one", "commands": ["step-one"]},
            {"name": "two", "commands": ["step-two"]},
            {"name": "three", "commands": ["step-three"]},
        )

        report = _pipeline(runner, fake_checks, env).run_all(steps)

        assert report.statuses() == ["succeeded", "failed", "skipped"]
        assert report.get("three").reason == UPSTREAM_FAILURE
        assert report.exit_code != 0
        assert report.status == "failed"
        assert not report.complete
        assert "step-three" not in runner.commands

    def test_report_names_every_step(self, fake_checks: FakeChecks, env: ProvisionEnvironment):
        runner = MockRunner()
        runner.set_failure("first")
        steps = _steps(
            {"name": "a", "commands": ["first"]},
            {"name": "b", "commands": ["x"]},
            {"name": "c", "commands": ["y"]},
        )
        report = _pipeline(runner, fake_checks, env).run_all(steps)
        assert [o.step for o in report.outcomes] == ["a", "b", "c"]
        assert runner.call_count == 1


class TestAdvisory:
    def test_advisory_failure_continues(self, fake_checks: FakeChecks, env: ProvisionEnvironment):
        runner = MockRunner()
        runner.set_failure("bash")
        steps = _steps(
            {"name": "nvm", "commands": ["true"]},
            {
                "name": "node-lts",
                "advisory": True,
                "commands": [{"shell": "nvm install --lts"}],
                "hint": "NVM not found after installation attempt.",
            },
            {"name": "ssh-key", "commands": ["ssh-keygen"]},
        )

        report = _pipeline(runner, fake_checks, env).run_all(steps)

        assert report.statuses() == ["succeeded", "failed", "succeeded"]
        assert report.complete
        assert report.status == "partial"
        assert report.exit_code == 0
        assert report.advisory_failures[0].step == "node-lts"
        assert "NVM not found after installation attempt." in report.follow_ups


class TestCancellation:
    def test_cancel_before_start(self, mock_runner: MockRunner, fake_checks: FakeChecks, env: ProvisionEnvironment):
        token = CancelToken()
        token.cancel()
        steps = _steps({"name": "a", "commands": ["x"]}, {"name": "b", "commands": ["y"]})

        report = _pipeline(mock_runner, fake_checks, env, cancel_token=token).run_all(steps)

        assert report.statuses() == ["skipped", "skipped"]
        assert all(o.reason == CANCELLED for o in report.outcomes)
        assert mock_runner.call_count == 0
        assert report.cancelled
        assert report.exit_code == 130

    def test_cancel_between_steps(self, fake_checks: FakeChecks, env: ProvisionEnvironment):
        token = CancelToken()

        def cancel_after_first(inv: CommandInvocation) -> None:
            token.cancel()

        runner = MockRunner(on_run=cancel_after_first)
        steps = _steps(
            {"name": "a", "commands": ["x", "x2"]},
            {"name": "b", "commands": ["y"]},
        )

        report = _pipeline(runner, fake_checks, env, cancel_token=token).run_all(steps)

        # The running step is never interrupted
        assert report.get("a").succeeded
        assert report.get("a").commands_run == 2
        assert report.get("b").reason == CANCELLED
        assert report.status == "cancelled"

    def _interrupted_runner(self, token: CancelToken, interrupted: str) -> MockRunner:
        # SIGINT reaches the child too: it dies with -2 while the token is set
        def cancel_on(inv: CommandInvocation) -> None:
            if inv.program == interrupted:
                token.cancel()

        runner = MockRunner(on_run=cancel_on)
        runner.set_failure(interrupted, exit_code=-2, stderr="")
        return runner

    def test_interrupted_step_failure_reports_cancel(self, fake_checks: FakeChecks, env: ProvisionEnvironment):
        token = CancelToken()
        runner = self._interrupted_runner(token, "x")
        steps = _steps(
            {"name": "a", "commands": ["x"]},
            {"name": "b", "commands": ["y"]},
        )

        report = _pipeline(runner, fake_checks, env, cancel_token=token).run_all(steps)

        assert report.statuses() == ["failed", "skipped"]
        assert report.get("b").reason == CANCELLED
        assert report.cancelled
        assert report.status == "cancelled"
        assert report.exit_code == 130
        assert "y" not in runner.commands

    def test_interrupted_last_step_reports_cancel(self, fake_checks: FakeChecks, env: ProvisionEnvironment):
        token = CancelToken()
        runner = self._interrupted_runner(token, "x")
        steps = _steps({"name": "only", "commands": ["x"]})

        report = _pipeline(runner, fake_checks, env, cancel_token=token).run_all(steps)

        assert report.statuses() == ["failed"]
        assert report.cancelled
        assert report.exit_code == 130

    def test_failure_without_cancel_stays_upstream_failure(self, fake_checks: FakeChecks, env: ProvisionEnvironment):
        token = CancelToken()
        runner = MockRunner()
        runner.set_failure("x", exit_code=-2)
        steps = _steps({"name": "a", "commands": ["x"]}, {"name": "b", "commands": ["y"]})

        report = _pipeline(runner, fake_checks, env, cancel_token=token).run_all(steps)

        assert report.get("b").reason == UPSTREAM_FAILURE
        assert not report.cancelled
        assert report.exit_code == 1


class TestIdempotence:
    def test_second_run_skips_satisfied_steps(self, env: ProvisionEnvironment):
        checks = FakeChecks()

        def system(inv: CommandInvocation) -> None:
            if inv.program == "ssh-keygen":
                checks.files.add("/home/alice/.ssh/id_ed25519")
            if inv.argv[:2] == ["sudo", "usermod"]:
                checks.memberships.add(("alice", "docker"))

        runner = MockRunner(on_run=system)
        specs = (
            {
                "name": "ssh-key",
                "guard": {"file_exists": "$HOME/.ssh/id_ed25519"},
                "commands": ["ssh-keygen -t ed25519 -N '' -f $HOME/.ssh/id_ed25519"],
            },
            {
                "name": "docker-group",
                "guard": {"group_member": {"group": "docker"}},
                "commands": ["sudo usermod -aG docker $USER"],
                "notes": ["Log out and back in."],
            },
        )

        first = _pipeline(runner, checks, env).run_all(_steps(*specs))
        assert first.statuses() == ["succeeded", "succeeded"]
        assert first.follow_ups == ("Log out and back in.",)

        runner.reset()
        second = _pipeline(runner, checks, env).run_all(_steps(*specs))
        assert second.statuses() == ["skipped", "skipped"]
        assert runner.call_count == 0
        assert second.follow_ups == ()


class TestNotes:
    def test_manifest_notes_follow_step_notes(self, mock_runner: MockRunner, fake_checks: FakeChecks, env: ProvisionEnvironment):
        steps = _steps({"name": "a", "commands": ["x"], "notes": ["from step"]})
        pipeline = _pipeline(mock_runner, fake_checks, env, notes=["configure your tools", "from step"])
        report = pipeline.run_all(steps)
        assert report.follow_ups == ("from step", "configure your tools")

    def test_manifest_notes_present_after_failure(self, fake_checks: FakeChecks, env: ProvisionEnvironment):
        runner = MockRunner()
        runner.set_failure("x")
        pipeline = _pipeline(runner, fake_checks, env, notes=["OBS Studio: review your needs"])
        report = pipeline.run_all(_steps({"name": "a", "commands": ["x"]}))
        assert report.follow_ups == ("OBS Studio: review your needs",)


class TestRefreshPathsAcrossSteps:
    def test_later_guard_sees_new_path(self, tmp_path, mock_runner: MockRunner, env: ProvisionEnvironment):
        bin_dir = tmp_path / "versions" / "node" / "v22.0.0" / "bin"

        class PathAwareChecks(FakeChecks):
            def command_exists(self, name, search_path=None):
                self.queries.append(("command_exists", name))
                return str(bin_dir) in (search_path or "").split(":")

        def install_node(inv: CommandInvocation) -> None:
            bin_dir.mkdir(parents=True, exist_ok=True)

        runner = MockRunner(on_run=install_node)
        checks = PathAwareChecks()
        specs = (
            {
                "name": "node-lts",
                "exports": {"NVM_DIR": str(tmp_path)},
                "refresh_paths": ["$NVM_DIR/versions/node/*/bin"],
                "guard": {"command_exists": "node"},
                "commands": [{"shell": "nvm install --lts"}],
            },
            {"name": "check-node", "guard": {"command_exists": "node"}, "commands": ["never"]},
        )

        report = Pipeline(runner, checks, env).run_all(_steps(*specs))

        assert report.statuses() == ["succeeded", "skipped"]
        assert "never" not in runner.commands
