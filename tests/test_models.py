"""
Tests for domain models — invocations, results, outcomes, and the manifest schema.
"""

import pytest
from pydantic import ValidationError

from provisioner.core.models import (
    CommandInvocation,
    CommandResult,
    CommandSpec,
    FailureKind,
    GuardSpec,
    Manifest,
    StepOutcome,
    StepSpec,
)
from provisioner.core.models.invocation import LAUNCH_FAILURE_EXIT_CODE, TIMEOUT_EXIT_CODE

# ── Invocation / Result ──────────────────────────────────────────────


class TestCommandInvocation:
    def test_argv_and_display(self):
        inv = CommandInvocation(program="ssh-keygen", args=("-N", "", "-f", "/tmp/my key"))
        assert inv.argv == ["ssh-keygen", "-N", "", "-f", "/tmp/my key"]
        assert inv.display == "ssh-keygen -N '' -f '/tmp/my key'"

    def test_frozen(self):
        inv = CommandInvocation(program="true")
        with pytest.raises(ValidationError):
            inv.program = "false"


class TestCommandResult:
    def test_completed_zero_is_ok(self):
        result = CommandResult.completed("true", exit_code=0, stdout="hi")
        assert result.ok
        assert result.failure_kind is None
        assert result.error is None

    def test_completed_non_zero(self):
        result = CommandResult.completed("false", exit_code=3, stderr="boom")
        assert not result.ok
        assert result.status == "non_zero_exit"
        assert result.exit_code == 3
        assert result.failure_kind == FailureKind.NON_ZERO_EXIT
        assert "3" in result.error

    def test_launch_failure(self):
        result = CommandResult.launch_failure("nope", "Program not found: nope")
        assert result.failure_kind == FailureKind.LAUNCH_FAILURE
        assert result.exit_code == LAUNCH_FAILURE_EXIT_CODE

    def test_timed_out(self):
        result = CommandResult.timed_out("sleep 10", timeout=0.5)
        assert result.failure_kind == FailureKind.TIMEOUT
        assert result.exit_code == TIMEOUT_EXIT_CODE
        assert "0.5s" in result.error

    def test_tail_prefers_stderr(self):
        stderr = "\n".join(f"line {i}" for i in range(10))
        result = CommandResult.completed("x", exit_code=1, stdout="out", stderr=stderr)
        assert result.tail(2) == "line 8\nline 9"

    def test_tail_falls_back_to_stdout(self):
        result = CommandResult.completed("x", exit_code=1, stdout="only stdout\n")
        assert result.tail() == "only stdout"


class TestStepOutcome:
    def test_factories(self):
        assert StepOutcome.success("a").succeeded
        skipped = StepOutcome.skip("b", reason="already satisfied")
        assert skipped.skipped
        assert skipped.reason == "already satisfied"
        failed = StepOutcome.failure("c", FailureKind.TIMEOUT, "too slow")
        assert failed.failed
        assert failed.error_kind == FailureKind.TIMEOUT

    def test_fatal_only_when_not_advisory(self):
        assert StepOutcome.failure("c", FailureKind.NON_ZERO_EXIT, "x").fatal
        assert not StepOutcome.failure("c", FailureKind.NON_ZERO_EXIT, "x", advisory=True).fatal
        assert not StepOutcome.skip("c", reason="r").fatal


# ── Manifest schema ──────────────────────────────────────────────────


class TestCommandSpec:
    def test_string_is_split_like_a_shell(self):
        spec = CommandSpec.model_validate('ssh-keygen -t ed25519 -N ""')
        assert spec.run == ["ssh-keygen", "-t", "ed25519", "-N", ""]
        assert spec.shell is None

    def test_list_form(self):
        spec = CommandSpec.model_validate(["chmod", 755, "/tmp/x"])
        assert spec.run == ["chmod", "755", "/tmp/x"]

    def test_mapping_with_options(self):
        spec = CommandSpec.model_validate(
            {"run": "sudo snap install defold", "timeout": 600, "env": {"DEBUG": 1}}
        )
        assert spec.run == ["sudo", "snap", "install", "defold"]
        assert spec.timeout == 600
        assert spec.env == {"DEBUG": "1"}

    def test_shell_form(self):
        spec = CommandSpec.model_validate({"shell": "curl -fsSL x | bash"})
        assert spec.shell == "curl -fsSL x | bash"
        assert spec.label == "curl -fsSL x | bash"

    def test_run_and_shell_together_rejected(self):
        with pytest.raises(ValidationError, match="exactly one"):
            CommandSpec.model_validate({"run": "true", "shell": "true"})

    def test_empty_run_rejected(self):
        with pytest.raises(ValidationError):
            CommandSpec.model_validate({"run": []})

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValidationError, match="positive"):
            CommandSpec.model_validate({"run": "true", "timeout": 0})

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            CommandSpec.model_validate({"run": "true", "retries": 3})


class TestGuardSpec:
    def test_single_check(self):
        guard = GuardSpec.model_validate({"file_exists": "~/.ssh/id_ed25519"})
        assert guard.describe() == "file_exists(~/.ssh/id_ed25519)"

    def test_group_member_defaults_to_current_user(self):
        guard = GuardSpec.model_validate({"group_member": {"group": "docker"}})
        assert guard.group_member.user == "$USER"
        assert guard.describe() == "group_member($USER, docker)"

    def test_combinators_use_short_aliases(self):
        guard = GuardSpec.model_validate(
            {"all": [{"file_exists": "/a"}, {"any": [{"command_exists": "b"}, {"file_exists": "/c"}]}]}
        )
        assert guard.describe() == "all(file_exists(/a), any(command_exists(b), file_exists(/c)))"

    def test_two_checks_rejected(self):
        with pytest.raises(ValidationError, match="exactly one"):
            GuardSpec.model_validate({"file_exists": "/a", "command_exists": "b"})

    def test_no_check_rejected(self):
        with pytest.raises(ValidationError):
            GuardSpec.model_validate({})

    def test_empty_combinator_rejected(self):
        with pytest.raises(ValidationError, match="must not be empty"):
            GuardSpec.model_validate({"all": []})


class TestStepSpec:
    def test_advisory_alias(self):
        step = StepSpec.model_validate({"name": "node-lts", "advisory": True})
        assert step.continue_on_failure

    def test_long_name_accepted(self):
        step = StepSpec.model_validate({"name": "node-lts", "continue_on_failure": True})
        assert step.continue_on_failure

    def test_name_with_whitespace_rejected(self):
        with pytest.raises(ValidationError, match="whitespace"):
            StepSpec.model_validate({"name": "ssh key"})

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            StepSpec.model_validate({"name": "  "})

    def test_in_profile(self):
        untagged = StepSpec(name="a")
        tagged = StepSpec(name="b", profiles=["full"])
        assert untagged.in_profile("base")
        assert untagged.in_profile(None)
        assert tagged.in_profile("full")
        assert not tagged.in_profile("base")
        assert tagged.in_profile(None)


class TestManifest:
    def test_minimal(self):
        manifest = Manifest.model_validate({"steps": [{"name": "a", "commands": ["true"]}]})
        assert manifest.name == "provision"
        assert manifest.step_names == ["a"]
        assert manifest.get_step("a") is not None
        assert manifest.get_step("missing") is None

    def test_vars_stringified(self):
        manifest = Manifest.model_validate({"vars": {"version": 0.4, "enabled": True}})
        assert manifest.vars == {"version": "0.4", "enabled": "true"}

    def test_profiles_as_list(self):
        manifest = Manifest.model_validate({"profiles": ["base", "full"]})
        assert manifest.profiles == {"base": "", "full": ""}

    def test_duplicate_step_names_rejected(self):
        with pytest.raises(ValidationError, match="duplicate step name"):
            Manifest.model_validate({"steps": [{"name": "a"}, {"name": "a"}]})

    def test_undeclared_profile_rejected(self):
        with pytest.raises(ValidationError, match="undeclared profile"):
            Manifest.model_validate({"steps": [{"name": "a", "profiles": ["full"]}]})

    def test_undeclared_default_profile_rejected(self):
        with pytest.raises(ValidationError, match="default_profile"):
            Manifest.model_validate({"default_profile": "full", "profiles": ["base"]})
