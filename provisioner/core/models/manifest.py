"""
Manifest models — the declarative provisioning document.

Loaded from provision.yml, the manifest holds everything the old setup
scripts hard-coded: package lists, pinned versions, download URLs and
follow-up notes. The engine treats it purely as data.
"""

from __future__ import annotations

import shlex
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _stringify(value: Any) -> str:
    """YAML scalars (ints, floats, bools) become strings."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class CaptureSpec(BaseModel):
    """Store a command's stdout in a pipeline variable.

    With ``json_field`` set, stdout is parsed as JSON and only that
    top-level field is kept (e.g. ``tag_name`` of a release).
    """

    model_config = ConfigDict(extra="forbid")

    var: str
    json_field: str | None = None


class CommandSpec(BaseModel):
    """One command of a step, as written in the manifest.

    Accepted YAML forms::

        - sudo apt update                      # string, split like a shell would
        - [ssh-keygen, -t, ed25519]            # argv list
        - run: sudo snap install defold        # mapping with options
          timeout: 600
        - shell: curl -fsSL URL | bash         # script run with bash -c
    """

    model_config = ConfigDict(extra="forbid")

    run: list[str] | None = None
    shell: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    cwd: str | None = None
    timeout: float | None = None
    capture: CaptureSpec | None = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_short_forms(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"run": shlex.split(data)}
        if isinstance(data, list):
            return {"run": data}
        if isinstance(data, dict) and isinstance(data.get("run"), str):
            data = dict(data)
            data["run"] = shlex.split(data["run"])
        return data

    @field_validator("run", mode="before")
    @classmethod
    def _stringify_args(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [_stringify(v) for v in value]
        return value

    @field_validator("env", mode="before")
    @classmethod
    def _stringify_env(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): _stringify(v) for k, v in value.items()}
        return value

    @model_validator(mode="after")
    def _exactly_one_form(self) -> CommandSpec:
        if (self.run is None) == (self.shell is None):
            raise ValueError("a command needs exactly one of 'run' or 'shell'")
        if self.run is not None and not self.run:
            raise ValueError("'run' must not be empty")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("'timeout' must be positive")
        return self

    @property
    def label(self) -> str:
        """Unrendered command text, for listings."""
        if self.shell is not None:
            return self.shell
        return shlex.join(self.run or [])


class GroupMemberSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    group: str
    user: str = "$USER"


class GuardSpec(BaseModel):
    """Precondition meaning "this step's work is already done".

    Exactly one key is set. ``all`` / ``any`` combine nested guards.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    file_exists: str | None = None
    command_exists: str | None = None
    group_member: GroupMemberSpec | None = None
    all_of: list[GuardSpec] | None = Field(default=None, alias="all")
    any_of: list[GuardSpec] | None = Field(default=None, alias="any")

    @model_validator(mode="after")
    def _exactly_one_check(self) -> GuardSpec:
        set_keys = [
            name
            for name in ("file_exists", "command_exists", "group_member", "all_of", "any_of")
            if getattr(self, name) is not None
        ]
        if len(set_keys) != 1:
            raise ValueError(
                "a guard needs exactly one of: file_exists, command_exists, "
                f"group_member, all, any (got {len(set_keys)})"
            )
        for combined in (self.all_of, self.any_of):
            if combined is not None and not combined:
                raise ValueError("'all' / 'any' guards must not be empty")
        return self

    def describe(self) -> str:
        """Short human-readable form, e.g. ``file_exists(~/.ssh/id_ed25519)``."""
        if self.file_exists is not None:
            return f"file_exists({self.file_exists})"
        if self.command_exists is not None:
            return f"command_exists({self.command_exists})"
        if self.group_member is not None:
            return f"group_member({self.group_member.user}, {self.group_member.group})"
        if self.all_of is not None:
            return "all(" + ", ".join(g.describe() for g in self.all_of) + ")"
        assert self.any_of is not None
        return "any(" + ", ".join(g.describe() for g in self.any_of) + ")"


class StepSpec(BaseModel):
    """A named unit of provisioning work, as declared in the manifest."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str
    description: str = ""
    guard: GuardSpec | None = None
    commands: list[CommandSpec] = Field(default_factory=list)
    continue_on_failure: bool = Field(default=False, alias="advisory")

    profiles: list[str] = Field(default_factory=list)   # empty = every profile
    exports: dict[str, str] = Field(default_factory=dict)
    refresh_paths: list[str] = Field(default_factory=list)

    notes: list[str] = Field(default_factory=list)      # shown when the step did work
    hint: str = ""                                      # shown when the step failed

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("step name must not be empty")
        if any(ch.isspace() for ch in value):
            raise ValueError(f"step name must not contain whitespace: {value!r}")
        return value

    @field_validator("exports", mode="before")
    @classmethod
    def _stringify_exports(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): _stringify(v) for k, v in value.items()}
        return value

    def in_profile(self, profile: str | None) -> bool:
        if profile is None or not self.profiles:
            return True
        return profile in self.profiles


class Defaults(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timeout: float | None = None


class Manifest(BaseModel):
    """Root provisioning document — loaded from provision.yml."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    name: str = "provision"
    description: str = ""

    default_profile: str | None = None
    profiles: dict[str, str] = Field(default_factory=dict)   # name -> description
    vars: dict[str, str] = Field(default_factory=dict)
    defaults: Defaults = Field(default_factory=Defaults)

    steps: list[StepSpec] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)

    @field_validator("vars", mode="before")
    @classmethod
    def _stringify_vars(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): _stringify(v) for k, v in value.items()}
        return value

    @field_validator("profiles", mode="before")
    @classmethod
    def _profiles_from_list(cls, value: Any) -> Any:
        if isinstance(value, list):
            return {str(name): "" for name in value}
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        return value

    @model_validator(mode="after")
    def _check_references(self) -> Manifest:
        seen: set[str] = set()
        for step in self.steps:
            if step.name in seen:
                raise ValueError(f"duplicate step name: {step.name!r}")
            seen.add(step.name)
            for profile in step.profiles:
                if profile not in self.profiles:
                    raise ValueError(
                        f"step {step.name!r} references undeclared profile {profile!r}"
                    )
        if self.default_profile is not None and self.default_profile not in self.profiles:
            raise ValueError(f"default_profile {self.default_profile!r} is not declared")
        return self

    def get_step(self, name: str) -> StepSpec | None:
        """Look up a step by name."""
        for step in self.steps:
            if step.name == name:
                return step
        return None

    @property
    def step_names(self) -> list[str]:
        return [s.name for s in self.steps]


GuardSpec.model_rebuild()
