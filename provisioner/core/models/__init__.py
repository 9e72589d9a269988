"""
Domain models — Pydantic types for the provisioner.

All models are re-exported here for convenient access:

    from provisioner.core.models import CommandInvocation, CommandResult, StepOutcome, Manifest
"""

from provisioner.core.models.invocation import (
    CommandInvocation,
    CommandResult,
    FailureKind,
)
from provisioner.core.models.manifest import (
    CaptureSpec,
    CommandSpec,
    Defaults,
    GroupMemberSpec,
    GuardSpec,
    Manifest,
    StepSpec,
)
from provisioner.core.models.outcome import StepOutcome

__all__ = [
    # manifest.py
    "CaptureSpec",
    # invocation.py
    "CommandInvocation",
    "CommandResult",
    "CommandSpec",
    "Defaults",
    "FailureKind",
    "GroupMemberSpec",
    "GuardSpec",
    "Manifest",
    # outcome.py
    "StepOutcome",
    "StepSpec",
]
