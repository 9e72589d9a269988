"""
Config check use case — validate a manifest and report problems.

Errors make the manifest unusable. Warnings point at steps that will
work but are probably not what the author meant.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from string import Template

from provisioner.core.config.loader import ConfigError, load_manifest, resolve_manifest_path
from provisioner.core.models.manifest import CommandSpec, Manifest

logger = logging.getLogger(__name__)

# Always defined by the provisioning environment
_BUILTIN_VARS = {"HOME", "USER"}


@dataclass
class CheckResult:
    """Result of a manifest check."""

    valid: bool = False
    manifest: Manifest | None = None
    manifest_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "manifest_path": str(self.manifest_path) if self.manifest_path else None,
            "name": self.manifest.name if self.manifest else None,
            "steps": len(self.manifest.steps) if self.manifest else 0,
            "errors": self.errors,
            "warnings": self.warnings,
        }


def _referenced_names(text: str) -> set[str]:
    """``$name`` / ``${name}`` placeholders used in a string."""
    names = set()
    for match in Template.pattern.finditer(text):
        name = match.group("named") or match.group("braced")
        if name:
            names.add(name)
    return names


def _command_texts(cmd: CommandSpec) -> list[str]:
    # Shell scripts define their own variables, so only argv is checked
    texts = list(cmd.run or [])
    texts.extend(cmd.env.values())
    if cmd.cwd:
        texts.append(cmd.cwd)
    return texts


def _undefined(texts: list[str], known: set[str]) -> list[str]:
    names: set[str] = set()
    for text in texts:
        names |= _referenced_names(text)
    return sorted(names - known)


def _lint(manifest: Manifest) -> list[str]:
    warnings: list[str] = []
    known = set(manifest.vars) | _BUILTIN_VARS | set(os.environ)
    used_profiles: set[str] = set()

    for step in manifest.steps:
        used_profiles.update(step.profiles)

        if not step.commands:
            warnings.append(f"Step '{step.name}' has no commands")
        if step.guard is None and not step.continue_on_failure:
            warnings.append(f"Step '{step.name}' has no guard and re-runs every time")

        known |= set(step.exports)
        undefined = _undefined([step.guard.describe()], known) if step.guard else []
        for cmd in step.commands:
            undefined += _undefined(_command_texts(cmd), known)
            # Captured values are visible from the next command on
            if cmd.capture is not None:
                known.add(cmd.capture.var)
        for name in dict.fromkeys(undefined):
            warnings.append(f"Step '{step.name}' references undefined variable '{name}'")

    for profile in manifest.profiles:
        if profile not in used_profiles and profile != manifest.default_profile:
            warnings.append(f"Profile '{profile}' is declared but no step uses it")

    return warnings


def check_manifest(manifest_path: Path | None = None) -> CheckResult:
    """Validate a manifest.

    Args:
        manifest_path: Optional explicit manifest path.

    Returns:
        CheckResult with errors and warnings.
    """
    result = CheckResult()
    try:
        result.manifest_path = resolve_manifest_path(manifest_path)
        result.manifest = load_manifest(result.manifest_path)
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    result.warnings = _lint(result.manifest)
    result.valid = True
    logger.debug("Manifest check: %d warnings", len(result.warnings))
    return result
