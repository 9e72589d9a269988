"""
Configuration loader — reads provision.yml into domain models.

This is the primary entry point for loading the provisioning manifest.
It reads YAML, validates against Pydantic schemas, and returns typed
domain objects. It also resolves which manifest to use and which steps
a run selects.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from importlib.resources import files
from pathlib import Path

import yaml
from pydantic import ValidationError

from provisioner.core.models.manifest import Manifest, StepSpec

logger = logging.getLogger(__name__)

# Default manifest filename
MANIFEST_FILE = "provision.yml"

# Env var pointing at an explicit manifest
MANIFEST_ENV = "PROVISION_MANIFEST"


class ConfigError(Exception):
    """Raised when the manifest or the run selection is invalid."""


def default_manifest_path() -> Path:
    """The Ubuntu desktop manifest shipped with the package."""
    return Path(str(files("provisioner") / "data" / "ubuntu.yml"))


def find_manifest_file(start_dir: Path | None = None) -> Path | None:
    """Search for provision.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to provision.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / MANIFEST_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def resolve_manifest_path(path: Path | None = None) -> Path:
    """Pick the manifest to load.

    Precedence: explicit path > $PROVISION_MANIFEST > provision.yml found
    upward from cwd > packaged default.
    """
    if path is not None:
        return path
    env_path = os.environ.get(MANIFEST_ENV)
    if env_path:
        return Path(env_path).expanduser()
    found = find_manifest_file()
    if found is not None:
        return found
    return default_manifest_path()


def load_manifest(path: Path | None = None) -> Manifest:
    """Load and validate a provisioning manifest.

    Args:
        path: Explicit manifest path. If None, see ``resolve_manifest_path``.

    Returns:
        Validated Manifest model.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    path = resolve_manifest_path(path)

    if not path.is_file():
        raise ConfigError(f"Manifest not found: {path}")

    logger.debug("Loading manifest from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        manifest = Manifest.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid manifest {path}:\n{_format_errors(e)}") from e

    logger.info("Loaded manifest '%s' with %d steps", manifest.name, len(manifest.steps))
    return manifest


def _format_errors(error: ValidationError) -> str:
    lines = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"]) or "<root>"
        lines.append(f"  {location}: {err['msg']}")
    return "\n".join(lines)


def parse_assignments(items: Sequence[str]) -> dict[str, str]:
    """Parse ``name=value`` pairs from the command line.

    Raises:
        ConfigError: If an item has no ``=`` or an empty name.
    """
    result: dict[str, str] = {}
    for item in items:
        name, sep, value = item.partition("=")
        name = name.strip()
        if not sep or not name:
            raise ConfigError(f"Expected name=value, got {item!r}")
        result[name] = value
    return result


def select_steps(
    manifest: Manifest,
    profile: str | None = None,
    only: Sequence[str] = (),
    skip: Sequence[str] = (),
) -> tuple[str | None, list[StepSpec]]:
    """Choose the steps a run executes, in manifest order.

    Args:
        manifest: The loaded manifest.
        profile: Profile name; None means the manifest's default_profile.
        only: If given, run just these step names.
        skip: Step names to leave out.

    Returns:
        (effective profile, selected steps).

    Raises:
        ConfigError: On an unknown profile or step name.
    """
    effective = profile if profile is not None else manifest.default_profile
    if effective is not None and effective not in manifest.profiles:
        known = ", ".join(sorted(manifest.profiles)) or "none declared"
        raise ConfigError(f"Unknown profile '{effective}' (known: {known})")

    unknown = [name for name in [*only, *skip] if manifest.get_step(name) is None]
    if unknown:
        raise ConfigError(f"Unknown step(s): {', '.join(unknown)}")

    selected = [s for s in manifest.steps if s.in_profile(effective)]
    if only:
        outside = [name for name in only if name not in {s.name for s in selected}]
        if outside:
            raise ConfigError(
                f"Step(s) not in profile '{effective}': {', '.join(outside)}"
            )
        selected = [s for s in selected if s.name in only]
    if skip:
        selected = [s for s in selected if s.name not in skip]

    return effective, selected
