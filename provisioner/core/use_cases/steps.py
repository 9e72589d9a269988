"""
Steps use case — introspect the pipeline without running it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from provisioner.core.config.loader import (
    ConfigError,
    load_manifest,
    resolve_manifest_path,
    select_steps,
)
from provisioner.core.models.manifest import Manifest, StepSpec


@dataclass
class StepListing:
    """The steps a run would execute, in order."""

    manifest: Manifest | None = None
    manifest_path: Path | None = None
    profile: str | None = None
    steps: list[StepSpec] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "manifest": self.manifest.name if self.manifest else "",
            "manifest_path": str(self.manifest_path),
            "profile": self.profile,
            "profiles": dict(self.manifest.profiles) if self.manifest else {},
            "steps": [
                {
                    "name": s.name,
                    "description": s.description,
                    "guard": s.guard.describe() if s.guard else None,
                    "advisory": s.continue_on_failure,
                    "profiles": s.profiles,
                    "commands": [c.label for c in s.commands],
                }
                for s in self.steps
            ],
        }


def list_steps(manifest_path: Path | None = None, profile: str | None = None) -> StepListing:
    """List the steps selected by ``profile``."""
    listing = StepListing()
    try:
        listing.manifest_path = resolve_manifest_path(manifest_path)
        listing.manifest = load_manifest(listing.manifest_path)
        listing.profile, listing.steps = select_steps(listing.manifest, profile)
    except ConfigError as e:
        listing.error = str(e)
    return listing
