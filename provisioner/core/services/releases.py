"""
Release lookup — resolve the latest release tag of a GitHub repository.

The request goes through the CommandRunner (``curl``), like every other
network call the provisioner makes; only the ``tag_name`` field of the
JSON response is read.
"""

from __future__ import annotations

import logging

from provisioner.adapters.base import CommandRunner
from provisioner.core.engine.step import CaptureError, capture_value
from provisioner.core.models.invocation import CommandInvocation
from provisioner.core.models.manifest import CaptureSpec

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"


class ReleaseLookupError(Exception):
    """Raised when the latest release tag cannot be determined."""


def latest_release_url(repo: str) -> str:
    """API URL of the latest release of ``owner/repo``."""
    return f"{GITHUB_API}/repos/{repo}/releases/latest"


def latest_release_tag(runner: CommandRunner, repo: str, timeout: float | None = 30) -> str:
    """Return the tag of the latest release of ``owner/repo`` (e.g. ``v2.27.0``).

    Raises:
        ReleaseLookupError: If the request fails or the response has no tag.
    """
    if repo.count("/") != 1:
        raise ReleaseLookupError(f"Expected owner/repo, got {repo!r}")

    invocation = CommandInvocation(
        program="curl",
        args=(
            "-fsSL",
            "-H",
            "Accept: application/vnd.github+json",
            latest_release_url(repo),
        ),
        timeout=timeout,
    )
    result = runner.run(invocation)
    if not result.ok:
        raise ReleaseLookupError(
            f"Failed to fetch latest release of {repo}: {result.error or result.tail()}"
        )

    try:
        tag = capture_value(CaptureSpec(var="tag", json_field="tag_name"), result.stdout)
    except CaptureError as e:
        raise ReleaseLookupError(f"Unexpected release response for {repo}: {e}") from e

    if not tag:
        raise ReleaseLookupError(f"Empty tag_name for {repo}")

    logger.info("Latest release of %s: %s", repo, tag)
    return tag
