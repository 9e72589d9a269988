"""
Shared test fixtures and configuration.
"""

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from provisioner.adapters.mock import FakeChecks, MockRunner
from provisioner.core.engine.environment import ProvisionEnvironment


@pytest.fixture
def mock_runner() -> MockRunner:
    """A runner where every command succeeds."""
    return MockRunner()


@pytest.fixture
def fake_checks() -> FakeChecks:
    """An empty system: no files, no commands, no group memberships."""
    return FakeChecks()


@pytest.fixture
def env() -> ProvisionEnvironment:
    """An environment isolated from the real process environment."""
    return ProvisionEnvironment(
        base_env={"HOME": "/home/alice", "USER": "alice", "PATH": "/usr/bin:/bin"},
    )


@pytest.fixture
def write_manifest(tmp_path: Path) -> Callable[[str], Path]:
    """Write a provision.yml into tmp_path and return its path."""

    def _write(content: str, name: str = "provision.yml") -> Path:
        path = tmp_path / name
        path.write_text(textwrap.dedent(content))
        return path

    return _write
