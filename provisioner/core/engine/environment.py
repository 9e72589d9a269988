"""
Provisioning environment — variables, exports and known install paths.

Shell scripts make a freshly installed tool visible by sourcing files
into the running shell. Here that state lives in one object that every
step reads from and a few steps write to:

    vars           manifest vars, --set overrides, captured values
    exports        env vars declared by steps (e.g. NVM_DIR), passed to
                   every later command
    path dirs      directories found by ``refresh_paths`` globs, prepended
                   to PATH for later commands and command_exists guards

Expansion uses ``$name`` / ``${name}`` (string.Template); unknown names
are left untouched so shell scripts keep their own ``$(...)`` and ``$1``.
"""

from __future__ import annotations

import getpass
import glob
import logging
import os
from collections import ChainMap
from collections.abc import Mapping
from string import Template

from provisioner.core.models.invocation import CommandInvocation
from provisioner.core.models.manifest import CommandSpec

logger = logging.getLogger(__name__)


def _fallback_identity() -> dict[str, str]:
    """USER / HOME for environments that do not set them."""
    identity = {"HOME": os.path.expanduser("~")}
    try:
        identity["USER"] = getpass.getuser()
    except (KeyError, OSError):
        pass
    return identity


def _expand_tilde(arg: str) -> str:
    """Tilde expansion the way a shell does it: only a leading ``~``."""
    if arg == "~" or arg.startswith("~/"):
        return os.path.expanduser(arg)
    return arg


class ProvisionEnvironment:
    """Mutable state shared by the steps of one pipeline run."""

    def __init__(
        self,
        variables: Mapping[str, str] | None = None,
        base_env: Mapping[str, str] | None = None,
        default_timeout: float | None = None,
    ):
        self._vars: dict[str, str] = dict(variables or {})
        self._exports: dict[str, str] = {}
        self._path_dirs: list[str] = []
        self._base_env: Mapping[str, str] = os.environ if base_env is None else base_env
        self._fallback = _fallback_identity()
        self.default_timeout = default_timeout

    # ── Variables ──────────────────────────────────────────────

    @property
    def variables(self) -> dict[str, str]:
        return dict(self._vars)

    @property
    def exports(self) -> dict[str, str]:
        return dict(self._exports)

    @property
    def path_dirs(self) -> list[str]:
        return list(self._path_dirs)

    def set_var(self, name: str, value: str) -> None:
        logger.debug("var %s=%s", name, value)
        self._vars[name] = value

    def export(self, name: str, value: str) -> None:
        """Export an env var to every later command (value is expanded first)."""
        expanded = self.expand_path(value)
        logger.debug("export %s=%s", name, expanded)
        self._exports[name] = expanded

    def _mapping(self) -> ChainMap:
        return ChainMap(self._vars, self._exports, dict(self._base_env), self._fallback)

    def lookup(self, name: str) -> str | None:
        return self._mapping().get(name)

    def expand(self, text: str) -> str:
        """Substitute ``$name`` / ``${name}``; unknown names stay as written."""
        return Template(text).safe_substitute(self._mapping())

    def expand_path(self, text: str) -> str:
        return os.path.expanduser(self.expand(text))

    # ── PATH handling ──────────────────────────────────────────

    @property
    def search_path(self) -> str:
        """PATH as later commands see it."""
        base = self._exports.get("PATH") or self._base_env.get("PATH", os.defpath)
        return os.pathsep.join([*self._path_dirs, base])

    def refresh_paths(self, patterns: list[str]) -> list[str]:
        """Re-resolve install locations and prepend new ones to the search path.

        Each pattern is expanded then globbed, so versioned locations
        such as ``$NVM_DIR/versions/node/*/bin`` resolve to whatever is
        on disk now.

        Returns:
            Directories newly added by this call.
        """
        added: list[str] = []
        for pattern in patterns:
            for match in sorted(glob.glob(self.expand_path(pattern)), reverse=True):
                if os.path.isdir(match) and match not in self._path_dirs:
                    added.append(match)
        if added:
            logger.info("PATH += %s", os.pathsep.join(added))
            self._path_dirs = added + self._path_dirs
        return added

    # ── Rendering ──────────────────────────────────────────────

    def render(self, spec: CommandSpec) -> CommandInvocation:
        """Turn a manifest command into a concrete, immutable invocation.

        Rendering happens right before the command runs so values captured
        by earlier commands are visible.
        """
        if spec.shell is not None:
            program, args = "bash", ["-c", self.expand(spec.shell)]
        else:
            argv = [_expand_tilde(self.expand(a)) for a in spec.run or []]
            program, args = argv[0], argv[1:]

        env = dict(self._exports)
        env.update({k: self.expand_path(v) for k, v in spec.env.items()})
        if self._path_dirs and "PATH" not in spec.env:
            env["PATH"] = self.search_path

        return CommandInvocation(
            program=program,
            args=tuple(args),
            env=env,
            cwd=self.expand_path(spec.cwd) if spec.cwd else None,
            timeout=spec.timeout if spec.timeout is not None else self.default_timeout,
        )
