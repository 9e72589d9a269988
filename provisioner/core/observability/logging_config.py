"""
Logging configuration — one console stream, one optional run transcript.

Called once at CLI start. Every module logs through
``logging.getLogger(__name__)``; records are tagged with the step being
evaluated (``%(step)s``), so a transcript reads step by step:

    12:01:07 [ssh-key] $ ssh-keygen -t ed25519 -N '' -f /home/alice/.ssh/id_ed25519

Level precedence:
    --debug  >  --verbose  >  --quiet  >  $PROVISION_LOG_LEVEL  >  WARNING

$PROVISION_LOG_FILE adds a transcript file, at $PROVISION_LOG_FILE_LEVEL
(default: the console level).
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

LOG_LEVEL_ENV = "PROVISION_LOG_LEVEL"
LOG_FILE_ENV = "PROVISION_LOG_FILE"
LOG_FILE_LEVEL_ENV = "PROVISION_LOG_FILE_LEVEL"

# Outside any step
NO_STEP = "-"

_current_step: ContextVar[str] = ContextVar("provision_step", default=NO_STEP)

_CONSOLE_FORMATS = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s [%(step)s] %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(step)s] %(message)s", "%H:%M:%S"),
}
_FMT_QUIET = "%(message)s"
_FMT_TRANSCRIPT = "%(asctime)s %(levelname)-5s [%(step)s] %(name)s — %(message)s"
_DATEFMT_TRANSCRIPT = "%Y-%m-%d %H:%M:%S"


@contextmanager
def step_context(name: str) -> Iterator[None]:
    """Tag every record logged inside the block with step ``name``."""
    token = _current_step.set(name)
    try:
        yield
    finally:
        _current_step.reset(token)


def current_step() -> str:
    return _current_step.get()


class StepFilter(logging.Filter):
    """Adds ``record.step`` so formats can use ``%(step)s``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.step = _current_step.get()
        return True


def resolve_level(debug: bool = False, verbose: bool = False, quiet: bool = False) -> int:
    """Console level from CLI flags, falling back to $PROVISION_LOG_LEVEL."""
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    if quiet:
        return logging.ERROR
    return _parse_level(os.environ.get(LOG_LEVEL_ENV))


def _console_formatter(level: int) -> logging.Formatter:
    for threshold in (logging.DEBUG, logging.INFO):
        if level <= threshold:
            fmt, datefmt = _CONSOLE_FORMATS[threshold]
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter(_FMT_QUIET)


def setup_logging(
    level: int | str = logging.WARNING,
    log_file: str | None = None,
    log_file_level: int | str | None = None,
) -> None:
    """Configure the root logger for a provisioner process.

    Args:
        level: Console level (number or name).
        log_file: Transcript path; defaults to $PROVISION_LOG_FILE.
        log_file_level: Transcript level; defaults to
            $PROVISION_LOG_FILE_LEVEL, then to ``level``.
    """
    console_level = level if isinstance(level, int) else _parse_level(level)
    log_file = log_file or os.environ.get(LOG_FILE_ENV)
    if log_file_level is None:
        log_file_level = os.environ.get(LOG_FILE_LEVEL_ENV)

    step_filter = StepFilter()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))
    console.addFilter(step_filter)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        if isinstance(log_file_level, int):
            file_level = log_file_level
        elif log_file_level:
            file_level = _parse_level(log_file_level)
        else:
            file_level = console_level
        transcript = logging.FileHandler(log_file, encoding="utf-8")
        transcript.setLevel(file_level)
        transcript.setFormatter(logging.Formatter(_FMT_TRANSCRIPT, datefmt=_DATEFMT_TRANSCRIPT))
        transcript.addFilter(step_filter)
        root.addHandler(transcript)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)
    # A closed stream must never break a provisioning run
    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name to number; unknown or empty names mean WARNING."""
    numeric = logging.getLevelName(level.upper()) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING
