"""
Run ledger — append-only provisioning history.

Every pipeline run can append an entry to an NDJSON (newline-delimited
JSON) file: which manifest ran, with which profile, what failed. The
ledger is append-only: entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from provisioner.core.engine.report import PipelineReport

logger = logging.getLogger(__name__)

# Env var pointing at the ledger file
AUDIT_FILE_ENV = "PROVISION_AUDIT_FILE"


class RunEntry(BaseModel):
    """A single ledger entry, one per pipeline run."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    manifest: str = ""
    profile: str | None = None
    dry_run: bool = False

    # Results
    status: str = ""               # ok, partial, failed, cancelled
    steps_total: int = 0
    steps_succeeded: int = 0
    steps_skipped: int = 0
    steps_failed: int = 0
    failed_steps: list[str] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: PipelineReport, manifest: str = "") -> RunEntry:
        return cls(
            run_id=report.run_id,
            manifest=manifest,
            profile=report.profile,
            dry_run=report.dry_run,
            status=report.status,
            steps_total=report.total,
            steps_succeeded=report.succeeded,
            steps_skipped=report.skipped,
            steps_failed=report.failed,
            failed_steps=[o.step for o in report.outcomes if o.failed],
        )


def default_audit_path() -> Path | None:
    """Ledger path from $PROVISION_AUDIT_FILE, or None (no ledger)."""
    value = os.environ.get(AUDIT_FILE_ENV)
    return Path(value).expanduser() if value else None


class AuditWriter:
    """Append-only ledger writer.

    Each call to write() appends a single JSON line to the ledger file.
    The file is created if it doesn't exist.
    """

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: RunEntry) -> None:
        """Append an entry to the ledger. Write errors are logged, not raised."""
        data = entry.model_dump(mode="json")
        line = json.dumps(data, ensure_ascii=False) + "\n"

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Ledger entry written: %s", entry.run_id)
        except OSError as e:
            logger.error("Failed to write ledger entry: %s", e)

    def read_all(self) -> list[RunEntry]:
        """Read all entries from the ledger, oldest first."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(RunEntry.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt ledger entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read ledger: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[RunEntry]:
        """Read the most recent N entries."""
        if n <= 0:
            return []
        return self.read_all()[-n:]
