"""
Run journal — append-only record of what pubsync did to a project.

One NDJSON line per run, plus one per mutating step inside it (backup,
clone, install, resolution attempt, finalize). Nothing is ever rolled
back automatically; the journal is what a human (or a future restore
command) reads to work out what changed and which backup to use.

Write failures are logged and swallowed: losing a journal line must
never fail the run it describes.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

JOURNAL_DIR = ".pubsync"
JOURNAL_FILE = "journal.ndjson"


class JournalEntry(BaseModel):
    """One journal line."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    kind: Literal["run", "step"] = "step"
    operation: str = ""            # sync, add, update, backup, install, ...

    package: str | None = None
    ok: bool = True
    status: str = ""               # runs: ok, partial, failed, cancelled
    message: str = ""
    error: str | None = None

    backup_path: str | None = None
    packages: dict[str, str] = Field(default_factory=dict)   # runs: name → outcome
    duration_ms: int = 0

    context: dict[str, Any] = Field(default_factory=dict)


class Journal:
    """Append-only NDJSON writer/reader for one project."""

    def __init__(self, project_root: Path | None = None, path: Path | None = None):
        if path is not None:
            self._path = path
        elif project_root is not None:
            self._path = project_root / JOURNAL_DIR / JOURNAL_FILE
        else:
            self._path = Path(JOURNAL_DIR) / JOURNAL_FILE

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: JournalEntry) -> None:
        """Append ``entry`` as one JSON line."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.error("Failed to write journal entry: %s", e)
            return
        logger.debug("Journal: %s/%s %s", entry.kind, entry.operation, entry.operation_id)

    def read_all(self) -> list[JournalEntry]:
        """Every entry, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries: list[JournalEntry] = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(JournalEntry.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt journal line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read journal: %s", e)

        return entries

    def runs(self, n: int = 20) -> list[JournalEntry]:
        """The most recent ``n`` run entries, oldest first."""
        return [e for e in self.read_all() if e.kind == "run"][-n:]

    def steps_for(self, operation_id: str) -> list[JournalEntry]:
        return [e for e in self.read_all() if e.kind == "step" and e.operation_id == operation_id]


class NullJournal(Journal):
    """Journal that records nothing (``journal: false`` in settings)."""

    def __init__(self) -> None:
        super().__init__(path=Path(JOURNAL_DIR) / JOURNAL_FILE)

    def write(self, entry: JournalEntry) -> None:
        return None

    def read_all(self) -> list[JournalEntry]:
        return []


def open_journal(project_root: Path, enabled: bool = True) -> Journal:
    """The project's journal, or a NullJournal when recording is off."""
    return Journal(project_root) if enabled else NullJournal()
