"""
BackupRecord — proof that the manifest was snapshotted.

Created once per run, before the first mutating operation. Backups are
kept on disk indefinitely; nothing in pubsync deletes them.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict


class BackupRecord(BaseModel):
    """A manifest snapshot written beside the original."""

    model_config = ConfigDict(frozen=True)

    backup_path: Path
    original_path: Path
    timestamp: datetime
    size: int = 0
