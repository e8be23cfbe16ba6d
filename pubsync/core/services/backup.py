"""
Backup manager — snapshot the manifest before anything touches it.

Creates timestamped copies (``pubspec.yaml.bak.YYYYMMDD_HHMMSS``) beside
the manifest. The copy goes to a temporary file first and is renamed
into place, so a half-written backup never carries the final name.
When two backups land in the same second, ``.1``, ``.2``... is appended.

Backups are never deleted by pubsync. ``list_backups`` and
``restore_backup`` exist for manual recovery.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from pubsync.core.errors import BackupFailedError, NotFoundError
from pubsync.core.models.backup import BackupRecord
from pubsync.core.models.project import Project

logger = logging.getLogger(__name__)

BACKUP_MARKER = ".bak."
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def _backup_destination(manifest: Path, ts: datetime) -> Path:
    base = manifest.with_name(f"{manifest.name}{BACKUP_MARKER}{ts.strftime(TIMESTAMP_FORMAT)}")
    candidate = base
    counter = 1
    while candidate.exists():
        candidate = base.with_name(f"{base.name}.{counter}")
        counter += 1
    return candidate


def create_backup(
    project: Project,
    now: Callable[[], datetime] = datetime.now,
) -> BackupRecord:
    """Copy the project's manifest to a timestamped sibling.

    Raises:
        BackupFailedError: If the manifest is missing or the copy fails.
            No mutation may proceed after this.
    """
    manifest = project.manifest_path
    if not manifest.is_file():
        raise BackupFailedError(f"Manifest not found: {manifest}")

    ts = now()
    dest = _backup_destination(manifest, ts)
    tmp = dest.with_name(f".{dest.name}.tmp")

    try:
        shutil.copy2(manifest, tmp)
        os.replace(tmp, dest)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise BackupFailedError(f"Cannot back up {manifest}: {e}") from e

    record = BackupRecord(
        backup_path=dest,
        original_path=manifest,
        timestamp=ts,
        size=dest.stat().st_size,
    )
    logger.info("Backed up %s → %s", manifest, dest)
    return record


def list_backups(project: Project) -> list[BackupRecord]:
    """All manifest backups beside the manifest, newest first."""
    manifest = project.manifest_path
    records: list[BackupRecord] = []

    for path in manifest.parent.glob(f"{manifest.name}{BACKUP_MARKER}*"):
        if not path.is_file():
            continue
        stamp = path.name[len(manifest.name) + len(BACKUP_MARKER):]
        try:
            ts = datetime.strptime(stamp[:15], TIMESTAMP_FORMAT)
        except ValueError:
            logger.debug("Ignoring unrecognised backup name: %s", path.name)
            continue
        records.append(
            BackupRecord(
                backup_path=path,
                original_path=manifest,
                timestamp=ts,
                size=path.stat().st_size,
            )
        )

    records.sort(key=lambda r: (r.timestamp, r.backup_path.name), reverse=True)
    return records


def find_backup(project: Project, name: str) -> BackupRecord:
    """Look up one backup by file name or path.

    Raises:
        NotFoundError: If no such backup exists beside the manifest.
    """
    wanted = Path(name).name
    for record in list_backups(project):
        if record.backup_path.name == wanted:
            return record
    raise NotFoundError(f"No backup named {wanted} beside {project.manifest_path}")


def restore_backup(record: BackupRecord) -> Path:
    """Copy a backup over its original manifest.

    Raises:
        BackupFailedError: If the backup is missing or the copy fails.
    """
    if not record.backup_path.is_file():
        raise BackupFailedError(f"Backup not found: {record.backup_path}")

    tmp = record.original_path.with_name(f".{record.original_path.name}.restore.tmp")
    try:
        shutil.copy2(record.backup_path, tmp)
        os.replace(tmp, record.original_path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise BackupFailedError(f"Cannot restore {record.backup_path}: {e}") from e

    logger.info("Restored %s from %s", record.original_path, record.backup_path)
    return record.original_path
