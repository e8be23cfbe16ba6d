"""
Express update use case — upgrade every stale git dependency in one go.

    backup → staleness check → pub upgrade <stale...> → pub get
"""

from __future__ import annotations

import logging

from pubsync.adapters.registry import AdapterRegistry, build_registry
from pubsync.core.config.loader import Settings, load_settings
from pubsync.core.engine.executor import generate_operation_id
from pubsync.core.models.action import ActionResult
from pubsync.core.models.project import Project
from pubsync.core.persistence.journal import Journal, JournalEntry, open_journal
from pubsync.core.services.backup import create_backup
from pubsync.core.services.installer import Installer
from pubsync.core.services.prerequisites import ensure_tools
from pubsync.core.use_cases.stale import check_staleness

logger = logging.getLogger(__name__)


def express_update(
    project: Project,
    settings: Settings | None = None,
    registry: AdapterRegistry | None = None,
    journal: Journal | None = None,
) -> ActionResult:
    """Upgrade the stale git dependencies, then refresh the lock.

    Raises:
        ToolMissingError: If the pub tool or git is not installed.
        BackupFailedError: If the manifest could not be snapshotted.
        NotFoundError: If the project has no lock file.
    """
    settings = settings or load_settings(project.root_path)
    registry = registry or build_registry(settings)
    if journal is None:
        journal = open_journal(project.root_path, settings.journal and not settings.dry_run)

    ensure_tools(registry, settings.pub_tools)
    operation_id = generate_operation_id()

    backup = None if settings.dry_run else create_backup(project)
    report = check_staleness(project, settings, registry)
    stale = report.stale_names
    data = {
        "operation_id": operation_id,
        "backup": str(backup.backup_path) if backup else None,
        "stale": stale,
        "skipped": dict(report.skipped),
        "possibly_stale": report.possibly_stale,
    }

    if not stale:
        message = "All git dependencies are up to date"
        if report.possibly_stale:
            message += " (lock file is old and some remotes could not be checked)"
        result = ActionResult.success(message, data=data)
        _journal_run(journal, operation_id, result)
        return result

    installer = Installer(
        registry,
        project.root_path,
        timeout=settings.install_timeout,
        dry_run=settings.dry_run,
        project_name=project.name,
    )

    logger.info("Upgrading stale packages: %s", ", ".join(stale))
    upgraded = installer.upgrade(stale)
    logs = list(upgraded.logs)
    if not upgraded.ok:
        result = ActionResult.failure(
            error=upgraded.error or "pub upgrade failed",
            message=upgraded.message,
            logs=logs,
            data={**upgraded.data, **data},
        )
        _journal_run(journal, operation_id, result)
        return result

    fetched = installer.get()
    logs += fetched.logs
    if not fetched.ok:
        result = ActionResult.failure(
            error=fetched.error or "pub get failed",
            message=f"Upgraded {', '.join(stale)} but pub get failed",
            logs=logs,
            data={**fetched.data, **data},
        )
    else:
        result = ActionResult.success(f"Updated {', '.join(stale)}", logs=logs, data=data)

    _journal_run(journal, operation_id, result)
    return result


def _journal_run(journal: Journal, operation_id: str, result: ActionResult) -> None:
    journal.write(JournalEntry(
        operation_id=operation_id,
        kind="run",
        operation="update",
        ok=result.ok,
        status="ok" if result.ok else "failed",
        message=result.message,
        error=result.error,
        backup_path=result.data.get("backup"),
        packages={name: "ok" if result.ok else "failed" for name in result.data.get("stale", [])},
    ))
