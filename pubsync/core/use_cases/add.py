"""
Add use case — add one git dependency, safely.

Backs up the manifest, runs ``pub add``, and when the failure is a
conflict and ``auto_resolve`` is set, makes exactly one override retry.
"""

from __future__ import annotations

import logging

from pubsync.adapters.registry import AdapterRegistry, build_registry
from pubsync.core.config.loader import Settings, load_settings
from pubsync.core.engine.executor import generate_operation_id
from pubsync.core.models.action import ActionResult
from pubsync.core.models.dependency import PackageSpec
from pubsync.core.models.project import Project
from pubsync.core.persistence.journal import Journal, JournalEntry, open_journal
from pubsync.core.services.backup import create_backup
from pubsync.core.services.installer import Installer
from pubsync.core.services.prerequisites import ensure_tools

logger = logging.getLogger(__name__)


def add_dependency(
    project: Project,
    spec: PackageSpec,
    auto_resolve: bool = False,
    settings: Settings | None = None,
    registry: AdapterRegistry | None = None,
    journal: Journal | None = None,
) -> ActionResult:
    """Add ``spec`` to the project's manifest.

    Returns:
        The last attempt's ActionResult. ``data["attempts"]`` counts
        installer runs; ``data["backup"]`` names the snapshot.

    Raises:
        ToolMissingError: If the pub tool or git is not installed.
        BackupFailedError: If the manifest could not be snapshotted.
    """
    settings = settings or load_settings(project.root_path)
    registry = registry or build_registry(settings)
    if journal is None:
        journal = open_journal(project.root_path, settings.journal and not settings.dry_run)

    ensure_tools(registry, settings.pub_tools)

    operation_id = generate_operation_id()
    backup = None
    if not settings.dry_run:
        backup = create_backup(project)

    installer = Installer(
        registry,
        project.root_path,
        timeout=settings.install_timeout,
        dry_run=settings.dry_run,
        project_name=project.name,
    )

    result = installer.add(spec)
    attempts = 1
    journal.write(_step(operation_id, "install", spec.name, result))

    if result.needs_resolution and auto_resolve:
        logger.info("Conflict adding %s; retrying once with an override", spec.name)
        result = installer.add_with_override(spec)
        attempts += 1
        result.data["resolution_of"] = spec.name
        journal.write(_step(operation_id, "resolve", spec.name, result))

    result.data.update({
        "package": spec.name,
        "attempts": attempts,
        "backup": str(backup.backup_path) if backup else None,
        "operation_id": operation_id,
    })

    journal.write(JournalEntry(
        operation_id=operation_id,
        kind="run",
        operation="add",
        package=spec.name,
        ok=result.ok,
        status="ok" if result.ok else "failed",
        message=result.message,
        error=result.error,
        backup_path=result.data["backup"],
        packages={spec.name: "ok" if result.ok else "conflict" if result.needs_resolution else "failed"},
    ))
    return result


def _step(operation_id: str, operation: str, package: str, result: ActionResult) -> JournalEntry:
    return JournalEntry(
        operation_id=operation_id,
        kind="step",
        operation=operation,
        package=package,
        ok=result.ok,
        message=result.message,
        error=result.error,
    )
