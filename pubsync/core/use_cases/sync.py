"""
Sync use case — install a batch of git packages step by step.
"""

from __future__ import annotations

from pubsync.adapters.registry import AdapterRegistry, build_registry
from pubsync.core.config.loader import Settings, load_settings
from pubsync.core.engine.executor import CancelToken, SyncEngine
from pubsync.core.models.dependency import CloneSource, PackageSpec
from pubsync.core.models.project import Project


def synchronize(
    project: Project,
    specs: list[PackageSpec],
    settings: Settings | None = None,
    registry: AdapterRegistry | None = None,
    *,
    auto_resolve: bool | None = None,
    interactive: bool = False,
    clone_source: CloneSource | None = None,
    cancel_token: CancelToken | None = None,
) -> SyncEngine:
    """Build a SyncEngine for ``specs``. Nothing runs until it is stepped.

    Raises:
        PubSyncError: If a package name appears more than once.

    Usage::

        engine = synchronize(project, specs)
        for event in engine:
            print(event.message)
        print(engine.report.status)
    """
    settings = settings or load_settings(project.root_path)
    return SyncEngine(
        project,
        specs,
        registry or build_registry(settings),
        settings,
        clone_source=clone_source,
        auto_resolve=auto_resolve,
        interactive=interactive,
        cancel_token=cancel_token,
    )
