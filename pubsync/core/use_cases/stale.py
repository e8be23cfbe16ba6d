"""
Stale use case — which locked git dependencies have moved upstream?
"""

from __future__ import annotations

import logging

from pubsync.adapters.registry import AdapterRegistry, build_registry
from pubsync.core.config.loader import Settings, load_settings
from pubsync.core.models.dependency import StalenessReport, StalenessResult
from pubsync.core.models.project import Project
from pubsync.core.services.remote import RemoteOracle
from pubsync.core.services.staleness import StalenessDetector

logger = logging.getLogger(__name__)


def check_staleness(
    project: Project,
    settings: Settings | None = None,
    registry: AdapterRegistry | None = None,
) -> StalenessReport:
    """Full staleness report: precise results, skipped remotes, lock-age flag.

    Raises:
        NotFoundError: If the project has no lock file yet.
    """
    settings = settings or load_settings(project.root_path)
    registry = registry or build_registry(settings)

    oracle = RemoteOracle(
        registry,
        timeout=settings.remote_timeout,
        cache_ttl=settings.remote_cache_ttl,
    )
    detector = StalenessDetector(oracle, stale_after_hours=settings.stale_after_hours)
    report = detector.check(project.lock_path)

    logger.info(
        "%d checked, %d stale, %d skipped",
        len(report.results), len(report.stale), len(report.skipped),
    )
    return report


def detect_stale(
    project: Project,
    settings: Settings | None = None,
    registry: AdapterRegistry | None = None,
) -> list[StalenessResult]:
    """Precise staleness results for every git dependency that could be checked."""
    return check_staleness(project, settings, registry).results
