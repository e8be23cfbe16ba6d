"""
Status use case — declared git dependencies, pinning advice, lock freshness.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pubsync.adapters.registry import AdapterRegistry, build_registry
from pubsync.core.config.loader import Settings, load_settings
from pubsync.core.errors import PubSyncError
from pubsync.core.models.dependency import PackageSpec, Recommendation, StalenessReport
from pubsync.core.models.project import Project
from pubsync.core.services.manifest_parser import read_manifest
from pubsync.core.services.recommendations import recommend
from pubsync.core.use_cases.stale import check_staleness

logger = logging.getLogger(__name__)


@dataclass
class StatusResult:
    """Aggregated project status."""

    project: Project
    declared: list[PackageSpec] = field(default_factory=list)
    recommendations: list[Recommendation] = field(default_factory=list)
    staleness: StalenessReport | None = None
    lock_error: str | None = None
    tools: dict[str, dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        result: dict = {
            "project": {"name": self.project.name, "root": str(self.project.root_path)},
            "declared": [d.model_dump() for d in self.declared],
            "recommendations": [r.model_dump() for r in self.recommendations],
            "tools": self.tools,
        }
        if self.staleness is not None:
            result["staleness"] = self.staleness.to_dict()
        if self.lock_error:
            result["lock_error"] = self.lock_error
        return result


def project_status(
    project: Project,
    settings: Settings | None = None,
    registry: AdapterRegistry | None = None,
) -> StatusResult:
    """Git dependencies from the manifest, advice on their refs, and lock staleness.

    A missing or unreadable lock is reported in ``lock_error`` rather
    than raised; a project that was never installed still has a status.

    Raises:
        NotFoundError: If the manifest is missing.
        LockParseError: If the manifest cannot be read as text.
    """
    settings = settings or load_settings(project.root_path)
    registry = registry or build_registry(settings)

    declared = read_manifest(project.manifest_path, settings.default_ref)
    result = StatusResult(
        project=project,
        declared=declared,
        recommendations=recommend(declared),
        tools=registry.adapter_status(),
    )

    try:
        result.staleness = check_staleness(project, settings, registry)
    except PubSyncError as e:
        logger.info("No staleness check: %s", e)
        result.lock_error = str(e)

    return result
