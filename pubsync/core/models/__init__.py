"""
Domain models — Pydantic types for pubsync.

All models are re-exported here for convenient access:

    from pubsync.core.models import Project, PackageSpec, ActionResult
"""

from pubsync.core.models.action import Action, ActionResult, Receipt
from pubsync.core.models.backup import BackupRecord
from pubsync.core.models.conflict import ConflictAnalysis, FailureKind
from pubsync.core.models.dependency import (
    CloneSource,
    GitDependency,
    PackageSpec,
    Recommendation,
    StalenessReport,
    StalenessResult,
    revisions_match,
)
from pubsync.core.models.project import Project

__all__ = [
    # action.py
    "Action",
    "ActionResult",
    # backup.py
    "BackupRecord",
    # dependency.py
    "CloneSource",
    # conflict.py
    "ConflictAnalysis",
    "FailureKind",
    "GitDependency",
    "PackageSpec",
    # project.py
    "Project",
    "Receipt",
    "Recommendation",
    "StalenessReport",
    "StalenessResult",
    "revisions_match",
]
