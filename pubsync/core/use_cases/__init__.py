"""Use cases — the caller-facing API.

    from pubsync.core.use_cases import detect_stale, add_dependency, synchronize
"""

from pubsync.core.use_cases.add import add_dependency
from pubsync.core.use_cases.stale import check_staleness, detect_stale
from pubsync.core.use_cases.status import project_status
from pubsync.core.use_cases.sync import synchronize
from pubsync.core.use_cases.update import express_update

__all__ = [
    "add_dependency",
    "check_staleness",
    "detect_stale",
    "express_update",
    "project_status",
    "synchronize",
]
