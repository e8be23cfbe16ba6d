"""
Staleness detector — which locked git revisions have moved upstream?

Two levels of answer:

    precise  per dependency: locked revision vs ``git ls-remote``
    coarse   whole lock file: older than ``stale_after_hours``

The coarse flag is only computed when no precise answer was possible
(git missing, or every remote query failed). A dependency whose remote
could not be queried is never reported stale; it is listed as skipped.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from pubsync.core.errors import RemoteUnavailableError
from pubsync.core.models.dependency import GitDependency, StalenessReport, StalenessResult
from pubsync.core.services.lock_parser import read_lock
from pubsync.core.services.remote import RemoteOracle

logger = logging.getLogger(__name__)


def lock_age_exceeds(lock_path: Path, hours: float, now: float | None = None) -> bool:
    """Whether the lock file was last modified more than ``hours`` ago."""
    try:
        mtime = lock_path.stat().st_mtime
    except OSError:
        return False
    now = time.time() if now is None else now
    return (now - mtime) > hours * 3600


class StalenessDetector:
    """Compare a lock file's git dependencies against their remotes."""

    def __init__(
        self,
        oracle: RemoteOracle,
        stale_after_hours: float = 24.0,
        wall_clock: Callable[[], float] = time.time,
    ):
        self._oracle = oracle
        self._stale_after_hours = stale_after_hours
        self._wall_clock = wall_clock

    def check(
        self,
        lock_path: Path,
        dependencies: list[GitDependency] | None = None,
        timeout: float | None = None,
    ) -> StalenessReport:
        """Build a StalenessReport for ``lock_path``.

        Args:
            lock_path: The lock file (parsed unless ``dependencies`` given).
            dependencies: Pre-parsed dependencies.
            timeout: Per-query ls-remote timeout override.
        """
        if dependencies is None:
            dependencies = read_lock(lock_path)

        report = StalenessReport(lock_path=lock_path)

        if not self._oracle.available:
            logger.warning("git not available; falling back to lock file age")
            for dep in dependencies:
                report.skipped[dep.name] = "git not available"
        else:
            for dep in dependencies:
                try:
                    remote = self._oracle.remote_revision(dep.url, dep.ref, timeout=timeout)
                except RemoteUnavailableError as e:
                    logger.info("Skipping %s: %s", dep.name, e)
                    report.skipped[dep.name] = e.reason or str(e)
                    continue
                result = StalenessResult.compare(dep, remote)
                if result.stale:
                    logger.info(
                        "%s is stale: locked %s, remote %s",
                        dep.name, dep.resolved_revision[:12], remote[:12],
                    )
                report.results.append(result)

        if not report.results and (report.skipped or not self._oracle.available):
            report.possibly_stale = lock_age_exceeds(
                lock_path, self._stale_after_hours, now=self._wall_clock(),
            )

        return report

    def stale(self, lock_path: Path) -> list[StalenessResult]:
        """Only the precise results that are stale."""
        return self.check(lock_path).stale
