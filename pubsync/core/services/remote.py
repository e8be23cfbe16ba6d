"""
Remote oracle — what revision does a ref point at upstream right now?

Answers through ``git ls-remote`` dispatched to the git adapter. Answers
are cached per oracle instance for a short TTL, keyed by ``url#ref``, so
one staleness pass over a lock with repeated remotes asks each only once.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from pubsync.adapters.registry import AdapterRegistry
from pubsync.adapters.vcs.git import parse_ls_remote
from pubsync.core.errors import RemoteUnavailableError
from pubsync.core.models.action import Action

logger = logging.getLogger(__name__)


class RemoteOracle:
    """Resolve ``(url, ref)`` to a commit SHA."""

    def __init__(
        self,
        registry: AdapterRegistry,
        timeout: float = 30.0,
        cache_ttl: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._registry = registry
        self._timeout = timeout
        self._cache_ttl = cache_ttl
        self._clock = clock
        self._cache: dict[str, tuple[float, str]] = {}

    @property
    def available(self) -> bool:
        """Whether git can be invoked at all."""
        return self._registry.is_available("git")

    def remote_revision(self, url: str, ref: str, timeout: float | None = None) -> str:
        """Current revision of ``ref`` at ``url``.

        Raises:
            RemoteUnavailableError: On process/network failure, or when no
                ref in the listing matches.
        """
        key = f"{url}#{ref}"
        cached = self._cached(key)
        if cached is not None:
            logger.debug("ls-remote cache hit: %s", key)
            return cached

        action = Action(
            id=f"ls-remote:{key}",
            adapter="git",
            params={"operation": "ls-remote", "url": url, "ref": ref},
            timeout=timeout if timeout is not None else self._timeout,
            read_only=True,
        )
        receipt = self._registry.execute_action(action)

        if not receipt.ok:
            raise RemoteUnavailableError(url, ref, receipt.error or "ls-remote failed")

        revision = parse_ls_remote(receipt.output, ref)
        if not revision:
            raise RemoteUnavailableError(url, ref, "ref not found in ls-remote output")

        if self._cache_ttl > 0:
            self._cache[key] = (self._clock() + self._cache_ttl, revision)
        return revision

    def _cached(self, key: str) -> str | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        expires_at, revision = entry
        if self._clock() >= expires_at:
            del self._cache[key]
            return None
        return revision
