"""
Adapter registry — central dispatch for all adapter operations.

Services never talk to adapters directly — always through the registry,
which resolves the adapter, validates the action, honours dry-run for
mutating actions, and turns stray exceptions into failed receipts.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from pubsync.adapters.base import Adapter, ExecutionContext
from pubsync.core.models.action import Action, Receipt

if TYPE_CHECKING:
    from pubsync.core.config.loader import Settings

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Central registry and dispatcher for adapters."""

    def __init__(self) -> None:
        self._adapters: dict[str, Adapter] = {}

    def register(self, adapter: Adapter) -> None:
        """Register an adapter under its name."""
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def get(self, name: str) -> Adapter | None:
        """Look up an adapter by name."""
        return self._adapters.get(name)

    def is_available(self, name: str) -> bool:
        """Whether the named adapter exists and its tool is installed."""
        adapter = self._adapters.get(name)
        if adapter is None:
            return False
        try:
            return adapter.is_available()
        except Exception:
            return False

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Get availability status of all registered adapters."""
        return {
            name: {
                "name": name,
                "available": self.is_available(name),
                "type": adapter.__class__.__name__,
            }
            for name, adapter in self._adapters.items()
        }

    def execute_action(
        self,
        action: Action,
        project_root: str = ".",
        dry_run: bool = False,
    ) -> Receipt:
        """Execute an action through the appropriate adapter.

        1. Resolves the adapter
        2. Validates the action
        3. Executes it (mutating actions are skipped under dry-run)
        4. Returns a Receipt (never raises)
        """
        start_time = time.monotonic()

        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )

        context = ExecutionContext(
            action=action,
            project_root=project_root,
            dry_run=dry_run,
        )

        try:
            is_valid, error_msg = adapter.validate(context)
        except Exception as e:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation error: {e}",
            )
        if not is_valid:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation failed: {error_msg}",
            )

        if dry_run and not action.read_only:
            return Receipt.skip(
                adapter=action.adapter,
                action_id=action.id,
                reason=f"[dry-run] Would execute {action.adapter}:{action.id}",
                metadata={"dry_run": True, **_describe(adapter, context)},
            )

        try:
            receipt = adapter.execute(context)
        except Exception as e:
            # Adapters should never raise
            logger.error("Adapter %s raised during execution: %s", action.adapter, e)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        receipt.duration_ms = int((time.monotonic() - start_time) * 1000)
        return receipt


def _describe(adapter: Adapter, context: ExecutionContext) -> dict[str, Any]:
    """Ask the adapter what it would have run, if it can say."""
    describe = getattr(adapter, "describe", None)
    if describe is None:
        return {}
    try:
        return {"command": describe(context)}
    except Exception:
        return {}


def build_registry(settings: Settings) -> AdapterRegistry:
    """Registry wired with the real git and pub adapters, or mocks in mock mode."""
    from pubsync.adapters.languages.pub import PubAdapter
    from pubsync.adapters.mock import MockAdapter
    from pubsync.adapters.vcs.git import GitAdapter

    registry = AdapterRegistry()
    if settings.mock_mode:
        logger.info("Mock mode: no git or pub command will run")
        registry.register(MockAdapter("git"))
        registry.register(MockAdapter("pub"))
        return registry
    registry.register(GitAdapter(binary=settings.git_binary))
    registry.register(PubAdapter(candidates=settings.pub_tools))
    return registry
