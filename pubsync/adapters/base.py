"""
Adapter base — the protocol contract between services and tools.

Every external process pubsync starts (git, dart/flutter) sits behind
an adapter. Services only talk to adapters through this protocol,
dispatched by the AdapterRegistry, never to binaries directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from pubsync.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute an action."""

    action: Action
    project_root: str = "."
    dry_run: bool = False

    @property
    def params(self) -> dict:
        return self.action.params

    def timeout(self, default: float) -> float:
        """Action timeout, or the adapter default when none was given."""
        return self.action.timeout if self.action.timeout is not None else default


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the Receipt.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'git', 'pub')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is on PATH.

        Should be fast and never raise.
        """

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the action can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt.

        MUST never raise exceptions. All failures are captured
        in the Receipt with status='failed'.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
