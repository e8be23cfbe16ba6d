"""
Action, Receipt and ActionResult — the execution contracts.

Actions represent requested tool invocations. Receipts are what adapters
hand back for them: the adapter contract, never exceptions.

ActionResult is the engine contract one level up: every pubsync
operation (backup, install, resolution attempt, finalize) reports
through the same record, and a run accumulates them in order.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """A requested operation to be executed by an adapter."""

    id: str                         # unique action identifier
    adapter: str                    # which adapter handles this ('git', 'pub')
    params: dict[str, Any] = Field(default_factory=dict)
    timeout: float | None = None    # seconds; None = adapter default
    read_only: bool = False         # safe to run during dry-run


class Receipt(BaseModel):
    """Result of an adapter execution.

    The adapter NEVER raises: failures are captured here, along with
    the combined process output so callers can classify them.
    """

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the action succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the action failed."""
        return self.status == "failed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @classmethod
    def success(
        cls,
        adapter: str,
        action_id: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="ok",
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        adapter: str,
        action_id: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="failed",
            error=error,
            **kwargs,
        )

    @classmethod
    def skip(
        cls,
        adapter: str,
        action_id: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a skip receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="skipped",
            output=reason,
            **kwargs,
        )


class ActionResult(BaseModel):
    """Uniform outcome record for every engine operation.

    ``data`` carries structured annotations, e.g. for an install that
    hit a conflict: ``needs_resolution``, ``conflict_type``,
    ``conflicting_pkg``.
    """

    ok: bool
    message: str = ""
    error: str | None = None
    logs: list[str] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def needs_resolution(self) -> bool:
        """Whether this failure is a conflict awaiting resolution."""
        return not self.ok and bool(self.data.get("needs_resolution"))

    @property
    def package(self) -> str | None:
        """Package name this result is about, if any."""
        return self.data.get("package")

    @classmethod
    def success(cls, message: str = "", **kwargs: Any) -> ActionResult:
        return cls(ok=True, message=message, **kwargs)

    @classmethod
    def failure(cls, error: str, message: str = "", **kwargs: Any) -> ActionResult:
        return cls(ok=False, error=error, message=message, **kwargs)
