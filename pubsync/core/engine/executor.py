"""
Engine executor — the step-driven sync state machine.

A sync run installs a list of git packages into one project:

    SETUP → [CLONE_SOURCE] → INSTALL[0..n-1] → [RESOLVE_CONFLICTS] → FINALIZE → DONE
      │
      └──────────────────────────────────────────────────────────────────────→ FAILED

Each ``step()`` performs exactly one unit of work (tool check + backup,
one clone, one install, one resolution attempt, the final ``pub get``)
and returns a StepEvent, so a UI can render between steps. The engine is
also an iterator over those events, ending after the terminal one.

Per-package failures never abort the run. Only a missing tool or a
failed backup does, and both happen before anything is touched.

Cancellation goes through a CancelToken: subprocess timeouts shrink to
the time left, and once cancelled the engine stops before the next unit
of work. Nothing already applied is rolled back; the backup and the
journal are the recovery path.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pubsync.adapters.registry import AdapterRegistry
from pubsync.core.config.loader import Settings
from pubsync.core.errors import BackupFailedError, PubSyncError, ToolMissingError
from pubsync.core.models.action import Action, ActionResult
from pubsync.core.models.backup import BackupRecord
from pubsync.core.models.dependency import CloneSource, PackageSpec
from pubsync.core.models.project import Project
from pubsync.core.persistence.journal import Journal, JournalEntry, open_journal
from pubsync.core.services.backup import create_backup
from pubsync.core.services.conflicts import ConflictAnalyzer, ConflictResolver, Strategy
from pubsync.core.services.installer import Installer
from pubsync.core.services.prerequisites import ensure_tools

logger = logging.getLogger(__name__)


class Phase(StrEnum):
    SETUP = "setup"
    CLONE_SOURCE = "clone_source"
    INSTALL = "install"
    RESOLVE_CONFLICTS = "resolve_conflicts"
    FINALIZE = "finalize"
    DONE = "done"
    FAILED = "failed"


TERMINAL_PHASES = frozenset({Phase.DONE, Phase.FAILED})


class CancelToken:
    """Caller-held cancellation handle with an optional deadline."""

    def __init__(
        self,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._deadline = clock() + timeout if timeout is not None else None
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        return self._deadline is not None and self._clock() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds until the deadline, None when there is none."""
        if self._deadline is None:
            return None
        return max(self._deadline - self._clock(), 0.0)

    def timeout(self, default: float) -> float:
        """``default`` capped at the time left."""
        remaining = self.remaining()
        if remaining is None:
            return default
        return max(min(default, remaining), 0.1)


@dataclass
class StepEvent:
    """What one ``step()`` did."""

    phase: Phase
    kind: str
    message: str = ""
    package: str | None = None
    result: ActionResult | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "kind": self.kind,
            "message": self.message,
            "package": self.package,
            "result": self.result.model_dump(mode="json") if self.result else None,
            "data": self.data,
        }


@dataclass
class ExecutionReport:
    """Everything a sync run did, in order.

    ``results`` holds one entry per install attempt and grows only by
    appending: N packages without any resolution give exactly N results,
    and each resolution attempt adds one more tagged ``resolution_of``.
    """

    operation_id: str = ""
    packages: list[str] = field(default_factory=list)
    results: list[ActionResult] = field(default_factory=list)

    backup: BackupRecord | None = None
    clone_result: ActionResult | None = None
    finalize_result: ActionResult | None = None
    skipped_conflicts: list[str] = field(default_factory=list)

    cancelled: bool = False
    error: str | None = None
    install_hint: str | None = None
    started_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    duration_ms: int = 0

    def outcomes(self) -> dict[str, ActionResult]:
        """Latest result per package, in package order."""
        latest: dict[str, ActionResult] = {}
        for result in self.results:
            if result.package:
                latest[result.package] = result
        return {name: latest[name] for name in self.packages if name in latest}

    @property
    def succeeded(self) -> list[str]:
        return [name for name, r in self.outcomes().items() if r.ok]

    @property
    def failed(self) -> list[str]:
        return [name for name, r in self.outcomes().items() if not r.ok]

    @property
    def unresolved(self) -> list[str]:
        """Packages whose last attempt still ended in a conflict."""
        return [name for name, r in self.outcomes().items() if r.needs_resolution]

    @property
    def status(self) -> str:
        if self.error is not None:
            return "failed"
        if self.cancelled:
            return "cancelled"
        finalize_failed = self.finalize_result is not None and not self.finalize_result.ok
        if not self.failed and not finalize_failed:
            return "ok"
        if self.succeeded:
            return "partial"
        return "failed" if self.packages else "ok"

    def summary(self) -> list[str]:
        """One line per attempted package, then the unresolved list."""
        lines = []
        outcomes = self.outcomes()
        for name in self.packages:
            result = outcomes.get(name)
            if result is None:
                lines.append(f"⊘ {name}: not attempted")
            elif result.ok:
                lines.append(f"✓ {name}")
            elif result.needs_resolution:
                lines.append(f"⚠ {name}: {result.data.get('conflict_type')} conflict ({result.message})")
            else:
                lines.append(f"✗ {name}: {result.error}")
        if self.unresolved:
            lines.append("Unresolved conflicts: " + ", ".join(self.unresolved))
        return lines

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "status": self.status,
            "cancelled": self.cancelled,
            "error": self.error,
            "backup": str(self.backup.backup_path) if self.backup else None,
            "packages": list(self.packages),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "unresolved": self.unresolved,
            "results": [r.model_dump(mode="json") for r in self.results],
            "clone": self.clone_result.model_dump(mode="json") if self.clone_result else None,
            "finalize": self.finalize_result.model_dump(mode="json") if self.finalize_result else None,
            "duration_ms": self.duration_ms,
        }


class SyncEngine:
    """Resumable state machine installing ``specs`` into ``project``.

    Drive it with ``step()`` or iterate it. In interactive mode the
    engine pauses in RESOLVE_CONFLICTS (``step()`` keeps returning the
    ``awaiting_resolution`` event) until the caller calls ``resolve()``
    for each conflict or ``defer_conflicts()``.

    Package names must be unique within ``specs``; a repeated name raises
    PubSyncError before anything runs.
    """

    def __init__(
        self,
        project: Project,
        specs: list[PackageSpec],
        registry: AdapterRegistry,
        settings: Settings | None = None,
        *,
        clone_source: CloneSource | None = None,
        auto_resolve: bool | None = None,
        interactive: bool = False,
        cancel_token: CancelToken | None = None,
        journal: Journal | None = None,
        analyzer: ConflictAnalyzer | None = None,
        operation_id: str | None = None,
    ):
        names = [s.name for s in specs]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise PubSyncError(f"Package listed more than once: {', '.join(duplicates)}")

        self.project = project
        self.specs = list(specs)
        self.settings = settings or Settings()
        self.auto_resolve = self.settings.auto_resolve if auto_resolve is None else auto_resolve
        self.interactive = interactive
        self.clone_source = clone_source
        self.cancel_token = cancel_token or CancelToken()

        self._registry = registry
        self._installer = Installer(
            registry,
            project.root_path,
            analyzer=analyzer,
            timeout=self.settings.install_timeout,
            dry_run=self.settings.dry_run,
            project_name=project.name,
        )
        self._resolver = ConflictResolver(self._installer)
        if journal is None:
            # a dry run leaves no trace in the project
            journal = open_journal(project.root_path, self.settings.journal and not self.settings.dry_run)
        self._journal = journal

        self.phase = Phase.SETUP
        self.report = ExecutionReport(
            operation_id=operation_id or generate_operation_id(),
            packages=[s.name for s in self.specs],
        )
        self._index = 0
        self._pending: list[str] = []
        self._start = time.monotonic()
        self._last_event: StepEvent | None = None
        self._finished = False

    # ── Driving ─────────────────────────────────────────────────

    @property
    def finished(self) -> bool:
        """Whether the terminal event has been emitted."""
        return self._finished

    @property
    def pending_conflicts(self) -> list[str]:
        """Packages waiting for a resolution decision."""
        return list(self._pending)

    def __iter__(self) -> Iterator[StepEvent]:
        return self

    def __next__(self) -> StepEvent:
        if self._finished:
            raise StopIteration
        return self.step()

    def run(self) -> ExecutionReport:
        """Step until terminal. Not for interactive mode."""
        if self.interactive:
            raise PubSyncError("run() cannot drive an interactive engine; iterate and resolve instead")
        for _ in self:
            pass
        return self.report

    def step(self) -> StepEvent:
        """Perform one unit of work and describe it."""
        if self._finished:
            return self._last_event

        if self.phase not in TERMINAL_PHASES and self.cancel_token.cancelled:
            self.report.cancelled = True
            self.phase = Phase.DONE
            return self._finish("cancelled", "Run cancelled; applied changes were kept")

        handler = {
            Phase.SETUP: self._setup,
            Phase.CLONE_SOURCE: self._clone,
            Phase.INSTALL: self._install_next,
            Phase.RESOLVE_CONFLICTS: self._resolve_step,
            Phase.FINALIZE: self._finalize,
            Phase.DONE: self._done,
        }[self.phase]
        event = handler()
        self._last_event = event
        return event

    # ── Phases ──────────────────────────────────────────────────

    def _setup(self) -> StepEvent:
        try:
            ensure_tools(self._registry, self.settings.pub_tools)
        except ToolMissingError as e:
            self.report.error = str(e)
            self.report.install_hint = e.install_hint
            self.phase = Phase.FAILED
            return self._finish("failed", str(e), data={"tool": e.tool, "install_hint": e.install_hint})

        if self.settings.dry_run:
            message = f"[dry-run] Would back up {self.project.manifest_path}"
        else:
            try:
                self.report.backup = create_backup(self.project)
            except BackupFailedError as e:
                self.report.error = str(e)
                self.phase = Phase.FAILED
                return self._finish("failed", str(e))
            message = f"Backed up manifest to {self.report.backup.backup_path}"
            self._journal_step("backup", ActionResult.success(message))

        self.phase = Phase.CLONE_SOURCE if self.clone_source else self._after_installs_or_install()
        return StepEvent(
            phase=Phase.SETUP,
            kind="backup",
            message=message,
            data={"backup": str(self.report.backup.backup_path) if self.report.backup else None},
        )

    def _clone(self) -> StepEvent:
        source = self.clone_source
        action = Action(
            id=f"git-clone:{source.destination}",
            adapter="git",
            params={
                "operation": "clone",
                "url": source.url,
                "ref": source.ref,
                "destination": source.destination,
            },
            timeout=self.cancel_token.timeout(self.settings.install_timeout),
        )
        receipt = self._registry.execute_action(
            action,
            project_root=str(self.project.root_path),
            dry_run=self.settings.dry_run,
        )
        data = {"url": source.url, "ref": source.ref, "destination": source.destination}
        if receipt.failed:
            result = ActionResult.failure(
                error=receipt.error or "clone failed",
                message=f"Clone of {source.url} failed; continuing",
                logs=receipt.output.splitlines(),
                data=data,
            )
            logger.warning("Clone of %s failed: %s", source.url, receipt.error)
        else:
            result = ActionResult.success(
                f"Cloned {source.url} into {source.destination}",
                logs=receipt.output.splitlines(),
                data={**data, "dry_run": receipt.skipped},
            )
        self.report.clone_result = result
        self._journal_step("clone", result)

        self.phase = self._after_installs_or_install()
        return StepEvent(phase=Phase.CLONE_SOURCE, kind="clone", message=result.message, result=result)

    def _install_next(self) -> StepEvent:
        spec = self.specs[self._index]
        position = self._index
        self._index += 1

        result = self._installer.add(spec, timeout=self.cancel_token.timeout(self.settings.install_timeout))
        result.data.update({"package": spec.name, "attempt": 1})
        self.report.results.append(result)
        self._journal_step("install", result, package=spec.name)

        if self._index >= len(self.specs):
            self.phase = self._after_installs()

        return StepEvent(
            phase=Phase.INSTALL,
            kind="install",
            message=result.message if result.ok else f"{spec.name}: {result.error}",
            package=spec.name,
            result=result,
            data={"index": position, "total": len(self.specs)},
        )

    def _resolve_step(self) -> StepEvent:
        if self.auto_resolve:
            name = self._pending.pop(0)
            event = self._attempt(name, Strategy.OVERRIDE)
            # one override retry per package; what still fails stays unresolved
            if not self._pending:
                self.phase = Phase.FINALIZE
            return event

        if self.interactive:
            return StepEvent(
                phase=Phase.RESOLVE_CONFLICTS,
                kind="awaiting_resolution",
                message=f"{len(self._pending)} conflict(s) need a decision",
                data={"conflicts": self._conflict_details()},
            )

        conflicts = self._conflict_details()
        self._pending.clear()
        self.phase = Phase.FINALIZE
        return StepEvent(
            phase=Phase.RESOLVE_CONFLICTS,
            kind="conflicts_reported",
            message="Conflicts left for manual resolution: " + ", ".join(c["package"] for c in conflicts),
            data={"conflicts": conflicts},
        )

    def _finalize(self) -> StepEvent:
        unresolved = self.report.unresolved
        self.phase = Phase.DONE

        if not self.report.succeeded:
            return StepEvent(
                phase=Phase.FINALIZE,
                kind="finalize_skipped",
                message="No package installed; skipping pub get",
                data={"unresolved": unresolved},
            )

        result = self._installer.get(timeout=self.cancel_token.timeout(self.settings.install_timeout))
        self.report.finalize_result = result
        self._journal_step("finalize", result)
        return StepEvent(
            phase=Phase.FINALIZE,
            kind="finalize",
            message=result.message if result.ok else f"pub get failed: {result.error}",
            result=result,
            data={"unresolved": unresolved},
        )

    def _done(self) -> StepEvent:
        return self._finish("done", f"Sync {self.report.status}")

    # ── Conflict decisions ──────────────────────────────────────

    def resolve(self, name: str, strategy: Strategy | str) -> StepEvent:
        """Apply a caller-chosen strategy to one pending conflict."""
        if self.phase is not Phase.RESOLVE_CONFLICTS or name not in self._pending:
            raise PubSyncError(f"No pending conflict for {name!r}")
        strategy = Strategy(strategy)

        if strategy is Strategy.SKIP:
            self._pending.remove(name)
            self.report.skipped_conflicts.append(name)
            event = StepEvent(
                phase=Phase.RESOLVE_CONFLICTS,
                kind="resolution",
                message=f"Skipped {name}",
                package=name,
                data={"strategy": strategy.value},
            )
        else:
            event = self._attempt(name, strategy)
            if name in self._pending and not event.result.needs_resolution:
                self._pending.remove(name)

        if not self._pending:
            self.phase = Phase.FINALIZE
        self._last_event = event
        return event

    def defer_conflicts(self) -> StepEvent:
        """Leave every pending conflict unresolved and move on."""
        if self.phase is not Phase.RESOLVE_CONFLICTS:
            raise PubSyncError("No conflicts are pending")
        deferred = list(self._pending)
        self.report.skipped_conflicts.extend(deferred)
        self._pending.clear()
        self.phase = Phase.FINALIZE
        event = StepEvent(
            phase=Phase.RESOLVE_CONFLICTS,
            kind="conflicts_deferred",
            message="Deferred: " + ", ".join(deferred),
            data={"deferred": deferred},
        )
        self._last_event = event
        return event

    def _attempt(self, name: str, strategy: Strategy) -> StepEvent:
        spec = self._spec(name)
        attempts = sum(1 for r in self.report.results if r.package == name)
        result = self._resolver.apply(
            spec, strategy, timeout=self.cancel_token.timeout(self.settings.install_timeout),
        )
        result.data.update({
            "package": name,
            "attempt": attempts + 1,
            "resolution_of": name,
            "strategy": strategy.value,
        })
        self.report.results.append(result)
        self._journal_step("resolve", result, package=name)

        return StepEvent(
            phase=Phase.RESOLVE_CONFLICTS,
            kind="resolution",
            message=(
                f"Resolved {name} via {strategy.value}" if result.ok
                else f"{name}: {strategy.value} failed: {result.error}"
            ),
            package=name,
            result=result,
            data={"strategy": strategy.value},
        )

    # ── Helpers ─────────────────────────────────────────────────

    def _after_installs_or_install(self) -> Phase:
        return Phase.INSTALL if self.specs else self._after_installs()

    def _after_installs(self) -> Phase:
        self._pending = [name for name, r in self.report.outcomes().items() if r.needs_resolution]
        return Phase.RESOLVE_CONFLICTS if self._pending else Phase.FINALIZE

    def _spec(self, name: str) -> PackageSpec:
        for spec in self.specs:
            if spec.name == name:
                return spec
        raise PubSyncError(f"Unknown package {name!r}")

    def _conflict_details(self) -> list[dict]:
        outcomes = self.report.outcomes()
        return [
            {
                "package": name,
                "conflict_type": outcomes[name].data.get("conflict_type"),
                "conflicting_pkg": outcomes[name].data.get("conflicting_pkg"),
                "suggested_fix": outcomes[name].data.get("suggested_fix"),
            }
            for name in self._pending
        ]

    def _finish(self, kind: str, message: str, data: dict | None = None) -> StepEvent:
        self.report.duration_ms = int((time.monotonic() - self._start) * 1000)
        event = StepEvent(
            phase=self.phase,
            kind=kind,
            message=message,
            data={
                **(data or {}),
                "status": self.report.status,
                "summary": self.report.summary(),
                "unresolved": self.report.unresolved,
            },
        )
        self._journal.write(JournalEntry(
            operation_id=self.report.operation_id,
            kind="run",
            operation="sync",
            ok=self.report.status == "ok",
            status=self.report.status,
            message=message,
            error=self.report.error,
            backup_path=str(self.report.backup.backup_path) if self.report.backup else None,
            packages={
                name: ("ok" if r.ok else "conflict" if r.needs_resolution else "failed")
                for name, r in self.report.outcomes().items()
            },
            duration_ms=self.report.duration_ms,
        ))
        log = logger.error if self.phase is Phase.FAILED else logger.info
        log("Sync %s: %s", self.report.operation_id, message)

        self._finished = True
        self._last_event = event
        return event

    def _journal_step(self, operation: str, result: ActionResult, package: str | None = None) -> None:
        self._journal.write(JournalEntry(
            operation_id=self.report.operation_id,
            kind="step",
            operation=operation,
            package=package,
            ok=result.ok,
            message=result.message,
            error=result.error,
            context={k: v for k, v in result.data.items() if k in ("attempt", "strategy", "conflict_type", "dry_run")},
        ))


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"sync-{now}-{short}"
