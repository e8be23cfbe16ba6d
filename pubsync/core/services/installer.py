"""
Dependency installer — ``pub add``, ``pub get`` and ``pub upgrade``.

Every call goes through the adapter registry as an Action and comes back
as an ActionResult. Failed installs are always run through the conflict
analyzer; its annotations land in ``ActionResult.data``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pubsync.adapters.registry import AdapterRegistry
from pubsync.core.errors import ConflictDetectedError, InstallFailedError
from pubsync.core.models.action import Action, ActionResult, Receipt
from pubsync.core.models.conflict import ConflictAnalysis, FailureKind
from pubsync.core.models.dependency import PackageSpec
from pubsync.core.services.conflicts import ConflictAnalyzer

logger = logging.getLogger(__name__)


class Installer:
    """Run pub operations in one project root."""

    def __init__(
        self,
        registry: AdapterRegistry,
        project_root: Path,
        analyzer: ConflictAnalyzer | None = None,
        timeout: float = 300.0,
        dry_run: bool = False,
        project_name: str | None = None,
    ):
        self._registry = registry
        self._root = project_root
        self._analyzer = analyzer or ConflictAnalyzer()
        self._timeout = timeout
        self._dry_run = dry_run
        self._exclude = frozenset({project_name}) if project_name else frozenset()

    def add(self, spec: PackageSpec, timeout: float | None = None) -> ActionResult:
        """``pub add <name> --git-url <url> [--git-ref <ref>] [--git-path <dir>]``."""
        params = {"operation": "add", "name": spec.name, "url": spec.url, "ref": spec.ref}
        if spec.subdirectory:
            params["path"] = spec.subdirectory
        action = self._action(f"pub-add:{spec.name}", params, timeout)
        return self._to_result(self._run(action), package=spec.name, verb="Added")

    def add_with_override(self, spec: PackageSpec, timeout: float | None = None) -> ActionResult:
        """``pub add <name>:<descriptor> override:<name>:<descriptor>``.

        Pins the package to its requested git source over any other
        constraint. Best effort; pub may still refuse.
        """
        params = {
            "operation": "add-override",
            "name": spec.name,
            "descriptor": spec.git_descriptor(),
        }
        action = self._action(f"pub-add-override:{spec.name}", params, timeout)
        result = self._to_result(self._run(action), package=spec.name, verb="Added with override")
        result.data["override"] = True
        return result

    def get(self, timeout: float | None = None) -> ActionResult:
        """``pub get`` — resolve the whole manifest and refresh the lock."""
        action = self._action("pub-get", {"operation": "get"}, timeout)
        return self._to_result(self._run(action), package=None, verb="Resolved dependencies")

    def upgrade(self, names: list[str], timeout: float | None = None) -> ActionResult:
        """``pub upgrade <names...>`` (everything when ``names`` is empty)."""
        action = self._action("pub-upgrade", {"operation": "upgrade", "packages": list(names)}, timeout)
        result = self._to_result(self._run(action), package=None, verb="Upgraded")
        result.data["packages"] = list(names)
        return result

    # ── Helpers ─────────────────────────────────────────────────

    def _action(self, action_id: str, params: dict, timeout: float | None) -> Action:
        return Action(
            id=action_id,
            adapter="pub",
            params=params,
            timeout=timeout if timeout is not None else self._timeout,
        )

    def _run(self, action: Action) -> Receipt:
        return self._registry.execute_action(
            action,
            project_root=str(self._root),
            dry_run=self._dry_run,
        )

    def _to_result(self, receipt: Receipt, package: str | None, verb: str) -> ActionResult:
        command = receipt.metadata.get("command")
        if isinstance(command, list):
            command = " ".join(command)
        data: dict = {"action_id": receipt.action_id, "command": command}
        if package:
            data["package"] = package
        logs = receipt.output.splitlines()

        if receipt.skipped:
            data["dry_run"] = True
            return ActionResult.success(
                f"Would execute: {command or receipt.action_id}", logs=logs, data=data,
            )

        if receipt.ok:
            what = f"{verb} {package}" if package else verb
            logger.info("%s", what)
            return ActionResult.success(what, logs=logs, data=data)

        text = "\n".join(part for part in (receipt.output, receipt.error or "") if part)
        analysis = self._analyzer.analyze(text, package=package, exclude=self._exclude)
        data.update(analysis.annotations())

        subject = package or receipt.action_id
        if analysis.is_conflict:
            logger.warning("%s: %s conflict (%s)", subject, analysis.conflict_type, analysis.conflicting_package)
        else:
            logger.warning("%s failed: %s", subject, receipt.error)

        return ActionResult.failure(
            error=receipt.error or analysis.user_message,
            message=analysis.user_message,
            logs=logs,
            data=data,
        )


def analysis_from_result(result: ActionResult) -> ConflictAnalysis:
    """Rebuild the ConflictAnalysis carried in a failed result's data."""
    data = result.data
    return ConflictAnalysis(
        conflict_type=FailureKind(data.get("failure_kind") or FailureKind.UNKNOWN),
        conflicting_package=data.get("conflicting_pkg"),
        suggested_fix=data.get("suggested_fix", ""),
        user_message=data.get("user_message", ""),
    )


def raise_for_failure(result: ActionResult) -> ActionResult:
    """Return ``result`` unchanged if it succeeded, else raise.

    Raises:
        ConflictDetectedError: The failure matched a conflict signature.
        InstallFailedError: Any other failure.
    """
    if result.ok:
        return result
    package = result.package or "dependency"
    if result.needs_resolution:
        raise ConflictDetectedError(package, analysis_from_result(result))
    raise InstallFailedError(f"{package}: {result.error or result.message}")
