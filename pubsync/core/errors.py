"""
Error taxonomy — every failure a pubsync operation can surface.

Adapters never raise (they return Receipts). Services translate failed
receipts into one of these exceptions when the failure changes control
flow, and into ``ActionResult(ok=False)`` when it does not.

Fatal to a run:
    ToolMissingError   required binary absent (carries an install hint)
    BackupFailedError  manifest snapshot could not be written

Recoverable / informational:
    NotFoundError          no manifest up to the filesystem root
    LockParseError         lock or manifest exists but is unreadable
    RemoteUnavailableError ls-remote failed; staleness precision degrades
    ConflictDetectedError  installer failure matched a conflict signature
    InstallFailedError     any other installer failure
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pubsync.core.models.conflict import ConflictAnalysis


class PubSyncError(Exception):
    """Base class for all pubsync errors."""


class NotFoundError(PubSyncError):
    """Raised when the manifest (or another required file) is absent."""


class ToolMissingError(PubSyncError):
    """Raised when a required external binary is not on PATH."""

    def __init__(self, tool: str, install_hint: str = "") -> None:
        self.tool = tool
        self.install_hint = install_hint
        message = f"Required tool not found on PATH: {tool}"
        if install_hint:
            message += f". Install hint: {install_hint}"
        super().__init__(message)


class LockParseError(PubSyncError):
    """Raised when a lock or manifest file cannot be read as text."""


class RemoteUnavailableError(PubSyncError):
    """Raised when a remote git endpoint cannot answer a ref query."""

    def __init__(self, url: str, ref: str, reason: str = "") -> None:
        self.url = url
        self.ref = ref
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Cannot resolve {ref} at {url}{detail}")


class ConflictDetectedError(PubSyncError):
    """Raised when an install failed because of a dependency conflict."""

    def __init__(self, package: str, analysis: ConflictAnalysis) -> None:
        self.package = package
        self.analysis = analysis
        super().__init__(f"{package}: {analysis.user_message}")


class BackupFailedError(PubSyncError):
    """Raised when the manifest snapshot cannot be created."""


class InstallFailedError(PubSyncError):
    """Raised when an install fails for a reason other than a conflict."""
