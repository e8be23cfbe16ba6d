"""
Project model — the located pub project an operation works on.

Discovered once per operation by walking upward from a start directory
(see ``pubsync.core.config.loader.find_project``) and immutable for the
rest of that operation.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict

DEFAULT_LOCK_FILE = "pubspec.lock"


class Project(BaseModel):
    """Root directory plus the manifest found in it."""

    model_config = ConfigDict(frozen=True)

    root_path: Path
    manifest_path: Path
    lock_name: str = DEFAULT_LOCK_FILE

    @property
    def lock_path(self) -> Path:
        """Lock file beside the manifest (may not exist yet)."""
        return self.root_path / self.lock_name

    @property
    def name(self) -> str:
        return self.root_path.name
