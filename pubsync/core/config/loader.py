"""
Configuration loader — locates the project and reads .pubsync.yml.

Two jobs live here because both start from "where is the project?":

    find_project()   walk upward to the directory holding pubspec.yaml
    load_settings()  read optional .pubsync.yml beside it into Settings

Settings are returned, never stored globally: every service takes the
Settings it needs as a constructor argument.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from pubsync.core.errors import NotFoundError, PubSyncError
from pubsync.core.models.project import DEFAULT_LOCK_FILE, Project

logger = logging.getLogger(__name__)

# Default filenames
MANIFEST_FILE = "pubspec.yaml"
SETTINGS_FILE = ".pubsync.yml"


class ConfigError(PubSyncError):
    """Raised when .pubsync.yml is unreadable or invalid."""


class Settings(BaseModel):
    """Tunables for one pubsync operation."""

    manifest_name: str = MANIFEST_FILE
    lock_name: str = DEFAULT_LOCK_FILE

    # Build tool candidates, first found on PATH wins
    pub_tools: list[str] = Field(default_factory=lambda: ["dart", "flutter"])
    git_binary: str = "git"

    default_ref: str = "main"
    stale_after_hours: float = 24.0

    # Seconds
    remote_timeout: float = 30.0
    install_timeout: float = 300.0
    remote_cache_ttl: float = 120.0

    dry_run: bool = False
    # Stand-in adapters answer every action with success
    mock_mode: bool = False
    auto_resolve: bool = False
    journal: bool = True


def find_project(
    start_dir: Path | None = None,
    manifest_name: str = MANIFEST_FILE,
    lock_name: str = DEFAULT_LOCK_FILE,
) -> Project:
    """Search for the manifest starting from ``start_dir``, walking up.

    Allows running commands from anywhere inside a project.

    Args:
        start_dir: Directory to start searching from (default: cwd).
        manifest_name: Manifest filename to look for.
        lock_name: Lock filename recorded on the returned Project.

    Returns:
        The first Project whose root contains the manifest.

    Raises:
        NotFoundError: If no manifest exists up to the filesystem root.
    """
    start = (start_dir or Path.cwd()).resolve()
    current = start

    while True:
        candidate = current / manifest_name
        if candidate.is_file():
            logger.debug("Found %s at %s", manifest_name, current)
            return Project(root_path=current, manifest_path=candidate, lock_name=lock_name)
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    raise NotFoundError(
        f"No {manifest_name} found in {start} or any parent directory."
    )


def load_settings(project_root: Path | None = None, path: Path | None = None) -> Settings:
    """Load settings from ``.pubsync.yml``.

    Args:
        project_root: Directory holding the settings file.
        path: Explicit settings file path (wins over project_root).

    Returns:
        Validated Settings. Defaults when the file does not exist.

    Raises:
        ConfigError: If the file exists but is invalid.
    """
    if path is None:
        if project_root is None:
            return Settings()
        path = project_root / SETTINGS_FILE

    if not path.is_file():
        logger.debug("No settings file at %s — using defaults", path)
        return Settings()

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return Settings()
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # Allow everything nested under a top-level "pubsync" key
    data = data.get("pubsync", data)

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    logger.info("Loaded settings from %s", path)
    return settings


def locate(start_dir: Path | None = None, settings_path: Path | None = None) -> tuple[Project, Settings]:
    """Find the project and load its settings in one call.

    Settings may rename the manifest, so a settings file given
    explicitly is read first and its names used for the search.
    """
    if settings_path is not None:
        settings = load_settings(path=settings_path)
        project = find_project(start_dir, settings.manifest_name, settings.lock_name)
        return project, settings

    project = find_project(start_dir)
    settings = load_settings(project.root_path)
    if settings.manifest_name != MANIFEST_FILE or settings.lock_name != DEFAULT_LOCK_FILE:
        project = find_project(project.root_path, settings.manifest_name, settings.lock_name)
    return project, settings
