"""
Manifest parser — declared git dependencies out of pubspec.yaml.

Like the lock parser this reads lines, not YAML; only package entries
under the dependency sections matter. The machine:

    OUTSIDE      top-level keys other than a dependency section
    IN_SECTION   inside ``dependencies:`` or ``dev_dependencies:``
    IN_PACKAGE   inside one package entry of a section
    IN_GIT       inside that entry's ``git:`` mapping

Transitions:

    non-indented ``dependencies:``/``dev_dependencies:`` → IN_SECTION
    any other non-indented line           → OUTSIDE (entry emitted)
    line at the section's package indent  → IN_PACKAGE (entry emitted)
    ``git: URL`` in IN_PACKAGE            → url captured, stays IN_PACKAGE
    ``git:`` with no value in IN_PACKAGE  → IN_GIT
    line no deeper than ``git:``          → back to IN_PACKAGE

Supported shapes (``SUPPORTED_SHAPES``)::

    git url shorthand        pkg_a:
                               git: https://example.com/a.git

    git block                pkg_a:
                               git:
                                 url: https://example.com/a.git
                                 ref: v1.2.0
                                 path: packages/a

Entries without a url are dropped. Inline flow mappings
(``git: {url: ...}``) are not recognised. The first entry for a name
wins, so ``dependencies`` shadows ``dev_dependencies``.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from pathlib import Path

from pubsync.core.errors import LockParseError, NotFoundError
from pubsync.core.models.dependency import DEFAULT_REF, PackageSpec

logger = logging.getLogger(__name__)

SUPPORTED_SHAPES = ("git url shorthand", "git block")
SECTIONS = ("dependencies", "dev_dependencies")

# Keys inside a git block → PackageSpec fields
_GIT_KEYS = {"url": "url", "ref": "ref", "path": "subdirectory"}


class ManifestState(StrEnum):
    OUTSIDE = "outside"
    IN_SECTION = "in_section"
    IN_PACKAGE = "in_package"
    IN_GIT = "in_git"


class ManifestParser:
    """Line-driven state machine; feed lines, call ``close()``, read ``dependencies``."""

    def __init__(self, default_ref: str = DEFAULT_REF) -> None:
        self.default_ref = default_ref
        self.state = ManifestState.OUTSIDE
        self.dependencies: list[PackageSpec] = []
        self._seen: set[str] = set()
        self._package_indent: int | None = None
        self._git_indent = 0
        self._name: str | None = None
        self._fields: dict[str, str] = {}

    def feed(self, line: str) -> None:
        """Advance the machine by one raw line."""
        line = _strip_comment(line.rstrip("\r\n"))
        stripped = line.strip()
        if not stripped:
            return

        indent = len(line) - len(line.lstrip(" "))
        key, sep, value = stripped.partition(":")
        key = _unquote(key.strip())
        value = _unquote(value.strip())

        if indent == 0:
            self._emit()
            entering = sep and not value and key in SECTIONS
            self.state = ManifestState.IN_SECTION if entering else ManifestState.OUTSIDE
            self._package_indent = None
            return

        if self.state is ManifestState.OUTSIDE or not sep:
            return

        if self._package_indent is None:
            self._package_indent = indent

        if indent <= self._package_indent:
            self._emit()
            self._name = key or None
            self.state = ManifestState.IN_PACKAGE if self._name else ManifestState.IN_SECTION
            return

        if self.state is ManifestState.IN_GIT and indent <= self._git_indent:
            self.state = ManifestState.IN_PACKAGE

        if self.state is ManifestState.IN_PACKAGE and key == "git":
            if value:
                self._fields.setdefault("url", value)
            else:
                self.state = ManifestState.IN_GIT
                self._git_indent = indent
            return

        if self.state is ManifestState.IN_GIT:
            field = _GIT_KEYS.get(key)
            if field and value:
                self._fields.setdefault(field, value)

    def close(self) -> list[PackageSpec]:
        """Flush the entry still open at end of input."""
        self._emit()
        self.state = ManifestState.OUTSIDE
        return self.dependencies

    def _emit(self) -> None:
        name, fields = self._name, self._fields
        self._name = None
        self._fields = {}
        if self.state is ManifestState.IN_GIT:
            self.state = ManifestState.IN_PACKAGE
        if name is None or not fields.get("url"):
            return
        if fields["url"].startswith("{"):
            logger.debug("Inline git mapping for %s not supported", name)
            return
        if name in self._seen:
            logger.debug("Duplicate manifest entry for %s ignored", name)
            return
        self._seen.add(name)
        self.dependencies.append(
            PackageSpec(
                name=name,
                url=fields["url"],
                ref=fields.get("ref") or self.default_ref,
                subdirectory=fields.get("subdirectory"),
            )
        )


def parse_manifest(text: str, default_ref: str = DEFAULT_REF) -> list[PackageSpec]:
    """Every git dependency declared in manifest text, in file order."""
    parser = ManifestParser(default_ref)
    for line in text.splitlines():
        parser.feed(line)
    return parser.close()


def read_manifest(path: Path, default_ref: str = DEFAULT_REF) -> list[PackageSpec]:
    """Parse the manifest at ``path``.

    Raises:
        NotFoundError: If the manifest does not exist.
        LockParseError: If it cannot be read as UTF-8 text.
    """
    if not path.is_file():
        raise NotFoundError(f"Manifest not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise LockParseError(f"Cannot read {path}: {e}") from e
    deps = parse_manifest(text, default_ref)
    logger.debug("Parsed %d declared git dependencies from %s", len(deps), path)
    return deps


def _strip_comment(line: str) -> str:
    # a comment starts at a hash preceded by whitespace
    if line.lstrip().startswith("#"):
        return ""
    cut = line.find(" #")
    return line[:cut] if cut != -1 else line


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value
