"""
Lock parser — git sources out of pubspec.lock, without a YAML parser.

The lock file is always written by the pub tool, so only a small, known
subset of its syntax matters. A three-state machine walks it line by line:

    TOP_LEVEL            outside any package (or after a record was emitted)
    IN_DEPENDENCY_BLOCK  inside ``  name:`` but no ``source: git`` seen yet
    IN_GIT_SOURCE        inside a block whose source is git

Transitions:

    non-indented line              → TOP_LEVEL
    ``  name:`` (2 spaces, no value) → IN_DEPENDENCY_BLOCK (new record)
    ``source: git`` inside a block → IN_GIT_SOURCE
    ``source: git`` with a staged complete record → emit, TOP_LEVEL
    ``revision:`` in IN_GIT_SOURCE → emit if complete, TOP_LEVEL either way

Supported shapes (``SUPPORTED_SHAPES``):

    flat             source marker first, then url/ref/revision::

                       pkg_a:
                         source: git
                         url: https://example.com/a.git
                         ref: main
                         revision: abc123

    pub description  what ``dart pub`` writes; url/ref/resolved-ref are
                     nested under ``description:`` and come before the
                     marker, so they are staged and committed on it::

                       pkg_a:
                         dependency: "direct main"
                         description:
                           path: "."
                           ref: main
                           resolved-ref: abc123
                           url: "https://example.com/a.git"
                         source: git
                         version: "1.0.0"

Incomplete blocks are dropped silently: a flat block whose ``revision:``
line arrives before its url or ref is discarded. The first record for a
name wins.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from pathlib import Path

from pubsync.core.errors import LockParseError, NotFoundError
from pubsync.core.models.dependency import GitDependency

logger = logging.getLogger(__name__)

SUPPORTED_SHAPES = ("flat", "pub description")

# Lock keys → record fields. resolved-ref is pub's name for revision.
_FIELD_KEYS = {
    "url": "url",
    "ref": "ref",
    "revision": "resolved_revision",
    "resolved-ref": "resolved_revision",
}
_REQUIRED = ("url", "ref", "resolved_revision")


class ParseState(StrEnum):
    TOP_LEVEL = "top_level"
    IN_DEPENDENCY_BLOCK = "in_dependency_block"
    IN_GIT_SOURCE = "in_git_source"


class LockParser:
    """Line-driven state machine; feed lines, collect ``dependencies``."""

    def __init__(self) -> None:
        self.state = ParseState.TOP_LEVEL
        self.dependencies: list[GitDependency] = []
        self._seen: set[str] = set()
        self._name: str | None = None
        self._fields: dict[str, str] = {}

    def feed(self, line: str) -> None:
        """Advance the machine by one raw line."""
        line = line.rstrip("\r\n")
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            return

        indent = len(line) - len(line.lstrip(" "))

        if indent == 0:
            self._reset()
            return

        if indent == 2 and stripped.endswith(":") and ":" not in stripped[:-1]:
            self._open(_unquote(stripped[:-1].strip()))
            return

        if self.state is ParseState.TOP_LEVEL:
            return

        key, sep, value = stripped.partition(":")
        if not sep:
            return
        key = key.strip()
        value = _unquote(value.strip())

        if key == "source" and self.state is ParseState.IN_DEPENDENCY_BLOCK:
            if value == "git":
                self.state = ParseState.IN_GIT_SOURCE
                self._maybe_emit()
            else:
                # hosted, path or sdk: nothing further in this block matters
                self._reset()
            return

        field = _FIELD_KEYS.get(key)
        if field is None or not value:
            return
        # first occurrence inside a block wins (description url before any other)
        self._fields.setdefault(field, value)
        if self.state is ParseState.IN_GIT_SOURCE and field == "resolved_revision":
            # the revision line closes a flat record, complete or not
            self._maybe_emit()
            self._reset()

    def _open(self, name: str) -> None:
        self._name = name or None
        self._fields = {}
        self.state = ParseState.IN_DEPENDENCY_BLOCK if self._name else ParseState.TOP_LEVEL

    def _reset(self) -> None:
        self._name = None
        self._fields = {}
        self.state = ParseState.TOP_LEVEL

    def _maybe_emit(self) -> None:
        if self._name is None or not all(self._fields.get(f) for f in _REQUIRED):
            return
        if self._name in self._seen:
            logger.debug("Duplicate lock entry for %s ignored", self._name)
        else:
            self._seen.add(self._name)
            self.dependencies.append(GitDependency(name=self._name, **self._fields))
        self._reset()


def parse_lock(text: str) -> list[GitDependency]:
    """Extract every complete git dependency from lock text, in file order."""
    parser = LockParser()
    for line in text.splitlines():
        parser.feed(line)
    return parser.dependencies


def read_lock(path: Path) -> list[GitDependency]:
    """Parse the lock file at ``path``.

    Raises:
        NotFoundError: If the lock file does not exist.
        LockParseError: If it cannot be read as UTF-8 text.
    """
    if not path.is_file():
        raise NotFoundError(f"Lock file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise LockParseError(f"Cannot read {path}: {e}") from e
    deps = parse_lock(text)
    logger.debug("Parsed %d git dependencies from %s", len(deps), path)
    return deps


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value
