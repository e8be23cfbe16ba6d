"""
Dependency models — what the lock says, what the caller wants, and
how the two compare against upstream.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_REF = "main"


class GitDependency(BaseModel):
    """A git-sourced package as recorded in the lock file.

    Only complete entries exist: the lock parser drops any block that
    lacks url, ref or resolved revision.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    ref: str
    resolved_revision: str


class PackageSpec(BaseModel):
    """Caller-supplied intent to add a git dependency."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    ref: str = DEFAULT_REF
    subdirectory: str | None = None

    @classmethod
    def parse(cls, text: str, default_ref: str = DEFAULT_REF) -> PackageSpec:
        """Parse ``NAME=URL[@REF][#PATH]``, taking ``default_ref`` when no ref is given.

        The ``@REF`` suffix is only recognised after the last ``/`` or
        ``:`` of the URL, so scp-style ``git@host:org/repo.git`` URLs
        keep their user part.
        """
        name, sep, rest = text.partition("=")
        name = name.strip()
        if not sep or not name or not rest.strip():
            raise ValueError(f"Expected NAME=URL[@REF][#PATH], got {text!r}")

        rest, _, subdirectory = rest.strip().partition("#")
        ref = default_ref
        at = rest.rfind("@")
        if at > max(rest.rfind("/"), rest.rfind(":")):
            rest, ref = rest[:at], rest[at + 1:]

        return cls(
            name=name,
            url=rest,
            ref=ref or default_ref,
            subdirectory=subdirectory or None,
        )

    def git_descriptor(self) -> str:
        """Inline ``{"git": {...}}`` descriptor accepted by ``pub add``."""
        git: dict[str, str] = {"url": self.url, "ref": self.ref}
        if self.subdirectory:
            git["path"] = self.subdirectory
        return json.dumps({"git": git}, separators=(",", ":"))


class CloneSource(BaseModel):
    """A repository to check out into the project before installing."""

    model_config = ConfigDict(frozen=True)

    url: str
    ref: str = DEFAULT_REF
    destination: str


def revisions_match(remote: str, locked: str) -> bool:
    """Prefix comparison tolerant of abbreviated SHAs on either side."""
    remote = remote.strip().lower()
    locked = locked.strip().lower()
    if not remote or not locked:
        return False
    return remote.startswith(locked) or locked.startswith(remote)


class StalenessResult(BaseModel):
    """Precise comparison of one locked revision against upstream."""

    dependency: GitDependency
    remote_revision: str
    stale: bool
    checked_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def name(self) -> str:
        return self.dependency.name

    @classmethod
    def compare(cls, dependency: GitDependency, remote_revision: str) -> StalenessResult:
        return cls(
            dependency=dependency,
            remote_revision=remote_revision,
            stale=not revisions_match(remote_revision, dependency.resolved_revision),
        )


class StalenessReport(BaseModel):
    """Everything one staleness check learned about a project.

    ``results`` is the precise set. Dependencies whose remote could not
    be queried are listed in ``skipped`` and never appear in it.
    ``possibly_stale`` is the coarse lock-age heuristic.
    """

    lock_path: Path
    results: list[StalenessResult] = Field(default_factory=list)
    skipped: dict[str, str] = Field(default_factory=dict)
    possibly_stale: bool = False

    @property
    def stale(self) -> list[StalenessResult]:
        return [r for r in self.results if r.stale]

    @property
    def stale_names(self) -> list[str]:
        return [r.name for r in self.stale]

    def to_dict(self) -> dict:
        return {
            "lock_path": str(self.lock_path),
            "possibly_stale": self.possibly_stale,
            "results": [
                {
                    "name": r.name,
                    "url": r.dependency.url,
                    "ref": r.dependency.ref,
                    "locked": r.dependency.resolved_revision,
                    "remote": r.remote_revision,
                    "stale": r.stale,
                }
                for r in self.results
            ],
            "skipped": dict(self.skipped),
        }


class Recommendation(BaseModel):
    """Advice about one declared git dependency."""

    model_config = ConfigDict(frozen=True)

    package: str
    message: str
    severity: Literal["info", "warn"] = "info"
    rationale: str = ""
