"""
Conflict analyzer and resolver.

The analyzer classifies pub's failure output through an ordered list of
matchers. Each matcher carries a ``signature_version`` so a change in the
tool's wording can ship as a new matcher without disturbing older ones.
The first matcher that recognises the text wins.

The resolver applies one of three strategies to a conflicted package:

    OVERRIDE  re-add with an inline ``override:`` directive pinning it
    RETRY     re-run the plain add unchanged
    SKIP      leave it unresolved
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from pubsync.core.models.action import ActionResult
from pubsync.core.models.conflict import ConflictAnalysis, FailureKind

if TYPE_CHECKING:
    from pubsync.core.models.dependency import PackageSpec
    from pubsync.core.services.installer import Installer

logger = logging.getLogger(__name__)

# "Because pkg_b requires ...", "because every version of pkg_b from git depends on ..."
_BLAME_RE = re.compile(
    r"\bbecause\s+(?:every version of\s+)?([A-Za-z_]\w*)"
    r"(?:\s+from\s+\w+)?(?:\s+[<>=^]*[\w.+-]+)?\s+(?:requires|depends on)\b",
    re.IGNORECASE,
)
_DEPENDS_RE = re.compile(r"depends on ([A-Za-z_]\w*)", re.IGNORECASE)


def extract_package(text: str, exclude: frozenset[str] = frozenset()) -> str | None:
    """Name the package pub blames, skipping any in ``exclude``."""
    for pattern in (_BLAME_RE, _DEPENDS_RE):
        for m in pattern.finditer(text):
            name = m.group(1)
            if name not in exclude:
                return name
    return None


class ConflictMatcher(Protocol):
    """One recognisable failure signature."""

    signature_version: int

    def match(self, text: str) -> ConflictAnalysis | None: ...


@dataclass(frozen=True)
class RegexMatcher:
    """Matcher driven by a list of case-insensitive patterns."""

    kind: FailureKind
    patterns: tuple[str, ...]
    message: str
    suggested_fix: str
    signature_version: int = 1
    blames_package: bool = False
    _compiled: tuple[re.Pattern[str], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        compiled = tuple(re.compile(p, re.IGNORECASE | re.DOTALL) for p in self.patterns)
        object.__setattr__(self, "_compiled", compiled)

    def match(self, text: str) -> ConflictAnalysis | None:
        if not any(p.search(text) for p in self._compiled):
            return None
        return ConflictAnalysis(
            conflict_type=self.kind,
            user_message=self.message,
            suggested_fix=self.suggested_fix,
            signature_version=self.signature_version,
        )


# Order matters: an SDK failure also ends with "version solving failed".
DEFAULT_MATCHERS: tuple[ConflictMatcher, ...] = (
    RegexMatcher(
        kind=FailureKind.SDK_CONSTRAINT,
        patterns=(
            r"current (?:dart|flutter) sdk version is",
            r"requires sdk version",
        ),
        message="A dependency requires a different Dart/Flutter SDK version.",
        suggested_fix="Upgrade the SDK, or pin the package to a ref compatible with your SDK.",
        blames_package=True,
    ),
    RegexMatcher(
        kind=FailureKind.VERSION_SOLVING,
        patterns=(
            r"version solving failed",
            r"incompatible with",
            r"which doesn't match any versions",
        ),
        message="Dependency versions conflict.",
        suggested_fix="Add a dependency override pinning the package to the requested git ref.",
        blames_package=True,
    ),
    RegexMatcher(
        kind=FailureKind.REF_NOT_FOUND,
        patterns=(
            r"couldn't find remote ref",
            r"could not find git ref",
            r"did not match any file\(s\) known to git",
            r"remote branch \S+ not found",
            r"unknown revision",
        ),
        message="The git ref does not exist in the repository.",
        suggested_fix="Check the branch or tag name passed as the ref.",
    ),
    RegexMatcher(
        kind=FailureKind.AUTH,
        patterns=(
            r"authentication failed",
            r"permission denied \(publickey",
            r"could not read username",
            r"repository not found",
            r"terminal prompts disabled",
        ),
        message="Access to the git repository was denied.",
        suggested_fix="Check your git credentials or SSH key for this host.",
    ),
    RegexMatcher(
        kind=FailureKind.NETWORK,
        patterns=(
            r"could not resolve host",
            r"failed host lookup",
            r"connection (?:timed out|refused|reset)",
            r"network is unreachable",
            r"socketexception",
            r"timed out after",
        ),
        message="The network request failed.",
        suggested_fix="Check your connection and retry.",
    ),
    RegexMatcher(
        kind=FailureKind.MANIFEST_SYNTAX,
        patterns=(
            r"error on line \d+",
            r"yamlexception",
            r"invalid pubspec",
            r"expected a key",
        ),
        message="pubspec.yaml could not be parsed.",
        suggested_fix="Fix the YAML syntax error reported above, or restore a backup.",
    ),
)


class ConflictAnalyzer:
    """Classify installer output text into a ConflictAnalysis."""

    def __init__(self, matchers: tuple[ConflictMatcher, ...] | list[ConflictMatcher] = DEFAULT_MATCHERS):
        self._matchers = tuple(matchers)

    @property
    def matchers(self) -> tuple[ConflictMatcher, ...]:
        return self._matchers

    def analyze(
        self,
        text: str,
        package: str | None = None,
        exclude: frozenset[str] = frozenset(),
    ) -> ConflictAnalysis:
        """Classify ``text``.

        Args:
            text: Combined stdout/stderr of the failed command.
            package: Package being installed, used when no other is blamed.
            exclude: Names never reported as the culprit (the root project).
        """
        for matcher in self._matchers:
            analysis = matcher.match(text)
            if analysis is None:
                continue
            if analysis.is_conflict or getattr(matcher, "blames_package", False):
                culprit = extract_package(text, exclude) or package
                analysis = analysis.model_copy(update={"conflicting_package": culprit})
            elif package:
                analysis = analysis.model_copy(update={"conflicting_package": package})
            logger.debug(
                "Classified failure as %s (signature v%d)",
                analysis.conflict_type, analysis.signature_version,
            )
            return analysis

        return ConflictAnalysis(
            conflict_type=FailureKind.UNKNOWN,
            conflicting_package=package,
            user_message="The install failed for an unrecognised reason.",
            suggested_fix="Read the tool output above; run with --debug for details.",
        )


class Strategy(StrEnum):
    """Manual resolution choices for one conflicted package."""

    OVERRIDE = "override"
    SKIP = "skip"
    RETRY = "retry"


class ConflictResolver:
    """Apply a resolution strategy through the installer."""

    def __init__(self, installer: Installer):
        self._installer = installer

    def apply(
        self,
        spec: PackageSpec,
        strategy: Strategy,
        timeout: float | None = None,
    ) -> ActionResult | None:
        """Run ``strategy`` for ``spec``.

        Returns:
            The new attempt's result, or None for SKIP (nothing was run).
        """
        strategy = Strategy(strategy)
        logger.info("Resolving %s with strategy %s", spec.name, strategy)

        if strategy is Strategy.SKIP:
            return None
        if strategy is Strategy.RETRY:
            return self._installer.add(spec, timeout=timeout)
        return self._installer.add_with_override(spec, timeout=timeout)
