"""
ConflictAnalysis — classification of one installer failure.

Derived from the build tool's output text, transient, and recomputed for
every failure. Only conflict types set ``is_conflict``; the remaining
kinds exist so the user message can say *why* an install failed.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class FailureKind(StrEnum):
    """Known installer failure signatures."""

    # Conflicts (recoverable via resolution strategies)
    VERSION_SOLVING = "version_solving"
    SDK_CONSTRAINT = "sdk_constraint"

    # Unrelated failures
    NETWORK = "network"
    AUTH = "auth"
    REF_NOT_FOUND = "ref_not_found"
    MANIFEST_SYNTAX = "manifest_syntax"
    UNKNOWN = "unknown"


CONFLICT_KINDS = frozenset({FailureKind.VERSION_SOLVING, FailureKind.SDK_CONSTRAINT})


class ConflictAnalysis(BaseModel):
    """What went wrong, who is to blame, and what to try next."""

    conflict_type: FailureKind = FailureKind.UNKNOWN
    conflicting_package: str | None = None
    suggested_fix: str = ""
    user_message: str = ""
    signature_version: int = 1

    @property
    def is_conflict(self) -> bool:
        return self.conflict_type in CONFLICT_KINDS

    def annotations(self) -> dict:
        """Structured data merged into a failed install's ActionResult."""
        return {
            "needs_resolution": self.is_conflict,
            "conflict_type": self.conflict_type.value if self.is_conflict else None,
            "conflicting_pkg": self.conflicting_package,
            "failure_kind": self.conflict_type.value,
            "suggested_fix": self.suggested_fix,
            "user_message": self.user_message,
        }
