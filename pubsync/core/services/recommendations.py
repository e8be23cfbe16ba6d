"""
Recommendations — advice on how declared git dependencies are pinned.
"""

from __future__ import annotations

from pubsync.core.models.dependency import PackageSpec, Recommendation

# Branch names that move under the caller
FLOATING_REFS = frozenset({"main", "master", "develop"})


def recommend(dependencies: list[PackageSpec]) -> list[Recommendation]:
    """One warning per dependency that tracks a floating branch."""
    recommendations = []
    for dep in dependencies:
        if dep.ref in FLOATING_REFS:
            recommendations.append(
                Recommendation(
                    package=dep.name,
                    message=f"Pin {dep.name} to a specific tag or commit",
                    severity="warn",
                    rationale=(
                        f"Using floating branch '{dep.ref}' can lead to unexpected changes. "
                        "Consider pinning to a specific tag or commit SHA."
                    ),
                )
            )
    return recommendations
