"""Conflict diagnostics for failed resolutions.

Turns the dead ends recorded by the solver into ``ConflictInfo`` records and
relaxation hints. A relaxation drops one blocking requirement (or conflict
rule) at a time, most recently added first, and asks which versions would
become viable without it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from connectorlock.core.dependency.constraints import satisfies_all
from connectorlock.core.dependency.graph import DeadEnd
from connectorlock.core.dependency.models import (
    ConflictInfo,
    ConnectorVersion,
    Exclusion,
    MissingConnector,
    Requirement,
    ResolutionDiagnostics,
    ResolutionError,
)
from connectorlock.core.dependency.version import SemanticVersion

# Versions listed per suggestion sentence.
_MAX_LISTED = 5


@dataclass(frozen=True)
class Relaxation:
    """Versions that become viable once one blocker is dropped."""

    connector_id: str
    dropped: Requirement | Exclusion
    versions: tuple[SemanticVersion, ...]

    def describe(self) -> str:
        listed = ", ".join(str(v) for v in self.versions[:_MAX_LISTED])
        if len(self.versions) > _MAX_LISTED:
            listed += ", ..."
        if isinstance(self.dropped, Requirement):
            who = self.dropped.requester
            blocker = (
                "the root request relaxed its requirement"
                if who.is_root
                else f"{who} relaxed its requirement"
            )
            return f"if {blocker} {self.dropped.constraint}, {self.connector_id} {listed} would work"
        rule = self.dropped.rule
        return (
            f"if {self.dropped.requester} dropped its incompatibility with "
            f"{rule.connector_id} {rule.constraint}, {self.connector_id} {listed} would work"
        )


def _viable_without(
    versions: Iterable[ConnectorVersion],
    requirements: Sequence[Requirement],
    exclusions: Sequence[Exclusion],
    allow_deprecated: bool,
) -> tuple[SemanticVersion, ...]:
    constraints = [r.constraint for r in requirements]
    viable = [
        cv.version for cv in versions
        if (allow_deprecated or not cv.deprecated)
        and satisfies_all(cv.version, constraints)
        and not any(
            e.rule.connector_id == cv.connector_id and e.rule.constraint.satisfies(cv.version)
            for e in exclusions
        )
    ]
    return tuple(sorted(viable, reverse=True))


def relaxations(dead_end: DeadEnd, allow_deprecated: bool = False) -> list[Relaxation]:
    """Every productive single-blocker relaxation of *dead_end*.

    Requirements are tried most recent first, then conflict rules.
    """
    reqs = list(dead_end.requirements)
    excls = list(dead_end.exclusions)
    found: list[Relaxation] = []
    for idx in reversed(range(len(reqs))):
        remaining = reqs[:idx] + reqs[idx + 1:]
        versions = _viable_without(dead_end.versions, remaining, excls, allow_deprecated)
        if versions:
            found.append(Relaxation(dead_end.connector_id, reqs[idx], versions))
    for idx in reversed(range(len(excls))):
        remaining_excls = excls[:idx] + excls[idx + 1:]
        versions = _viable_without(dead_end.versions, reqs, remaining_excls, allow_deprecated)
        if versions:
            found.append(Relaxation(dead_end.connector_id, excls[idx], versions))
    return found


def conflict_info(dead_end: DeadEnd, allow_deprecated: bool = False) -> ConflictInfo:
    """Build the ``ConflictInfo`` record for one dead end."""
    found = relaxations(dead_end, allow_deprecated)
    return ConflictInfo(
        connector_id=dead_end.connector_id,
        conflicting_versions=tuple(r.constraint for r in dead_end.requirements),
        reason=dead_end.reason,
        suggested_versions=found[0].versions if found else (),
    )


def build_conflicts(
    dead_ends: Iterable[DeadEnd], allow_deprecated: bool = False
) -> tuple[ConflictInfo, ...]:
    """One ``ConflictInfo`` per dead end, preserving search order."""
    return tuple(conflict_info(d, allow_deprecated) for d in dead_ends)


def suggestions(dead_ends: Iterable[DeadEnd], allow_deprecated: bool = False) -> list[str]:
    """Human-readable relaxation hints for every dead end."""
    hints: list[str] = []
    for dead_end in dead_ends:
        if isinstance(dead_end.reason, MissingConnector):
            requesters = ", ".join(
                sorted({str(r.requester) for r in dead_end.requirements})
            )
            hints.append(
                f"{dead_end.connector_id} is not published; publish it or drop "
                f"the requirement from {requesters}"
            )
            continue
        for relaxation in relaxations(dead_end, allow_deprecated):
            hints.append(relaxation.describe())
    return hints


def diagnose(
    dead_ends: Sequence[DeadEnd],
    error: ResolutionError | None,
    allow_deprecated: bool = False,
) -> ResolutionDiagnostics:
    """Assemble the full diagnostics for a resolution outcome.

    Args:
        dead_ends: Dead ends recorded by the solver, in search order.
        error: The failure value, or None if resolution succeeded.
        allow_deprecated: Whether deprecated versions count as viable.

    Returns:
        ``ResolutionDiagnostics``. A successful outcome has no conflicts
        even if the search passed through dead ends on the way.
    """
    if error is None:
        return ResolutionDiagnostics(has_conflicts=False)
    return ResolutionDiagnostics(
        has_conflicts=True,
        conflicts=build_conflicts(dead_ends, allow_deprecated),
        suggestions=tuple(suggestions(dead_ends, allow_deprecated)),
        available_versions={
            d.connector_id: tuple(cv.version for cv in d.versions) for d in dead_ends
        },
        error=error,
    )
