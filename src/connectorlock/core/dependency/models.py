"""Data model for connector resolution.

Pure data holders (frozen dataclasses) shared by the graph builder, solver,
diagnoser and lockfile manager: registry manifests (``ConnectorVersion``),
requirement provenance (``Requester``, ``Requirement``, ``Exclusion``), the
closed set of conflict reasons, and the result records returned to callers.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Mapping, Union

from connectorlock.core.dependency.constraints import (
    ConflictRule,
    DependencySpec,
    VersionConstraint,
)
from connectorlock.core.dependency.version import SemanticVersion
from connectorlock.exceptions import ErrorKind


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


class ResolutionStrategy(str, Enum):
    """Policy deciding which satisfying version is preferred."""

    HIGHEST_COMPATIBLE = "highest_compatible"
    LOWEST_COMPATIBLE = "lowest_compatible"
    PREFER_STABLE = "prefer_stable"
    PINNED = "pinned"
    FAIL_FAST = "fail_fast"


# ---------------------------------------------------------------------------
# ConnectorVersion: one manifest as reported by the registry
# ---------------------------------------------------------------------------


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _parse_edges(value: Any, factory: Any) -> tuple:
    """Parse dependency/conflict declarations from manifest data.

    Accepts a list of ``"id@range"`` strings, a list of objects with
    ``connectorId``/``connector_id`` and ``versionRange``/``constraint``
    keys, or a mapping of ``id -> range``.
    """
    if not value:
        return ()
    if isinstance(value, dict):
        return tuple(factory(cid, rng or "*") for cid, rng in value.items())
    edges = []
    for item in value:
        if isinstance(item, str):
            edges.append(factory.parse(item))
        elif isinstance(item, dict):
            cid = item.get("connectorId", item.get("connector_id", item.get("id")))
            rng = item.get(
                "versionRange", item.get("version_range", item.get("constraint", "*"))
            )
            edges.append(factory(cid, rng or "*"))
        else:
            raise TypeError(f"Unsupported edge declaration: {item!r}")
    return tuple(edges)


@dataclass(frozen=True)
class ConnectorVersion:
    """A specific connector at a specific version, as published.

    The ``dependencies`` field makes resolution transitive; ``conflicts``
    lists connectors this version cannot coexist with.

    Attributes:
        connector_id: Stable connector identifier.
        version: The published version.
        published_at: Publication timestamp, if known.
        is_stable: Stability flag. Defaults to "not a pre-release".
        is_latest: Whether the registry marks this as the latest version.
        deprecated: Whether the version has been deprecated.
        dependencies: Connector dependencies of this version.
        conflicts: Incompatibility rules of this version.
    """

    connector_id: str
    version: SemanticVersion
    published_at: datetime | None = None
    is_stable: bool | None = None
    is_latest: bool = False
    deprecated: bool = False
    dependencies: tuple[DependencySpec, ...] = ()
    conflicts: tuple[ConflictRule, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "version", SemanticVersion.coerce(self.version))
        if self.is_stable is None:
            object.__setattr__(self, "is_stable", not self.version.is_prerelease)
        object.__setattr__(self, "dependencies", tuple(self.dependencies))
        object.__setattr__(self, "conflicts", tuple(self.conflicts))

    @classmethod
    def from_manifest(
        cls, data: Mapping[str, Any], connector_id: str | None = None
    ) -> ConnectorVersion:
        """Build a ``ConnectorVersion`` from registry manifest data.

        Both camelCase (registry JSON) and snake_case keys are accepted.
        ``incompatibleWith`` is an alias for ``conflicts``.

        Raises:
            InvalidVersionError: If the version string is malformed.
            InvalidConstraintError: If a dependency range is malformed.
            ValueError: If no connector id is available.
        """
        cid = data.get("connectorId", data.get("connector_id", data.get("id", connector_id)))
        if not cid:
            raise ValueError(f"Manifest has no connector id: {dict(data)!r}")
        conflicts = data.get("conflicts", data.get("incompatibleWith"))
        return cls(
            connector_id=str(cid),
            version=SemanticVersion.parse(str(data["version"])),
            published_at=_parse_datetime(data.get("publishedAt", data.get("published_at"))),
            is_stable=data.get("isStable", data.get("is_stable")),
            is_latest=bool(data.get("isLatest", data.get("is_latest", False))),
            deprecated=bool(data.get("deprecated", False)),
            dependencies=_parse_edges(data.get("dependencies"), DependencySpec),
            conflicts=_parse_edges(conflicts, ConflictRule),
        )

    def __str__(self) -> str:
        return f"{self.connector_id}@{self.version}"


# ---------------------------------------------------------------------------
# Requirement provenance
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Requester:
    """Who introduced a requirement: the root request or a connector version."""

    connector_id: str | None = None
    version: SemanticVersion | None = None

    @property
    def is_root(self) -> bool:
        return self.connector_id is None

    def __str__(self) -> str:
        if self.connector_id is None:
            return "root"
        return f"{self.connector_id}@{self.version}"


ROOT = Requester()


@dataclass(frozen=True)
class Requirement:
    """A dependency spec together with the requester that declared it."""

    spec: DependencySpec
    requester: Requester = ROOT

    @property
    def connector_id(self) -> str:
        return self.spec.connector_id

    @property
    def constraint(self) -> VersionConstraint:
        return self.spec.constraint

    def __str__(self) -> str:
        return f"{self.requester} requires {self.spec.connector_id} {self.spec.constraint}"


@dataclass(frozen=True)
class Exclusion:
    """A conflict rule together with the connector version that declared it."""

    rule: ConflictRule
    requester: Requester

    def __str__(self) -> str:
        return (
            f"{self.requester} is incompatible with "
            f"{self.rule.connector_id} {self.rule.constraint}"
        )


# ---------------------------------------------------------------------------
# ConflictReason: closed set of tagged variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IncompatibleRanges:
    """No version satisfies the conjunction of the listed requirements.

    ``assigned`` is set when the clash is with a version already chosen
    earlier in the search.
    """

    kind: ClassVar[str] = "incompatible_ranges"

    requirements: tuple[Requirement, ...]
    assigned: SemanticVersion | None = None

    def describe(self) -> str:
        parts = "; ".join(str(r) for r in self.requirements)
        if self.assigned is not None:
            return f"already resolved to {self.assigned}, which violates: {parts}"
        return f"no version satisfies all of: {parts}"


@dataclass(frozen=True)
class MissingConnector:
    """The connector does not exist in the registry."""

    kind: ClassVar[str] = "missing_connector"

    requirements: tuple[Requirement, ...]

    def describe(self) -> str:
        requesters = ", ".join(sorted({str(r.requester) for r in self.requirements}))
        return f"connector is not available in the registry (requested by {requesters})"


@dataclass(frozen=True)
class ExcludedByRule:
    """Every otherwise-viable version is excluded by a conflict rule."""

    kind: ClassVar[str] = "excluded_by_rule"

    requirements: tuple[Requirement, ...]
    exclusions: tuple[Exclusion, ...]

    def describe(self) -> str:
        rules = "; ".join(str(e) for e in self.exclusions)
        return f"every compatible version is excluded: {rules}"


@dataclass(frozen=True)
class CyclicConflict:
    """A dependency cycle closes on a version that violates its requirement."""

    kind: ClassVar[str] = "cyclic_conflict"

    cycle: tuple[str, ...]
    requirements: tuple[Requirement, ...]
    assigned: SemanticVersion | None = None

    def describe(self) -> str:
        path = " -> ".join(self.cycle)
        parts = "; ".join(str(r) for r in self.requirements)
        return f"dependency cycle {path} cannot be satisfied: {parts}"


ConflictReason = Union[IncompatibleRanges, MissingConnector, ExcludedByRule, CyclicConflict]


# ---------------------------------------------------------------------------
# Result records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConflictInfo:
    """A connector for which no single version satisfies all constraints.

    Attributes:
        connector_id: The connector in conflict.
        conflicting_versions: The conjunctive constraint set that left it
            without candidates, in the order the requirements were added.
        reason: Tagged explanation naming the requesters.
        suggested_versions: Versions that would become viable if the most
            recently added blocking requirement were relaxed.
    """

    connector_id: str
    conflicting_versions: tuple[VersionConstraint, ...]
    reason: ConflictReason
    suggested_versions: tuple[SemanticVersion, ...] = ()

    @property
    def message(self) -> str:
        return f"{self.connector_id}: {self.reason.describe()}"

    @property
    def requesters(self) -> tuple[str, ...]:
        return tuple(str(r.requester) for r in self.reason.requirements)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "connector_id": self.connector_id,
            "conflicting_versions": [str(c) for c in self.conflicting_versions],
            "reason": self.reason.kind,
            "message": self.reason.describe(),
            "requesters": list(self.requesters),
            "suggested_versions": [str(v) for v in self.suggested_versions],
        }
        if isinstance(self.reason, CyclicConflict):
            data["cycle"] = list(self.reason.cycle)
        return data


@dataclass(frozen=True)
class ResolutionError:
    """A failure value carried by results instead of a raised exception.

    Attributes:
        kind: Failure category.
        message: Human-readable summary.
        connector_id: Connector the failure is attributed to, if any.
        detail: Offending input text for syntax errors.
        cycle: Cycle path for ``CYCLIC_DEPENDENCY``.
    """

    kind: ErrorKind
    message: str
    connector_id: str | None = None
    detail: str = ""
    cycle: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.connector_id is not None:
            data["connector_id"] = self.connector_id
        if self.detail:
            data["detail"] = self.detail
        if self.cycle:
            data["cycle"] = list(self.cycle)
        return data


def _frozen_versions(
    mapping: Mapping[str, SemanticVersion],
) -> Mapping[str, SemanticVersion]:
    return MappingProxyType({k: mapping[k] for k in sorted(mapping)})


@dataclass(frozen=True)
class ResolutionResult:
    """Outcome of one resolution call.

    A successful result maps every connector reachable from the roots to
    exactly one version. A failed result never carries a partial
    assignment: ``resolved_versions`` is empty and ``error`` says why.

    Attributes:
        success: True if a consistent assignment was found.
        resolved_versions: ``connector_id -> version``, sorted by id.
        unresolved: Connectors left without a version on failure.
        conflicts: Diagnostic records for connectors in conflict.
        error: Failure value, None on success.
        requested: The root specs that were resolved.
        strategy: The strategy used.
        cycles: Dependency cycles traversed without conflict.
        expansions: Search nodes expanded.
        dependencies: Declared dependency ids of each resolved version.
    """

    success: bool
    resolved_versions: Mapping[str, SemanticVersion] = field(default_factory=dict)
    unresolved: tuple[str, ...] = ()
    conflicts: tuple[ConflictInfo, ...] = ()
    error: ResolutionError | None = None
    requested: tuple[DependencySpec, ...] = ()
    strategy: ResolutionStrategy = ResolutionStrategy.HIGHEST_COMPATIBLE
    cycles: tuple[tuple[str, ...], ...] = ()
    expansions: int = 0
    dependencies: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "resolved_versions", _frozen_versions(self.resolved_versions))
        object.__setattr__(
            self,
            "dependencies",
            MappingProxyType({k: tuple(self.dependencies[k]) for k in sorted(self.dependencies)}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Deterministic, JSON-ready representation."""
        return {
            "success": self.success,
            "resolved_versions": {k: str(v) for k, v in self.resolved_versions.items()},
            "unresolved": list(self.unresolved),
            "conflicts": [c.to_dict() for c in self.conflicts],
            "error": self.error.to_dict() if self.error else None,
            "requested": [str(s) for s in self.requested],
            "strategy": self.strategy.value,
            "cycles": [list(c) for c in self.cycles],
            "expansions": self.expansions,
            "dependencies": {k: list(v) for k, v in self.dependencies.items()},
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)


@dataclass(frozen=True)
class ResolutionDiagnostics:
    """Explanation of a failed (or successful) resolution.

    Attributes:
        has_conflicts: True if resolution failed.
        conflicts: One record per connector in conflict.
        suggestions: Human-readable relaxation hints.
        available_versions: Full registry version list per implicated
            connector, ascending.
        error: The failure value, if resolution failed.
    """

    has_conflicts: bool
    conflicts: tuple[ConflictInfo, ...] = ()
    suggestions: tuple[str, ...] = ()
    available_versions: Mapping[str, tuple[SemanticVersion, ...]] = field(default_factory=dict)
    error: ResolutionError | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_conflicts": self.has_conflicts,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "suggestions": list(self.suggestions),
            "available_versions": {
                k: [str(v) for v in vs] for k, vs in sorted(self.available_versions.items())
            },
            "error": self.error.to_dict() if self.error else None,
        }
