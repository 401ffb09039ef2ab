"""Lockfile data models: LockedConnector, LockfileMetadata, validation result.

Pure data holders (frozen dataclasses) with no business logic, so they are
safe to import from anywhere without circular-dependency concerns.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from connectorlock.core.dependency.constraints import DependencySpec
from connectorlock.core.dependency.models import ResolutionStrategy
from connectorlock.core.dependency.version import SemanticVersion

# ---------------------------------------------------------------------------
# Integrity digest format: "sha256:<64-hex-characters>"
# ---------------------------------------------------------------------------

_INTEGRITY_RE = re.compile(r"^sha256:[0-9a-f]{64}$")


# ---------------------------------------------------------------------------
# LockedConnector: A single entry in the lockfile
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LockedConnector:
    """A single connector entry in the lockfile.

    Attributes:
        connector_id: Connector identifier.
        version: The pinned version.
        dependencies: Resolved version of each declared dependency, keyed
            by connector id.
    """

    connector_id: str
    version: SemanticVersion
    dependencies: Mapping[str, SemanticVersion] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "version", SemanticVersion.coerce(self.version))
        deps = {k: SemanticVersion.coerce(v) for k, v in self.dependencies.items()}
        object.__setattr__(
            self, "dependencies", MappingProxyType({k: deps[k] for k in sorted(deps)})
        )


# ---------------------------------------------------------------------------
# LockfileMetadata: Top-level metadata section
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LockfileMetadata:
    """Metadata section of the lockfile.

    Attributes:
        strategy: Strategy the pins were resolved with, or None for a
            hand-authored lockfile.
        requested: The root specs that were resolved. Validation checks
            pins against them and updates re-resolve them.
        warnings: Non-fatal findings from the last generate/update.
        integrity: ``sha256:`` digest of the resolved map, or empty.
        extensions: Open map for forward-compatible additions. Unknown
            metadata keys read from JSON are merged into it.
    """

    strategy: ResolutionStrategy | None = None
    requested: tuple[DependencySpec, ...] = ()
    warnings: tuple[str, ...] = ()
    integrity: str = ""
    extensions: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "requested", tuple(self.requested))
        object.__setattr__(self, "warnings", tuple(self.warnings))
        object.__setattr__(self, "extensions", MappingProxyType(dict(self.extensions)))


# ---------------------------------------------------------------------------
# LockfileValidationResult
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LockfileValidationResult:
    """Outcome of validating a lockfile against the current registry.

    Attributes:
        is_valid: True iff ``errors`` is empty.
        errors: Findings that make the lockfile unusable as-is.
        warnings: Informational findings (e.g. newer versions available).
        outdated_versions: Connectors whose pin is deprecated or violates
            a recorded constraint.
        missing_connectors: Connectors no longer in the registry.
        missing_versions: Connectors whose pinned version was withdrawn.
    """

    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    outdated_versions: tuple[str, ...] = ()
    missing_connectors: tuple[str, ...] = ()
    missing_versions: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "outdated_versions": list(self.outdated_versions),
            "missing_connectors": list(self.missing_connectors),
            "missing_versions": list(self.missing_versions),
        }
