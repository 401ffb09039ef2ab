"""Connector dependency graph and backtracking resolution.

Computes one version per connector from a set of requested connectors, the
versions a manifest registry publishes, and the dependencies and
incompatibility rules each version declares.

Model
-----
- **C** = set of connector ids
- **V**: C -> 2^SemVer = published versions per connector
- **D**: C x SemVer -> 2^(C x Constraint) = dependency relation
- **X**: C x SemVer -> 2^(C x Constraint) = incompatibility relation

A resolution is a partial function C -> SemVer, defined exactly on the
connectors reachable from the roots, such that every D-edge of a chosen
version is satisfied and no X-edge of a chosen version matches another
chosen version.

The public names of the data model are re-exported here. The
``DependencyResolver`` facade lives in
``connectorlock.core.dependency.resolver``; it is not re-exported because
it imports ``connectorlock.core.lockfile``, which imports this package.
"""

from connectorlock.core.dependency.version import SemanticVersion
from connectorlock.core.dependency.constraints import (
    ANY,
    ConflictRule,
    DependencySpec,
    VersionConstraint,
    satisfies_all,
)
from connectorlock.core.dependency.models import (
    ConflictInfo,
    ConflictReason,
    ConnectorVersion,
    CyclicConflict,
    ExcludedByRule,
    IncompatibleRanges,
    MissingConnector,
    Requester,
    Requirement,
    ResolutionDiagnostics,
    ResolutionError,
    ResolutionResult,
    ResolutionStrategy,
)
from connectorlock.core.dependency.strategy import ALL, order_candidates

__all__ = [
    "ALL",
    "ANY",
    "ConflictInfo",
    "ConflictReason",
    "ConflictRule",
    "ConnectorVersion",
    "CyclicConflict",
    "DependencySpec",
    "ExcludedByRule",
    "IncompatibleRanges",
    "MissingConnector",
    "Requester",
    "Requirement",
    "ResolutionDiagnostics",
    "ResolutionError",
    "ResolutionResult",
    "ResolutionStrategy",
    "SemanticVersion",
    "VersionConstraint",
    "order_candidates",
    "satisfies_all",
]
