"""connectorlock exception hierarchy.

All public exceptions inherit from ConnectorLockError, giving callers a single
base class to catch when they want to handle any connectorlock-specific failure
without swallowing unrelated errors.

Inside ``DependencyResolver.resolve`` these exceptions never escape: they are
converted into ``ResolutionError`` values on the returned result. They surface
directly only from the low-level parsing helpers, the registry adapters and
the lockfile operations that have no result object to carry them.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed taxonomy of resolution failure kinds."""

    INVALID_VERSION_SYNTAX = "invalid_version_syntax"
    INVALID_CONSTRAINT_SYNTAX = "invalid_constraint_syntax"
    CONNECTOR_NOT_FOUND = "connector_not_found"
    CYCLIC_DEPENDENCY = "cyclic_dependency"
    UNSATISFIABLE_CONSTRAINT_SET = "unsatisfiable_constraint_set"
    RESOLUTION_BUDGET_EXCEEDED = "resolution_budget_exceeded"
    REGISTRY_UNAVAILABLE = "registry_unavailable"
    CANNOT_LOCK_FAILED_RESOLUTION = "cannot_lock_failed_resolution"
    CANCELLED = "cancelled"


class ConnectorLockError(Exception):
    """Base exception for all connectorlock errors."""

    kind: ErrorKind | None = None


class InvalidVersionError(ConnectorLockError, ValueError):
    """Raised when a semantic version string cannot be parsed.

    Attributes:
        text: The offending version text.
    """

    kind = ErrorKind.INVALID_VERSION_SYNTAX

    def __init__(self, text: str) -> None:
        self.text = text
        super().__init__(f"Invalid semantic version: {text!r}")


class InvalidConstraintError(ConnectorLockError, ValueError):
    """Raised when a version constraint expression cannot be parsed.

    Attributes:
        text: The offending substring of the expression.
        constraint: The complete expression as written.
    """

    kind = ErrorKind.INVALID_CONSTRAINT_SYNTAX

    def __init__(self, text: str, constraint: str) -> None:
        self.text = text
        self.constraint = constraint
        super().__init__(
            f"Invalid version constraint {constraint!r}: cannot parse {text!r}"
        )


class RegistryUnavailableError(ConnectorLockError):
    """Raised when the manifest registry cannot be reached.

    Only raised after the registry adapter has exhausted its retries.

    Attributes:
        connector_id: The connector whose lookup failed.
    """

    kind = ErrorKind.REGISTRY_UNAVAILABLE

    def __init__(self, connector_id: str, message: str) -> None:
        self.connector_id = connector_id
        super().__init__(f"Registry unavailable for {connector_id!r}: {message}")


class LockfileError(ConnectorLockError):
    """Raised for lockfile generation or deserialization failures.

    Covers corrupted lockfile documents and attempts to produce a lockfile
    from something that cannot be locked.
    """


class CannotLockFailedResolutionError(LockfileError):
    """Raised when a lockfile is requested for an unsuccessful resolution."""

    kind = ErrorKind.CANNOT_LOCK_FAILED_RESOLUTION
