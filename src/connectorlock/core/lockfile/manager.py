"""Registry-aware lockfile operations: generate, validate, update.

``LockfileManager`` connects the pure ``Lockfile`` value to a manifest
registry. Validation re-checks every pin against the registry's current
contents; updating re-resolves the recorded root specs with the old pins as
a baseline.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence

from connectorlock.config import ResolverConfig
from connectorlock.core.dependency.constraints import DependencySpec, VersionConstraint
from connectorlock.core.dependency.models import (
    ConnectorVersion,
    ResolutionResult,
    ResolutionStrategy,
)
from connectorlock.core.dependency.strategy import ALL, UpdateSet
from connectorlock.core.dependency.version import SemanticVersion
from connectorlock.core.lockfile.lockfile import Lockfile
from connectorlock.core.lockfile.models import _INTEGRITY_RE, LockfileValidationResult
from connectorlock.exceptions import RegistryUnavailableError
from connectorlock.registry.base import ManifestRegistry, RegistryCache

logger = logging.getLogger(__name__)

ResolveFn = Callable[..., Awaitable[ResolutionResult]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LockfileManager:
    """Generates, validates and updates lockfiles against a registry.

    Args:
        registry: The manifest registry pins are checked against.
        config: Resolver configuration (``generated_by``,
            ``allow_deprecated``).
        clock: Timestamp source for generated lockfiles.
    """

    def __init__(
        self,
        registry: ManifestRegistry,
        config: ResolverConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._registry = registry
        self._config = config or ResolverConfig()
        self._clock = clock

    # -- generate -----------------------------------------------------------

    def generate(self, result: ResolutionResult, warnings: Sequence[str] = ()) -> Lockfile:
        """Lock a successful resolution result.

        Raises:
            CannotLockFailedResolutionError: If the resolution failed.
        """
        return Lockfile.from_resolution(
            result,
            generated_by=self._config.generated_by,
            generated_at=self._clock(),
            warnings=warnings,
        )

    # -- validate -----------------------------------------------------------

    async def validate(self, lockfile: Lockfile) -> LockfileValidationResult:
        """Check every pin of *lockfile* against the current registry.

        Errors (the lockfile is invalid):
            - the connector no longer exists (``missing_connectors``)
            - the pinned version was withdrawn (``missing_versions``)
            - the pin is deprecated, violates a recorded root spec, or
              violates a dependency constraint declared by another pinned
              version (``outdated_versions``)
            - two pinned versions are declared incompatible
            - a requested root connector is not pinned
            - the integrity digest does not match the pins
            - the registry could not be reached for a connector

        Warnings (the lockfile stays valid):
            - a newer version satisfying all constraints is available
            - a pinned version depends on a connector absent from the lock

        Args:
            lockfile: The lockfile to validate.

        Returns:
            A ``LockfileValidationResult``; ``is_valid`` iff no errors.
        """
        cache = RegistryCache.wrap(self._registry)
        pins = lockfile.resolved_versions
        errors: list[str] = []
        warnings: list[str] = []
        outdated: list[str] = []
        missing_connectors: list[str] = []
        missing_versions: list[str] = []

        integrity = lockfile.metadata.integrity
        if integrity and not _INTEGRITY_RE.match(integrity):
            errors.append(f"Invalid integrity digest format: {integrity!r}")
        elif not lockfile.verify_integrity():
            errors.append("Integrity digest does not match the pinned versions")

        for spec in lockfile.metadata.requested:
            if spec.connector_id not in pins:
                errors.append(f"Requested connector {spec.connector_id!r} is not locked")

        fetched = await asyncio.gather(
            *(cache.get_versions(cid) for cid in pins), return_exceptions=True
        )

        available: dict[str, list[ConnectorVersion]] = {}
        manifests: dict[str, ConnectorVersion] = {}
        for cid, outcome in zip(pins, fetched):
            if isinstance(outcome, RegistryUnavailableError):
                errors.append(str(outcome))
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            if not outcome:
                missing_connectors.append(cid)
                errors.append(f"Connector {cid!r} no longer exists in the registry")
                continue
            available[cid] = outcome
            match = next((cv for cv in outcome if cv.version == pins[cid]), None)
            if match is None:
                missing_versions.append(cid)
                errors.append(f"Pinned version {cid}@{pins[cid]} is no longer published")
                continue
            manifests[cid] = match

        constraints = self._constraints_by_target(lockfile, manifests)

        for cid, cv in manifests.items():
            pin = pins[cid]
            if cv.deprecated and not self._config.allow_deprecated:
                outdated.append(cid)
                errors.append(f"Pinned version {cv} is deprecated")
            for constraint, requester in constraints.get(cid, ()):
                if not constraint.satisfies(pin):
                    if cid not in outdated:
                        outdated.append(cid)
                    errors.append(f"{cid}@{pin} violates {requester} requirement {constraint}")
            for rule in cv.conflicts:
                other = pins.get(rule.connector_id)
                if other is not None and rule.constraint.satisfies(other):
                    errors.append(
                        f"{cv} is incompatible with locked {rule.connector_id}@{other}"
                    )
            for dep in cv.dependencies:
                if dep.connector_id not in pins:
                    warnings.append(f"{cv} depends on {dep.connector_id}, which is not locked")

            newer = self._newest_compatible(available[cid], pin, constraints.get(cid, ()))
            if newer is not None:
                warnings.append(f"Newer compatible version available: {cid}@{newer} (locked {pin})")

        result = LockfileValidationResult(
            is_valid=not errors,
            errors=tuple(errors),
            warnings=tuple(warnings),
            outdated_versions=tuple(sorted(outdated)),
            missing_connectors=tuple(missing_connectors),
            missing_versions=tuple(missing_versions),
        )
        logger.info(
            "Validated lockfile with %d connectors: %d errors, %d warnings",
            lockfile.connector_count, len(errors), len(warnings),
        )
        return result

    @staticmethod
    def _constraints_by_target(
        lockfile: Lockfile, manifests: dict[str, ConnectorVersion]
    ) -> dict[str, list[tuple[VersionConstraint, str]]]:
        """Every recorded constraint on each connector, with its requester."""
        by_target: dict[str, list[tuple[VersionConstraint, str]]] = {}
        for spec in lockfile.metadata.requested:
            by_target.setdefault(spec.connector_id, []).append((spec.constraint, "root"))
        for cid in sorted(manifests):
            cv = manifests[cid]
            for dep in cv.dependencies:
                by_target.setdefault(dep.connector_id, []).append((dep.constraint, str(cv)))
        return by_target

    def _newest_compatible(
        self,
        versions: list[ConnectorVersion],
        pin: SemanticVersion,
        constraints: Sequence[tuple[VersionConstraint, str]],
    ) -> SemanticVersion | None:
        newer = [
            cv.version for cv in versions
            if cv.version > pin
            and (self._config.allow_deprecated or not cv.deprecated)
            and all(c.satisfies(cv.version) for c, _ in constraints)
        ]
        return max(newer) if newer else None

    # -- update -------------------------------------------------------------

    async def update(
        self,
        lockfile: Lockfile,
        strategy: ResolutionStrategy,
        resolve: ResolveFn,
    ) -> Lockfile:
        """Re-resolve *lockfile* and return the updated lockfile.

        The recorded root specs are re-resolved with the old pins as a
        baseline. When no root specs were recorded, each pinned connector is
        requested as ``^pinned``. Under every strategy except ``PINNED`` all
        connectors are eligible for update.

        If re-resolution fails, the old pins are kept and the failure is
        recorded as a warning. The input lockfile is never modified.

        Args:
            lockfile: The lockfile to update.
            strategy: Resolution strategy for the re-resolution.
            resolve: ``DependencyResolver.resolve``-compatible coroutine.
        """
        requested = lockfile.metadata.requested or tuple(
            DependencySpec(cid, f"^{version}")
            for cid, version in lockfile.resolved_versions.items()
        )
        update: UpdateSet = None if strategy is ResolutionStrategy.PINNED else ALL
        result = await resolve(requested, strategy, lockfile, update=update)

        if not result.success:
            message = result.error.message if result.error else "unknown failure"
            warning = f"Update failed, keeping previous pins: {message}"
            logger.warning("Lockfile update failed: %s", message)
            metadata = replace(
                lockfile.metadata, warnings=lockfile.metadata.warnings + (warning,)
            )
            return replace(lockfile, metadata=metadata)

        warnings = await self._excluded_newer(result)
        generated = self.generate(result, warnings)
        metadata = replace(
            generated.metadata,
            requested=lockfile.metadata.requested,
            extensions=lockfile.metadata.extensions,
        )
        updated = replace(generated, metadata=metadata)
        changes = lockfile.diff(updated)
        logger.info(
            "Updated lockfile: %d added, %d removed, %d changed",
            len(changes["added"]), len(changes["removed"]), len(changes["changed"]),
        )
        return updated

    async def _excluded_newer(self, result: ResolutionResult) -> list[str]:
        """Warnings for newer versions the constraints kept out."""
        cache = RegistryCache.wrap(self._registry)
        warnings: list[str] = []
        for cid, chosen in result.resolved_versions.items():
            versions = await cache.get_versions(cid)
            newer = [
                cv.version for cv in versions
                if cv.version > chosen and (self._config.allow_deprecated or not cv.deprecated)
            ]
            if newer:
                warnings.append(
                    f"{cid}@{max(newer)} is available but excluded by constraints "
                    f"(locked {chosen})"
                )
        return warnings


def coerce_pins(lockfile: Lockfile | Any) -> dict[str, SemanticVersion]:
    """Pins from a ``Lockfile`` or a plain ``{id: version}`` mapping.

    Raises:
        InvalidVersionError: If a mapping value is not a valid version.
        TypeError: If *lockfile* is neither a Lockfile nor a mapping.
    """
    if isinstance(lockfile, Lockfile):
        return lockfile.resolved_versions
    if not hasattr(lockfile, "items"):
        raise TypeError(f"Expected a Lockfile or mapping, got {type(lockfile).__name__}")
    return {str(cid): SemanticVersion.coerce(v) for cid, v in lockfile.items()}
