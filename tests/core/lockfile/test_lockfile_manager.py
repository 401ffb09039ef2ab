"""Tests for LockfileManager: generate, validate against the registry, and
incremental update.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from connectorlock.config import ResolverConfig
from connectorlock.core.dependency import (
    ConflictRule,
    ConnectorVersion,
    DependencySpec,
    ResolutionResult,
    ResolutionStrategy,
    SemanticVersion,
)
from connectorlock.core.dependency.resolver import DependencyResolver
from connectorlock.core.lockfile import (
    LockedConnector,
    Lockfile,
    LockfileManager,
    LockfileMetadata,
)
from connectorlock.exceptions import (
    CannotLockFailedResolutionError,
    ErrorKind,
    RegistryUnavailableError,
)
from connectorlock.registry import InMemoryManifestRegistry

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _cv(cid: str, version: str, deps: tuple[str, ...] = (), **kw: object) -> ConnectorVersion:
    return ConnectorVersion(
        cid, version, dependencies=tuple(DependencySpec.parse(d) for d in deps), **kw  # type: ignore[arg-type]
    )


CHAIN = [
    _cv("A", "1.0.0", deps=("B@^1.0.0",)),
    _cv("B", "1.0.0"),
    _cv("B", "1.1.0", deps=("C@~1.2.0",)),
    _cv("B", "2.0.0"),
    _cv("C", "1.2.0"),
    _cv("C", "1.2.5"),
    _cv("C", "1.3.0"),
]


def _resolver(registry: InMemoryManifestRegistry, **config: object) -> DependencyResolver:
    cfg = ResolverConfig(**config)  # type: ignore[arg-type]
    return DependencyResolver(registry, cfg, LockfileManager(registry, cfg, clock=lambda: FIXED_NOW))


def _locked(resolver: DependencyResolver, requested: list[str]) -> Lockfile:
    result = asyncio.run(resolver.resolve(requested))
    assert result.success
    return resolver.generate_lockfile(result)


@pytest.fixture
def registry() -> InMemoryManifestRegistry:
    return InMemoryManifestRegistry(CHAIN)


@pytest.fixture
def lockfile(registry: InMemoryManifestRegistry) -> Lockfile:
    """A@1.0.0, B@1.1.0, C@1.2.5 locked from the chain registry."""
    return _locked(_resolver(registry), ["A"])


# ===========================================================================
# Generate
# ===========================================================================


class TestGenerate:
    """Successful results become lockfiles; failed ones are refused."""

    def test_pins_and_dependencies(self, lockfile: Lockfile) -> None:
        assert {k: str(v) for k, v in lockfile.resolved_versions.items()} == {
            "A": "1.0.0", "B": "1.1.0", "C": "1.2.5",
        }
        entry = lockfile.get("A")
        assert entry is not None
        assert dict(entry.dependencies) == {"B": SemanticVersion.parse("1.1.0")}

    def test_metadata(self, lockfile: Lockfile) -> None:
        assert lockfile.metadata.strategy is ResolutionStrategy.HIGHEST_COMPATIBLE
        assert [str(s) for s in lockfile.metadata.requested] == ["A@*"]
        assert lockfile.verify_integrity()
        assert lockfile.generated_at == FIXED_NOW
        assert lockfile.generated_by == "connectorlock"

    def test_generated_by_from_config(self, registry: InMemoryManifestRegistry) -> None:
        lf = _locked(_resolver(registry, generated_by="tenant-7"), ["A"])
        assert lf.generated_by == "tenant-7"

    def test_failed_resolution_refused(self, registry: InMemoryManifestRegistry) -> None:
        resolver = _resolver(registry)
        result = asyncio.run(resolver.resolve(["ghost"]))
        with pytest.raises(CannotLockFailedResolutionError) as excinfo:
            resolver.generate_lockfile(result)
        assert excinfo.value.kind is ErrorKind.CANNOT_LOCK_FAILED_RESOLUTION

    def test_none_refused(self, registry: InMemoryManifestRegistry) -> None:
        with pytest.raises(TypeError):
            _resolver(registry).generate_lockfile(None)  # type: ignore[arg-type]

    def test_empty_resolution(self, registry: InMemoryManifestRegistry) -> None:
        lf = _resolver(registry).generate_lockfile(ResolutionResult(success=True))
        assert lf.connector_count == 0
        assert lf.verify_integrity()


# ===========================================================================
# Validate
# ===========================================================================


class TestValidate:
    """Pins are checked against the registry's current contents."""

    def test_fresh_lockfile_valid(self, registry: InMemoryManifestRegistry, lockfile: Lockfile) -> None:
        result = asyncio.run(_resolver(registry).validate_lockfile(lockfile))
        assert result.is_valid
        assert result.errors == ()
        assert result.warnings == ()

    def test_missing_connector(self, lockfile: Lockfile) -> None:
        shrunk = InMemoryManifestRegistry([cv for cv in CHAIN if cv.connector_id != "C"])
        result = asyncio.run(_resolver(shrunk).validate_lockfile(lockfile))
        assert not result.is_valid
        assert result.missing_connectors == ("C",)

    def test_withdrawn_version(self, lockfile: Lockfile) -> None:
        shrunk = InMemoryManifestRegistry(
            [cv for cv in CHAIN if str(cv) != "C@1.2.5"]
        )
        result = asyncio.run(_resolver(shrunk).validate_lockfile(lockfile))
        assert not result.is_valid
        assert result.missing_versions == ("C",)

    def test_deprecated_pin_outdated(self, registry: InMemoryManifestRegistry, lockfile: Lockfile) -> None:
        changed = registry.with_versions(_cv("C", "1.2.5", deprecated=True))
        result = asyncio.run(_resolver(changed).validate_lockfile(lockfile))
        assert not result.is_valid
        assert result.outdated_versions == ("C",)

    def test_deprecated_pin_allowed(self, registry: InMemoryManifestRegistry, lockfile: Lockfile) -> None:
        changed = registry.with_versions(_cv("C", "1.2.5", deprecated=True))
        result = asyncio.run(_resolver(changed, allow_deprecated=True).validate_lockfile(lockfile))
        assert result.is_valid

    def test_newer_compatible_is_warning(self, registry: InMemoryManifestRegistry, lockfile: Lockfile) -> None:
        changed = registry.with_versions(_cv("C", "1.2.9"))
        result = asyncio.run(_resolver(changed).validate_lockfile(lockfile))
        assert result.is_valid
        assert result.warnings == ("Newer compatible version available: C@1.2.9 (locked 1.2.5)",)

    def test_root_constraint_violated(self, registry: InMemoryManifestRegistry) -> None:
        lf = Lockfile(
            connectors={"C": LockedConnector("C", "1.2.0")},
            metadata=LockfileMetadata(requested=(DependencySpec.parse("C@^2.0.0"),)),
        )
        result = asyncio.run(_resolver(registry).validate_lockfile(lf))
        assert not result.is_valid
        assert result.outdated_versions == ("C",)
        assert "C@1.2.0 violates root requirement ^2.0.0" in result.errors

    def test_dependent_constraint_violated(self, registry: InMemoryManifestRegistry) -> None:
        lf = Lockfile(connectors={
            "B": LockedConnector("B", "1.1.0"),
            "C": LockedConnector("C", "1.3.0"),
        })
        result = asyncio.run(_resolver(registry).validate_lockfile(lf))
        assert result.outdated_versions == ("C",)
        assert "C@1.3.0 violates B@1.1.0 requirement ~1.2.0" in result.errors

    def test_requested_root_not_locked(self, registry: InMemoryManifestRegistry) -> None:
        lf = Lockfile(metadata=LockfileMetadata(requested=(DependencySpec.parse("A"),)))
        result = asyncio.run(_resolver(registry).validate_lockfile(lf))
        assert "Requested connector 'A' is not locked" in result.errors

    def test_integrity_mismatch(self, registry: InMemoryManifestRegistry) -> None:
        lf = Lockfile(
            connectors={"C": LockedConnector("C", "1.2.0")},
            metadata=LockfileMetadata(integrity=Lockfile.compute_integrity({"C": "1.2.5"})),
        )
        result = asyncio.run(_resolver(registry).validate_lockfile(lf))
        assert "Integrity digest does not match the pinned versions" in result.errors

    def test_malformed_integrity(self, registry: InMemoryManifestRegistry) -> None:
        lf = Lockfile(metadata=LockfileMetadata(integrity="md5:abc"))
        result = asyncio.run(_resolver(registry).validate_lockfile(lf))
        assert not result.is_valid

    def test_incompatible_pins(self) -> None:
        registry = InMemoryManifestRegistry([
            ConnectorVersion("A", "1.0.0", conflicts=(ConflictRule.parse("B@*"),)),
            ConnectorVersion("B", "1.0.0"),
        ])
        lf = Lockfile(connectors={
            "A": LockedConnector("A", "1.0.0"),
            "B": LockedConnector("B", "1.0.0"),
        })
        result = asyncio.run(_resolver(registry).validate_lockfile(lf))
        assert not result.is_valid
        assert any("incompatible" in e for e in result.errors)

    def test_unlocked_dependency_is_warning(self, registry: InMemoryManifestRegistry) -> None:
        lf = Lockfile(connectors={"A": LockedConnector("A", "1.0.0")})
        result = asyncio.run(_resolver(registry).validate_lockfile(lf))
        assert result.is_valid
        assert "A@1.0.0 depends on B, which is not locked" in result.warnings

    def test_registry_unavailable(self, registry: InMemoryManifestRegistry, lockfile: Lockfile) -> None:
        with patch.object(
            InMemoryManifestRegistry,
            "get_versions",
            new_callable=AsyncMock,
            side_effect=RegistryUnavailableError("A", "timeout"),
        ):
            result = asyncio.run(_resolver(registry).validate_lockfile(lockfile))
        assert not result.is_valid
        assert any("Registry unavailable" in e for e in result.errors)

    def test_wrong_type(self, registry: InMemoryManifestRegistry) -> None:
        with pytest.raises(TypeError):
            asyncio.run(_resolver(registry).validate_lockfile({"A": "1.0.0"}))  # type: ignore[arg-type]


# ===========================================================================
# Update
# ===========================================================================


class TestUpdate:
    """Updates produce a new lockfile and never touch the input."""

    @pytest.fixture
    def base(self) -> InMemoryManifestRegistry:
        return InMemoryManifestRegistry([_cv("A", "1.0.0"), _cv("A", "1.2.0")])

    def test_newer_compatible_adopted(self, base: InMemoryManifestRegistry) -> None:
        old = _locked(_resolver(base), ["A@^1.0.0"])
        assert str(old.resolved_versions["A"]) == "1.2.0"

        newer = base.with_versions(_cv("A", "1.6.0"))
        updated = asyncio.run(_resolver(newer).update_lockfile(old))

        assert str(updated.resolved_versions["A"]) == "1.6.0"
        assert str(old.resolved_versions["A"]) == "1.2.0"
        assert updated.metadata.requested == old.metadata.requested
        assert updated.verify_integrity()
        assert updated.metadata.warnings == ()

    def test_newer_outside_constraints_warns(self, base: InMemoryManifestRegistry) -> None:
        old = _locked(_resolver(base), ["A@~1.2.0"])
        newer = base.with_versions(_cv("A", "1.6.0"))
        updated = asyncio.run(_resolver(newer).update_lockfile(old))

        assert str(updated.resolved_versions["A"]) == "1.2.0"
        assert updated.metadata.warnings == (
            "A@1.6.0 is available but excluded by constraints (locked 1.2.0)",
        )

    def test_pinned_strategy_keeps_pins(self, base: InMemoryManifestRegistry) -> None:
        old = _locked(_resolver(base), ["A@^1.0.0"])
        newer = base.with_versions(_cv("A", "1.6.0"))
        updated = asyncio.run(_resolver(newer).update_lockfile(old, ResolutionStrategy.PINNED))
        assert str(updated.resolved_versions["A"]) == "1.2.0"
        assert updated.metadata.strategy is ResolutionStrategy.PINNED

    def test_failure_keeps_previous_pins(self, base: InMemoryManifestRegistry) -> None:
        old = _locked(_resolver(base), ["A@^1.0.0"])
        empty = InMemoryManifestRegistry()
        updated = asyncio.run(_resolver(empty).update_lockfile(old))

        assert updated.resolved_versions == old.resolved_versions
        assert len(updated.metadata.warnings) == 1
        assert updated.metadata.warnings[0].startswith("Update failed, keeping previous pins:")
        assert old.metadata.warnings == ()

    def test_without_recorded_roots(self, base: InMemoryManifestRegistry) -> None:
        """Each pinned connector is re-requested as ^pinned."""
        old = Lockfile(connectors={"A": LockedConnector("A", "1.0.0")})
        updated = asyncio.run(_resolver(base).update_lockfile(old))
        assert str(updated.resolved_versions["A"]) == "1.2.0"

    def test_extensions_carried_over(self, base: InMemoryManifestRegistry) -> None:
        old = Lockfile(
            connectors={"A": LockedConnector("A", "1.0.0")},
            metadata=LockfileMetadata(
                requested=(DependencySpec.parse("A@^1.0.0"),), extensions={"workflow": "w1"}
            ),
        )
        updated = asyncio.run(_resolver(base).update_lockfile(old))
        assert dict(updated.metadata.extensions) == {"workflow": "w1"}

    def test_wrong_type(self, base: InMemoryManifestRegistry) -> None:
        with pytest.raises(TypeError):
            asyncio.run(_resolver(base).update_lockfile(None))  # type: ignore[arg-type]
