"""Shared fixtures for connectorlock tests."""

from __future__ import annotations

from typing import Any, Iterable

import pytest

from connectorlock.core.dependency import ConflictRule, ConnectorVersion, DependencySpec
from connectorlock.core.dependency.resolver import DependencyResolver
from connectorlock.registry import InMemoryManifestRegistry


def make_connector(
    connector_id: str,
    version: str,
    deps: Iterable[str] = (),
    conflicts: Iterable[str] = (),
    **kwargs: Any,
) -> ConnectorVersion:
    """Convenience factory for ConnectorVersion instances from "id@range" strings."""
    return ConnectorVersion(
        connector_id=connector_id,
        version=version,
        dependencies=tuple(DependencySpec.parse(d) for d in deps),
        conflicts=tuple(ConflictRule.parse(c) for c in conflicts),
        **kwargs,
    )


@pytest.fixture
def chain_registry() -> InMemoryManifestRegistry:
    """A@1.0.0 -> B@^1.0.0 -> C@~1.2.0, with decoy versions on B and C."""
    return InMemoryManifestRegistry([
        make_connector("A", "1.0.0", deps=["B@^1.0.0"]),
        make_connector("B", "1.0.0"),
        make_connector("B", "1.1.0", deps=["C@~1.2.0"]),
        make_connector("B", "2.0.0"),
        make_connector("C", "1.2.0"),
        make_connector("C", "1.2.5"),
        make_connector("C", "1.3.0"),
    ])


@pytest.fixture
def chain_resolver(chain_registry: InMemoryManifestRegistry) -> DependencyResolver:
    """Resolver over the chain registry with default config."""
    return DependencyResolver(chain_registry)


@pytest.fixture
def conflict_registry() -> InMemoryManifestRegistry:
    """B@1.0.0 needs A@^2.0.0 while A@1.0.0 is the only 1.x release."""
    return InMemoryManifestRegistry([
        make_connector("A", "1.0.0"),
        make_connector("A", "2.0.0"),
        make_connector("B", "1.0.0", deps=["A@^2.0.0"]),
    ])
