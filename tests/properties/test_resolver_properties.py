"""Property-based tests for resolution invariants.

Verifies over randomly generated registries that:
- Soundness: a successful assignment satisfies every root spec, every
  dependency of every chosen version, and no conflict rule.
- Closure: exactly the connectors reachable from the roots are assigned.
- Failure hygiene: a failed result never carries a partial assignment.
- Determinism: same inputs -> byte-identical result JSON.
- Ordering: the single-root HIGHEST/LOWEST choices are the extreme
  satisfying versions.
"""
from __future__ import annotations

import asyncio

from hypothesis import given, settings
from hypothesis import strategies as st

from connectorlock.core.dependency import (
    ConflictRule,
    ConnectorVersion,
    DependencySpec,
    ResolutionResult,
    ResolutionStrategy,
    VersionConstraint,
)
from connectorlock.core.dependency.resolver import DependencyResolver
from connectorlock.registry import InMemoryManifestRegistry


# ---------------------------------------------------------------------------
# Strategies for generating random registries
# ---------------------------------------------------------------------------

version_strings = st.sampled_from([
    "1.0.0", "1.1.0", "1.2.0", "1.2.5", "2.0.0-rc.1", "2.0.0", "2.1.0", "3.0.0",
])

constraint_strings = st.sampled_from([
    "*", "^1.0.0", "^2.0.0", "~1.2.0", ">=1.1.0", "<2.0.0", ">=1.0.0 <3.0.0", "1.x || 3.x",
])

connector_names = ["alpha", "beta", "gamma", "delta", "epsilon"]

strategies = st.sampled_from(list(ResolutionStrategy))


@st.composite
def registries(draw: st.DrawFn) -> list[ConnectorVersion]:
    """2-5 connectors, 1-4 versions each, random dependencies and conflicts."""
    count = draw(st.integers(min_value=2, max_value=5))
    names = connector_names[:count]
    versions: list[ConnectorVersion] = []
    for name in names:
        published = draw(st.lists(version_strings, min_size=1, max_size=4, unique=True))
        others = [n for n in names if n != name]
        for text in published:
            dep_ids = draw(st.lists(st.sampled_from(others), max_size=2, unique=True))
            deps = tuple(DependencySpec(d, draw(constraint_strings)) for d in dep_ids)
            conflict_ids = draw(st.lists(st.sampled_from(others), max_size=1))
            conflicts = tuple(ConflictRule(c, draw(constraint_strings)) for c in conflict_ids)
            versions.append(ConnectorVersion(
                name,
                text,
                deprecated=draw(st.booleans()) and draw(st.booleans()),
                dependencies=deps,
                conflicts=conflicts,
            ))
    return versions


@st.composite
def requests(draw: st.DrawFn) -> list[DependencySpec]:
    ids = draw(st.lists(st.sampled_from(connector_names[:2]), min_size=1, max_size=2, unique=True))
    return [DependencySpec(cid, draw(constraint_strings)) for cid in ids]


def _resolve(
    versions: list[ConnectorVersion],
    requested: list[DependencySpec],
    strategy: ResolutionStrategy,
) -> ResolutionResult:
    resolver = DependencyResolver(InMemoryManifestRegistry(versions))
    return asyncio.run(resolver.resolve(requested, strategy))


def _manifest(versions: list[ConnectorVersion], cid: str, version: object) -> ConnectorVersion:
    return next(cv for cv in versions if cv.connector_id == cid and cv.version == version)


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


@given(versions=registries(), requested=requests(), strategy=strategies)
@settings(max_examples=150, deadline=None)
def test_successful_assignment_is_sound(
    versions: list[ConnectorVersion],
    requested: list[DependencySpec],
    strategy: ResolutionStrategy,
) -> None:
    """Every constraint and conflict rule holds in a successful result."""
    result = _resolve(versions, requested, strategy)
    if not result.success:
        return
    resolved = result.resolved_versions
    for spec in requested:
        assert spec.constraint.satisfies(resolved[spec.connector_id])
    for cid, version in resolved.items():
        cv = _manifest(versions, cid, version)
        assert not cv.deprecated
        for dep in cv.dependencies:
            assert dep.connector_id in resolved
            assert dep.constraint.satisfies(resolved[dep.connector_id])
        for rule in cv.conflicts:
            other = resolved.get(rule.connector_id)
            assert other is None or not rule.constraint.satisfies(other)


@given(versions=registries(), requested=requests(), strategy=strategies)
@settings(max_examples=100, deadline=None)
def test_assignment_is_closed_over_dependencies(
    versions: list[ConnectorVersion],
    requested: list[DependencySpec],
    strategy: ResolutionStrategy,
) -> None:
    """Exactly the connectors reachable from the roots are assigned."""
    result = _resolve(versions, requested, strategy)
    if not result.success:
        return
    resolved = result.resolved_versions
    reachable: set[str] = set()
    frontier = [spec.connector_id for spec in requested]
    while frontier:
        cid = frontier.pop()
        if cid in reachable:
            continue
        reachable.add(cid)
        cv = _manifest(versions, cid, resolved[cid])
        frontier.extend(dep.connector_id for dep in cv.dependencies)
    assert set(resolved) == reachable


@given(versions=registries(), requested=requests(), strategy=strategies)
@settings(max_examples=100, deadline=None)
def test_failure_has_no_partial_assignment(
    versions: list[ConnectorVersion],
    requested: list[DependencySpec],
    strategy: ResolutionStrategy,
) -> None:
    result = _resolve(versions, requested, strategy)
    if result.success:
        assert result.error is None
        return
    assert result.resolved_versions == {}
    assert result.error is not None
    assert set(spec.connector_id for spec in requested) <= set(result.unresolved)


@given(versions=registries(), requested=requests(), strategy=strategies)
@settings(max_examples=50, deadline=None)
def test_resolution_is_deterministic(
    versions: list[ConnectorVersion],
    requested: list[DependencySpec],
    strategy: ResolutionStrategy,
) -> None:
    first = _resolve(versions, requested, strategy)
    second = _resolve(list(reversed(versions)), requested, strategy)
    assert first.to_json() == second.to_json()


@given(
    published=st.lists(version_strings, min_size=1, max_size=8, unique=True),
    constraint=constraint_strings,
)
@settings(max_examples=100, deadline=None)
def test_single_root_extremes(published: list[str], constraint: str) -> None:
    """HIGHEST picks the max satisfying version and LOWEST the min."""
    versions = [ConnectorVersion("alpha", v) for v in published]
    requested = [DependencySpec("alpha", constraint)]
    satisfying = [cv.version for cv in versions if VersionConstraint(constraint).satisfies(cv.version)]

    highest = _resolve(versions, requested, ResolutionStrategy.HIGHEST_COMPATIBLE)
    lowest = _resolve(versions, requested, ResolutionStrategy.LOWEST_COMPATIBLE)
    if not satisfying:
        assert not highest.success and not lowest.success
        return
    assert highest.resolved_versions["alpha"] == max(satisfying)
    assert lowest.resolved_versions["alpha"] == min(satisfying)
