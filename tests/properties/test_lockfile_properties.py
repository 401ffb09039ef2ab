"""Property-based tests for lockfile invariants.

- Round trip: from_json(to_json(lf)) == lf, with byte-identical JSON.
- Integrity: the digest is independent of insertion order.
- Validity: a lockfile generated from a successful resolution validates
  against the registry it was resolved from.
- Immutability: updating never changes the input lockfile.
"""
from __future__ import annotations

import asyncio

from hypothesis import given, settings
from hypothesis import strategies as st

from connectorlock.core.dependency import (
    ConnectorVersion,
    DependencySpec,
    ResolutionStrategy,
)
from connectorlock.core.dependency.resolver import DependencyResolver
from connectorlock.core.lockfile import LockedConnector, Lockfile, LockfileMetadata
from connectorlock.registry import InMemoryManifestRegistry

version_strings = st.sampled_from(["0.1.0", "1.0.0", "1.2.3", "2.0.0-beta.1", "2.0.0", "10.4.1"])
connector_ids = st.sampled_from(["notifyx.slack", "notifyx.email", "crm.sync", "@acme/erp"])
constraint_strings = st.sampled_from(["*", "^1.0.0", "~1.2.0", ">=1.0.0 <2.0.0", "2.x"])

pin_maps = st.dictionaries(connector_ids, version_strings, max_size=4)


@st.composite
def lockfiles(draw: st.DrawFn) -> Lockfile:
    pins = draw(pin_maps)
    connectors = {}
    for cid, version in pins.items():
        deps = draw(st.lists(st.sampled_from(sorted(pins)), max_size=2, unique=True)) if pins else []
        connectors[cid] = LockedConnector(cid, version, {d: pins[d] for d in deps if d != cid})
    requested = tuple(DependencySpec(cid, draw(constraint_strings)) for cid in sorted(pins)[:2])
    return Lockfile(
        connectors=connectors,
        metadata=LockfileMetadata(
            strategy=draw(st.sampled_from(list(ResolutionStrategy))),
            requested=requested,
            warnings=tuple(draw(st.lists(st.text(max_size=20), max_size=2))),
            integrity=Lockfile.compute_integrity(pins),
            extensions=draw(st.dictionaries(st.text(max_size=5), st.integers(), max_size=2)),
        ),
    )


@st.composite
def chain_registries(draw: st.DrawFn) -> list[ConnectorVersion]:
    """A linear chain notifyx.slack -> notifyx.email -> crm.sync with random ranges."""
    names = ["notifyx.slack", "notifyx.email", "crm.sync"]
    versions: list[ConnectorVersion] = []
    for idx, name in enumerate(names):
        published = draw(st.lists(version_strings, min_size=1, max_size=4, unique=True))
        for text in published:
            deps: tuple[DependencySpec, ...] = ()
            if idx + 1 < len(names):
                deps = (DependencySpec(names[idx + 1], draw(constraint_strings)),)
            versions.append(ConnectorVersion(name, text, dependencies=deps))
    return versions


@given(lf=lockfiles())
@settings(max_examples=100, deadline=None)
def test_json_round_trip(lf: Lockfile) -> None:
    restored = Lockfile.from_json(lf.to_json())
    assert restored == lf
    assert restored.to_json() == lf.to_json()
    assert restored.verify_integrity()


@given(pins=pin_maps)
@settings(max_examples=100, deadline=None)
def test_integrity_order_independent(pins: dict[str, str]) -> None:
    reordered = dict(reversed(list(pins.items())))
    assert Lockfile.compute_integrity(pins) == Lockfile.compute_integrity(reordered)


@given(versions=chain_registries(), constraint=constraint_strings)
@settings(max_examples=75, deadline=None)
def test_generated_lockfile_validates(versions: list[ConnectorVersion], constraint: str) -> None:
    resolver = DependencyResolver(InMemoryManifestRegistry(versions))
    result = asyncio.run(resolver.resolve([DependencySpec("notifyx.slack", constraint)]))
    if not result.success:
        return
    lockfile = resolver.generate_lockfile(result)
    validation = asyncio.run(resolver.validate_lockfile(lockfile))
    assert validation.is_valid, validation.errors
    assert lockfile.resolved_versions == dict(result.resolved_versions)


@given(versions=chain_registries(), constraint=constraint_strings)
@settings(max_examples=50, deadline=None)
def test_update_never_mutates_input(versions: list[ConnectorVersion], constraint: str) -> None:
    resolver = DependencyResolver(InMemoryManifestRegistry(versions))
    result = asyncio.run(resolver.resolve([DependencySpec("notifyx.slack", constraint)]))
    if not result.success:
        return
    lockfile = resolver.generate_lockfile(result)
    before = lockfile.to_json()
    updated = asyncio.run(resolver.update_lockfile(lockfile))
    assert lockfile.to_json() == before
    assert updated.resolved_versions == lockfile.resolved_versions
