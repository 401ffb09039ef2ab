"""Manifest registry boundary and the per-call version cache.

Defines the ``ManifestRegistry`` abstract base class that every registry
adapter (in-memory snapshot, HTTP) implements, and ``RegistryCache``, the
memoizing wrapper the resolver puts in front of a registry for each
resolution call.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from connectorlock.core.dependency.models import ConnectorVersion

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Abstract registry
# ---------------------------------------------------------------------------


class ManifestRegistry(ABC):
    """Abstract source of connector version manifests.

    Implementations must be safe to call concurrently. An unknown connector
    is reported as an empty list; transient failures raise
    ``RegistryUnavailableError`` once the adapter has given up retrying.
    """

    @property
    @abstractmethod
    def registry_name(self) -> str:
        """Human-readable name of this registry."""

    @abstractmethod
    async def get_versions(self, connector_id: str) -> list[ConnectorVersion]:
        """Return every published version of *connector_id*.

        Args:
            connector_id: The connector to look up.

        Returns:
            The connector's versions in any order. Empty if unknown.

        Raises:
            RegistryUnavailableError: If the registry cannot be reached.
        """


# ---------------------------------------------------------------------------
# Memoizing cache
# ---------------------------------------------------------------------------


def _normalise(
    connector_id: str, versions: Iterable[ConnectorVersion]
) -> tuple[ConnectorVersion, ...]:
    """Keep versions of *connector_id* only, drop duplicates, sort ascending."""
    seen: dict[object, ConnectorVersion] = {}
    for cv in versions:
        if cv.connector_id != connector_id:
            logger.warning(
                "Registry returned %s for lookup of %s; ignoring", cv, connector_id
            )
            continue
        if cv.version in seen:
            logger.warning("Registry returned duplicate version %s; keeping first", cv)
            continue
        seen[cv.version] = cv
    return tuple(sorted(seen.values(), key=lambda cv: cv.version))


class RegistryCache(ManifestRegistry):
    """Memoizes ``get_versions`` so each connector is fetched at most once.

    Population is lazy and idempotent: two concurrent lookups of the same
    connector may both reach the underlying registry, and the first stored
    answer wins. For a fixed registry snapshot both answers are identical, so
    no locking is needed.

    The resolver wraps its registry in a fresh cache per call. Wrap the
    registry yourself to share one cache across calls.
    """

    def __init__(self, registry: ManifestRegistry) -> None:
        self._registry = registry
        self._versions: dict[str, tuple[ConnectorVersion, ...]] = {}
        self.fetch_count = 0

    @classmethod
    def wrap(cls, registry: ManifestRegistry) -> RegistryCache:
        """Return *registry* itself if it is already a cache, else a new cache."""
        return registry if isinstance(registry, RegistryCache) else cls(registry)

    @property
    def registry_name(self) -> str:
        return self._registry.registry_name

    async def get_versions(self, connector_id: str) -> list[ConnectorVersion]:
        """Return the versions of *connector_id*, sorted ascending."""
        cached = self._versions.get(connector_id)
        if cached is None:
            fetched = await self._registry.get_versions(connector_id)
            self.fetch_count += 1
            logger.debug(
                "Fetched %d versions of %s from %s",
                len(fetched),
                connector_id,
                self._registry.registry_name,
            )
            cached = self._versions.setdefault(
                connector_id, _normalise(connector_id, fetched)
            )
        return list(cached)

    def cached(self, connector_id: str) -> tuple[ConnectorVersion, ...] | None:
        """Return the cached versions of *connector_id* without fetching."""
        return self._versions.get(connector_id)

    def snapshot(self) -> dict[str, tuple[ConnectorVersion, ...]]:
        """Copy of everything fetched so far."""
        return dict(self._versions)
