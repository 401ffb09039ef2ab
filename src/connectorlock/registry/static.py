"""In-memory registry snapshots.

An ``InMemoryManifestRegistry`` serves a fixed set of ``ConnectorVersion``
objects. Snapshots can be built in code, from plain dicts, or loaded from a
YAML (or JSON) document::

    connectors:
      notifyx.slack:
        - version: 1.0.0
          dependencies: ["notifyx.core@^1.0.0"]
        - version: 1.1.0-beta.1
          deprecated: true
      notifyx.core:
        - version: 1.2.3
"""

from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

from connectorlock.core.dependency.models import ConnectorVersion
from connectorlock.registry.base import ManifestRegistry


class InMemoryManifestRegistry(ManifestRegistry):
    """A registry backed by an immutable in-memory snapshot."""

    def __init__(
        self, versions: Iterable[ConnectorVersion] = (), *, name: str = "in-memory"
    ) -> None:
        grouped: dict[str, list[ConnectorVersion]] = defaultdict(list)
        for cv in versions:
            grouped[cv.connector_id].append(cv)
        self._versions = {cid: tuple(vs) for cid, vs in grouped.items()}
        self._name = name

    @property
    def registry_name(self) -> str:
        return self._name

    @property
    def connector_ids(self) -> list[str]:
        """Sorted ids of every connector in the snapshot."""
        return sorted(self._versions)

    async def get_versions(self, connector_id: str) -> list[ConnectorVersion]:
        return list(self._versions.get(connector_id, ()))

    def all_versions(self) -> list[ConnectorVersion]:
        """Every version in the snapshot, grouped by connector id."""
        return [cv for cid in self.connector_ids for cv in self._versions[cid]]

    def with_versions(self, *versions: ConnectorVersion) -> InMemoryManifestRegistry:
        """Return a new snapshot with *versions* added (or replaced)."""
        replaced = {(cv.connector_id, cv.version) for cv in versions}
        kept = [
            cv for cv in self.all_versions()
            if (cv.connector_id, cv.version) not in replaced
        ]
        return InMemoryManifestRegistry([*kept, *versions], name=self._name)

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], *, name: str = "in-memory"
    ) -> InMemoryManifestRegistry:
        """Build a snapshot from ``{"connectors": {id: [manifest, ...]}}``.

        The ``connectors`` wrapper is optional, and a flat list of manifests
        carrying their own ``id`` is accepted as the value of ``connectors``.

        Raises:
            InvalidVersionError: If a manifest version is malformed.
            InvalidConstraintError: If a dependency range is malformed.
        """
        connectors = data.get("connectors", data)
        versions: list[ConnectorVersion] = []
        if isinstance(connectors, list):
            versions.extend(ConnectorVersion.from_manifest(m) for m in connectors)
        else:
            for cid, manifests in connectors.items():
                for manifest in manifests or ():
                    versions.append(ConnectorVersion.from_manifest(manifest, connector_id=cid))
        return cls(versions, name=name)


def load_registry(path: Path) -> InMemoryManifestRegistry:
    """Load a registry snapshot from a YAML or JSON file.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the document is not a mapping.
    """
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Registry snapshot {path} must be a mapping")
    return InMemoryManifestRegistry.from_dict(data, name=path.name)
