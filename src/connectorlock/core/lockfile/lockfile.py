"""Lockfile core class: pinned connectors, integrity and serialization.

The ``Lockfile`` is an immutable value describing the exact resolved state of
a connector installation. It provides:

- **Lookup:** resolved versions, connector ids, individual entries.
- **Integrity:** a SHA-256 digest over the resolved ``id -> version`` map.
- **Serialization:** deterministic ``to_dict``, ``to_json``, and ``write``.

Determinism guarantee: ``to_json()`` sorts every dictionary key, so two
lockfiles with the same content produce byte-identical JSON.

Deserialization and diffing live in ``operations.py`` and construction from
a resolution result in ``factory.py``; both are attached to the class in
``__init__.py``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from connectorlock import _PRODUCT_ID
from connectorlock.core.dependency.version import SemanticVersion
from connectorlock.core.lockfile.models import LockedConnector, LockfileMetadata

LOCKFILE_VERSION = "1.0"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Lockfile:
    """Connector lockfile: one pinned version per connector.

    Example::

        lf = Lockfile(connectors={
            "notifyx.slack": LockedConnector("notifyx.slack", "1.4.0"),
        })
        lf.write(Path("connectors.lock.json"))
    """

    connectors: Mapping[str, LockedConnector] = field(default_factory=dict)
    metadata: LockfileMetadata = field(default_factory=LockfileMetadata)
    generated_at: datetime = field(default_factory=_utcnow)
    generated_by: str = _PRODUCT_ID
    format_version: str = LOCKFILE_VERSION

    INTEGRITY_ALGORITHM = "sha256"

    def __post_init__(self) -> None:
        entries = dict(self.connectors)
        object.__setattr__(
            self, "connectors", MappingProxyType({k: entries[k] for k in sorted(entries)})
        )

    # -- Lookup -------------------------------------------------------------

    @property
    def resolved_versions(self) -> dict[str, SemanticVersion]:
        """``connector_id -> pinned version``, sorted by id."""
        return {cid: entry.version for cid, entry in self.connectors.items()}

    @property
    def connector_ids(self) -> list[str]:
        return list(self.connectors)

    def get(self, connector_id: str) -> LockedConnector | None:
        return self.connectors.get(connector_id)

    @property
    def connector_count(self) -> int:
        return len(self.connectors)

    # -- Integrity ----------------------------------------------------------

    @staticmethod
    def compute_integrity(resolved: Mapping[str, SemanticVersion | str]) -> str:
        """Digest of a resolved ``id -> version`` map.

        The map is serialized as canonical JSON (sorted keys, no spaces)
        before hashing, so the digest is independent of insertion order.

        Returns:
            Integrity string in "sha256:<64-hex-chars>" format.
        """
        canonical = json.dumps(
            {k: str(v) for k, v in resolved.items()}, sort_keys=True, separators=(",", ":")
        )
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        return f"sha256:{digest}"

    def verify_integrity(self) -> bool:
        """True if the recorded digest matches the pins, or none is recorded."""
        if not self.metadata.integrity:
            return True
        return self.metadata.integrity == self.compute_integrity(self.resolved_versions)

    # -- Serialization ------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize the lockfile to a JSON-ready dict."""
        connectors_dict: dict[str, Any] = {}
        for cid, entry in self.connectors.items():
            connectors_dict[cid] = {
                "version": str(entry.version),
                "dependencies": {k: str(v) for k, v in entry.dependencies.items()},
            }

        meta = self.metadata
        metadata_dict: dict[str, Any] = {
            "strategy": meta.strategy.value if meta.strategy else None,
            "requested": [str(spec) for spec in meta.requested],
            "warnings": list(meta.warnings),
            "integrity": meta.integrity,
            "extensions": dict(meta.extensions),
        }

        return {
            "lockfile_version": self.format_version,
            "generated_at": self.generated_at.isoformat(),
            "generated_by": self.generated_by,
            "connectors": connectors_dict,
            "metadata": metadata_dict,
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize to a deterministic JSON string."""
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    def write(self, path: Path) -> None:
        """Write lockfile to disk as JSON.

        Creates parent directories if they do not exist.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding="utf-8")
