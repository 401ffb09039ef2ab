"""Lockfile operations: deserialization and diffing.

This module extends the ``Lockfile`` class (defined in ``lockfile.py``) with
classmethods and instance methods for:

- **Deserialization:** ``from_dict``, ``from_json``, ``read`` (disk).
- **Diffing:** structured comparison of two lockfiles.

These are attached to the ``Lockfile`` class at import time (in
``__init__.py``) to keep each source file focused while presenting a single
unified API to callers.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from connectorlock.core.dependency.constraints import DependencySpec
from connectorlock.core.dependency.models import ResolutionStrategy, _parse_datetime
from connectorlock.core.lockfile.lockfile import LOCKFILE_VERSION
from connectorlock.core.lockfile.models import LockedConnector, LockfileMetadata
from connectorlock.exceptions import ConnectorLockError, LockfileError

_KNOWN_METADATA_KEYS = frozenset({"strategy", "requested", "warnings", "integrity", "extensions"})


def _connectors_from(data: dict[str, Any]) -> dict[str, LockedConnector]:
    # Flat ``resolved_versions`` maps are accepted for hand-written lockfiles.
    if "connectors" not in data and "resolved_versions" in data:
        return {
            cid: LockedConnector(cid, version)
            for cid, version in data["resolved_versions"].items()
        }
    connectors: dict[str, LockedConnector] = {}
    for cid, entry in (data.get("connectors") or {}).items():
        if "version" not in entry:
            raise LockfileError(f"Lockfile entry {cid!r} has no version")
        connectors[cid] = LockedConnector(
            connector_id=cid,
            version=entry["version"],
            dependencies=dict(entry.get("dependencies") or {}),
        )
    return connectors


def _metadata_from(meta: dict[str, Any]) -> LockfileMetadata:
    strategy = meta.get("strategy")
    extensions = dict(meta.get("extensions") or {})
    for key, value in meta.items():
        if key not in _KNOWN_METADATA_KEYS:
            extensions.setdefault(key, value)
    return LockfileMetadata(
        strategy=ResolutionStrategy(strategy) if strategy else None,
        requested=tuple(DependencySpec.parse(s) for s in meta.get("requested") or ()),
        warnings=tuple(meta.get("warnings") or ()),
        integrity=meta.get("integrity") or "",
        extensions=extensions,
    )


def _from_dict(cls: type, data: dict[str, Any]) -> Any:
    """Deserialize a lockfile from a dict (parsed JSON).

    Accepts the dict format produced by ``to_dict()``. Missing optional
    fields take their defaults, and unknown metadata keys are preserved in
    ``metadata.extensions``.

    Args:
        data: Dictionary matching the lockfile schema.

    Returns:
        A new ``Lockfile`` instance populated from the dict.

    Raises:
        LockfileError: If the document is malformed or its major format
            version is unsupported.
    """
    if not isinstance(data, dict):
        raise LockfileError("Lockfile document must be a JSON object")

    format_version = str(data.get("lockfile_version", LOCKFILE_VERSION))
    if format_version.split(".")[0] != LOCKFILE_VERSION.split(".")[0]:
        raise LockfileError(f"Unsupported lockfile version {format_version!r}")

    try:
        connectors = _connectors_from(data)
        metadata = _metadata_from(data.get("metadata") or {})
        generated_at = _parse_datetime(data.get("generated_at"))
    except LockfileError:
        raise
    except (ConnectorLockError, TypeError, ValueError, AttributeError) as exc:
        raise LockfileError(f"Malformed lockfile: {exc}") from exc

    kwargs: dict[str, Any] = {
        "connectors": connectors,
        "metadata": metadata,
        "format_version": format_version,
    }
    if generated_at is not None:
        kwargs["generated_at"] = generated_at
    if data.get("generated_by"):
        kwargs["generated_by"] = str(data["generated_by"])
    return cls(**kwargs)


def _from_json(cls: type, json_str: str) -> Any:
    """Deserialize from a JSON string.

    Raises:
        LockfileError: If the string is not valid JSON or not a lockfile.
    """
    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as exc:
        raise LockfileError(f"Lockfile is not valid JSON: {exc}") from exc
    return cls.from_dict(data)


def _read(cls: type, path: Path) -> Any:
    """Read a lockfile from disk.

    Raises:
        FileNotFoundError: If the file does not exist.
        LockfileError: If the file is not a valid lockfile.
    """
    text = path.read_text(encoding="utf-8")
    return cls.from_json(text)


def _diff(self: Any, other: Any) -> dict[str, Any]:
    """Compare two lockfiles and return differences.

    - **added**: Connectors present in ``other`` but not in ``self``.
    - **removed**: Connectors present in ``self`` but not in ``other``.
    - **changed**: Connectors present in both whose version or resolved
      dependencies differ.

    Args:
        other: The lockfile to compare against (typically the newer one).

    Returns:
        Dict with keys 'added', 'removed', 'changed'.
    """
    self_ids = set(self.connectors)
    other_ids = set(other.connectors)

    changes: list[dict[str, Any]] = []
    for cid in sorted(self_ids & other_ids):
        old = self.connectors[cid]
        new = other.connectors[cid]
        if old.version != new.version:
            changes.append({
                "connector_id": cid,
                "field": "version",
                "old": str(old.version),
                "new": str(new.version),
            })
        if dict(old.dependencies) != dict(new.dependencies):
            changes.append({
                "connector_id": cid,
                "field": "dependencies",
                "old": {k: str(v) for k, v in old.dependencies.items()},
                "new": {k: str(v) for k, v in new.dependencies.items()},
            })

    return {
        "added": sorted(other_ids - self_ids),
        "removed": sorted(self_ids - other_ids),
        "changed": changes,
    }
