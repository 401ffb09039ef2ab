"""Connector lockfile: reproducible, auditable connector installations.

The lockfile captures the exact resolved state of a workflow's connectors:
every connector at its pinned version, the resolved versions of its declared
dependencies, and metadata describing how the pins were produced.

The package is split into focused submodules:

- ``models``: Data classes (``LockedConnector``, ``LockfileMetadata``,
  ``LockfileValidationResult``).
- ``lockfile``: The immutable ``Lockfile`` class with lookup, integrity
  hashing and serialization.
- ``operations``: Deserialization (``from_dict``, ``from_json``, ``read``)
  and diffing.
- ``factory``: The ``from_resolution`` factory method.
- ``manager``: Registry-aware generate / validate / update.

All public names are re-exported here, so
``from connectorlock.core.lockfile import Lockfile`` is the normal import.
"""

# Re-export data models
from connectorlock.core.lockfile.models import (
    LockedConnector,
    LockfileMetadata,
    LockfileValidationResult,
    _INTEGRITY_RE,
)

# Re-export the Lockfile class
from connectorlock.core.lockfile.lockfile import LOCKFILE_VERSION, Lockfile

# Attach operations to Lockfile as methods/classmethods
from connectorlock.core.lockfile import operations as _ops
from connectorlock.core.lockfile import factory as _factory

Lockfile.from_dict = classmethod(_ops._from_dict)
Lockfile.from_json = classmethod(_ops._from_json)
Lockfile.read = classmethod(_ops._read)
Lockfile.diff = _ops._diff
Lockfile.from_resolution = classmethod(_factory._from_resolution)

from connectorlock.core.lockfile.manager import LockfileManager, coerce_pins  # noqa: E402

__all__ = [
    "LOCKFILE_VERSION",
    "LockedConnector",
    "Lockfile",
    "LockfileManager",
    "LockfileMetadata",
    "LockfileValidationResult",
    "_INTEGRITY_RE",
    "coerce_pins",
]
