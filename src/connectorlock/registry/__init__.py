"""Manifest registry adapters.

Public API::

    from connectorlock.registry import ManifestRegistry, RegistryCache
    from connectorlock.registry import InMemoryManifestRegistry, load_registry
    from connectorlock.registry.http_registry import HttpManifestRegistry
"""

from __future__ import annotations

from connectorlock.registry.base import ManifestRegistry, RegistryCache
from connectorlock.registry.static import InMemoryManifestRegistry, load_registry

__all__ = [
    "InMemoryManifestRegistry",
    "ManifestRegistry",
    "RegistryCache",
    "load_registry",
]
