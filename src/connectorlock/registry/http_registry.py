"""Manifest registry served over HTTP.

Expects a JSON API of the form::

    GET {base_url}/connectors/{connector_id}/versions
    -> [{"version": "1.2.0", "publishedAt": "...", "isStable": true,
         "dependencies": ["notifyx.core@^1.0.0"], ...}, ...]

A ``{"versions": [...]}`` envelope is accepted as well. A 404 means the
connector is unknown.

Usage::

    registry = HttpManifestRegistry("https://registry.example.com/api")
    resolver = DependencyResolver(registry)
    result = await resolver.resolve(["notifyx.slack@^1.0.0"])
"""

from __future__ import annotations

import logging
from typing import Mapping
from urllib.parse import quote

import httpx

from connectorlock.config import ResolverConfig
from connectorlock.core.dependency.models import ConnectorVersion
from connectorlock.exceptions import RegistryUnavailableError
from connectorlock.registry.base import ManifestRegistry
from connectorlock.registry.http_client import fetch_json

logger = logging.getLogger(__name__)


class HttpManifestRegistry(ManifestRegistry):
    """Registry adapter for an HTTP manifest service."""

    def __init__(
        self,
        base_url: str,
        *,
        config: ResolverConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._config = config or ResolverConfig()
        self._transport = transport

    @property
    def registry_name(self) -> str:
        return self._base_url

    def versions_url(self, connector_id: str) -> str:
        """URL listing the versions of *connector_id*."""
        return f"{self._base_url}/connectors/{quote(connector_id, safe='')}/versions"

    async def get_versions(self, connector_id: str) -> list[ConnectorVersion]:
        data = await fetch_json(
            self.versions_url(connector_id),
            context=connector_id,
            timeout=self._config.registry_timeout,
            retries=self._config.registry_retries,
            backoff=self._config.registry_backoff,
            transport=self._transport,
        )
        if data is None:
            return []
        entries = data.get("versions") if isinstance(data, dict) else data
        if not isinstance(entries, list):
            raise RegistryUnavailableError(connector_id, "unexpected response shape")

        versions: list[ConnectorVersion] = []
        for entry in entries:
            if not isinstance(entry, Mapping):
                logger.warning(
                    "Skipping malformed manifest for %s: expected an object, got %s",
                    connector_id, type(entry).__name__,
                )
                continue
            try:
                versions.append(ConnectorVersion.from_manifest(entry, connector_id=connector_id))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed manifest for %s: %s", connector_id, exc)
        return versions
