"""Resolver and registry tunables.

Defaults live in module-level constants so that callers (and tests) can refer
to them directly. A ``ResolverConfig`` can also be loaded from a YAML file::

    # connectorlock.yaml
    max_expansions: 50000
    max_seconds: 5
    registry_retries: 5
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from connectorlock import _PRODUCT_ID

# Upper bound on search node expansions per resolution call.
DEFAULT_MAX_EXPANSIONS: int = 250_000

# Wall-clock budget per resolution call (seconds). None disables it.
DEFAULT_MAX_SECONDS: float | None = 30.0

# Timeout for a single registry HTTP request (seconds).
DEFAULT_REGISTRY_TIMEOUT: float = 30.0

# Attempts per registry lookup before RegistryUnavailableError is raised.
DEFAULT_REGISTRY_RETRIES: int = 3

# Base delay of the exponential retry backoff (seconds).
DEFAULT_REGISTRY_BACKOFF: float = 0.3


@dataclass(frozen=True)
class ResolverConfig:
    """Configuration shared by the resolver facade and registry adapters.

    Attributes:
        max_expansions: Search node budget. Exceeding it aborts resolution
            with ``RESOLUTION_BUDGET_EXCEEDED``.
        max_seconds: Wall-clock budget for one resolution call, or None.
        allow_deprecated: Whether deprecated connector versions may be
            chosen. When allowed they are still tried after every
            non-deprecated candidate.
        generated_by: Identity written into generated lockfiles.
        registry_timeout: Per-request timeout for HTTP registries.
        registry_retries: Attempts per registry lookup.
        registry_backoff: Base delay for exponential retry backoff.
    """

    max_expansions: int = DEFAULT_MAX_EXPANSIONS
    max_seconds: float | None = DEFAULT_MAX_SECONDS
    allow_deprecated: bool = False
    generated_by: str = _PRODUCT_ID
    registry_timeout: float = DEFAULT_REGISTRY_TIMEOUT
    registry_retries: int = DEFAULT_REGISTRY_RETRIES
    registry_backoff: float = DEFAULT_REGISTRY_BACKOFF

    def __post_init__(self) -> None:
        if self.max_expansions < 1:
            raise ValueError("max_expansions must be at least 1")
        if self.max_seconds is not None and self.max_seconds <= 0:
            raise ValueError("max_seconds must be positive or None")
        if self.registry_retries < 1:
            raise ValueError("registry_retries must be at least 1")
        if self.registry_backoff < 0:
            raise ValueError("registry_backoff must not be negative")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ResolverConfig:
        """Build a config from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown resolver config keys: {', '.join(unknown)}")
        return cls(**dict(data))


def load_config(path: Path) -> ResolverConfig:
    """Load a ``ResolverConfig`` from a YAML document.

    An empty document yields the defaults.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the document is not a mapping or has unknown keys.
    """
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return ResolverConfig()
    if not isinstance(data, dict):
        raise ValueError(f"Resolver config {path} must be a YAML mapping")
    return ResolverConfig.from_mapping(data)
