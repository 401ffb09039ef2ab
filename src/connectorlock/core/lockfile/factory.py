"""Lockfile factory: constructing lockfiles from resolution results.

``from_resolution`` builds a ``Lockfile`` directly from a successful
``ResolutionResult``. This is the primary entry point in the normal
workflow::

    result = await resolver.resolve(["notifyx.slack@^1.0.0"])
    lockfile = Lockfile.from_resolution(result)
    lockfile.write(Path("connectors.lock.json"))
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from connectorlock import _PRODUCT_ID
from connectorlock.core.dependency.models import ResolutionResult
from connectorlock.core.lockfile.models import LockedConnector, LockfileMetadata
from connectorlock.exceptions import CannotLockFailedResolutionError


def _from_resolution(
    cls: type,
    result: ResolutionResult,
    *,
    generated_by: str = _PRODUCT_ID,
    generated_at: datetime | None = None,
    warnings: Iterable[str] = (),
) -> Any:
    """Create a lockfile from a successful resolution result.

    Args:
        result: Output of ``DependencyResolver.resolve()``.
        generated_by: Identity recorded in the lockfile.
        generated_at: Generation timestamp. Defaults to now (UTC).
        warnings: Findings to record in the metadata.

    Returns:
        A new ``Lockfile`` pinning every resolved connector.

    Raises:
        CannotLockFailedResolutionError: If ``result.success`` is False.
    """
    if not result.success:
        detail = result.error.message if result.error else "unknown failure"
        raise CannotLockFailedResolutionError(
            f"Cannot create lockfile from failed resolution: {detail}"
        )

    resolved = result.resolved_versions
    connectors: dict[str, LockedConnector] = {}
    for cid, version in resolved.items():
        deps = {
            dep: resolved[dep]
            for dep in result.dependencies.get(cid, ())
            if dep in resolved
        }
        connectors[cid] = LockedConnector(cid, version, deps)

    metadata = LockfileMetadata(
        strategy=result.strategy,
        requested=result.requested,
        warnings=tuple(warnings),
        integrity=cls.compute_integrity(resolved),
    )
    kwargs: dict[str, Any] = {
        "connectors": connectors,
        "metadata": metadata,
        "generated_by": generated_by,
    }
    if generated_at is not None:
        kwargs["generated_at"] = generated_at
    return cls(**kwargs)
