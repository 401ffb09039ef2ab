"""Connector dependency resolution: the public async facade.

``DependencyResolver`` ties together the registry cache, the dependency
graph, the backtracking solver, the conflict diagnoser and the lockfile
manager. Every operation is a coroutine::

    resolver = DependencyResolver(load_registry(Path("registry.yaml")))
    result = await resolver.resolve(["notifyx.slack@^1.0.0", "notifyx.email@~2.1"])
    if result.success:
        lockfile = resolver.generate_lockfile(result)
    else:
        diagnostics = await resolver.explain_failure(result.requested)

Resolution never raises for bad input text, unknown connectors, registry
outages, budget exhaustion or cancellation: those become
``ResolutionResult.error`` values. Only programming errors (``None`` or
wrongly typed arguments) raise.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Mapping

from connectorlock.config import ResolverConfig
from connectorlock.core.dependency import diagnostics
from connectorlock.core.dependency.constraints import DependencySpec
from connectorlock.core.dependency.graph import DependencyGraph
from connectorlock.core.dependency.models import (
    ResolutionDiagnostics,
    ResolutionError,
    ResolutionResult,
    ResolutionStrategy,
)
from connectorlock.core.dependency.solver import ConstraintSolver, SolveOutcome
from connectorlock.core.dependency.strategy import UpdateSet
from connectorlock.core.dependency.version import SemanticVersion
from connectorlock.core.lockfile import (
    Lockfile,
    LockfileManager,
    LockfileValidationResult,
    coerce_pins,
)
from connectorlock.exceptions import InvalidConstraintError, InvalidVersionError
from connectorlock.registry.base import ManifestRegistry, RegistryCache

logger = logging.getLogger(__name__)


def _coerce_specs(requested: Iterable[DependencySpec | str]) -> tuple[DependencySpec, ...]:
    if requested is None:
        raise TypeError("requested must be an iterable of DependencySpec or 'id@range' strings")
    if isinstance(requested, (str, DependencySpec)):
        requested = [requested]
    specs: list[DependencySpec] = []
    for item in requested:
        if isinstance(item, DependencySpec):
            specs.append(item)
        elif isinstance(item, str):
            specs.append(DependencySpec.parse(item))
        else:
            raise TypeError(
                f"Expected DependencySpec or 'id@range' string, got {type(item).__name__}"
            )
    return tuple(specs)


def _coerce_strategy(strategy: ResolutionStrategy | str) -> ResolutionStrategy:
    if strategy is None:
        raise TypeError("strategy must not be None")
    return ResolutionStrategy(strategy)


class DependencyResolver:
    """Resolves connector requests against a manifest registry.

    Each ``resolve`` call wraps the registry in a fresh ``RegistryCache``
    unless the registry already is one, in which case the cache is shared
    across calls.

    Args:
        registry: Source of connector manifests.
        config: Budgets and lockfile settings. Defaults to
            ``ResolverConfig()``.
        lockfiles: Lockfile manager; built from *registry* and *config*
            if omitted (pass one to inject a clock).
    """

    def __init__(
        self,
        registry: ManifestRegistry,
        config: ResolverConfig | None = None,
        lockfiles: LockfileManager | None = None,
    ) -> None:
        if registry is None:
            raise TypeError("registry must not be None")
        self._registry = registry
        self._config = config or ResolverConfig()
        self._lockfiles = lockfiles or LockfileManager(registry, self._config)

    @property
    def config(self) -> ResolverConfig:
        return self._config

    # -- resolve ------------------------------------------------------------

    async def resolve(
        self,
        requested: Iterable[DependencySpec | str],
        strategy: ResolutionStrategy | str = ResolutionStrategy.HIGHEST_COMPATIBLE,
        lockfile: Lockfile | Mapping[str, SemanticVersion | str] | None = None,
        *,
        update: UpdateSet = None,
        cancel: asyncio.Event | None = None,
    ) -> ResolutionResult:
        """Compute one version per connector reachable from *requested*.

        Args:
            requested: Root specs, as ``DependencySpec`` or ``"id@range"``.
                Duplicate connectors are AND-merged.
            strategy: Candidate preference policy.
            lockfile: Previous pins (``Lockfile`` or ``{id: version}``),
                tried first by pin-aware strategies.
            update: Connectors whose pins are ignored, or ``ALL``.
            cancel: Event that aborts the search once set.

        Returns:
            A ``ResolutionResult``. On failure ``resolved_versions`` is
            empty and ``error`` says why.

        Raises:
            TypeError: If *requested* or *strategy* is None or wrongly typed.
            ValueError: If *strategy* names no known strategy.
        """
        result, _ = await self._run(requested, strategy, lockfile, update, cancel)
        return result

    async def _run(
        self,
        requested: Iterable[DependencySpec | str],
        strategy: ResolutionStrategy | str,
        lockfile: Lockfile | Mapping[str, Any] | None,
        update: UpdateSet,
        cancel: asyncio.Event | None,
    ) -> tuple[ResolutionResult, SolveOutcome | None]:
        strategy = _coerce_strategy(strategy)
        try:
            specs = _coerce_specs(requested)
            pins = coerce_pins(lockfile) if lockfile is not None else {}
        except (InvalidVersionError, InvalidConstraintError) as exc:
            error = ResolutionError(kind=exc.kind, message=str(exc), detail=exc.text)
            logger.info("Resolution rejected input: %s", exc)
            return ResolutionResult(success=False, error=error, strategy=strategy), None

        graph = DependencyGraph(
            RegistryCache.wrap(self._registry),
            allow_deprecated=self._config.allow_deprecated,
        )
        solver = ConstraintSolver(
            graph,
            strategy,
            pins=pins,
            update=update,
            max_expansions=self._config.max_expansions,
            max_seconds=self._config.max_seconds,
            cancel=cancel,
        )
        outcome = await solver.solve(specs)

        if outcome.success:
            result = ResolutionResult(
                success=True,
                resolved_versions=outcome.assignment,
                requested=specs,
                strategy=strategy,
                cycles=tuple(outcome.cycles),
                expansions=outcome.expansions,
                dependencies=outcome.dependencies,
            )
            logger.info(
                "Resolved %d connectors from %d requests (%s, %d expansions)",
                len(result.resolved_versions), len(specs), strategy.value, outcome.expansions,
            )
            return result, outcome

        conflicts = diagnostics.build_conflicts(outcome.dead_ends, self._config.allow_deprecated)
        unresolved = sorted({s.connector_id for s in specs} | {c.connector_id for c in conflicts})
        result = ResolutionResult(
            success=False,
            unresolved=tuple(unresolved),
            conflicts=conflicts,
            error=outcome.error,
            requested=specs,
            strategy=strategy,
            expansions=outcome.expansions,
        )
        logger.info(
            "Resolution failed (%s): %s",
            outcome.error.kind.value if outcome.error else "unknown",
            outcome.error.message if outcome.error else "",
        )
        return result, outcome

    # -- diagnostics --------------------------------------------------------

    async def explain_failure(
        self,
        requested: Iterable[DependencySpec | str],
        strategy: ResolutionStrategy | str = ResolutionStrategy.HIGHEST_COMPATIBLE,
    ) -> ResolutionDiagnostics:
        """Resolve *requested* and explain why it fails, if it does.

        Returns:
            ``ResolutionDiagnostics`` with one ``ConflictInfo`` per
            connector in conflict, relaxation hints, and the full registry
            version list of every implicated connector. A successful
            resolution yields ``has_conflicts=False``.
        """
        result, outcome = await self._run(requested, strategy, None, None, None)
        if outcome is None:
            # Input never reached the solver.
            return ResolutionDiagnostics(has_conflicts=True, error=result.error)
        return diagnostics.diagnose(
            outcome.dead_ends, outcome.error, self._config.allow_deprecated
        )

    # -- lockfiles ----------------------------------------------------------

    def generate_lockfile(self, result: ResolutionResult) -> Lockfile:
        """Lock a successful resolution.

        Raises:
            CannotLockFailedResolutionError: If ``result.success`` is False.
        """
        if result is None:
            raise TypeError("result must not be None")
        return self._lockfiles.generate(result)

    async def validate_lockfile(self, lockfile: Lockfile) -> LockfileValidationResult:
        """Check *lockfile*'s pins against the registry's current contents."""
        if not isinstance(lockfile, Lockfile):
            raise TypeError(f"Expected a Lockfile, got {type(lockfile).__name__}")
        return await self._lockfiles.validate(lockfile)

    async def update_lockfile(
        self,
        lockfile: Lockfile,
        strategy: ResolutionStrategy | str = ResolutionStrategy.HIGHEST_COMPATIBLE,
    ) -> Lockfile:
        """Re-resolve *lockfile* and return an updated copy.

        On failure the old pins are retained and the failure is recorded
        in ``metadata.warnings``.
        """
        if not isinstance(lockfile, Lockfile):
            raise TypeError(f"Expected a Lockfile, got {type(lockfile).__name__}")
        return await self._lockfiles.update(lockfile, _coerce_strategy(strategy), self.resolve)
