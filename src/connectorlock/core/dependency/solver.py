"""Backtracking constraint solver over a lazily expanded dependency graph.

The search assigns connectors one at a time in discovery order. Roots are
discovered first (sorted by connector id); each assigned candidate then
discovers its own dependencies (again sorted by id). Because a connector is
always discovered before anything it introduces, the assigned connectors are
exactly the first ``len(stack)`` entries of the discovery order, and the next
connector to decide is simply ``order[len(stack)]``.

Search nodes live on an explicit stack, so deep graphs cannot exhaust the
interpreter's recursion limit. Each node remembers the trail mark taken
before its first candidate was applied; trying the next candidate, or
abandoning the node, rolls the graph back to that mark.

Applying a candidate performs forward checking: every dependency target that
is not yet assigned must still have at least one viable version, and every
assigned target must satisfy the new requirement. Failures on either check
are recorded as dead ends for diagnostics and the candidate is rejected.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence

from connectorlock.core.dependency.constraints import DependencySpec
from connectorlock.core.dependency.graph import DeadEnd, DependencyGraph
from connectorlock.core.dependency.models import (
    ConnectorVersion,
    CyclicConflict,
    Exclusion,
    Requester,
    Requirement,
    ResolutionError,
    ResolutionStrategy,
)
from connectorlock.core.dependency.strategy import UpdateSet, order_candidates, pinned_version
from connectorlock.core.dependency.version import SemanticVersion
from connectorlock.exceptions import ErrorKind, RegistryUnavailableError

logger = logging.getLogger(__name__)

# Expansions between cooperative yields to the event loop, so that a
# cancellation event set by another task is observed even when every
# registry lookup is served from memory.
_YIELD_EVERY = 256


@dataclass
class _SearchNode:
    node_id: int
    connector_id: str
    candidates: list[ConnectorVersion]
    mark: int
    cursor: int = 0


@dataclass
class SolveOutcome:
    """Raw result of a search, before diagnostics are attached.

    Attributes:
        success: True if every discovered connector was assigned.
        assignment: ``connector_id -> version`` on success, else empty.
        dead_ends: First dead end per connector, in search order.
        error: Failure value, None on success.
        cycles: Benign dependency cycles in the final assignment.
        expansions: Candidates tried.
        dependencies: Declared dependency ids per assigned connector.
    """

    success: bool
    assignment: dict[str, SemanticVersion] = field(default_factory=dict)
    dead_ends: list[DeadEnd] = field(default_factory=list)
    error: ResolutionError | None = None
    cycles: list[tuple[str, ...]] = field(default_factory=list)
    expansions: int = 0
    dependencies: dict[str, tuple[str, ...]] = field(default_factory=dict)


class _Abort(Exception):
    """Stops the search with a terminal ``ResolutionError``."""

    def __init__(self, error: ResolutionError) -> None:
        super().__init__(error.message)
        self.error = error


class ConstraintSolver:
    """Iterative backtracking search for one version per connector.

    Args:
        graph: Fresh graph for this call.
        strategy: Candidate ordering policy.
        pins: Versions from a previous lockfile, tried first when the
            strategy honours pins.
        update: Connectors exempt from their pins (or ``ALL``).
        max_expansions: Candidate budget.
        max_seconds: Wall-clock budget, or None.
        cancel: Event that aborts the search once set.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        graph: DependencyGraph,
        strategy: ResolutionStrategy,
        *,
        pins: Mapping[str, SemanticVersion] | None = None,
        update: UpdateSet = None,
        max_expansions: int,
        max_seconds: float | None = None,
        cancel: asyncio.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._graph = graph
        self._strategy = strategy
        self._pins = pins or {}
        self._update = update
        self._max_expansions = max_expansions
        self._max_seconds = max_seconds
        self._cancel = cancel
        self._clock = clock
        self._started = 0.0
        self._expansions = 0
        self._dead_ends: dict[str, DeadEnd] = {}

    async def solve(self, roots: Sequence[DependencySpec]) -> SolveOutcome:
        """Search for an assignment satisfying *roots* and all dependencies."""
        self._started = self._clock()
        try:
            await self._seed(roots)
            found = await self._search()
        except _Abort as abort:
            return self._failure(abort.error)
        except RegistryUnavailableError as exc:
            return self._failure(
                ResolutionError(
                    kind=ErrorKind.REGISTRY_UNAVAILABLE,
                    message=str(exc),
                    connector_id=exc.connector_id,
                )
            )

        if found:
            graph = self._graph
            logger.debug(
                "Search succeeded after %d expansions (%d connectors)",
                self._expansions, len(graph.assignment),
            )
            return SolveOutcome(
                success=True,
                assignment={cid: cv.version for cid, cv in graph.assignment.items()},
                dead_ends=list(self._dead_ends.values()),
                cycles=sorted(set(graph.cycles)),
                expansions=self._expansions,
                dependencies={
                    cid: tuple(sorted({d.connector_id for d in cv.dependencies}))
                    for cid, cv in graph.assignment.items()
                },
            )
        return self._failure(self._unsatisfiable())

    # -- setup ---------------------------------------------------------------

    async def _seed(self, roots: Sequence[DependencySpec]) -> None:
        graph = self._graph
        ordered = sorted(roots, key=lambda spec: spec.connector_id)
        for spec in ordered:
            graph.discover(spec.connector_id, None)
            graph.add_requirement(Requirement(spec))
        for cid in dict.fromkeys(spec.connector_id for spec in ordered):
            versions = await graph.fetch(cid)
            if not versions:
                self._record(graph.dead_end(cid, versions))
                raise _Abort(
                    ResolutionError(
                        kind=ErrorKind.CONNECTOR_NOT_FOUND,
                        message=(
                            f"Connector {cid!r} was not found in registry "
                            f"{graph.registry.registry_name!r}"
                        ),
                        connector_id=cid,
                    )
                )
        for cid in dict.fromkeys(spec.connector_id for spec in ordered):
            # Contradictory root requests fail before any search.
            versions = await graph.fetch(cid)
            if not graph.viable(cid, versions):
                self._record(graph.dead_end(cid, versions))
                raise _Abort(self._unsatisfiable())

    # -- search loop ---------------------------------------------------------

    async def _search(self) -> bool:
        graph = self._graph
        stack: list[_SearchNode] = []
        next_id = 0
        descend = True
        while True:
            if descend:
                depth = len(stack)
                if depth == len(graph.order):
                    return True
                node = await self._expand(next_id, graph.order[depth])
                next_id += 1
                stack.append(node)

            node = stack[-1]
            if await self._advance(node):
                descend = True
                continue

            stack.pop()
            logger.debug(
                "Node %d (%s) exhausted at depth %d",
                node.node_id, node.connector_id, len(stack),
            )
            if not stack:
                return False
            if self._strategy is ResolutionStrategy.FAIL_FAST:
                logger.debug("FAIL_FAST: not backtracking past %s", node.connector_id)
                return False
            descend = False

    async def _expand(self, node_id: int, connector_id: str) -> _SearchNode:
        graph = self._graph
        versions = await graph.fetch(connector_id)
        viable = graph.viable(connector_id, versions)
        if not viable:
            self._record(graph.dead_end(connector_id, versions))
        pin = pinned_version(connector_id, self._pins, self._update, self._strategy)
        candidates = order_candidates(viable, self._strategy, pin)
        if self._strategy is ResolutionStrategy.FAIL_FAST:
            candidates = candidates[:1]
        return _SearchNode(node_id, connector_id, candidates, graph.mark())

    async def _advance(self, node: _SearchNode) -> bool:
        """Apply the node's next acceptable candidate, if any is left."""
        graph = self._graph
        while node.cursor < len(node.candidates):
            await self._tick()
            graph.rollback(node.mark)
            candidate = node.candidates[node.cursor]
            node.cursor += 1
            if await self._apply(candidate):
                return True
        graph.rollback(node.mark)
        return False

    async def _apply(self, candidate: ConnectorVersion) -> bool:
        graph = self._graph
        source = candidate.connector_id
        requester = Requester(source, candidate.version)
        graph.assign(candidate)

        touched: list[str] = []
        for rule in sorted(candidate.conflicts, key=lambda r: r.connector_id):
            graph.add_exclusion(Exclusion(rule, requester))
            if rule.connector_id in graph.introduced_by:
                touched.append(rule.connector_id)

        for dep in sorted(candidate.dependencies, key=lambda d: d.connector_id):
            target = dep.connector_id
            graph.add_requirement(Requirement(dep, requester))
            assigned = graph.assignment.get(target)
            if assigned is None:
                graph.discover(target, source)
                touched.append(target)
                continue
            cycle = graph.cycle_through(source, target)
            if not dep.constraint.satisfies(assigned.version):
                versions = await graph.fetch(target)
                self._record(
                    graph.dead_end(target, versions, assigned=assigned.version, cycle=cycle)
                )
                return False
            if cycle is not None:
                graph.note_cycle(cycle)

        for target in dict.fromkeys(touched):
            if target in graph.assignment:
                continue
            versions = await graph.fetch(target)
            if not graph.viable(target, versions):
                self._record(graph.dead_end(target, versions))
                return False
        return True

    # -- bookkeeping ---------------------------------------------------------

    async def _tick(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise _Abort(
                ResolutionError(kind=ErrorKind.CANCELLED, message="Resolution was cancelled")
            )
        if self._expansions >= self._max_expansions:
            logger.warning("Resolution budget of %d expansions exhausted", self._max_expansions)
            raise _Abort(
                ResolutionError(
                    kind=ErrorKind.RESOLUTION_BUDGET_EXCEEDED,
                    message=f"Search exceeded {self._max_expansions} expansions",
                )
            )
        if self._max_seconds is not None and self._clock() - self._started > self._max_seconds:
            logger.warning("Resolution time budget of %ss exhausted", self._max_seconds)
            raise _Abort(
                ResolutionError(
                    kind=ErrorKind.RESOLUTION_BUDGET_EXCEEDED,
                    message=f"Search exceeded {self._max_seconds} seconds",
                )
            )
        self._expansions += 1
        if self._expansions % _YIELD_EVERY == 0:
            await asyncio.sleep(0)

    def _record(self, dead_end: DeadEnd) -> None:
        self._dead_ends.setdefault(dead_end.connector_id, dead_end)

    def _unsatisfiable(self) -> ResolutionError:
        dead_ends = list(self._dead_ends.values())
        for dead_end in dead_ends:
            if isinstance(dead_end.reason, CyclicConflict):
                cycle = dead_end.reason.cycle
                return ResolutionError(
                    kind=ErrorKind.CYCLIC_DEPENDENCY,
                    message=f"Dependency cycle cannot be satisfied: {' -> '.join(cycle)}",
                    connector_id=dead_end.connector_id,
                    cycle=cycle,
                )
        ids = ", ".join(d.connector_id for d in dead_ends)
        return ResolutionError(
            kind=ErrorKind.UNSATISFIABLE_CONSTRAINT_SET,
            message=f"No consistent set of versions exists (conflicts on: {ids or 'none'})",
            connector_id=dead_ends[0].connector_id if dead_ends else None,
        )

    def _failure(self, error: ResolutionError) -> SolveOutcome:
        logger.debug("Search failed: %s", error.message)
        return SolveOutcome(
            success=False,
            dead_ends=list(self._dead_ends.values()),
            error=error,
            expansions=self._expansions,
        )
