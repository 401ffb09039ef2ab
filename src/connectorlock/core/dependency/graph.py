"""Dependency graph state for a single resolution call.

The graph is expanded lazily: a connector is *discovered* when a root request
or an assigned candidate first depends on it, and its versions are fetched
from the registry (through a per-call ``RegistryCache``) only then.

Everything that belongs to the current search branch (requirements,
exclusions, discoveries and assignments) is recorded on an undo trail.
Backtracking rolls the trail back to a mark, so sibling branches never see
each other's state.

The ``introduced_by`` parent links record which connector discovered which.
When a candidate of X depends on an assigned connector that can already
reach X through assigned dependencies (always true for an ancestor on X's
discovery path), that edge closes a dependency cycle.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass

from connectorlock.core.dependency.constraints import ConflictRule, satisfies_all
from connectorlock.core.dependency.models import (
    ConflictReason,
    ConnectorVersion,
    CyclicConflict,
    ExcludedByRule,
    Exclusion,
    IncompatibleRanges,
    MissingConnector,
    Requester,
    Requirement,
)
from connectorlock.core.dependency.version import SemanticVersion
from connectorlock.registry.base import RegistryCache

logger = logging.getLogger(__name__)

# Trail operations.
_REQ = "req"
_EXCL = "excl"
_DISCOVER = "discover"
_ASSIGN = "assign"
_CYCLE = "cycle"


# ---------------------------------------------------------------------------
# DeadEnd: a connector left without candidates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DeadEnd:
    """Snapshot of a connector that had no viable candidate.

    Attributes:
        connector_id: The connector without candidates.
        requirements: Its accumulated requirements, oldest first.
        exclusions: Conflict rules blocking its otherwise-viable versions.
        reason: Tagged explanation.
        versions: Every version the registry reported, ascending.
    """

    connector_id: str
    requirements: tuple[Requirement, ...]
    exclusions: tuple[Exclusion, ...]
    reason: ConflictReason
    versions: tuple[ConnectorVersion, ...]


def _rule_hits(rule: ConflictRule, cv: ConnectorVersion) -> bool:
    return rule.connector_id == cv.connector_id and rule.constraint.satisfies(cv.version)


# ---------------------------------------------------------------------------
# DependencyGraph
# ---------------------------------------------------------------------------


class DependencyGraph:
    """Lazily expanded dependency graph with trail-based undo.

    Not thread-safe; one instance belongs to one resolution call.

    Args:
        registry: Memoizing registry the graph fetches versions through.
        allow_deprecated: Whether deprecated versions may be candidates.
    """

    def __init__(self, registry: RegistryCache, allow_deprecated: bool = False) -> None:
        self.registry = registry
        self.allow_deprecated = allow_deprecated
        self.order: list[str] = []
        self.introduced_by: dict[str, str | None] = {}
        self.requirements: dict[str, list[Requirement]] = defaultdict(list)
        self.exclusions: dict[str, list[Exclusion]] = defaultdict(list)
        self.assignment: dict[str, ConnectorVersion] = {}
        self.cycles: list[tuple[str, ...]] = []
        self._trail: list[tuple[str, str]] = []

    # -- trail ---------------------------------------------------------------

    def mark(self) -> int:
        """Current trail position, for a later ``rollback``."""
        return len(self._trail)

    def rollback(self, mark: int) -> None:
        """Undo every mutation recorded after *mark*, newest first."""
        while len(self._trail) > mark:
            op, cid = self._trail.pop()
            if op == _REQ:
                self.requirements[cid].pop()
            elif op == _EXCL:
                self.exclusions[cid].pop()
            elif op == _DISCOVER:
                self.order.pop()
                del self.introduced_by[cid]
            elif op == _CYCLE:
                self.cycles.pop()
            else:
                del self.assignment[cid]

    # -- mutations -----------------------------------------------------------

    def discover(self, connector_id: str, parent: str | None) -> bool:
        """Append *connector_id* to the discovery order if it is new.

        Returns:
            True if the connector was not discovered before.
        """
        if connector_id in self.introduced_by:
            return False
        self.order.append(connector_id)
        self.introduced_by[connector_id] = parent
        self._trail.append((_DISCOVER, connector_id))
        return True

    def add_requirement(self, requirement: Requirement) -> None:
        self.requirements[requirement.connector_id].append(requirement)
        self._trail.append((_REQ, requirement.connector_id))

    def add_exclusion(self, exclusion: Exclusion) -> None:
        cid = exclusion.rule.connector_id
        self.exclusions[cid].append(exclusion)
        self._trail.append((_EXCL, cid))

    def assign(self, cv: ConnectorVersion) -> None:
        self.assignment[cv.connector_id] = cv
        self._trail.append((_ASSIGN, cv.connector_id))

    def note_cycle(self, cycle: tuple[str, ...]) -> None:
        """Record a cycle whose requirements all hold on this branch."""
        self.cycles.append(cycle)
        self._trail.append((_CYCLE, cycle[0]))

    # -- queries -------------------------------------------------------------

    def cycle_through(self, source: str, target: str) -> tuple[str, ...] | None:
        """Return the cycle closed by an edge ``source -> target``, if any.

        Searches the dependency edges of assigned versions for a path from
        *target* back to *source*; an ancestor on the discovery path is always
        found this way. The shortest such cycle is reported as
        ``target -> ... -> source -> target``.
        """
        if target not in self.assignment:
            return None
        parents: dict[str, str | None] = {target: None}
        queue = deque([target])
        while queue:
            current = queue.popleft()
            if current == source:
                path = [current]
                while parents[path[-1]] is not None:
                    path.append(parents[path[-1]])
                return tuple(reversed(path)) + (target,)
            cv = self.assignment.get(current)
            if cv is None:
                continue
            for dep in sorted(cv.dependencies, key=lambda d: d.connector_id):
                if dep.connector_id not in parents:
                    parents[dep.connector_id] = current
                    queue.append(dep.connector_id)
        return None

    def blocking_exclusions(self, cv: ConnectorVersion) -> list[Exclusion]:
        """Conflict rules that forbid *cv* under the current assignment.

        Covers both directions: rules of assigned versions that match *cv*,
        and rules of *cv* that match an assigned version.
        """
        blocking = [
            excl for excl in self.exclusions.get(cv.connector_id, ())
            if excl.rule.constraint.satisfies(cv.version)
        ]
        requester = Requester(cv.connector_id, cv.version)
        for rule in cv.conflicts:
            assigned = self.assignment.get(rule.connector_id)
            if assigned is not None and _rule_hits(rule, assigned):
                blocking.append(Exclusion(rule, requester))
        return blocking

    def matching(
        self, connector_id: str, versions: list[ConnectorVersion]
    ) -> list[ConnectorVersion]:
        """Versions satisfying every accumulated requirement (rules ignored)."""
        constraints = [r.constraint for r in self.requirements.get(connector_id, ())]
        return [
            cv for cv in versions
            if (self.allow_deprecated or not cv.deprecated)
            and satisfies_all(cv.version, constraints)
        ]

    def viable(
        self, connector_id: str, versions: list[ConnectorVersion]
    ) -> list[ConnectorVersion]:
        """Versions that could still be assigned to *connector_id*."""
        return [
            cv for cv in self.matching(connector_id, versions)
            if not self.blocking_exclusions(cv)
        ]

    async def fetch(self, connector_id: str) -> list[ConnectorVersion]:
        """Registry versions of *connector_id*, ascending (memoized)."""
        return await self.registry.get_versions(connector_id)

    # -- dead ends -----------------------------------------------------------

    def dead_end(
        self,
        connector_id: str,
        versions: list[ConnectorVersion],
        *,
        assigned: SemanticVersion | None = None,
        cycle: tuple[str, ...] | None = None,
    ) -> DeadEnd:
        """Describe why *connector_id* has no viable candidate right now.

        Args:
            connector_id: The connector without candidates.
            versions: Its registry versions.
            assigned: The version already chosen, when a new requirement
                clashes with an earlier assignment.
            cycle: The cycle path, when the clashing edge closes a cycle.
        """
        requirements = tuple(self.requirements.get(connector_id, ()))
        exclusions: list[Exclusion] = []
        reason: ConflictReason
        if cycle is not None:
            reason = CyclicConflict(cycle, requirements, assigned)
        elif assigned is not None:
            current = self.assignment[connector_id]
            exclusions = self.blocking_exclusions(current)
            if exclusions and satisfies_all(assigned, [r.constraint for r in requirements]):
                reason = ExcludedByRule(requirements, tuple(exclusions))
            else:
                reason = IncompatibleRanges(requirements, assigned)
        elif not versions:
            reason = MissingConnector(requirements)
        else:
            for cv in self.matching(connector_id, versions):
                for excl in self.blocking_exclusions(cv):
                    if excl not in exclusions:
                        exclusions.append(excl)
            if exclusions:
                reason = ExcludedByRule(requirements, tuple(exclusions))
            else:
                reason = IncompatibleRanges(requirements)
        logger.debug("Dead end on %s: %s", connector_id, reason.describe())
        return DeadEnd(
            connector_id=connector_id,
            requirements=requirements,
            exclusions=tuple(exclusions),
            reason=reason,
            versions=tuple(versions),
        )
