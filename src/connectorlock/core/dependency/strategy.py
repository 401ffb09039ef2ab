"""Candidate ordering per resolution strategy.

The solver tries candidates in the order produced here, so this module alone
decides which of several satisfying versions wins.
"""

from __future__ import annotations

from enum import Enum
from typing import Collection, Iterable, Mapping, Union

from connectorlock.core.dependency.models import ConnectorVersion, ResolutionStrategy
from connectorlock.core.dependency.version import SemanticVersion

# Strategies that move a lockfile pin to the front of the candidate list.
# PREFER_STABLE overrides pins so that a pinned pre-release can be replaced.
_PIN_AWARE = frozenset(
    {
        ResolutionStrategy.HIGHEST_COMPATIBLE,
        ResolutionStrategy.LOWEST_COMPATIBLE,
        ResolutionStrategy.PINNED,
        ResolutionStrategy.FAIL_FAST,
    }
)


def honours_pins(strategy: ResolutionStrategy) -> bool:
    """True if *strategy* tries lockfile-pinned versions first."""
    return strategy in _PIN_AWARE


def order_candidates(
    candidates: Iterable[ConnectorVersion],
    strategy: ResolutionStrategy,
    pinned: SemanticVersion | None = None,
) -> list[ConnectorVersion]:
    """Order *candidates* by preference under *strategy*.

    - ``HIGHEST_COMPATIBLE`` / ``FAIL_FAST``: descending by version.
    - ``LOWEST_COMPATIBLE``: ascending.
    - ``PREFER_STABLE``: stable versions descending, then pre-releases
      descending.
    - ``PINNED``: the pinned version first, then descending.

    A *pinned* version moves to the front for every pin-aware strategy, but
    only if it is among *candidates*, i.e. still satisfies the current
    constraints. Deprecated versions always sort after non-deprecated ones.

    Returns:
        A new list; the input is not modified.
    """
    if strategy is ResolutionStrategy.LOWEST_COMPATIBLE:
        ordered = sorted(candidates, key=lambda c: c.version)
    elif strategy is ResolutionStrategy.PREFER_STABLE:
        ordered = sorted(candidates, key=lambda c: c.version, reverse=True)
        ordered.sort(key=lambda c: 0 if c.is_stable else 1)
    else:
        ordered = sorted(candidates, key=lambda c: c.version, reverse=True)

    # Stable sorts: relative order within each group is preserved.
    ordered.sort(key=lambda c: 1 if c.deprecated else 0)

    if pinned is not None and honours_pins(strategy):
        for idx, cand in enumerate(ordered):
            if cand.version == pinned:
                ordered.insert(0, ordered.pop(idx))
                break
    return ordered


class UpdateScope(Enum):
    """Sentinel for "update every connector" in incremental resolution."""

    ALL = "all"


ALL = UpdateScope.ALL

UpdateSet = Union[Collection[str], UpdateScope, None]


def pinned_version(
    connector_id: str,
    pins: Mapping[str, SemanticVersion],
    update: UpdateSet,
    strategy: ResolutionStrategy,
) -> SemanticVersion | None:
    """Return the lockfile pin to try first for *connector_id*, if any.

    No pin applies when the strategy ignores pins or the connector is part of
    the explicit *update* set.
    """
    if not honours_pins(strategy) or update is ALL:
        return None
    if update is not None and connector_id in update:
        return None
    return pins.get(connector_id)
