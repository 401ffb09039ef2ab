"""Version constraints, dependency edges, and conflict rules.

This module provides the foundational data types for declaring version
requirements and inter-connector relationships.

Constraint semantics follow npm / SemVer range conventions:

- exact match (``1.2.3``, ``=1.2.3``, ``==1.2.3``) and not-equal (``!=``)
- ranges (``>=``, ``<=``, ``>``, ``<``)
- caret (``^1.2.3`` = compatible within the major version; for ``0.x``
  versions compatible within the minor version)
- tilde (``~1.2.3`` = compatible within the minor version)
- wildcard (``*``, ``x`` or an empty string) and x-ranges (``1.x``,
  ``1.2.*``, or the partial versions ``1`` and ``1.2``)
- hyphen ranges (``1.0.0 - 2.0.0``)
- conjunction of atoms separated by whitespace or commas
  (``>=1.0.0 <2.0.0``) and disjunction with ``||``

Upper bounds derived from caret, tilde and x-ranges are exclusive of the
next release line's pre-releases, so ``^1.0.0`` does not admit
``2.0.0-beta``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

from connectorlock.core.dependency.version import SemanticVersion, VersionLike
from connectorlock.exceptions import InvalidConstraintError, InvalidVersionError


# ---------------------------------------------------------------------------
# Comparator: a single primitive bound
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Comparator:
    op: str
    version: SemanticVersion

    def matches(self, version: SemanticVersion) -> bool:
        op = self.op
        if op == "==":
            return version == self.version
        if op == "!=":
            return version != self.version
        if op == ">=":
            return version >= self.version
        if op == ">":
            return version > self.version
        if op == "<=":
            return version <= self.version
        if op == "<":
            return version < self.version
        raise ValueError(f"Unknown operator: {op!r}")  # pragma: no cover


_ATOM_RE = re.compile(r"^(?P<op>\^|~|>=|<=|>|<|==|=|!=)?(?P<ver>.*)$")
_PARTIAL_RE = re.compile(
    r"^(?P<major>0|[1-9]\d*|[xX*])"
    r"(?:\.(?P<minor>0|[1-9]\d*|[xX*]))?"
    r"(?:\.(?P<patch>0|[1-9]\d*|[xX*]))?$"
)
_HYPHEN_RE = re.compile(r"^(?P<low>\S+)\s+-\s+(?P<high>\S+)$")
_OPERATORS = {"^", "~", ">=", "<=", ">", "<", "==", "=", "!="}
_WILDCARDS = {"", "*", "x", "X"}


def _floor(major: int, minor: int = 0) -> SemanticVersion:
    # Lowest possible version of a release line: X.Y.0-0.
    return SemanticVersion(major, minor, 0, ("0",))


def _caret_ceiling(major: int, minor: int) -> SemanticVersion:
    if major == 0:
        return _floor(0, minor + 1)
    return _floor(major + 1)


def _parse_partial(
    text: str, raw: str
) -> tuple[SemanticVersion | None, tuple[int | None, int | None, int | None]]:
    """Parse a full version or a partial/x-range version.

    Returns:
        ``(full_version, (major, minor, patch))``. ``full_version`` is None
        for partial input; missing or wildcard components are None.
    """
    try:
        full = SemanticVersion.parse(text)
        return full, full.release
    except InvalidVersionError:
        pass
    m = _PARTIAL_RE.match(text)
    if not m:
        raise InvalidConstraintError(text, raw)
    parts: list[int | None] = []
    wildcard_seen = False
    for name in ("major", "minor", "patch"):
        value = m.group(name)
        if value is None or value in ("x", "X", "*"):
            wildcard_seen = True
            parts.append(None)
        elif wildcard_seen:
            # "1.x.3" has no meaning.
            raise InvalidConstraintError(text, raw)
        else:
            parts.append(int(value))
    return None, (parts[0], parts[1], parts[2])


def _parse_atom(token: str, raw: str) -> tuple[_Comparator, ...]:
    m = _ATOM_RE.match(token)
    if m is None:
        raise InvalidConstraintError(token, raw)
    op = m.group("op")
    ver = m.group("ver").strip()
    if op in ("=", "=="):
        op = None
    if not ver and op is not None:
        raise InvalidConstraintError(token, raw)

    if ver in _WILDCARDS:
        if op in (None, ">=", "<=", "^", "~"):
            return ()
        raise InvalidConstraintError(token, raw)

    full, (major, minor, patch) = _parse_partial(ver, raw)

    if full is not None:
        if op is None:
            return (_Comparator("==", full),)
        if op in ("!=", ">=", ">", "<=", "<"):
            return (_Comparator(op, full),)
        if op == "^":
            return (_Comparator(">=", full), _Comparator("<", _caret_ceiling(full.major, full.minor)))
        # op == "~"
        return (_Comparator(">=", full), _Comparator("<", _floor(full.major, full.minor + 1)))

    if major is None:
        raise InvalidConstraintError(ver, raw)
    low = SemanticVersion(major, minor or 0, patch or 0)
    if minor is None:
        line_ceiling = _floor(major + 1)
    else:
        line_ceiling = _floor(major, minor + 1)

    if op is None:
        return (_Comparator(">=", low), _Comparator("<", line_ceiling))
    if op == "^":
        ceiling = line_ceiling if minor is None else _caret_ceiling(major, minor)
        return (_Comparator(">=", low), _Comparator("<", ceiling))
    if op == "~":
        return (_Comparator(">=", low), _Comparator("<", line_ceiling))
    if op == ">=":
        return (_Comparator(">=", low),)
    if op == ">":
        # ">1.2" means "above every 1.2.x".
        return (_Comparator(">=", SemanticVersion(*line_ceiling.release)),)
    if op == "<":
        return (_Comparator("<", _floor(major, minor or 0)),)
    if op == "<=":
        return (_Comparator("<", line_ceiling),)
    # "!=1.2" is ambiguous; require a full version.
    raise InvalidConstraintError(token, raw)


def _parse_conjunction(text: str, raw: str) -> tuple[_Comparator, ...]:
    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        # "1.0.0 - 1.2" includes every 1.2.x.
        low = _parse_atom(">=" + hyphen.group("low"), raw)
        high = _parse_atom("<=" + hyphen.group("high"), raw)
        return low + high

    tokens = text.replace(",", " ").split()
    merged: list[str] = []
    pending_op = ""
    for tok in tokens:
        if tok in _OPERATORS:
            if pending_op:
                raise InvalidConstraintError(pending_op + " " + tok, raw)
            pending_op = tok
            continue
        merged.append(pending_op + tok)
        pending_op = ""
    if pending_op:
        raise InvalidConstraintError(pending_op, raw)

    comparators: list[_Comparator] = []
    for tok in merged:
        comparators.extend(_parse_atom(tok, raw))
    return tuple(comparators)


def _parse_expression(raw: str) -> tuple[tuple[_Comparator, ...], ...]:
    text = raw.strip()
    if "||" not in text:
        return (_parse_conjunction(text, raw),)
    alternatives = []
    for alt in text.split("||"):
        alt = alt.strip()
        if not alt:
            raise InvalidConstraintError("||", raw)
        alternatives.append(_parse_conjunction(alt, raw))
    return tuple(alternatives)


# ---------------------------------------------------------------------------
# VersionConstraint: Declarative version requirement
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VersionConstraint:
    """A version constraint, parsed eagerly from range syntax.

    Construction validates the expression, so an invalid constraint is
    rejected before any search begins.

    Attributes:
        raw: The constraint expression as authored (e.g. ``">=1.0.0 <2.0.0"``).

    Raises:
        InvalidConstraintError: If *raw* cannot be parsed.
    """

    raw: str
    _alternatives: tuple[tuple[_Comparator, ...], ...] = field(
        init=False, repr=False, compare=False, hash=False
    )

    def __post_init__(self) -> None:
        if not isinstance(self.raw, str):
            raise TypeError(
                f"constraint must be a string, got {type(self.raw).__name__}"
            )
        object.__setattr__(self, "_alternatives", _parse_expression(self.raw))

    @classmethod
    def exact(cls, version: VersionLike) -> VersionConstraint:
        """Constraint matching exactly *version*."""
        return cls(f"={SemanticVersion.coerce(version)}")

    @classmethod
    def coerce(cls, value: VersionConstraint | str) -> VersionConstraint:
        """Return *value* as a ``VersionConstraint``, parsing strings."""
        if isinstance(value, VersionConstraint):
            return value
        return cls(value)

    @property
    def is_any(self) -> bool:
        """True if the constraint admits every version."""
        return any(not alt for alt in self._alternatives)

    def satisfies(self, version: VersionLike) -> bool:
        """Check whether *version* satisfies this constraint.

        Atoms within an alternative are conjunctive; ``||`` alternatives are
        disjunctive.

        Raises:
            InvalidVersionError: If *version* is a string that is not a
                valid semantic version.
        """
        ver = SemanticVersion.coerce(version)
        return any(
            all(c.matches(ver) for c in alt) for alt in self._alternatives
        )

    def __str__(self) -> str:
        return self.raw.strip() or "*"

    def __repr__(self) -> str:
        return f"VersionConstraint({self.raw!r})"


ANY = VersionConstraint("*")


def satisfies_all(
    version: VersionLike, constraints: Iterable[VersionConstraint]
) -> bool:
    """True iff *version* satisfies every constraint (vacuously true if none)."""
    ver = SemanticVersion.coerce(version)
    return all(c.satisfies(ver) for c in constraints)


# ---------------------------------------------------------------------------
# DependencySpec & ConflictRule: edges between connectors
# ---------------------------------------------------------------------------


def _split_reference(text: str) -> tuple[str, str]:
    # Connector ids may themselves start with "@" (scoped ids).
    text = text.strip()
    idx = text.find("@", 1)
    if idx == -1:
        return text, "*"
    return text[:idx].strip(), text[idx + 1:].strip()


def _check_connector_id(connector_id: object) -> None:
    if not isinstance(connector_id, str):
        raise TypeError(
            f"connector_id must be a string, got {type(connector_id).__name__}"
        )
    if not connector_id.strip():
        raise ValueError("connector_id must not be empty")


@dataclass(frozen=True)
class DependencySpec:
    """A request edge: "connector ``connector_id`` at a version satisfying
    ``constraint`` is required".

    Either a root request from the caller, or induced by a connector
    version's declared dependency. A string constraint is parsed on
    construction.

    Attributes:
        connector_id: The required connector.
        constraint: Version constraint the chosen version must satisfy.
    """

    connector_id: str
    constraint: VersionConstraint = ANY

    def __post_init__(self) -> None:
        _check_connector_id(self.connector_id)
        object.__setattr__(self, "constraint", VersionConstraint.coerce(self.constraint))

    @classmethod
    def parse(cls, text: str) -> DependencySpec:
        """Parse ``"connector.id@range"``; a missing range means ``*``.

        Raises:
            InvalidConstraintError: If the range part cannot be parsed.
        """
        connector_id, constraint = _split_reference(text)
        return cls(connector_id, VersionConstraint(constraint))

    def __str__(self) -> str:
        return f"{self.connector_id}@{self.constraint}"


@dataclass(frozen=True)
class ConflictRule:
    """An incompatibility declaration.

    Represents: "this connector version cannot be installed together with any
    version of ``connector_id`` that satisfies ``constraint``".

    Attributes:
        connector_id: The incompatible connector.
        constraint: Versions of that connector that are incompatible.
    """

    connector_id: str
    constraint: VersionConstraint = ANY

    def __post_init__(self) -> None:
        _check_connector_id(self.connector_id)
        object.__setattr__(self, "constraint", VersionConstraint.coerce(self.constraint))

    @classmethod
    def parse(cls, text: str) -> ConflictRule:
        """Parse ``"connector.id@range"`` (e.g. ``"legacy.email@<1.0.0"``)."""
        connector_id, constraint = _split_reference(text)
        return cls(connector_id, VersionConstraint(constraint))

    def __str__(self) -> str:
        return f"{self.connector_id}@{self.constraint}"
