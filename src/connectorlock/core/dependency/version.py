"""Semantic versions with SemVer 2.0.0 precedence.

References
----------
.. [SemVer] Preston-Werner, T. (2013). "Semantic Versioning 2.0.0."
   https://semver.org/
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Union

from connectorlock.exceptions import InvalidVersionError

_SEMVER_RE = re.compile(
    r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<pre>[0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?$"
)


def _identifier_key(identifier: str) -> tuple[int, int | str]:
    # Numeric identifiers sort before alphanumeric ones (SemVer 11.4.3).
    if identifier.isdigit():
        return (0, int(identifier))
    return (1, identifier)


@total_ordering
@dataclass(frozen=True)
class SemanticVersion:
    """An immutable semantic version.

    Build metadata is kept for display but ignored for equality, hashing and
    ordering, as required by SemVer precedence rules.

    Attributes:
        major: Major version number.
        minor: Minor version number.
        patch: Patch version number.
        prerelease: Dot-separated pre-release identifiers, empty for a
            stable release.
        build: Build metadata (e.g. ``"exp.sha.5114f85"``), or "".
    """

    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: str = field(default="", compare=False)

    @classmethod
    def parse(cls, text: str) -> SemanticVersion:
        """Parse a strict ``MAJOR.MINOR.PATCH[-PRE][+BUILD]`` string.

        Raises:
            InvalidVersionError: If *text* is not a valid semantic version.
        """
        if not isinstance(text, str):
            raise TypeError(f"version must be a string, got {type(text).__name__}")
        m = _SEMVER_RE.match(text.strip())
        if not m:
            raise InvalidVersionError(text)
        pre = m.group("pre")
        if pre:
            for ident in pre.split("."):
                # Numeric identifiers must not have leading zeros.
                if ident.isdigit() and len(ident) > 1 and ident.startswith("0"):
                    raise InvalidVersionError(text)
        return cls(
            major=int(m.group("major")),
            minor=int(m.group("minor")),
            patch=int(m.group("patch")),
            prerelease=tuple(pre.split(".")) if pre else (),
            build=m.group("build") or "",
        )

    @classmethod
    def coerce(cls, value: VersionLike) -> SemanticVersion:
        """Return *value* as a ``SemanticVersion``, parsing strings."""
        if isinstance(value, SemanticVersion):
            return value
        return cls.parse(value)

    @property
    def is_prerelease(self) -> bool:
        """True if this version carries pre-release identifiers."""
        return bool(self.prerelease)

    @property
    def release(self) -> tuple[int, int, int]:
        """The ``(major, minor, patch)`` triple."""
        return (self.major, self.minor, self.patch)

    def _key(self) -> tuple:
        if not self.prerelease:
            # A stable release outranks any of its pre-releases.
            return (self.major, self.minor, self.patch, (1,))
        return (
            self.major,
            self.minor,
            self.patch,
            (0, tuple(_identifier_key(i) for i in self.prerelease)),
        )

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key() < other._key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + self.build
        return text

    def __repr__(self) -> str:
        return f"SemanticVersion({str(self)!r})"


VersionLike = Union[SemanticVersion, str]
