"""Version parsing and comparison.

Mobile toolchains report versions in two shapes:

  * numeric: ``34``, ``17.4``, ``1.0.0`` or the dashed form ``2-1-2``
  * codenames: ``UpsideDownCake``, ``Tiramisu`` (Android preview platforms)

Codenames have no numeric form. On Android a codenamed platform is always the
bleeding edge, so it ranks newer than any numbered release. Two different
codenames cannot be ordered and comparing them is an error.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

# x[.y[.z]] or x[-y[-z]]; separators must not mix and no leading zeros.
#   "1.0.0"   valid      "3.1-4"   invalid
#   "2-1-2"   valid      "7..8"    invalid
#   "6"       valid      "001.002" invalid
_VERSION_RE = re.compile(
    r"^(?P<major>0|[1-9]\d*)"
    r"(?:(?P<sep>[-.])(?P<minor>0|[1-9]\d*))?"
    r"(?:(?P=sep)(?P<patch>0|[1-9]\d*))?$"
)


class CodenameComparisonError(ValueError):
    """Raised when two different codename versions are compared."""


@dataclass(frozen=True)
class Version:
    major: int
    minor: int = 0
    patch: int = 0

    @classmethod
    def parse(cls, text: str) -> Optional["Version"]:
        """Parse ``x[.y[.z]]`` / ``x[-y[-z]]``; return None for codenames or junk."""

        m = _VERSION_RE.match(str(text).strip())
        if m is None:
            return None
        return cls(
            major=int(m.group("major")),
            minor=int(m.group("minor") or 0),
            patch=int(m.group("patch") or 0),
        )

    def _weight(self) -> int:
        # Minor/patch values >= 10 overlap; acceptable for mobile API levels.
        return self.major * 100 + self.minor * 10 + self.patch

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


VersionLike = Union[Version, str]


def _coerce(value: VersionLike) -> Optional[Version]:
    if isinstance(value, Version):
        return value
    return Version.parse(value)


def compare(v1: VersionLike, v2: VersionLike) -> int:
    """Return -1 if v1 is older than v2, 0 if the same and 1 if newer.

    Strings are parsed first. A string that does not parse is a codename.
    """

    version1 = _coerce(v1)
    version2 = _coerce(v2)

    if version1 is None and version2 is None:
        if str(v1).strip().casefold() == str(v2).strip().casefold():
            return 0
        raise CodenameComparisonError(
            f"Cannot compare codename versions {str(v1)!r} and {str(v2)!r}: "
            "only identical codenames can be compared"
        )
    if version1 is None:
        return 1
    if version2 is None:
        return -1

    w1 = version1._weight()
    w2 = version2._weight()
    if w1 == w2:
        return 0
    return -1 if w1 < w2 else 1


def same(v1: VersionLike, v2: VersionLike) -> bool:
    return compare(v1, v2) == 0


def same_or_newer(v1: VersionLike, v2: VersionLike) -> bool:
    return compare(v1, v2) >= 0
