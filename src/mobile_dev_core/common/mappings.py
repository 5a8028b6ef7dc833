"""Small collection helpers used when parsing tool output.

Tools such as ``avdmanager`` and the AVD ``config.ini`` files emit
``key: value`` / ``key=value`` blocks whose key casing is not stable across
SDK releases, hence the case-insensitive map.
"""

from __future__ import annotations

import re
from typing import Callable, Dict, Hashable, Iterator, Mapping, Optional, Set, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_SEPARATOR_RE = re.compile(r"[:=]")


class CaseInsensitiveStringMap:
    """String map whose keys are matched regardless of case."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    @classmethod
    def from_string(cls, text: str) -> "CaseInsensitiveStringMap":
        """Parse ``<key><:|=><value>`` lines.

        The first ``:`` or ``=`` on a line is the separator. Lines without a
        separator are skipped.
        """

        result = cls()
        for line in (text or "").splitlines():
            m = _SEPARATOR_RE.search(line)
            if m is None:
                continue
            key = line[: m.start()].strip()
            value = line[m.end() :].strip()
            result.set(key, value)
        return result

    def set(self, key: str, value: str) -> None:
        self._data[key.lower()] = value

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._data.get(key.lower(), default)

    def has(self, key: str) -> bool:
        return key.lower() in self._data

    def delete(self, key: str) -> bool:
        return self._data.pop(key.lower(), None) is not None

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __repr__(self) -> str:
        return f"CaseInsensitiveStringMap({self._data!r})"


def filter_map(mapping: Optional[Mapping[K, V]], predicate: Callable[[K, V], bool]) -> Dict[K, V]:
    """Return a new dict with the entries of ``mapping`` that satisfy ``predicate``."""

    if mapping is None:
        return {}
    return {k: v for k, v in mapping.items() if predicate(k, v)}


def filter_set(values: Optional[Set[V]], predicate: Callable[[V], bool]) -> Set[V]:
    """Return a new set with the members of ``values`` that satisfy ``predicate``."""

    if values is None:
        return set()
    return {v for v in values if predicate(v)}
