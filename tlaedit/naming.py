"""Naming schemes for action families and control locations."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

_NUMERIC_RE = re.compile(r"^(.*?)(\d+)$")


@dataclass(frozen=True)
class NamingScheme:
    """``prefix`` followed by a zero-padded index, or a descriptive name.

    >>> NamingScheme.of("A_09").next()
    'A_10'
    """

    prefix: str
    index: int | None
    width: int = 0

    @classmethod
    def of(cls, name: str) -> NamingScheme:
        m = _NUMERIC_RE.match(name)
        if m is None or m.group(1) == "":
            return cls(name, None)
        return cls(m.group(1), int(m.group(2)), len(m.group(2)))

    @property
    def is_numeric(self) -> bool:
        return self.index is not None

    def name_at(self, index: int) -> str:
        if not self.is_numeric:
            raise ValueError(f"{self.prefix!r} has no numeric suffix")
        return f"{self.prefix}{str(index).zfill(self.width)}"

    def next(self) -> str:
        assert self.index is not None
        return self.name_at(self.index + 1)

    def same_family(self, other: NamingScheme) -> bool:
        return self.is_numeric and other.is_numeric and self.prefix == other.prefix


def family_members(name: str, candidates: Iterable[str]) -> list[str]:
    """Names in ``candidates`` sharing ``name``'s prefix, in index order."""
    scheme = NamingScheme.of(name)
    if not scheme.is_numeric:
        return [name] if name in set(candidates) else []
    members = [c for c in candidates if NamingScheme.of(c).same_family(scheme)]
    return sorted(members, key=lambda c: NamingScheme.of(c).index or 0)


def shift_map(
    scheme: NamingScheme, existing: Iterable[str]
) -> dict[str, str]:
    """Rename every family member at ``scheme.index`` or above one index up.

    ``existing`` is every name currently in use in the namespace; the map is
    computed in full before anything is renamed.
    """
    assert scheme.index is not None
    members = [
        n for n in existing
        if NamingScheme.of(n).same_family(scheme)
        and (NamingScheme.of(n).index or 0) >= scheme.index
    ]
    renames: dict[str, str] = {}
    for name in members:
        own = NamingScheme.of(name)
        assert own.index is not None
        renames[name] = own.name_at(own.index + 1)
    return renames
