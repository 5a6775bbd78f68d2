"""Semantic version values written with a leading 'v'."""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass

_VERSION_RE = re.compile(r"^\s*v?([0-9]+(?:\.[0-9]+)*)(.*)\Z", re.ASCII)
_EXTRA_RE = re.compile(
    r"^(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?\s*\Z",
    re.ASCII,
)
_MAX_COMPONENT = 2**64 - 1


class VersionError(ValueError):
    """Raised for a string that is not a valid semantic version."""


def _is_number(s: str) -> bool:
    return s.isascii() and s.isdigit()


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A parsed semantic version; build metadata does not affect ordering."""

    components: tuple[int, ...]
    pre_release: str = ""
    build_metadata: str = ""

    def __str__(self) -> str:
        text = "v" + ".".join(str(c) for c in self.components)
        if self.pre_release:
            text += "-" + self.pre_release
        if self.build_metadata:
            text += "+" + self.build_metadata
        return text

    def _compare(self, other: Version) -> int:
        for a, b in zip(self.components, other.components):
            if a != b:
                return -1 if a < b else 1
        n = min(len(self.components), len(other.components))
        if any(self.components[n:]):
            return 1
        if any(other.components[n:]):
            return -1

        if self.pre_release == other.pre_release:
            return 0
        if not self.pre_release:
            return 1
        if not other.pre_release:
            return -1

        mine = self.pre_release.split(".")
        theirs = other.pre_release.split(".")
        for a, b in zip(mine, theirs):
            if _is_number(a) and _is_number(b):
                na, nb = int(a), int(b)
                if na != nb:
                    return -1 if na < nb else 1
                continue
            if a != b:
                return -1 if a < b else 1
        if len(mine) != len(theirs):
            return -1 if len(mine) < len(theirs) else 1
        return 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._compare(other) == 0

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._compare(other) < 0

    def __hash__(self) -> int:
        components = list(self.components)
        while components and components[-1] == 0:
            components.pop()
        return hash((tuple(components), self.pre_release))


def parse(s: str) -> Version:
    """Parse a semantic version string such as ``v1.2.3-beta.1+build``."""
    if not s.startswith("v"):
        raise VersionError(f"version string {s!r} not starting with 'v'")

    match = _VERSION_RE.match(s)
    if match is None:
        raise VersionError(f"could not parse {s!r} as version")
    numbers, extra = match.group(1), match.group(2)

    parts = numbers.split(".")
    if len(parts) != 3:
        raise VersionError(f"illegal version string {s!r}")
    components = []
    for part in parts:
        if part.startswith("0") and part != "0":
            raise VersionError(f"illegal zero-prefixed version component {part!r} in {s!r}")
        value = int(part)
        if value > _MAX_COMPONENT:
            raise VersionError(f"illegal version component {part!r} in {s!r}: out of range")
        components.append(value)

    pre_release = build_metadata = ""
    if extra:
        extra_match = _EXTRA_RE.match(extra)
        if extra_match is None:
            raise VersionError(f"could not parse pre-release/metadata ({extra}) in version {s!r}")
        pre_release = extra_match.group(1) or ""
        build_metadata = extra_match.group(2) or ""
        for ident in pre_release.split("."):
            if _is_number(ident) and ident.startswith("0") and ident != "0":
                raise VersionError(f"illegal zero-prefixed version component {ident!r} in {s!r}")

    return Version(tuple(components), pre_release, build_metadata)


def less(a: Version, b: Version) -> bool:
    """Return whether ``a`` is strictly less than ``b``."""
    return a < b