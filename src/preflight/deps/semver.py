"""npm-style semantic versions and version ranges.

Ranges are normalised to a union of half-open intervals so that two
declared ranges can be tested for overlap and an installed version for
membership.  Non-registry specifiers (``workspace:``, ``file:``, git URLs,
tags such as ``next``) have no interval form; callers treat them as
unknown rather than as conflicts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------

_VERSION_RE = re.compile(
    r"^\s*[v=]*\s*(?P<major>\d+|[xX*])(?:\.(?P<minor>\d+|[xX*]))?(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?\s*$"
)
_COMPARATOR_RE = re.compile(r"^(?P<op><=|>=|<|>|=|\^|~>?)?\s*(?P<version>.+)$")
_NON_REGISTRY_PREFIXES: tuple[str, ...] = (
    "workspace:", "file:", "link:", "portal:", "npm:", "git", "http:", "https:", "github:",
)


def _pre_key(pre: tuple[str, ...]) -> tuple[tuple[int, int, str], ...]:
    return tuple((0, int(part), "") if part.isdigit() else (1, 0, part) for part in pre)


@dataclass(frozen=True)
class Version:
    """A concrete ``major.minor.patch[-pre]`` version."""

    major: int
    minor: int = 0
    patch: int = 0
    prerelease: tuple[str, ...] = ()

    @property
    def sort_key(self) -> tuple[int, int, int, int, tuple[tuple[int, int, str], ...]]:
        # A prerelease sorts before its release.
        return (self.major, self.minor, self.patch, 0 if self.prerelease else 1, _pre_key(self.prerelease))

    def __lt__(self, other: Version) -> bool:
        return self.sort_key < other.sort_key

    def __le__(self, other: Version) -> bool:
        return self.sort_key <= other.sort_key

    def __gt__(self, other: Version) -> bool:
        return self.sort_key > other.sort_key

    def __ge__(self, other: Version) -> bool:
        return self.sort_key >= other.sort_key

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{'.'.join(self.prerelease)}" if self.prerelease else base


def _partial(text: str) -> tuple[int | None, int | None, int | None, tuple[str, ...]] | None:
    match = _VERSION_RE.match(text)
    if match is None:
        return None

    def num(group: str) -> int | None:
        value = match.group(group)
        if value is None or value in ("x", "X", "*"):
            return None
        return int(value)

    major, minor, patch = num("major"), num("minor"), num("patch")
    # Anything after a wildcard is a wildcard too.
    if major is None:
        minor = patch = None
    elif minor is None:
        patch = None
    pre = tuple(match.group("pre").split(".")) if match.group("pre") else ()
    return major, minor, patch, pre


def parse_version(text: str) -> Version | None:
    """Parse a concrete version; partial versions are zero-filled (``1.2`` -> ``1.2.0``)."""
    parts = _partial(text)
    if parts is None or parts[0] is None:
        return None
    major, minor, patch, pre = parts
    return Version(major, minor or 0, patch or 0, pre)


# ---------------------------------------------------------------------------
# Intervals
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Interval:
    """``lower <= v < upper`` style interval; ``None`` bounds are unbounded."""

    lower: Version | None = None
    lower_inclusive: bool = True
    upper: Version | None = None
    upper_inclusive: bool = False

    def contains(self, version: Version) -> bool:
        if self.lower is not None:
            if version < self.lower or (version == self.lower and not self.lower_inclusive):
                return False
        if self.upper is not None:
            if version > self.upper or (version == self.upper and not self.upper_inclusive):
                return False
        return True

    def intersect(self, other: Interval) -> Interval | None:
        lower, lower_inc = self.lower, self.lower_inclusive
        if other.lower is not None and (
            lower is None or other.lower > lower or (other.lower == lower and not other.lower_inclusive)
        ):
            lower, lower_inc = other.lower, other.lower_inclusive

        upper, upper_inc = self.upper, self.upper_inclusive
        if other.upper is not None and (
            upper is None or other.upper < upper or (other.upper == upper and not other.upper_inclusive)
        ):
            upper, upper_inc = other.upper, other.upper_inclusive

        if lower is not None and upper is not None:
            if lower > upper or (lower == upper and not (lower_inc and upper_inc)):
                return None
        return Interval(lower, lower_inc, upper, upper_inc)


_ANY = Interval()
_EMPTY = Interval(Version(0), True, Version(0), False)


def _bump(major: int, minor: int | None = None) -> Version:
    if minor is None:
        return Version(major + 1, 0, 0)
    return Version(major, minor + 1, 0)


def _wildcard_interval(
    major: int | None,
    minor: int | None,
    patch: int | None,
    pre: tuple[str, ...],
) -> Interval:
    if major is None:
        return _ANY
    if minor is None:
        return Interval(Version(major), True, _bump(major), False)
    if patch is None:
        return Interval(Version(major, minor), True, _bump(major, minor), False)
    exact = Version(major, minor, patch, pre)
    return Interval(exact, True, exact, True)


def _comparator_interval(token: str) -> Interval | None:
    match = _COMPARATOR_RE.match(token)
    if match is None:
        return None
    op = match.group("op") or ""
    parts = _partial(match.group("version"))
    if parts is None:
        return None
    major, minor, patch, pre = parts

    if op in ("", "="):
        return _wildcard_interval(major, minor, patch, pre)

    if major is None:
        # ">=*" and friends match everything; "<*" and ">*" match nothing.
        return _ANY if op in (">=", "<=", "^", "~", "~>") else _EMPTY

    base = Version(major, minor or 0, patch or 0, pre)

    if op == "^":
        if major > 0 or minor is None:
            upper = _bump(major)
        elif minor > 0 or patch is None:
            upper = _bump(0, minor)
        else:
            upper = Version(0, 0, patch + 1)
        return Interval(base, True, upper, False)
    if op in ("~", "~>"):
        upper = _bump(major) if minor is None else _bump(major, minor)
        return Interval(base, True, upper, False)
    if op == ">=":
        return Interval(base, True, None, False)
    if op == "<":
        return Interval(None, True, base, False)
    if op == ">":
        if minor is None:
            return Interval(_bump(major), True, None, False)
        if patch is None:
            return Interval(_bump(major, minor), True, None, False)
        return Interval(base, False, None, False)
    if op == "<=":
        if minor is None:
            return Interval(None, True, _bump(major), False)
        if patch is None:
            return Interval(None, True, _bump(major, minor), False)
        return Interval(None, True, base, True)
    return None


def _comparator_set(text: str) -> Interval | None:
    """Intersect the space-separated comparators of one ``||`` branch."""
    text = text.strip()
    if text in ("", "*", "x", "X", "latest"):
        return _ANY

    hyphen = re.match(r"^(\S+)\s+-\s+(\S+)$", text)
    if hyphen is not None:
        low = _partial(hyphen.group(1))
        high = _partial(hyphen.group(2))
        if low is None or high is None:
            return None
        lower = Version(low[0] or 0, low[1] or 0, low[2] or 0, low[3])
        if high[0] is None:
            return Interval(lower, True, None, False)
        if high[1] is None:
            return Interval(lower, True, _bump(high[0]), False)
        if high[2] is None:
            return Interval(lower, True, _bump(high[0], high[1]), False)
        return Interval(lower, True, Version(high[0], high[1], high[2], high[3]), True)

    # Glue operators to their versions: ">= 1.2" -> ">=1.2".
    tokens = re.sub(r"(<=|>=|<|>|=|\^|~>?)\s+", r"\1", text).split()
    result = _ANY
    for token in tokens:
        interval = _comparator_interval(token)
        if interval is None:
            return None
        narrowed = result.intersect(interval)
        if narrowed is None:
            return _EMPTY
        result = narrowed
    return result


@dataclass(frozen=True)
class VersionRange:
    """A parsed npm range: a union of intervals."""

    raw: str
    intervals: tuple[Interval, ...]

    def contains(self, version: Version) -> bool:
        return any(interval.contains(version) for interval in self.intervals)

    def overlaps(self, other: VersionRange) -> bool:
        return any(a.intersect(b) is not None for a in self.intervals for b in other.intervals)

    def min_version(self) -> Version | None:
        """Lowest version the range admits (``0.0.0`` when unbounded below)."""
        lowers = [
            interval.lower if interval.lower is not None else Version(0)
            for interval in self.intervals
            if interval.intersect(interval) is not None
        ]
        return min(lowers, key=lambda v: v.sort_key) if lowers else None


def is_registry_range(spec: str) -> bool:
    """False for ``workspace:``, ``file:``, git and URL specifiers."""
    return not spec.strip().startswith(_NON_REGISTRY_PREFIXES)


def parse_range(spec: str) -> VersionRange | None:
    """Parse an npm range; ``None`` when *spec* has no semver interpretation."""
    if not is_registry_range(spec):
        return None
    intervals: list[Interval] = []
    for branch in spec.split("||"):
        interval = _comparator_set(branch)
        if interval is None:
            return None
        intervals.append(interval)
    return VersionRange(spec, tuple(intervals))


# ---------------------------------------------------------------------------
# Convenience predicates
# ---------------------------------------------------------------------------


def satisfies(version: str, spec: str) -> bool:
    """True if *version* lies in *spec*; unparseable input counts as satisfied."""
    parsed_version = parse_version(version)
    parsed_range = parse_range(spec)
    if parsed_version is None or parsed_range is None:
        return True
    return parsed_range.contains(parsed_version)


def ranges_overlap(first: str, second: str) -> bool:
    """True if some version satisfies both ranges; unknown ranges overlap."""
    a = parse_range(first)
    b = parse_range(second)
    if a is None or b is None:
        return True
    return a.overlaps(b)


def min_version(spec: str) -> Version | None:
    parsed = parse_range(spec)
    return parsed.min_version() if parsed is not None else None
