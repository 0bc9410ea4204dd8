"""Known-vulnerable version table."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from preflight.deps.semver import parse_range, parse_version

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True)
class VulnerableRange:
    package: str
    range: str  # npm range of affected versions
    advisory: str = ""


DEFAULT_VULNERABLE: tuple[VulnerableRange, ...] = (
    VulnerableRange("lodash", "<4.17.21", "Prototype pollution and command injection (CVE-2021-23337)"),
    VulnerableRange("minimist", "<1.2.6", "Prototype pollution (CVE-2021-44906)"),
    VulnerableRange("axios", "<0.21.2", "Regular expression denial of service (CVE-2021-3749)"),
    VulnerableRange("node-fetch", "<2.6.7", "Exposure of sensitive headers on redirect (CVE-2022-0235)"),
)


def build_table(overrides: Mapping[str, str] | None = None) -> dict[str, VulnerableRange]:
    """Default table with *overrides* (``package -> affected range``) applied."""
    table = {entry.package: entry for entry in DEFAULT_VULNERABLE}
    for package, affected in (overrides or {}).items():
        table[package] = VulnerableRange(package, affected, "Configured vulnerable range")
    return table


def match_vulnerability(
    package: str,
    version: str,
    table: Mapping[str, VulnerableRange],
) -> VulnerableRange | None:
    """Return the entry whose affected range contains *version*, if any."""
    entry = table.get(package)
    if entry is None:
        return None
    parsed_version = parse_version(version)
    affected = parse_range(entry.range)
    if parsed_version is None or affected is None:
        return None
    return entry if affected.contains(parsed_version) else None
