"""Semantic version helpers."""

from __future__ import annotations

import re

SEMVER_PATTERN = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)


def is_valid_semver(version: str) -> bool:
    return bool(SEMVER_PATTERN.match(version.strip()))


def _prerelease_key(prerelease: str | None) -> tuple:
    # Releases sort after any prerelease of the same version
    if prerelease is None:
        return (1,)
    parts = []
    for part in prerelease.split("."):
        parts.append((0, int(part), "") if part.isdigit() else (1, 0, part))
    return (0, tuple(parts))


def compare_versions(a: str, b: str) -> int:
    """Compare two versions: negative if a < b, zero if equal, positive if a > b.

    Non-semver strings fall back to plain string comparison.

    Example:
        >>> compare_versions("1.10.0", "1.9.3") > 0
        True
    """
    match_a = SEMVER_PATTERN.match(a.strip())
    match_b = SEMVER_PATTERN.match(b.strip())
    if not match_a or not match_b:
        return (a > b) - (a < b)

    key_a = (tuple(int(x) for x in match_a.group(1, 2, 3)), _prerelease_key(match_a.group(4)))
    key_b = (tuple(int(x) for x in match_b.group(1, 2, 3)), _prerelease_key(match_b.group(4)))
    return (key_a > key_b) - (key_a < key_b)


def strip_version_prefix(tag: str) -> str:
    return tag[1:] if tag.startswith("v") else tag
