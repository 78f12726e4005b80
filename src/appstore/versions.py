"""
Version comparison for app manifests.

Versions come from descriptors published by anyone in the organization,
so parsing is lenient: ``compare_versions`` never raises.
"""

from __future__ import annotations

from typing import Any, Tuple

VERSION_COMPONENTS = 3


def _component(part: str) -> int:
    part = part.strip()
    if not (part.isascii() and part.isdigit()):
        return 0
    return int(part)


def parse_version(version: Any) -> Tuple[int, int, int]:
    """
    Parse a dotted version into a (major, minor, patch) tuple.

    Missing components are 0, and so is any component that is not a
    plain non-negative integer ("1.x.3" -> (1, 0, 3)).
    """
    if not isinstance(version, str):
        version = ""
    parts = version.split(".")[:VERSION_COMPONENTS]
    numbers = [_component(p) for p in parts]
    numbers += [0] * (VERSION_COMPONENTS - len(numbers))
    return tuple(numbers)


def compare_versions(a: Any, b: Any) -> int:
    """
    Compare two dotted version strings numerically.

    Returns:
        -1 if a < b, 0 if equal, 1 if a > b.

    Example:
        compare_versions("1.2.0", "1.10.0")  # -1
        compare_versions("2", "2.0.0")       # 0
    """
    left = parse_version(a)
    right = parse_version(b)
    for x, y in zip(left, right):
        if x != y:
            return -1 if x < y else 1
    return 0


def is_newer(candidate: Any, current: Any) -> bool:
    """True if ``candidate`` is strictly newer than ``current``."""
    return compare_versions(current, candidate) < 0
