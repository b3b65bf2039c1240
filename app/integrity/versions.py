from __future__ import annotations

import re
from typing import Tuple

_VERSION_RE = re.compile(r"^\s*v?(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def parse_version(value: str) -> Tuple[int, int, int]:
    """Parse the numeric core of a semantic version; pre-release tags are ignored."""
    if not isinstance(value, str):
        raise ValueError(f"version must be a string, got {type(value).__name__}")
    match = _VERSION_RE.match(value)
    if not match:
        raise ValueError(f"invalid version: {value!r}")
    major, minor, patch = (int(part) if part else 0 for part in match.groups())
    return major, minor, patch


def version_in_range(current: str, min_version: str, max_version: str) -> bool:
    version = parse_version(current)
    return parse_version(min_version) <= version <= parse_version(max_version)
