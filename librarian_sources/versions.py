"""Version and requirement primitives.

Module versions follow the RubyGems grammar the forge has always accepted
(`1.2.0`, `1.0.0-alpha.beta`, `1.0.0.rc1`). Ordering and requirement
matching are delegated to `semantic_version`; a version with letters in
it is a prerelease of its numeric prefix.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from semantic_version import SimpleSpec
from semantic_version import Version

DEFAULT_VERSION = "0.0.1"

_VERSION_PATTERN = re.compile(r"^[0-9]+(\.[0-9a-zA-Z]+)*(-[0-9A-Za-z-]+(\.[0-9A-Za-z-]+)*)?$")
_SEGMENT = re.compile(r"[0-9]+|[a-zA-Z]+")
_OPERATOR_PATTERN = re.compile(r"^(~>|>=|<=|==|!=|=|>|<)?\s*(\S+)$")
_WILDCARD_PATTERN = re.compile(r"^(\d+)(?:\.(\d+))?\.[xX*]$")
_OPERATOR_SPACING = re.compile(r"(~>|>=|<=|==|!=|=|>|<)\s+")
_CLAUSE_SPLIT = re.compile(r"[\s,]+")


def is_valid_version(value: str) -> bool:
    return bool(value) and _VERSION_PATTERN.match(value) is not None


def _segments(value: str) -> tuple[list[int], tuple[str, ...]]:
    """Numeric release prefix and prerelease identifiers of a valid version."""
    # `-` starts a prerelease, as `.pre.` would
    segments = _SEGMENT.findall(value.replace("-", ".pre."))
    release: list[int] = []
    for segment in segments:
        if not segment.isdigit():
            break
        release.append(int(segment))
    prerelease = tuple(str(int(s)) if s.isdigit() else s for s in segments[len(release) :])
    return release, prerelease


def version_key(value: str) -> tuple[Version, tuple[int, ...]]:
    """Sort key for a module version.

    Release components past the patch level break ties between otherwise
    equal versions.

    Raises:
        ValueError: If `value` is not a valid version.
    """
    if not is_valid_version(value):
        raise ValueError(f"Invalid version '{value}'")
    release, prerelease = _segments(value)
    major, minor, patch = (release + [0, 0])[:3]
    return Version(major=major, minor=minor, patch=patch, prerelease=prerelease), tuple(release[3:])


def to_semver(value: str) -> Version:
    """SemVer equivalent of a module version, used for requirement matching."""
    return version_key(value)[0]


def sort_versions(versions: Iterable[str], descending: bool = True) -> list[str]:
    """Sort valid version strings by version ordering."""
    return sorted(versions, key=version_key, reverse=descending)


def normalize_legacy_version(value: str) -> str | None:
    """Repair informally written versions (`1.0.0-rc1` -> `1.0.0.rc1`).

    Returns:
        The repaired string, or None if it is still not a valid version.
    """
    repaired = value.replace("-", ".")
    return repaired if is_valid_version(repaired) else None


def parse_requirement(constraint: str | None) -> SimpleSpec:
    """Convert a module requirement string into a SimpleSpec.

    Accepts `>= 1.0.0 < 2.0.0`, `>=1.0,<2.0`, `~> 1.2`, `1.x`, `1.2.x`,
    bare versions (exact match) and empty strings (any version).

    Raises:
        ValueError: If the string cannot be interpreted.
    """
    constraint = (constraint or "").strip()
    if not constraint or constraint in ("*", "x"):
        return SimpleSpec(">=0.0.0")

    clauses: list[str] = []
    for clause in _CLAUSE_SPLIT.split(_OPERATOR_SPACING.sub(r"\1", constraint)):
        if clause:
            clauses.extend(_convert_clause(clause))

    try:
        return SimpleSpec(",".join(clauses))
    except ValueError as e:
        raise ValueError(f"Invalid requirement '{constraint}': {e}") from e


def satisfies(requirement: SimpleSpec, version: str) -> bool:
    """Whether `version` meets `requirement`; invalid versions never do."""
    try:
        return requirement.match(to_semver(version))
    except ValueError:
        return False


def _convert_clause(clause: str) -> list[str]:
    match = _OPERATOR_PATTERN.match(clause.strip())
    if not match:
        raise ValueError(f"Invalid requirement clause '{clause}'")
    operator, version = match.group(1) or "", match.group(2)

    wildcard = _WILDCARD_PATTERN.match(version)
    if wildcard:
        if operator not in ("", "=", "=="):
            raise ValueError(f"Wildcard version '{version}' cannot be combined with '{operator}'")
        major, minor = int(wildcard.group(1)), wildcard.group(2)
        if minor is None:
            return [f">={major}.0.0", f"<{major + 1}.0.0"]
        return [f">={major}.{minor}.0", f"<{major}.{int(minor) + 1}.0"]

    if not is_valid_version(version):
        raise ValueError(f"Invalid version '{version}' in requirement clause '{clause}'")
    target = str(to_semver(version))

    if operator == "~>":
        # ~> 1.2 means >= 1.2, < 2.0; ~> 1.2.3 means >= 1.2.3, < 1.3
        release, _ = _segments(version)
        upper = release[:-1] if len(release) > 1 else list(release)
        upper[-1] += 1
        return [f">={target}", f"<{to_semver('.'.join(str(p) for p in upper))}"]
    if operator in ("", "="):
        return [f"=={target}"]
    return [f"{operator}{target}"]
