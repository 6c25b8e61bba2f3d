"""Build sources from spec declarations and lock entries."""

from __future__ import annotations

from typing import Any

from librarian_sources.environment import Environment
from librarian_sources.exceptions import UnrecognizedSourceOptionError

from .forge import ForgeSource
from .git import GitSource
from .protocol import ModuleSource
from .svn import SvnSource

# Spec-file keyword -> source type
SOURCE_TYPES: dict[str, type[ModuleSource]] = {
    "forge": ForgeSource,
    "git": GitSource,
    "svn": SvnSource,
}

# Lock-file section name -> source type
LOCK_TYPES: dict[str, type[ModuleSource]] = {cls.lock_name: cls for cls in SOURCE_TYPES.values()}


def source_from_spec(environment: Environment, kind: str, uri: str, options: dict[str, Any] | None = None) -> ModuleSource:
    """Build a source from a spec declaration such as `git: <uri>, ref: v1`.

    Raises:
        UnrecognizedSourceOptionError: Unknown source kind or option.
    """
    try:
        source_type = SOURCE_TYPES[kind]
    except KeyError:
        raise UnrecognizedSourceOptionError(f"Unknown source type '{kind}' for {uri}") from None
    return source_type.from_spec_args(environment, uri, dict(options or {}))


def source_from_lock(environment: Environment, lock_name: str, options: dict[str, Any]) -> ModuleSource:
    """Build a source from a lock-file section (FORGE, GIT, SVN).

    Raises:
        UnrecognizedSourceOptionError: Unknown lock section name.
    """
    try:
        source_type = LOCK_TYPES[lock_name]
    except KeyError:
        raise UnrecognizedSourceOptionError(f"Unknown lock source '{lock_name}'") from None
    return source_type.from_lock_options(environment, dict(options))
