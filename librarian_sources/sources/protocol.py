"""Protocol every module source implements."""

from __future__ import annotations

from typing import Any
from typing import ClassVar
from typing import Protocol

from librarian_sources.dependency import Dependency
from librarian_sources.dependency import Manifest
from librarian_sources.environment import Environment


class ModuleSource(Protocol):
    """Where the versions of a module live.

    The dependency resolver drives a source per module name in order:
    fetch_version, then fetch_dependencies, then (later) install.

    Equality and hashing are defined over identifying fields only, never
    over cache state, so two sources read from the same spec or lock
    entry compare equal.
    """

    lock_name: ClassVar[str]
    environment: Environment

    @classmethod
    def from_spec_args(cls, environment: Environment, uri: str, options: dict[str, Any]) -> ModuleSource:
        """Build a source from a spec-file declaration.

        Raises:
            UnrecognizedSourceOptionError: If `options` has keys this source does not accept.
        """
        ...

    @classmethod
    def from_lock_options(cls, environment: Environment, options: dict[str, Any]) -> ModuleSource:
        """Build a source from a lock-file entry (`remote` plus source options)."""
        ...

    def to_spec_args(self) -> tuple[str, dict[str, Any]]:
        """Inverse of from_spec_args."""
        ...

    def to_lock_options(self) -> dict[str, Any]:
        """Inverse of from_lock_options; always includes `remote`."""
        ...

    @property
    def is_pinned(self) -> bool:
        """True when an exact revision is fixed."""
        ...

    def unpin(self) -> None:
        """Forget the fixed revision, reverting to ref-based resolution."""
        ...

    def fetch_version(self, name: str, version_hint: str | None = None) -> str:
        """Version of `name` this source would provide."""
        ...

    def fetch_dependencies(self, name: str, version: str, version_hint: str | None = None) -> list[Dependency]:
        """Dependencies declared by `name` at `version`."""
        ...

    def manifests(self, name: str) -> list[Manifest]:
        """Every known version of `name` as a Manifest."""
        ...

    def install(self, manifest: Manifest) -> None:
        """Materialize `manifest` into the environment's install path."""
        ...
