"""Dependency entries and manifests produced by sources."""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from typing import TYPE_CHECKING

from semantic_version import SimpleSpec

from librarian_sources.exceptions import InvalidDependencySpecError
from librarian_sources.versions import parse_requirement
from librarian_sources.versions import satisfies

if TYPE_CHECKING:
    from librarian_sources.sources.protocol import ModuleSource


@dataclass(frozen=True)
class Dependency:
    """A module another module depends on.

    Attributes:
        name: Module name (`owner/name`).
        requirement: Parsed version constraint.
        source: Where to resolve the dependency; None means "same source as the dependent".
    """

    name: str
    requirement: SimpleSpec
    source: ModuleSource | None = None

    @classmethod
    def parse(cls, name: str, constraint: str | None, source: ModuleSource | None = None) -> Dependency:
        """Build a Dependency from a raw constraint string.

        Raises:
            InvalidDependencySpecError: If the constraint cannot be parsed.
        """
        try:
            requirement = parse_requirement(constraint)
        except ValueError as e:
            raise InvalidDependencySpecError(f"Invalid dependency {name} [{constraint}]: {e}") from e
        return cls(name=name, requirement=requirement, source=source)

    def satisfied_by(self, version: str) -> bool:
        return satisfies(self.requirement, version)

    def __str__(self) -> str:
        return f"{self.name} ({self.requirement})"


@dataclass
class Manifest:
    """One version of one module, as known by a source."""

    source: ModuleSource
    name: str
    version: str | None = None
    dependencies: list[Dependency] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.name}/{self.version} <{self.source}>"
