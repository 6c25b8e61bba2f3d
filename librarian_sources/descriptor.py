"""Module descriptor reading.

A checked-out module declares its own version and dependencies either in
`metadata.json` or in the legacy `Modulefile` DSL. Sources only need the
(version, dependencies) pair, so they depend on the reader protocol.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Protocol

from librarian_sources.exceptions import SourceError

logger = logging.getLogger(__name__)

METADATA_FILE = "metadata.json"
MODULEFILE = "Modulefile"

_STRING = r"""(?:'([^']*)'|"([^"]*)")"""
_VERSION_LINE = re.compile(rf"^\s*version\s*\(?\s*{_STRING}")
_DEPENDENCY_LINE = re.compile(rf"^\s*dependency\s*\(?\s*{_STRING}(?:\s*,\s*{_STRING})?")


@dataclass
class ModuleMetadata:
    """What a module says about itself."""

    version: str
    dependencies: dict[str, str | None] = field(default_factory=dict)


class ModuleDescriptorReader(Protocol):
    """Protocol for extracting module metadata from a checkout."""

    def read(self, root: Path) -> ModuleMetadata | None:
        """Read the descriptor under `root`.

        Returns:
            ModuleMetadata, or None if no descriptor file is present.
        """
        ...


def normalize_module_name(name: str) -> str:
    """`puppetlabs-stdlib` and `puppetlabs/stdlib` name the same module."""
    if "/" not in name and "-" in name:
        owner, _, rest = name.partition("-")
        return f"{owner}/{rest}"
    return name


class DescriptorReader:
    """Reads metadata.json, falling back to Modulefile."""

    def read(self, root: Path) -> ModuleMetadata | None:
        metadata_json = root / METADATA_FILE
        if metadata_json.is_file():
            return self._read_metadata_json(metadata_json)
        modulefile = root / MODULEFILE
        if modulefile.is_file():
            return self._read_modulefile(modulefile)
        return None

    def _read_metadata_json(self, path: Path) -> ModuleMetadata:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise SourceError(f"Unable to read {path}: {e}") from e

        dependencies: dict[str, str | None] = {}
        for entry in data.get("dependencies") or []:
            name = entry.get("name")
            if name:
                dependencies[normalize_module_name(name)] = entry.get("version_requirement")
        return ModuleMetadata(version=str(data.get("version") or ""), dependencies=dependencies)

    def _read_modulefile(self, path: Path) -> ModuleMetadata:
        version = ""
        dependencies: dict[str, str | None] = {}
        for line in path.read_text(encoding="utf-8").splitlines():
            if match := _VERSION_LINE.match(line):
                version = match.group(1) or match.group(2) or ""
            elif match := _DEPENDENCY_LINE.match(line):
                name = match.group(1) or match.group(2)
                requirement = match.group(3) or match.group(4)
                dependencies[normalize_module_name(name)] = requirement
        logger.debug("Read %s: version=%r, %d dependencies", path, version, len(dependencies))
        return ModuleMetadata(version=version, dependencies=dependencies)
