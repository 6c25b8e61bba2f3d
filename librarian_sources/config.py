"""Settings for librarian-sources.

Philosophy: Simple, scope-aware YAML settings.

Scope priority (most specific wins):
1. environment (LIBRARIAN_PUPPET_* variables)
2. project (<project>/.librarian/puppet/config)
3. global (~/.librarian/puppet/config)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel
from pydantic import Field

logger = logging.getLogger(__name__)

ENV_PREFIX = "LIBRARIAN_PUPPET_"
CONFIG_RELATIVE_PATH = Path(".librarian") / "puppet" / "config"
DEFAULT_FORGE_URL = "https://forge.puppetlabs.com"


class LibrarianSettings(BaseModel):
    """Validated settings consumed by the Environment."""

    path: str = Field(default="modules", description="Install directory, relative to the project")
    tmp: str = Field(default=".tmp", description="Scratch directory holding the cache")
    local: bool = Field(default=False, description="Never reach the network; use vendored copies only")
    vendor: bool | None = Field(
        default=None, description="Force vendor mode on/off (default: on when vendor/puppet exists)"
    )
    forge_url: str = Field(default=DEFAULT_FORGE_URL, description="Registry used for undeclared origins")
    timeout: float = Field(default=60.0, description="HTTP timeout in seconds")


@dataclass
class SettingsPaths:
    """Standard paths for settings files."""

    global_settings: Path
    project_settings: Path

    @classmethod
    def for_project(cls, project_path: Path) -> SettingsPaths:
        return cls(
            global_settings=Path.home() / CONFIG_RELATIVE_PATH,
            project_settings=project_path / CONFIG_RELATIVE_PATH,
        )


def _read_scope(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    content = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(content, dict):
        logger.warning("Ignoring settings file %s: expected a mapping, got %s", path, type(content).__name__)
        return {}
    logger.debug("Loaded settings from %s", path)
    return {_normalize_key(str(k)): v for k, v in content.items()}


def _normalize_key(key: str) -> str:
    """Accept both `path` and the historical `LIBRARIAN_PUPPET_PATH` spellings."""
    if key.upper().startswith(ENV_PREFIX):
        key = key[len(ENV_PREFIX) :]
    return key.lower()


def _read_environ(environ: dict[str, str]) -> dict[str, Any]:
    return {_normalize_key(k): v for k, v in environ.items() if k.startswith(ENV_PREFIX)}


def load_settings(
    project_path: Path,
    paths: SettingsPaths | None = None,
    environ: dict[str, str] | None = None,
) -> LibrarianSettings:
    """Load and merge settings from all scopes.

    Args:
        project_path: Root of the project whose modules are managed.
        paths: Override settings file locations (tests).
        environ: Override the process environment (tests).

    Returns:
        Validated LibrarianSettings.

    Raises:
        yaml.YAMLError: If a settings file contains invalid YAML.
        pydantic.ValidationError: If a merged value has the wrong type.
    """
    paths = paths or SettingsPaths.for_project(project_path)
    environ = dict(os.environ) if environ is None else environ

    merged: dict[str, Any] = {}
    for scope in (_read_scope(paths.global_settings), _read_scope(paths.project_settings), _read_environ(environ)):
        merged.update(scope)

    known = set(LibrarianSettings.model_fields)
    return LibrarianSettings(**{k: v for k, v in merged.items() if k in known})
