"""Runtime environment shared by all sources of one resolution run."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path

from librarian_sources.commands import CommandRunner
from librarian_sources.commands import SubprocessRunner
from librarian_sources.config import LibrarianSettings
from librarian_sources.config import load_settings


@dataclass
class Environment:
    """Configured paths, operating mode flags and collaborators.

    Attributes:
        project_path: Root of the managed project.
        cache_path: Root of all source caches.
        install_path: Directory modules are installed into.
        vendor_path: Root of vendored artifacts (vendor/puppet).
        local: Offline mode; only vendored copies may be used.
        vendor: Vendor mode; downloaded artifacts are persisted under vendor_path.
        forge_url: Default registry for dependencies without a declared origin.
        timeout: HTTP timeout in seconds.
        runner: External command capability.
    """

    project_path: Path
    cache_path: Path
    install_path: Path
    vendor_path: Path
    local: bool = False
    vendor: bool = False
    forge_url: str = LibrarianSettings.model_fields["forge_url"].default
    timeout: float = 60.0
    runner: CommandRunner = field(default_factory=SubprocessRunner)

    @classmethod
    def from_project(
        cls,
        project_path: Path,
        settings: LibrarianSettings | None = None,
        runner: CommandRunner | None = None,
    ) -> Environment:
        """Build an environment from project settings.

        Vendor mode is on when settings say so, or (unset) when vendor/puppet exists.
        """
        project_path = Path(project_path)
        settings = settings or load_settings(project_path)
        vendor_path = project_path / "vendor" / "puppet"
        vendor = settings.vendor if settings.vendor is not None else vendor_path.exists()
        return cls(
            project_path=project_path,
            cache_path=project_path / settings.tmp / "librarian" / "cache",
            install_path=project_path / settings.path,
            vendor_path=vendor_path,
            local=settings.local,
            vendor=vendor,
            forge_url=settings.forge_url,
            timeout=settings.timeout,
            runner=runner or SubprocessRunner(),
        )

    @property
    def vendor_cache(self) -> Path:
        """Where registry artifacts are vendored."""
        return self.vendor_path / "cache"

    @property
    def vendor_source(self) -> Path:
        """Where git snapshots are vendored."""
        return self.vendor_path / "source"

    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger("librarian_sources")
