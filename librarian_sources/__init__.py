"""Librarian Sources - source backends for a puppet module dependency manager.

Given a module name and a version constraint, a source discovers the
available versions, reads each version's own dependency list, and
materializes a chosen version into the install directory. Three
backends share one contract: a forge registry (HTTP JSON API), git
repositories, and subversion repositories.

Philosophy: the resolver decides what to install; sources only know how
to find, cache and copy it.
"""

from __future__ import annotations

# Caching
from librarian_sources.cache import ContentCache

# Collaborators
from librarian_sources.commands import CommandResult
from librarian_sources.commands import CommandRunner
from librarian_sources.commands import SubprocessRunner
from librarian_sources.config import LibrarianSettings
from librarian_sources.config import load_settings
from librarian_sources.dependency import Dependency
from librarian_sources.dependency import Manifest
from librarian_sources.descriptor import DescriptorReader
from librarian_sources.descriptor import ModuleDescriptorReader
from librarian_sources.descriptor import ModuleMetadata
from librarian_sources.environment import Environment

# Exceptions
from librarian_sources.exceptions import CommandError
from librarian_sources.exceptions import CorruptCacheError
from librarian_sources.exceptions import HttpError
from librarian_sources.exceptions import InstallToolError
from librarian_sources.exceptions import InvalidDependencySpecError
from librarian_sources.exceptions import OfflineUnavailableError
from librarian_sources.exceptions import RedirectCycleError
from librarian_sources.exceptions import SourceError
from librarian_sources.exceptions import ToolNotFoundError
from librarian_sources.exceptions import TooManyRedirectsError
from librarian_sources.exceptions import UnknownModuleError
from librarian_sources.exceptions import UnrecognizedSourceOptionError
from librarian_sources.exceptions import UnsupportedToolVersionError
from librarian_sources.http import RedirectFollowingClient

# Sources
from librarian_sources.sources import ForgeSource
from librarian_sources.sources import GitSource
from librarian_sources.sources import ModuleSource
from librarian_sources.sources import SvnSource
from librarian_sources.sources import source_from_lock
from librarian_sources.sources import source_from_spec

__all__ = [
    # Sources
    "ModuleSource",
    "ForgeSource",
    "GitSource",
    "SvnSource",
    "source_from_spec",
    "source_from_lock",
    # Values
    "Dependency",
    "Manifest",
    "ModuleMetadata",
    # Collaborators
    "Environment",
    "LibrarianSettings",
    "load_settings",
    "CommandRunner",
    "CommandResult",
    "SubprocessRunner",
    "ModuleDescriptorReader",
    "DescriptorReader",
    "RedirectFollowingClient",
    "ContentCache",
    # Exceptions
    "SourceError",
    "UnknownModuleError",
    "HttpError",
    "TooManyRedirectsError",
    "RedirectCycleError",
    "OfflineUnavailableError",
    "CommandError",
    "InstallToolError",
    "ToolNotFoundError",
    "UnsupportedToolVersionError",
    "CorruptCacheError",
    "InvalidDependencySpecError",
    "UnrecognizedSourceOptionError",
]
