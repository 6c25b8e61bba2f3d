"""Subversion source: modules hosted in an svn repository."""

from __future__ import annotations

import re
import shutil
from pathlib import Path
from typing import Any
from typing import ClassVar

from librarian_sources.cache import composite_key
from librarian_sources.cache import hexdigest
from librarian_sources.commands import CommandResult
from librarian_sources.commands import require_program
from librarian_sources.commands import run_checked
from librarian_sources.dependency import Dependency
from librarian_sources.dependency import Manifest
from librarian_sources.descriptor import DescriptorReader
from librarian_sources.descriptor import ModuleDescriptorReader
from librarian_sources.environment import Environment
from librarian_sources.exceptions import OfflineUnavailableError
from librarian_sources.exceptions import SourceError
from librarian_sources.exceptions import UnrecognizedSourceOptionError
from librarian_sources.sources.forge import ForgeSource
from librarian_sources.sources.local import descriptor_dependencies
from librarian_sources.sources.local import descriptor_version
from librarian_sources.sources.local import found_path
from librarian_sources.sources.local import install_from_checkout
from librarian_sources.versions import DEFAULT_VERSION
from librarian_sources.versions import normalize_legacy_version

DEFAULT_REF = "HEAD"

_LOG_REVISION = re.compile(r"^r(\d+) ")
_LAST_CHANGED_REV = re.compile(r"^Last Changed Rev:\s*(\d+)\s*$")


class SvnCheckout:
    """A working copy under the cache, driven through the svn CLI."""

    def __init__(self, environment: Environment, path: Path) -> None:
        self.environment = environment
        self.path = path

    def is_svn(self) -> bool:
        return (self.path / ".svn").exists()

    def checkout(self, repository_url: str) -> None:
        self._run(["checkout", "--quiet", repository_url, str(self.path)], chdir=False)

    def is_checked_out(self, rev: str) -> bool:
        return self.current_checkout_revision() == rev

    def revision_from(self, uri: str, ref: str) -> str:
        """Latest revision number of `uri` at `ref`."""
        output = self._run(["log", "-l1", f"{uri}@{ref}"], chdir=False).stdout
        for line in output.splitlines():
            if match := _LOG_REVISION.match(line):
                return match.group(1)
        raise SourceError(f"Unable to determine the revision of {uri}@{ref}")

    def current_checkout_revision(self) -> str | None:
        output = self._run(["info"]).stdout
        for line in output.splitlines():
            if match := _LAST_CHANGED_REV.match(line.strip()):
                return match.group(1)
        return None

    def _run(self, args: list[str], chdir: bool = True) -> CommandResult:
        runner = self.environment.runner
        svn = require_program(runner, "svn")
        return run_checked(runner, [svn, *args], cwd=self.path if chdir else None, log=self.environment.logger)


class SvnSource:
    """Modules living in a subversion repository.

    There is no vendoring for svn: without a matching working copy the
    server must be reachable.
    """

    lock_name: ClassVar[str] = "SVN"
    spec_options: ClassVar[tuple[str, ...]] = ("ref", "path")

    def __init__(
        self,
        environment: Environment,
        uri: str,
        options: dict[str, Any] | None = None,
        reader: ModuleDescriptorReader | None = None,
    ) -> None:
        options = options or {}
        self.environment = environment
        self.uri = uri
        self.ref = options.get("ref") or DEFAULT_REF
        self.rev = options.get("rev")
        self.path = options.get("path")
        self.reader = reader or DescriptorReader()
        self._checkout: SvnCheckout | None = None
        self._cached = False

    @classmethod
    def from_spec_args(cls, environment: Environment, uri: str, options: dict[str, Any]) -> SvnSource:
        unrecognized = sorted(set(options) - set(cls.spec_options))
        if unrecognized:
            raise UnrecognizedSourceOptionError(f"unrecognised options for svn {uri}: {', '.join(unrecognized)}")
        return cls(environment, uri, options)

    @classmethod
    def from_lock_options(cls, environment: Environment, options: dict[str, Any]) -> SvnSource:
        rest = {k: v for k, v in options.items() if k != "remote"}
        return cls(environment, options["remote"], rest)

    def __str__(self) -> str:
        ref = f"{self.uri}@{self.ref}"
        return f"{ref}({self.path})" if self.path else ref

    def __repr__(self) -> str:
        return f"SvnSource({self.uri!r}, ref={self.ref!r}, rev={self.rev!r}, path={self.path!r})"

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return False
        return other.uri == self.uri and other.ref == self.ref and other.path == self.path

    def __hash__(self) -> int:
        return hash((self.lock_name, self.uri, self.ref, self.path))

    def to_spec_args(self) -> tuple[str, dict[str, Any]]:
        options: dict[str, Any] = {}
        if self.ref != DEFAULT_REF:
            options["ref"] = self.ref
        if self.path:
            options["path"] = self.path
        return self.uri, options

    def to_lock_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"remote": self.uri, "ref": self.ref, "rev": self.rev}
        if self.path:
            options["path"] = self.path
        return options

    @property
    def is_pinned(self) -> bool:
        return bool(self.rev)

    def unpin(self) -> None:
        self.rev = None

    # -- checkout -----------------------------------------------------------

    @property
    def cache_key(self) -> str:
        return hexdigest(composite_key(self.uri, self.path, self.ref), 16)

    @property
    def checkout(self) -> SvnCheckout:
        if self._checkout is None:
            path = self.environment.cache_path / "source" / "svn" / self.cache_key
            self._checkout = SvnCheckout(self.environment, path)
        return self._checkout

    @property
    def filesystem_path(self) -> Path:
        return self.checkout.path / self.path if self.path else self.checkout.path

    def cache(self) -> None:
        """Make the working copy reflect the pinned revision.

        An existing working copy at exactly that revision is trusted as is.

        Raises:
            OfflineUnavailableError: Local mode and no working copy at a pinned revision.
            CommandError: An svn command failed.
        """
        if self._cached:
            return

        checkout = self.checkout
        if self.environment.local:
            if not (self.rev and checkout.is_svn() and checkout.is_checked_out(self.rev)):
                raise OfflineUnavailableError(
                    f"Could not find a local copy of {self.uri} at {self.rev or self.ref}; svn sources cannot be vendored."
                )
            self._cached = True
            return

        if not self.rev:
            self.rev = checkout.revision_from(self.uri, self.ref)

        if not (checkout.is_svn() and checkout.is_checked_out(self.rev)):
            if checkout.path.exists():
                shutil.rmtree(checkout.path)
            checkout.path.mkdir(parents=True)
            checkout.checkout(f"{self.uri}@{self.rev}")
        self._cached = True

    # -- resolver operations --------------------------------------------------

    @property
    def forge_source(self) -> ForgeSource:
        return ForgeSource.from_lock_options(self.environment, {"remote": self.environment.forge_url})

    def module_root(self, name: str) -> Path:
        return found_path(self, name, self.filesystem_path)

    def fetch_version(self, name: str, version_hint: str | None = None) -> str:
        """Declared version, repaired where possible.

        Hyphens become dots (`1.0.0-rc1` -> `1.0.0.rc1`); anything still
        invalid falls back to DEFAULT_VERSION.
        """
        self.cache()
        declared = descriptor_version(self.reader, self.module_root(name))
        repaired = normalize_legacy_version(declared)
        if repaired is None:
            self.environment.logger.debug(
                "Ignoring invalid version '%s' for module %s, using %s", declared, name, DEFAULT_VERSION
            )
            return DEFAULT_VERSION
        return repaired

    def fetch_dependencies(self, name: str, version: str, version_hint: str | None = None) -> list[Dependency]:
        self.cache()
        return descriptor_dependencies(self.reader, self.module_root(name), name, version, self.forge_source)

    def manifests(self, name: str) -> list[Manifest]:
        version = self.fetch_version(name)
        return [Manifest(source=self, name=name, version=version, dependencies=self.fetch_dependencies(name, version))]

    def install(self, manifest: Manifest) -> None:
        if manifest.source != self:
            raise ValueError(f"{manifest} does not belong to {self}")
        self.cache()
        install_from_checkout(self.environment, manifest, self.module_root(manifest.name))
