"""Git source: modules hosted in a git repository."""

from __future__ import annotations

import contextlib
import os
import shutil
import tarfile
import tempfile
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
from librarian_sources.exceptions import CommandError
from librarian_sources.exceptions import OfflineUnavailableError
from librarian_sources.exceptions import SourceError
from librarian_sources.exceptions import UnrecognizedSourceOptionError
from librarian_sources.sources.forge import ForgeSource
from librarian_sources.sources.local import descriptor_dependencies
from librarian_sources.sources.local import descriptor_version
from librarian_sources.sources.local import found_path
from librarian_sources.sources.local import install_from_checkout

DEFAULT_REF = "master"
DEFAULT_REMOTE = "origin"


class GitRepository:
    """A working copy under the cache, driven through the git CLI."""

    def __init__(self, environment: Environment, path: Path, module_path: str | None = None) -> None:
        self.environment = environment
        self.path = path
        self.module_path = module_path or ""

    @property
    def module_root(self) -> Path:
        return self.path / self.module_path if self.module_path else self.path

    def is_git(self) -> bool:
        return (self.path / ".git").exists()

    def clone(self, uri: str) -> None:
        self._run(["clone", "--quiet", uri, str(self.path)], chdir=False)

    def fetch(self, remote: str = DEFAULT_REMOTE, tags: bool = False) -> None:
        args = ["fetch", "--quiet", remote]
        if tags:
            args.append("--tags")
        self._run(args)

    def reset_hard(self) -> None:
        self._run(["reset", "--hard", "--quiet"])

    def clean(self) -> None:
        self._run(["clean", "-x", "-d", "--force", "--force"])

    def checkout(self, reference: str) -> None:
        self._run(["checkout", "--quiet", "--force", reference])

    def remote_branch_names(self, remote: str = DEFAULT_REMOTE) -> list[str]:
        """Branch names tracked from `remote`, without the remote prefix."""
        output = self._run(["branch", "--remotes", "--no-color"]).stdout
        names = []
        for line in output.splitlines():
            line = line.strip()
            if not line or " -> " in line or not line.startswith(f"{remote}/"):
                continue
            names.append(line[len(remote) + 1 :])
        return names

    def hash_from(self, remote: str, reference: str) -> str:
        """Commit a ref points at, preferring the remote-tracking branch."""
        if reference in self.remote_branch_names(remote):
            reference = f"{remote}/{reference}"
        return self._run(["rev-parse", f"{reference}^{{commit}}", "--quiet"]).stdout.strip()

    def current_commit_hash(self) -> str | None:
        if not self.is_git():
            return None
        try:
            return self._run(["rev-parse", "HEAD", "--quiet"]).stdout.strip()
        except CommandError:
            return None

    def is_checked_out(self, sha: str | None) -> bool:
        return bool(sha) and self.current_commit_hash() == sha

    def archive(self, sha: str, dest: Path) -> None:
        """Write a gzipped tarball of `sha` to `dest`, atomically."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}_", suffix=".tmp")
        os.close(fd)
        temp_path = Path(temp_name)
        try:
            self._run(["archive", "--format=tar.gz", f"--output={temp_path}", sha])
            temp_path.replace(dest)
        except BaseException:
            with contextlib.suppress(OSError):
                temp_path.unlink()
            raise

    def _run(self, args: list[str], chdir: bool = True) -> CommandResult:
        runner = self.environment.runner
        git = require_program(runner, "git")
        return run_checked(runner, [git, *args], cwd=self.path if chdir else None, log=self.environment.logger)


class GitSource:
    """Modules living in a git repository, optionally in a subdirectory.

    One working copy is shared by every module resolved from this source.
    Once the working copy is confirmed for this run it is never re-synced.
    """

    lock_name: ClassVar[str] = "GIT"
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
        self.sha = options.get("sha")
        self.path = options.get("path")
        self.reader = reader or DescriptorReader()
        self._repository: GitRepository | None = None
        self._cached = False

    @classmethod
    def from_spec_args(cls, environment: Environment, uri: str, options: dict[str, Any]) -> GitSource:
        unrecognized = sorted(set(options) - set(cls.spec_options))
        if unrecognized:
            raise UnrecognizedSourceOptionError(f"unrecognised options for git {uri}: {', '.join(unrecognized)}")
        return cls(environment, uri, options)

    @classmethod
    def from_lock_options(cls, environment: Environment, options: dict[str, Any]) -> GitSource:
        rest = {k: v for k, v in options.items() if k != "remote"}
        return cls(environment, options["remote"], rest)

    def __str__(self) -> str:
        ref = f"{self.uri}#{self.ref}"
        return f"{ref}({self.path})" if self.path else ref

    def __repr__(self) -> str:
        return f"GitSource({self.uri!r}, ref={self.ref!r}, sha={self.sha!r}, path={self.path!r})"

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return False
        return (
            other.uri == self.uri
            and other.ref == self.ref
            and other.path == self.path
            and (self.sha is None or other.sha is None or other.sha == self.sha)
        )

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
        options: dict[str, Any] = {"remote": self.uri, "ref": self.ref, "sha": self.sha}
        if self.path:
            options["path"] = self.path
        return options

    @property
    def is_pinned(self) -> bool:
        return bool(self.sha)

    def unpin(self) -> None:
        self.sha = None

    # -- checkout -----------------------------------------------------------

    @property
    def cache_key(self) -> str:
        return hexdigest(composite_key(self.uri, self.path, self.ref), 16)

    @property
    def repository(self) -> GitRepository:
        if self._repository is None:
            path = self.environment.cache_path / "source" / "git" / self.cache_key
            self._repository = GitRepository(self.environment, path, self.path)
        return self._repository

    @property
    def vendor_tgz(self) -> Path:
        return self.environment.vendor_source / f"{self.sha}.tar.gz"

    def is_vendor_cached(self) -> bool:
        return bool(self.sha) and self.vendor_tgz.exists()

    def cache(self) -> None:
        """Make the working copy reflect the pinned commit.

        Raises:
            OfflineUnavailableError: Local mode and no vendored snapshot.
            CommandError: A git command failed.
        """
        if self._cached:
            return

        if self.is_vendor_cached():
            self.vendor_checkout()
            self._cached = True
            return

        if self.environment.local:
            raise OfflineUnavailableError(f"Could not find a local copy of {self.uri} at {self.sha}.")

        self._sync_repository()

        if self.environment.vendor:
            self.cache_in_vendor()
        self._cached = True

    def _sync_repository(self) -> None:
        repository = self.repository
        if not repository.is_git():
            if repository.path.exists():
                shutil.rmtree(repository.path)
            repository.path.parent.mkdir(parents=True, exist_ok=True)
            repository.clone(self.uri)
            if not repository.is_git():
                raise SourceError(f"failed to clone {self.uri}")

        repository.reset_hard()
        repository.clean()

        if not repository.is_checked_out(self.sha):
            repository.fetch(DEFAULT_REMOTE)
            repository.fetch(DEFAULT_REMOTE, tags=True)
            if not self.sha:
                self.sha = repository.hash_from(DEFAULT_REMOTE, self.ref)
            if not repository.is_checked_out(self.sha):
                repository.checkout(self.sha)
            if not repository.is_checked_out(self.sha):
                raise SourceError(f"failed to checkout {self.sha} of {self}")

    def vendor_checkout(self) -> None:
        """Replace the working copy with the vendored snapshot. No network."""
        path = self.repository.path
        self.environment.logger.debug("Extracting vendored %s into %s", self.vendor_tgz, path)
        if path.exists():
            shutil.rmtree(path)
        path.mkdir(parents=True)
        try:
            with tarfile.open(self.vendor_tgz) as tf:
                tf.extractall(path=path, filter="data")  # noqa: S202
        except (OSError, tarfile.TarError) as e:
            raise SourceError(f"Unable to extract {self.vendor_tgz}: {e}") from e

    def cache_in_vendor(self) -> None:
        self.environment.logger.debug("Vendoring %s at %s to %s", self.uri, self.sha, self.vendor_tgz)
        self.repository.archive(self.sha, self.vendor_tgz)

    # -- resolver operations --------------------------------------------------

    @property
    def forge_source(self) -> ForgeSource:
        return ForgeSource.from_lock_options(self.environment, {"remote": self.environment.forge_url})

    def module_root(self, name: str) -> Path:
        return found_path(self, name, self.repository.module_root)

    def fetch_version(self, name: str, version_hint: str | None = None) -> str:
        self.cache()
        return descriptor_version(self.reader, self.module_root(name))

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
