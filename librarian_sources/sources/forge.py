"""Registry (forge) source: modules served by a JSON release API."""

from __future__ import annotations

import contextlib
import shutil
import tempfile
from pathlib import Path
from typing import Any
from typing import ClassVar
from urllib.parse import quote

from pydantic import BaseModel
from pydantic import Field
from pydantic import ValidationError

from librarian_sources.cache import ContentCache
from librarian_sources.cache import hexdigest
from librarian_sources.commands import require_program
from librarian_sources.dependency import Dependency
from librarian_sources.dependency import Manifest
from librarian_sources.environment import Environment
from librarian_sources.exceptions import CorruptCacheError
from librarian_sources.exceptions import InstallToolError
from librarian_sources.exceptions import InvalidDependencySpecError
from librarian_sources.exceptions import OfflineUnavailableError
from librarian_sources.exceptions import SourceError
from librarian_sources.exceptions import UnknownModuleError
from librarian_sources.exceptions import UnrecognizedSourceOptionError
from librarian_sources.exceptions import UnsupportedToolVersionError
from librarian_sources.http import RedirectFollowingClient
from librarian_sources.sources.local import install_name
from librarian_sources.versions import is_valid_version
from librarian_sources.versions import sort_versions
from librarian_sources.versions import version_key

# `puppet module` only exists from this release on
MIN_PUPPET_VERSION = "2.7.13"


class ReleaseSummary(BaseModel):
    version: str


class ReleaseListing(BaseModel):
    """Payload of `GET {base}/{module}.json`."""

    releases: list[ReleaseSummary] = Field(default_factory=list)


class Release(BaseModel):
    """One entry of `GET {base}/api/v1/releases.json`."""

    version: str
    dependencies: dict[str, str | None] | list[list[str | None]] = Field(default_factory=dict)
    file: str | None = None

    def dependency_map(self) -> dict[str, str | None]:
        if isinstance(self.dependencies, dict):
            return dict(self.dependencies)
        # Older API revisions send [[name, requirement], ...]
        return {pair[0]: (pair[1] if len(pair) > 1 else None) for pair in self.dependencies if pair and pair[0]}


class ForgeRepo:
    """Cache controller for one module name on one forge source."""

    def __init__(self, source: ForgeSource, name: str) -> None:
        self.source = source
        self.name = name
        self.cache_path = source.cache_path / name
        self._versions = ContentCache(self.cache_path / "version")

    @property
    def environment(self) -> Environment:
        return self.source.environment

    def debug(self, msg: str, *args: Any) -> None:
        self.environment.logger.debug(msg, *args)

    # -- metadata ---------------------------------------------------------

    def versions(self) -> list[str]:
        """Valid released versions, most recent first.

        Raises:
            UnknownModuleError: If the forge does not know the module.
        """
        data = self.source.api_call(f"{self.name}.json")
        if data is None:
            raise UnknownModuleError(f"Unable to find module '{self.name}' on {self.source}")

        try:
            listing = ReleaseListing.model_validate(data)
        except ValidationError as e:
            raise SourceError(f"Unexpected release listing for '{self.name}' from {self.source}: {e}") from e

        valid = []
        for release in listing.releases:
            if is_valid_version(release.version):
                valid.append(release.version)
            else:
                self.debug("Ignoring invalid version '%s' for module %s", release.version, self.name)
        return sort_versions(valid)

    def release(self, version: str) -> Release:
        """Release entry for `version`.

        Raises:
            UnknownModuleError: If the forge has no release data for it.
        """
        path = f"api/v1/releases.json?module={quote(self.name, safe='/')}&version={quote(version)}"
        data = self.source.api_call(path)
        entries = data.get(self.name) if isinstance(data, dict) else None
        if not entries:
            raise UnknownModuleError(f"Unable to find release {self.name} {version} on {self.source}")

        try:
            releases = [Release.model_validate(entry) for entry in entries]
        except ValidationError as e:
            raise SourceError(f"Unexpected release data for {self.name} {version} from {self.source}: {e}") from e

        for release in releases:
            if release.version == version:
                return release
        return releases[0]

    def dependencies(self, version: str) -> dict[str, str | None]:
        """Raw dependency mapping; constraints are not validated here."""
        return self.release(version).dependency_map()

    def manifests(self) -> list[Manifest]:
        return [Manifest(source=self.source, name=self.name, version=version) for version in self.versions()]

    # -- install ----------------------------------------------------------

    def install_version(self, version: str, install_path: Path) -> None:
        """Materialize `version` into `install_path`.

        Raises:
            OfflineUnavailableError: Local mode without a vendored artifact.
            InstallToolError: The module tool failed to unpack the version.
            CorruptCacheError: The cache claims the version but lacks its files.
        """
        if self.environment.local and not self.is_vendored(version):
            raise OfflineUnavailableError(
                f"Could not find a local copy of {self.name} at {version} (looked for {self.vendored_path(version)})"
            )

        if self.environment.vendor and not self.is_vendored(version):
            self.vendor_cache(version)

        self.cache_version_unpacked(version)

        if install_path.exists():
            shutil.rmtree(install_path)

        unpacked_path = self.version_unpacked_cache_path(version) / install_name(self.name)
        if not unpacked_path.exists():
            raise CorruptCacheError(f"{unpacked_path} does not exist, something went wrong. Try removing it manually")

        install_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(unpacked_path, install_path)

    def version_unpacked_cache_path(self, version: str) -> Path:
        return self._versions.path_for(version)

    def cache_version_unpacked(self, version: str) -> Path:
        """Unpack `version` with `puppet module install` unless already cached."""
        if version in self._versions:
            return self.version_unpacked_cache_path(version)

        puppet = self.source.checked_puppet()
        target = str(self.vendored_path(version)) if self.is_vendored(version) else self.name

        def unpack(path: Path) -> None:
            command = [
                puppet,
                "module",
                "install",
                "--version",
                version,
                "--target-dir",
                str(path),
                "--modulepath",
                str(path),
                "--ignore-dependencies",
                target,
            ]
            self.debug("Unpacking %s %s into %s", self.name, version, path)
            result = self.environment.runner.run(command)
            if not result.success:
                raise InstallToolError(
                    f"Error executing puppet module install:\n{result.command}\nError:\n{result.output}",
                    command=result.command,
                    output=result.output,
                )

        return self._versions.populate(version, unpack)

    # -- vendoring --------------------------------------------------------

    def vendored_path(self, version: str) -> Path:
        return self.environment.vendor_cache / f"{self.name.replace('/', '-', 1)}-{version}.tar.gz"

    def is_vendored(self, version: str) -> bool:
        return self.vendored_path(version).exists()

    def vendor_cache(self, version: str) -> Path:
        """Download the release artifact into the vendor cache.

        Written to a temporary file and renamed on success, so an
        interrupted download never looks like a vendored artifact.
        """
        dest = self.vendored_path(version)
        dest.parent.mkdir(parents=True, exist_ok=True)
        self.debug("Vendoring %s %s to %s", self.name, version, dest)

        temp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="wb", dir=dest.parent, prefix=f".{dest.name}_", suffix=".tmp", delete=False
            ) as tmp_file:
                temp_path = Path(tmp_file.name)
                self.download(version, tmp_file.write)
            temp_path.replace(dest)
        except BaseException:
            if temp_path:
                with contextlib.suppress(OSError):
                    temp_path.unlink()
            raise
        return dest

    def download(self, version: str, write: Any) -> None:
        """Stream the release artifact of `version` into `write`."""
        release = self.release(version)
        if not release.file:
            raise UnknownModuleError(f"No download available for {self.name} {version} on {self.source}")
        with contextlib.closing(self.source.http.get(self.source.file_url(release.file))) as response:
            for chunk in response.iter_bytes():
                write(chunk)


class ForgeSource:
    """Modules published on a forge-style registry.

    Each module name gets its own ForgeRepo handle, created on first use
    and kept for the lifetime of the source.
    """

    lock_name: ClassVar[str] = "FORGE"
    spec_options: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        environment: Environment,
        uri: str,
        options: dict[str, Any] | None = None,
        http_client: RedirectFollowingClient | None = None,
    ) -> None:
        self.environment = environment
        self.uri = uri
        self._http = http_client
        self._repos: dict[str, ForgeRepo] = {}
        self._puppet: str | None = None

    @classmethod
    def from_spec_args(cls, environment: Environment, uri: str, options: dict[str, Any]) -> ForgeSource:
        unrecognized = sorted(set(options) - set(cls.spec_options))
        if unrecognized:
            raise UnrecognizedSourceOptionError(f"unrecognised options for forge {uri}: {', '.join(unrecognized)}")
        return cls(environment, uri, options)

    @classmethod
    def from_lock_options(cls, environment: Environment, options: dict[str, Any]) -> ForgeSource:
        rest = {k: v for k, v in options.items() if k != "remote"}
        return cls(environment, options["remote"], rest)

    def __str__(self) -> str:
        return self.uri

    def __repr__(self) -> str:
        return f"ForgeSource({self.uri!r})"

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other.uri == self.uri

    def __hash__(self) -> int:
        return hash((self.lock_name, self.uri))

    def to_spec_args(self) -> tuple[str, dict[str, Any]]:
        return self.uri, {}

    def to_lock_options(self) -> dict[str, Any]:
        return {"remote": self.uri}

    @property
    def is_pinned(self) -> bool:
        return False

    def unpin(self) -> None:
        pass

    # -- paths and collaborators -------------------------------------------

    @property
    def cache_path(self) -> Path:
        return self.environment.cache_path / "source" / "puppet" / "forge" / hexdigest(self.uri)

    def install_path(self, name: str) -> Path:
        return self.environment.install_path / install_name(name)

    @property
    def http(self) -> RedirectFollowingClient:
        if self._http is None:
            self._http = RedirectFollowingClient(timeout=self.environment.timeout, log=self.environment.logger)
        return self._http

    def api_call(self, path: str) -> Any | None:
        """GET `{uri}/{path}` as JSON; None when the forge answers with an error status."""
        return self.http.get_json(f"{self.uri.rstrip('/')}/{path}")

    def file_url(self, file: str) -> str:
        if file.startswith(("http://", "https://")):
            return file
        return f"{self.uri.rstrip('/')}/{file.lstrip('/')}"

    def checked_puppet(self) -> str:
        """Path of the puppet executable, verified once to be recent enough.

        Raises:
            ToolNotFoundError: puppet is not on PATH.
            UnsupportedToolVersionError: puppet predates `puppet module`.
        """
        if self._puppet is not None:
            return self._puppet

        runner = self.environment.runner
        puppet = require_program(runner, "puppet")
        result = runner.run([puppet, "--version"])
        reported = (result.stdout.split() or [""])[0].strip()
        found = reported.replace("-", ".")
        try:
            too_old = version_key(found) < version_key(MIN_PUPPET_VERSION)
        except ValueError as e:
            raise UnsupportedToolVersionError(f"Unable to determine puppet version from {reported!r}") from e

        if too_old:
            raise UnsupportedToolVersionError(
                "To get modules from the forge, we use the puppet faces module command. "
                f"For this you need at least puppet version {MIN_PUPPET_VERSION} and you have {found}"
            )
        self._puppet = puppet
        return puppet

    def repo(self, name: str) -> ForgeRepo:
        if name not in self._repos:
            self._repos[name] = ForgeRepo(self, name)
        return self._repos[name]

    # -- resolver operations ------------------------------------------------

    def versions(self, name: str) -> list[str]:
        return self.repo(name).versions()

    def fetch_version(self, name: str, version_hint: str | None = None) -> str:
        """`version_hint` if released, else the most recent release."""
        versions = self.versions(name)
        if not versions:
            raise UnknownModuleError(f"No valid versions of '{name}' on {self}")
        if version_hint in versions:
            return version_hint
        return versions[0]

    def fetch_dependencies(self, name: str, version: str, version_hint: str | None = None) -> list[Dependency]:
        self.environment.logger.debug("      Fetching dependencies for %s %s", name, version)
        dependencies = []
        for dep_name, constraint in self.repo(name).dependencies(version).items():
            try:
                dependencies.append(Dependency.parse(dep_name, constraint))
            except InvalidDependencySpecError as e:
                raise InvalidDependencySpecError(
                    f"Error fetching dependency for {name} [{version}]: {dep_name} [{constraint}]: {e}"
                ) from e
        return dependencies

    def manifests(self, name: str) -> list[Manifest]:
        return self.repo(name).manifests()

    def manifest(self, name: str, version: str, dependencies: list[Dependency]) -> Manifest:
        return Manifest(source=self, name=name, version=version, dependencies=dependencies)

    def install(self, manifest: Manifest) -> None:
        if manifest.source != self:
            raise ValueError(f"{manifest} does not belong to {self}")
        if manifest.version is None:
            raise ValueError(f"{manifest} has no version to install")
        self.repo(manifest.name).install_version(manifest.version, self.install_path(manifest.name))

