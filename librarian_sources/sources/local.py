"""Behaviour shared by sources that work from a local checkout (git, svn)."""

from __future__ import annotations

import shutil
from pathlib import Path

from librarian_sources.dependency import Dependency
from librarian_sources.dependency import Manifest
from librarian_sources.descriptor import ModuleDescriptorReader
from librarian_sources.descriptor import normalize_module_name
from librarian_sources.environment import Environment
from librarian_sources.exceptions import InvalidDependencySpecError
from librarian_sources.exceptions import UnknownModuleError
from librarian_sources.versions import DEFAULT_VERSION

VCS_METADATA = (".git", ".svn")


def install_name(name: str) -> str:
    """Directory name a module installs under (`puppetlabs/stdlib` -> `stdlib`)."""
    return normalize_module_name(name).split("/")[-1]


def found_path(source: object, name: str, module_root: Path) -> Path:
    """Module directory inside a checkout.

    Raises:
        UnknownModuleError: If the checkout does not contain it.
    """
    if not module_root.is_dir():
        raise UnknownModuleError(f"Could not find {name} in {source} (looked in {module_root})")
    return module_root


def install_from_checkout(environment: Environment, manifest: Manifest, module_root: Path) -> Path:
    """Copy a checked-out module into the install path, replacing older content."""
    install_path = environment.install_path / install_name(manifest.name)
    if install_path.exists():
        shutil.rmtree(install_path)
    install_path.parent.mkdir(parents=True, exist_ok=True)
    environment.logger.debug("Copying %s to %s", module_root, install_path)
    shutil.copytree(module_root, install_path, ignore=shutil.ignore_patterns(*VCS_METADATA))
    return install_path


def descriptor_version(reader: ModuleDescriptorReader, module_root: Path) -> str:
    """Declared version, or DEFAULT_VERSION when nothing is declared."""
    metadata = reader.read(module_root)
    if metadata is None or not metadata.version:
        return DEFAULT_VERSION
    return metadata.version


def descriptor_dependencies(
    reader: ModuleDescriptorReader,
    module_root: Path,
    name: str,
    version: str,
    default_source: object,
) -> list[Dependency]:
    """Declared dependencies, each resolved against `default_source`."""
    metadata = reader.read(module_root)
    if metadata is None:
        return []

    dependencies = []
    for dep_name, constraint in metadata.dependencies.items():
        try:
            dependencies.append(Dependency.parse(dep_name, constraint, default_source))
        except InvalidDependencySpecError as e:
            raise InvalidDependencySpecError(
                f"Error fetching dependency for {name} [{version}]: {dep_name} [{constraint}]: {e}"
            ) from e
    return dependencies
