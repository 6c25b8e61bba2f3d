"""Tests for scoped settings and environment construction."""

from pathlib import Path

import pytest
from librarian_sources.config import DEFAULT_FORGE_URL
from librarian_sources.config import SettingsPaths
from librarian_sources.config import load_settings
from librarian_sources.environment import Environment
from pydantic import ValidationError


@pytest.fixture
def paths(tmp_path: Path) -> SettingsPaths:
    return SettingsPaths(
        global_settings=tmp_path / "home" / "config",
        project_settings=tmp_path / "project" / "config",
    )


def write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


class TestLoadSettings:
    """Tests for load_settings."""

    def test_defaults(self, tmp_path: Path, paths: SettingsPaths) -> None:
        """No files and no variables give the defaults."""
        settings = load_settings(tmp_path, paths=paths, environ={})

        assert settings.path == "modules"
        assert settings.tmp == ".tmp"
        assert settings.local is False
        assert settings.vendor is None
        assert settings.forge_url == DEFAULT_FORGE_URL

    def test_default_forge_serves_v1_api(self) -> None:
        """The default forge is the host that answers /api/v1 and /<user>/<module>.json."""
        assert DEFAULT_FORGE_URL == "https://forge.puppetlabs.com"

    def test_project_overrides_global(self, tmp_path: Path, paths: SettingsPaths) -> None:
        """The more specific scope wins key by key."""
        write(paths.global_settings, "path: global-modules\ntimeout: 5\n")
        write(paths.project_settings, "path: project-modules\n")

        settings = load_settings(tmp_path, paths=paths, environ={})

        assert settings.path == "project-modules"
        assert settings.timeout == 5.0

    def test_environment_overrides_files(self, tmp_path: Path, paths: SettingsPaths) -> None:
        """LIBRARIAN_PUPPET_* variables beat every file."""
        write(paths.project_settings, "local: false\n")

        settings = load_settings(
            tmp_path,
            paths=paths,
            environ={"LIBRARIAN_PUPPET_LOCAL": "true", "LIBRARIAN_PUPPET_PATH": "vendor-modules", "HOME": "/x"},
        )

        assert settings.local is True
        assert settings.path == "vendor-modules"

    def test_prefixed_keys_in_files(self, tmp_path: Path, paths: SettingsPaths) -> None:
        """Historical LIBRARIAN_PUPPET_ keys are understood in files."""
        write(paths.project_settings, "LIBRARIAN_PUPPET_TMP: scratch\n")

        settings = load_settings(tmp_path, paths=paths, environ={})

        assert settings.tmp == "scratch"

    def test_unknown_keys_ignored(self, tmp_path: Path, paths: SettingsPaths) -> None:
        """Keys with no matching setting are dropped."""
        write(paths.project_settings, "destructive: true\n")

        settings = load_settings(tmp_path, paths=paths, environ={})

        assert not hasattr(settings, "destructive")

    def test_non_mapping_file_ignored(self, tmp_path: Path, paths: SettingsPaths) -> None:
        """A YAML list is skipped, not fatal."""
        write(paths.project_settings, "- a\n- b\n")

        settings = load_settings(tmp_path, paths=paths, environ={})

        assert settings.path == "modules"

    def test_wrong_type_raises(self, tmp_path: Path, paths: SettingsPaths) -> None:
        """Validation errors surface."""
        write(paths.project_settings, "timeout: soon\n")

        with pytest.raises(ValidationError):
            load_settings(tmp_path, paths=paths, environ={})


class TestEnvironmentFromProject:
    """Tests for Environment.from_project."""

    def test_paths_follow_settings(self, tmp_path: Path, paths: SettingsPaths) -> None:
        """Cache and install paths hang off the project root."""
        write(paths.project_settings, "path: mods\ntmp: scratch\n")
        settings = load_settings(tmp_path, paths=paths, environ={})

        env = Environment.from_project(tmp_path, settings=settings)

        assert env.install_path == tmp_path / "mods"
        assert env.cache_path == tmp_path / "scratch" / "librarian" / "cache"
        assert env.vendor_cache == tmp_path / "vendor" / "puppet" / "cache"
        assert env.vendor_source == tmp_path / "vendor" / "puppet" / "source"

    def test_vendor_mode_from_directory(self, tmp_path: Path, paths: SettingsPaths) -> None:
        """vendor/puppet switches vendor mode on when unset."""
        settings = load_settings(tmp_path, paths=paths, environ={})
        assert Environment.from_project(tmp_path, settings=settings).vendor is False

        (tmp_path / "vendor" / "puppet").mkdir(parents=True)
        assert Environment.from_project(tmp_path, settings=settings).vendor is True

    def test_vendor_mode_explicit(self, tmp_path: Path, paths: SettingsPaths) -> None:
        """An explicit setting beats directory detection."""
        (tmp_path / "vendor" / "puppet").mkdir(parents=True)
        settings = load_settings(tmp_path, paths=paths, environ={"LIBRARIAN_PUPPET_VENDOR": "false"})

        assert Environment.from_project(tmp_path, settings=settings).vendor is False
