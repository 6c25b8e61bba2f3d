"""Tests for the git source."""

import io
import json
import tarfile
from pathlib import Path

import pytest
from conftest import FakeRunner
from conftest import failed
from librarian_sources.environment import Environment
from librarian_sources.exceptions import CommandError
from librarian_sources.exceptions import OfflineUnavailableError
from librarian_sources.exceptions import UnknownModuleError
from librarian_sources.exceptions import UnrecognizedSourceOptionError
from librarian_sources.sources.forge import ForgeSource
from librarian_sources.sources.git import GitSource

REMOTE = "https://git.example/puppetlabs-apache.git"
SHA = "3f2a1c9e8b7d6a5f4e3d2c1b0a9f8e7d6c5b4a39"

METADATA = {
    "name": "puppetlabs-apache",
    "version": "1.4.0",
    "dependencies": [{"name": "puppetlabs-stdlib", "version_requirement": ">= 4.0.0 < 5.0.0"}],
}


class FakeGit:
    """Plays the git CLI against a remote whose tree is `files`."""

    def __init__(self, files: dict[str, str], sha: str = SHA) -> None:
        self.files = files
        self.sha = sha
        self.head: str | None = None

    def __call__(self, args: list[str], cwd: Path | None):
        command = args[0]
        if command == "clone":
            path = Path(args[-1])
            (path / ".git").mkdir(parents=True)
            for name, content in self.files.items():
                (path / name).parent.mkdir(parents=True, exist_ok=True)
                (path / name).write_text(content)
            return ""
        if command == "branch":
            return "  origin/HEAD -> origin/master\n  origin/master\n  origin/develop\n"
        if command == "rev-parse":
            if args[1] == "HEAD":
                if self.head is None:
                    return failed(["git", *args], stderr="fatal: ambiguous argument 'HEAD'\n", exit_code=128)
                return f"{self.head}\n"
            return f"{self.sha}\n"
        if command == "checkout":
            self.head = args[-1]
            return ""
        if command == "archive":
            output = next(arg for arg in args if arg.startswith("--output="))[len("--output=") :]
            with tarfile.open(output, "w:gz") as tf:
                for entry in sorted(Path(cwd).iterdir()):
                    if entry.name != ".git":
                        tf.add(entry, arcname=entry.name)
            return ""
        return ""


def write_snapshot(path: Path, files: dict[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tf:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))


@pytest.fixture
def git(runner: FakeRunner) -> FakeGit:
    fake = FakeGit({"metadata.json": json.dumps(METADATA), "manifests/init.pp": "class apache {}\n"})
    runner.on("git", fake)
    return fake


class TestGitMetadata:
    """Tests for version and dependency discovery."""

    def test_fetch_version_from_metadata(self, environment: Environment, git: FakeGit) -> None:
        """The declared version is read from the checkout."""
        source = GitSource(environment, REMOTE)

        assert source.fetch_version("puppetlabs/apache") == "1.4.0"
        assert source.sha == SHA
        assert source.is_pinned

    def test_fetch_version_without_descriptor(self, environment: Environment, runner: FakeRunner) -> None:
        """No descriptor file means 0.0.1."""
        runner.on("git", FakeGit({"manifests/init.pp": "class apache {}\n"}))
        source = GitSource(environment, REMOTE)

        assert source.fetch_version("puppetlabs/apache") == "0.0.1"

    def test_dependencies_default_to_forge(self, environment: Environment, git: FakeGit) -> None:
        """Dependencies of git modules resolve against the default forge."""
        source = GitSource(environment, REMOTE)

        [dep] = source.fetch_dependencies("puppetlabs/apache", "1.4.0")

        assert dep.name == "puppetlabs/stdlib"
        assert dep.satisfied_by("4.2.0")
        assert dep.source == ForgeSource(environment, environment.forge_url)

    def test_subdirectory_module(self, environment: Environment, runner: FakeRunner) -> None:
        """The path option points inside the repository."""
        runner.on("git", FakeGit({"modules/apache/metadata.json": json.dumps(METADATA)}))
        source = GitSource(environment, REMOTE, {"path": "modules/apache"})

        assert source.fetch_version("puppetlabs/apache") == "1.4.0"

    def test_missing_subdirectory(self, environment: Environment, git: FakeGit) -> None:
        """A path that does not exist in the checkout is an unknown module."""
        source = GitSource(environment, REMOTE, {"path": "nope"})

        with pytest.raises(UnknownModuleError, match="nope"):
            source.fetch_version("puppetlabs/apache")

    def test_manifests(self, environment: Environment, git: FakeGit) -> None:
        """A git source offers exactly one manifest per module."""
        source = GitSource(environment, REMOTE)

        [manifest] = source.manifests("puppetlabs/apache")

        assert manifest.version == "1.4.0"
        assert [dep.name for dep in manifest.dependencies] == ["puppetlabs/stdlib"]


class TestGitCaching:
    """Tests for the checkout state machine."""

    def test_sync_sequence(self, environment: Environment, runner: FakeRunner, git: FakeGit) -> None:
        """Clone, clean, fetch, resolve and check out the pinned commit."""
        source = GitSource(environment, REMOTE, {"ref": "develop"})
        source.cache()

        verbs = [args[0] for args in runner.commands("git")]
        assert verbs[:3] == ["clone", "reset", "clean"]
        assert "fetch" in verbs
        assert ["rev-parse", "origin/develop^{commit}", "--quiet"] in runner.commands("git")
        assert ["checkout", "--quiet", "--force", SHA] in runner.commands("git")

    def test_cache_runs_once(self, environment: Environment, runner: FakeRunner, git: FakeGit) -> None:
        """The checkout procedure is memoized for the run."""
        source = GitSource(environment, REMOTE)

        source.fetch_version("puppetlabs/apache")
        calls = len(runner.calls)
        source.fetch_dependencies("puppetlabs/apache", "1.4.0")
        source.fetch_version("puppetlabs/apache")

        assert len(runner.calls) == calls

    def test_pinned_checkout_is_reused(self, environment: Environment, runner: FakeRunner, git: FakeGit) -> None:
        """A working copy already at the pinned commit is not fetched again."""
        GitSource(environment, REMOTE).cache()
        runner.calls.clear()

        GitSource(environment, REMOTE, {"sha": SHA}).cache()

        verbs = [args[0] for args in runner.commands("git")]
        assert "clone" not in verbs
        assert "fetch" not in verbs

    def test_git_failure_surfaces(self, environment: Environment, runner: FakeRunner) -> None:
        """A failing git command carries its command line and output."""
        runner.on("git", lambda args, cwd: failed(["git", *args], stderr="fatal: repository not found\n"))

        with pytest.raises(CommandError) as exc_info:
            GitSource(environment, REMOTE).cache()

        assert "clone" in exc_info.value.command
        assert "repository not found" in exc_info.value.output

    def test_install(self, environment: Environment, git: FakeGit) -> None:
        """The module is copied without VCS metadata."""
        source = GitSource(environment, REMOTE)
        [manifest] = source.manifests("puppetlabs/apache")

        source.install(manifest)

        installed = environment.install_path / "apache"
        assert (installed / "manifests" / "init.pp").exists()
        assert not (installed / ".git").exists()


class TestGitVendoring:
    """Tests for vendor snapshots and local mode."""

    def test_vendor_mode_archives_commit(self, environment: Environment, runner: FakeRunner, git: FakeGit) -> None:
        """Vendor mode leaves a snapshot named after the commit."""
        environment.vendor = True
        source = GitSource(environment, REMOTE)

        source.cache()

        snapshot = environment.vendor_source / f"{SHA}.tar.gz"
        assert snapshot.exists()
        assert source.vendor_tgz == snapshot
        assert [p.name for p in environment.vendor_source.iterdir()] == [snapshot.name]
        with tarfile.open(snapshot) as tf:
            assert "metadata.json" in tf.getnames()

    def test_snapshot_replay_needs_no_git(self, environment: Environment, runner: FakeRunner) -> None:
        """An existing snapshot is extracted without running any command."""
        environment.local = True
        write_snapshot(environment.vendor_source / f"{SHA}.tar.gz", {"metadata.json": json.dumps(METADATA)})
        source = GitSource(environment, REMOTE, {"sha": SHA})
        stale = source.repository.path / "stale.txt"
        stale.parent.mkdir(parents=True)
        stale.write_text("old")

        assert source.fetch_version("puppetlabs/apache") == "1.4.0"
        assert runner.calls == []
        assert not stale.exists()

    def test_local_mode_without_snapshot(self, environment: Environment, runner: FakeRunner) -> None:
        """Offline mode fails when nothing is vendored."""
        environment.local = True
        source = GitSource(environment, REMOTE, {"sha": SHA})

        with pytest.raises(OfflineUnavailableError, match=REMOTE):
            source.fetch_version("puppetlabs/apache")
        assert runner.calls == []

    def test_local_mode_unpinned(self, environment: Environment, runner: FakeRunner) -> None:
        """Without a commit there is no snapshot to look for."""
        environment.local = True

        with pytest.raises(OfflineUnavailableError):
            GitSource(environment, REMOTE).cache()
        assert runner.calls == []


class TestGitIdentity:
    """Tests for equality and serialization."""

    def test_equality_ignores_missing_sha(self, environment: Environment) -> None:
        """An unpinned declaration matches its pinned lock entry."""
        declared = GitSource(environment, REMOTE, {"ref": "v1.4.0"})
        locked = GitSource(environment, REMOTE, {"ref": "v1.4.0", "sha": SHA})

        assert declared == locked
        assert hash(declared) == hash(locked)
        assert locked != GitSource(environment, REMOTE, {"ref": "v1.4.0", "sha": "0" * 40})
        assert declared != GitSource(environment, REMOTE, {"ref": "v1.4.0", "path": "sub"})

    def test_round_trip(self, environment: Environment) -> None:
        """Spec and lock representations rebuild an equal source."""
        source = GitSource(environment, REMOTE, {"ref": "v1.4.0", "sha": SHA, "path": "modules/apache"})

        uri, options = source.to_spec_args()
        lock = source.to_lock_options()

        assert options == {"ref": "v1.4.0", "path": "modules/apache"}
        assert lock == {"remote": REMOTE, "ref": "v1.4.0", "sha": SHA, "path": "modules/apache"}
        assert GitSource.from_spec_args(environment, uri, options) == source
        assert GitSource.from_lock_options(environment, lock) == source

    def test_default_ref_omitted_from_spec(self, environment: Environment) -> None:
        """master is implied."""
        source = GitSource(environment, REMOTE)
        assert source.ref == "master"
        assert source.to_spec_args() == (REMOTE, {})

    def test_unpin(self, environment: Environment) -> None:
        """unpin clears the commit."""
        source = GitSource(environment, REMOTE, {"sha": SHA})
        source.unpin()
        assert source.sha is None
        assert not source.is_pinned

    def test_unrecognized_option(self, environment: Environment) -> None:
        """Only ref and path are accepted in declarations."""
        with pytest.raises(UnrecognizedSourceOptionError, match="branch"):
            GitSource.from_spec_args(environment, REMOTE, {"branch": "main"})

    def test_cache_key_depends_on_ref(self, environment: Environment) -> None:
        """Different refs get different working copies."""
        a = GitSource(environment, REMOTE, {"ref": "v1"})
        b = GitSource(environment, REMOTE, {"ref": "v2"})
        assert a.repository.path != b.repository.path
