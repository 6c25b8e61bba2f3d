"""Shared fixtures: a scripted command runner and a throwaway environment."""

from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
from librarian_sources.commands import CommandResult
from librarian_sources.environment import Environment
from librarian_sources.http import RedirectFollowingClient

Handler = Callable[[list[str], Path | None], "str | CommandResult | None"]


class FakeRunner:
    """CommandRunner that records calls and answers from per-program handlers.

    A handler receives the arguments after the program name and the cwd.
    It may return stdout as a string, a full CommandResult, or None.
    Programs without a handler succeed with no output.
    """

    def __init__(self, programs: tuple[str, ...] = ("git", "svn", "puppet")) -> None:
        self.programs = set(programs)
        self.handlers: dict[str, Handler] = {}
        self.calls: list[tuple[list[str], Path | None]] = []

    def on(self, program: str, handler: Handler) -> None:
        self.handlers[program] = handler

    def which(self, program: str) -> str | None:
        return f"/usr/bin/{program}" if program in self.programs else None

    def run(self, args: list[str], cwd: Path | None = None) -> CommandResult:
        args = list(args)
        self.calls.append((args, cwd))
        program = Path(args[0]).name
        handler = self.handlers.get(program)
        answer = handler(args[1:], cwd) if handler else None
        if isinstance(answer, CommandResult):
            return answer
        return CommandResult(args=args, exit_code=0, stdout=answer or "", stderr="", cwd=cwd)

    def commands(self, program: str) -> list[list[str]]:
        """Arguments of every call made to `program`, program name stripped."""
        return [args[1:] for args, _ in self.calls if Path(args[0]).name == program]


def failed(args: list[str], stdout: str = "", stderr: str = "", exit_code: int = 1) -> CommandResult:
    return CommandResult(args=args, exit_code=exit_code, stdout=stdout, stderr=stderr)


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> RedirectFollowingClient:
    """RedirectFollowingClient whose requests are answered by `handler`."""
    return RedirectFollowingClient(client=httpx.Client(transport=httpx.MockTransport(handler), trust_env=False))


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def environment(tmp_path: Path, runner: FakeRunner) -> Environment:
    return Environment(
        project_path=tmp_path,
        cache_path=tmp_path / ".tmp" / "librarian" / "cache",
        install_path=tmp_path / "modules",
        vendor_path=tmp_path / "vendor" / "puppet",
        runner=runner,
    )
