"""External process invocation.

All VCS and module-tool calls go through a CommandRunner so tests can
substitute a fake without patching subprocess.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from librarian_sources.exceptions import CommandError
from librarian_sources.exceptions import ToolNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of one external command."""

    args: list[str]
    exit_code: int
    stdout: str
    stderr: str
    cwd: Path | None = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def command(self) -> str:
        return shlex.join(self.args)

    @property
    def output(self) -> str:
        """Combined stdout and stderr, as a user would have seen it."""
        return self.stdout + self.stderr


class CommandRunner(Protocol):
    """Protocol for running external commands."""

    def run(self, args: list[str], cwd: Path | None = None) -> CommandResult:
        """Run a command to completion and capture its output.

        Args:
            args: Program and arguments.
            cwd: Working directory override (None: inherit).

        Returns:
            CommandResult, whatever the exit code.

        Raises:
            ToolNotFoundError: If the program is not on PATH.
        """
        ...

    def which(self, program: str) -> str | None:
        """Locate a program on PATH."""
        ...


class SubprocessRunner:
    """CommandRunner backed by subprocess.run."""

    def run(self, args: list[str], cwd: Path | None = None) -> CommandResult:
        try:
            completed = subprocess.run(
                args,
                cwd=cwd,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError(f"Unable to run {args[0]}: not found on PATH") from e
        return CommandResult(
            args=list(args),
            exit_code=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
            cwd=cwd,
        )

    def which(self, program: str) -> str | None:
        return shutil.which(program)


def run_checked(
    runner: CommandRunner,
    args: list[str],
    cwd: Path | None = None,
    log: logging.Logger | None = None,
) -> CommandResult:
    """Run a command, trace it at debug level, and raise on failure.

    Each output line is logged as `    --> line`.

    Raises:
        CommandError: If the command exits non-zero.
    """
    log = log or logger
    log.debug("Running `%s` in %s", shlex.join(args), cwd or ".")
    result = runner.run(args, cwd=cwd)

    lines = result.output.splitlines()
    if lines:
        for line in lines:
            log.debug("    --> %s", line)
    else:
        log.debug("    --> No output")

    if not result.success:
        raise CommandError(
            f"Command failed with exit code {result.exit_code}: {result.command}\n{result.output}",
            command=result.command,
            output=result.output,
        )
    return result


def require_program(runner: CommandRunner, program: str) -> str:
    """Return the full path of `program`, or raise ToolNotFoundError."""
    found = runner.which(program)
    if not found:
        raise ToolNotFoundError(f"Unable to locate `{program}` on PATH")
    return found
