"""Exception hierarchy for librarian-sources."""

from __future__ import annotations


class SourceError(Exception):
    """Base exception for all source backend errors."""


class UnknownModuleError(SourceError):
    """Module could not be found on the source it was looked up on."""


class HttpError(SourceError):
    """Terminal non-success, non-redirect HTTP response."""

    def __init__(self, status: int, message: str, url: str) -> None:
        self.status = status
        self.url = url
        super().__init__(f"Could not get {url} because {status} {message}")


class TooManyRedirectsError(SourceError):
    """Redirect chain exceeded the allowed number of hops."""


class RedirectCycleError(SourceError):
    """Redirect chain revisited a location it had already followed."""


class OfflineUnavailableError(SourceError):
    """Local mode is active and no vendored copy exists."""


class CommandError(SourceError):
    """External command exited with a non-zero status."""

    def __init__(self, message: str, command: str, output: str) -> None:
        self.command = command
        self.output = output
        super().__init__(message)


class InstallToolError(CommandError):
    """Module install tool failed while populating a version cache."""


class ToolNotFoundError(SourceError):
    """Required executable is not on PATH."""


class UnsupportedToolVersionError(SourceError):
    """Installed module tool is older than the minimum supported version."""


class CorruptCacheError(SourceError):
    """Cache directory exists but lacks the content it should hold."""


class InvalidDependencySpecError(SourceError):
    """Dependency constraint string could not be parsed."""


class UnrecognizedSourceOptionError(SourceError):
    """Source declaration carries options the source type does not accept."""
