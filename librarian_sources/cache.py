"""Content-addressed cache directories.

A cache directory is keyed by a digest of an identifying string. Existence
of the directory after a successful population is the only cache-hit
signal: there is no TTL, no freshness metadata and no eviction.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
from collections.abc import Callable
from pathlib import Path

logger = logging.getLogger(__name__)


def hexdigest(value: str, length: int | None = None) -> str:
    """Collision-resistant hex digest of `value`, optionally truncated."""
    digest = hashlib.sha256(value.encode()).hexdigest()
    return digest[:length] if length else digest


def composite_key(remote: str, path: str | None, ref: str) -> str:
    """Identity string of a VCS checkout: remote, optional subpath and ref."""
    path_part = f"/{path}" if path else ""
    return f"{remote}{path_part}#{ref}"


class ContentCache:
    """Maps identifying keys to directories under one cache root."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def path_for(self, key: str) -> Path:
        return self.root / hexdigest(key)

    def __contains__(self, key: str) -> bool:
        return self.path_for(key).is_dir()

    def populate(self, key: str, fill: Callable[[Path], None]) -> Path:
        """Ensure the directory for `key` exists and was filled once.

        `fill` receives the freshly created directory. If it raises, the
        directory is removed before the exception propagates, so a failed
        population never counts as a cache hit.

        Returns:
            The cache directory.
        """
        path = self.path_for(key)
        if path.is_dir():
            logger.debug("Cache hit for %r: %s", key, path)
            return path

        path.mkdir(parents=True)
        try:
            fill(path)
        except BaseException:
            shutil.rmtree(path, ignore_errors=True)
            raise
        return path
