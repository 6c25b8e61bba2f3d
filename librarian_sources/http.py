"""Redirect-following HTTP GET used by the registry source."""

from __future__ import annotations

import contextlib
import logging
from typing import Any
from urllib.request import getproxies
from urllib.request import proxy_bypass

import httpx

from librarian_sources.exceptions import HttpError
from librarian_sources.exceptions import RedirectCycleError
from librarian_sources.exceptions import SourceError
from librarian_sources.exceptions import TooManyRedirectsError

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 10


class RedirectFollowingClient:
    """GET with explicit redirect handling on top of httpx.

    httpx's own redirect support is disabled so that every hop is traced,
    bounded and checked for cycles here. No retries: a single non-success,
    non-redirect response is terminal.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float = 60.0,
        max_redirects: int = MAX_REDIRECTS,
        log: logging.Logger | None = None,
    ) -> None:
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=False, trust_env=True)
        self.max_redirects = max_redirects
        self._log = log or logger

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> RedirectFollowingClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def get(self, url: str) -> httpx.Response:
        """GET `url`, following redirects.

        Returns:
            An open streaming response with a success status. The body is
            unread; callers must close it (`contextlib.closing`).

        Raises:
            TooManyRedirectsError: More than max_redirects redirects.
            RedirectCycleError: A redirect pointed at an already visited URL.
            HttpError: Terminal non-success status.
            SourceError: Transport failure (connection, timeout).
        """
        current = httpx.URL(url)
        visited: list[str] = [str(current)]

        while True:
            self._trace(current)
            try:
                request = self._client.build_request("GET", current)
                response = self._client.send(request, stream=True)
            except httpx.HTTPError as e:
                raise SourceError(f"Could not get {url}: {e}") from e

            if response.is_success:
                self._log.debug("Responded with success")
                return response

            if response.is_redirect:
                location = response.headers["Location"]
                response.close()
                target = current.join(location)
                self._log.debug("Responded with redirect to %s", target)
                if len(visited) > self.max_redirects:
                    raise TooManyRedirectsError(f"Could not get {url} because too many redirects!")
                if str(target) in visited:
                    raise RedirectCycleError(f"Could not get {url} because redirect cycle! ({target})")
                visited.append(str(target))
                current = target
                continue

            status = response.status_code
            reason = response.reason_phrase
            response.close()
            raise HttpError(status, reason, url)

    def get_json(self, url: str) -> Any | None:
        """GET and parse a JSON document.

        Returns:
            Parsed JSON, or None when the server answered with an error status.

        Raises:
            SourceError: On redirect problems, transport failure or invalid JSON.
        """
        try:
            response = self.get(url)
        except HttpError as e:
            self._log.debug("GET %s failed with %s", url, e.status)
            return None
        with contextlib.closing(response):
            response.read()
            try:
                return response.json()
            except ValueError as e:
                raise SourceError(f"Invalid JSON from {url}: {e}") from e

    def _trace(self, url: httpx.URL) -> None:
        self._log.debug("Performing http-get for %s", url)
        self._log.debug("  url.path = %s", url.path)
        self._log.debug("  url.host = %s", url.host)
        self._log.debug("  url.port = %s", url.port or ("443" if url.scheme == "https" else "80"))
        self._log.debug("  url.request_uri = %s", url.raw_path.decode("ascii"))
        proxy = _proxy_for(url)
        if proxy:
            self._log.debug("  proxy = %s", proxy)


def _proxy_for(url: httpx.URL) -> str | None:
    """Proxy httpx will use for `url` given the process environment."""
    if url.host and proxy_bypass(url.host):
        return None
    proxies = getproxies()
    return proxies.get(url.scheme) or proxies.get("all")
