"""HTTP transport for the SonarQube web API.

Usage:
    client = SonarClient(token="squ_xxx")
    body   = client.download("https://sonar.example.com/api/updatecenter/installed_plugins")
    body   = client.try_download_if_exists(url)          # None on HTTP 404
    ok     = client.try_download_file_if_exists(url, "out/file.zip")

The client only knows about absolute URLs. Building them from API path
templates is the job of ``sonar_preprocessor.server.SonarWebService``.
"""

import logging
from pathlib import Path

import requests

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SonarClientError(Exception):
    """Base exception for all client errors."""


class AuthenticationError(SonarClientError):
    """Raised on HTTP 401 — invalid or expired token."""


class NotFoundError(SonarClientError):
    """Raised on HTTP 404 — endpoint or resource not found."""


class NetworkError(SonarClientError):
    """Raised on connection timeout or unreachable server."""


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class SonarClient:
    """Thin wrapper around a ``requests.Session`` talking to SonarQube."""

    def __init__(self, token: str | None = None, timeout: int = 30) -> None:
        self._timeout = timeout
        self._session = requests.Session()
        # SonarQube auth: token as username, empty password
        if token:
            self._session.auth = (token, "")

    def __enter__(self) -> "SonarClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def download(self, url: str) -> str:
        """GET *url* and return the response body as text.

        Raises:
            AuthenticationError: HTTP 401
            NotFoundError:       HTTP 404
            SonarClientError:    Any other non-2xx response
            NetworkError:        Timeout or connection failure
        """
        return self._request(url).text

    def try_download_if_exists(self, url: str) -> str | None:
        """Like :meth:`download`, but return ``None`` when the server answers 404."""
        try:
            return self.download(url)
        except NotFoundError:
            logger.debug("Not found: %s", url)
            return None

    def try_download_file_if_exists(self, url: str, target_path: str | Path) -> bool:
        """Save the body of *url* to *target_path*.

        Returns ``False`` (and writes nothing) when the server answers 404.
        """
        try:
            response = self._request(url)
        except NotFoundError:
            logger.debug("Not found: %s", url)
            return False

        path = Path(target_path)
        path.write_bytes(response.content)
        logger.debug("Saved %s to '%s'", url, path)
        return True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _request(self, url: str) -> requests.Response:
        logger.debug("GET %s", url)
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.exceptions.Timeout as exc:
            raise NetworkError(
                f"Request timed out after {self._timeout}s while contacting '{url}'"
            ) from exc
        except requests.exceptions.ConnectionError as exc:
            raise NetworkError(
                f"Unable to reach SonarQube server at '{url}'"
            ) from exc

        if response.status_code == 401:
            raise AuthenticationError(
                "Authentication failed — check that your token is valid and not expired."
            )
        if response.status_code == 404:
            raise NotFoundError(
                f"Resource not found: {url}"
            )
        if not response.ok:
            raise SonarClientError(
                f"Unexpected response {response.status_code} from {url}: {response.text[:200]}"
            )

        return response
