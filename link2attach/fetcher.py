"""Download remote content, via the relay first and directly second."""

from __future__ import annotations

import logging
from http.cookiejar import DefaultCookiePolicy
from typing import Optional

import requests
from requests import Response
from requests.utils import get_environ_proxies

from .config import DEFAULT_CONTENT_TYPE, Settings
from .models import FetchedPayload
from .utils import truncate

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Unrecoverable fetch failure, tagged with what went wrong."""

    NETWORK = "network"
    HTTP = "http"
    TOO_LARGE = "too-large"
    EMPTY = "empty"

    def __init__(
        self,
        kind: str,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.body = body


def anonymous_session() -> requests.Session:
    """Session that never attaches netrc credentials or stored cookies."""
    session = requests.Session()
    session.trust_env = False
    session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
    return session


class ContentFetcher:
    """Resolve a URL to a bounded in-memory payload."""

    CHUNK_SIZE = 64 * 1024
    ERROR_EXCERPT_BYTES = 1024

    def __init__(
        self,
        settings: Settings,
        session: requests.Session | None = None,
        direct_session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.direct_session = direct_session or anonymous_session()
        self.max_bytes = settings.max_attachment_bytes
        self.timeout = settings.fetch_timeout_seconds

    def fetch(self, url: str, prefer_relay: bool = True) -> FetchedPayload:
        """Fetch *url*; raises FetchError on any condition we cannot recover from."""
        response = None
        if prefer_relay:
            response = self._try_relay(url)
        if response is None:
            response = self._get_direct(url)

        try:
            if not response.ok:
                body = self._error_excerpt(response)
                logger.error("Fetch of %s failed (%s): %s", url, response.status_code, body)
                raise FetchError(
                    FetchError.HTTP,
                    f"HTTP error {response.status_code}",
                    status_code=response.status_code,
                    body=body,
                )

            declared = self._declared_size(response)
            if declared is not None and declared > self.max_bytes:
                raise FetchError(
                    FetchError.TOO_LARGE,
                    f"Declared size {declared} exceeds limit of {self.max_bytes} bytes",
                )

            content = self._read_body(response)
        finally:
            response.close()

        if not content:
            raise FetchError(FetchError.EMPTY, "Remote resource is empty")

        content_type = (response.headers.get("Content-Type") or "").strip() or DEFAULT_CONTENT_TYPE
        return FetchedPayload(content=content, size=len(content), content_type=content_type)

    def _try_relay(self, url: str) -> Response | None:
        relay_url = self.settings.relay_url
        if not relay_url:
            logger.debug("No relay configured; fetching %s directly", url)
            return None
        try:
            response = self.session.get(
                relay_url, params={"url": url}, stream=True, timeout=self.timeout
            )
        except requests.RequestException as exc:
            logger.warning("Relay unreachable for %s (%s); falling back to direct fetch", url, exc)
            return None
        if response.ok:
            logger.debug("Relay served %s", url)
            return response
        logger.warning(
            "Relay returned %s for %s; falling back to direct fetch", response.status_code, url
        )
        response.close()
        return None

    def _get_direct(self, url: str) -> Response:
        try:
            return self.direct_session.get(
                url, stream=True, timeout=self.timeout, proxies=get_environ_proxies(url)
            )
        except requests.RequestException as exc:
            logger.error("Direct fetch of %s failed: %s", url, exc)
            raise FetchError(FetchError.NETWORK, f"Network error: {exc}") from exc

    def _error_excerpt(self, response: Response) -> str:
        try:
            chunk = next(iter(response.iter_content(self.ERROR_EXCERPT_BYTES)), b"")
        except requests.RequestException:
            return ""
        return truncate(chunk.decode("utf-8", errors="replace"))

    @staticmethod
    def _declared_size(response: Response) -> int | None:
        raw = response.headers.get("Content-Length")
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    def _read_body(self, response: Response) -> bytes:
        buffer = bytearray()
        try:
            for chunk in response.iter_content(self.CHUNK_SIZE):
                if not chunk:
                    continue
                buffer.extend(chunk)
                if len(buffer) > self.max_bytes:
                    raise FetchError(
                        FetchError.TOO_LARGE,
                        f"Body exceeds limit of {self.max_bytes} bytes",
                    )
        except requests.RequestException as exc:
            raise FetchError(FetchError.NETWORK, f"Network error while reading body: {exc}") from exc
        return bytes(buffer)
