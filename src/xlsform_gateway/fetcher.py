"""
Remote fetcher for XLSForm documents.

Downloads a spreadsheet from a caller-supplied URL into memory and derives a
normalized filename for it. The bytes are passed on untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from http.cookiejar import DefaultCookiePolicy
from typing import Iterable, Optional
from urllib.parse import urljoin, urlsplit

import requests

from .errors import FetchError
from .utils import basename, normalize_extension, split_extension

logger = logging.getLogger(__name__)

ZIP_SIGNATURE = b"PK"
FALLBACK_FILENAME = "form"
REDIRECT_STATUSES = (301, 302, 303, 307, 308)
MAX_REDIRECTS = 30


@dataclass(frozen=True)
class FetchedDocument:
    content: bytes
    filename: str

    @property
    def stem(self) -> str:
        return split_extension(self.filename)[0]

    @property
    def size(self) -> int:
        return len(self.content)


def derive_filename(url: str) -> str:
    """
    Derive a normalized spreadsheet filename from a URL.

    The last non-empty path segment is used with any query string or
    fragment removed; only an empty path falls back to ``form``.
    The extension is then coerced onto ``.xlsx``/``.xls``/``.xlsm``.

    Example:
        >>> derive_filename("https://example.com/forms/survey.xlsx?token=abc")
        "survey.xlsx"
        >>> derive_filename("https://example.com/forms/download")
        "download.xlsx"
        >>> derive_filename("https://example.com/forms/")
        "forms.xlsx"
    """
    path = urlsplit(url).path
    name = basename(path.rstrip("/")) or FALLBACK_FILENAME
    return normalize_extension(name)


def looks_like_zip(content: bytes) -> bool:
    """True when the payload starts with the ZIP local-file-header magic (``PK``)."""
    return content[:2] == ZIP_SIGNATURE


def new_session() -> requests.Session:
    """
    A ``requests.Session`` whose cookie jar refuses every cookie.

    Sessions are shared by all request threads, so a ``Set-Cookie`` from one
    caller's form host must never ride along on the next caller's request.
    """
    session = requests.Session()
    session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
    return session


class RemoteFetcher:
    """
    Fetches documents over HTTP(S).

    Redirects are followed by hand so every hop passes ``check_url``.

    Args:
        session: Shared ``requests.Session``; a cookie-less one is created if omitted
        timeout: Seconds to wait on connect and on each read
        allowed_hosts: When non-empty, only these hosts may be fetched from
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = 60.0,
        allowed_hosts: Iterable[str] = (),
    ):
        self.session = session or new_session()
        self.timeout = timeout
        self.allowed_hosts = frozenset(host.lower() for host in allowed_hosts)

    def check_url(self, url: str) -> None:
        """
        Apply the host allow-list, if one is configured.

        Raises:
            FetchError: If the scheme or host is not permitted
        """
        if not self.allowed_hosts:
            return
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https"):
            raise FetchError(f"scheme {parts.scheme!r} is not allowed")
        host = (parts.hostname or "").lower()
        if host not in self.allowed_hosts:
            raise FetchError(f"host {host!r} is not allowed")

    def _get(self, url: str) -> requests.Response:
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            self.check_url(current)
            try:
                response = self.session.get(current, timeout=self.timeout, allow_redirects=False)
            except requests.exceptions.RequestException as e:
                logger.error(f"Error downloading file from {current}: {e}")
                raise FetchError(f"request error: {e}", cause=e) from e

            location = response.headers.get("Location")
            if response.status_code not in REDIRECT_STATUSES or not location:
                return response
            response.close()
            current = urljoin(current, location)
            logger.info(f"Following redirect from {url} to {current}")

        logger.error(f"Too many redirects while downloading {url}")
        raise FetchError(f"too many redirects (more than {MAX_REDIRECTS})")

    def fetch(self, url: str) -> FetchedDocument:
        """
        Download ``url`` completely into memory.

        Returns:
            FetchedDocument with the raw bytes and the normalized filename

        Raises:
            FetchError: On a rejected URL or redirect target, a transport
                failure or a non-2xx status
        """
        response = self._get(url)

        with response:
            if not 200 <= response.status_code < 300:
                logger.error(f"Download of {url} returned status {response.status_code}")
                raise FetchError(f"unexpected status: {response.status_code}", status=response.status_code)
            try:
                content = response.content
            except requests.exceptions.RequestException as e:
                logger.error(f"Error reading body from {url}: {e}")
                raise FetchError(f"read error: {e}", cause=e) from e

        filename = derive_filename(url)
        if not looks_like_zip(content):
            logger.warning(f"{filename} does not start with a ZIP signature (first bytes: {content[:2].hex()})")
        logger.info(f"Downloaded file: {filename} ({len(content)} bytes)")
        return FetchedDocument(content=content, filename=filename)
