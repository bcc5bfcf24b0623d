"""Per-URL fetch strategy: rendered navigation with a raw-fetch fallback."""

import logging
import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from .config import CrawlParams
from .errors import FetchFailure

logger = logging.getLogger(__name__)

HTML_EXTENSIONS = ("html", "htm", "xhtml", "xml")

_HTML_FILENAME_REGEX = re.compile(r".+\.(html|htm|xhtml|xml)$", re.IGNORECASE)
_HTML_CONTENT_TYPE_REGEX = re.compile(r".+/(html|htm|xhtml|xml)", re.IGNORECASE)
_CHARSET_REGEX = re.compile(r"charset=[\"']?([\w.:-]+)", re.IGNORECASE)


@dataclass
class FetchResult:
    """A response that reached the server and came back."""

    url: str  # final URL, after redirects
    status: int
    headers: dict = field(default_factory=dict)
    body: bytes | None = None
    text: str | None = None

    binary = False

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")


@dataclass
class NavigationResult(FetchResult):
    """Response of a rendered navigation (HTML-like content)."""


@dataclass
class RawFetchResult(FetchResult):
    """Response of a raw resource fetch; never scanned for links."""

    binary = True


@dataclass
class FetchFailed:
    """The URL could not be fetched at all."""

    url: str
    error: str


def is_html_url(url: str) -> bool:
    """True if the URL path ends in an HTML-like extension."""
    try:
        path = urlsplit(url).path
    except ValueError:
        return False
    return bool(_HTML_FILENAME_REGEX.match(path))


def is_html_content_type(content_type: str | None) -> bool:
    return bool(content_type and _HTML_CONTENT_TYPE_REGEX.search(content_type))


def decode_body(body: bytes | None, content_type: str | None = None) -> str | None:
    """Decode a response body using the charset from its content type (UTF-8 default)."""
    if body is None:
        return None
    encoding = "utf-8"
    match = _CHARSET_REGEX.search(content_type or "")
    if match:
        encoding = match.group(1)
    try:
        return body.decode(encoding, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


class FetchStrategy:
    """Resolve URLs through a browser/network session.

    Every URL is first navigated to. When neither the URL extension nor the
    response content type looks like HTML, the rendered result is dropped and
    the URL is fetched again as a raw resource. A non-HTML URL whose
    navigation fails (the browser aborts on downloads) is also fetched raw.
    """

    def __init__(self, session, params: CrawlParams):
        self.session = session
        self.params = params

    def fetch(self, url: str) -> NavigationResult | RawFetchResult | FetchFailed:
        params = self.params
        renders = getattr(self.session, "renders", True)
        try:
            response = self.session.navigate(url, params.timeout_ms)
        except FetchFailure as e:
            # Downloads (archives, PDFs) abort rendered navigation.
            if renders and not is_html_url(url):
                logger.debug(f"  Navigation failed for {url} ({e.message}), fetching as raw resource")
                return self._raw_fetch(url)
            return FetchFailed(url, e.message)

        if response is None:
            return FetchFailed(url, "No response from browser")

        headers = response.headers or {}
        content_type = headers.get("content-type", "")
        logger.debug(f"  Response status {response.status}, content-type {content_type!r} for {url}")

        if is_html_url(url) or is_html_content_type(content_type):
            return NavigationResult(
                url=response.url or url,
                status=response.status,
                headers=headers,
                body=response.body,
                text=decode_body(response.body, content_type),
            )

        if renders:
            return self._raw_fetch(url)
        return _raw_result(url, response)

    def _raw_fetch(self, url: str) -> RawFetchResult | FetchFailed:
        try:
            response = self.session.raw_fetch(url, self.params.timeout_ms, self.params.max_retries)
        except FetchFailure as e:
            return FetchFailed(url, e.message)
        return _raw_result(url, response)


def _raw_result(url: str, response) -> RawFetchResult:
    return RawFetchResult(
        url=response.url or url,
        status=response.status,
        headers=response.headers or {},
        body=response.body,
    )
