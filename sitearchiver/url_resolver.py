"""URL canonicalization and same-domain admission."""

import logging
import re
from urllib.parse import quote, urlsplit, urlunsplit

from .errors import MalformedURL

logger = logging.getLogger(__name__)

# Links that cannot be fetched at all
_NON_FETCHABLE_PREFIXES = ("#", "javascript:", "mailto:", "tel:", "data:")

# Already absolute: keep as-is apart from encoding
_ABSOLUTE_URL_REGEX = re.compile(r"^https?://", re.IGNORECASE)

# Last path segment is a filename with a short extension, or a bare #fragment
_FILENAME_OR_FRAGMENT_REGEX = re.compile(r".+/(.+\.[a-zA-Z0-9]{2,5}|#[^/]*)$")
_LAST_SEGMENT_REGEX = re.compile(r"/[^/]*/?$")

_SLASH_RUN_REGEX = re.compile(r"/{2,}")

_DEFAULT_PORTS = {"http": 80, "https": 443}

# Blank page the browser reports for navigations that never committed
_IGNORE_URL_REGEX = re.compile(r".+/about:blank$", re.IGNORECASE)

# Characters that need escaping: anything outside the URL-safe set, and any
# '%' that does not start a valid escape.
_UNSAFE_CHARS_REGEX = re.compile(
    r"%(?![0-9A-Fa-f]{2})|[^A-Za-z0-9\-._~!#$&'()*+,/:;=?@\[\]%]"
)


def union_url_parts(protocol: str, domain: str, port: int, path: str | None = None) -> str:
    """Build the seed URL from its parts.

    Examples:
        union_url_parts("https", "localhost", 8080, "/") -> "https://localhost:8080/"
        union_url_parts("http", "example.com", 80, "docs") -> "http://example.com:80/docs"
    """
    partial = f"{domain}:{port}" + (f"/{path}" if path else "")
    return f"{protocol}://{_SLASH_RUN_REGEX.sub('/', partial)}"


def union_url(base_url: str, path: str | None = None) -> str:
    """Join base and path with exactly one separator at the join point."""
    path = path or ""
    separator = "" if base_url.endswith("/") or path.startswith("/") else "/"
    return f"{base_url}{separator}{path}"


def remove_double_slashes(url: str) -> str:
    """Collapse runs of '/' into one, leaving the 'scheme://' separator intact."""
    scheme, sep, rest = url.partition("://")
    if sep:
        return scheme + sep + _SLASH_RUN_REGEX.sub("/", rest)
    return _SLASH_RUN_REGEX.sub("/", url)


def remove_port(url: str) -> str:
    """Drop an explicit port from the URL's authority, if any."""
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return url
    if port is None:
        return url
    netloc = parts.netloc.rsplit(":", 1)[0]
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def remove_default_port(url: str) -> str:
    """Drop the port only when it is the scheme's default (80 for http, 443 for https).

    Examples:
        "https://example.com:443/x" -> "https://example.com/x"
        "http://example.com:8080/x" -> "http://example.com:8080/x"
    """
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return url
    if port is None or _DEFAULT_PORTS.get(parts.scheme.lower()) != port:
        return url
    return remove_port(url)


def strip_filename_or_fragment(url: str) -> str:
    """Replace a trailing filename or #fragment with its containing directory.

    Examples:
        "http://host/a/page.html" -> "http://host/a/"
        "http://host/a/#top"      -> "http://host/a/"
        "http://host/a/"          -> "http://host/a/"
        "http://host/a/b"         -> "http://host/a/b"
    """
    if url.endswith("/"):
        return url
    if _FILENAME_OR_FRAGMENT_REGEX.match(url):
        return _LAST_SEGMENT_REGEX.sub("/", url)
    return url


def encode_url(url: str) -> str:
    """Percent-encode characters that are not allowed in a URL.

    Reserved characters and existing %XX escapes are left untouched, so
    encoding an already encoded URL is a no-op.
    """
    return _UNSAFE_CHARS_REGEX.sub(lambda m: quote(m.group(0), safe=""), url)


def canonicalize(base_url: str, raw_link: str, collapse_to_directory: bool = True) -> str:
    """Resolve a raw link found on ``base_url`` into a canonical absolute URL.

    Relative links are appended to the base with a single separator, then
    doubled separators are collapsed and dot segments resolved. An explicit
    default port is dropped so both spellings of a URL dedupe together.

    Examples:
        canonicalize("http://host//a//b", "//c")           -> "http://host/a/b/c"
        canonicalize("http://host/a/page.html", "img.png") -> "http://host/a/img.png"
        canonicalize("http://host/a/", "https://cdn/x y")  -> "https://cdn/x%20y"

    Args:
        base_url: URL of the page the link was found on.
        raw_link: Attribute value as found in the page.
        collapse_to_directory: Resolve against the containing directory when
            the base ends with a filename or fragment.

    Returns:
        Canonical URL string.

    Raises:
        MalformedURL: If the link is not fetchable or resolves to an invalid URL.
    """
    link = (raw_link or "").strip()
    if not link or link.lower().startswith(_NON_FETCHABLE_PREFIXES):
        raise MalformedURL(f"Not a fetchable link: {raw_link!r}")

    if _ABSOLUTE_URL_REGEX.match(link):
        candidate = encode_url(link)
    else:
        base = base_url.split("#", 1)[0]
        if link.startswith("?"):
            joined = base.split("?", 1)[0] + link
        else:
            base = base.split("?", 1)[0]
            if collapse_to_directory:
                base = strip_filename_or_fragment(base)
            joined = union_url(base, link)
        candidate = encode_url(_remove_dot_segments(remove_double_slashes(joined)))

    candidate = remove_default_port(candidate)
    _validate(candidate)
    return candidate


def admit(candidate_url: str, params) -> bool:
    """Decide whether a canonical URL belongs to the crawled domain.

    By default the hostname only has to contain ``params.domain_base``
    (subdomains and look-alike hosts pass). With ``params.strict_domain``
    the host must equal the base domain or be one of its subdomains.
    """
    if _IGNORE_URL_REGEX.match(candidate_url):
        return False
    try:
        host = urlsplit(candidate_url).hostname
    except ValueError:
        return False
    if not host:
        return False

    base = params.domain_base.lower()
    if params.strict_domain:
        return host == base or host.endswith("." + base)
    return base in host


def filter_same_domain_links(current_url: str, links: list[str], params) -> list[str]:
    """Canonicalize raw links found on ``current_url`` and keep same-domain ones.

    Args:
        current_url: Final URL of the page the links were extracted from.
        links: Raw attribute values, in document order.
        params: CrawlParams with the domain settings.

    Returns:
        Canonical URLs admitted by the domain filter, in input order.
    """
    admitted = []
    for link in links:
        try:
            url = canonicalize(current_url, link)
        except MalformedURL as e:
            logger.debug(f"  [DROP] {e}")
            continue
        if admit(url, params):
            admitted.append(url)
        else:
            logger.debug(f"  [OUT-OF-SCOPE] {url}")
    return admitted


def _remove_dot_segments(url: str) -> str:
    scheme, sep, rest = url.partition("://")
    if not sep or "/." not in rest:
        return url

    authority, _, tail = rest.partition("/")
    path, query_sep, query = tail.partition("?")
    segments = ("/" + path).split("/")
    output: list[str] = []
    for segment in segments:
        if segment == "..":
            if len(output) > 1:
                output.pop()
        elif segment != ".":
            output.append(segment)
    if segments[-1] in (".", ".."):
        output.append("")

    return f"{scheme}://{authority}{'/'.join(output) or '/'}{query_sep}{query}"


def _validate(url: str) -> None:
    try:
        parts = urlsplit(url)
        host = parts.hostname
        parts.port  # raises ValueError on a bad port
    except ValueError as e:
        raise MalformedURL(f"Invalid URL {url!r}: {e}") from None
    if not parts.scheme or not host:
        raise MalformedURL(f"Invalid URL {url!r}: missing scheme or host")
