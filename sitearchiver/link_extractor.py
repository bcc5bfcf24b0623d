"""Link extraction from textual payloads.

The default extractor is a syntactic scan for ``href``/``src`` attribute
values, not a document parse: it also picks up matches inside scripts and
comments and misses unquoted attributes. ``SoupLinkExtractor`` walks the
parsed document instead and can be swapped in without touching the crawler.
"""

import re
from typing import Optional, Protocol

from bs4 import BeautifulSoup

# Regex: href="..." / src='...' (any case, optional whitespace around '=')
#   (href|src)   - attribute name, captured in group 1
#   \s*=\s*      - equals sign
#   ["']         - opening quote
#   ([^"']+)     - group 2: the attribute value
#   ["']         - closing quote
_ATTRIBUTE_REGEX = re.compile(r"""(href|src)\s*=\s*["']([^"']+)["']""", re.IGNORECASE)

_LINK_ATTRIBUTES = ("href", "src")


class LinkExtractor(Protocol):
    def extract(self, text: Optional[str]) -> list[str]:
        ...


def extract_links(text: Optional[str]) -> list[str]:
    """Return every href/src attribute value in ``text``, in document order.

    Values are returned verbatim and duplicates are kept.

    Args:
        text: Decoded page content. None or non-string input yields [].

    Returns:
        List of raw link strings.
    """
    if not text or not isinstance(text, str):
        return []
    return [match.group(2) for match in _ATTRIBUTE_REGEX.finditer(text)]


class RegexLinkExtractor:
    """Syntactic href/src scanner (the default)."""

    def extract(self, text: Optional[str]) -> list[str]:
        return extract_links(text)


class SoupLinkExtractor:
    """Structural extractor walking every element's href/src attribute."""

    def extract(self, text: Optional[str]) -> list[str]:
        if not text or not isinstance(text, str):
            return []

        try:
            soup = BeautifulSoup(text, "lxml")
        except Exception:
            soup = BeautifulSoup(text, "html.parser")

        links = []
        for element in soup.find_all(True):
            for attr in _LINK_ATTRIBUTES:
                value = element.get(attr)
                if isinstance(value, str) and value.strip():
                    links.append(value)
        return links


def get_link_extractor(name: str) -> LinkExtractor:
    """Look up an extractor by its CLI name ('regex' or 'soup')."""
    if name == "regex":
        return RegexLinkExtractor()
    if name == "soup":
        return SoupLinkExtractor()
    raise ValueError(f"Unknown link parser: {name!r}")
