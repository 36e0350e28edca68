"""Markup sanitizing and pretty-printing.

Disallowed tags are unwrapped (their text survives), except for tags whose
content is never text (script, style, ...), which are dropped whole.
"""

from __future__ import annotations

import re
from typing import Optional

from bs4 import BeautifulSoup
from bs4.element import NavigableString, PreformattedString

from sourcecrawler.ingestion.post_types import TagWhitelist

# Dropped with their content unless explicitly allowed.
NON_TEXT_TAGS = frozenset({"script", "style", "textarea", "option", "noscript", "template", "head", "title"})

VOID_TAGS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta",
    "param", "source", "track", "wbr",
})

URL_ATTRIBUTES = frozenset({"href", "src", "cite", "action", "poster"})
ALLOWED_SCHEMES = frozenset({"http", "https", "mailto", "ftp", "tel"})

_SCHEME_RE = re.compile(r"^\s*([a-zA-Z][a-zA-Z0-9+.\-]*):")
_WS_RE = re.compile(r"\s+")


def _parse(html: Optional[str]) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _drop_specials(soup: BeautifulSoup) -> None:
    # comments, doctype, CDATA, processing instructions
    for node in soup.find_all(string=lambda s: isinstance(s, PreformattedString)):
        node.extract()


def _allowed_url(value: str) -> bool:
    m = _SCHEME_RE.match(value or "")
    return m is None or m.group(1).lower() in ALLOWED_SCHEMES


def strip_markup(html: Optional[str]) -> str:
    """Plain text with whitespace and newlines collapsed to single spaces."""
    if not html:
        return ""
    soup = _parse(html)
    _drop_specials(soup)
    for tag in soup.find_all(list(NON_TEXT_TAGS)):
        if not tag.decomposed:
            tag.decompose()
    return _WS_RE.sub(" ", soup.get_text()).strip()


def sanitize_html(html: Optional[str], whitelist: TagWhitelist) -> BeautifulSoup:
    """Return a soup restricted to the whitelist's tags and attributes."""
    soup = _parse(html)
    _drop_specials(soup)
    for tag in soup.find_all(True):
        if tag.decomposed:
            continue
        name = tag.name.lower()
        if not whitelist.allows_tag(name):
            if name in NON_TEXT_TAGS:
                tag.decompose()
            else:
                tag.unwrap()
            continue
        allowed = whitelist.allowed_attributes(name)
        for attr in list(tag.attrs):
            key = attr.lower()
            if key not in allowed:
                del tag[attr]
                continue
            value = tag[attr]
            if key in URL_ATTRIBUTES and not _allowed_url(value if isinstance(value, str) else " ".join(value)):
                del tag[attr]
    return soup


def remove_empty_tags(soup: BeautifulSoup) -> BeautifulSoup:
    """Remove paired tags with no children or only whitespace; repeats until stable."""
    changed = True
    while changed:
        changed = False
        for tag in reversed(soup.find_all(True)):
            if tag.decomposed or tag.name.lower() in VOID_TAGS:
                continue
            if all(isinstance(c, NavigableString) and not c.strip() for c in tag.contents):
                tag.decompose()
                changed = True
    return soup


def prettify_html(html: str) -> str:
    if not html or not html.strip():
        return ""
    return _parse(html).prettify().strip()
