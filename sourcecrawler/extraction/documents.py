"""Page fetching + HTML document queries.

Policy:
- Only http(s) URLs on public hosts are fetched (SSRF/abuse protections).
- No JavaScript is executed; selectors run against the served markup.
"""

from __future__ import annotations

import html as _html
import ipaddress
import logging
from typing import List, Optional
from urllib.parse import urlparse

import requests
import trafilatura
from bs4 import BeautifulSoup, UnicodeDammit
from bs4.element import Tag
from soupsieve import SelectorSyntaxError

from sourcecrawler.ingestion.errors import FetchError, InvalidSettings
from sourcecrawler.ingestion.url_utils import absolute_url

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0 Safari/537.36"
)

_PRIVATE_NETS = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
]


def _is_private_ip(hostname: str) -> bool:
    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return any(ip in net for net in _PRIVATE_NETS)


def validate_fetch_url(url: str) -> Optional[str]:
    """Return error string if URL should not be fetched."""
    try:
        p = urlparse(url or "")
    except ValueError:
        return "invalid_url"
    if p.scheme not in ("http", "https"):
        return "bad_scheme"
    host = (p.hostname or "").strip().lower()
    if not host:
        return "missing_host"
    if host in ("localhost", "localhost.localdomain"):
        return "blocked_host"
    if _is_private_ip(host):
        return "blocked_private_ip"
    return None


class HtmlDocument:
    """Parsed page with CSS-selector queries.

    Links and image sources are resolved against the page URL.
    """

    def __init__(self, html: str, url: str = ""):
        self.html = html or ""
        self.url = url
        self.soup = BeautifulSoup(self.html, "html.parser")

    def select(self, selector: Optional[str]) -> List[Tag]:
        if not selector:
            return []
        try:
            return list(self.soup.select(selector))
        except (SelectorSyntaxError, ValueError) as e:
            raise InvalidSettings(f"bad selector {selector!r}: {e}") from e

    def select_one(self, selector: Optional[str]) -> Optional[Tag]:
        if not selector:
            return None
        try:
            return self.soup.select_one(selector)
        except (SelectorSyntaxError, ValueError) as e:
            raise InvalidSettings(f"bad selector {selector!r}: {e}") from e

    @staticmethod
    def inner_html(node: Optional[Tag]) -> str:
        return node.decode_contents() if node is not None else ""

    @staticmethod
    def text(node: Optional[Tag]) -> str:
        return node.get_text(" ", strip=True) if node is not None else ""

    def link(self, node: Optional[Tag]) -> Optional[str]:
        """href of the node, or of its first descendant anchor."""
        if node is None:
            return None
        href = node.get("href")
        if not href:
            anchor = node.select_one("a[href]")
            href = anchor.get("href") if anchor is not None else None
        return absolute_url(self.url, href)

    def image(self, node: Optional[Tag]) -> Optional[str]:
        if node is None:
            return None
        src = node.get("src") or node.get("data-src")
        if not src:
            img = node.select_one("img[src]")
            src = img.get("src") if img is not None else None
        return absolute_url(self.url, src)

    def meta_content(self, prop: str) -> Optional[str]:
        node = self.soup.find("meta", attrs={"property": prop}) or self.soup.find("meta", attrs={"name": prop})
        if node is None:
            return None
        return absolute_url(self.url, node.get("content"))

    def main_content(self) -> Optional[str]:
        return extract_main_content(self.html)


def extract_main_content(html: str) -> Optional[str]:
    """Readability-style main text, rendered back as paragraphs."""
    if not html or not html.strip():
        return None
    text = trafilatura.extract(html, include_comments=False, include_tables=False)
    if not text:
        return None
    paragraphs = [line.strip() for line in text.splitlines() if line.strip()]
    return "".join(f"<p>{_html.escape(p)}</p>" for p in paragraphs) or None


class PageFetcher:
    """Fetches pages over HTTP and parses them into HtmlDocument."""

    def __init__(
        self,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        referer: Optional[str] = None,
        timeout: int = 30,
        max_bytes: int = 5_000_000,
    ):
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.referer = referer
        self.timeout = timeout
        self.max_bytes = max_bytes

    @property
    def headers(self) -> dict:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }
        if self.referer:
            headers["Referer"] = self.referer
        return headers

    def fetch_html(self, url: str) -> str:
        err = validate_fetch_url(url)
        if err:
            raise FetchError(url, err)
        try:
            resp = requests.get(
                url,
                headers=self.headers,
                timeout=(5, self.timeout),
                allow_redirects=True,
                stream=True,
            )
        except requests.RequestException as e:
            raise FetchError(url, str(e)) from e
        with resp:
            if resp.status_code >= 400:
                raise FetchError(url, f"http_{resp.status_code}")
            content = b""
            for chunk in resp.iter_content(chunk_size=64 * 1024):
                if not chunk:
                    continue
                content += chunk
                if len(content) > self.max_bytes:
                    raise FetchError(url, "too_large")
            content_type = (resp.headers.get("Content-Type") or "").lower()
            declared = resp.encoding if "charset=" in content_type else None
        # Without a declared charset let bs4 sniff <meta charset> / BOM.
        dammit = UnicodeDammit(content, [declared] if declared else [], is_html=True)
        if dammit.unicode_markup is not None:
            return dammit.unicode_markup
        return content.decode("utf-8", errors="replace")

    def fetch(self, url: str) -> HtmlDocument:
        logger.debug("fetching %s", url)
        return HtmlDocument(self.fetch_html(url), url)
