"""Feed decoding (RSS/Atom) via feedparser."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser
import requests

from sourcecrawler.extraction.documents import DEFAULT_USER_AGENT, validate_fetch_url
from sourcecrawler.ingestion.errors import FeedDecodeError, FetchError

_IMAGE_RE = re.compile(r"\.(jpe?g|gif|png|svg|webp)(\?|$)", re.IGNORECASE)


@dataclass(frozen=True)
class FeedEntry:
    title: str
    link: str
    published_at: Optional[datetime] = None
    summary: Optional[str] = None
    content: Optional[str] = None
    image_url: Optional[str] = None


def _struct_to_dt(value: Any) -> Optional[datetime]:
    # feedparser normalizes *_parsed fields to UTC struct_time
    if not value:
        return None
    try:
        return datetime(*value[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def _entry_image(entry: Any) -> Optional[str]:
    for key in ("media_thumbnail", "media_content"):
        for media in entry.get(key) or []:
            url = media.get("url")
            medium = (media.get("medium") or media.get("type") or "").lower()
            if url and (medium.startswith("image") or _IMAGE_RE.search(url)):
                return url
    for enclosure in entry.get("enclosures") or []:
        url = enclosure.get("href") or enclosure.get("url")
        kind = (enclosure.get("type") or "").lower()
        if url and (kind.startswith("image/") or _IMAGE_RE.search(url)):
            return url
    image = entry.get("image")
    if isinstance(image, dict):
        return image.get("href") or image.get("url")
    return None


def _entry_content(entry: Any) -> Optional[str]:
    for part in entry.get("content") or []:
        value = part.get("value")
        if value:
            return value
    return None


class FeedDecoder:
    def __init__(self, *, user_agent: str = DEFAULT_USER_AGENT, referer: Optional[str] = None, timeout: int = 30):
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.referer = referer
        self.timeout = timeout

    def decode(self, url: str) -> List[FeedEntry]:
        err = validate_fetch_url(url)
        if err:
            raise FetchError(url, err)
        headers = {"User-Agent": self.user_agent, "Accept-Encoding": "gzip, deflate"}
        if self.referer:
            headers["Referer"] = self.referer
        try:
            resp = requests.get(url, headers=headers, timeout=(5, self.timeout))
        except requests.RequestException as e:
            raise FetchError(url, str(e)) from e
        if resp.status_code >= 400:
            raise FetchError(url, f"http_{resp.status_code}")
        return self.parse_document(resp.content, source=url)

    @staticmethod
    def parse_document(document: Any, *, source: str = "") -> List[FeedEntry]:
        """Decode raw feed bytes/text into entries, in feed order.

        Entries without a link or title are kept (with empty strings) so that
        limits count positions in the feed.
        """
        parsed = feedparser.parse(document)
        entries = parsed.entries or []
        if parsed.get("bozo") and not entries:
            raise FeedDecodeError(f"cannot decode feed {source}: {parsed.get('bozo_exception')}")
        out: List[FeedEntry] = []
        for entry in entries:
            link = entry.get("feedburner_origlink") or entry.get("link")
            published = _struct_to_dt(entry.get("published_parsed")) or _struct_to_dt(entry.get("updated_parsed"))
            out.append(
                FeedEntry(
                    title=str(entry.get("title") or "").strip(),
                    link=str(link or "").strip(),
                    published_at=published,
                    summary=entry.get("summary") or None,
                    content=_entry_content(entry),
                    image_url=_entry_image(entry),
                )
            )
        return out
