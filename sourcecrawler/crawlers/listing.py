"""Video-channel listing source (YouTube Data API v3)."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from sourcecrawler.crawlers.base import SourceCrawler, is_newer
from sourcecrawler.ingestion.errors import InvalidSettings, UnresolvableChannel
from sourcecrawler.ingestion.post_types import RawCandidate, SourceSettings

logger = logging.getLogger(__name__)

_CHANNEL_RE = re.compile(r"/channel/([^/?#]+)")
_USER_RE = re.compile(r"/user/([^/?#]+)")

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
API_MAX_RESULTS = 50


@dataclass(frozen=True)
class ChannelRef:
    kind: str  # "channel" or "user"
    value: str


def parse_channel_url(url: str) -> ChannelRef:
    """Accepts .../channel/<id> and .../user/<name> profile URLs."""
    m = _CHANNEL_RE.search(url or "")
    if m:
        return ChannelRef("channel", m.group(1))
    m = _USER_RE.search(url or "")
    if m:
        return ChannelRef("user", m.group(1))
    raise UnresolvableChannel(url)


def _parse_published(value: Any) -> Optional[datetime]:
    s = str(value or "").strip()
    if not s:
        return None
    try:
        parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _best_thumbnail(snippet: Dict[str, Any]) -> Optional[str]:
    thumbs = snippet.get("thumbnails") or {}
    for size in ("maxres", "high", "medium", "default"):
        url = (thumbs.get(size) or {}).get("url")
        if url:
            return url
    return None


class ListingApiCrawler(SourceCrawler):
    name = "listing"

    def __init__(
        self,
        api_key: str = "",
        *,
        endpoint: str = "https://www.googleapis.com/youtube/v3",
        timeout: int = 30,
        user_agent: str = "SourceCrawler/1.0",
    ):
        self.api_key = api_key
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent

    def crawl(self, settings: SourceSettings, watermark: datetime) -> List[RawCandidate]:
        if not settings.url:
            raise InvalidSettings("listing source is missing settings: url")
        if not self.api_key:
            raise InvalidSettings("listing API key (GAPI_KEY) is not configured")
        try:
            channel_id = self.resolve_channel(settings.url)
        except UnresolvableChannel as e:
            logger.warning("%s", e)
            return []

        data = self._get(
            "search",
            {
                "channelId": channel_id,
                "part": "snippet,id",
                "order": "date",
                "type": "video",
                "maxResults": min(settings.limit_max or API_MAX_RESULTS, API_MAX_RESULTS),
            },
        )
        out: List[RawCandidate] = []
        for video in data.get("items") or []:
            if not isinstance(video, dict):
                continue
            video_id = (video.get("id") or {}).get("videoId")
            snippet = video.get("snippet") or {}
            published = _parse_published(snippet.get("publishedAt"))
            if not video_id or not is_newer(published, watermark):
                continue
            url = WATCH_URL.format(video_id=video_id)
            out.append(
                RawCandidate(
                    title=str(snippet.get("title") or "").strip(),
                    url=url,
                    published_at=published,
                    description=snippet.get("description") or None,
                    content=url,
                    preview_image_url=_best_thumbnail(snippet),
                )
            )
        logger.info("listing %s: %d new video(s)", channel_id, len(out))
        return out

    def resolve_channel(self, url: str) -> str:
        ref = parse_channel_url(url)
        if ref.kind == "channel":
            return ref.value
        data = self._get("channels", {"part": "id", "forUsername": ref.value})
        items = data.get("items") or []
        channel_id = items[0].get("id") if items and isinstance(items[0], dict) else None
        if not channel_id:
            raise UnresolvableChannel(url)
        return channel_id

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        resp = requests.get(
            f"{self.endpoint}/{path}",
            params={**params, "key": self.api_key},
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json() or {}
