from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sourcecrawler.crawlers.base import SourceCrawler, is_newer
from sourcecrawler.extraction.feeds import FeedDecoder
from sourcecrawler.ingestion.errors import InvalidSettings
from sourcecrawler.ingestion.post_types import RawCandidate, SourceSettings

logger = logging.getLogger(__name__)


class FeedCrawler(SourceCrawler):
    """RSS/Atom source: one decode per run, no pagination, no item page fetches."""

    name = "feed"

    def __init__(self, decoder: Optional[FeedDecoder] = None):
        self.decoder = decoder or FeedDecoder()

    def crawl(self, settings: SourceSettings, watermark: datetime) -> List[RawCandidate]:
        if not settings.url:
            raise InvalidSettings("feed source is missing settings: url")
        entries = self.decoder.decode(settings.url)
        if settings.limit_max:
            entries = entries[: settings.limit_max]

        out: List[RawCandidate] = []
        for entry in entries:
            if not entry.link or not entry.title:
                logger.warning("skipping feed entry without link or title in %s", settings.url)
                continue
            if entry.published_at is None:
                logger.warning("skipping undated feed entry %s", entry.link)
                continue
            if not is_newer(entry.published_at, watermark):
                continue
            out.append(
                RawCandidate(
                    title=entry.title,
                    url=entry.link,
                    published_at=entry.published_at,
                    description=entry.summary,
                    content=entry.content or entry.summary,
                    preview_image_url=entry.image_url,
                )
            )
        logger.info("feed %s: %d of %d entries newer than %s", settings.url, len(out), len(entries), watermark.isoformat())
        return out
