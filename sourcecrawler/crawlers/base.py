"""Strategy crawler contract."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sourcecrawler.ingestion.post_types import RawCandidate, SourceSettings


def is_newer(published_at: Optional[datetime], watermark: datetime) -> bool:
    """Strict comparison shared by every strategy; the boundary post is not re-ingested."""
    return published_at is not None and published_at > watermark


class SourceCrawler:
    """One implementation per source type.

    crawl() returns the candidates strictly newer than the watermark; it holds
    no per-source state between calls.
    """

    name: str = "base"

    def crawl(self, settings: SourceSettings, watermark: datetime) -> List[RawCandidate]:
        raise NotImplementedError
