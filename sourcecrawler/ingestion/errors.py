"""Error taxonomy for the ingestion pipeline.

Scope of each error decides how far it propagates:
- per item: NoContentFound (the item is skipped)
- per source run: ExtractionMismatch, UnknownSourceType, InvalidSettings
- not an error for the run: UnresolvableChannel (empty result), LockContention (skipped)
"""

from __future__ import annotations


class CrawlError(Exception):
    """Base class for crawl failures."""


class ExtractionMismatch(CrawlError):
    """Listing selectors produced lists of different lengths."""

    def __init__(self, titles: int, links: int, url: str = ""):
        self.titles = titles
        self.links = links
        self.url = url
        super().__init__(f"titles ({titles}) and links ({links}) don't match at {url or 'listing page'}")


class NoContentFound(CrawlError):
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"no content found at url: {url}")


class UnresolvableChannel(CrawlError):
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"cannot resolve channel from url: {url}")


class UnknownSourceType(CrawlError):
    def __init__(self, source_type: object):
        self.source_type = source_type
        super().__init__(f"unknown source type: {source_type!r}")


class InvalidSettings(CrawlError):
    """Source settings are missing something the strategy requires."""


class LockContention(CrawlError):
    """Source is already locked by another worker."""


class SourceNotFound(CrawlError):
    """Source is absent or currently locked (manual trigger)."""

    def __init__(self, source_id: object):
        self.source_id = source_id
        super().__init__(f"source {source_id} not found or locked")


class FetchError(CrawlError):
    """Network or HTTP failure fetching a page."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"fetch failed for {url}: {reason}")


class FeedDecodeError(CrawlError):
    pass


class RepositoryError(Exception):
    """Custom exception for persistence operations"""
    pass


class CrawlerStopping(CrawlError):
    """The orchestrator is shutting down and accepts no new runs."""
