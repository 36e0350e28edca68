"""Selector-driven listing crawler with pagination.

Listing pages are walked sequentially (each next link comes from the previous
page). Once pagination stops, the accepted item pages are fetched as one
concurrent batch.

Termination, checked after every listing page in this order:
1. item cap (limitMax) reached -> truncate, stop
2. page contained an item at/below the watermark -> stop
3. page cap (pagesMax) reached -> stop
4. next-page link found -> continue with it
5. otherwise stop
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sourcecrawler.crawlers.base import SourceCrawler, is_newer
from sourcecrawler.extraction.dates import parse_date
from sourcecrawler.extraction.documents import HtmlDocument, PageFetcher
from sourcecrawler.ingestion.errors import ExtractionMismatch, FetchError, InvalidSettings, NoContentFound
from sourcecrawler.ingestion.post_types import RawCandidate, SourceSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ListingItem:
    title: str
    url: str
    published_at: datetime
    description: str = ""
    preview_image_url: Optional[str] = None


@dataclass(frozen=True)
class ListingPage:
    items: List[ListingItem]
    saw_older_item: bool
    next_url: Optional[str] = None


class DomPaginationCrawler(SourceCrawler):
    name = "dom"

    REQUIRED_SETTINGS = ("url", "titles_selector", "links_selector", "dates_selector", "content_selector")

    def __init__(
        self,
        fetcher: Optional[PageFetcher] = None,
        *,
        item_workers: int = 4,
        max_listing_pages: int = 100,
        max_content_pages: int = 20,
    ):
        self.fetcher = fetcher or PageFetcher()
        self.item_workers = max(1, int(item_workers))
        self.max_listing_pages = max_listing_pages
        self.max_content_pages = max_content_pages

    def crawl(self, settings: SourceSettings, watermark: datetime) -> List[RawCandidate]:
        missing = [name for name in self.REQUIRED_SETTINGS if not getattr(settings, name)]
        if missing:
            raise InvalidSettings(f"dom source is missing settings: {', '.join(missing)}")
        items = self.collect_listing(settings, watermark)
        logger.info("dom listing %s: %d new item(s) after %s", settings.url, len(items), watermark.isoformat())
        if not items:
            return []
        return self.fetch_items(items, settings)

    # --- Listing pages ---
    def collect_listing(self, settings: SourceSettings, watermark: datetime) -> List[ListingItem]:
        accepted: List[ListingItem] = []
        visited = set()
        pages = 0
        url: Optional[str] = settings.url
        while url:
            visited.add(url)
            try:
                doc = self.fetcher.fetch(url)
            except FetchError as e:
                if pages == 0:
                    raise
                logger.warning("stopping pagination at %s, keeping %d item(s): %s", url, len(accepted), e)
                break
            page = self.extract_page(doc, settings, watermark)
            pages += 1
            accepted.extend(page.items)

            if settings.limit_max and len(accepted) >= settings.limit_max:
                accepted = accepted[: settings.limit_max]
                break
            if page.saw_older_item:
                break
            if settings.pages_max and pages >= settings.pages_max:
                break
            if pages >= self.max_listing_pages:
                logger.warning("pagination safety cap (%d pages) hit for %s", self.max_listing_pages, settings.url)
                break
            url = page.next_url if page.next_url not in visited else None
        return accepted

    def extract_page(self, doc: HtmlDocument, settings: SourceSettings, watermark: datetime) -> ListingPage:
        titles = doc.select(settings.titles_selector)
        links = [doc.link(node) for node in doc.select(settings.links_selector)]
        if len(titles) != len(links):
            raise ExtractionMismatch(len(titles), len(links), doc.url)

        dates = [
            parse_date(doc.text(node), settings.date_format, settings.date_locale)
            for node in doc.select(settings.dates_selector)
        ]
        descriptions = doc.select(settings.description_selector)
        previews = [doc.image(node) for node in doc.select(settings.preview_selector)]

        items: List[ListingItem] = []
        saw_older = False
        for i, title in enumerate(titles):
            published = dates[i] if i < len(dates) else None
            if published is None:
                logger.warning("skipping %s: no parseable date", links[i])
                continue
            if not is_newer(published, watermark):
                saw_older = True
                continue
            if not links[i]:
                logger.warning("skipping item %d on %s: no usable link", i, doc.url)
                continue
            items.append(
                ListingItem(
                    title=doc.inner_html(title),
                    url=links[i],
                    published_at=published,
                    description=doc.inner_html(descriptions[i]) if i < len(descriptions) else "",
                    preview_image_url=previews[i] if i < len(previews) else None,
                )
            )

        next_url = doc.link(doc.select_one(settings.next_selector)) if settings.next_selector else None
        return ListingPage(items=items, saw_older_item=saw_older, next_url=next_url)

    # --- Item pages ---
    def fetch_items(self, items: List[ListingItem], settings: SourceSettings) -> List[RawCandidate]:
        with ThreadPoolExecutor(max_workers=min(self.item_workers, len(items))) as pool:
            futures = [pool.submit(self.fetch_item, item, settings) for item in items]

        out: List[RawCandidate] = []
        for item, future in zip(items, futures):
            try:
                out.append(future.result())
            except NoContentFound as e:
                logger.warning("%s", e)
            except Exception as e:
                logger.warning("item %s failed: %s", item.url, e, exc_info=True)
        return out

    def fetch_item(self, item: ListingItem, settings: SourceSettings) -> RawCandidate:
        parts: List[str] = []
        inline_image = None
        preview = item.preview_image_url
        seen = set()
        url: Optional[str] = item.url
        while url and url not in seen and len(seen) < self.max_content_pages:
            first = not seen
            seen.add(url)
            try:
                doc = self.fetcher.fetch(url)
            except FetchError as e:
                if first:
                    raise
                logger.warning("content page %s failed, keeping %d page(s): %s", url, len(parts), e)
                break

            if first:
                if settings.image_selector:
                    inline_image = doc.image(doc.select_one(settings.image_selector))
                if settings.preview_from_meta:
                    preview = doc.meta_content("og:image") or preview

            node = doc.select_one(settings.content_selector)
            if node is None:
                if first and settings.content_fallback:
                    fallback = doc.main_content()
                    if fallback:
                        parts.append(fallback)
                break
            parts.append(doc.inner_html(node))

            if not settings.next_content_selector:
                break
            url = doc.link(doc.select_one(settings.next_content_selector))

        content = "".join(parts)
        if not content.strip():
            raise NoContentFound(item.url)
        return RawCandidate(
            title=item.title,
            url=item.url,
            published_at=item.published_at,
            description=item.description,
            content=content,
            preview_image_url=preview,
            inline_image_url=inline_image,
        )
