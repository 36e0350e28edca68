from __future__ import annotations

import logging
from typing import List, Mapping

from sourcecrawler.crawlers.base import SourceCrawler
from sourcecrawler.ingestion.errors import UnknownSourceType
from sourcecrawler.ingestion.post_types import NormalizedPost, Source, SourceType
from sourcecrawler.normalization.normalizer import ContentRules, normalize

logger = logging.getLogger(__name__)


class ParserDispatcher:
    """Routes a source to its strategy crawler and normalizes the result.

    Approval gate: automatic runs only crawl sources approved for direct
    publication. Unapproved sources are crawled on manual runs only, and their
    posts go to the preview table.
    """

    def __init__(self, crawlers: Mapping[SourceType, SourceCrawler], default_rules: ContentRules):
        self.crawlers = dict(crawlers)
        self.default_rules = default_rules

    def should_parse(self, source: Source, *, manual: bool) -> bool:
        return bool(source.settings.is_approved or manual)

    def crawler_for(self, source: Source) -> SourceCrawler:
        source_type = SourceType.parse(source.source_type)
        crawler = self.crawlers.get(source_type)
        if crawler is None:
            raise UnknownSourceType(source.source_type)
        return crawler

    def parse(self, source: Source, *, manual: bool = False) -> List[NormalizedPost]:
        if not self.should_parse(source, manual=manual):
            logger.info("source %s is not approved; skipping automatic run", source.id)
            return []

        crawler = self.crawler_for(source)
        logger.info(
            "parsing %s source id=%s; lastPostDate=%s; manual=%s",
            crawler.name,
            source.id,
            source.last_post_date.isoformat(),
            manual,
        )
        raw = crawler.crawl(source.settings, source.last_post_date)

        rules = ContentRules.for_settings(source.settings, self.default_rules)
        return [
            normalize(candidate, source_id=source.id, is_approved=source.settings.is_approved, rules=rules)
            for candidate in raw
        ]
