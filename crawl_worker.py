#!/usr/bin/env python3
"""Source crawl worker.

Runs one crawl cycle (CRAWL_MODE=once) or the scheduled loop (default):
- every CRAWL_INTERVAL_SECONDS, lock each unlocked source and crawl it
- DOM listing pages, RSS/Atom feeds, and video channel listings
- only posts newer than the source's watermark are stored

Optionally serves the manual-trigger endpoint on TRIGGER_HOST:TRIGGER_PORT.
"""

from __future__ import annotations

import logging
import sys
import threading
from concurrent.futures import wait

from werkzeug.serving import make_server

from sourcecrawler.config import CrawlerConfig
from sourcecrawler.crawlers.dispatcher import ParserDispatcher
from sourcecrawler.crawlers.dom import DomPaginationCrawler
from sourcecrawler.crawlers.feed import FeedCrawler
from sourcecrawler.crawlers.listing import ListingApiCrawler
from sourcecrawler.extraction.documents import PageFetcher
from sourcecrawler.extraction.feeds import FeedDecoder
from sourcecrawler.ingestion.post_types import SourceType
from sourcecrawler.orchestration.orchestrator import CrawlOrchestrator
from sourcecrawler.storage.postgres_repo import PostgresSourceRepo
from sourcecrawler.storage.postgres_schema import ensure_postgres_schema
from web_app import create_app

logger = logging.getLogger(__name__)


def setup_logging(config: CrawlerConfig) -> None:
    handlers = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def build_dispatcher(config: CrawlerConfig) -> ParserDispatcher:
    fetcher = PageFetcher(
        user_agent=config.user_agent,
        referer=config.referer or None,
        timeout=config.request_timeout,
    )
    crawlers = {
        SourceType.DOM: DomPaginationCrawler(fetcher, item_workers=config.item_workers),
        SourceType.FEED: FeedCrawler(
            FeedDecoder(user_agent=config.user_agent, referer=config.referer or None, timeout=config.request_timeout)
        ),
        SourceType.LISTING: ListingApiCrawler(
            config.gapi_key, timeout=config.request_timeout, user_agent=config.user_agent
        ),
    }
    return ParserDispatcher(crawlers, config.default_rules())


def build_orchestrator(config: CrawlerConfig) -> CrawlOrchestrator:
    ensure_postgres_schema(config.pg_dsn)
    repo = PostgresSourceRepo(config.pg_dsn)
    return CrawlOrchestrator(
        repo,
        build_dispatcher(config),
        interval_seconds=config.interval_seconds,
        max_workers=config.max_workers,
        only_enabled=config.only_enabled,
        shutdown_grace_seconds=config.shutdown_grace_seconds,
    )


def start_trigger_server(config: CrawlerConfig, orchestrator: CrawlOrchestrator):
    server = make_server(config.trigger_host, config.trigger_port, create_app(orchestrator), threaded=True)
    thread = threading.Thread(target=server.serve_forever, name="trigger-http", daemon=True)
    thread.start()
    logger.info("manual trigger listening on http://%s:%s/api/sources/crawl", config.trigger_host, config.trigger_port)
    return server


def run_once(orchestrator: CrawlOrchestrator) -> None:
    try:
        futures = orchestrator.run_cycle()
        wait(futures)
    finally:
        orchestrator.shutdown()


def main() -> int:
    try:
        config = CrawlerConfig.from_env()
    except ValueError as e:
        print(e, file=sys.stderr)
        return 1
    setup_logging(config)

    try:
        orchestrator = build_orchestrator(config)
    except Exception as e:
        logger.error("Failed to initialize crawler: %s", e, exc_info=True)
        return 1

    if config.crawl_mode == "once":
        run_once(orchestrator)
        return 0

    orchestrator.install_signal_handlers()
    server = start_trigger_server(config, orchestrator) if config.trigger_enabled else None
    try:
        orchestrator.run_forever()
    finally:
        if server is not None:
            server.shutdown()
    logger.info("Graceful shutdown completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
