"""Crawl orchestration: lock, parse, persist, advance watermark, unlock.

One executor task per source. Sources run concurrently with each other but a
source is never processed by two tasks at once: the store-level lock flag is
acquired before a task is queued and released when it finishes.
"""

from __future__ import annotations

import logging
import signal
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import FrozenSet, List, Optional, Set

import schedule

from sourcecrawler.crawlers.dispatcher import ParserDispatcher
from sourcecrawler.ingestion.errors import CrawlerStopping, InvalidSettings, LockContention, SourceNotFound
from sourcecrawler.ingestion.post_types import RunStats, utcnow
from sourcecrawler.storage.repository import SourceRepository

logger = logging.getLogger(__name__)


class CrawlOrchestrator:
    def __init__(
        self,
        repo: SourceRepository,
        dispatcher: ParserDispatcher,
        *,
        interval_seconds: int = 60,
        max_workers: int = 8,
        only_enabled: bool = True,
        shutdown_grace_seconds: float = 30,
        poll_seconds: float = 1.0,
    ):
        self.repo = repo
        self.dispatcher = dispatcher
        self.interval_seconds = interval_seconds
        self.only_enabled = only_enabled
        self.shutdown_grace_seconds = shutdown_grace_seconds
        self.poll_seconds = poll_seconds
        self.shutdown_requested = False

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="crawl")
        self._scheduler = schedule.Scheduler()
        self._stop = threading.Event()
        self._state_lock = threading.Lock()
        self._held: Set[int] = set()
        self._futures: Set[Future] = set()
        self._closed = False

    # --- Locks ---
    def held_sources(self) -> FrozenSet[int]:
        with self._state_lock:
            return frozenset(self._held)

    def _acquire(self, source_id: int) -> None:
        if not self.repo.acquire_lock(source_id):
            raise LockContention(f"source {source_id} is already locked")
        with self._state_lock:
            self._held.add(source_id)

    def _release(self, source_id: int) -> None:
        with self._state_lock:
            if source_id not in self._held:
                return
            self._held.discard(source_id)
        try:
            self.repo.release_lock(source_id)
        except Exception as e:
            logger.error("failed to unlock source id=%s: %s", source_id, e, exc_info=True)
            with self._state_lock:
                self._held.add(source_id)

    # --- Dispatch ---
    def _submit(self, source_id: int, *, manual: bool) -> Future:
        try:
            future = self._executor.submit(self.process_source, source_id, manual)
        except RuntimeError as e:
            # executor already shut down
            self._release(source_id)
            raise CrawlerStopping("crawler is shutting down") from e
        with self._state_lock:
            self._futures.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._state_lock:
            self._futures.discard(future)

    def run_cycle(self) -> List[Future]:
        """Lock and dispatch every unlocked source; returns without waiting."""
        if self._stop.is_set():
            return []
        futures: List[Future] = []
        for source in self.repo.list_unlocked_sources(only_enabled=self.only_enabled):
            if self._stop.is_set():
                break
            try:
                self._acquire(source.id)
            except LockContention:
                logger.debug("source id=%s is locked by another worker; skipping", source.id)
                continue
            except Exception as e:
                logger.error("failed to lock source id=%s: %s", source.id, e, exc_info=True)
                self._record_error(source.id, f"lock: {e}")
                continue
            try:
                futures.append(self._submit(source.id, manual=False))
            except CrawlerStopping:
                break
        logger.info("crawl cycle dispatched %d source(s)", len(futures))
        return futures

    def trigger_source(self, source_id: int) -> Future:
        """Manual out-of-band run.

        Raises SourceNotFound for absent or locked sources, InvalidSettings
        when the stored settings cannot be read, and CrawlerStopping once
        shutdown has begun.
        """
        if self._stop.is_set():
            raise CrawlerStopping("crawler is shutting down")
        try:
            source = self.repo.get_source(source_id)
        except InvalidSettings as e:
            self._record_error(source_id, f"{type(e).__name__}: {e}")
            raise
        if source is None or source.is_locked:
            raise SourceNotFound(source_id)
        try:
            self._acquire(source_id)
        except LockContention as e:
            raise SourceNotFound(source_id) from e
        logger.info("manual crawl requested for source id=%s", source_id)
        return self._submit(source_id, manual=True)

    # --- One run ---
    def process_source(self, source_id: int, manual: bool = False) -> RunStats:
        begin = utcnow()
        processed = 0
        success = False
        error: Optional[str] = None
        try:
            source = self.repo.get_source(source_id)
            if source is None:
                raise SourceNotFound(source_id)

            posts = self.dispatcher.parse(source, manual=manual)
            newest = source.last_post_date
            for post in posts:
                try:
                    inserted = self.repo.insert_post(post)
                except Exception as e:
                    logger.error("failed to save post %s for source id=%s: %s", post.url, source_id, e, exc_info=True)
                    self._record_error(source_id, f"insert {post.url}: {e}")
                    continue
                if not inserted:
                    continue
                processed += 1
                if post.published_at is not None and post.published_at > newest:
                    newest = post.published_at

            if newest > source.last_post_date:
                self.repo.set_watermark(source_id, newest)
            self.repo.record_success(source_id, processed)
            success = True
            logger.info("source id=%s done: %d new post(s), lastPostDate=%s", source_id, processed, newest.isoformat())
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            logger.error("error parsing source id=%s: %s", source_id, e, exc_info=True)
            self._record_error(source_id, error)
        finally:
            self._release(source_id)
            stats = RunStats(
                source_id=source_id,
                begin=begin,
                end=utcnow(),
                posts_processed=processed,
                is_success=success,
                error=error,
            )
            try:
                self.repo.insert_stats(stats)
            except Exception as e:
                logger.error("failed to save run stats for source id=%s: %s", source_id, e, exc_info=True)
        return stats

    def _record_error(self, source_id: int, message: str) -> None:
        try:
            self.repo.record_error(source_id, message)
        except Exception as e:
            logger.error("failed to record error for source id=%s: %s", source_id, e, exc_info=True)

    # --- Scheduling ---
    def _scheduled_cycle(self) -> None:
        try:
            pending = set(self.run_cycle())
        except Exception as e:
            # the next tick retries
            logger.error("crawl cycle failed: %s", e, exc_info=True)
            return
        # schedule re-arms after the job returns, so wait for the whole cycle
        while pending and not self._stop.is_set():
            _, pending = wait(pending, timeout=self.poll_seconds, return_when=FIRST_COMPLETED)

    def run_forever(self) -> None:
        logger.info("crawler started; interval=%ss", self.interval_seconds)
        self._scheduler.every(self.interval_seconds).seconds.do(self._scheduled_cycle)
        try:
            self._scheduled_cycle()
            while not self._stop.is_set():
                self._scheduler.run_pending()
                self._stop.wait(self.poll_seconds)
        finally:
            self.shutdown()

    def request_shutdown(self) -> None:
        self.shutdown_requested = True
        self._stop.set()

    def install_signal_handlers(self) -> None:
        def signal_handler(signum, frame):
            logger.info("Received signal %s, initiating graceful shutdown...", signum)
            self.request_shutdown()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def shutdown(self, grace_seconds: Optional[float] = None) -> None:
        """Stop dispatching, wait for in-flight runs, then unlock whatever is still held."""
        grace = self.shutdown_grace_seconds if grace_seconds is None else grace_seconds
        self.request_shutdown()
        self._scheduler.clear()
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            pending = [f for f in self._futures if not f.done()]

        if pending:
            logger.info("waiting up to %ss for %d running crawl(s)", grace, len(pending))
            _, not_done = wait(pending, timeout=grace)
            if not_done:
                logger.warning("%d crawl(s) still running after grace period", len(not_done))
        self._executor.shutdown(wait=False, cancel_futures=True)

        for source_id in sorted(self.held_sources()):
            logger.warning("force-unlocking source id=%s", source_id)
            self._release(source_id)
        logger.info("crawler stopped")
