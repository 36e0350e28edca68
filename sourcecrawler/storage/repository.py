"""Persistence port used by the orchestrator."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from sourcecrawler.ingestion.post_types import NormalizedPost, RunStats, Source


class SourceRepository(Protocol):
    def list_unlocked_sources(self, only_enabled: bool = True) -> List[Source]: ...

    def get_source(self, source_id: int) -> Optional[Source]: ...

    def acquire_lock(self, source_id: int) -> bool:
        """Atomically set is_locked; False if it was already set."""
        ...

    def release_lock(self, source_id: int) -> None: ...

    def set_watermark(self, source_id: int, last_post_date: datetime) -> None: ...

    def record_success(self, source_id: int, posts_processed: int) -> None: ...

    def record_error(self, source_id: int, message: str) -> None: ...

    def insert_post(self, post: NormalizedPost) -> bool:
        """Store into the published or preview table; False if the URL is already stored."""
        ...

    def insert_stats(self, stats: RunStats) -> None: ...
