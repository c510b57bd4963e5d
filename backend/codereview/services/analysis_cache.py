"""Per-analysis state store on top of a TTL cache backend."""

import logging
from typing import Optional

from codereview.config import settings
from codereview.models.analysis import AnalysisContent, AnalysisRecord, AnalysisStatus
from codereview.services.cache import CacheBackend, TTLCache

logger = logging.getLogger(__name__)

RECORD_PREFIX = "analysis:"
CONTENT_PREFIX = "content:"


class AnalysisCache:
    """Maps analysis ids to records and extracted content.

    Backend failures never propagate: a failed read is treated as a miss and a
    failed write is logged.
    """

    def __init__(self, backend: CacheBackend):
        self.backend = backend

    async def store(self, record: AnalysisRecord) -> bool:
        existing = await self.get(record.analysis_id)
        if existing is not None and existing.is_complete and existing != record:
            logger.warning(
                f"[Cache] Ignoring write to terminal analysis {record.analysis_id} "
                f"({existing.status.value} -> {record.status.value})"
            )
            return False
        try:
            await self.backend.set(RECORD_PREFIX + record.analysis_id, record)
        except Exception as e:
            logger.warning(f"[Cache] Failed to store analysis {record.analysis_id}: {e}")
            return False
        return True

    async def get(self, analysis_id: str) -> Optional[AnalysisRecord]:
        if not analysis_id:
            return None
        try:
            record = await self.backend.get(RECORD_PREFIX + analysis_id)
        except Exception as e:
            logger.warning(f"[Cache] Lookup failed for analysis {analysis_id}: {e}")
            return None
        if record is not None:
            # Content lives as long as the record it belongs to
            await self.get_content(analysis_id)
        return record

    async def update_status(
        self,
        analysis_id: str,
        status: AnalysisStatus,
        model_used: Optional[str] = None,
        fallback_model: Optional[str] = None,
    ) -> Optional[AnalysisRecord]:
        """Move a non-terminal record forward to ``status``.

        Unknown ids are a logged no-op. Backwards moves and updates of terminal
        records leave the record untouched.
        """
        if status.is_terminal:
            raise ValueError("Terminal states are written with store()")
        record = await self.get(analysis_id)
        if record is None:
            logger.info(f"[Cache] update_status({status.value}) for unknown analysis {analysis_id}")
            return None
        if record.is_complete or status.rank < record.status.rank:
            logger.warning(
                f"[Cache] Refusing status change {record.status.value} -> {status.value} "
                f"for analysis {analysis_id}"
            )
            return record
        updated = record.with_status(status, model_used=model_used, fallback_model=fallback_model)
        await self.store(updated)
        return updated

    async def store_content(self, analysis_id: str, content: AnalysisContent) -> None:
        try:
            await self.backend.set(CONTENT_PREFIX + analysis_id, content)
        except Exception as e:
            logger.warning(f"[Cache] Failed to store content for analysis {analysis_id}: {e}")

    async def get_content(self, analysis_id: str) -> Optional[AnalysisContent]:
        if not analysis_id:
            return None
        try:
            return await self.backend.get(CONTENT_PREFIX + analysis_id)
        except Exception as e:
            logger.warning(f"[Cache] Content lookup failed for analysis {analysis_id}: {e}")
            return None


def build_default_backend() -> TTLCache:
    return TTLCache(
        sliding_seconds=settings.cache_sliding_minutes * 60,
        absolute_seconds=settings.cache_absolute_minutes * 60,
        size_limit=settings.cache_size_limit,
    )


# Global cache instance
analysis_cache = AnalysisCache(build_default_backend())


def get_analysis_cache() -> AnalysisCache:
    """Get the global analysis cache instance."""
    return analysis_cache
