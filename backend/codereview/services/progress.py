"""Push channel for analysis progress, mirrored into the analysis cache."""

import asyncio
import logging
from collections import defaultdict
from typing import Any, AsyncGenerator, Dict, Optional, Set

from codereview.config import settings
from codereview.models.analysis import AnalysisRecord, AnalysisStatus, pseudo_status
from codereview.services.analysis_cache import AnalysisCache

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = ("complete", "error")


class ProgressBroadcaster:
    """Fan-out of progress/complete/error events per analysis id.

    Each subscriber owns a bounded queue. Publishing never blocks: a full
    queue drops the event for that subscriber only. Every publish is written
    to the cache first, so a client that misses a push can poll the status.
    """

    def __init__(self, cache: AnalysisCache, queue_size: int = None):
        self.cache = cache
        self.queue_size = settings.progress_queue_size if queue_size is None else queue_size
        self._subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, analysis_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[analysis_id].add(queue)
        logger.debug(f"[Progress] Subscriber joined {analysis_id} ({len(self._subscribers[analysis_id])} total)")
        return queue

    def unsubscribe(self, analysis_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(analysis_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[analysis_id]
        logger.debug(f"[Progress] Subscriber left {analysis_id}")

    def subscriber_count(self, analysis_id: str) -> int:
        return len(self._subscribers.get(analysis_id, ()))

    async def publish_progress(
        self,
        analysis_id: str,
        status: AnalysisStatus,
        model_used: Optional[str] = None,
        fallback_model: Optional[str] = None,
    ) -> None:
        record = await self.cache.update_status(
            analysis_id, status, model_used=model_used, fallback_model=fallback_model
        )
        if record is not None:
            payload = record.to_status()
        else:
            payload = AnalysisRecord(
                analysis_id, status, model_used=model_used, fallback_model=fallback_model
            ).to_status()
        self._publish(analysis_id, "progress", payload)

    async def publish_complete(self, record: AnalysisRecord) -> None:
        await self.cache.store(record)
        self._publish(record.analysis_id, "complete", record.to_status())

    async def publish_error(self, analysis_id: str, message: str, model_used: Optional[str] = None) -> None:
        existing = await self.cache.get(analysis_id)
        if existing is not None and existing.is_complete:
            logger.warning(f"[Progress] Analysis {analysis_id} already {existing.status.value}, error not recorded")
            record = existing
        else:
            record = (existing or AnalysisRecord(analysis_id)).fail(message, model_used=model_used)
            await self.cache.store(record)
        self._publish(analysis_id, "error", record.to_status())

    def _publish(self, analysis_id: str, kind: str, payload: Dict[str, Any]) -> None:
        queues = list(self._subscribers.get(analysis_id, ()))
        if not queues:
            return
        event = {"event": kind, "data": payload}
        for queue in queues:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"[Progress] Dropping {kind} event for slow subscriber of {analysis_id}")

    async def stream(self, analysis_id: str) -> AsyncGenerator[Dict[str, Any], None]:
        """Yield the current snapshot, then live events until a terminal one.

        Subscribes before reading the snapshot so nothing published in between
        is lost.
        """
        queue = self.subscribe(analysis_id)
        try:
            record = await self.cache.get(analysis_id)
            if record is None:
                yield {"event": "error", "data": pseudo_status(analysis_id, AnalysisStatus.NOT_FOUND)}
                return
            snapshot_kind = "progress"
            if record.is_complete:
                snapshot_kind = "complete" if record.status == AnalysisStatus.COMPLETE else "error"
            yield {"event": snapshot_kind, "data": record.to_status()}
            if record.is_complete:
                return

            while True:
                event = await queue.get()
                yield event
                if event["event"] in TERMINAL_EVENTS:
                    return
        finally:
            self.unsubscribe(analysis_id, queue)
