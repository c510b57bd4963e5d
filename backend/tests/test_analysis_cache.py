"""Tests for the per-analysis cache."""
import logging

import pytest

from codereview.models.analysis import AnalysisContent, AnalysisRecord, AnalysisResults, AnalysisStatus
from codereview.services.analysis_cache import AnalysisCache
from codereview.services.cache import CacheBackend, TTLCache


class BrokenBackend(CacheBackend):
    async def get(self, key):
        raise MemoryError("cache exhausted")

    async def set(self, key, value):
        raise MemoryError("cache exhausted")

    async def delete(self, key):
        raise MemoryError("cache exhausted")

    async def clear(self, prefix=None):
        raise MemoryError("cache exhausted")


@pytest.mark.asyncio
class TestRecords:
    async def test_store_and_get(self, analysis_cache):
        record = AnalysisRecord("a1")
        assert await analysis_cache.store(record) is True
        assert await analysis_cache.get("a1") == record

    async def test_get_unknown_or_empty_id(self, analysis_cache):
        assert await analysis_cache.get("missing") is None
        assert await analysis_cache.get("") is None

    async def test_update_status_moves_forward(self, analysis_cache):
        await analysis_cache.store(AnalysisRecord("a1"))
        updated = await analysis_cache.update_status(
            "a1", AnalysisStatus.READING_CHANGES, model_used="m1", fallback_model="m2"
        )
        assert updated.status == AnalysisStatus.READING_CHANGES
        assert updated.model_used == "m1"
        assert updated.fallback_model == "m2"
        assert (await analysis_cache.get("a1")).status == AnalysisStatus.READING_CHANGES

    async def test_update_status_unknown_id_is_noop(self, analysis_cache):
        assert await analysis_cache.update_status("ghost", AnalysisStatus.CALLING_AI) is None
        assert await analysis_cache.get("ghost") is None

    async def test_update_status_never_moves_backwards(self, analysis_cache):
        await analysis_cache.store(AnalysisRecord("a1", status=AnalysisStatus.CALLING_AI))
        result = await analysis_cache.update_status("a1", AnalysisStatus.READING_CHANGES)
        assert result.status == AnalysisStatus.CALLING_AI

    async def test_update_status_rejects_terminal_target(self, analysis_cache):
        await analysis_cache.store(AnalysisRecord("a1"))
        with pytest.raises(ValueError):
            await analysis_cache.update_status("a1", AnalysisStatus.COMPLETE)

    async def test_terminal_record_is_immutable(self, analysis_cache):
        record = AnalysisRecord("a1").complete(AnalysisResults("a1"))
        await analysis_cache.store(record)

        assert await analysis_cache.store(record.fail("late error")) is False
        assert await analysis_cache.update_status("a1", AnalysisStatus.CALLING_AI) == record
        assert (await analysis_cache.get("a1")).status == AnalysisStatus.COMPLETE

    async def test_content_side_channel(self, analysis_cache):
        await analysis_cache.store_content("a1", AnalysisContent("diff text", False))
        content = await analysis_cache.get_content("a1")
        assert content.content == "diff text"
        assert content.is_file_content is False
        # Content and records live under different keys
        assert await analysis_cache.get("a1") is None


@pytest.mark.asyncio
class TestFailures:
    async def test_backend_failure_reads_as_miss(self, caplog):
        cache = AnalysisCache(BrokenBackend())
        with caplog.at_level(logging.WARNING):
            assert await cache.get("a1") is None
            assert await cache.get_content("a1") is None
        assert "Lookup failed" in caplog.text

    async def test_backend_failure_on_write_is_logged(self, caplog):
        cache = AnalysisCache(BrokenBackend())
        with caplog.at_level(logging.WARNING):
            assert await cache.store(AnalysisRecord("a1")) is False
            await cache.store_content("a1", AnalysisContent("x"))
            assert await cache.update_status("a1", AnalysisStatus.CALLING_AI) is None
        assert "Failed to store" in caplog.text

    async def test_polling_the_record_keeps_content_alive(self, clock):
        cache = AnalysisCache(TTLCache(sliding_seconds=30, absolute_seconds=60, clock=clock))
        await cache.store(AnalysisRecord("a1"))
        await cache.store_content("a1", AnalysisContent("diff text"))
        for _ in range(2):
            clock.advance(25)
            assert await cache.get("a1") is not None

        content = await cache.get_content("a1")
        assert content is not None
        assert content.content == "diff text"

    async def test_expired_record_is_gone(self, clock):
        cache = AnalysisCache(TTLCache(sliding_seconds=10, absolute_seconds=20, clock=clock))
        await cache.store(AnalysisRecord("a1"))
        clock.advance(21)
        assert await cache.get("a1") is None


class TestRecordModel:
    def test_complete_sets_result_only(self):
        record = AnalysisRecord("a1").complete(AnalysisResults("a1"), model_used="m")
        assert record.status == AnalysisStatus.COMPLETE
        assert record.result is not None and record.error is None
        assert record.completed_at is not None
        assert record.model_used == "m"

    def test_fail_sets_error_only(self):
        record = AnalysisRecord("a1").fail("boom")
        assert record.status == AnalysisStatus.ERROR
        assert record.result is None and record.error == "boom"
        assert record.to_status()["is_complete"] is True

    def test_with_status_refuses_terminal(self):
        with pytest.raises(ValueError):
            AnalysisRecord("a1").with_status(AnalysisStatus.ERROR)

    def test_results_summary_counts(self):
        from codereview.models.analysis import Category, FeedbackItem, Severity

        results = AnalysisResults("a1", feedback=[
            FeedbackItem(Severity.CRITICAL, Category.SECURITY, "x"),
            FeedbackItem(Severity.CRITICAL, Category.SECURITY, "y"),
            FeedbackItem(Severity.STYLE, Category.STYLE, "z"),
        ])
        summary = results.to_dict()["summary"]
        assert summary == {"critical": 2, "warning": 0, "suggestion": 0, "style": 1, "info": 0, "total": 3}
