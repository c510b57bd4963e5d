"""Tests for BackgroundTaskRunner."""
import asyncio
import logging

import pytest

from codereview.services.background import BackgroundTaskRunner


@pytest.mark.asyncio
class TestBackgroundTaskRunner:
    async def test_runs_work_off_the_caller(self):
        runner = BackgroundTaskRunner()
        started = asyncio.Event()
        done = []

        async def work():
            started.set()
            done.append(True)

        async def on_error(exc):
            raise AssertionError("should not be called")

        task = runner.run("analysis", "a1", work, on_error)
        assert runner.is_running("a1")
        await runner.wait_idle(timeout=1)

        assert done == [True]
        assert task.done()
        assert runner.active_count == 0

    async def test_failure_goes_to_error_handler(self):
        runner = BackgroundTaskRunner()
        seen = []

        async def work():
            raise ValueError("broken pipeline")

        async def on_error(exc):
            seen.append(exc)

        task = runner.run("analysis", "a1", work, on_error)
        await runner.wait_idle(timeout=1)

        assert len(seen) == 1
        assert isinstance(seen[0], ValueError)
        assert task.exception() is None

    async def test_failing_error_handler_is_logged_as_unobserved(self, caplog):
        runner = BackgroundTaskRunner()

        async def work():
            raise ValueError("broken pipeline")

        async def on_error(exc):
            raise RuntimeError("cannot report")

        with caplog.at_level(logging.ERROR):
            task = runner.run("analysis", "a1", work, on_error)
            await runner.wait_idle(timeout=1)

        assert task.exception() is None
        assert "Unobserved failure" in caplog.text

    async def test_one_task_per_analysis_id(self):
        runner = BackgroundTaskRunner()
        release = asyncio.Event()

        async def work():
            await release.wait()

        async def on_error(exc):
            pass

        runner.run("analysis", "a1", work, on_error)
        with pytest.raises(RuntimeError):
            runner.run("analysis", "a1", work, on_error)

        release.set()
        await runner.wait_idle(timeout=1)
        # The id is free again once the first run finished
        runner.run("analysis", "a1", work, on_error)
        await runner.wait_idle(timeout=1)

    async def test_shutdown_cancels_running_tasks(self):
        runner = BackgroundTaskRunner()
        errors = []

        async def work():
            await asyncio.sleep(30)

        async def on_error(exc):
            errors.append(exc)

        task = runner.run("analysis", "a1", work, on_error)
        await asyncio.sleep(0)
        await runner.shutdown(timeout=1)

        assert task.cancelled()
        assert errors == []
        assert runner.active_count == 0
