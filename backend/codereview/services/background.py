"""Fire-and-forget execution of analysis pipelines."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[BaseException], Awaitable[None]]


class BackgroundTaskRunner:
    """Runs one detached task per analysis id.

    Failures of the unit of work go to the caller's error handler. If the
    handler itself fails, the failure is logged as unobserved and dropped so
    nothing escapes into the event loop.
    """

    def __init__(self):
        # Strong references; the loop only keeps weak ones
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def is_running(self, analysis_id: str) -> bool:
        return analysis_id in self._tasks

    def run(
        self,
        task_name: str,
        analysis_id: str,
        work: Callable[[], Awaitable[None]],
        on_error: ErrorHandler,
    ) -> asyncio.Task:
        if analysis_id in self._tasks:
            raise RuntimeError(f"Analysis {analysis_id} already has a running task")

        async def _supervised():
            try:
                await work()
            except asyncio.CancelledError:
                logger.info(f"[Background] {task_name} for {analysis_id} cancelled")
                raise
            except Exception as e:
                logger.error(f"[Background] {task_name} for {analysis_id} failed: {e}")
                try:
                    await on_error(e)
                except Exception:
                    logger.exception(
                        f"[Background] Unobserved failure in error handler of {task_name} for {analysis_id}"
                    )

        task = asyncio.create_task(_supervised(), name=f"{task_name}:{analysis_id}")
        self._tasks[analysis_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(analysis_id, None))
        logger.info(f"[Background] Started {task_name} for {analysis_id}")
        return task

    async def wait_idle(self, timeout: float = None) -> None:
        """Wait until every running task has finished."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel running tasks and wait for them to unwind."""
        tasks = list(self._tasks.values())
        if not tasks:
            return
        logger.info(f"[Background] Cancelling {len(tasks)} running task(s)")
        for task in tasks:
            task.cancel()
        await asyncio.wait(tasks, timeout=timeout)
