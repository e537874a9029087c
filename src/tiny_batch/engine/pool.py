from __future__ import annotations

import asyncio
from typing import Iterable, Optional

from loguru import logger

from ..settings import EngineSettings
from .metrics import WORKERS
from .policy import RetryPolicy
from .progress import PassMode, ProgressBus
from .queue import WorkQueue
from .results import ResultSet, ResultSink
from .types import OutputPlanner, ReleaseCallback, TransformAdapter, WorkItem
from .worker import TransformWorker


class WorkerPool:
    """Runs one pass: min(len(items), max_concurrent) workers over one queue.

    Example:
        pool = WorkerPool(adapter, EngineSettings(max_concurrent=3))
        results = await pool.run(items, planner)
        print(results.stats.succeeded, results.stats.failed)
    """

    def __init__(
        self,
        adapter: TransformAdapter,
        settings: EngineSettings,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        progress: Optional[ProgressBus] = None,
    ):
        self._adapter = adapter
        self._settings = settings
        self._policy = retry_policy or RetryPolicy.from_settings(settings)
        self._progress = progress
        self._workers: list[TransformWorker] = []
        self.workers_spawned = 0

    @property
    def max_concurrent(self) -> int:
        return self._settings.max_concurrent

    async def run(
        self,
        items: Iterable[WorkItem],
        planner: OutputPlanner,
        *,
        mode: PassMode = "full",
        release: Optional[ReleaseCallback] = None,
    ) -> ResultSet:
        """Process every item to a terminal outcome and return the frozen ResultSet.

        An unexpected worker error cancels the remaining workers and propagates.
        """
        items = list(items)
        if not items:
            logger.info(f"{mode} pass: nothing to process")
            self.workers_spawned = 0
            return ResultSet.empty()

        queue: WorkQueue[WorkItem] = WorkQueue(items)
        sink = ResultSink()
        count = min(len(items), self.max_concurrent)
        self._workers = [
            TransformWorker(
                worker_id=i + 1,
                queue=queue,
                adapter=self._adapter,
                sink=sink,
                retry_policy=self._policy,
                planner=planner,
                mode=mode,
                timeout_sec=self._settings.timeout_sec,
                task_delay_sec=self._settings.task_delay_sec,
                release=release,
                progress=self._progress,
            )
            for i in range(count)
        ]
        self.workers_spawned = count

        logger.info(f"Starting {mode} pass: {len(items)} item(s), {count} worker(s)")
        WORKERS.labels(mode=mode).set(count)
        tasks = [w.start() for w in self._workers]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            WORKERS.labels(mode=mode).set(0)

        results = sink.finalize()
        logger.info(
            f"Finished {mode} pass: {results.stats.succeeded} succeeded, "
            f"{results.stats.failed} failed"
        )
        return results
