from __future__ import annotations

import asyncio
from pathlib import Path
from time import monotonic
from typing import Optional

from loguru import logger

from ..errors import FailureKind, TransformError
from .metrics import ATTEMPTS_TOTAL, ITEMS_TOTAL, TRANSFORM_LATENCY_MS
from .policy import RetryPolicy
from .progress import PassMode, ProgressBus, ProgressEvent
from .queue import WorkQueue
from .results import ResultSink
from .types import (
    OutputPlanner,
    ReleaseCallback,
    Success,
    TransformAdapter,
    TransformOutcome,
    WorkItem,
)


def write_artifact(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


class TransformWorker:
    """Drains a shared WorkQueue one item at a time.

    Per item: retry-wrapped transform -> write artifact -> record outcome ->
    (recovery passes) release the quarantined copy -> publish progress ->
    fixed inter-task delay. Exits when the queue reports empty.
    """

    def __init__(
        self,
        worker_id: int,
        queue: WorkQueue[WorkItem],
        adapter: TransformAdapter,
        sink: ResultSink,
        retry_policy: RetryPolicy,
        planner: OutputPlanner,
        *,
        mode: PassMode = "full",
        timeout_sec: float = 30.0,
        task_delay_sec: float = 0.3,
        release: Optional[ReleaseCallback] = None,
        progress: Optional[ProgressBus] = None,
    ):
        self.worker_id = worker_id
        self._q = queue
        self._adapter = adapter
        self._sink = sink
        self._policy = retry_policy
        self._planner = planner
        self._mode = mode
        self._timeout = timeout_sec
        self._delay = task_delay_sec
        self._release = release
        self._progress = progress
        self._task: Optional[asyncio.Task] = None
        self.processed = 0

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name=f"transform-worker-{self.worker_id}")
        return self._task

    @property
    def alive(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self) -> None:
        logger.debug(f"Worker {self.worker_id} started ({self._mode})")
        while True:
            item = await self._q.dequeue()
            if item is None:
                break

            outcome = await self.process(item)
            completed = await self._sink.record(item, outcome)
            ok = isinstance(outcome, Success)
            if ok and self._release is not None:
                # only after the success is recorded
                await self._release(item)

            self.processed += 1
            ITEMS_TOTAL.labels(mode=self._mode, outcome="success" if ok else "failure").inc()
            await self._report(item, outcome, completed)

            if self._delay > 0:
                await asyncio.sleep(self._delay)
        logger.debug(f"Worker {self.worker_id} finished after {self.processed} item(s)")

    async def process(self, item: WorkItem) -> TransformOutcome:
        """Run one item through the retry policy; never raises for item errors."""
        return await self._policy.run(lambda n: self._attempt(item), label=item.key)

    async def _attempt(self, item: WorkItem) -> Success:
        try:
            success = await self._attempt_once(item)
        except Exception:
            ATTEMPTS_TOTAL.labels(outcome="failure").inc()
            raise
        ATTEMPTS_TOTAL.labels(outcome="success").inc()
        return success

    async def _attempt_once(self, item: WorkItem) -> Success:
        data = await asyncio.to_thread(item.source.read_bytes)

        t0 = monotonic()
        try:
            artifact = await asyncio.wait_for(
                self._adapter.transform(data, item.media_type, self._timeout),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TransformError(
                FailureKind.TIMEOUT, f"Timed out after {self._timeout:g}s"
            ) from exc
        finally:
            TRANSFORM_LATENCY_MS.observe((monotonic() - t0) * 1000.0)

        out = self._planner(item)
        await asyncio.to_thread(write_artifact, out, artifact.data)
        return Success(
            output_location=out,
            original_size=len(data),
            artifact_size=len(artifact.data),
        )

    async def _report(self, item: WorkItem, outcome: TransformOutcome, completed: int) -> None:
        if isinstance(outcome, Success):
            reason = (
                f"{outcome.original_size / 1024:.2f}KB -> {outcome.artifact_size / 1024:.2f}KB "
                f"(saved {outcome.saved_percent:.1f}%)"
            )
            logger.debug(f"✅ {item.key}: {reason}")
        else:
            reason = outcome.reason
            logger.info(f"❌ {item.key}: {reason} [{outcome.classification.value}]")

        if self._progress is not None:
            await self._progress.publish(
                ProgressEvent(
                    mode=self._mode,
                    key=item.key,
                    ok=isinstance(outcome, Success),
                    completed=completed,
                    total=self._q.initial_size,
                    reason=reason,
                )
            )
