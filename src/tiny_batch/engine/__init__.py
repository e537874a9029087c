"""Retry-queue engine

Bounded-concurrency pass over a fixed list of work items:
- WorkQueue (pre-seeded FIFO, exactly-once dequeue)
- RetryPolicy (per-item state machine, linear backoff)
- TransformWorker / WorkerPool (asyncio tasks over one queue)
- ResultSink (lock-guarded accumulation + PassStats)
- QuarantineManager (file-based holding area + NDJSON ledger)
- ProgressBus (per-item progress events)
- Prometheus metrics
"""

from .types import (
    Artifact,
    Failure,
    Success,
    TransformAdapter,
    TransformOutcome,
    WorkItem,
    media_type_for,
)
from .policy import RetryPolicy, RetryState, retry_any
from .queue import WorkQueue
from .results import PassStats, ResultSet, ResultSink
from .worker import TransformWorker
from .pool import WorkerPool
from .quarantine import QuarantineManager, QuarantineRecord
from .progress import ProgressBus, ProgressEvent

__all__ = [
    # types
    "Artifact",
    "Failure",
    "Success",
    "TransformAdapter",
    "TransformOutcome",
    "WorkItem",
    "media_type_for",
    "PassStats",
    "ResultSet",
    "QuarantineRecord",
    "ProgressEvent",
    # policies
    "RetryPolicy",
    "RetryState",
    "retry_any",
    # runtime
    "WorkQueue",
    "ResultSink",
    "TransformWorker",
    "WorkerPool",
    "ProgressBus",
    # tooling
    "QuarantineManager",
]
