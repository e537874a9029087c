"""
Unit tests for TransformWorker.
"""

import asyncio

import pytest

from fakes import FakeAdapter, fails_for, make_items, payload
from tiny_batch.discovery import OutputPlanner
from tiny_batch.engine import (
    Failure,
    ProgressBus,
    ResultSink,
    RetryPolicy,
    Success,
    TransformWorker,
    WorkQueue,
)
from tiny_batch.errors import FailureKind


def make_worker(queue, adapter, sink, out, **kw):
    params = dict(
        worker_id=1,
        queue=queue,
        adapter=adapter,
        sink=sink,
        retry_policy=RetryPolicy(max_retries=kw.pop("max_retries", 1), retry_delay_ms=1),
        planner=OutputPlanner(out),
        timeout_sec=kw.pop("timeout_sec", 5.0),
        task_delay_sec=0,
    )
    params.update(kw)
    return TransformWorker(**params)


@pytest.mark.asyncio
async def test_worker_drains_queue_and_writes_artifacts(tmp_path):
    src, out = tmp_path / "src", tmp_path / "out"
    items = make_items(src, ["a.png", "nested/b.jpg"])
    sink = ResultSink()
    worker = make_worker(WorkQueue(items), FakeAdapter(), sink, out)

    worker.start()
    await worker._task

    rs = sink.finalize()
    assert rs.stats.succeeded == 2
    assert worker.processed == 2
    assert not worker.alive
    written = out / "nested" / "b.jpg"
    assert written.read_bytes() == payload("nested/b.jpg")[: len(payload("nested/b.jpg")) // 2]
    _, s = rs.succeeded[1]
    assert s.output_location == written
    assert s.original_size == len(payload("nested/b.jpg"))
    assert s.attempts == 1


@pytest.mark.asyncio
async def test_worker_records_failure_after_retries(tmp_path):
    items = make_items(tmp_path / "src", ["bad.png"])
    adapter = FakeAdapter(fail_when=fails_for("bad.png"), kind=FailureKind.HTTP_STATUS)
    sink = ResultSink()

    await make_worker(WorkQueue(items), adapter, sink, tmp_path / "out", max_retries=2).run()

    (it, failure), = sink.finalize().failed
    assert it.key == "bad.png"
    assert failure.classification == FailureKind.HTTP_STATUS
    assert failure.attempts == 3
    assert adapter.calls[payload("bad.png")] == 3
    assert not (tmp_path / "out" / "bad.png").exists()


@pytest.mark.asyncio
async def test_worker_enforces_timeout_budget(tmp_path):
    items = make_items(tmp_path / "src", ["slow.png"])
    sink = ResultSink()
    worker = make_worker(
        WorkQueue(items), FakeAdapter(latency=5.0), sink, tmp_path / "out",
        max_retries=0, timeout_sec=0.05,
    )

    await asyncio.wait_for(worker.run(), timeout=2.0)

    (_, failure), = sink.finalize().failed
    assert isinstance(failure, Failure)
    assert failure.classification == FailureKind.TIMEOUT


@pytest.mark.asyncio
async def test_missing_source_is_io_failure(tmp_path):
    items = make_items(tmp_path / "src", ["gone.png"])
    items[0].source.unlink()
    sink = ResultSink()

    await make_worker(WorkQueue(items), FakeAdapter(), sink, tmp_path / "out").run()

    (_, failure), = sink.finalize().failed
    assert failure.classification == FailureKind.IO


@pytest.mark.asyncio
async def test_release_called_only_for_successes(tmp_path):
    items = make_items(tmp_path / "src", ["ok.png", "bad.png"])
    released = []

    async def release(item):
        # success must already be recorded when release runs
        assert item.key in {i.key for i, _ in sink._succeeded}
        released.append(item.key)
        return True

    sink = ResultSink()
    worker = make_worker(
        WorkQueue(items),
        FakeAdapter(fail_when=fails_for("bad.png")),
        sink,
        tmp_path / "out",
        release=release,
        mode="recovery",
    )
    await worker.run()

    assert released == ["ok.png"]


@pytest.mark.asyncio
async def test_release_failure_does_not_fail_the_item(tmp_path):
    items = make_items(tmp_path / "src", ["ok.png"])
    sink = ResultSink()

    async def release(item):
        return False

    await make_worker(
        WorkQueue(items), FakeAdapter(), sink, tmp_path / "out", release=release
    ).run()

    assert sink.finalize().stats.succeeded == 1


@pytest.mark.asyncio
async def test_worker_publishes_progress(tmp_path):
    items = make_items(tmp_path / "src", ["a.png", "b.png"])
    events = []

    async def on_progress(event):
        events.append(event)

    bus = ProgressBus()
    bus.subscribe(on_progress)
    sink = ResultSink()
    await make_worker(
        WorkQueue(items), FakeAdapter(fail_when=fails_for("b.png")), sink, tmp_path / "out",
        progress=bus, max_retries=0,
    ).run()

    assert [(e.key, e.ok, e.completed, e.total) for e in events] == [
        ("a.png", True, 1, 2),
        ("b.png", False, 2, 2),
    ]
    assert events[1].reason == "simulated failure"
    assert events[0].mode == "full"


@pytest.mark.asyncio
async def test_process_returns_outcome_without_recording(tmp_path):
    items = make_items(tmp_path / "src", ["a.png"])
    sink = ResultSink()
    worker = make_worker(WorkQueue([]), FakeAdapter(), sink, tmp_path / "out")

    outcome = await worker.process(items[0])

    assert isinstance(outcome, Success)
    assert sink.recorded == 0
