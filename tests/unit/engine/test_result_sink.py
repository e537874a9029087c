"""
Unit tests for ResultSink and PassStats.
"""

import asyncio
from pathlib import Path, PurePosixPath

import pytest

from tiny_batch.engine import Failure, ResultSink, Success, WorkItem
from tiny_batch.engine.results import PassStats
from tiny_batch.errors import FailureKind


def item(name: str) -> WorkItem:
    return WorkItem(source=Path("/src") / name, relative=PurePosixPath(name), media_type="image/png")


def success(orig: int, art: int) -> Success:
    return Success(output_location=Path("/out/x.png"), original_size=orig, artifact_size=art)


@pytest.mark.asyncio
async def test_finalize_aggregates_successes_only():
    sink = ResultSink()
    await sink.record(item("a.png"), success(1000, 400))
    await sink.record(item("b.png"), Failure("HTTP 500: boom", FailureKind.HTTP_STATUS, 3))
    await sink.record(item("c.png"), success(1000, 600))

    rs = sink.finalize()

    assert len(rs) == 3
    assert [i.key for i, _ in rs.succeeded] == ["a.png", "c.png"]
    assert [i.key for i, _ in rs.failed] == ["b.png"]
    assert rs.stats.total == 3
    assert rs.stats.succeeded == 2
    assert rs.stats.failed == 1
    assert rs.stats.original_bytes == 2000
    assert rs.stats.transformed_bytes == 1000
    assert rs.stats.saved_bytes == 1000
    assert rs.stats.saved_percent == pytest.approx(50.0)


@pytest.mark.asyncio
async def test_saved_percent_zero_without_successes():
    sink = ResultSink()
    await sink.record(item("a.png"), Failure("down", FailureKind.NETWORK))
    stats = sink.finalize().stats
    assert stats.saved_percent == 0.0
    assert stats.as_dict()["saved_percent"] == 0.0


def test_empty_stats():
    stats = PassStats(0, 0, 0, 0, 0)
    assert stats.saved_percent == 0.0
    assert stats.saved_bytes == 0


@pytest.mark.asyncio
async def test_record_after_finalize_rejected():
    sink = ResultSink()
    rs = sink.finalize()
    assert rs.stats.total == 0
    assert sink.finalize() is rs
    with pytest.raises(RuntimeError):
        await sink.record(item("late.png"), success(10, 5))


@pytest.mark.asyncio
async def test_concurrent_records_are_not_lost():
    sink = ResultSink()

    async def writer(offset: int):
        for i in range(25):
            await sink.record(item(f"{offset}-{i}.png"), success(10, 5))
            await asyncio.sleep(0)

    await asyncio.gather(*[writer(w) for w in range(4)])

    assert sink.finalize().stats.succeeded == 100


def test_success_savings_ratio():
    assert success(200, 50).savings_ratio == pytest.approx(0.75)
    assert success(0, 0).savings_ratio == 0.0
