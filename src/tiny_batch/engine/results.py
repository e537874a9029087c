from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from .types import Failure, Success, TransformOutcome, WorkItem


@dataclass(frozen=True)
class PassStats:
    """Aggregates over one pass. Sizes only count successful items."""

    total: int
    succeeded: int
    failed: int
    original_bytes: int
    transformed_bytes: int

    @property
    def saved_bytes(self) -> int:
        return self.original_bytes - self.transformed_bytes

    @property
    def saved_percent(self) -> float:
        if self.succeeded == 0 or self.original_bytes <= 0:
            return 0.0
        return self.saved_bytes / self.original_bytes * 100.0

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "original_bytes": self.original_bytes,
            "transformed_bytes": self.transformed_bytes,
            "saved_bytes": self.saved_bytes,
            "saved_percent": round(self.saved_percent, 1),
        }


@dataclass(frozen=True)
class ResultSet:
    succeeded: tuple[tuple[WorkItem, Success], ...]
    failed: tuple[tuple[WorkItem, Failure], ...]
    stats: PassStats

    @classmethod
    def empty(cls) -> "ResultSet":
        return cls((), (), PassStats(0, 0, 0, 0, 0))

    def __len__(self) -> int:
        return len(self.succeeded) + len(self.failed)


class ResultSink:
    """Append-only outcome accumulator shared by the workers of one pass.

    Appends are serialized with an asyncio lock. finalize() freezes the
    collected outcomes into a ResultSet; later records are rejected.
    """

    def __init__(self) -> None:
        self._succeeded: list[tuple[WorkItem, Success]] = []
        self._failed: list[tuple[WorkItem, Failure]] = []
        self._lock = asyncio.Lock()
        self._final: Optional[ResultSet] = None

    @property
    def recorded(self) -> int:
        return len(self._succeeded) + len(self._failed)

    async def record(self, item: WorkItem, outcome: TransformOutcome) -> int:
        """Store one terminal outcome; returns the number recorded so far."""
        async with self._lock:
            if self._final is not None:
                raise RuntimeError("ResultSink already finalized")
            if isinstance(outcome, Success):
                self._succeeded.append((item, outcome))
            else:
                self._failed.append((item, outcome))
            return self.recorded

    def finalize(self) -> ResultSet:
        if self._final is None:
            original = sum(s.original_size for _, s in self._succeeded)
            transformed = sum(s.artifact_size for _, s in self._succeeded)
            stats = PassStats(
                total=self.recorded,
                succeeded=len(self._succeeded),
                failed=len(self._failed),
                original_bytes=original,
                transformed_bytes=transformed,
            )
            self._final = ResultSet(tuple(self._succeeded), tuple(self._failed), stats)
        return self._final
