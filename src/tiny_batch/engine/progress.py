"""
Progress reporting for compression passes.

Workers publish one ProgressEvent per recorded outcome. Subscribers (CLI
progress bar, verbose per-item logging, host UI notifications) react to them.
The engine itself never writes user-facing output.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol

from loguru import logger

PassMode = Literal["full", "recovery"]


@dataclass(frozen=True)
class ProgressEvent:
    """Immutable per-item progress event.

    Attributes:
        mode: Pass kind ("full" or "recovery")
        key: WorkItem key (relative path)
        ok: Whether the item ended as a success
        completed: Outcomes recorded so far in this pass
        total: Items queued for this pass
        reason: Failure reason, or saved-size summary on success
    """

    mode: PassMode
    key: str
    ok: bool
    completed: int
    total: int
    reason: str | None = None

    @property
    def fraction(self) -> float:
        """Completed share of the pass (0.0 to 1.0)."""
        return self.completed / self.total if self.total > 0 else 0.0


class ProgressSubscriber(Protocol):
    """Async callable accepting a ProgressEvent. Exceptions are caught and logged."""

    async def __call__(self, event: ProgressEvent) -> None: ...


class ProgressBus:
    """Fans each ProgressEvent out to its subscribers, in subscription order.

    A subscriber that raises is logged and skipped; the pass never sees it.

    Example:
        bus = ProgressBus()

        async def on_progress(event: ProgressEvent):
            print(f"{event.completed}/{event.total} {event.key}")

        bus.subscribe(on_progress)
    """

    def __init__(self) -> None:
        self._subscribers: tuple[ProgressSubscriber, ...] = ()

    def subscribe(self, callback: ProgressSubscriber) -> None:
        if callback not in self._subscribers:
            self._subscribers += (callback,)

    async def publish(self, event: ProgressEvent) -> None:
        for callback in self._subscribers:
            try:
                await callback(event)
            except Exception as exc:
                logger.warning(f"⚠️  Progress subscriber failed on {event.key}: {exc!r}")
