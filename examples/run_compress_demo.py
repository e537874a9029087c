"""
Demo: a full pass and a recovery pass over a throwaway tree with a flaky adapter.

No network access; the adapter halves each payload and fails a few files on
their first pass so the quarantine and recovery flow is visible in the logs.
"""

import asyncio
import random
import tempfile
from pathlib import Path

from loguru import logger

from tiny_batch import EngineSettings, run_full_pass, run_recovery_pass
from tiny_batch.engine import Artifact, ProgressBus, ProgressEvent
from tiny_batch.errors import FailureKind, TransformError


class FlakyAdapter:
    """Fails every call for `broken` payloads until heal() is called."""

    def __init__(self, broken: set[bytes]):
        self.broken = broken

    def heal(self) -> None:
        self.broken = set()

    async def transform(self, data: bytes, media_type: str, timeout: float) -> Artifact:
        await asyncio.sleep(random.uniform(0.01, 0.05))
        if data in self.broken:
            raise TransformError(FailureKind.NETWORK, "connection reset by peer")
        out = data[: len(data) // 3]
        return Artifact(data=out, original_size=len(data), artifact_size=len(out))


async def on_progress(event: ProgressEvent):
    mark = "✅" if event.ok else "❌"
    logger.info(f"{mark} [{event.mode}] {event.completed}/{event.total} {event.key}")


async def main():
    with tempfile.TemporaryDirectory() as tmp:
        src = Path(tmp) / "static"
        names = [f"img/{i:02d}.png" for i in range(8)] + ["photos/a.jpg", "photos/b.webp"]
        broken = set()
        for i, name in enumerate(names):
            p = src / name
            p.parent.mkdir(parents=True, exist_ok=True)
            data = f"{name}:".encode() * 200
            p.write_bytes(data)
            if i % 4 == 1:
                broken.add(data)

        settings = EngineSettings(max_concurrent=3, task_delay_ms=0, retry_delay_ms=50)
        adapter = FlakyAdapter(broken)
        bus = ProgressBus()
        bus.subscribe(on_progress)

        logger.info(f"🚀 Compressing {len(names)} files with {settings.max_concurrent} workers")
        full = await run_full_pass(src, Path(tmp) / "out", settings, adapter, progress=bus)
        logger.info(f"Full pass: {full.stats.as_dict()} | held={full.quarantined}")

        adapter.heal()
        recovery = await run_recovery_pass(full.output_root, settings, adapter, progress=bus)
        logger.info(f"Recovery pass: {recovery.stats.as_dict()} | held={recovery.quarantined}")


if __name__ == "__main__":
    asyncio.run(main())
