"""
Pass entry points.

run_full_pass: discover -> worker pool (drop stale held copies on success)
               -> quarantine commit -> copy unsupported
run_recovery_pass: load quarantine -> worker pool (release on success) -> prune ledger

Both raise SetupError before touching any item when the pass cannot start;
otherwise they always return a PassReport with a full accounting.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from .discovery import OutputPlanner, copy_unsupported, discover_items
from .engine.policy import RetryPolicy
from .engine.pool import WorkerPool
from .engine.progress import PassMode, ProgressBus
from .engine.quarantine import QuarantineManager
from .engine.results import PassStats, ResultSet
from .engine.types import TransformAdapter
from .errors import SetupError
from .settings import EngineSettings, holding_dir


@dataclass(frozen=True)
class PassReport:
    """What a pass produced, for the caller to render."""

    mode: PassMode
    results: ResultSet
    output_root: Path
    holding_dir: Path
    quarantined: int
    copied_unsupported: int = 0
    workers: int = 0

    @property
    def stats(self) -> PassStats:
        return self.results.stats

    def as_dict(self) -> dict:
        return {
            "mode": self.mode,
            "output_root": str(self.output_root),
            "holding_dir": str(self.holding_dir),
            "quarantined": self.quarantined,
            "copied_unsupported": self.copied_unsupported,
            "workers": self.workers,
            "stats": self.stats.as_dict(),
            "failed": [
                {
                    "key": item.key,
                    "source": str(item.source),
                    "reason": f.reason,
                    "classification": f.classification.value,
                    "attempts": f.attempts,
                }
                for item, f in self.results.failed
            ],
        }


def _prepare_output(output_root: Path) -> Path:
    output_root = Path(output_root).resolve()
    try:
        output_root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise SetupError(f"Cannot create output directory {output_root}: {exc}") from exc
    return output_root


async def run_full_pass(
    source_root: Path | str,
    output_root: Path | str,
    settings: EngineSettings,
    adapter: TransformAdapter,
    *,
    progress: Optional[ProgressBus] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> PassReport:
    """Compress every supported file under source_root into output_root."""
    src = Path(source_root)
    if not src.exists():
        raise SetupError(f"Source directory does not exist: {src}")
    if not src.is_dir():
        raise SetupError(f"Source path is not a directory: {src}")
    src = src.resolve()
    out = _prepare_output(Path(output_root))
    quarantine = QuarantineManager(holding_dir(out, settings), settings)
    quarantine.ensure_usable()

    items = discover_items(src, settings, exclude=[out, quarantine.path])
    if not items:
        logger.warning(f"⚠️  No supported files found under {src}")

    pool = WorkerPool(adapter, settings, retry_policy=retry_policy, progress=progress)
    results = await pool.run(
        items,
        OutputPlanner(out, settings.preserve_structure),
        mode="full",
        release=quarantine.release_superseded,
    )

    await quarantine.commit(results)
    quarantine.prune_ledger()

    copied = 0
    if settings.copy_unsupported:
        copied = await asyncio.to_thread(
            copy_unsupported, src, out, settings, exclude=[quarantine.path]
        )
        logger.info(f"📁 Copied {copied} unsupported file(s)")

    return PassReport(
        mode="full",
        results=results,
        output_root=out,
        holding_dir=quarantine.path,
        quarantined=quarantine.count(),
        copied_unsupported=copied,
        workers=pool.workers_spawned,
    )


async def run_recovery_pass(
    output_root: Path | str,
    settings: EngineSettings,
    adapter: TransformAdapter,
    *,
    progress: Optional[ProgressBus] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> PassReport:
    """Retry everything held in output_root's quarantine directory.

    Successes land at their mirrored location and are removed from the
    holding area; failures stay there untouched. An absent or empty holding
    area is a no-op reporting zero items.
    """
    out = Path(output_root).resolve()
    quarantine = QuarantineManager(holding_dir(out, settings), settings)

    items = quarantine.load()
    if not items:
        logger.info(f"No quarantined files to retry in {quarantine.path}")
        return PassReport(
            mode="recovery",
            results=ResultSet.empty(),
            output_root=out,
            holding_dir=quarantine.path,
            quarantined=0,
        )

    out = _prepare_output(out)
    logger.info(f"🔁 Retrying {len(items)} quarantined file(s)")
    pool = WorkerPool(adapter, settings, retry_policy=retry_policy, progress=progress)
    results = await pool.run(
        items,
        OutputPlanner(out, settings.preserve_structure),
        mode="recovery",
        release=quarantine.release,
    )
    quarantine.prune_ledger()

    remaining = quarantine.count()
    if remaining:
        logger.warning(f"⚠️  {remaining} file(s) still failing, kept in {quarantine.path}")
    else:
        logger.info("✅ All quarantined files processed")

    return PassReport(
        mode="recovery",
        results=results,
        output_root=out,
        holding_dir=quarantine.path,
        quarantined=remaining,
        workers=pool.workers_spawned,
    )
