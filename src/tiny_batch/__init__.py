"""
tiny-batch

Batch image compression over a directory tree with a bounded-concurrency
retry-queue engine and a file-based quarantine for failed images.

Usage:
    from tiny_batch import EngineSettings, TinyPngAdapter, run_full_pass, run_recovery_pass

    settings = EngineSettings(max_concurrent=3)
    async with TinyPngAdapter.from_settings(settings) as adapter:
        report = await run_full_pass("static", "static_compressed", settings, adapter)
        retry = await run_recovery_pass("static_compressed", settings, adapter)
"""

from .adapters import TinyPngAdapter
from .errors import (
    FailureKind,
    QuarantineIOError,
    SetupError,
    TinyBatchError,
    TransformError,
)
from .runner import PassReport, run_full_pass, run_recovery_pass
from .settings import EngineSettings, default_output_root, holding_dir

__version__ = "1.0.0"
__all__ = [
    "EngineSettings",
    "default_output_root",
    "holding_dir",
    "TinyPngAdapter",
    "PassReport",
    "run_full_pass",
    "run_recovery_pass",
    "FailureKind",
    "TinyBatchError",
    "SetupError",
    "TransformError",
    "QuarantineIOError",
]
