"""
Environment-driven settings for tiny-batch.

One immutable EngineSettings value is built by the caller (CLI, tests,
embedding app) and handed to the runner, which threads it through the
worker pool, retry policy and quarantine manager.

Example:
    settings = EngineSettings(max_concurrent=5, preserve_structure=False)
    # or from the environment: TINY_BATCH_MAX_CONCURRENT=5 TINY_BATCH_TIMEOUT_MS=10000
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["minimal", "normal", "verbose"]

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


class EngineSettings(BaseSettings):
    """Runtime knobs for a compression pass."""

    model_config = SettingsConfigDict(
        env_prefix="TINY_BATCH_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    # concurrency & pacing
    max_concurrent: int = Field(3, ge=1, le=10)
    task_delay_ms: int = Field(300, ge=0, le=2000)

    # per-item retry policy
    timeout_ms: int = Field(30_000, ge=1_000, le=60_000)
    max_retries: int = Field(2, ge=0, le=5)
    retry_delay_ms: int = Field(1_000, ge=1, le=10_000)

    # output layout
    preserve_structure: bool = True
    copy_unsupported: bool = True
    skip_hidden_dirs: bool = True
    output_suffix: str = Field("_compressed", min_length=1)
    quarantine_dirname: str = Field("failed_images", min_length=1)
    supported_formats: tuple[str, ...] = (".jpg", ".jpeg", ".png", ".webp")

    log_level: LogLevel = "normal"

    # TinyPNG web backend
    tinypng_store_url: str = "https://tinypng.com/backend/opt/store"
    tinypng_process_url: str = "https://tinypng.com/backend/opt/process"
    user_agent: str = DEFAULT_USER_AGENT

    @field_validator("supported_formats")
    @classmethod
    def _normalize_formats(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        out = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext:
                continue
            out.append(ext if ext.startswith(".") else f".{ext}")
        if not out:
            raise ValueError("supported_formats must not be empty")
        return tuple(out)

    @field_validator("quarantine_dirname")
    @classmethod
    def _flat_dirname(cls, v: str) -> str:
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError("quarantine_dirname must be a single directory name")
        return v

    @property
    def timeout_sec(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def task_delay_sec(self) -> float:
        return self.task_delay_ms / 1000.0

    def is_supported(self, path: Path) -> bool:
        return path.suffix.lower() in self.supported_formats


def default_output_root(source_root: Path, settings: EngineSettings) -> Path:
    """Sibling directory named after the source root plus the output suffix."""
    source_root = Path(source_root).resolve()
    return source_root.with_name(source_root.name + settings.output_suffix)


def holding_dir(output_root: Path, settings: EngineSettings) -> Path:
    return Path(output_root) / settings.quarantine_dirname
