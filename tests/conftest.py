"""
Pytest configuration and fixtures for tiny-batch.

Provides cross-platform event loop configuration and fast engine settings.
"""

import asyncio
import sys

import pytest

from tiny_batch.settings import EngineSettings

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest.fixture
def settings():
    """Fast settings: no inter-task delay, 1ms retry backoff, no .env lookup."""
    return EngineSettings(
        _env_file=None,
        max_concurrent=3,
        task_delay_ms=0,
        retry_delay_ms=1,
        max_retries=2,
    )


@pytest.fixture
def source_root(tmp_path):
    root = tmp_path / "static"
    root.mkdir()
    return root


@pytest.fixture
def output_root(tmp_path):
    return tmp_path / "static_compressed"
