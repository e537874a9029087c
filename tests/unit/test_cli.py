"""
CLI tests: typer CliRunner with the adapter factory swapped for FakeAdapter.
"""

import json
import sys

import pytest
from loguru import logger
from typer.testing import CliRunner

from fakes import FakeAdapter, fails_for, make_tree
from tiny_batch import cli

runner = CliRunner()


@pytest.fixture(autouse=True)
def fast_env(monkeypatch):
    monkeypatch.setenv("TINY_BATCH_TASK_DELAY_MS", "0")
    monkeypatch.setenv("TINY_BATCH_RETRY_DELAY_MS", "1")
    # keep log lines out of the captured stdout
    monkeypatch.setattr(cli, "configure_logging", lambda level: logger.remove())
    yield
    logger.remove()
    logger.add(sys.stderr)


def use_adapters(monkeypatch, *adapters):
    queue = list(adapters)
    monkeypatch.setattr(cli, "build_adapter", lambda settings: queue.pop(0))


def test_compress_then_recovery_json(tmp_path, monkeypatch):
    src = tmp_path / "static"
    out = tmp_path / "out"
    make_tree(src, ["a.png", "sub/b.jpg", "c.webp"])
    # one adapter serves both passes of a compress run
    use_adapters(monkeypatch, FakeAdapter(fail_when=fails_for("sub/b.jpg")))

    result = runner.invoke(
        cli.app,
        ["compress", str(src), "-o", str(out), "--json", "--log-level", "minimal"],
    )

    assert result.exit_code == 0, result.output
    full, recovery = json.loads(result.stdout)
    assert full["mode"] == "full"
    assert full["stats"]["succeeded"] == 2
    assert full["failed"][0]["key"] == "sub/b.jpg"
    assert full["failed"][0]["classification"] == "network"
    assert full["quarantined"] == 1
    assert recovery["mode"] == "recovery"
    assert recovery["stats"]["failed"] == 1
    assert recovery["quarantined"] == 1
    assert (out / "failed_images" / "b.jpg").exists()


def test_compress_no_retry_skips_recovery(tmp_path, monkeypatch):
    src = tmp_path / "static"
    make_tree(src, ["a.png"])
    use_adapters(monkeypatch, FakeAdapter(fail_when=fails_for("a.png")))

    result = runner.invoke(
        cli.app,
        ["compress", str(src), "-o", str(tmp_path / "out"), "--no-retry", "--json",
         "--log-level", "minimal"],
    )

    assert result.exit_code == 0, result.output
    reports = json.loads(result.stdout)
    assert [r["mode"] for r in reports] == ["full"]


def test_retry_command_clears_quarantine(tmp_path, monkeypatch):
    src = tmp_path / "static"
    out = tmp_path / "out"
    make_tree(src, ["a.png", "b.png"])
    use_adapters(
        monkeypatch,
        FakeAdapter(fail_when=fails_for("b.png")),
        FakeAdapter(),
    )
    runner.invoke(
        cli.app,
        ["compress", str(src), "-o", str(out), "--no-retry", "--log-level", "minimal"],
    )

    result = runner.invoke(cli.app, ["retry", str(out), "--json", "--log-level", "minimal"])

    assert result.exit_code == 0, result.output
    (report,) = json.loads(result.stdout)
    assert report["stats"]["succeeded"] == 1
    assert report["quarantined"] == 0
    assert (out / "b.png").exists()


def test_quarantine_listing(tmp_path, monkeypatch):
    src = tmp_path / "static"
    out = tmp_path / "out"
    make_tree(src, ["deep/x.png"])
    use_adapters(monkeypatch, FakeAdapter(fail_when=fails_for("deep/x.png")))
    runner.invoke(
        cli.app,
        ["compress", str(src), "-o", str(out), "--no-retry", "--log-level", "minimal"],
    )

    result = runner.invoke(cli.app, ["quarantine", str(out)])

    assert result.exit_code == 0, result.output
    listing = json.loads(result.stdout)
    assert listing["items"] == [
        {
            "name": "x.png",
            "relative": "deep/x.png",
            "reason": "simulated failure",
            "classification": "network",
        }
    ]


def test_summary_output(tmp_path, monkeypatch):
    src = tmp_path / "static"
    make_tree(src, ["a.png"])
    use_adapters(monkeypatch, FakeAdapter())

    result = runner.invoke(
        cli.app, ["compress", str(src), "-o", str(tmp_path / "out"), "--log-level", "minimal"]
    )

    assert result.exit_code == 0, result.output
    assert "Succeeded: 1" in result.stdout
    assert "Failed: 0" in result.stdout


def test_missing_source_exits_1(tmp_path, monkeypatch):
    use_adapters(monkeypatch, FakeAdapter())
    result = runner.invoke(cli.app, ["compress", str(tmp_path / "nope"), "--log-level", "minimal"])
    assert result.exit_code == 1


def test_invalid_setting_exits_2(tmp_path):
    result = runner.invoke(cli.app, ["compress", str(tmp_path), "--max-concurrent", "50"])
    assert result.exit_code == 2


def test_log_levels_cover_every_setting():
    assert cli.LOG_LEVELS == {"minimal": "WARNING", "normal": "INFO", "verbose": "DEBUG"}
