from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from pydantic import ValidationError

from .adapters import TinyPngAdapter
from .engine.progress import ProgressBus, ProgressEvent
from .engine.quarantine import QuarantineManager
from .errors import SetupError
from .runner import PassReport, run_full_pass, run_recovery_pass
from .settings import EngineSettings, LogLevel, default_output_root, holding_dir

app = typer.Typer(help="tiny-batch: compress image trees through TinyPNG with retries & quarantine")

LOG_LEVELS = {"minimal": "WARNING", "normal": "INFO", "verbose": "DEBUG"}

# ---------------------------
# Common options
# ---------------------------


def concurrency_opt() -> Optional[int]:
    return typer.Option(None, "--max-concurrent", "-c", help="Workers per pass (1-10)")


def retries_opt() -> Optional[int]:
    return typer.Option(None, "--max-retries", help="Retries per file after the first attempt")


def timeout_opt() -> Optional[int]:
    return typer.Option(None, "--timeout-ms", help="Per-request timeout budget in ms")


def delay_opt() -> Optional[int]:
    return typer.Option(None, "--task-delay-ms", help="Pause between files on one worker")


def log_level_opt() -> Optional[str]:
    return typer.Option(None, "--log-level", help="minimal | normal | verbose")


def json_opt() -> bool:
    return typer.Option(False, "--json", help="Print the pass report(s) as JSON")


def metrics_port_opt() -> Optional[int]:
    return typer.Option(None, "--metrics-port", help="Expose Prometheus metrics on this port")


# ---------------------------
# Helpers
# ---------------------------


def build_settings(**overrides) -> EngineSettings:
    try:
        return EngineSettings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        logger.error(f"Invalid settings: {e}")
        raise typer.Exit(2)


def build_adapter(settings: EngineSettings) -> TinyPngAdapter:
    return TinyPngAdapter.from_settings(settings)


def configure_logging(level: LogLevel) -> None:
    logger.remove()
    logger.add(sys.stderr, level=LOG_LEVELS[level], format="<level>{message}</level>")


def progress_printer(settings: EngineSettings) -> ProgressBus:
    bus = ProgressBus()
    if settings.log_level != "normal":
        return bus

    async def on_progress(event: ProgressEvent) -> None:
        width = 40
        filled = int(width * event.fraction)
        bar = "=" * filled + " " * (width - filled)
        typer.echo(
            f"\r[{bar}] {event.completed}/{event.total} {event.fraction:.0%}",
            nl=event.completed >= event.total,
            err=True,
        )

    bus.subscribe(on_progress)
    return bus


def _mb(n: int) -> str:
    return f"{n / 1024 / 1024:.2f} MB"


def print_summary(report: PassReport) -> None:
    s = report.stats
    typer.echo("=" * 50)
    title = "Compression" if report.mode == "full" else "Retry"
    typer.echo(f"{title} finished -> {report.output_root}")
    typer.echo(f"✅ Succeeded: {s.succeeded}")
    typer.echo(f"❌ Failed: {s.failed}")
    typer.echo(f"📦 Original size: {_mb(s.original_bytes)}")
    typer.echo(f"📦 Compressed size: {_mb(s.transformed_bytes)}")
    typer.echo(f"💾 Saved: {_mb(s.saved_bytes)} ({s.saved_percent:.1f}%)")
    if report.copied_unsupported:
        typer.echo(f"📄 Copied unsupported files: {report.copied_unsupported}")
    for item, failure in report.results.failed:
        typer.echo(f"   • {item.key}: {failure.reason}")
    if report.quarantined:
        typer.echo(f"📁 {report.quarantined} file(s) held in {report.holding_dir}")


def _emit(reports: list[PassReport], as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps([r.as_dict() for r in reports], indent=2))
        return
    for r in reports:
        print_summary(r)


def _start_metrics(port: Optional[int]) -> None:
    if port is None:
        return
    from prometheus_client import start_http_server

    start_http_server(port)
    logger.info(f"📊 Prometheus metrics on http://localhost:{port}/metrics")


# ---------------------------
# Commands
# ---------------------------


@app.command("compress")
def compress(
    source: Path = typer.Argument(..., help="Directory to compress"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Output directory (default: <source><suffix>)"
    ),
    no_retry: bool = typer.Option(False, "--no-retry", help="Skip the recovery pass"),
    flatten: bool = typer.Option(False, "--flatten", help="Do not mirror the directory structure"),
    max_concurrent: Optional[int] = concurrency_opt(),
    max_retries: Optional[int] = retries_opt(),
    timeout_ms: Optional[int] = timeout_opt(),
    task_delay_ms: Optional[int] = delay_opt(),
    log_level: Optional[str] = log_level_opt(),
    as_json: bool = json_opt(),
    metrics_port: Optional[int] = metrics_port_opt(),
):
    """Full pass over SOURCE, then a recovery pass over the quarantined failures."""
    settings = build_settings(
        max_concurrent=max_concurrent,
        max_retries=max_retries,
        timeout_ms=timeout_ms,
        task_delay_ms=task_delay_ms,
        log_level=log_level,
        preserve_structure=False if flatten else None,
    )
    configure_logging(settings.log_level)
    _start_metrics(metrics_port)
    out = output or default_output_root(source, settings)

    async def _run() -> list[PassReport]:
        progress = progress_printer(settings)
        async with build_adapter(settings) as adapter:
            reports = [await run_full_pass(source, out, settings, adapter, progress=progress)]
            if not no_retry and reports[0].quarantined:
                reports.append(
                    await run_recovery_pass(out, settings, adapter, progress=progress)
                )
        return reports

    try:
        reports = asyncio.run(_run())
    except SetupError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(1)
    _emit(reports, as_json)


@app.command("retry")
def retry(
    output_root: Path = typer.Argument(..., help="Output directory of an earlier compress run"),
    max_concurrent: Optional[int] = concurrency_opt(),
    max_retries: Optional[int] = retries_opt(),
    timeout_ms: Optional[int] = timeout_opt(),
    log_level: Optional[str] = log_level_opt(),
    as_json: bool = json_opt(),
    metrics_port: Optional[int] = metrics_port_opt(),
):
    """Recovery pass only: retry files held in OUTPUT_ROOT's quarantine directory."""
    settings = build_settings(
        max_concurrent=max_concurrent,
        max_retries=max_retries,
        timeout_ms=timeout_ms,
        log_level=log_level,
    )
    configure_logging(settings.log_level)
    _start_metrics(metrics_port)

    async def _run() -> PassReport:
        async with build_adapter(settings) as adapter:
            return await run_recovery_pass(
                output_root, settings, adapter, progress=progress_printer(settings)
            )

    try:
        report = asyncio.run(_run())
    except SetupError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(1)
    _emit([report], as_json)


@app.command("quarantine")
def quarantine(
    output_root: Path = typer.Argument(..., help="Output directory of an earlier compress run"),
):
    """List files held in the quarantine directory with their last failure."""
    settings = build_settings()
    manager = QuarantineManager(holding_dir(output_root, settings), settings)
    try:
        files = manager.held_files()
    except SetupError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(1)

    ledger = manager.replay()
    rows = []
    for p in files:
        rec = ledger.get(p.name)
        rows.append(
            {
                "name": p.name,
                "relative": rec.relative if rec else p.name,
                "reason": rec.reason if rec else None,
                "classification": rec.classification if rec else None,
            }
        )
    typer.echo(json.dumps({"holding_dir": str(manager.path), "items": rows}, indent=2))


if __name__ == "__main__":
    app()
