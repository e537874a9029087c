"""
Quarantine (holding area) for items whose pass ended in failure.

Commit mode copies failed source files flat into the holding directory,
keyed by base name (two sources sharing a name collide; the last failure
wins). An NDJSON ledger next to the copies remembers each file's original
relative path and last failure so a recovery pass can mirror its output back
into place.

Recovery mode loads the held files as WorkItems; the worker releases
(deletes) each copy as soon as its success is recorded. A full pass does the
same for held copies of items that now succeed from their original source.
"""

from __future__ import annotations

import asyncio
import json
import shutil
import time
from dataclasses import asdict, dataclass
from pathlib import Path, PurePosixPath
from typing import Optional

from loguru import logger

from ..errors import QuarantineIOError, SetupError
from ..settings import EngineSettings
from .metrics import QUARANTINE_ITEMS
from .results import ResultSet
from .types import WorkItem, media_type_for

LEDGER_NAME = ".ledger.ndjson"


@dataclass(frozen=True)
class QuarantineRecord:
    name: str
    source: str
    relative: str
    reason: str
    classification: str
    ts: float

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, line: str) -> "QuarantineRecord":
        return cls(**json.loads(line))


def _safe_relative(relative: str, name: str) -> PurePosixPath:
    rel = PurePosixPath(relative)
    if rel.is_absolute() or ".." in rel.parts or rel.name != name:
        return PurePosixPath(name)
    return rel


def _same_file(a: Path, b: Path) -> bool:
    try:
        return b.exists() and a.samefile(b)
    except OSError:
        return False


class QuarantineManager:
    """Owns the holding directory; the only component that deletes from it."""

    def __init__(self, holding_dir: Path | str, settings: EngineSettings):
        self._dir = Path(holding_dir)
        self._settings = settings
        self._ledger = self._dir / LEDGER_NAME
        self._lock = asyncio.Lock()
        self._ledger_snapshot: Optional[dict[str, QuarantineRecord]] = None

    @property
    def path(self) -> Path:
        return self._dir

    @property
    def ledger_path(self) -> Path:
        return self._ledger

    def held_files(self) -> list[Path]:
        """Supported files currently held, sorted by name. Empty if the directory is absent."""
        if not self._dir.exists():
            return []
        if not self._dir.is_dir():
            raise SetupError(f"Quarantine path is not a directory: {self._dir}")
        try:
            return sorted(
                (p for p in self._dir.iterdir() if p.is_file() and self._settings.is_supported(p)),
                key=lambda p: p.name,
            )
        except OSError as exc:
            raise SetupError(f"Quarantine directory unreadable: {self._dir}: {exc}") from exc

    def ensure_usable(self) -> None:
        """Raise SetupError if the holding path exists but is not a readable directory."""
        self.held_files()

    def count(self) -> int:
        """Held-file count for a pass report. An unusable holding area is logged and counts as 0."""
        try:
            n = len(self.held_files())
        except SetupError as exc:
            logger.warning(f"⚠️  {QuarantineIOError(str(exc))}")
            n = 0
        QUARANTINE_ITEMS.set(n)
        return n

    # --------------- commit mode

    async def commit(self, results: ResultSet) -> list[Path]:
        """Copy every failed source into the holding area. Errors are logged and skipped."""
        if not results.failed:
            return []

        async with self._lock:
            try:
                await asyncio.to_thread(self._dir.mkdir, parents=True, exist_ok=True)
            except OSError as exc:
                err = QuarantineIOError(f"Cannot create quarantine directory {self._dir}: {exc}")
                logger.warning(f"⚠️  {err}")
                return []

            committed: list[Path] = []
            records: list[QuarantineRecord] = []
            for item, failure in results.failed:
                target = self._dir / item.name
                try:
                    if not _same_file(item.source, target):
                        await asyncio.to_thread(shutil.copyfile, item.source, target)
                except OSError as exc:
                    err = QuarantineIOError(f"Cannot quarantine {item.source}: {exc}")
                    logger.warning(f"⚠️  {err}")
                    continue

                committed.append(target)
                records.append(
                    QuarantineRecord(
                        name=item.name,
                        source=str(item.source),
                        relative=item.key,
                        reason=failure.reason,
                        classification=failure.classification.value,
                        ts=time.time(),
                    )
                )
                logger.debug(f"📂 Quarantined {item.source} -> {target}")

            await asyncio.to_thread(self._append_ledger, records)

        QUARANTINE_ITEMS.set(len(self.held_files()))
        if committed:
            logger.info(f"📁 {len(committed)} failed file(s) saved to {self._dir}")
        return committed

    def _append_ledger(self, records: list[QuarantineRecord]) -> None:
        if not records:
            return
        try:
            with self._ledger.open("a", encoding="utf-8") as f:
                for rec in records:
                    f.write(rec.to_json() + "\n")
        except OSError as exc:
            logger.warning(f"⚠️  {QuarantineIOError(f'Ledger write failed: {exc}')}")

    def replay(self) -> dict[str, QuarantineRecord]:
        """Last ledger record per file name (last failure wins)."""
        out: dict[str, QuarantineRecord] = {}
        if not self._ledger.exists():
            return out
        try:
            lines = self._ledger.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            logger.warning(f"⚠️  {QuarantineIOError(f'Ledger read failed: {exc}')}")
            return out
        for line in lines:
            if not line.strip():
                continue
            try:
                rec = QuarantineRecord.from_json(line)
            except (ValueError, TypeError) as exc:
                logger.debug(f"Skipping malformed ledger line: {exc}")
                continue
            out[rec.name] = rec
        return out

    # --------------- recovery mode

    def load(self) -> list[WorkItem]:
        """Held files as a fresh, name-ordered list of WorkItems."""
        files = self.held_files()
        ledger = self.replay() if files else {}
        items = []
        for p in files:
            rec = ledger.get(p.name)
            rel = _safe_relative(rec.relative, p.name) if rec else PurePosixPath(p.name)
            items.append(WorkItem(source=p, relative=rel, media_type=media_type_for(p)))
        return items

    async def release(self, item: WorkItem) -> bool:
        """Delete a held copy after its success was recorded. Best-effort."""
        return await asyncio.to_thread(self._remove, item.source)

    async def release_superseded(self, item: WorkItem) -> bool:
        """Full-pass hook: drop a stale held copy of an item that just succeeded.

        Matches by base name; a ledger entry recorded for a different relative
        path means the held file belongs to another source and is kept.
        """
        if self._ledger_snapshot is None:
            async with self._lock:
                if self._ledger_snapshot is None:
                    self._ledger_snapshot = await asyncio.to_thread(self.replay)
        rec = self._ledger_snapshot.get(item.name)
        if rec is not None and rec.relative != item.key:
            return False
        return await asyncio.to_thread(self._remove_held, self._dir / item.name)

    def _remove_held(self, target: Path) -> bool:
        if not target.is_file():
            return False
        return self._remove(target)

    def _remove(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug(f"Quarantined copy already gone: {path}")
            return True
        except OSError as exc:
            err = QuarantineIOError(f"Cannot remove quarantined file {path}: {exc}")
            logger.warning(f"⚠️  {err}")
            return False
        logger.debug(f"🗑️  Released {path}")
        return True

    def prune_ledger(self) -> Optional[int]:
        """Drop ledger records whose file is no longer held; removes the ledger when empty."""
        if not self._ledger.exists():
            return None
        try:
            held = {p.name for p in self.held_files()}
        except SetupError as exc:
            logger.warning(f"⚠️  {QuarantineIOError(f'Ledger prune skipped: {exc}')}")
            return None
        keep = [rec for name, rec in self.replay().items() if name in held]
        try:
            if keep:
                self._ledger.write_text(
                    "".join(rec.to_json() + "\n" for rec in keep), encoding="utf-8"
                )
            else:
                self._ledger.unlink()
        except OSError as exc:
            logger.warning(f"⚠️  {QuarantineIOError(f'Ledger prune failed: {exc}')}")
            return None
        return len(keep)
