"""
Directory discovery and output path mirroring.

discover_items() walks a source tree in a stable order (directory entries
sorted by name, depth-first) and returns supported files as WorkItems.
Hidden directories, the output root and the quarantine directory are never
descended into.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator

from loguru import logger

from .engine.types import WorkItem
from .settings import EngineSettings


def _excluded(path: Path, excludes: set[Path], skip_hidden: bool) -> bool:
    if skip_hidden and path.name.startswith("."):
        return True
    return path.resolve() in excludes


def walk_files(
    root: Path,
    *,
    exclude: Iterable[Path] = (),
    skip_hidden: bool = True,
) -> Iterator[Path]:
    """Yield files under root depth-first, entries sorted by name."""
    root = Path(root)
    excludes = {Path(p).resolve() for p in exclude}

    def _walk(d: Path) -> Iterator[Path]:
        try:
            entries = sorted(os.scandir(d), key=lambda e: e.name)
        except OSError as exc:
            logger.warning(f"⚠️  Cannot scan directory {d}: {exc}")
            return
        for entry in entries:
            p = Path(entry.path)
            if entry.is_dir(follow_symlinks=False):
                if not _excluded(p, excludes, skip_hidden):
                    yield from _walk(p)
            elif entry.is_file():
                yield p

    yield from _walk(root)


def discover_items(
    source_root: Path,
    settings: EngineSettings,
    *,
    exclude: Iterable[Path] = (),
) -> list[WorkItem]:
    """Supported files under source_root, in discovery order."""
    source_root = Path(source_root).resolve()
    items = [
        WorkItem.from_path(p, source_root)
        for p in walk_files(source_root, exclude=exclude, skip_hidden=settings.skip_hidden_dirs)
        if settings.is_supported(p)
    ]
    logger.debug(f"Discovered {len(items)} supported file(s) under {source_root}")
    return items


def mirror_path(relative: PurePosixPath, output_root: Path, preserve_structure: bool) -> Path:
    """Deterministic output location for a path relative to its pass root."""
    if preserve_structure:
        return Path(output_root).joinpath(*relative.parts)
    return Path(output_root) / relative.name


class OutputPlanner:
    """Maps WorkItems to output locations; same item, same path, every pass."""

    def __init__(self, output_root: Path, preserve_structure: bool = True):
        self.output_root = Path(output_root)
        self.preserve_structure = preserve_structure

    def __call__(self, item: WorkItem) -> Path:
        return mirror_path(item.relative, self.output_root, self.preserve_structure)


def copy_unsupported(
    source_root: Path,
    output_root: Path,
    settings: EngineSettings,
    *,
    exclude: Iterable[Path] = (),
) -> int:
    """Copy files the engine does not transform (svg, gif, ...) into the output tree.

    Returns the number of files copied. Copy errors are logged and skipped.
    """
    source_root = Path(source_root).resolve()
    excludes = [Path(output_root), *exclude]
    copied = 0
    for p in walk_files(source_root, exclude=excludes, skip_hidden=settings.skip_hidden_dirs):
        if settings.is_supported(p):
            continue
        rel = PurePosixPath(p.relative_to(source_root).as_posix())
        target = mirror_path(rel, output_root, settings.preserve_structure)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(p, target)
        except OSError as exc:
            logger.warning(f"⚠️  Cannot copy {p} -> {target}: {exc}")
            continue
        copied += 1
        logger.debug(f"📄 Copied unsupported file {p} -> {target}")
    return copied
