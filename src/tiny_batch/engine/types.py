from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Awaitable, Callable, Protocol, Union

from ..errors import FailureKind

MEDIA_TYPES = {
    ".png": "image/png",
    ".webp": "image/webp",
}


def media_type_for(path: Path) -> str:
    """Declared media kind for the remote service; jpeg for anything else."""
    return MEDIA_TYPES.get(path.suffix.lower(), "image/jpeg")


@dataclass(frozen=True)
class WorkItem:
    """One file submitted to the engine.

    Attributes:
        source: Absolute path of the file to read
        relative: Path relative to the pass root (mirroring + stable key)
        media_type: Declared media kind handed to the adapter
    """

    source: Path
    relative: PurePosixPath
    media_type: str

    @classmethod
    def from_path(cls, source: Path, root: Path) -> "WorkItem":
        source = Path(source)
        rel = PurePosixPath(source.relative_to(root).as_posix())
        return cls(source=source, relative=rel, media_type=media_type_for(source))

    @property
    def key(self) -> str:
        return self.relative.as_posix()

    @property
    def name(self) -> str:
        return self.relative.name


@dataclass(frozen=True)
class Artifact:
    """Adapter output; the engine decides where it is written."""

    data: bytes
    original_size: int
    artifact_size: int


@dataclass(frozen=True)
class Success:
    output_location: Path
    original_size: int
    artifact_size: int
    attempts: int = 1

    @property
    def savings_ratio(self) -> float:
        if self.original_size <= 0:
            return 0.0
        return (self.original_size - self.artifact_size) / self.original_size

    @property
    def saved_percent(self) -> float:
        return self.savings_ratio * 100.0


@dataclass(frozen=True)
class Failure:
    reason: str
    classification: FailureKind
    attempts: int = 1


TransformOutcome = Union[Success, Failure]


class TransformAdapter(Protocol):
    """Remote transformation service.

    Must not retry internally and must not touch the source file. Failures are
    raised as TransformError with a FailureKind; the caller enforces the timeout.
    """

    async def transform(self, data: bytes, media_type: str, timeout: float) -> Artifact: ...


OutputPlanner = Callable[[WorkItem], Path]
ReleaseCallback = Callable[[WorkItem], Awaitable[bool]]
RetryClassifier = Callable[[Failure], bool]
