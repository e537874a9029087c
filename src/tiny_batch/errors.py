"""
Custom exceptions for tiny-batch.

Provides a closed failure taxonomy for transform adapters plus the
setup/quarantine errors raised around a pass.
"""

from __future__ import annotations

import asyncio
from enum import Enum


class FailureKind(str, Enum):
    """Classification attached to every terminal item failure."""

    TIMEOUT = "timeout"  # per-call timeout budget exceeded
    NETWORK = "network"  # no response from the remote service
    HTTP_STATUS = "http_status"  # unexpected HTTP status
    PROTOCOL = "protocol"  # response did not have the expected shape
    IO = "io"  # reading the source or writing the artifact failed
    UNKNOWN = "unknown"


class TinyBatchError(Exception):
    """Base error for tiny-batch."""

    pass


class SetupError(TinyBatchError):
    """Pass cannot start (missing source root, uncreatable output, unreadable quarantine)."""

    pass


class TransformError(TinyBatchError):
    """Raised by a TransformAdapter; always carries a FailureKind."""

    def __init__(self, kind: FailureKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return self.message


class QuarantineIOError(TinyBatchError):
    """Copy/delete/ledger failure inside the holding area. Logged, never escalated."""

    pass


def classify_error(e: BaseException) -> FailureKind:
    if isinstance(e, TransformError):
        return e.kind
    if isinstance(e, (asyncio.TimeoutError, TimeoutError)):
        return FailureKind.TIMEOUT
    if isinstance(e, OSError):
        return FailureKind.IO
    return FailureKind.UNKNOWN
