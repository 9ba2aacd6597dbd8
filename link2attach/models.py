"""Typed containers shared across the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional

from .config import DEFAULT_CONTENT_TYPE


class Outcome(str, Enum):
    """Per-record classification."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


# Reason tags attached to a RecordResult.
EMPTY_RECORD_ID = "empty-record-id"
NO_URL = "no-url"
HAS_ATTACHMENT = "has-attachment"
INVALID_URL = "invalid-url"
READ_ERROR = "read-error"
FETCH_ERROR = "fetch-error"
UPLOAD_ERROR = "upload-error"
WRITE_ERROR = "write-error"
VERIFY_ERROR = "verify-error"
VERIFY_MISMATCH = "verify-mismatch"
UNVERIFIED = "unverified"


@dataclass
class FetchedPayload:
    """Downloaded bytes plus what the server told us about them."""

    content: bytes
    size: int
    content_type: str = DEFAULT_CONTENT_TYPE
    file_name: str = "file"


@dataclass
class RecordResult:
    """Outcome of converting one record."""

    record_id: str
    outcome: Outcome
    reason: Optional[str] = None
    detail: Optional[str] = None
    token: Optional[str] = None
    url: Optional[str] = None

    @property
    def unverified(self) -> bool:
        return self.outcome is Outcome.SUCCESS and self.reason == UNVERIFIED


@dataclass
class ProgressEvent:
    """Structured per-record event emitted by the orchestrator."""

    index: int
    total: int
    record_id: str
    outcome: Outcome
    reason: Optional[str] = None
    detail: Optional[str] = None


@dataclass
class RunState:
    """Counters for a single batch run; never persisted."""

    total: int = 0
    current: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False

    def record(self, result: RecordResult) -> None:
        self.current += 1
        if result.outcome is Outcome.SUCCESS:
            self.success += 1
        elif result.outcome is Outcome.FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    def summary(self) -> dict[str, int]:
        data = asdict(self)
        return {key: data[key] for key in ("total", "success", "failed", "skipped")}
