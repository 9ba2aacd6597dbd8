"""Build target-cell attachment lists and judge whether a write landed."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional

from .config import DEFAULT_CONTENT_TYPE
from .models import FetchedPayload
from .utils import epoch_millis

logger = logging.getLogger(__name__)


@dataclass
class AttachmentRecord:
    """Host-neutral representation of one uploaded file."""

    token: str
    name: str = "file"
    size: int = 0
    type: str = DEFAULT_CONTENT_TYPE
    timestamp: int = 0

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "AttachmentRecord":
        """Fill missing fields with safe defaults, keeping the token untouched."""
        return cls(
            token=raw.get("token"),
            name=raw.get("name") or "file",
            size=raw.get("size") or 0,
            type=raw.get("type") or DEFAULT_CONTENT_TYPE,
            timestamp=raw.get("timeStamp") or raw.get("timestamp") or epoch_millis(),
        )

    def to_cell(self) -> dict[str, Any]:
        data = asdict(self)
        data["timeStamp"] = data.pop("timestamp")
        return data


def coerce_attachments(value: Any) -> Optional[list[dict[str, Any]]]:
    """Return the attachment dicts of a target cell, or None if it is not a list."""
    if value is None or isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        return None
    return [item for item in value if isinstance(item, Mapping)]


def attachment_count(value: Any) -> int:
    """Number of entries in a target cell, counting items of any shape."""
    if value is None or isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        return 0
    return len(value)


def build_attachment_set(
    existing: Optional[Sequence[Mapping[str, Any]]],
    payload: FetchedPayload,
    file_name: str,
    token: str,
    overwrite: bool,
) -> list[dict[str, Any]]:
    """Merge a freshly uploaded file into the current attachments."""
    new_record = AttachmentRecord(
        token=token,
        name=file_name,
        size=payload.size,
        type=payload.content_type or DEFAULT_CONTENT_TYPE,
        timestamp=epoch_millis(),
    )
    if overwrite or not existing:
        return [new_record.to_cell()]

    merged = [
        AttachmentRecord.from_raw(item).to_cell() if item.get("token") else dict(item)
        for item in existing
    ]
    merged.append(new_record.to_cell())
    return merged


class Verification(str, Enum):
    CONFIRMED = "confirmed"
    COUNT_MATCH = "count-match"
    MISMATCH = "mismatch"
    EMPTY = "empty"
    UNVERIFIABLE = "unverifiable"

    @property
    def succeeded(self) -> bool:
        return self in (Verification.CONFIRMED, Verification.COUNT_MATCH, Verification.UNVERIFIABLE)


def verify_write(
    read_back: Any, token: str, expected_count: int, overwrite: bool
) -> Verification:
    """Classify the re-read target cell.

    =====================  =========================  ================
    read-back              condition                  verdict
    =====================  =========================  ================
    list                   new token present          CONFIRMED
    non-empty list         len >= expected_count      COUNT_MATCH
    non-empty list         len < expected_count       MISMATCH
    empty list             -                          EMPTY
    not a list             overwrite                  EMPTY
    not a list             append                     UNVERIFIABLE
    =====================  =========================  ================

    Hosts may re-key tokens on write, so a matching count is accepted.
    UNVERIFIABLE counts as success and is a known false-positive risk.
    """
    attachments = coerce_attachments(read_back)
    if attachments is None:
        return Verification.EMPTY if overwrite else Verification.UNVERIFIABLE
    if any(item.get("token") == token for item in attachments):
        return Verification.CONFIRMED
    count = attachment_count(read_back)
    if not count:
        return Verification.EMPTY
    if count >= expected_count:
        return Verification.COUNT_MATCH
    return Verification.MISMATCH
