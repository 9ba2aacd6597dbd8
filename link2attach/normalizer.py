"""Turn heterogeneous source-cell values into a plain URL string.

Hosts hand back link-like cells in three shapes: a bare string (plain text
fields), a list of rich-text segments (text and URL fields), or a single
segment mapping (URL fields in the Open API). ``parse_cell_value`` lifts the
raw value into a small tagged union and ``normalize`` pattern-matches on it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Segment:
    link: Optional[str] = None
    text: Optional[str] = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Segment":
        link = raw.get("link")
        text = raw.get("text")
        return cls(
            link=link if isinstance(link, str) else None,
            text=text if isinstance(text, str) else None,
        )

    def preferred(self) -> Optional[str]:
        """``link`` wins over ``text``; empty strings count as missing."""
        return self.link or self.text or None


@dataclass(frozen=True)
class Plain:
    text: str


@dataclass(frozen=True)
class Segments:
    items: tuple[Union[Segment, str], ...]


@dataclass(frozen=True)
class SingleSegment:
    segment: Segment


@dataclass(frozen=True)
class Empty:
    pass


CellValue = Union[Plain, Segments, SingleSegment, Empty]


def _parse_item(item: Any) -> Union[Segment, str, None]:
    if isinstance(item, str):
        return item
    if isinstance(item, Mapping):
        return Segment.from_mapping(item)
    return None


def parse_cell_value(value: Any) -> CellValue:
    """Classify a raw cell value. Unknown shapes become ``Empty``."""
    if value is None:
        return Empty()
    if isinstance(value, str):
        return Plain(value)
    if isinstance(value, Mapping):
        return SingleSegment(Segment.from_mapping(value))
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        if not value:
            return Empty()
        # Only the head is ever read; an unusable head means no URL.
        head = _parse_item(value[0])
        if head is None:
            return Empty()
        rest = (_parse_item(item) for item in value[1:])
        return Segments((head, *(item for item in rest if item is not None)))
    logger.debug("Unrecognised cell value shape %s", type(value).__name__)
    return Empty()


def normalize(value: Any) -> Optional[str]:
    """Extract the raw (untrimmed) URL text from a cell value, or None."""
    try:
        cell = parse_cell_value(value)
    except Exception:
        logger.debug("Failed to parse cell value %r", value, exc_info=True)
        return None

    if isinstance(cell, Plain):
        return cell.text
    if isinstance(cell, Segments):
        head = cell.items[0]
        return head if isinstance(head, str) else head.preferred()
    if isinstance(cell, SingleSegment):
        return cell.segment.preferred()
    return None


def extract_url(value: Any) -> Optional[str]:
    """Normalize then trim; whitespace-only results count as no URL."""
    raw = normalize(value)
    if raw is None:
        return None
    trimmed = raw.strip()
    return trimmed or None
