"""Contract for the table host the pipeline reads from and writes to."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .models import FetchedPayload


class HostError(Exception):
    """Any failure reported by the table host."""


class TableHost(ABC):
    """Record/field access plus an attachment upload primitive.

    Attachment cells are exchanged as lists of dicts carrying at least a
    ``token``; adapters translate to and from their native shape.
    """

    @abstractmethod
    def list_visible_record_ids(self, view_id: str) -> list[str]:
        """Record ids of *view_id* in the view's own order."""

    @abstractmethod
    def read_cell(self, field_id: str, record_id: str) -> Any:
        ...

    @abstractmethod
    def write_cell(self, field_id: str, record_id: str, value: Any) -> None:
        ...

    @abstractmethod
    def upload_binary(self, payload: FetchedPayload, file_name: str) -> str:
        """Store the bytes and return an opaque token usable in attachment cells."""
