"""SQLite-backed table host for offline runs."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterable, Mapping

import sqlite_utils
from sqlite_utils.db import NotFoundError

from .host import HostError, TableHost
from .models import FetchedPayload

logger = logging.getLogger(__name__)


class SqliteTableHost(TableHost):
    """Store records, view ordering and uploaded files in one SQLite file."""

    RECORDS = "records"
    VIEW_RECORDS = "view_records"
    UPLOADS = "uploads"

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db = sqlite_utils.Database(str(db_path))
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self.db[self.RECORDS].create(
            {"record_id": str, "fields": str},
            pk="record_id",
            if_not_exists=True,
        )
        self.db[self.VIEW_RECORDS].create(
            {"view_id": str, "record_id": str, "position": int},
            pk=("view_id", "record_id"),
            if_not_exists=True,
        )
        self.db[self.UPLOADS].create(
            {
                "token": str,
                "name": str,
                "content_type": str,
                "size": int,
                "content": bytes,
                "uploaded_at": str,
            },
            pk="token",
            if_not_exists=True,
        )

    def add_record(
        self,
        record_id: str,
        fields: Mapping[str, Any],
        views: Iterable[str] = ("default",),
    ) -> None:
        """Insert or replace a record and append it to each of *views*."""
        self.db[self.RECORDS].upsert(
            {"record_id": record_id, "fields": json.dumps(dict(fields))}, pk="record_id"
        )
        table = self.db[self.VIEW_RECORDS]
        for view_id in views:
            if table.count_where("view_id = ? and record_id = ?", [view_id, record_id]):
                continue
            position = table.count_where("view_id = ?", [view_id])
            table.insert({"view_id": view_id, "record_id": record_id, "position": position})

    def list_visible_record_ids(self, view_id: str) -> list[str]:
        rows = self.db[self.VIEW_RECORDS].rows_where(
            "view_id = ?", [view_id], order_by="position"
        )
        return [row["record_id"] for row in rows]

    def read_cell(self, field_id: str, record_id: str) -> Any:
        return self._fields(record_id).get(field_id)

    def write_cell(self, field_id: str, record_id: str, value: Any) -> None:
        fields = self._fields(record_id)
        fields[field_id] = value
        self.db[self.RECORDS].update(record_id, {"fields": json.dumps(fields)})

    def upload_binary(self, payload: FetchedPayload, file_name: str) -> str:
        token = uuid.uuid4().hex
        self.db[self.UPLOADS].insert(
            {
                "token": token,
                "name": file_name,
                "content_type": payload.content_type,
                "size": payload.size,
                "content": payload.content,
                "uploaded_at": datetime.now(tz=UTC).isoformat(),
            },
            pk="token",
        )
        logger.debug("Stored upload %s (%s bytes) as %s", file_name, payload.size, token)
        return token

    def uploaded_content(self, token: str) -> bytes:
        try:
            return self.db[self.UPLOADS].get(token)["content"]
        except NotFoundError as exc:
            raise HostError(f"Unknown upload token {token}") from exc

    def _fields(self, record_id: str) -> dict[str, Any]:
        try:
            row = self.db[self.RECORDS].get(record_id)
        except NotFoundError as exc:
            raise HostError(f"Record {record_id} not found") from exc
        return json.loads(row["fields"])
