"""Lark/Feishu Base (Bitable) Open API host adapter."""

from __future__ import annotations

import logging
import time
from typing import Any, Iterator
from urllib.parse import quote

import requests
from requests import Response

from .config import Settings
from .host import HostError, TableHost
from .models import FetchedPayload

logger = logging.getLogger(__name__)


class BitableClient(TableHost):
    """Thin wrapper that authenticates with the Open API and edits one table.

    Field identifiers are field names, which is how the Open API keys
    ``fields`` on records.
    """

    TOKEN_REFRESH_MARGIN = 60

    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.api_root = settings.bitable_api_root
        self.app_token = settings.bitable_app_token
        self.table_id = settings.bitable_table_id
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    # -- TableHost -------------------------------------------------------

    def list_visible_record_ids(self, view_id: str) -> list[str]:
        return [item["record_id"] for item in self._iter_records(view_id) if item.get("record_id")]

    def read_cell(self, field_id: str, record_id: str) -> Any:
        data = self._call("GET", self._records_url(record_id))
        fields = (data.get("record") or {}).get("fields") or {}
        return self._from_native(fields.get(field_id))

    def write_cell(self, field_id: str, record_id: str, value: Any) -> None:
        body = {"fields": {field_id: self._to_native(value)}}
        self._call("PUT", self._records_url(record_id), json=body)

    def upload_binary(self, payload: FetchedPayload, file_name: str) -> str:
        url = f"{self.api_root}/drive/v1/medias/upload_all"
        data = {
            "file_name": file_name,
            "parent_type": "bitable_file",
            "parent_node": self.app_token,
            "size": str(payload.size),
        }
        files = {"file": (file_name, payload.content, payload.content_type)}
        logger.info("Uploading '%s' (%s bytes) to Bitable", file_name, payload.size)
        result = self._call(
            "POST", url, data=data, files=files, timeout=self.settings.upload_timeout_seconds
        )
        token = result.get("file_token")
        if not token:
            raise HostError(f"Upload response did not include a file token: {result}")
        return token

    # -- helpers ---------------------------------------------------------

    def _iter_records(self, view_id: str) -> Iterator[dict]:
        params: dict[str, Any] = {"view_id": view_id, "page_size": self.settings.bitable_page_size}
        while True:
            logger.debug("Fetching Bitable records page for view %s", view_id)
            data = self._call("GET", self._records_url(), params=params)
            yield from data.get("items") or []
            if not data.get("has_more") or not data.get("page_token"):
                return
            params = {**params, "page_token": data["page_token"]}

    def _records_url(self, record_id: str | None = None) -> str:
        url = (
            f"{self.api_root}/bitable/v1/apps/{quote(self.app_token)}"
            f"/tables/{quote(self.table_id)}/records"
        )
        if record_id:
            url = f"{url}/{quote(record_id)}"
        return url

    def _call(self, method: str, url: str, *, timeout: float | None = None, **kwargs) -> dict:
        headers = {"Authorization": f"Bearer {self._acquire_token()}"}
        try:
            resp = self.session.request(
                method,
                url,
                headers=headers,
                timeout=timeout or self.settings.fetch_timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise HostError(f"Bitable request failed: {exc}") from exc
        return self._unwrap(resp)

    @staticmethod
    def _unwrap(resp: Response) -> dict:
        if resp.status_code >= 400:
            logger.error("Bitable request failed (%s): %s", resp.status_code, resp.text)
            raise HostError(f"Bitable request failed with HTTP {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise HostError("Bitable response was not JSON") from exc
        if payload.get("code", 0) != 0:
            logger.error("Bitable API error %s: %s", payload.get("code"), payload.get("msg"))
            raise HostError(f"Bitable API error {payload.get('code')}: {payload.get('msg')}")
        return payload.get("data") or {}

    def _acquire_token(self) -> str:
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token
        url = f"{self.api_root}/auth/v3/tenant_access_token/internal"
        body = {
            "app_id": self.settings.bitable_app_id,
            "app_secret": self.settings.bitable_app_secret,
        }
        try:
            resp = self.session.post(url, json=body, timeout=self.settings.fetch_timeout_seconds)
        except requests.RequestException as exc:
            raise HostError(f"Unable to obtain tenant access token: {exc}") from exc
        if resp.status_code >= 400:
            logger.error("Token request failed (%s): %s", resp.status_code, resp.text)
            raise HostError(f"Unable to obtain tenant access token: HTTP {resp.status_code}")
        result = resp.json()
        token = result.get("tenant_access_token")
        if result.get("code", 0) != 0 or not token:
            raise HostError(f"Unable to obtain tenant access token: {result.get('msg')}")
        expires_in = int(result.get("expire") or 0)
        self._access_token = token
        self._token_expires_at = time.monotonic() + max(expires_in - self.TOKEN_REFRESH_MARGIN, 0)
        return token

    @staticmethod
    def _from_native(value: Any) -> Any:
        """Expose attachment cells with ``token`` instead of ``file_token``."""
        if not isinstance(value, list) or not value:
            return value
        if not all(isinstance(item, dict) and "file_token" in item for item in value):
            return value
        return [
            {
                "token": item["file_token"],
                "name": item.get("name"),
                "size": item.get("size"),
                "type": item.get("type"),
                "timeStamp": item.get("timeStamp"),
            }
            for item in value
        ]

    @staticmethod
    def _to_native(value: Any) -> Any:
        if not isinstance(value, list) or not value:
            return value
        if not all(isinstance(item, dict) and "token" in item for item in value):
            return value
        return [{"file_token": item["token"]} for item in value]
