"""Shared fixtures: an in-memory host, a scripted HTTP session and settings."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest
import requests
from requests.cookies import RequestsCookieJar
from requests.structures import CaseInsensitiveDict

from link2attach.config import Settings
from link2attach.fetcher import FetchError
from link2attach.host import HostError, TableHost
from link2attach.models import FetchedPayload

RELAY = "http://relay.local/api/proxy"


class FakeResponse:
    """Just enough of requests.Response for the fetcher and clients."""

    def __init__(
        self,
        status_code: int = 200,
        content: bytes = b"",
        headers: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> None:
        self.status_code = status_code
        self.content = content
        self.headers = CaseInsensitiveDict(headers or {})
        self.reason = "OK" if status_code < 400 else "Error"
        self._json = json_body
        self.body_read = False
        self.bytes_served = 0
        self.closed = False

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self):
        if self._json is None:
            raise ValueError("no json")
        return self._json

    def iter_content(self, chunk_size: int = 1):
        self.body_read = True
        for start in range(0, len(self.content), chunk_size):
            chunk = self.content[start : start + chunk_size]
            self.bytes_served += len(chunk)
            yield chunk

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Scripted session: ``routes`` maps a URL to a response or an exception."""

    def __init__(self, routes: dict[str, Any] | None = None) -> None:
        self.routes = dict(routes or {})
        self.calls: list[tuple[str, str, dict]] = []
        self.cookies = RequestsCookieJar()

    def request(self, method: str, url: str, **kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.routes.get((method, url), self.routes.get(url))
        if outcome is None:
            raise requests.ConnectionError(f"no route for {method} {url}")
        if callable(outcome) and not isinstance(outcome, FakeResponse):
            outcome = outcome(method, url, kwargs)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def get(self, url: str, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs):
        return self.request("POST", url, **kwargs)

    def urls(self) -> list[str]:
        return [url for _, url, _ in self.calls]


class InMemoryHost(TableHost):
    """Dict-backed host with switches for injecting failures."""

    def __init__(self) -> None:
        self.fields: dict[str, dict[str, Any]] = {}
        self.views: dict[str, list[str]] = {}
        self.uploads: dict[str, FetchedPayload] = {}
        self.writes: list[tuple[str, str, Any]] = []
        self.fail_read: set[str] = set()
        self.fail_read_after_write = False
        self.fail_upload = False
        self.fail_write = False
        self.drop_writes = False
        self.rekey_on_write = False
        self.read_back_override: Any = ...
        self._counter = 0

    def add(self, record_id: str, view: str = "default", **fields) -> None:
        self.fields[record_id] = dict(fields)
        self.views.setdefault(view, []).append(record_id)

    def list_visible_record_ids(self, view_id: str) -> list[str]:
        if view_id not in self.views:
            raise HostError(f"unknown view {view_id}")
        return list(self.views[view_id])

    def read_cell(self, field_id: str, record_id: str) -> Any:
        if field_id in self.fail_read:
            raise HostError(f"cannot read {field_id}")
        written = any(r == record_id and f == field_id for r, f, _ in self.writes)
        if written and self.fail_read_after_write:
            raise HostError(f"cannot re-read {field_id}")
        if written and self.read_back_override is not ...:
            return copy.deepcopy(self.read_back_override)
        return copy.deepcopy(self.fields[record_id].get(field_id))

    def write_cell(self, field_id: str, record_id: str, value: Any) -> None:
        if self.fail_write:
            raise HostError("write rejected")
        self.writes.append((record_id, field_id, copy.deepcopy(value)))
        if self.drop_writes:
            return
        if self.rekey_on_write and isinstance(value, list):
            value = [{**item, "token": f"rekeyed-{item['token']}"} for item in value]
        self.fields[record_id][field_id] = copy.deepcopy(value)

    def upload_binary(self, payload: FetchedPayload, file_name: str) -> str:
        if self.fail_upload:
            raise HostError("upload rejected")
        self._counter += 1
        token = f"T{self._counter}"
        self.uploads[token] = payload
        return token


class StubFetcher:
    """Returns a canned payload (or raises) and records every call."""

    def __init__(self, payload: FetchedPayload | None = None, error: Exception | None = None):
        self.payload = payload or FetchedPayload(
            content=b"\x89PNG" + b"0" * 10236, size=10240, content_type="image/png"
        )
        self.error = error
        self.calls: list[tuple[str, bool]] = []

    def fetch(self, url: str, prefer_relay: bool = True) -> FetchedPayload:
        self.calls.append((url, prefer_relay))
        if self.error is not None:
            raise self.error
        return self.payload


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        host_mode="sqlite",
        local_db_path=tmp_path / "table.db",
        relay_base_url="http://relay.local",
        prefer_relay=True,
        max_attachment_bytes=20 * 1024 * 1024,
        fetch_timeout_seconds=5,
        verify_delay_seconds=0,
    )


@pytest.fixture
def host() -> InMemoryHost:
    return InMemoryHost()


@pytest.fixture
def stub_fetcher() -> StubFetcher:
    return StubFetcher()


@pytest.fixture
def network_error() -> FetchError:
    return FetchError(FetchError.NETWORK, "Network error: boom")
