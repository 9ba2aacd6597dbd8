from __future__ import annotations

import importlib.util
import json
import logging
from pathlib import Path

import pytest

from link2attach.local_store import SqliteTableHost

from conftest import StubFetcher

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "links_to_attachments.py"
URL = "https://example.com/img.png"


@pytest.fixture
def cli(monkeypatch):
    module_spec = importlib.util.spec_from_file_location("links_to_attachments", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    monkeypatch.setattr(module, "ContentFetcher", lambda settings: StubFetcher())
    return module


@pytest.fixture
def db_path(tmp_path, monkeypatch) -> Path:
    path = tmp_path / "table.db"
    monkeypatch.setenv("HOST_MODE", "sqlite")
    monkeypatch.setenv("LOCAL_DB_PATH", str(path))
    monkeypatch.setenv("VERIFY_DELAY_SECONDS", "0")
    monkeypatch.setenv("PREFER_RELAY", "false")
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    return path


def run(cli, monkeypatch, *extra):
    argv = ["links_to_attachments.py", "--view", "default", "--source-field", "url", "--target-field", "files"]
    monkeypatch.setattr("sys.argv", argv + list(extra))
    cli.main()


def test_json_summary_on_clean_run(cli, db_path, monkeypatch, capsys):
    SqliteTableHost(db_path).add_record("rec1", {"url": URL})

    run(cli, monkeypatch, "--json")

    assert json.loads(capsys.readouterr().out) == {"total": 1, "success": 1, "failed": 0, "skipped": 0}
    written = SqliteTableHost(db_path).read_cell("files", "rec1")
    assert written[0]["name"] == "img.png"


def test_failed_record_exits_with_status_one(cli, db_path, monkeypatch, capsys):
    store = SqliteTableHost(db_path)
    store.add_record("rec1", {"url": URL})
    store.add_record("rec2", {"url": "ftp://x"})

    with pytest.raises(SystemExit) as excinfo:
        run(cli, monkeypatch, "--json")

    assert excinfo.value.code == 1
    assert json.loads(capsys.readouterr().out)["failed"] == 1


def test_dry_run_continues_past_unreadable_record(cli, db_path, monkeypatch, caplog):
    store = SqliteTableHost(db_path)
    store.db[store.VIEW_RECORDS].insert({"view_id": "default", "record_id": "ghost", "position": 0})
    store.add_record("rec1", {"url": URL})
    caplog.set_level(logging.INFO)

    run(cli, monkeypatch, "--dry-run")

    messages = [record.getMessage() for record in caplog.records]
    assert any("ghost: read failed" in message for message in messages)
    assert any(f"rec1: would fetch {URL}" in message for message in messages)
    assert store.read_cell("files", "rec1") is None
