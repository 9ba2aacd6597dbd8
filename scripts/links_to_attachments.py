"""Entry point that turns a view's link column into attachments."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

# Ensure project root is on sys.path when running as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from link2attach.batch import BatchOrchestrator
from link2attach.bitable_client import BitableClient
from link2attach.config import Settings
from link2attach.driver import RecordConverter
from link2attach.fetcher import ContentFetcher
from link2attach.host import HostError, TableHost
from link2attach.local_store import SqliteTableHost
from link2attach.models import ProgressEvent
from link2attach.normalizer import extract_url
from link2attach.utils import is_valid_url

load_dotenv()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Download the URLs of one field and store them as attachments in another."
    )
    parser.add_argument("--view", required=True, help="View whose visible records are processed")
    parser.add_argument("--source-field", required=True, help="Field holding the URLs")
    parser.add_argument("--target-field", required=True, help="Attachment field to write")
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Replace existing attachments instead of skipping records that have some",
    )
    parser.add_argument(
        "--prefer-relay",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Try the relay endpoint before fetching directly (default: PREFER_RELAY)",
    )
    parser.add_argument("--json", action="store_true", help="Print the run summary as JSON")
    parser.add_argument("--dry-run", action="store_true", help="List actions without downloading/uploading")
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def build_host(settings: Settings) -> TableHost:
    if settings.host_mode == "sqlite":
        return SqliteTableHost(settings.local_db_path)
    return BitableClient(settings)


def dry_run(host: TableHost, args: argparse.Namespace) -> None:
    record_ids = host.list_visible_record_ids(args.view)
    for index, record_id in enumerate(record_ids, start=1):
        try:
            url = extract_url(host.read_cell(args.source_field, record_id)) if record_id else None
        except HostError as exc:
            logging.error("[DRY-RUN] %s/%s %s: read failed: %s", index, len(record_ids), record_id, exc)
            continue
        if url is None:
            logging.info("[DRY-RUN] %s/%s %s: no URL", index, len(record_ids), record_id)
        elif not is_valid_url(url):
            logging.info("[DRY-RUN] %s/%s %s: invalid URL %s", index, len(record_ids), record_id, url)
        else:
            logging.info("[DRY-RUN] %s/%s %s: would fetch %s", index, len(record_ids), record_id, url)


def log_progress(event: ProgressEvent) -> None:
    logging.info(
        "[%s/%s] %s -> %s%s",
        event.index,
        event.total,
        event.record_id,
        event.outcome.value,
        f" ({event.reason})" if event.reason else "",
    )


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    try:
        settings = Settings()
    except ValidationError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc
    configure_logging(settings.log_level)

    host = build_host(settings)
    if args.dry_run:
        try:
            dry_run(host, args)
        except HostError as exc:
            raise SystemExit(f"Unable to list records of view {args.view}: {exc}") from exc
        return

    prefer_relay = settings.prefer_relay if args.prefer_relay is None else args.prefer_relay
    converter = RecordConverter(
        host,
        ContentFetcher(settings),
        prefer_relay=prefer_relay,
        verify_delay_seconds=settings.verify_delay_seconds,
    )
    orchestrator = BatchOrchestrator(converter)

    try:
        state = orchestrator.run_view(
            host,
            args.view,
            args.source_field,
            args.target_field,
            args.overwrite,
            on_progress=log_progress,
        )
    except HostError as exc:
        raise SystemExit(f"Unable to list records of view {args.view}: {exc}") from exc

    if args.json:
        print(json.dumps(state.summary()))
    if state.failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
