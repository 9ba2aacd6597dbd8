"""Convert a single record's link cell into an attachment."""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Any, Callable

from .attachments import (
    Verification,
    attachment_count,
    build_attachment_set,
    coerce_attachments,
    verify_write,
)
from .fetcher import ContentFetcher, FetchError
from .host import TableHost
from .models import (
    EMPTY_RECORD_ID,
    FETCH_ERROR,
    HAS_ATTACHMENT,
    INVALID_URL,
    NO_URL,
    READ_ERROR,
    UNVERIFIED,
    UPLOAD_ERROR,
    VERIFY_ERROR,
    VERIFY_MISMATCH,
    WRITE_ERROR,
    Outcome,
    RecordResult,
)
from .normalizer import extract_url
from .utils import file_name_from_url, is_valid_url

logger = logging.getLogger(__name__)


class RecordConverter:
    """Run read → fetch → upload → write → verify for one record at a time.

    Every failure is turned into a RecordResult; nothing raised by the host
    or the network leaves ``convert_one``.
    """

    def __init__(
        self,
        host: TableHost,
        fetcher: ContentFetcher,
        *,
        prefer_relay: bool = True,
        verify_delay_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.host = host
        self.fetcher = fetcher
        self.prefer_relay = prefer_relay
        self.verify_delay_seconds = verify_delay_seconds
        self.sleep = sleep

    def convert_one(
        self,
        record_id: str,
        source_field_id: str,
        target_field_id: str,
        overwrite: bool,
    ) -> RecordResult:
        if not record_id:
            logger.warning("Empty record id; skipping")
            return RecordResult(record_id or "", Outcome.SKIPPED, EMPTY_RECORD_ID)

        try:
            raw_source = self.host.read_cell(source_field_id, record_id)
        except Exception as exc:
            logger.error("Reading source cell of %s failed: %s", record_id, exc)
            return RecordResult(record_id, Outcome.FAILED, READ_ERROR, str(exc))

        url = extract_url(raw_source)
        if url is None:
            logger.info("Record %s has no URL; skipping", record_id)
            return RecordResult(record_id, Outcome.SKIPPED, NO_URL)

        if not is_valid_url(url):
            logger.warning("Record %s has an invalid URL: %s", record_id, url)
            return RecordResult(record_id, Outcome.FAILED, INVALID_URL, url=url)

        try:
            raw_target = self.host.read_cell(target_field_id, record_id)
        except Exception as exc:
            logger.error("Reading target cell of %s failed: %s", record_id, exc)
            return RecordResult(record_id, Outcome.FAILED, READ_ERROR, str(exc), url=url)

        existing = coerce_attachments(raw_target) or []
        previous_count = attachment_count(raw_target)
        if previous_count and not overwrite:
            logger.info("Record %s already has attachments; skipping", record_id)
            return RecordResult(record_id, Outcome.SKIPPED, HAS_ATTACHMENT, url=url)

        return self._transfer(
            record_id, target_field_id, url, existing, previous_count, overwrite
        )

    def _transfer(
        self,
        record_id: str,
        target_field_id: str,
        url: str,
        existing: list[dict[str, Any]],
        previous_count: int,
        overwrite: bool,
    ) -> RecordResult:
        try:
            payload = self.fetcher.fetch(url, prefer_relay=self.prefer_relay)
        except FetchError as exc:
            logger.error("Fetching %s for record %s failed (%s): %s", url, record_id, exc.kind, exc)
            return RecordResult(record_id, Outcome.FAILED, FETCH_ERROR, exc.kind, url=url)
        except Exception as exc:
            logger.exception("Unexpected error fetching %s for record %s", url, record_id)
            return RecordResult(record_id, Outcome.FAILED, FETCH_ERROR, str(exc), url=url)

        file_name = file_name_from_url(url)
        payload = dataclasses.replace(payload, file_name=file_name)
        logger.debug(
            "Fetched %s: %s bytes, %s, named %s",
            url,
            payload.size,
            payload.content_type,
            file_name,
        )

        try:
            token = self.host.upload_binary(payload, file_name)
            if not token:
                raise ValueError("upload returned no token")
        except Exception as exc:
            logger.error("Uploading %s for record %s failed: %s", file_name, record_id, exc)
            return RecordResult(record_id, Outcome.FAILED, UPLOAD_ERROR, str(exc), url=url)

        attachments = build_attachment_set(existing, payload, file_name, token, overwrite)
        try:
            self.host.write_cell(target_field_id, record_id, attachments)
        except Exception as exc:
            logger.error("Writing attachments of record %s failed: %s", record_id, exc)
            return RecordResult(
                record_id, Outcome.FAILED, WRITE_ERROR, str(exc), token=token, url=url
            )

        return self._verify(record_id, target_field_id, url, token, previous_count, overwrite)

    def _verify(
        self,
        record_id: str,
        target_field_id: str,
        url: str,
        token: str,
        previous_count: int,
        overwrite: bool,
    ) -> RecordResult:
        if self.verify_delay_seconds > 0:
            self.sleep(self.verify_delay_seconds)

        try:
            read_back = self.host.read_cell(target_field_id, record_id)
        except Exception as exc:
            logger.error("Verifying record %s failed: %s", record_id, exc)
            return RecordResult(
                record_id, Outcome.FAILED, VERIFY_ERROR, str(exc), token=token, url=url
            )

        expected = 1 if overwrite else previous_count + 1
        verdict = verify_write(read_back, token, expected, overwrite)
        if verdict is Verification.UNVERIFIABLE:
            logger.warning(
                "Record %s could not be verified after write; counting as success", record_id
            )
            return RecordResult(
                record_id, Outcome.SUCCESS, UNVERIFIED, verdict.value, token=token, url=url
            )
        if verdict.succeeded:
            logger.info("Record %s converted (%s)", record_id, verdict.value)
            return RecordResult(record_id, Outcome.SUCCESS, detail=verdict.value, token=token, url=url)

        logger.warning(
            "Record %s write did not land (%s, expected %s attachments)",
            record_id,
            verdict.value,
            expected,
        )
        return RecordResult(
            record_id, Outcome.FAILED, VERIFY_MISMATCH, verdict.value, token=token, url=url
        )
