"""Run the record converter over every visible record of a view."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Sequence

from .driver import RecordConverter
from .host import TableHost
from .models import ProgressEvent, RunState

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class BatchOrchestrator:
    """Sequential batch runner; owns the only cross-record state."""

    def __init__(self, converter: RecordConverter) -> None:
        self.converter = converter

    def run_batch(
        self,
        record_ids: Sequence[str],
        source_field_id: str,
        target_field_id: str,
        overwrite: bool,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunState:
        """Convert *record_ids* in order and return the run counters."""
        state = RunState(total=len(record_ids))
        if not record_ids:
            logger.info("No records to process")
            return state

        logger.info("Processing %s records", state.total)
        for index, record_id in enumerate(record_ids, start=1):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Run cancelled after %s of %s records", state.current, state.total)
                state.cancelled = True
                break

            logger.info("Record %s/%s: %s", index, state.total, record_id)
            result = self.converter.convert_one(
                record_id, source_field_id, target_field_id, overwrite
            )
            state.record(result)

            if on_progress is not None:
                event = ProgressEvent(
                    index=index,
                    total=state.total,
                    record_id=result.record_id,
                    outcome=result.outcome,
                    reason=result.reason,
                    detail=result.detail,
                )
                try:
                    on_progress(event)
                except Exception:
                    logger.exception("Progress callback failed for record %s", record_id)

        logger.info(
            "Run complete: total=%s success=%s failed=%s skipped=%s",
            state.total,
            state.success,
            state.failed,
            state.skipped,
        )
        return state

    def run_view(
        self,
        host: TableHost,
        view_id: str,
        source_field_id: str,
        target_field_id: str,
        overwrite: bool,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunState:
        """List the view's visible records, then run the batch over them."""
        record_ids = host.list_visible_record_ids(view_id)
        return self.run_batch(
            record_ids,
            source_field_id,
            target_field_id,
            overwrite,
            on_progress=on_progress,
            cancel_event=cancel_event,
        )
