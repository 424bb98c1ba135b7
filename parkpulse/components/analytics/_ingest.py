"""
BatchIngestionService - client-side event batches.

Key behaviors:
- Only a malformed envelope (missing, non-list or empty ``events``) is
  rejected as a whole, before anything is written
- Invalid events are dropped one by one; valid siblings are still stored
- Storage failures are logged and swallowed (best-effort write)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ._device import TableDeviceClassifier
from ._errors import BatchRejectedError, EventValidationError
from ._record import RecordDefaults, record_from_wire
from ._time import MonotonicStamp
from .models import EventRecord
from .ports import DeviceClassifierPort, EventStorePort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestContext:
    """Request-derived values applied to every event in a batch."""

    session_id: str
    user_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class BatchIngestResult:
    """Outcome of one batch."""

    received: int
    accepted: int
    rejected: int
    persisted: int


@dataclass(frozen=True)
class IngestConfig:
    """Ingestion configuration."""

    # None means unbounded.
    max_batch_size: int | None = None


class BatchIngestionService:
    """Validates a batch envelope and stores its events independently."""

    def __init__(
        self,
        store: EventStorePort,
        stamp: MonotonicStamp | None = None,
        classifier: DeviceClassifierPort | None = None,
        config: IngestConfig | None = None,
    ) -> None:
        self._store = store
        self._stamp = stamp or MonotonicStamp()
        self._classifier = classifier or TableDeviceClassifier()
        self._config = config or IngestConfig()

    def ingest(self, body: Any, context: IngestContext) -> BatchIngestResult:
        """
        Ingest a ``{events, sessionId?, userId?}`` envelope.

        Raises:
            BatchRejectedError: if ``events`` is missing, not a list, empty,
                or larger than a configured maximum.
        """
        events = body.get("events") if isinstance(body, Mapping) else None
        if not isinstance(events, list) or not events:
            raise BatchRejectedError("Events array is required")
        limit = self._config.max_batch_size
        if limit is not None and len(events) > limit:
            raise BatchRejectedError(
                f"Too many events in batch (max {limit})"
            )

        signature = self._classifier.classify(context.user_agent)
        defaults = RecordDefaults(
            timestamp=self._stamp.now(),
            session_id=_opt_str(body.get("sessionId")) or context.session_id,
            user_id=_opt_id(body.get("userId")) or context.user_id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            device_type=signature.device_type,
            browser_name=signature.browser_name,
        )

        records: list[EventRecord] = []
        for index, raw in enumerate(events):
            try:
                records.append(record_from_wire(raw, defaults))
            except EventValidationError as e:
                logger.warning("Rejected batch event %d: %s", index, e)

        persisted = 0
        if records:
            try:
                persisted = self._store.append_many(records)
            except Exception:
                logger.exception("Failed to store batch of %d analytics events", len(records))

        result = BatchIngestResult(
            received=len(events),
            accepted=len(records),
            rejected=len(events) - len(records),
            persisted=persisted,
        )
        logger.debug(
            "Batch ingested: received=%d accepted=%d persisted=%d",
            result.received,
            result.accepted,
            result.persisted,
        )
        return result


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _opt_id(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int)) and value != "":
        return str(value)
    return None
