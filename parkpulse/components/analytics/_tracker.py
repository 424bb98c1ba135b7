"""
EventTracker - builds records for server-observed events.

The HTTP layer collects a RequestContext per request; the tracker turns it
into an EventRecord (session, identity, device signature, content references)
and hands the record to the recorder. Tracking never raises into the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ._device import TableDeviceClassifier
from ._errors import EventValidationError
from ._payloads import parse_payload
from ._recorder import EventRecorder
from ._time import MonotonicStamp
from .models import (
    KIND_DEFAULT_CATEGORY,
    BrowserInfo,
    DeviceInfo,
    EventCategory,
    EventKind,
    EventRecord,
)
from .ports import DeviceClassifierPort

logger = logging.getLogger(__name__)

# Path parameter names that carry content references, snake_case and camelCase.
CONTENT_PARAMS: dict[str, tuple[str, ...]] = {
    "park_code": ("park_code", "parkCode"),
    "blog_id": ("blog_id", "blogId"),
    "event_id": ("event_id", "eventId"),
    "review_id": ("review_id", "reviewId"),
}

# Kinds whose category becomes "user" when the caller is identified.
IDENTITY_CATEGORY_KINDS = frozenset({EventKind.API_CALL, EventKind.PAGE_VIEW, EventKind.SEARCH})


@dataclass(frozen=True)
class RequestContext:
    """What the HTTP layer knows about the request being tracked."""

    session_id: str
    user_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    page_url: str | None = None
    page_title: str | None = None
    path_params: Mapping[str, Any] = field(default_factory=dict)


def content_refs(path_params: Mapping[str, Any]) -> dict[str, str]:
    """Extract content references from route path parameters."""
    refs: dict[str, str] = {}
    for field_name, names in CONTENT_PARAMS.items():
        for name in names:
            value = path_params.get(name)
            if value is not None and value != "":
                refs[field_name] = str(value)
                break
    return refs


class EventTracker:
    """Creates records from request context and submits them."""

    def __init__(
        self,
        recorder: EventRecorder,
        classifier: DeviceClassifierPort | None = None,
        stamp: MonotonicStamp | None = None,
    ) -> None:
        self._recorder = recorder
        self._classifier = classifier or TableDeviceClassifier()
        self._stamp = stamp or MonotonicStamp()

    def build(
        self,
        ctx: RequestContext,
        kind: EventKind,
        category: EventCategory | None = None,
        metadata: Mapping[str, Any] | None = None,
        **fields: Any,
    ) -> EventRecord:
        """Build a record; raises EventValidationError on bad metadata."""
        if category is None:
            if ctx.user_id and kind in IDENTITY_CATEGORY_KINDS:
                category = EventCategory.USER
            else:
                category = KIND_DEFAULT_CATEGORY[kind]

        signature = self._classifier.classify(ctx.user_agent)
        refs = content_refs(ctx.path_params)
        refs.update({k: v for k, v in fields.items() if v is not None})

        return EventRecord(
            event_kind=kind,
            event_category=category,
            session_id=ctx.session_id,
            timestamp=self._stamp.now(),
            user_id=ctx.user_id,
            metadata=parse_payload(kind.value, metadata),
            device=DeviceInfo(type=signature.device_type),
            browser=BrowserInfo(name=signature.browser_name),
            user_agent=ctx.user_agent,
            ip_address=ctx.ip_address,
            referrer=ctx.referrer,
            page_url=ctx.page_url,
            page_title=ctx.page_title,
            **refs,
        )

    def track(
        self,
        ctx: RequestContext,
        kind: EventKind,
        category: EventCategory | None = None,
        metadata: Mapping[str, Any] | None = None,
        **fields: Any,
    ) -> bool:
        """
        Record one event without waiting for storage.

        Returns True if the record was queued. Invalid events are logged and
        dropped; nothing propagates to the caller.
        """
        try:
            record = self.build(ctx, kind, category, metadata, **fields)
        except EventValidationError as e:
            logger.warning("Dropping invalid %s event: %s", kind.value, e)
            return False
        except Exception:
            logger.exception("Failed to build %s event", kind.value)
            return False
        return self._recorder.submit(record)
