"""
Building event records from wire dictionaries.

Used by batch ingestion (client events) and by anything else that receives
camelCase event dictionaries. Every problem with an event is collected and
reported together in one EventValidationError.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from ._errors import EventValidationError, ValidationIssue
from ._payloads import finite_float, parse_payload
from ._time import ensure_utc
from .models import (
    BrowserInfo,
    DeviceInfo,
    EventRecord,
    LocationInfo,
    OSInfo,
    parse_event_category,
    parse_event_kind,
)

DEVICE_TYPES = frozenset({"desktop", "mobile", "tablet"})

# Millisecond epochs are larger than any plausible second epoch.
_MS_EPOCH_THRESHOLD = 1e12


@dataclass(frozen=True)
class RecordDefaults:
    """Values stamped onto an event when it does not carry its own."""

    timestamp: datetime
    session_id: str | None = None
    user_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    device_type: str | None = None
    browser_name: str | None = None


def parse_timestamp(value: Any, issues: list[ValidationIssue]) -> datetime | None:
    """Parse an ISO 8601 string, epoch seconds or epoch milliseconds."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        try:
            return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            issues.append(
                ValidationIssue(
                    "invalid_timestamp", "Timestamp must be ISO 8601 format", "timestamp"
                )
            )
            return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            if value > _MS_EPOCH_THRESHOLD:
                return datetime.fromtimestamp(value / 1000, tz=UTC)
            return datetime.fromtimestamp(value, tz=UTC)
        except (ValueError, OverflowError, OSError):
            issues.append(
                ValidationIssue("invalid_timestamp", "Invalid Unix timestamp", "timestamp")
            )
            return None
    issues.append(
        ValidationIssue(
            "invalid_timestamp",
            "Timestamp must be ISO string or Unix timestamp",
            "timestamp",
        )
    )
    return None


def _str(raw: Mapping[str, Any], key: str, issues: list[ValidationIssue]) -> str | None:
    value = raw.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    issues.append(ValidationIssue("invalid_field", f"'{key}' must be a string", key))
    return None


def _ref(raw: Mapping[str, Any], key: str, issues: list[ValidationIssue]) -> str | None:
    """Identifiers may arrive as strings or integers."""
    value = raw.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        issues.append(ValidationIssue("invalid_field", f"'{key}' must be an identifier", key))
        return None
    if isinstance(value, (str, int)):
        return str(value)
    issues.append(ValidationIssue("invalid_field", f"'{key}' must be an identifier", key))
    return None


def _num(
    raw: Mapping[str, Any],
    key: str,
    issues: list[ValidationIssue],
    non_negative: bool = False,
) -> float | None:
    value = raw.get(key)
    if value is None:
        return None
    number = finite_float(value)
    if number is None:
        issues.append(ValidationIssue("invalid_field", f"'{key}' must be a finite number", key))
        return None
    if non_negative and number < 0:
        issues.append(ValidationIssue("invalid_field", f"'{key}' must not be negative", key))
        return None
    return number


def _obj(raw: Mapping[str, Any], key: str, issues: list[ValidationIssue]) -> Mapping[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return value
    issues.append(ValidationIssue("invalid_field", f"'{key}' must be an object", key))
    return {}


def record_from_wire(raw: Mapping[str, Any], defaults: RecordDefaults) -> EventRecord:
    """
    Build a validated EventRecord from a camelCase event dictionary.

    The kind may be given as ``eventKind`` or the legacy ``eventType``.

    Raises:
        EventValidationError: with every issue found in the event.
    """
    if not isinstance(raw, Mapping):
        raise EventValidationError(
            [ValidationIssue("invalid_event", "Event must be an object", None)]
        )

    kind = parse_event_kind(raw.get("eventKind") or raw.get("eventType"))
    category = parse_event_category(raw.get("eventCategory"), kind)

    issues: list[ValidationIssue] = []

    try:
        metadata = parse_payload(kind.value, raw.get("metadata"))
    except EventValidationError as e:
        issues.extend(e.issues)
        metadata = None

    timestamp = parse_timestamp(raw.get("timestamp"), issues) or defaults.timestamp
    session_id = _str(raw, "sessionId", issues) or defaults.session_id
    user_id = _ref(raw, "userId", issues) or defaults.user_id

    device_raw = _obj(raw, "device", issues)
    browser_raw = _obj(raw, "browser", issues)
    os_raw = _obj(raw, "os", issues)
    location_raw = _obj(raw, "location", issues)

    device_type = _str(device_raw, "type", issues) or defaults.device_type
    if device_type is not None and device_type not in DEVICE_TYPES:
        issues.append(
            ValidationIssue(
                "invalid_device_type",
                f"Device type '{device_type}' is not allowed",
                "device.type",
            )
        )

    if not session_id:
        issues.append(ValidationIssue("session_required", "Session id is required", "sessionId"))

    fields = {
        "park_code": _ref(raw, "parkCode", issues),
        "blog_id": _ref(raw, "blogId", issues),
        "event_id": _ref(raw, "eventId", issues),
        "review_id": _ref(raw, "reviewId", issues),
        "conversation_id": _ref(raw, "conversationId", issues),
        "duration": _num(raw, "duration", issues, non_negative=True),
        "response_time": _num(raw, "responseTime", issues, non_negative=True),
        "error_message": _str(raw, "errorMessage", issues),
        "error_stack": _str(raw, "errorStack", issues),
        "error_code": _ref(raw, "errorCode", issues),
        "referrer": _str(raw, "referrer", issues),
        "page_url": _str(raw, "pageUrl", issues),
        "page_title": _str(raw, "pageTitle", issues),
    }
    device = DeviceInfo(
        type=device_type,
        brand=_str(device_raw, "brand", issues),
        model=_str(device_raw, "model", issues),
    )
    browser = BrowserInfo(
        name=_str(browser_raw, "name", issues) or defaults.browser_name,
        version=_str(browser_raw, "version", issues),
    )
    os_info = OSInfo(name=_str(os_raw, "name", issues), version=_str(os_raw, "version", issues))
    location = LocationInfo(
        country=_str(location_raw, "country", issues),
        region=_str(location_raw, "region", issues),
        city=_str(location_raw, "city", issues),
        latitude=_num(location_raw, "latitude", issues),
        longitude=_num(location_raw, "longitude", issues),
    )

    if issues or metadata is None or not session_id:
        raise EventValidationError(issues)

    return EventRecord(
        event_kind=kind,
        event_category=category,
        session_id=session_id,
        timestamp=timestamp,
        user_id=user_id,
        metadata=metadata,
        device=device,
        browser=browser,
        os=os_info,
        location=location,
        user_agent=defaults.user_agent,
        ip_address=defaults.ip_address,
        **fields,
    )
