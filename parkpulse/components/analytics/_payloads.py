"""
Kind-specific event metadata.

Each event kind family carries its own payload variant with typed fields.
Payloads are validated when they are built from wire data, so aggregation
never has to second-guess what it reads.

Wire format is the camelCase dictionary stored in the ``metadata`` column.
Keys a variant does not type are preserved in ``extra``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from ._errors import EventValidationError, ValidationIssue

# --- Field Helpers ---


def _issue(key: str, message: str) -> ValidationIssue:
    return ValidationIssue(code="invalid_metadata", message=message, field_name=f"metadata.{key}")


def _opt_str(raw: Mapping[str, Any], key: str, issues: list[ValidationIssue]) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        issues.append(_issue(key, f"'{key}' must be a string"))
        return None
    return value


def finite_float(value: Any) -> float | None:
    """Value as a finite float; None for bools, non-numbers, NaN, infinities and overflow."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _opt_number(
    raw: Mapping[str, Any],
    key: str,
    issues: list[ValidationIssue],
) -> float | None:
    value = raw.get(key)
    if value is None:
        return None
    number = finite_float(value)
    if number is None:
        issues.append(_issue(key, f"'{key}' must be a finite number"))
        return None
    if number < 0:
        issues.append(_issue(key, f"'{key}' must not be negative"))
        return None
    return number


def _opt_int(raw: Mapping[str, Any], key: str, issues: list[ValidationIssue]) -> int | None:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        issues.append(_issue(key, f"'{key}' must be an integer"))
        return None
    if value < 0:
        issues.append(_issue(key, f"'{key}' must not be negative"))
        return None
    return value


def _extra(raw: Mapping[str, Any], typed: tuple[str, ...]) -> dict[str, Any]:
    return {k: v for k, v in raw.items() if k not in typed}


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


# --- Variants ---


@dataclass(frozen=True)
class PageViewPayload:
    """page_view, park_view, blog_view, event_view."""

    WIRE_KEYS: ClassVar[tuple[str, ...]] = ("duration", "statusCode", "path")

    duration_ms: float | None = None
    status_code: int | None = None
    path: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, raw: Mapping[str, Any], issues: list[ValidationIssue]) -> PageViewPayload:
        return cls(
            duration_ms=_opt_number(raw, "duration", issues),
            status_code=_opt_int(raw, "statusCode", issues),
            path=_opt_str(raw, "path", issues),
            extra=_extra(raw, cls.WIRE_KEYS),
        )

    def to_wire(self) -> dict[str, Any]:
        typed = {"duration": self.duration_ms, "statusCode": self.status_code, "path": self.path}
        return {**self.extra, **_compact(typed)}


@dataclass(frozen=True)
class ApiCallPayload:
    WIRE_KEYS: ClassVar[tuple[str, ...]] = ("method", "endpoint", "statusCode", "responseTime")

    method: str | None = None
    endpoint: str | None = None
    status_code: int | None = None
    response_time_ms: float | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, raw: Mapping[str, Any], issues: list[ValidationIssue]) -> ApiCallPayload:
        return cls(
            method=_opt_str(raw, "method", issues),
            endpoint=_opt_str(raw, "endpoint", issues),
            status_code=_opt_int(raw, "statusCode", issues),
            response_time_ms=_opt_number(raw, "responseTime", issues),
            extra=_extra(raw, cls.WIRE_KEYS),
        )

    def to_wire(self) -> dict[str, Any]:
        typed = {
            "method": self.method,
            "endpoint": self.endpoint,
            "statusCode": self.status_code,
            "responseTime": self.response_time_ms,
        }
        return {**self.extra, **_compact(typed)}


@dataclass(frozen=True)
class SearchPayload:
    WIRE_KEYS: ClassVar[tuple[str, ...]] = ("searchTerm", "resultCount", "searchType")

    search_term: str | None = None
    result_count: int | None = None
    search_type: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, raw: Mapping[str, Any], issues: list[ValidationIssue]) -> SearchPayload:
        return cls(
            search_term=_opt_str(raw, "searchTerm", issues),
            result_count=_opt_int(raw, "resultCount", issues),
            search_type=_opt_str(raw, "searchType", issues),
            extra=_extra(raw, cls.WIRE_KEYS),
        )

    def to_wire(self) -> dict[str, Any]:
        typed = {
            "searchTerm": self.search_term,
            "resultCount": self.result_count,
            "searchType": self.search_type,
        }
        return {**self.extra, **_compact(typed)}


@dataclass(frozen=True)
class UserActionPayload:
    WIRE_KEYS: ClassVar[tuple[str, ...]] = ("actionType", "contentType", "interactionType")

    action_type: str | None = None
    content_type: str | None = None
    interaction_type: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(
        cls,
        raw: Mapping[str, Any],
        issues: list[ValidationIssue],
    ) -> UserActionPayload:
        return cls(
            action_type=_opt_str(raw, "actionType", issues),
            content_type=_opt_str(raw, "contentType", issues),
            interaction_type=_opt_str(raw, "interactionType", issues),
            extra=_extra(raw, cls.WIRE_KEYS),
        )

    def to_wire(self) -> dict[str, Any]:
        typed = {
            "actionType": self.action_type,
            "contentType": self.content_type,
            "interactionType": self.interaction_type,
        }
        return {**self.extra, **_compact(typed)}


@dataclass(frozen=True)
class ErrorPayload:
    WIRE_KEYS: ClassVar[tuple[str, ...]] = ("errorMessage", "errorCode", "statusCode")

    error_message: str | None = None
    error_code: str | None = None
    status_code: int | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, raw: Mapping[str, Any], issues: list[ValidationIssue]) -> ErrorPayload:
        return cls(
            error_message=_opt_str(raw, "errorMessage", issues),
            error_code=_opt_str(raw, "errorCode", issues),
            status_code=_opt_int(raw, "statusCode", issues),
            extra=_extra(raw, cls.WIRE_KEYS),
        )

    def to_wire(self) -> dict[str, Any]:
        typed = {
            "errorMessage": self.error_message,
            "errorCode": self.error_code,
            "statusCode": self.status_code,
        }
        return {**self.extra, **_compact(typed)}


@dataclass(frozen=True)
class GenericPayload:
    """Kinds without typed metadata."""

    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, raw: Mapping[str, Any], issues: list[ValidationIssue]) -> GenericPayload:
        return cls(extra=dict(raw))

    def to_wire(self) -> dict[str, Any]:
        return dict(self.extra)


EventPayload = Union[
    PageViewPayload,
    ApiCallPayload,
    SearchPayload,
    UserActionPayload,
    ErrorPayload,
    GenericPayload,
]

PAYLOAD_BY_KIND: dict[str, type[EventPayload]] = {
    "page_view": PageViewPayload,
    "park_view": PageViewPayload,
    "blog_view": PageViewPayload,
    "event_view": PageViewPayload,
    "api_call": ApiCallPayload,
    "search": SearchPayload,
    "user_action": UserActionPayload,
    "error": ErrorPayload,
}


def parse_payload(kind: str, raw: Mapping[str, Any] | None) -> EventPayload:
    """
    Build the payload variant for an event kind.

    Raises:
        EventValidationError: metadata is not a mapping or a typed field has
            the wrong type.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise EventValidationError(
            [ValidationIssue("invalid_metadata", "Metadata must be an object", "metadata")]
        )

    payload_cls = PAYLOAD_BY_KIND.get(kind, GenericPayload)
    issues: list[ValidationIssue] = []
    payload = payload_cls.from_wire(raw, issues)
    if issues:
        raise EventValidationError(issues)
    return payload
