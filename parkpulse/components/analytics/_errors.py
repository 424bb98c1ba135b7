"""Analytics error types."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ValidationIssue:
    """A single reason an event was rejected."""

    code: str
    message: str
    field_name: str | None = None


class EventValidationError(ValueError):
    """Raised when an event cannot be turned into a valid record."""

    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = issues
        super().__init__("; ".join(issue.message for issue in issues))


class BatchRejectedError(ValueError):
    """Raised when a batch envelope is malformed (no events to ingest)."""


class AnalyticsQueryError(RuntimeError):
    """Raised when an aggregation query cannot be answered."""


class ReportParameterError(ValueError):
    """Raised for an invalid admin report parameter."""


class PeriodError(ReportParameterError):
    """Raised for an unknown or out-of-range reporting period."""
