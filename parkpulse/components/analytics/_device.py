"""
Device classification from user agent strings.

This is a coarse substring heuristic, NOT a user agent database. It only
needs to be good enough to split dashboard traffic into desktop, mobile and
tablet and to name the dominant browsers. Known limitations:

- Edge and Opera advertise "Chrome" and are reported as Chrome.
- Chrome advertises "Safari"; the ordered browser list resolves that.
- Bots are classified like the browser they impersonate.

The patterns are data (``ClassifierTable``) so a deployment can swap the
table without touching callers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

DEVICE_DESKTOP = "desktop"
DEVICE_MOBILE = "mobile"
DEVICE_TABLET = "tablet"
BROWSER_UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ClientSignature:
    """Coarse client description derived from a user agent."""

    device_type: str | None
    browser_name: str | None


@dataclass(frozen=True)
class ClassifierTable:
    """
    Heuristic table.

    Tablet patterns are checked before mobile patterns: tablet user agents
    usually also match the generic mobile patterns.
    """

    tablet_patterns: tuple[str, ...]
    mobile_patterns: tuple[str, ...]
    # Ordered (substring, browser name); first match wins.
    browsers: tuple[tuple[str, str], ...]


DEFAULT_TABLE = ClassifierTable(
    tablet_patterns=(
        r"ipad",
        r"tablet",
        r"kindle",
        r"silk/",
        r"playbook",
        r"android(?!.*mobile)",
    ),
    mobile_patterns=(
        r"mobile",
        r"android",
        r"iphone",
        r"ipod",
        r"blackberry",
        r"iemobile",
        r"opera mini",
    ),
    browsers=(
        ("Chrome", "Chrome"),
        ("Firefox", "Firefox"),
        ("Safari", "Safari"),
        ("Edge", "Edge"),
    ),
)


def _compile(patterns: tuple[str, ...]) -> re.Pattern[str] | None:
    if not patterns:
        return None
    return re.compile("|".join(f"(?:{p})" for p in patterns), re.IGNORECASE)


class TableDeviceClassifier:
    """Table-driven implementation of DeviceClassifierPort."""

    def __init__(self, table: ClassifierTable = DEFAULT_TABLE) -> None:
        self._table = table
        self._tablet = _compile(table.tablet_patterns)
        self._mobile = _compile(table.mobile_patterns)

    def classify(self, user_agent: str | None) -> ClientSignature:
        if not user_agent:
            return ClientSignature(device_type=None, browser_name=None)

        if self._tablet and self._tablet.search(user_agent):
            device_type = DEVICE_TABLET
        elif self._mobile and self._mobile.search(user_agent):
            device_type = DEVICE_MOBILE
        else:
            device_type = DEVICE_DESKTOP

        browser_name = BROWSER_UNKNOWN
        for needle, name in self._table.browsers:
            if needle in user_agent:
                browser_name = name
                break

        return ClientSignature(device_type=device_type, browser_name=browser_name)


def classify_user_agent(user_agent: str | None) -> ClientSignature:
    """Classify with the default table."""
    return _DEFAULT_CLASSIFIER.classify(user_agent)


_DEFAULT_CLASSIFIER = TableDeviceClassifier()
