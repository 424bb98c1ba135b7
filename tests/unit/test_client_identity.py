"""
Tests for device classification and session identification.
"""

from __future__ import annotations

import pytest

from parkpulse.adapters.session_store import InMemorySessionStore
from parkpulse.components.analytics import (
    ClassifierTable,
    SessionIdentifier,
    TableDeviceClassifier,
    classify_user_agent,
)

IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
ANDROID_TABLET = (
    "Mozilla/5.0 (Linux; Android 13; SM-X700) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
ANDROID_PHONE = (
    "Mozilla/5.0 (Linux; Android 13; Pixel 7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
)
DESKTOP_FIREFOX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
DESKTOP_CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class TestDeviceClassifier:
    @pytest.mark.parametrize(
        ("user_agent", "device_type"),
        [
            (IPHONE, "mobile"),
            (ANDROID_PHONE, "mobile"),
            (IPAD, "tablet"),
            (ANDROID_TABLET, "tablet"),
            (DESKTOP_FIREFOX, "desktop"),
            (DESKTOP_CHROME, "desktop"),
        ],
    )
    def test_device_type(self, user_agent: str, device_type: str) -> None:
        assert classify_user_agent(user_agent).device_type == device_type

    def test_browser_first_match_wins(self) -> None:
        # Chrome user agents also contain "Safari".
        assert classify_user_agent(DESKTOP_CHROME).browser_name == "Chrome"
        assert classify_user_agent(IPHONE).browser_name == "Safari"
        assert classify_user_agent(DESKTOP_FIREFOX).browser_name == "Firefox"

    def test_unrecognised_browser(self) -> None:
        assert classify_user_agent("curl/8.4.0").browser_name == "Unknown"

    def test_missing_user_agent(self) -> None:
        signature = classify_user_agent(None)
        assert signature.device_type is None
        assert signature.browser_name is None

    def test_custom_table(self) -> None:
        classifier = TableDeviceClassifier(
            ClassifierTable(
                tablet_patterns=(),
                mobile_patterns=(r"parkpulse-app",),
                browsers=(("ParkPulseApp", "ParkPulse App"),),
            )
        )
        signature = classifier.classify("ParkPulseApp/2.1 (parkpulse-app)")
        assert signature.device_type == "mobile"
        assert signature.browser_name == "ParkPulse App"


class TestSessionIdentifier:
    @pytest.fixture
    def store(self) -> InMemorySessionStore:
        return InMemorySessionStore()

    def test_missing_token_mints_session(self, store: InMemorySessionStore) -> None:
        resolution = SessionIdentifier(store).resolve(None)
        assert resolution.minted is True
        assert resolution.session_id
        assert store.get(resolution.token) == resolution.session_id

    def test_known_token_reuses_session(self, store: InMemorySessionStore) -> None:
        identifier = SessionIdentifier(store)
        first = identifier.resolve(None)
        second = identifier.resolve(first.token)
        assert second.minted is False
        assert second.session_id == first.session_id
        assert second.token == first.token

    def test_unknown_token_mints_new_session(self, store: InMemorySessionStore) -> None:
        resolution = SessionIdentifier(store).resolve("forged-token")
        assert resolution.minted is True
        assert resolution.token != "forged-token"

    def test_distinct_clients_get_distinct_sessions(self, store: InMemorySessionStore) -> None:
        identifier = SessionIdentifier(store)
        assert identifier.resolve(None).session_id != identifier.resolve(None).session_id


class TestInMemorySessionStore:
    def test_evicts_oldest_beyond_capacity(self) -> None:
        store = InMemorySessionStore(max_entries=2)
        store.save("a", "s-a")
        store.save("b", "s-b")
        store.save("c", "s-c")
        assert len(store) == 2
        assert store.get("a") is None
        assert store.get("c") == "s-c"

    def test_clear(self) -> None:
        store = InMemorySessionStore()
        store.save("a", "s-a")
        store.clear()
        assert len(store) == 0
