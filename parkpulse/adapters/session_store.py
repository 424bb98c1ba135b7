"""In-memory session store adapter.

Implements SessionStorePort for the analytics session identifier.
Suitable for single-process deployments; sessions do not survive restarts.
"""

from collections import OrderedDict
from threading import Lock


class InMemorySessionStore:
    """Token -> session id map, evicting the oldest entries beyond max_entries."""

    def __init__(self, max_entries: int = 100_000) -> None:
        self._sessions: OrderedDict[str, str] = OrderedDict()
        self._max_entries = max_entries
        self._lock = Lock()

    def get(self, token: str) -> str | None:
        """Get session id by token."""
        with self._lock:
            return self._sessions.get(token)

    def save(self, token: str, session_id: str) -> None:
        """Save session id with token as key."""
        with self._lock:
            self._sessions[token] = session_id
            self._sessions.move_to_end(token)
            while len(self._sessions) > self._max_entries:
                self._sessions.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def clear(self) -> None:
        """Clear all sessions - useful for testing."""
        with self._lock:
            self._sessions.clear()
