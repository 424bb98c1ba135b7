"""
Session identification.

A client carries an opaque token (cookie). The session store maps the token
to the analytics session id used to group events. Missing or unknown tokens
mint a fresh pair. Two truly concurrent first requests from one client may
both mint; the last save wins, which is acceptable because sessions are an
approximate grouping.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from uuid import uuid4

from .ports import SessionStorePort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionResolution:
    session_id: str
    token: str
    minted: bool


class SessionIdentifier:
    """Derives or reuses the per-client session id."""

    def __init__(self, store: SessionStorePort) -> None:
        self._store = store

    def resolve(self, token: str | None) -> SessionResolution:
        if token:
            session_id = self._store.get(token)
            if session_id:
                return SessionResolution(session_id=session_id, token=token, minted=False)

        new_token = secrets.token_urlsafe(24)
        session_id = str(uuid4())
        self._store.save(new_token, session_id)
        logger.debug("Minted analytics session %s", session_id)
        return SessionResolution(session_id=session_id, token=new_token, minted=True)
