"""
Analytics Tracking API Routes.

Public endpoint for client-side event batches. Best-effort: once the
envelope is well-formed the caller always gets 200, whatever happens to the
individual events.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from parkpulse.api.auth_utils import Claims
from parkpulse.api.deps import get_claims, get_client_ip, get_ingestion_service, get_session_id
from parkpulse.components.analytics import (
    BatchIngestionService,
    BatchRejectedError,
    IngestContext,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def read_envelope(request: Request) -> Any:
    """Decoded JSON body; None when it is empty or not valid JSON."""
    try:
        return await request.json()
    except ValueError:
        logger.debug("Unreadable tracking body from %s", get_client_ip(request))
        return None


# --- Response Models ---


class TrackResponse(BaseModel):
    """Success response."""

    success: bool = True
    message: str


class TrackErrorResponse(BaseModel):
    """Malformed envelope response."""

    success: bool = False
    error: str


# --- Routes ---


@router.post(
    "/track",
    response_model=TrackResponse,
    responses={400: {"model": TrackErrorResponse}},
)
def track_events(
    request: Request,
    body: Any = Depends(read_envelope),
    claims: Claims = Depends(get_claims),
    session_id: str = Depends(get_session_id),
    service: BatchIngestionService = Depends(get_ingestion_service),
) -> TrackResponse | JSONResponse:
    """
    Ingest a batch of client events.

    Body: ``{events: [...], sessionId?, userId?}``. Events missing a session
    or user fall back to the envelope values, then to the request's own.
    """
    context = IngestContext(
        session_id=session_id,
        user_id=claims.user_id,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )

    try:
        result = service.ingest(body, context)
    except BatchRejectedError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=TrackErrorResponse(error=str(e)).model_dump(),
        )

    complete = result.persisted == result.received
    if not complete:
        logger.info(
            "Partially tracked batch: %d of %d events stored",
            result.persisted,
            result.received,
        )
    return TrackResponse(
        message="Events tracked successfully" if complete else "Events processed",
    )
