"""
Route-level tracking dependencies.

Each factory returns a FastAPI dependency that schedules one event on the
request's BackgroundTasks, so it is recorded after the response is sent:

    @router.post("/parks/{park_code}/save",
                 dependencies=[Depends(track_user_action("park_save"))])
"""

from collections.abc import Callable
from typing import Any

from fastapi import BackgroundTasks, Depends

from parkpulse.api.auth_utils import Claims
from parkpulse.api.deps import get_claims, get_request_context, get_tracker
from parkpulse.components.analytics import (
    EventCategory,
    EventKind,
    EventTracker,
    RequestContext,
    content_refs,
)


def track_user_action(
    action_type: str,
    **extra: Any,
) -> Callable[..., None]:
    """Record a ``user_action`` for authenticated callers."""

    def dependency(
        background: BackgroundTasks,
        claims: Claims = Depends(get_claims),
        ctx: RequestContext = Depends(get_request_context),
        tracker: EventTracker = Depends(get_tracker),
    ) -> None:
        if not claims.is_authenticated:
            return
        background.add_task(
            tracker.track,
            ctx,
            EventKind.USER_ACTION,
            EventCategory.USER,
            {**extra, "actionType": action_type},
        )

    return dependency


def track_content_interaction(
    content_type: str,
    interaction_type: str,
) -> Callable[..., None]:
    """Record a content interaction (with path content refs) for authenticated callers."""

    def dependency(
        background: BackgroundTasks,
        claims: Claims = Depends(get_claims),
        ctx: RequestContext = Depends(get_request_context),
        tracker: EventTracker = Depends(get_tracker),
    ) -> None:
        if not claims.is_authenticated:
            return
        metadata: dict[str, Any] = {
            "contentType": content_type,
            "interactionType": interaction_type,
        }
        for field_name, value in content_refs(ctx.path_params).items():
            metadata[_camel(field_name)] = value
        background.add_task(
            tracker.track,
            ctx,
            EventKind.USER_ACTION,
            EventCategory.ENGAGEMENT,
            metadata,
        )

    return dependency


def track_custom_event(
    kind: EventKind | str,
    category: EventCategory | str | None = None,
    **metadata: Any,
) -> Callable[..., None]:
    """Record an arbitrary event kind for every caller."""
    event_kind = EventKind(kind)
    event_category = EventCategory(category) if category is not None else None

    def dependency(
        background: BackgroundTasks,
        ctx: RequestContext = Depends(get_request_context),
        tracker: EventTracker = Depends(get_tracker),
    ) -> None:
        background.add_task(tracker.track, ctx, event_kind, event_category, dict(metadata))

    return dependency


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
