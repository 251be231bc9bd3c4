"""
Study Sessions API Router

Endpoints:
- GET    /api/sessions                      - Session history (filters, pagination)
- POST   /api/sessions                      - Plan a new session
- GET    /api/sessions/open                 - The owner's open session, if any
- GET    /api/sessions/today                - Today's sessions with totals
- GET    /api/sessions/{id}                 - Session details
- POST   /api/sessions/{id}/transition      - Apply a state machine action
- POST   /api/sessions/{id}/{action}        - Shortcut: start|pause|resume|complete|cancel
- PATCH  /api/sessions/{id}                 - Edit notes, tags, productivity
- DELETE /api/sessions/{id}                 - Delete a non-terminal session
"""

import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Body, Depends, Query, Request

from studytrack.config import settings
from studytrack.dependencies import get_current_owner, get_session_service, get_timezone
from studytrack.enums.api import RateLimitType
from studytrack.enums.tracking import SessionAction, SessionStatus, SessionType
from studytrack.middleware.error_handling import handle_endpoint_errors
from studytrack.middleware.rate_limit import limiter
from studytrack.models.base import SuccessResponse
from studytrack.models.tracking import (
    OpenSessionResponse,
    SessionCreateRequest,
    SessionListResponse,
    SessionResponse,
    SessionTransitionRequest,
    SessionTransitionResponse,
    SessionUpdateRequest,
    TodaySessionsResponse,
    TransitionPayload,
)
from studytrack.services.tracking import SessionService
from studytrack.services.tracking.goal_service import progress_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def _transition_response(session, goal_updates) -> SessionTransitionResponse:
    return SessionTransitionResponse(
        session=SessionResponse.model_validate(session),
        goal_updates=[progress_response(goal, outcome) for goal, outcome in goal_updates],
    )


# ===========================================
# Collection Endpoints
# ===========================================


@router.get("", response_model=SessionListResponse)
@handle_endpoint_errors("List sessions")
async def list_sessions(
    status: Optional[SessionStatus] = Query(None),
    topic_id: Optional[str] = Query(None),
    session_type: Optional[SessionType] = Query(None),
    start_date: Optional[datetime] = Query(None, description="created_at lower bound"),
    end_date: Optional[datetime] = Query(None, description="created_at upper bound"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    owner_id: str = Depends(get_current_owner),
    service: SessionService = Depends(get_session_service),
) -> SessionListResponse:
    """Session history, most recent first."""
    items, total = await service.list_sessions(
        owner_id,
        status=status,
        topic_id=topic_id,
        session_type=session_type,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
    )
    return SessionListResponse(
        items=[SessionResponse.model_validate(s) for s in items],
        total=total,
        page=page,
        page_size=page_size,
        has_more=page * page_size < total,
    )


@router.post("", response_model=SessionResponse, status_code=201)
@handle_endpoint_errors("Create session")
async def create_session(
    request: SessionCreateRequest,
    owner_id: str = Depends(get_current_owner),
    service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    """
    Plan a new session.

    Fails with 409 conflicting_active_session while the owner has another
    planned, active or paused session.
    """
    session = await service.create_session(owner_id, request)
    return SessionResponse.model_validate(session)


@router.get("/open", response_model=OpenSessionResponse)
@handle_endpoint_errors("Get open session")
async def get_open_session(
    owner_id: str = Depends(get_current_owner),
    service: SessionService = Depends(get_session_service),
) -> OpenSessionResponse:
    session = await service.get_open_session(owner_id)
    return OpenSessionResponse(
        session=SessionResponse.model_validate(session) if session else None
    )


@router.get("/today", response_model=TodaySessionsResponse)
@handle_endpoint_errors("Get today's sessions")
async def get_today_sessions(
    owner_id: str = Depends(get_current_owner),
    tz: ZoneInfo = Depends(get_timezone),
    service: SessionService = Depends(get_session_service),
) -> TodaySessionsResponse:
    """Sessions started today in the owner's timezone."""
    return await service.get_today(owner_id, tz)


# ===========================================
# Item Endpoints
# ===========================================


@router.get("/{session_id}", response_model=SessionResponse)
@handle_endpoint_errors("Get session")
async def get_session(
    session_id: int,
    owner_id: str = Depends(get_current_owner),
    service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    session = await service.get_session(owner_id, session_id)
    return SessionResponse.model_validate(session)


@router.post("/{session_id}/transition", response_model=SessionTransitionResponse)
@limiter.limit(settings.get_rate_limit(RateLimitType.WRITE))
@handle_endpoint_errors("Transition session")
async def transition_session(
    request: Request,
    session_id: int,
    body: SessionTransitionRequest,
    owner_id: str = Depends(get_current_owner),
    service: SessionService = Depends(get_session_service),
) -> SessionTransitionResponse:
    """
    Apply a state machine action.

    Invalid moves return 409 invalid_transition with the current state and
    the attempted action in the error details.
    """
    session, goal_updates = await service.transition(
        owner_id, session_id, body.action, body.payload
    )
    return _transition_response(session, goal_updates)


@router.post("/{session_id}/{action}", response_model=SessionTransitionResponse)
@limiter.limit(settings.get_rate_limit(RateLimitType.WRITE))
@handle_endpoint_errors("Transition session")
async def transition_session_shortcut(
    request: Request,
    session_id: int,
    action: SessionAction,
    payload: Optional[TransitionPayload] = Body(None),
    owner_id: str = Depends(get_current_owner),
    service: SessionService = Depends(get_session_service),
) -> SessionTransitionResponse:
    """Same as /transition with the action in the path."""
    session, goal_updates = await service.transition(
        owner_id, session_id, action, payload
    )
    return _transition_response(session, goal_updates)


@router.patch("/{session_id}", response_model=SessionResponse)
@handle_endpoint_errors("Update session")
async def update_session(
    session_id: int,
    request: SessionUpdateRequest,
    owner_id: str = Depends(get_current_owner),
    service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    session = await service.update_details(owner_id, session_id, request)
    return SessionResponse.model_validate(session)


@router.delete("/{session_id}", response_model=SuccessResponse)
@handle_endpoint_errors("Delete session")
async def delete_session(
    session_id: int,
    owner_id: str = Depends(get_current_owner),
    service: SessionService = Depends(get_session_service),
) -> SuccessResponse:
    """Delete a planned, active or paused session. Finished sessions are kept."""
    await service.delete_session(owner_id, session_id)
    return SuccessResponse(message=f"Session {session_id} deleted")
