"""
Goals API Router

Endpoints:
- GET    /api/goals                   - List goals (filters, pagination, sorting)
- POST   /api/goals                   - Create a goal
- GET    /api/goals/active            - Active goals ordered by deadline
- GET    /api/goals/templates         - Goal suggestions
- GET    /api/goals/stats             - Goal statistics
- POST   /api/goals/sweep             - Run one overdue/recurrence sweep batch
- GET    /api/goals/{id}              - Goal details
- PATCH  /api/goals/{id}              - Edit descriptive fields
- POST   /api/goals/{id}/progress     - Apply a progress update
- PUT    /api/goals/{id}/status       - Pause, resume, cancel or complete
- POST   /api/goals/{id}/milestones   - Add a milestone
- DELETE /api/goals/{id}              - Delete a goal
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from studytrack.config import settings
from studytrack.dependencies import (
    get_analytics_service,
    get_current_owner,
    get_goal_service,
    get_goal_sweep,
)
from studytrack.enums.api import RateLimitType
from studytrack.enums.tracking import GoalCategory, GoalStatus, GoalType, ProgressMode
from studytrack.middleware.error_handling import handle_endpoint_errors
from studytrack.middleware.rate_limit import limiter
from studytrack.models.base import SuccessResponse
from studytrack.models.tracking import (
    GoalCreateRequest,
    GoalListResponse,
    GoalProgressRequest,
    GoalProgressResponse,
    GoalResponse,
    GoalStatsResponse,
    GoalStatusUpdateRequest,
    GoalTemplateSuggestion,
    GoalUpdateRequest,
    MilestoneCreate,
    SweepResult,
)
from studytrack.services.tracking import AnalyticsService, GoalService, GoalSweep
from studytrack.services.tracking.goal_service import progress_response
from studytrack.services.tracking.progress import ProgressOutcome

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/goals", tags=["goals"])


def _unchanged(goal) -> ProgressOutcome:
    value = goal.current_value or 0.0
    return ProgressOutcome(previous_value=value, current_value=value)


# ===========================================
# Collection Endpoints
# ===========================================


@router.get("", response_model=GoalListResponse)
@handle_endpoint_errors("List goals")
async def list_goals(
    goal_type: Optional[GoalType] = Query(None, alias="type"),
    status: Optional[GoalStatus] = Query(None),
    category: Optional[GoalCategory] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    sort_by: str = Query("created_at"),
    descending: bool = Query(True),
    owner_id: str = Depends(get_current_owner),
    service: GoalService = Depends(get_goal_service),
) -> GoalListResponse:
    items, total = await service.list_goals(
        owner_id,
        goal_type=goal_type,
        status=status,
        category=category,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        descending=descending,
    )
    return GoalListResponse(
        items=[GoalResponse.model_validate(g) for g in items],
        total=total,
        page=page,
        page_size=page_size,
        has_more=page * page_size < total,
    )


@router.post("", response_model=GoalResponse, status_code=201)
@handle_endpoint_errors("Create goal")
async def create_goal(
    request: GoalCreateRequest,
    owner_id: str = Depends(get_current_owner),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    goal = await service.create_goal(owner_id, request)
    return GoalResponse.model_validate(goal)


@router.get("/active", response_model=list[GoalResponse])
@handle_endpoint_errors("List active goals")
async def list_active_goals(
    owner_id: str = Depends(get_current_owner),
    service: GoalService = Depends(get_goal_service),
) -> list[GoalResponse]:
    goals = await service.list_active_goals(owner_id)
    return [GoalResponse.model_validate(g) for g in goals]


@router.get("/templates", response_model=list[GoalTemplateSuggestion])
async def get_goal_templates(
    owner_id: str = Depends(get_current_owner),
) -> list[GoalTemplateSuggestion]:
    """Pre-filled goal suggestions."""
    return GoalService.goal_templates()


@router.get("/stats", response_model=GoalStatsResponse)
@handle_endpoint_errors("Get goal stats")
async def get_goal_stats(
    owner_id: str = Depends(get_current_owner),
    service: AnalyticsService = Depends(get_analytics_service),
) -> GoalStatsResponse:
    """Totals, completion rate, category breakdown, weekly trend, deadlines."""
    return await service.get_goal_stats(owner_id)


@router.post("/sweep", response_model=SweepResult)
@limiter.limit(settings.get_rate_limit(RateLimitType.BATCH))
@handle_endpoint_errors("Run goal sweep")
async def run_goal_sweep(
    request: Request,
    cursor: int = Query(0, ge=0),
    batch_size: Optional[int] = Query(None, ge=1, le=1000),
    owner_id: str = Depends(get_current_owner),
    sweep: GoalSweep = Depends(get_goal_sweep),
) -> SweepResult:
    """
    Run one sweep batch now.

    Safe to call at any time: the sweep is idempotent. Pass next_cursor
    back as cursor to continue a large backlog.
    """
    logger.info(f"Manual goal sweep requested by {owner_id} (cursor={cursor})")
    return await sweep.run(datetime.now(timezone.utc), cursor=cursor, batch_size=batch_size)


# ===========================================
# Item Endpoints
# ===========================================


@router.get("/{goal_id}", response_model=GoalResponse)
@handle_endpoint_errors("Get goal")
async def get_goal(
    goal_id: int,
    owner_id: str = Depends(get_current_owner),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    goal = await service.get_goal(owner_id, goal_id)
    return GoalResponse.model_validate(goal)


@router.patch("/{goal_id}", response_model=GoalResponse)
@handle_endpoint_errors("Update goal")
async def update_goal(
    goal_id: int,
    request: GoalUpdateRequest,
    owner_id: str = Depends(get_current_owner),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    goal = await service.update_goal(owner_id, goal_id, request)
    return GoalResponse.model_validate(goal)


@router.post("/{goal_id}/progress", response_model=GoalProgressResponse)
@limiter.limit(settings.get_rate_limit(RateLimitType.WRITE))
@handle_endpoint_errors("Update goal progress")
async def update_goal_progress(
    request: Request,
    goal_id: int,
    body: GoalProgressRequest,
    owner_id: str = Depends(get_current_owner),
    service: GoalService = Depends(get_goal_service),
) -> GoalProgressResponse:
    """
    Apply a progress update.

    mode=add increments (amount must be >= 0); mode=set replaces the value.
    The result is clamped to [0, target]. Milestones and rewards completed
    by this call are listed in the response.
    """
    goal, outcome = await service.apply_progress(
        owner_id, goal_id, body.amount, ProgressMode(body.mode)
    )
    return progress_response(goal, outcome)


@router.put("/{goal_id}/status", response_model=GoalProgressResponse)
@handle_endpoint_errors("Update goal status")
async def update_goal_status(
    goal_id: int,
    request: GoalStatusUpdateRequest,
    owner_id: str = Depends(get_current_owner),
    service: GoalService = Depends(get_goal_service),
) -> GoalProgressResponse:
    goal, outcome = await service.update_status(owner_id, goal_id, request.status)
    return progress_response(goal, outcome or _unchanged(goal))


@router.post("/{goal_id}/milestones", response_model=GoalProgressResponse, status_code=201)
@handle_endpoint_errors("Add milestone")
async def add_milestone(
    goal_id: int,
    request: MilestoneCreate,
    owner_id: str = Depends(get_current_owner),
    service: GoalService = Depends(get_goal_service),
) -> GoalProgressResponse:
    goal, outcome = await service.add_milestone(owner_id, goal_id, request)
    return progress_response(goal, outcome)


@router.delete("/{goal_id}", response_model=SuccessResponse)
@handle_endpoint_errors("Delete goal")
async def delete_goal(
    goal_id: int,
    owner_id: str = Depends(get_current_owner),
    service: GoalService = Depends(get_goal_service),
) -> SuccessResponse:
    await service.delete_goal(owner_id, goal_id)
    return SuccessResponse(message=f"Goal {goal_id} deleted")
