"""API routes for habits, completions, progress and achievements"""
import logging
import datetime as dt
from datetime import datetime, timezone as dt_timezone
from typing import Optional
from fastapi import APIRouter, Depends, Request, Response, status

from streakkeeper.api.auth import verify_api_key
from streakkeeper.api.middleware import limiter
from streakkeeper.api.models import (
    AchievementCheckResponse,
    AchievementListResponse,
    EarnedAchievementListResponse,
    HabitListResponse,
    HabitDayListResponse,
    TrackerListResponse,
    ProgressResponse,
    HealthCheckResponse,
)
from streakkeeper.models.achievement import AchievementSummary
from streakkeeper.models.habit import Habit, HabitStats, ToggleResult
from streakkeeper.observability.metrics import render_latest
from streakkeeper.services.container import ServiceContainer, get_container
from streakkeeper.validators import HabitCreate, HabitUpdate, ToggleRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def get_services() -> ServiceContainer:
    """Service container dependency (overridden in tests)"""
    return get_container()


# ============================================================================
# Health
# ============================================================================

@router.get("/health", response_model=HealthCheckResponse)
@limiter.limit("60/minute")
async def health_check(request: Request, services: ServiceContainer = Depends(get_services)):
    """Health check endpoint (Rate limit: 60/minute for monitoring systems)"""
    try:
        async with services.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
                await cur.fetchone()

        db_status = "connected"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "disconnected"

    return HealthCheckResponse(
        status="healthy" if db_status == "connected" else "degraded",
        database=db_status,
        cache=services.cache.get_stats(),
        timestamp=datetime.now(dt_timezone.utc)
    )


@router.get("/metrics", include_in_schema=False)
async def metrics_endpoint():
    """Prometheus scrape target"""
    payload, content_type = render_latest()
    return Response(content=payload, media_type=content_type)


# ============================================================================
# Habits
# ============================================================================

@router.get("/api/v1/users/{user_id}/habits")
@limiter.limit("30/minute")
async def list_habits_endpoint(
    request: Request,
    user_id: str,
    date: Optional[dt.date] = None,
    timezone: str = "UTC",
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """
    List habits (Rate limit: 30/minute)

    With `date`, only the habits due that date are returned, each flagged with
    whether it was completed.
    """
    if date is None:
        habits = await services.habit_service.list_habits(user_id)
        return HabitListResponse(user_id=user_id, habits=habits)

    habits = await services.habit_service.get_habits_for_date(user_id, date, timezone)
    return HabitDayListResponse(user_id=user_id, date=date, habits=habits)


@router.post("/api/v1/users/{user_id}/habits", response_model=Habit, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_habit_endpoint(
    request: Request,
    user_id: str,
    body: HabitCreate,
    timezone: str = "UTC",
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Create a habit (Rate limit: 20/minute)"""
    return await services.habit_service.create_habit(user_id, body, timezone)


@router.get("/api/v1/users/{user_id}/habits/{habit_id}", response_model=Habit)
@limiter.limit("30/minute")
async def get_habit_endpoint(
    request: Request,
    user_id: str,
    habit_id: int,
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Get a habit (Rate limit: 30/minute)"""
    return await services.habit_service.get_habit(user_id, habit_id)


@router.put("/api/v1/users/{user_id}/habits/{habit_id}", response_model=Habit)
@limiter.limit("20/minute")
async def update_habit_endpoint(
    request: Request,
    user_id: str,
    habit_id: int,
    body: HabitUpdate,
    timezone: str = "UTC",
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Update a habit; streak fields are recomputed (Rate limit: 20/minute)"""
    return await services.habit_service.update_habit(user_id, habit_id, body, timezone)


@router.delete("/api/v1/users/{user_id}/habits/{habit_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
async def delete_habit_endpoint(
    request: Request,
    user_id: str,
    habit_id: int,
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Soft delete a habit (Rate limit: 20/minute)"""
    await services.habit_service.delete_habit(user_id, habit_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/api/v1/users/{user_id}/habits/{habit_id}/restore", response_model=Habit)
@limiter.limit("20/minute")
async def restore_habit_endpoint(
    request: Request,
    user_id: str,
    habit_id: int,
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Restore a soft-deleted habit (Rate limit: 20/minute)"""
    return await services.habit_service.restore_habit(user_id, habit_id)


@router.delete("/api/v1/users/{user_id}/habits/{habit_id}/permanent", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("10/minute")
async def permanently_delete_habit_endpoint(
    request: Request,
    user_id: str,
    habit_id: int,
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Delete a habit and its trackers for good (Rate limit: 10/minute)"""
    await services.habit_service.permanently_delete_habit(user_id, habit_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Completions and statistics
# ============================================================================

@router.post("/api/v1/users/{user_id}/habits/{habit_id}/toggle", response_model=ToggleResult)
@limiter.limit("60/minute")
async def toggle_completion_endpoint(
    request: Request,
    user_id: str,
    habit_id: int,
    body: ToggleRequest,
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Toggle a habit's completion on a date (Rate limit: 60/minute)"""
    return await services.habit_service.toggle_completion(
        user_id,
        habit_id,
        timezone=body.timezone,
        date=body.date,
        completed_at=body.completed_at,
        notes=body.notes
    )


@router.get("/api/v1/users/{user_id}/habits/{habit_id}/stats", response_model=HabitStats)
@limiter.limit("30/minute")
async def get_habit_stats_endpoint(
    request: Request,
    user_id: str,
    habit_id: int,
    timezone: str = "UTC",
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Streak statistics of a habit as of today (Rate limit: 30/minute)"""
    return await services.habit_service.get_habit_stats(user_id, habit_id, timezone)


@router.get("/api/v1/users/{user_id}/habits/{habit_id}/trackers", response_model=TrackerListResponse)
@limiter.limit("30/minute")
async def get_trackers_endpoint(
    request: Request,
    user_id: str,
    habit_id: int,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Completion trackers of a habit (Rate limit: 30/minute)"""
    trackers = await services.habit_service.get_trackers(user_id, habit_id, start_date, end_date)
    return TrackerListResponse(user_id=user_id, habit_id=habit_id, trackers=trackers)


# ============================================================================
# Progress
# ============================================================================

@router.get("/api/v1/users/{user_id}/progress", response_model=ProgressResponse)
@limiter.limit("30/minute")
async def get_progress_endpoint(
    request: Request,
    user_id: str,
    timezone: str = "UTC",
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Daily completion history and perfect-day streaks (Rate limit: 30/minute)"""
    overview = await services.progress_service.get_progress_overview(
        user_id, timezone, start_date, end_date
    )
    return ProgressResponse(
        user_id=user_id,
        timezone=timezone,
        history=overview.history,
        current_streak=overview.current_streak,
        longest_streak=overview.longest_streak
    )


# ============================================================================
# Achievements
# ============================================================================

@router.get("/api/v1/users/{user_id}/achievements", response_model=AchievementListResponse)
@limiter.limit("30/minute")
async def list_achievements_endpoint(
    request: Request,
    user_id: str,
    timezone: str = "UTC",
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """All achievements with earned state or progress (Rate limit: 30/minute)"""
    achievements = await services.achievement_service.list_achievements(user_id, timezone)
    return AchievementListResponse(user_id=user_id, achievements=achievements)


@router.get("/api/v1/users/{user_id}/achievements/earned", response_model=EarnedAchievementListResponse)
@limiter.limit("30/minute")
async def list_earned_achievements_endpoint(
    request: Request,
    user_id: str,
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Achievements the user holds, newest first (Rate limit: 30/minute)"""
    achievements = await services.achievement_service.list_earned(user_id)
    return EarnedAchievementListResponse(user_id=user_id, achievements=achievements)


@router.get("/api/v1/users/{user_id}/achievements/stats", response_model=AchievementSummary)
@limiter.limit("30/minute")
async def achievement_summary_endpoint(
    request: Request,
    user_id: str,
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Earned counts overall and per category (Rate limit: 30/minute)"""
    return await services.achievement_service.get_summary(user_id)


@router.post("/api/v1/users/{user_id}/achievements/check", response_model=AchievementCheckResponse)
@limiter.limit("10/minute")
async def check_achievements_endpoint(
    request: Request,
    user_id: str,
    timezone: str = "UTC",
    services: ServiceContainer = Depends(get_services),
    api_key: str = Depends(verify_api_key)
):
    """Award every achievement the user now qualifies for (Rate limit: 10/minute)"""
    awarded = await services.achievement_service.check_and_award(user_id, timezone)
    return AchievementCheckResponse(user_id=user_id, awarded=awarded, count=len(awarded))
