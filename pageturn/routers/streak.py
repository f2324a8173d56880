from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pageturn.database import get_session
from pageturn.dependencies import Services, get_context, get_services
from pageturn.schemas.streak import (
    AnalyticsResponse,
    DailyActivityResponse,
    PageStatsResponse,
    StreakEnabledUpdate,
    StreakResponse,
    ThresholdUpdate,
    TimezoneUpdate,
)
from pageturn.services.clock import OperationContext
from pageturn.services.streaks import StreakSnapshot

router = APIRouter(tags=["streak"])


def _to_response(snapshot: StreakSnapshot) -> StreakResponse:
    s = snapshot.streak
    return StreakResponse(
        current_streak=s.current_streak,
        longest_streak=s.longest_streak,
        last_activity_date=s.last_activity_date,
        streak_start_date=s.streak_start_date,
        total_days_active=s.total_days_active,
        daily_threshold=s.daily_threshold,
        user_timezone=snapshot.timezone,
        streak_enabled=s.streak_enabled,
        today_pages_read=snapshot.today_pages_read,
        threshold_met_today=snapshot.threshold_met_today,
        hours_remaining_today=snapshot.hours_remaining_today,
    )


@router.get("/api/streak", response_model=StreakResponse)
async def get_streak(
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    await services.streaks.check_and_reset_streak_if_needed(ctx)
    await session.commit()
    return _to_response(await services.streaks.get_streak(ctx))


@router.post("/api/streak/rebuild", response_model=StreakResponse)
async def rebuild_streak(
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    await services.streaks.rebuild_streak(ctx)
    await session.commit()
    return _to_response(await services.streaks.get_streak(ctx))


@router.put("/api/streak/threshold", response_model=StreakResponse)
async def update_threshold(
    data: ThresholdUpdate,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    await services.streaks.update_threshold(ctx, data.daily_threshold)
    await session.commit()
    return _to_response(await services.streaks.get_streak(ctx))


@router.put("/api/streak/timezone", response_model=StreakResponse)
async def update_timezone(
    data: TimezoneUpdate,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    await services.streaks.set_timezone(ctx, data.timezone)
    await session.commit()
    ctx = OperationContext(user_id=ctx.user_id, timezone=data.timezone)
    return _to_response(await services.streaks.get_streak(ctx))


@router.put("/api/streak/enabled", response_model=StreakResponse)
async def set_streak_enabled(
    data: StreakEnabledUpdate,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    await services.streaks.set_streak_enabled(ctx, data.enabled, data.daily_threshold)
    await session.commit()
    return _to_response(await services.streaks.get_streak(ctx))


@router.get("/api/streak/analytics", response_model=AnalyticsResponse)
async def streak_analytics(
    days: str = Query("30", description="Days back to include (1-3650), or \"this-year\" or \"all-time\""),
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    window = services.streaks.resolve_history_days(ctx, days)
    await services.streaks.check_and_reset_streak_if_needed(ctx)
    await session.commit()
    history = await services.streaks.activity_history(ctx, window)
    streak = await services.streaks.get_or_create(ctx.user_id)
    return AnalyticsResponse(
        days=window,
        daily_threshold=streak.daily_threshold,
        history=[
            DailyActivityResponse(date=d.date, pages_read=d.pages_read, threshold_met=d.threshold_met)
            for d in history
        ],
    )


@router.get("/api/stats/pages", response_model=PageStatsResponse)
async def page_stats(
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    stats = await services.streaks.page_stats(ctx)
    return PageStatsResponse(
        today=stats.today,
        last_7_days=stats.last_7_days,
        last_30_days=stats.last_30_days,
        average_per_day_30=stats.average_per_day_30,
        all_time=stats.all_time,
    )
