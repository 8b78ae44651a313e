"""Notification history and statistics."""
from fastapi import APIRouter, Depends, Query

from coinspree.container import (ErrorMapperDep, PipelineDep,
                                 require_cron_secret)
from coinspree.providers.core import CoinSpreeError
from coinspree.schemas import ATHEvent, NotificationStats

router = APIRouter(
    prefix="/notifications", tags=["notifications"], dependencies=[Depends(require_cron_secret)]
)


@router.get("/recent", response_model=list[ATHEvent])
async def get_recent_notifications(
    pipeline: PipelineDep,
    errors: ErrorMapperDep,
    hours: int = Query(default=24, ge=1, le=24 * 30, description="Look-back window in hours"),
) -> list[ATHEvent]:
    """ATH events sent in the last ``hours`` hours, newest first."""
    try:
        return await pipeline.get_recent_events(hours)
    except CoinSpreeError as exc:
        errors.raise_http(exc)


@router.get("/stats", response_model=NotificationStats)
async def get_notification_stats(
    pipeline: PipelineDep,
    errors: ErrorMapperDep,
    days: int = Query(default=30, ge=1, le=365),
) -> NotificationStats:
    try:
        return await pipeline.get_stats(days)
    except CoinSpreeError as exc:
        errors.raise_http(exc)


@router.get("/users/{user_id}", response_model=list[ATHEvent])
async def get_user_notifications(
    user_id: str,
    pipeline: PipelineDep,
    errors: ErrorMapperDep,
    limit: int = Query(default=50, ge=1, le=200),
) -> list[ATHEvent]:
    """Events a user was notified about, newest first."""
    try:
        return await pipeline.get_user_history(user_id, limit)
    except CoinSpreeError as exc:
        errors.raise_http(exc, item=user_id)
