"""Email queue inspection and dead-letter recovery."""
from fastapi import APIRouter, Depends, HTTPException

from coinspree.container import (EmailQueueDep, ErrorMapperDep,
                                 require_cron_secret)
from coinspree.providers.core import CoinSpreeError
from coinspree.schemas import QueueStatus
from coinspree.schemas.emails import DeadLetter

router = APIRouter(
    prefix="/email-queue", tags=["email-queue"], dependencies=[Depends(require_cron_secret)]
)


@router.get("/status", response_model=QueueStatus)
async def get_queue_status(queue: EmailQueueDep, errors: ErrorMapperDep) -> QueueStatus:
    try:
        return await queue.get_queue_status()
    except CoinSpreeError as exc:
        errors.raise_http(exc)


@router.get("/failed", response_model=list[DeadLetter])
async def get_failed_emails(queue: EmailQueueDep, errors: ErrorMapperDep) -> list[DeadLetter]:
    """Dead letters, newest first."""
    try:
        return await queue.get_failed_emails()
    except CoinSpreeError as exc:
        errors.raise_http(exc)


@router.post("/failed/{job_id}/retry")
async def retry_failed_email(
    job_id: str, queue: EmailQueueDep, errors: ErrorMapperDep
) -> dict[str, str]:
    """Requeue a dead letter with its attempt counter reset."""
    try:
        requeued = await queue.retry_failed_email(job_id)
    except CoinSpreeError as exc:
        errors.raise_http(exc, item=job_id)
    if not requeued:
        raise HTTPException(status_code=404, detail=f"Failed email '{job_id}' not found")
    return {"status": "requeued", "id": job_id}
