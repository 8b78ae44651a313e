"""Tick triggers for an external scheduler (e.g. Vercel Cron, Kubernetes CronJob)."""
import logging

from fastapi import APIRouter, Depends

from coinspree.container import (ErrorMapperDep, PipelineDep,
                                 require_cron_secret)
from coinspree.providers.core import CoinSpreeError
from coinspree.schemas import DetectionTickResult, QueueTickResult

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)])


@router.post("/ath-detection", response_model=DetectionTickResult)
async def run_ath_detection(pipeline: PipelineDep, errors: ErrorMapperDep) -> DetectionTickResult:
    """Run one detection tick: fetch, detect, gate, record and fan out."""
    try:
        return await pipeline.run_detection_tick()
    except CoinSpreeError as exc:
        logger.exception("ATH detection tick failed")
        errors.raise_http(exc)


@router.post("/email-queue", response_model=QueueTickResult)
async def run_email_queue(pipeline: PipelineDep, errors: ErrorMapperDep) -> QueueTickResult:
    """Deliver one batch of due emails."""
    try:
        return await pipeline.run_queue_tick()
    except CoinSpreeError as exc:
        logger.exception("Email queue tick failed")
        errors.raise_http(exc)


@router.get("/status")
async def get_cron_status(pipeline: PipelineDep, errors: ErrorMapperDep) -> dict:
    """Last run bookkeeping for both ticks."""
    try:
        return await pipeline.get_cron_status()
    except CoinSpreeError as exc:
        errors.raise_http(exc)
