"""DI container. The lifespan creates one and stores it on app.state; routes resolve through it."""
import hmac
import logging
from typing import Annotated

from dependency_injector import containers, providers
from fastapi import Depends, Header, HTTPException, Request

from coinspree.config import Settings
from coinspree.providers import (CoinGeckoProvider, ResendProvider,
                                 TemplateStore)
from coinspree.providers.core import ErrorMapper
from coinspree.services import (ATHDetector, ATHPipeline, EmailQueue,
                                EmailSender, FrequencyGate, MarketDataClient,
                                NotificationFanout, RecipientResolver)
from coinspree.storage import (AssetStateStore, CronStatusStore,
                               DeliveryLogStore, DetectionTracker, EventStore,
                               MarketCache, UserDirectory, create_redis)

logger = logging.getLogger(__name__)


class Container(containers.DeclarativeContainer):
    settings = providers.Singleton(Settings.from_env)

    redis = providers.Singleton(create_redis, settings.provided.redis_url)

    market_provider = providers.Singleton(
        CoinGeckoProvider,
        api_key=settings.provided.coingecko_api_key,
        use_pro_api=settings.provided.coingecko_use_pro,
        timeout=settings.provided.http_timeout_seconds,
    )
    email_provider = providers.Singleton(
        ResendProvider,
        api_key=settings.provided.resend_api_key,
        timeout=settings.provided.http_timeout_seconds,
    )
    template_store = providers.Singleton(
        TemplateStore,
        edge_config_id=settings.provided.edge_config_id,
        token=settings.provided.edge_config_token,
    )

    # Stores
    asset_states = providers.Singleton(AssetStateStore, redis)
    events = providers.Singleton(EventStore, redis)
    users = providers.Singleton(UserDirectory, redis)
    deliveries = providers.Singleton(DeliveryLogStore, redis)
    detections = providers.Singleton(DetectionTracker, redis)
    cron_status = providers.Singleton(CronStatusStore, redis)
    market_cache = providers.Singleton(
        MarketCache, redis, ttl_seconds=settings.provided.market_cache_ttl_seconds
    )

    # Services
    market_data = providers.Singleton(MarketDataClient, market_provider, market_cache)
    detector = providers.Singleton(ATHDetector, asset_states)
    frequency_gate = providers.Singleton(
        FrequencyGate,
        asset_states,
        min_interval_minutes=settings.provided.notification_min_interval_minutes,
    )
    recipients = providers.Singleton(RecipientResolver, users)
    email_sender = providers.Singleton(
        EmailSender,
        provider=email_provider,
        templates=template_store,
        users=users,
        deliveries=deliveries,
        from_address=settings.provided.email_from,
        reply_to=settings.provided.email_reply_to,
        app_url=settings.provided.app_url,
    )
    email_queue = providers.Singleton(
        EmailQueue,
        redis,
        email_sender,
        batch_size=settings.provided.email_queue_batch_size,
        max_attempts=settings.provided.email_max_attempts,
    )
    fanout = providers.Singleton(
        NotificationFanout,
        email_queue,
        events,
        batch_size=settings.provided.notification_batch_size,
        batch_delay_ms=settings.provided.notification_batch_delay_ms,
    )
    pipeline = providers.Singleton(
        ATHPipeline,
        market=market_data,
        detector=detector,
        gate=frequency_gate,
        resolver=recipients,
        fanout=fanout,
        queue=email_queue,
        events=events,
        tracker=detections,
        cron=cron_status,
    )

    error_mapper = providers.Singleton(ErrorMapper)


def _container(request: Request) -> Container:
    return request.app.state.container


def get_pipeline(request: Request) -> ATHPipeline:
    return _container(request).pipeline()


def get_email_queue(request: Request) -> EmailQueue:
    return _container(request).email_queue()


def get_error_mapper(request: Request) -> ErrorMapper:
    return _container(request).error_mapper()


def require_cron_secret(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Reject calls without ``Authorization: Bearer <CRON_SECRET>``."""
    secret = _container(request).settings().cron_secret
    if not secret:
        logger.error("CRON_SECRET is not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")
    if not hmac.compare_digest(authorization or "", f"Bearer {secret}"):
        logger.warning("Unauthorized trigger call to %s", request.url.path)
        raise HTTPException(status_code=401, detail="Unauthorized")


# Type aliases for route injection
PipelineDep = Annotated[ATHPipeline, Depends(get_pipeline)]
EmailQueueDep = Annotated[EmailQueue, Depends(get_email_queue)]
ErrorMapperDep = Annotated[ErrorMapper, Depends(get_error_mapper)]
