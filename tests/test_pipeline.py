"""End-to-end ticks: market data through detection, fan-out and delivery."""
from datetime import timedelta
from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import NOW, add_user, make_user
from coinspree.providers import CoinGeckoProvider, TemplateStore
from coinspree.providers.email import EmailProviderABC
from coinspree.schemas import ATHEvent, Role, StoredAssetState
from coinspree.services import (ATHDetector, ATHPipeline, EmailQueue,
                                EmailSender, FrequencyGate, MarketDataClient,
                                NotificationFanout, RecipientResolver)
from coinspree.storage import (AssetStateStore, CronStatusStore,
                               DeliveryLogStore, DetectionTracker, EventStore,
                               Keys, MarketCache)


class Upstream:
    def __init__(self):
        self.price = 70000.0
        self.status = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.status != 200:
            return httpx.Response(self.status, text="upstream down")
        if request.url.params["page"] != "1":
            return httpx.Response(200, json=[])
        return httpx.Response(
            200,
            json=[
                {
                    "id": "bitcoin",
                    "symbol": "btc",
                    "name": "Bitcoin",
                    "current_price": self.price,
                    "market_cap_rank": 1,
                    "ath": 69000,
                    "ath_date": "2024-03-14T07:10:36.635Z",
                }
            ],
        )


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def email_provider() -> AsyncMock:
    provider = AsyncMock(spec=EmailProviderABC)
    provider.send.return_value = "msg_1"
    return provider


@pytest.fixture
def states(redis) -> AssetStateStore:
    return AssetStateStore(redis)


@pytest.fixture
def events(redis) -> EventStore:
    return EventStore(redis)


@pytest.fixture
def pipeline(redis, upstream, email_provider, users, states, events) -> ATHPipeline:
    sender = EmailSender(
        email_provider, TemplateStore(), users, DeliveryLogStore(redis), "CoinSpree <n@coinspree.cc>"
    )
    queue = EmailQueue(redis, sender)
    market = MarketDataClient(
        CoinGeckoProvider(transport=httpx.MockTransport(upstream)), MarketCache(redis)
    )
    return ATHPipeline(
        market=market,
        detector=ATHDetector(states),
        gate=FrequencyGate(states),
        resolver=RecipientResolver(users),
        fanout=NotificationFanout(queue, events, batch_delay_ms=0),
        queue=queue,
        events=events,
        tracker=DetectionTracker(redis),
        cron=CronStatusStore(redis),
        clock=lambda: NOW,
    )


@pytest.fixture
async def subscribers(users):
    await add_user(users, make_user("alice"))
    await add_user(users, make_user("admin", role=Role.ADMIN))
    await add_user(users, make_user("bob"), status=None)


async def seed_bitcoin(states: AssetStateStore, ath: float = 69000) -> None:
    await states.save(StoredAssetState(asset_id="bitcoin", ath=ath, symbol="BTC", name="Bitcoin"))


@pytest.mark.asyncio
async def test_bitcoin_ath_reaches_only_eligible_subscriber(
    redis, pipeline, states, events, email_provider, subscribers
):
    await seed_bitcoin(states)

    result = await pipeline.run_detection_tick()

    [event] = result.events
    assert (event.crypto_id, event.previous_ath, event.new_ath) == ("bitcoin", 69000, 70000)
    assert event.recipient_count == 1
    assert result.errors == []
    assert (await events.get(event.id)).recipient_count == 1
    assert (await states.get("bitcoin")).ath == 70000
    assert await redis.hget(Keys.ATH_STATS, "total_detections") == "1"

    delivery = await pipeline.run_queue_tick()

    assert (delivery.sent, delivery.remaining) == (1, 0)
    [message] = email_provider.send.await_args.args
    assert message.to == "alice@example.com"
    assert "+1.45%" in message.text
    assert "$70,000.00" in message.html

    status = await pipeline.get_cron_status()
    assert status["ath_detection"]["last_ath_count"] == "1"
    assert status["email_queue"]["last_sent"] == "1"
    assert status["detection_stats"]["real_time_detections"] == "1"
    assert await redis.hget(Keys.ath_coin_stats("bitcoin"), "detections") == "1"
    assert 0 < await redis.ttl(Keys.ath_hourly(NOW.hour)) <= 25 * 3600


@pytest.mark.asyncio
async def test_same_price_next_tick_is_not_an_ath(pipeline, states, subscribers):
    await seed_bitcoin(states)
    await pipeline.run_detection_tick()

    second = await pipeline.run_detection_tick()

    assert second.events == []


@pytest.mark.asyncio
async def test_cooldown_suppresses_event_but_keeps_new_ath(pipeline, states, events, subscribers):
    await seed_bitcoin(states)
    await states.set_last_notified("bitcoin", NOW - timedelta(minutes=2))

    result = await pipeline.run_detection_tick()

    assert result.events == []
    assert result.skipped_by_gate == ["bitcoin"]
    assert (await states.get("bitcoin")).ath == 70000
    assert await events.get_since(NOW - timedelta(hours=1)) == []


@pytest.mark.asyncio
async def test_stale_market_data_skips_detection(redis, pipeline, states, upstream, subscribers):
    await seed_bitcoin(states, ath=80000)
    await pipeline.run_detection_tick()
    cache = MarketCache(redis)
    await cache.clear(1, 100)
    await cache.clear(101, 200)
    await seed_bitcoin(states)
    upstream.status = 503

    result = await pipeline.run_detection_tick()

    assert result.stale
    assert result.events == []
    assert (await states.get("bitcoin")).ath == 69000


@pytest.mark.asyncio
async def test_upstream_outage_yields_no_events(pipeline, states, upstream):
    await seed_bitcoin(states)
    upstream.status = 500

    result = await pipeline.run_detection_tick()

    assert result.events == []
    assert len(result.errors) == 1


@pytest.mark.asyncio
async def test_notification_history(pipeline, states, events, subscribers):
    await seed_bitcoin(states)
    await events.save(
        ATHEvent(
            id="old",
            crypto_id="ethereum",
            new_ath=4900,
            previous_ath=4800,
            sent_at=NOW - timedelta(days=100),
        )
    )
    tick = await pipeline.run_detection_tick()
    [event] = tick.events

    recent = await pipeline.get_recent_events(hours=24)
    assert [e.id for e in recent] == [event.id]

    [seen] = await pipeline.get_user_history("alice")
    assert seen.id == event.id
    assert await pipeline.get_user_history("admin") == []

    stats = await pipeline.get_stats(days=30)
    assert (stats.total_notifications, stats.total_recipients, stats.unique_cryptos) == (1, 1, 1)
    assert stats.average_recipients_per_notification == 1.0

    assert await pipeline.cleanup_before(days=90) == 1
    assert await events.get("old") is None
