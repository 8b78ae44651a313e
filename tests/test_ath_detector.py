"""Tests for ATH detection against stored per-asset state."""
from datetime import timedelta

import pytest

from conftest import NOW, make_asset
from coinspree.providers.core import StorageReadError
from coinspree.schemas import ATHKind, StoredAssetState
from coinspree.services import ATHDetector
from coinspree.storage import AssetStateStore


@pytest.fixture
def states(redis) -> AssetStateStore:
    return AssetStateStore(redis)


@pytest.fixture
def detector(states) -> ATHDetector:
    return ATHDetector(states)


async def seed(states: AssetStateStore, asset_id: str, ath: float) -> None:
    await states.save(StoredAssetState(asset_id=asset_id, ath=ath, symbol="BTC", name="Bitcoin"))


@pytest.mark.asyncio
async def test_price_above_stored_ath_is_real_time(detector, states):
    await seed(states, "bitcoin", 69000)

    [event] = await detector.detect([make_asset("bitcoin", price=70000, ath=69000)])

    assert event.kind is ATHKind.REAL_TIME
    assert event.previous_ath == 69000
    assert event.new_ath == 70000
    assert event.percentage_increase == pytest.approx(1.449, abs=0.01)
    assert (await states.get("bitcoin")).ath == 70000


@pytest.mark.asyncio
async def test_source_ath_above_stored_is_missed_ath(detector, states):
    await seed(states, "bitcoin", 69000)

    [event] = await detector.detect([make_asset("bitcoin", price=68000, ath=69500)])

    assert event.kind is ATHKind.MISSED
    assert event.new_ath == 69500
    assert (await states.get("bitcoin")).ath == 69500


@pytest.mark.asyncio
async def test_no_event_when_below_stored_ath(detector, states):
    await seed(states, "bitcoin", 69000)

    events = await detector.detect([make_asset("bitcoin", price=68000, ath=68500)])

    assert events == []
    stored = await states.get("bitcoin")
    assert stored.ath == 69000
    assert stored.last_price == 68000


@pytest.mark.asyncio
async def test_detected_ath_is_not_reported_twice(detector, states):
    await seed(states, "bitcoin", 69000)
    asset = make_asset("bitcoin", price=70000, ath=69000)

    assert len(await detector.detect([asset])) == 1
    assert await detector.detect([asset]) == []


@pytest.mark.asyncio
async def test_first_observation_at_ath_emits_once(detector, states):
    [event] = await detector.detect([make_asset("newcoin", price=2.0, ath=1.5)])

    assert event.kind is ATHKind.FIRST_OBSERVATION
    assert event.previous_ath == 0
    assert event.new_ath == 2.0
    assert event.percentage_increase == 100.0
    assert (await states.get("newcoin")).ath == 2.0


@pytest.mark.asyncio
async def test_first_observation_below_reported_ath_is_only_recorded(detector, states):
    events = await detector.detect([make_asset("bitcoin", price=50000, ath=69000)])

    assert events == []
    assert (await states.get("bitcoin")).ath == 69000


class FlakyStates(AssetStateStore):
    async def get(self, asset_id):
        if asset_id == "broken":
            raise StorageReadError("Failed to read state of broken")
        return await super().get(asset_id)


@pytest.mark.asyncio
async def test_storage_failure_skips_only_that_asset(redis):
    states = FlakyStates(redis)
    await seed(states, "bitcoin", 69000)
    detector = ATHDetector(states)

    events = await detector.detect(
        [make_asset("broken", price=10), make_asset("bitcoin", price=70000, ath=69000)]
    )

    assert [e.asset.id for e in events] == ["bitcoin"]


@pytest.mark.asyncio
async def test_reported_ath_equal_to_stored_is_not_an_ath(detector, states):
    await seed(states, "bitcoin", 69000)

    events = await detector.detect([make_asset("bitcoin", price=65000, ath=69000)])

    assert events == []
    assert (await states.get("bitcoin")).ath == 69000


@pytest.mark.asyncio
async def test_first_observation_with_price_equal_to_ath(detector, states):
    events = await detector.detect([make_asset("bitcoin", price=45000, ath=45000)])

    [event] = events
    assert event.previous_ath == 0
    assert event.new_ath == 45000
    assert event.kind is ATHKind.FIRST_OBSERVATION
    assert await detector.detect([make_asset("bitcoin", price=45000, ath=45000)]) == []


@pytest.mark.asyncio
async def test_notified_price_is_the_higher_source_ath(detector, states):
    await seed(states, "bitcoin", 65000)

    [event] = await detector.detect([make_asset("bitcoin", price=68000, ath=70000)])

    assert event.previous_ath == 65000
    assert event.new_ath == 70000
    assert (await states.get("bitcoin")).ath == 70000
    assert await detector.detect([make_asset("bitcoin", price=68000, ath=70000)]) == []


@pytest.mark.asyncio
async def test_real_time_ath_is_dated_at_detection(redis, states):
    await seed(states, "bitcoin", 69000)
    detector = ATHDetector(states, clock=lambda: NOW)
    reported = NOW - timedelta(days=365)

    await detector.detect([make_asset("bitcoin", price=70000, ath=69000, ath_date=reported)])

    assert (await states.get("bitcoin")).ath_date == NOW


@pytest.mark.asyncio
async def test_missed_ath_keeps_the_source_date(redis, states):
    await seed(states, "bitcoin", 69000)
    detector = ATHDetector(states, clock=lambda: NOW)
    peak = NOW - timedelta(minutes=3)

    await detector.detect([make_asset("bitcoin", price=68000, ath=69500, ath_date=peak)])

    assert (await states.get("bitcoin")).ath_date == peak
