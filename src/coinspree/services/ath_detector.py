"""ATH diff engine: compares fresh market data with stored per-asset state."""
import logging
from collections.abc import Callable
from datetime import datetime

from coinspree.providers.core import CoinSpreeError
from coinspree.schemas import (ATHKind, CryptoAsset, DetectedEvent,
                               StoredAssetState)
from coinspree.storage import AssetStateStore
from coinspree.utils import utcnow

logger = logging.getLogger(__name__)


class ATHDetector:
    """Finds assets whose price (or reported ATH) beat the stored ATH.

    The new ATH is persisted as soon as it qualifies, before any notification
    decision, so a concurrent or later tick does not re-detect it. The
    notified price is the higher of the current price and the source's ATH,
    so a peak reached between polls is never reported below its true value.
    """

    def __init__(self, states: AssetStateStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._states = states
        self._clock = clock

    async def detect(self, assets: list[CryptoAsset]) -> list[DetectedEvent]:
        detected: list[DetectedEvent] = []
        for asset in assets:
            try:
                event = await self._check(asset)
            except CoinSpreeError:
                logger.exception("ATH check failed for %s; skipping", asset.id)
                continue
            if event is not None:
                detected.append(event)
        return detected

    async def _check(self, asset: CryptoAsset) -> DetectedEvent | None:
        stored = await self._states.get(asset.id)
        now = self._clock()

        if stored is None:
            if asset.current_price >= asset.ath:
                await self._states.save(_state_from(asset, asset.current_price, now))
                return DetectedEvent(
                    asset=asset,
                    previous_ath=0.0,
                    new_ath=asset.current_price,
                    kind=ATHKind.FIRST_OBSERVATION,
                )
            await self._states.save(_state_from(asset, asset.ath, asset.ath_date))
            return None

        previous_ath = stored.ath
        if asset.current_price > previous_ath:
            kind = ATHKind.REAL_TIME
        elif asset.ath > previous_ath:
            kind = ATHKind.MISSED
        else:
            await self._states.save(_state_from(asset, previous_ath, stored.ath_date))
            return None

        if asset.current_price >= asset.ath:
            new_ath, ath_date = asset.current_price, now
        else:
            # Peak happened between polls; the source's ATH is the notified price.
            new_ath, ath_date = asset.ath, asset.ath_date or now

        await self._states.save(_state_from(asset, new_ath, ath_date))
        logger.info(
            "%s ATH for %s: %s -> %s", kind.value, asset.symbol, previous_ath, new_ath
        )
        return DetectedEvent(asset=asset, previous_ath=previous_ath, new_ath=new_ath, kind=kind)


def _state_from(asset: CryptoAsset, ath: float, ath_date: datetime | None) -> StoredAssetState:
    return StoredAssetState(
        asset_id=asset.id,
        ath=ath,
        ath_date=ath_date,
        symbol=asset.symbol,
        name=asset.name,
        last_price=asset.current_price,
        last_updated=asset.last_updated,
    )
