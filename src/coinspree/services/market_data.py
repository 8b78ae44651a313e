"""Ranked market data with a read-through cache and stale fallback."""
import logging

from coinspree.providers.core import (MarketProviderABC, NetworkError,
                                      UpstreamDataError)
from coinspree.schemas import MarketSnapshot
from coinspree.storage import MarketCache

logger = logging.getLogger(__name__)

# Ranges fetched each detection tick; two pages of 100 keep requests within limits.
TOP_RANGES: tuple[tuple[int, int], ...] = ((1, 100), (101, 200))


class MarketDataClient:
    """Fetches ranked assets through the cache; degrades to last-good data on outage."""

    def __init__(self, provider: MarketProviderABC, cache: MarketCache) -> None:
        self._provider = provider
        self._cache = cache

    async def fetch_ranked(self, range_start: int, range_end: int) -> MarketSnapshot:
        """Fetch assets ranked ``range_start..range_end`` (inclusive, 1-based).

        Args:
            range_start: First rank; must start a page of size ``range_end - range_start + 1``.
            range_end: Last rank.

        Returns:
            A fresh snapshot, or the last good copy with ``stale=True`` when the
            upstream fails.

        Raises:
            ValueError: The range is empty or not page-aligned.
            UpstreamDataError: Upstream failed and no last good copy exists.
            NetworkError: Same, for transport failures.
        """
        per_page = range_end - range_start + 1
        if range_start < 1 or per_page < 1 or (range_start - 1) % per_page:
            raise ValueError(f"Rank range {range_start}-{range_end} is not page-aligned")

        cached = await self._cache.get_fresh(range_start, range_end)
        if cached is not None:
            return MarketSnapshot(assets=cached)

        page = (range_start - 1) // per_page + 1
        try:
            assets = await self._provider.get_ranked(page=page, per_page=per_page)
        except (UpstreamDataError, NetworkError) as exc:
            last_good = await self._cache.get_last_good(range_start, range_end)
            if last_good is None:
                raise
            logger.warning(
                "Market data %s-%s unavailable (%s); serving stale copy", range_start, range_end, exc
            )
            return MarketSnapshot(assets=last_good, stale=True)

        await self._cache.put(range_start, range_end, assets)
        return MarketSnapshot(assets=assets)

    async def fetch_top(self) -> MarketSnapshot:
        """Ranks 1-200 combined; stale if any part was served stale."""
        assets = []
        stale = False
        for range_start, range_end in TOP_RANGES:
            snapshot = await self.fetch_ranked(range_start, range_end)
            assets.extend(snapshot.assets)
            stale = stale or snapshot.stale
        return MarketSnapshot(assets=assets, stale=stale)
