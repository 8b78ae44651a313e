"""CoinGecko market data provider for cryptocurrencies."""
import logging
import os

import httpx
from pydantic import ValidationError

from coinspree.providers.coingecko.models import (CoinGeckoMarketItem,
                                                  CoinGeckoMarketsParams)
from coinspree.providers.core import MarketProviderABC
from coinspree.providers.core.exceptions import NetworkError, UpstreamDataError
from coinspree.schemas import CryptoAsset

logger = logging.getLogger(__name__)


class CoinGeckoProvider(MarketProviderABC):
    """Market data provider for cryptocurrencies via CoinGecko API.

    Uses the /coins/markets endpoint, which returns assets ranked by market
    cap together with the source's own recorded ATH and ATH date.
    """

    BASE_URL = "https://api.coingecko.com/api/v3"
    PRO_BASE_URL = "https://pro-api.coingecko.com/api/v3"

    def __init__(
        self,
        api_key: str | None = None,
        use_pro_api: bool = False,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the CoinGecko provider.

        Args:
            api_key: CoinGecko API key. Defaults to COINGECKO_API_KEY env var.
            use_pro_api: Whether to use the Pro API endpoint and header.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self._api_key = api_key or os.getenv("COINGECKO_API_KEY")
        self._use_pro_api = use_pro_api

        headers: dict[str, str] = {"Accept": "application/json"}
        if self._api_key:
            header = "x-cg-pro-api-key" if self._use_pro_api else "x-cg-demo-api-key"
            headers[header] = self._api_key

        base = self.PRO_BASE_URL if self._use_pro_api else self.BASE_URL
        self._client = httpx.AsyncClient(
            base_url=base, headers=headers, timeout=timeout, transport=transport
        )

    async def get_ranked(self, page: int, per_page: int) -> list[CryptoAsset]:
        """Fetch one page of /coins/markets and normalize each row."""
        params = CoinGeckoMarketsParams(page=page, per_page=per_page).model_dump()
        try:
            response = await self._client.get("/coins/markets", params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UpstreamDataError(
                exc.response.status_code, exc.response.text[:200] or "CoinGecko API error"
            ) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"CoinGecko request failed: {exc!r}") from exc

        try:
            rows = response.json()
        except ValueError as exc:
            raise UpstreamDataError(response.status_code, "malformed body: not JSON") from exc
        if not isinstance(rows, list):
            raise UpstreamDataError(response.status_code, "malformed body: expected a list of markets")

        return [asset for asset in map(self._asset_from_market_item, rows) if asset]

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    def _asset_from_market_item(self, item: object) -> CryptoAsset | None:
        """Build a CryptoAsset from a /coins/markets row; None for unusable rows."""
        try:
            row = CoinGeckoMarketItem.model_validate(item)
            if row.current_price is None or row.current_price <= 0:
                logger.debug("Skipping %s: no current price", row.id)
                return None
            return row.to_asset()
        except ValidationError as exc:
            logger.warning(
                "Skipping malformed CoinGecko row %s: %s",
                item.get("id") if isinstance(item, dict) else item,
                exc,
            )
            return None
