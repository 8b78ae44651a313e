"""Models for the CoinGecko provider (request params and raw market rows)."""
from datetime import datetime

from pydantic import BaseModel, field_validator

from coinspree.schemas import CryptoAsset


class CoinGeckoMarketsParams(BaseModel):
    """Params for /coins/markets (ranked listing)."""

    vs_currency: str = "usd"
    order: str = "market_cap_desc"
    per_page: int = 100
    page: int = 1
    sparkline: str = "false"
    price_change_percentage: str = "24h"


class CoinGeckoMarketItem(BaseModel):
    """One row of /coins/markets. Optional numerics default to 0 when null or absent."""

    id: str
    symbol: str
    name: str
    current_price: float | None = None
    market_cap: float = 0.0
    market_cap_rank: int = 0
    total_volume: float = 0.0
    ath: float = 0.0
    ath_date: datetime | None = None
    last_updated: datetime | None = None
    price_change_percentage_24h: float = 0.0

    @field_validator(
        "market_cap",
        "market_cap_rank",
        "total_volume",
        "ath",
        "price_change_percentage_24h",
        mode="before",
    )
    @classmethod
    def _none_to_zero(cls, value: object) -> object:
        return 0 if value is None else value

    def to_asset(self) -> CryptoAsset:
        """Normalize to the pipeline's CryptoAsset (symbol upper-cased)."""
        return CryptoAsset(
            id=self.id,
            symbol=self.symbol.upper(),
            name=self.name,
            current_price=self.current_price,
            market_cap=self.market_cap,
            market_cap_rank=self.market_cap_rank,
            total_volume=self.total_volume,
            ath=self.ath,
            ath_date=self.ath_date,
            last_updated=self.last_updated,
            price_change_percentage_24h=self.price_change_percentage_24h,
        )
