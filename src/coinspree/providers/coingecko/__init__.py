"""CoinGecko ranked market data."""
from coinspree.providers.coingecko.coin_gecko_provider import CoinGeckoProvider

__all__ = ["CoinGeckoProvider"]
