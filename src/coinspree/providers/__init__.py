"""External collaborators of the ATH pipeline.

- CoinGeckoProvider: ranked crypto market data via the CoinGecko API
- ResendProvider: transactional email via the Resend API
- TemplateStore: email templates from Vercel Edge Config, with built-in defaults

Example:
    async with CoinGeckoProvider() as provider:
        assets = await provider.get_ranked(page=1, per_page=100)
        print(f"{assets[0].symbol}: ${assets[0].current_price}")
"""
from coinspree.providers.coingecko import CoinGeckoProvider
from coinspree.providers.core import MarketProviderABC
from coinspree.providers.email import (EmailProviderABC, ResendProvider,
                                       TemplateStore)

__all__ = [
    "CoinGeckoProvider",
    "EmailProviderABC",
    "MarketProviderABC",
    "ResendProvider",
    "TemplateStore",
]
