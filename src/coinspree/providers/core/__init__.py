"""Core provider abstractions."""
from coinspree.providers.core.error_mapper import ErrorMapper
from coinspree.providers.core.exceptions import (CoinSpreeError, NetworkError,
                                                 ProviderSendError,
                                                 StorageError,
                                                 StorageReadError,
                                                 StorageWriteError,
                                                 UpstreamDataError)
from coinspree.providers.core.market_provider_abc import MarketProviderABC
from coinspree.providers.core.utils import round2

__all__ = [
    "CoinSpreeError",
    "ErrorMapper",
    "MarketProviderABC",
    "NetworkError",
    "ProviderSendError",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
    "UpstreamDataError",
    "round2",
]
