"""Abstract base class for market data providers."""
from abc import ABC, abstractmethod

from coinspree.schemas import CryptoAsset


class MarketProviderABC(ABC):
    """Base interface for ranked market data sources.

    Each provider returns normalized CryptoAsset rows for one page of the
    market-cap ranking. Caching and stale fallback live in the service layer.
    """

    @abstractmethod
    async def get_ranked(self, page: int, per_page: int) -> list[CryptoAsset]:
        """Fetch one page of assets ranked by market cap.

        Args:
            page: 1-based page number.
            per_page: Rows per page.

        Returns:
            Assets in rank order.

        Raises:
            UpstreamDataError: The API answered with a non-success status.
            NetworkError: The request could not be completed.
        """

    async def close(self) -> None:
        """Clean up resources (connections, clients).

        Override in subclasses if cleanup is needed.
        """

    async def __aenter__(self) -> "MarketProviderABC":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        """Async context manager exit - calls close()."""
        await self.close()
