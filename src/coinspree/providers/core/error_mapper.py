"""Domain concept for mapping pipeline exceptions to HTTP responses."""
import asyncio
from dataclasses import dataclass

from fastapi import HTTPException

from coinspree.providers.core.exceptions import (NetworkError,
                                                 ProviderSendError,
                                                 StorageError,
                                                 UpstreamDataError)


@dataclass(frozen=True)
class ErrorMapper:
    """Maps provider/storage exceptions to HTTP (status_code, detail).

    Used by the trigger routes so a failing tick surfaces a meaningful status
    to the scheduler instead of a bare 500.
    """

    api_name: str = "CoinGecko"

    def to_http(self, exc: Exception, item: str | None = None) -> tuple[int, str]:
        """Map a pipeline exception to (status_code, detail).

        Args:
            exc: The exception raised by a provider, store or service.
            item: Optional identifier to include in detail (e.g. a job id).

        Returns:
            (status_code, detail) suitable for HTTPException.
        """
        if isinstance(exc, UpstreamDataError):
            if exc.status == 429:
                return (429, f"{self.api_name} rate limit exceeded")
            return (502, f"{self.api_name} error ({exc.status})")
        if isinstance(exc, (NetworkError, asyncio.TimeoutError, TimeoutError)):
            return (504, f"Request to {self.api_name} timed out")
        if isinstance(exc, StorageError):
            return (503, "Storage unavailable")
        if isinstance(exc, ProviderSendError):
            return (502, "Email provider error")
        if isinstance(exc, (KeyError, LookupError)):
            detail = "Not found" if item is None else f"'{item}' not found"
            return (404, detail)
        return (500, "Internal server error")

    def raise_http(self, exc: Exception, item: str | None = None) -> None:
        """Map exception to HTTP and raise HTTPException. Never returns."""
        status_code, detail = self.to_http(exc, item=item)
        raise HTTPException(status_code=status_code, detail=detail) from exc
