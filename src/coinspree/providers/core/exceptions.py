"""Typed errors raised by providers and storage."""


class CoinSpreeError(Exception):
    """Base class for all pipeline errors."""


class UpstreamDataError(CoinSpreeError):
    """Market data API answered with a non-success status."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"Upstream error {status}: {message}")
        self.status = status
        self.message = message


class NetworkError(CoinSpreeError):
    """Connection, DNS or timeout failure while talking to an upstream API."""


class StorageError(CoinSpreeError):
    """KV store operation failed."""


class StorageReadError(StorageError):
    """KV store read failed."""


class StorageWriteError(StorageError):
    """KV store write failed."""


class ProviderSendError(CoinSpreeError):
    """Email provider rejected or failed to accept a message."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
