"""Email transport: provider interface and the Resend REST implementation."""
import logging
from abc import ABC, abstractmethod

import httpx

from coinspree.providers.core.exceptions import ProviderSendError
from coinspree.schemas.emails import OutgoingEmail

logger = logging.getLogger(__name__)


class EmailProviderABC(ABC):
    """Sends one fully rendered message."""

    @abstractmethod
    async def send(self, message: OutgoingEmail) -> str:
        """Send a message and return the provider's message id.

        Raises:
            ProviderSendError: The provider rejected the message or was unreachable.
        """

    async def close(self) -> None:
        """Release transport resources."""


class ResendProvider(EmailProviderABC):
    """Email provider backed by the Resend HTTP API (POST /emails)."""

    BASE_URL = "https://api.resend.com"

    def __init__(
        self,
        api_key: str | None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL, headers=headers, timeout=timeout, transport=transport
        )

    async def send(self, message: OutgoingEmail) -> str:
        if not self._api_key:
            raise ProviderSendError("Email service not configured")

        payload = {
            "from": message.from_address,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
            "tags": message.tags,
        }
        if message.reply_to:
            payload["reply_to"] = message.reply_to

        try:
            response = await self._client.post("/emails", json=payload)
        except httpx.TransportError as exc:
            raise ProviderSendError(f"Email provider unreachable: {exc!r}") from exc

        body = _json_or_empty(response)
        if response.is_error or "error" in body:
            raise ProviderSendError(_error_message(response.status_code, body), response.status_code)

        message_id = body.get("id")
        if not message_id:
            raise ProviderSendError("Email provider returned no message id", response.status_code)
        return message_id

    async def close(self) -> None:
        await self._client.aclose()


def _json_or_empty(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error_message(status: int, body: dict) -> str:
    """Pull a readable message out of the provider's error shapes."""
    error = body.get("error", body)
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        for key in ("message", "error"):
            if isinstance(error.get(key), str):
                return error[key]
    return f"Email API Error {status}"
