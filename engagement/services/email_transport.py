"""
Outbound email transport.

ResendTransport talks to the Resend HTTP API; LoggingTransport only logs and
is what local development runs without an API key. Both return a SendResult
rather than raising, so a provider failure stays a per-recipient outcome.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from engagement.config import settings
from engagement.errors import TransportFailure
from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

RESEND_API_BASE_URL = "https://api.resend.com"

REQUEST_TIMEOUT = 15  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 1
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


@dataclass(slots=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class SendResult:
    success: bool
    external_id: str | None = None
    error: str | None = None


class EmailTransport(Protocol):
    async def send(self, message: EmailMessage) -> SendResult: ...

    async def close(self) -> None: ...


class ResendTransport:
    """Resend API client with bounded retry on throttling and server errors."""

    def __init__(
        self,
        api_key: str,
        sender: str | None = None,
        client: httpx.AsyncClient | None = None,
        backoff_factor: float = BACKOFF_FACTOR,
    ):
        self._api_key = api_key
        self._sender = sender or settings.EMAIL_FROM
        self._client = client or self._create_client()
        self._backoff_factor = backoff_factor

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(base_url=RESEND_API_BASE_URL, timeout=timeout, limits=limits)

    async def close(self) -> None:
        await self._client.aclose()

    def _payload(self, message: EmailMessage) -> dict:
        payload = {
            "from": self._sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        if message.tags:
            payload["tags"] = [{"name": k, "value": v} for k, v in message.tags.items()]
        return payload

    async def _post(self, message: EmailMessage) -> str | None:
        """
        One delivery attempt.

        Returns:
            The provider message id

        Raises:
            TransportFailure: recoverable for throttling, server and network errors
        """
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = await self._client.post("/emails", json=self._payload(message), headers=headers)
        except httpx.RequestError as e:
            raise TransportFailure(f"request error: {e}", operation="send_email", recoverable=True) from e

        if response.is_success:
            try:
                body = response.json()
            except ValueError:
                logger.warning("Resend accepted message without a JSON body", status=response.status_code)
                return None
            return body.get("id") if isinstance(body, dict) else None
        raise TransportFailure(
            f"HTTP {response.status_code}: {response.text[:200]}",
            operation="send_email",
            recoverable=response.status_code in RETRY_STATUS_CODES,
        )

    async def send(self, message: EmailMessage) -> SendResult:
        last_error: TransportFailure | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                return SendResult(success=True, external_id=await self._post(message))
            except TransportFailure as e:
                last_error = e
                logger.debug("Resend attempt failed", attempt=attempt, error=str(e))
                if not e.recoverable or attempt == MAX_RETRIES:
                    break
            await asyncio.sleep(self._backoff_factor * (2 ** (attempt - 1)))

        logger.warning("Email send failed", subject=message.subject, error=str(last_error))
        return SendResult(success=False, error=str(last_error))


class LoggingTransport:
    """Development transport: logs what would have been sent."""

    async def send(self, message: EmailMessage) -> SendResult:
        external_id = f"dev-{uuid.uuid4()}"
        logger.info("Email not sent (no provider configured)", subject=message.subject, external_id=external_id)
        return SendResult(success=True, external_id=external_id)

    async def close(self) -> None:
        return None


def build_transport() -> EmailTransport:
    if settings.RESEND_API_KEY:
        return ResendTransport(settings.RESEND_API_KEY)
    if settings.is_production:
        raise RuntimeError("RESEND_API_KEY must be set in production")
    logger.warning("RESEND_API_KEY not set, using logging email transport")
    return LoggingTransport()


_transport: EmailTransport | None = None


def get_transport() -> EmailTransport:
    global _transport
    if _transport is None:
        _transport = build_transport()
    return _transport


async def close_transport() -> None:
    global _transport
    if _transport is not None:
        await _transport.close()
        _transport = None
