import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

import httpx

from fleetassist.config import Settings
from fleetassist.errors import PaymentRequiredError, RateLimitError, TransportError

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Rate limits exceeded. Please try again in a moment."
PAYMENT_REQUIRED_MESSAGE = "Payment required. Please add funds to your AI workspace."
FAILURE_MESSAGE = "Failed to communicate with AI service."


class ChatProvider(ABC):
    """Source of raw response bytes for one chat request.

    Implementations raise :class:`~fleetassist.errors.TransportError` (or
    one of its subclasses) for failures before or during the stream.
    """

    endpoint: str = ""

    @abstractmethod
    def stream(
            self,
            messages: list[dict],
            current_route: str = "",
            tools: list[dict] | None = None,
    ) -> AsyncIterator[bytes]:
        ...


def _error_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        error = error.get("message")
    return error if isinstance(error, str) and error else None


def _status_error(response: httpx.Response) -> TransportError:
    status = response.status_code
    message = _error_message(response)
    if status == 429:
        return RateLimitError(message or RATE_LIMIT_MESSAGE, status_code=status)
    if status == 402:
        return PaymentRequiredError(message or PAYMENT_REQUIRED_MESSAGE, status_code=status)
    return TransportError(message or FAILURE_MESSAGE, status_code=status)


class HttpChatProvider(ChatProvider):
    """Streams chat responses from an HTTP endpoint with ``httpx``.

    The request body is ``{"messages": [...], "currentRoute": ...}`` plus
    the tool schemas; the response body is yielded as it arrives.

    Args:
        endpoint: Chat endpoint URL. Falls back to ``FLEETASSIST_CHAT_ENDPOINT``.
        api_key: Bearer token. Falls back to ``FLEETASSIST_API_KEY``.
        timeout: Read timeout in seconds.
        connect_timeout: Connect timeout in seconds.
        client: Shared ``httpx.AsyncClient``; one is created per request
            when omitted.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str | None = None,
        timeout: float = 180.0,
        connect_timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        if not endpoint:
            endpoint = os.getenv("FLEETASSIST_CHAT_ENDPOINT")
        if not endpoint:
            raise ValueError("A chat endpoint is required")
        if not api_key:
            api_key = os.getenv("FLEETASSIST_API_KEY")
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> "HttpChatProvider":
        return cls(
            endpoint=settings.chat_endpoint,
            api_key=settings.api_key,
            timeout=settings.request_timeout,
            connect_timeout=settings.connect_timeout,
            client=client,
        )

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def stream(
            self,
            messages: list[dict],
            current_route: str = "",
            tools: list[dict] | None = None,
    ) -> AsyncIterator[bytes]:
        body: dict = {"messages": messages, "currentRoute": current_route}
        if tools:
            body["tools"] = tools

        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            async with client.stream(
                "POST", self.endpoint, json=body,
                headers=self._headers(), timeout=self.timeout,
            ) as response:
                if not response.is_success:
                    await response.aread()
                    logger.error(f"Chat endpoint returned {response.status_code}")
                    raise _status_error(response)
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as e:
            logger.error(f"Chat request failed: {e}")
            raise TransportError(FAILURE_MESSAGE) from e
        finally:
            if self._client is None:
                await client.aclose()
