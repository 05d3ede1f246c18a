"""OpenAI-compatible chat completions client.

Talks to any endpoint exposing ``POST {base_url}/chat/completions`` (OpenAI,
local servers, Anthropic's compatibility layer). HTTP and network failures
are translated into the ``bluelink.exceptions`` LLM taxonomy with the httpx
error chained as ``__cause__``.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Sequence
from typing import Any

import httpx

from bluelink.config import EndpointConfig
from bluelink.exceptions import AuthenticationError
from bluelink.exceptions import ContextLengthError
from bluelink.exceptions import InvalidRequestError
from bluelink.exceptions import LLMError
from bluelink.exceptions import LLMTimeoutError
from bluelink.exceptions import ProviderUnavailableError
from bluelink.exceptions import RateLimitError
from bluelink.models import RequestMessage

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


def _retry_after(headers: httpx.Headers) -> float | None:
    if retry_after := headers.get("retry-after"):
        try:
            return float(retry_after)
        except (ValueError, TypeError):
            pass
    return None


def _error_message(response: httpx.Response) -> str:
    """Best-effort error text from an endpoint's JSON error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str):
        return error
    return response.text.strip() or response.reason_phrase


class ChatCompletionsClient:
    """Client for one configured endpoint.

    Args:
        endpoint: Endpoint settings.
        http_client: Shared client to send requests with; one is created
            (and owned) when omitted.
        max_retries: Extra attempts for retryable failures.
        max_retry_delay: Upper bound in seconds for a single backoff wait.
    """

    def __init__(
        self,
        endpoint: EndpointConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        *,
        max_retries: int = 2,
        max_retry_delay: float = 30.0,
    ) -> None:
        self.endpoint = endpoint or EndpointConfig()
        self._client = http_client
        self._owns_client = http_client is None
        self.max_retries = max_retries
        self.max_retry_delay = max_retry_delay

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.endpoint.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> ChatCompletionsClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def headers(self) -> dict[str, str]:
        api_key = self.endpoint.resolved_api_key() or ""
        if "api.anthropic.com" in self.endpoint.base_url:
            return {
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            }
        return {
            "Authorization": f"Bearer {api_key}",
            "content-type": "application/json",
        }

    def build_payload(
        self,
        messages: Sequence[RequestMessage],
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        return {
            "model": model or self.endpoint.model,
            "max_tokens": max_tokens or self.endpoint.max_tokens,
            "messages": [message.to_request_dict() for message in messages],
        }

    async def complete(
        self,
        messages: Sequence[RequestMessage],
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Send a chat request and return the assistant's text.

        Args:
            messages: Resolved request messages, in order.
            model: Model override; defaults to the endpoint's model.
            max_tokens: Token limit override.

        Returns:
            The content of the first choice's message.

        Raises:
            LLMError: Or one of its subclasses, after retries are exhausted.
        """
        payload = self.build_payload(messages, model, max_tokens)
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._send(payload)
            except LLMError as e:
                if not e.retryable or attempt > self.max_retries:
                    raise
                retry_after = getattr(e, "retry_after", None)
                if retry_after is not None and retry_after > self.max_retry_delay:
                    raise
                delay = self._calculate_retry_delay(retry_after, attempt)
                logger.warning(
                    f"Transient error from {self.endpoint.name} (attempt {attempt}/{self.max_retries + 1}, "
                    f"{type(e).__name__}). Waiting {delay:.1f}s before retry..."
                )
                await asyncio.sleep(delay)

    def _calculate_retry_delay(self, retry_after: float | None, attempt: int) -> float:
        """Honour ``Retry-After`` when present, else exponential backoff with jitter."""
        if retry_after is not None and retry_after > 0:
            return min(retry_after, self.max_retry_delay)
        delay = min(2 ** (attempt - 1), self.max_retry_delay)
        return delay * (0.5 + random.random() / 2)

    async def _send(self, payload: dict[str, Any]) -> str:
        url = f"{self.endpoint.base_url.rstrip('/')}/chat/completions"
        provider = self.endpoint.name
        logger.debug(f"POST {url} model={payload['model']} messages={len(payload['messages'])}")
        try:
            response = await self.client.post(url, json=payload, headers=self.headers())
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(f"Request timed out after {self.endpoint.timeout}s", provider=provider) from e
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(str(e) or type(e).__name__, provider=provider) from e

        if response.is_error:
            self._raise_for_status(response)

        try:
            data = response.json()
        except ValueError as e:
            raise LLMError("Invalid API response: body is not JSON", provider=provider) from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            raise LLMError("Invalid API response structure: Missing choices", provider=provider)
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            raise LLMError("Invalid API response structure: Missing message", provider=provider)
        return message.get("content") or ""

    def _raise_for_status(self, response: httpx.Response) -> None:
        provider = self.endpoint.name
        status = response.status_code
        message = f"{provider} request failed ({status}): {_error_message(response)}"
        cause = httpx.HTTPStatusError(message, request=response.request, response=response)

        if status in (401, 403):
            raise AuthenticationError(message, provider=provider, status_code=status) from cause
        if status == 429:
            raise RateLimitError(
                message,
                provider=provider,
                status_code=status,
                retry_after=_retry_after(response.headers),
            ) from cause
        if status == 413:
            raise ContextLengthError(message, provider=provider, status_code=status) from cause
        if status in (400, 404, 422):
            lowered = message.lower()
            if "context length" in lowered or "too many tokens" in lowered:
                raise ContextLengthError(message, provider=provider, status_code=status) from cause
            raise InvalidRequestError(message, provider=provider, status_code=status) from cause
        if status >= 500:
            raise ProviderUnavailableError(message, provider=provider, status_code=status) from cause
        raise LLMError(message, provider=provider, status_code=status) from cause
