"""Exception hierarchy for bluelink.

Resolution itself never raises for a single bad link: the resolver turns
these into inline ``(Error: ...)`` markers. They surface to callers only from
the collaborators (client, executor, media) and from top-level flows.

The LLM taxonomy mirrors the error vocabulary providers share, so callers can
catch "rate limit" or "auth failure" without endpoint-specific knowledge.
Clients use ``raise X(...) from native_error`` so the original exception is
available via ``__cause__``.
"""

from __future__ import annotations


class BlueLinkError(Exception):
    """Base exception for all bluelink errors."""


class TranscriptError(BlueLinkError):
    """Markdown could not be interpreted as a chat transcript."""


class MediaDecodeError(BlueLinkError):
    """Binary media could not be decoded or transcoded."""


class CircularDependencyError(BlueLinkError):
    """Resolving a file would wait on itself.

    Attributes:
        file_path: Vault path that closes the cycle.
    """

    def __init__(self, file_path: str) -> None:
        super().__init__(f"Circular dependency: {file_path}")
        self.file_path = file_path


class ChatExecutionError(BlueLinkError):
    """A pending chat could not be executed.

    Attributes:
        file_path: Vault path of the chat that failed.
    """

    def __init__(self, message: str, *, file_path: str | None = None) -> None:
        super().__init__(message)
        self.file_path = file_path


class LLMError(BlueLinkError):
    """Base for all chat endpoint errors.

    Attributes:
        provider: Name of the endpoint that raised the error (e.g. "OpenAI").
        status_code: HTTP status code from the endpoint, if available.
        retryable: Whether the caller should consider retrying the request.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable

    def __repr__(self) -> str:
        parts = [repr(str(self))]
        if self.provider is not None:
            parts.append(f"provider={self.provider!r}")
        if self.status_code is not None:
            parts.append(f"status_code={self.status_code!r}")
        if self.retryable:
            parts.append("retryable=True")
        return f"{type(self).__name__}({', '.join(parts)})"


class RateLimitError(LLMError):
    """Endpoint rate limit exceeded (HTTP 429).

    Attributes:
        retry_after: Seconds to wait before retrying, parsed from the
            ``Retry-After`` header when available.
    """

    def __init__(
        self,
        message: str,
        *,
        retry_after: float | None = None,
        provider: str | None = None,
        status_code: int | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, provider=provider, status_code=status_code, retryable=retryable)
        self.retry_after = retry_after


class AuthenticationError(LLMError):
    """Invalid or missing API credentials (HTTP 401/403)."""


class ContextLengthError(LLMError):
    """Request exceeds the model's context window (HTTP 413)."""


class InvalidRequestError(LLMError):
    """Malformed request rejected by the endpoint (HTTP 400/404/422)."""


class ProviderUnavailableError(LLMError):
    """Endpoint unavailable (HTTP 5xx, network error, DNS failure).

    Retryable by default.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, provider=provider, status_code=status_code, retryable=retryable)


class LLMTimeoutError(LLMError):
    """Request to the endpoint timed out."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, provider=provider, status_code=status_code, retryable=retryable)
