"""
Custom exceptions for envelope_http.
"""

from typing import TYPE_CHECKING
from typing import Any

if TYPE_CHECKING:
    from .types import ApiResponse
    from .types import HttpResponse
    from .types import RequestConfig


class EnvelopeHTTPError(Exception):
    """Base exception for all envelope_http errors."""

    pass


class RequestError(EnvelopeHTTPError):
    """
    Raised when a request fails at the transport level.

    Covers non-2xx responses, network failures and anything else that goes
    wrong between sending the request and receiving its body. The response
    rejected hook assigns a human-readable `message` before re-raising.

    Attributes:
        message: Human-readable description of the failure.
        config: The request configuration that produced the error.
        response: The HTTP response, if the server answered.
        request_sent: Whether the request left the client.
    """

    def __init__(
        self,
        message: str,
        *,
        config: "RequestConfig | None" = None,
        response: "HttpResponse | None" = None,
        request_sent: bool = False,
    ):
        self.message = message
        self.config = config
        self.response = response
        self.request_sent = request_sent
        super().__init__(message)

    @property
    def status(self) -> int | None:
        """HTTP status of the response, if any."""
        return self.response.status if self.response is not None else None

    def __str__(self) -> str:
        return self.message


class RequestCancelledError(RequestError):
    """Raised when a request or stream is cancelled through its token."""

    def __init__(self, message: str = "request cancelled", *, config: "RequestConfig | None" = None):
        super().__init__(message, config=config)


class BusinessError(EnvelopeHTTPError):
    """
    Raised when the server answered but the envelope code is not the
    expected success code.

    Attributes:
        envelope: The full response envelope.
        code: Business code returned by the server.
        message: Message returned by the server (may be empty).
        data: The envelope payload.
    """

    def __init__(self, envelope: "ApiResponse[Any]"):
        self.envelope = envelope
        self.code = envelope.code
        self.message = envelope.message
        self.data = envelope.data
        super().__init__(envelope.message or f"Request failed, business code: {envelope.code}")


class StreamError(EnvelopeHTTPError):
    """Streaming request error with status code, URI, and response body."""

    def __init__(self, message: str, status: int | None = None, body: str | None = None, uri: str | None = None):
        self.status = status
        self.body = body
        self.uri = uri
        if status is not None:
            message = f"HTTP {status}: {message}"
        if uri:
            message = f"{message} (uri={uri})"
        super().__init__(message)
