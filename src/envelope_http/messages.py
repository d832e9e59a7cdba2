"""
Human-readable messages for failed requests.

The mapping is fixed and not configurable.
"""

from enum import Enum
from typing import cast

from .exceptions import RequestCancelledError
from .exceptions import RequestError

MESSAGE_CANCELLED = "request cancelled"
MESSAGE_UNAUTHORIZED = "unauthorized, please re-login"
MESSAGE_FORBIDDEN = "access denied"
MESSAGE_NOT_FOUND = "resource not found: {url}"
MESSAGE_SERVER_ERROR = "internal server error"
MESSAGE_HTTP_ERROR = "HTTP error: {status}"
MESSAGE_NETWORK_ERROR = "network error, unable to reach server"
MESSAGE_UNKNOWN_ERROR = "unknown error"

BUSINESS_ERROR_MESSAGE = "Request failed, business code: {code}"


class ErrorKind(Enum):
    """Classes of transport failure."""

    CANCELLED = "cancelled"
    HTTP_STATUS = "http_status"  # The server answered with a non-2xx status
    NETWORK = "network"  # The request was sent but nothing came back
    UNKNOWN = "unknown"


def classify_error(error: BaseException) -> ErrorKind:
    if isinstance(error, RequestCancelledError):
        return ErrorKind.CANCELLED
    if isinstance(error, RequestError):
        if error.response is not None:
            return ErrorKind.HTTP_STATUS
        if error.request_sent:
            return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


def status_message(status: int, url: str | None = None) -> str:
    """Message for a non-2xx HTTP status."""
    if status == 401:
        return MESSAGE_UNAUTHORIZED
    if status == 403:
        return MESSAGE_FORBIDDEN
    if status == 404:
        return MESSAGE_NOT_FOUND.format(url=url or "")
    if status == 500:
        return MESSAGE_SERVER_ERROR
    return MESSAGE_HTTP_ERROR.format(status=status)


def resolve_error_message(error: BaseException) -> str:
    """
    Resolve the user-facing message for a failed request.

    Args:
        error: The exception raised while sending the request

    Returns:
        One of the fixed messages of this module
    """
    kind = classify_error(error)
    if kind is ErrorKind.CANCELLED:
        return MESSAGE_CANCELLED
    if kind is ErrorKind.HTTP_STATUS:
        response = cast(RequestError, error).response
        if response is not None:
            return status_message(response.status, response.config.url)
    if kind is ErrorKind.NETWORK:
        return MESSAGE_NETWORK_ERROR
    return MESSAGE_UNKNOWN_ERROR


def business_error_message(code: int | None, message: str | None) -> str:
    return message or BUSINESS_ERROR_MESSAGE.format(code=code)
