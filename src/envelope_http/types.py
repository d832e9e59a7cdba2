"""
Core types for envelope_http.
"""

from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field
from dataclasses import fields
from dataclasses import replace
from typing import TYPE_CHECKING
from typing import Any
from typing import Generic
from typing import Literal
from typing import TypeVar

from .cancellation import CancellationToken

if TYPE_CHECKING:
    import aiohttp

    from .http.logger import HTTPLogger

T = TypeVar("T")

# Type alias for JSON-compatible values (request bodies and decoded payloads)
JsonValue = str | int | float | bool | None | list[Any] | dict[str, Any]

DEFAULT_SUCCESS_CODE = 10000
DEFAULT_TIMEOUT = 10.0


# =============================================================================
# Request configuration
# =============================================================================


@dataclass
class RequestConfig:
    """
    Per-call request configuration.

    Fields left as None are "unset" and are filled in by merging with the
    client-wide defaults and then the library defaults.
    """

    url: str | None = None
    method: str | None = None
    base_url: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    params: Mapping[str, Any] | None = None
    data: Any = None
    timeout: float | None = None
    cancel_token: CancellationToken | None = None

    # Whether failures are reported through handle_global_message
    show_global_message: bool | None = None
    # Business code that marks a successful envelope
    success_code: int | None = None
    # Whether the envelope code is checked at all
    enable_code_check: bool | None = None

    def merged(self, other: "RequestConfig | None") -> "RequestConfig":
        """
        Return a new config where every field set on `other` wins.

        Headers are merged key by key, with `other`'s values winning.
        """
        if other is None:
            return replace(self, headers=dict(self.headers))
        changes: dict[str, Any] = {}
        for f in fields(self):
            if f.name == "headers":
                continue
            value = getattr(other, f.name)
            if value is not None:
                changes[f.name] = value
        return replace(self, headers={**self.headers, **other.headers}, **changes)


DEFAULT_REQUEST_CONFIG = RequestConfig(
    method="GET",
    show_global_message=True,
    success_code=DEFAULT_SUCCESS_CODE,
    enable_code_check=True,
)


# =============================================================================
# Responses
# =============================================================================


@dataclass
class ApiResponse(Generic[T]):
    """The uniform response envelope: {code, message, data}."""

    code: int | None
    message: str
    data: T

    @classmethod
    def from_body(cls, body: Any) -> "ApiResponse[Any]":
        """
        Build an envelope from a decoded response body.

        A body that is not a JSON object has no business code; the body
        itself becomes the envelope's data.
        """
        if not isinstance(body, Mapping):
            return ApiResponse(code=None, message="", data=body)
        return ApiResponse(
            code=body.get("code"),
            message=body.get("message") or "",
            data=body.get("data"),
        )


@dataclass
class HttpResponse:
    """A received HTTP response, as seen by the response interceptors."""

    status: int
    url: str
    headers: dict[str, str]
    data: JsonValue
    config: RequestConfig
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


# =============================================================================
# Handlers and interceptors
# =============================================================================


@dataclass(frozen=True)
class Handlers:
    """
    Process-wide side-effect hooks supplied once at construction.

    All hooks are optional. They may be called concurrently from several
    in-flight requests and must be safe under that.
    """

    # Adjust the config before sending, e.g. to add an Authorization header
    handle_request_header: Callable[[RequestConfig], RequestConfig] | None = None
    # Surface a human-readable message, e.g. as a toast
    handle_global_message: Callable[[str], None] | None = None
    # React to special business codes, e.g. an expired token
    handle_backend_error: Callable[[int | None, str], None] | None = None


# Hooks may return their value directly or as an awaitable
MaybeAwaitable = Any | Awaitable[Any]


@dataclass(frozen=True)
class Interceptors:
    """
    Overrides for the four interceptor hooks.

    An override fully replaces the default logic of its hook. Rejected hooks
    receive the exception: raising rejects the call, returning a value
    resolves it with that value.
    """

    request_on_fulfilled: Callable[[RequestConfig], MaybeAwaitable] | None = None
    request_on_rejected: Callable[[Exception], MaybeAwaitable] | None = None
    response_on_fulfilled: Callable[[HttpResponse], MaybeAwaitable] | None = None
    response_on_rejected: Callable[[Exception], MaybeAwaitable] | None = None


@dataclass
class HttpClientOptions:
    """Everything needed to build an HttpClient."""

    base_url: str
    handlers: Handlers = field(default_factory=Handlers)
    interceptors: Interceptors = field(default_factory=Interceptors)
    request_config: RequestConfig = field(default_factory=RequestConfig)
    timeout: float = DEFAULT_TIMEOUT
    # Externally owned; the client never closes it
    session: "aiohttp.ClientSession | None" = None
    http_logger: "HTTPLogger | None" = None


# =============================================================================
# Streaming
# =============================================================================


@dataclass
class StreamRequestOptions:
    """Options for a single streaming request."""

    url: str
    method: str = "POST"
    base_url: str | None = None  # Defaults to the client base URL
    headers: dict[str, str] = field(default_factory=dict)
    body: JsonValue = None
    cancel_token: CancellationToken | None = None
    # Projection applied to JSON payloads of `data: ` lines
    extract_content: Callable[[Any], str] | None = None


@dataclass
class StreamCallbacks:
    """Callbacks invoked while a stream is consumed. All optional."""

    on_start: Callable[[], None] | None = None
    on_message: Callable[[str, str], None] | None = None  # (chunk, full_text)
    on_complete: Callable[[str], None] | None = None  # (full_text)
    on_error: Callable[[Exception], None] | None = None


@dataclass
class StreamResult:
    """Outcome of a completed stream."""

    full_text: str
    abort: Callable[[], None]


@dataclass
class JsonPayload:
    """A `data: ` payload that parsed as JSON."""

    value: JsonValue
    kind: Literal["json"] = "json"


@dataclass
class TextPayload:
    """A `data: ` payload that is opaque text."""

    text: str
    kind: Literal["text"] = "text"


StreamPayload = JsonPayload | TextPayload
