"""
envelope_http - aiohttp wrapper for APIs that answer with a uniform envelope.

Every JSON response is expected to look like {"code": ..., "message": ...,
"data": ...}. The client checks the business code, resolves calls with
`data`, and turns failures into exceptions plus optional UI-facing messages.

Key features:
- Request/response interceptors with per-hook overrides
- Header injection, global message and backend error handlers
- Fixed human-readable messages for transport failures
- Consumption of SSE-style streaming responses with callbacks
- Cooperative cancellation through CancellationToken
- Optional file-based traffic log

Example:
    from envelope_http import Handlers, HttpClient, StreamCallbacks, StreamRequestOptions

    def add_token(config):
        config.headers["Authorization"] = "Bearer <token>"
        return config

    client = HttpClient(
        "https://api.example.com",
        handlers=Handlers(
            handle_request_header=add_token,
            handle_global_message=lambda message: print(f"[toast] {message}"),
        ),
    )

    async with client:
        user = await client.get("/users/1")

        result = await client.stream(
            StreamRequestOptions(
                url="/chat",
                body={"prompt": "Hello"},
                extract_content=lambda chunk: chunk["choices"][0]["delta"].get("content", ""),
            ),
            StreamCallbacks(on_message=lambda chunk, text: print(chunk, end="", flush=True)),
        )
        print(result.full_text)
"""

from .cancellation import CancellationToken
from .exceptions import BusinessError
from .exceptions import EnvelopeHTTPError
from .exceptions import RequestCancelledError
from .exceptions import RequestError
from .exceptions import StreamError
from .http import FileHTTPLogger
from .http import HttpClient
from .http import HTTPLogger
from .messages import ErrorKind
from .messages import classify_error
from .messages import resolve_error_message
from .messages import status_message
from .stream import StreamConsumer
from .types import DEFAULT_SUCCESS_CODE
from .types import ApiResponse
from .types import Handlers
from .types import HttpClientOptions
from .types import HttpResponse
from .types import Interceptors
from .types import JsonPayload
from .types import RequestConfig
from .types import StreamCallbacks
from .types import StreamRequestOptions
from .types import StreamResult
from .types import TextPayload

__all__ = [
    "DEFAULT_SUCCESS_CODE",
    "ApiResponse",
    "BusinessError",
    "CancellationToken",
    "EnvelopeHTTPError",
    "ErrorKind",
    "FileHTTPLogger",
    "HTTPLogger",
    "Handlers",
    "HttpClient",
    "HttpClientOptions",
    "HttpResponse",
    "Interceptors",
    "JsonPayload",
    "RequestCancelledError",
    "RequestConfig",
    "RequestError",
    "StreamCallbacks",
    "StreamConsumer",
    "StreamError",
    "StreamRequestOptions",
    "StreamResult",
    "TextPayload",
    "classify_error",
    "resolve_error_message",
    "status_message",
]

__version__ = "0.1.0"
