"""
Async HTTP client with interceptors and a uniform response envelope, using aiohttp.
"""

import asyncio
import inspect
import json
import logging
import uuid
from dataclasses import replace
from typing import TYPE_CHECKING
from typing import Any

import aiohttp

from ..exceptions import BusinessError
from ..exceptions import RequestCancelledError
from ..exceptions import RequestError
from ..messages import business_error_message
from ..messages import resolve_error_message
from ..stream import StreamConsumer
from ..types import DEFAULT_REQUEST_CONFIG
from ..types import DEFAULT_TIMEOUT
from ..types import ApiResponse
from ..types import Handlers
from ..types import HttpClientOptions
from ..types import HttpResponse
from ..types import Interceptors
from ..types import JsonValue
from ..types import RequestConfig
from ..types import StreamCallbacks
from ..types import StreamRequestOptions
from ..types import StreamResult
from ..urls import build_url

if TYPE_CHECKING:
    from .logger import HTTPLogger

logger = logging.getLogger(__name__)


async def _resolve(value: Any) -> Any:
    """Await hook results that are awaitable; pass plain values through."""
    if inspect.isawaitable(value):
        return await value
    return value


def _decode_body(raw: bytes) -> JsonValue:
    text = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


class HttpClient:
    """
    HTTP client that runs every call through a request and a response interceptor.

    The default interceptors merge library defaults into the request config,
    let a header handler adjust it, check the business code of the response
    envelope and resolve with the envelope's `data`. Transport failures are
    mapped to fixed human-readable messages.

    Example:
        client = HttpClient(
            "https://api.example.com",
            handlers=Handlers(
                handle_request_header=add_token,
                handle_global_message=lambda message: print(f"[toast] {message}"),
            ),
        )
        async with client:
            user = await client.get("/users/1")
    """

    def __init__(
        self,
        base_url: str,
        *,
        handlers: Handlers | None = None,
        interceptors: Interceptors | None = None,
        request_config: RequestConfig | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: aiohttp.ClientSession | None = None,
        http_logger: "HTTPLogger | None" = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Base URL prepended to relative request URLs
            handlers: Side-effect hooks (header injection, global message, backend error)
            interceptors: Overrides for the default interceptor hooks
            request_config: Client-wide request defaults; per-call values win
            timeout: Default request timeout in seconds
            session: Optional externally owned aiohttp session. It is not
                     closed by close().
            http_logger: Optional traffic logger
        """
        self.base_url = base_url
        self.handlers = handlers or Handlers()
        self.interceptors = interceptors or Interceptors()
        self._defaults = RequestConfig(base_url=base_url, timeout=timeout).merged(request_config)
        self._session = session
        self._owns_session = session is None
        self._http_logger = http_logger

        # An override replaces the default hook entirely
        self._request_on_fulfilled = self.interceptors.request_on_fulfilled or self._default_request_on_fulfilled
        self._request_on_rejected = self.interceptors.request_on_rejected or self._default_request_on_rejected
        self._response_on_fulfilled = self.interceptors.response_on_fulfilled or self._default_response_on_fulfilled
        self._response_on_rejected = self.interceptors.response_on_rejected or self._default_response_on_rejected

    @classmethod
    def from_options(cls, options: HttpClientOptions) -> "HttpClient":
        """Create a client from an options object."""
        return cls(
            options.base_url,
            handlers=options.handlers,
            interceptors=options.interceptors,
            request_config=options.request_config,
            timeout=options.timeout,
            session=options.session,
            http_logger=options.http_logger,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or (self._owns_session and self._session.closed):
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    # ---- Default interceptors ----

    def _default_request_on_fulfilled(self, config: RequestConfig) -> RequestConfig:
        config = DEFAULT_REQUEST_CONFIG.merged(config)
        if self.handlers.handle_request_header:
            config = self.handlers.handle_request_header(config)
        return config

    def _default_request_on_rejected(self, error: Exception) -> Any:
        raise error

    def _default_response_on_fulfilled(self, response: HttpResponse) -> Any:
        config = response.config
        envelope = ApiResponse.from_body(response.data)
        is_success = config.success_code == envelope.code if config.enable_code_check else True
        if is_success:
            return envelope.data

        logger.warning(f"Business error from {response.url}: code={envelope.code} message={envelope.message!r}")
        if self.handlers.handle_backend_error:
            self.handlers.handle_backend_error(envelope.code, envelope.message)
        elif config.show_global_message and self.handlers.handle_global_message:
            self.handlers.handle_global_message(business_error_message(envelope.code, envelope.message))
        raise BusinessError(envelope)

    def _default_response_on_rejected(self, error: Exception) -> Any:
        message = resolve_error_message(error)
        config: RequestConfig | None = getattr(error, "config", None)
        logger.warning(f"HTTP request failed: {message} ({error})")
        if config is not None and config.show_global_message and self.handlers.handle_global_message:
            self.handlers.handle_global_message(message)
        if isinstance(error, RequestError):
            error.message = message
            error.args = (message,)
        raise error

    # ---- Transport ----

    async def _send(self, config: RequestConfig, request_id: str) -> HttpResponse:
        """
        Send one request and read its body.

        Raises:
            RequestError: For every failure; non-2xx responses carry the response
        """
        method = (config.method or "GET").upper()
        url = build_url(config.base_url, config.url)

        if self._http_logger:
            self._http_logger.log_request(method, url, config.headers, config.data, request_id)
        logger.debug(f"HTTP request: {method} {url}")

        try:
            session = await self._get_session()
            exchange = self._exchange(session, method, url, config, request_id)
            if config.cancel_token is not None:
                return await config.cancel_token.guard(exchange)
            return await exchange
        except RequestCancelledError as e:
            e.config = config
            raise
        except RequestError:
            raise
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            raise RequestError(str(e) or type(e).__name__, config=config, request_sent=True) from e
        except Exception as e:
            raise RequestError(f"{type(e).__name__}: {e}", config=config) from e

    async def _exchange(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        config: RequestConfig,
        request_id: str,
    ) -> HttpResponse:
        kwargs: dict[str, Any] = {"headers": config.headers or None, "params": config.params}
        if isinstance(config.data, (bytes, str)):
            kwargs["data"] = config.data
        elif config.data is not None:
            kwargs["json"] = config.data
        if config.timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=config.timeout)

        async with session.request(method, url, **kwargs) as resp:
            data = _decode_body(await resp.read())
            response = HttpResponse(
                status=resp.status,
                url=str(resp.url),
                headers=dict(resp.headers),
                data=data,
                config=config,
                reason=resp.reason,
            )

        if self._http_logger:
            self._http_logger.log_response(url, response.status, data, request_id)
        logger.debug(f"HTTP response: {response.status} {url}")

        if not response.ok:
            raise RequestError(
                f"Request failed with status code {response.status}",
                config=config,
                response=response,
                request_sent=True,
            )
        return response

    # ---- Public API ----

    async def request(self, config: RequestConfig) -> Any:
        """
        Send a request through the interceptor chain.

        Args:
            config: Per-call configuration; set fields win over client defaults

        Returns:
            The envelope's `data` with the default response interceptor, or
            whatever an overriding interceptor returns

        Raises:
            BusinessError: If the envelope code is not the success code
            RequestError: If the request failed at the transport level
        """
        config = self._defaults.merged(config)
        try:
            config = await _resolve(self._request_on_fulfilled(config))
        except Exception as e:
            return await _resolve(self._request_on_rejected(e))

        request_id = uuid.uuid4().hex[:12]
        try:
            response = await self._send(config, request_id)
        except RequestError as e:
            if self._http_logger:
                self._http_logger.log_error(build_url(config.base_url, config.url), str(e), request_id)
            return await _resolve(self._response_on_rejected(e))
        return await _resolve(self._response_on_fulfilled(response))

    async def get(self, url: str, params: dict[str, Any] | None = None, config: RequestConfig | None = None) -> Any:
        """GET request."""
        return await self.request(replace(config or RequestConfig(), url=url, method="GET", params=params))

    async def post(self, url: str, data: Any = None, config: RequestConfig | None = None) -> Any:
        """POST request with a JSON body."""
        return await self.request(replace(config or RequestConfig(), url=url, method="POST", data=data))

    async def put(self, url: str, data: Any = None, config: RequestConfig | None = None) -> Any:
        """PUT request with a JSON body."""
        return await self.request(replace(config or RequestConfig(), url=url, method="PUT", data=data))

    async def delete(self, url: str, params: dict[str, Any] | None = None, config: RequestConfig | None = None) -> Any:
        """DELETE request."""
        return await self.request(replace(config or RequestConfig(), url=url, method="DELETE", params=params))

    def stream_consumer(
        self,
        options: StreamRequestOptions,
        callbacks: StreamCallbacks | None = None,
    ) -> StreamConsumer:
        """
        Create a consumer for one streaming request without starting it.

        Use this instead of stream() when the stream must be abortable while
        it is in flight.
        """
        return StreamConsumer(
            self._get_session,
            options,
            callbacks,
            base_url=self.base_url,
            http_logger=self._http_logger,
        )

    async def stream(
        self,
        options: StreamRequestOptions,
        callbacks: StreamCallbacks | None = None,
    ) -> StreamResult:
        """
        Issue a streaming request and consume it to the end.

        Streaming requests bypass the interceptor chain.

        Args:
            options: What to request and how to project JSON payloads
            callbacks: Optional lifecycle callbacks

        Returns:
            The accumulated text and the abort handle

        Raises:
            StreamError: If the status is not 2xx or the body is unreadable
            RequestCancelledError: If the stream was cancelled
        """
        return await self.stream_consumer(options, callbacks).run()

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<HttpClient base_url={self.base_url!r} timeout={self._defaults.timeout}>"
