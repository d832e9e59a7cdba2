"""
Consumer for server-sent-event style streaming responses.

A stream body is read chunk by chunk, decoded incrementally as UTF-8 and
split into lines. Lines prefixed with `data: ` carry a payload that is
either the `[DONE]` sentinel, a JSON value or opaque text; any other
non-blank line is plain streamed text.
"""

import codecs
import json
import logging
import uuid
from collections.abc import Awaitable
from collections.abc import Callable
from typing import TYPE_CHECKING

import aiohttp
from multidict import CIMultiDict

from .cancellation import CancellationToken
from .exceptions import StreamError
from .urls import build_url
from .types import JsonPayload
from .types import JsonValue
from .types import StreamCallbacks
from .types import StreamPayload
from .types import StreamRequestOptions
from .types import StreamResult
from .types import TextPayload

if TYPE_CHECKING:
    from .http.logger import HTTPLogger

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

DEFAULT_STREAM_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "text/event-stream",
}

# Success statuses whose responses never carry a body
NULL_BODY_STATUSES = frozenset({204, 205})

SessionProvider = Callable[[], Awaitable[aiohttp.ClientSession]]


def parse_payload(raw: str) -> StreamPayload:
    """Parse a `data: ` payload as JSON, falling back to plain text."""
    try:
        return JsonPayload(json.loads(raw))
    except json.JSONDecodeError:
        return TextPayload(raw)


def stringify(value: JsonValue) -> str:
    """String form of a decoded JSON value; null becomes empty."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


class StreamConsumer:
    """
    Consumes a single streaming HTTP response.

    Each consumer owns its accumulated text, its decoder state and its
    cancellation token, so one consumer serves exactly one call.

    Example:
        consumer = client.stream_consumer(
            StreamRequestOptions(url="/chat", body={"prompt": "hi"}),
            StreamCallbacks(on_message=lambda chunk, text: print(chunk, end="")),
        )
        task = asyncio.create_task(consumer.run())
        ...
        consumer.abort()  # the pending read raises RequestCancelledError
    """

    def __init__(
        self,
        session_provider: SessionProvider,
        options: StreamRequestOptions,
        callbacks: StreamCallbacks | None = None,
        *,
        base_url: str = "",
        http_logger: "HTTPLogger | None" = None,
    ):
        """
        Initialize the consumer.

        Args:
            session_provider: Coroutine function returning the aiohttp session to use
            options: What to request and how to project JSON payloads
            callbacks: Optional lifecycle callbacks
            base_url: Base URL used when options.base_url is not set
            http_logger: Optional traffic logger
        """
        self.options = options
        self.callbacks = callbacks or StreamCallbacks()
        self.full_text = ""
        # An external token cancels this one too, but abort() never touches it
        self.token = CancellationToken(parent=options.cancel_token)
        self.url = build_url(options.base_url if options.base_url is not None else base_url, options.url)
        self._session_provider = session_provider
        self._http_logger = http_logger
        self._request_id = uuid.uuid4().hex[:12]
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._tail = ""

    @property
    def headers(self) -> "CIMultiDict[str]":
        """Request headers; caller headers win over the defaults."""
        headers = CIMultiDict(DEFAULT_STREAM_HEADERS)
        headers.update(self.options.headers)
        return headers

    def abort(self) -> None:
        """Cancel the stream. The read loop surfaces it as RequestCancelledError."""
        self.token.cancel()

    # ---- Parsing ----

    def feed(self, chunk: bytes) -> bool:
        """
        Consume one raw chunk of the body.

        Incomplete UTF-8 sequences and the unfinished last line are kept
        for the next chunk.

        Returns:
            True once the `[DONE]` sentinel has been seen
        """
        if not chunk:
            return False
        text = self._tail + self._decoder.decode(chunk)
        *lines, self._tail = text.split("\n")
        return self._consume_lines(lines)

    def flush(self) -> bool:
        """Consume whatever is left once the body is exhausted."""
        text = self._tail + self._decoder.decode(b"", final=True)
        self._tail = ""
        return self._consume_lines([text])

    def _consume_lines(self, lines: list[str]) -> bool:
        for line in lines:
            if self._consume_line(line.removesuffix("\r")):
                return True
        return False

    def _consume_line(self, line: str) -> bool:
        if not line.strip():
            return False

        if line.startswith(DATA_PREFIX):
            data = line[len(DATA_PREFIX) :].strip()
            if self._http_logger:
                self._http_logger.log_sse_chunk(self.url, data, self._request_id)
            if data == DONE_SENTINEL:
                return True
            content = self._content_of(parse_payload(data))
        else:
            if self._http_logger:
                self._http_logger.log_sse_chunk(self.url, line, self._request_id)
            content = line

        if content:
            self.full_text += content
            if self.callbacks.on_message:
                self.callbacks.on_message(content, self.full_text)
        return False

    def _content_of(self, payload: StreamPayload) -> str:
        if isinstance(payload, TextPayload):
            return payload.text
        if self.options.extract_content is not None:
            return stringify(self.options.extract_content(payload.value))
        return stringify(payload.value)

    # ---- I/O ----

    async def run(self) -> StreamResult:
        """
        Issue the request and consume the stream.

        Returns:
            The accumulated text and the abort handle

        Raises:
            StreamError: If the status is not 2xx or the body is unreadable
            RequestCancelledError: If the stream was aborted
        """
        try:
            if self.callbacks.on_start:
                self.callbacks.on_start()

            session = await self._session_provider()
            saw_done = await self._read(session)
            logger.debug(f"Stream finished ({'[DONE]' if saw_done else 'eof'}): {len(self.full_text)} chars")

            if self.callbacks.on_complete:
                self.callbacks.on_complete(self.full_text)
            return StreamResult(full_text=self.full_text, abort=self.abort)
        except Exception as e:
            logger.warning(f"Stream failed: {self.url}: {e}")
            if self._http_logger:
                self._http_logger.log_error(self.url, str(e), self._request_id)
            if self.callbacks.on_error:
                self.callbacks.on_error(e)
            raise

    async def _read(self, session: aiohttp.ClientSession) -> bool:
        method = self.options.method.upper()
        headers = self.headers

        if self._http_logger:
            self._http_logger.log_request(method, self.url, dict(headers), self.options.body, self._request_id)
        logger.debug(f"Opening stream: {method} {self.url}")

        resp = await self.token.guard(
            session.request(
                method,
                self.url,
                headers=headers,
                json=self.options.body,
                timeout=aiohttp.ClientTimeout(total=None),
            )
        )
        try:
            if not 200 <= resp.status < 300:
                body = await self.token.guard(resp.text(errors="replace"))
                if self._http_logger:
                    self._http_logger.log_response(self.url, resp.status, body, self._request_id)
                raise StreamError(resp.reason or "Request failed", resp.status, body, self.url)
            if resp.status in NULL_BODY_STATUSES or method == "HEAD":
                raise StreamError("Response body is not readable", resp.status, uri=self.url)

            while True:
                chunk = await self.token.guard(resp.content.readany())
                if not chunk:
                    break
                if self.feed(chunk):
                    return True
            return self.flush()
        finally:
            resp.close()
