"""
Cooperative cancellation for requests and streams.

A token is cancelled explicitly by its owner. Code that awaits I/O wraps
each await in `guard()`, which raises `RequestCancelledError` as soon as
the token (or any of its parents) is cancelled, even while the awaited
operation is still pending.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from .exceptions import RequestCancelledError

T = TypeVar("T")


class CancellationToken:
    """
    Cancellation handle shared between the owner and the I/O it controls.

    Example:
        token = CancellationToken()
        task = asyncio.create_task(client.get("/slow", config=RequestConfig(cancel_token=token)))
        token.cancel()
    """

    def __init__(self, parent: "CancellationToken | None" = None):
        """
        Initialize the token.

        Args:
            parent: Optional token whose cancellation also cancels this one.
        """
        self._parent = parent
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """Whether this token or one of its parents has been cancelled."""
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def reason(self) -> str:
        if self._reason is not None:
            return self._reason
        if self._parent is not None and self._parent.cancelled:
            return self._parent.reason
        return "request cancelled"

    def cancel(self, reason: str | None = None) -> None:
        """Cancel the token. Calling it again has no effect."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelledError(self.reason)

    def _chain(self) -> list["CancellationToken"]:
        tokens: list[CancellationToken] = []
        token: CancellationToken | None = self
        while token is not None:
            tokens.append(token)
            token = token._parent
        return tokens

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` unless the token is cancelled first.

        Args:
            awaitable: The I/O operation to run

        Returns:
            The result of the awaitable

        Raises:
            RequestCancelledError: If the token is cancelled before or while
                the awaitable runs. The pending operation is cancelled, and a
                result that finished alongside the cancellation is closed
                if it has a synchronous close().
        """
        task = asyncio.ensure_future(awaitable)
        if self.cancelled:
            task.cancel()
            raise RequestCancelledError(self.reason)

        waiters = [asyncio.ensure_future(token._event.wait()) for token in self._chain()]
        try:
            await asyncio.wait([task, *waiters], return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
            if not task.done():
                task.cancel()

        if self.cancelled:
            if task.done() and not task.cancelled() and task.exception() is None:
                # Cancellation wins; a response opened in the same tick is released.
                close = getattr(task.result(), "close", None)
                if callable(close) and not asyncio.iscoroutinefunction(close):
                    close()
            raise RequestCancelledError(self.reason)
        return task.result()

    def __repr__(self) -> str:
        return f"<CancellationToken cancelled={self.cancelled}>"
