"""Tests for the request pipeline against a local aiohttp server."""

import asyncio
from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import replace
from typing import Any

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from envelope_http import BusinessError
from envelope_http import CancellationToken
from envelope_http import Handlers
from envelope_http import HttpClient
from envelope_http import HttpClientOptions
from envelope_http import HttpResponse
from envelope_http import Interceptors
from envelope_http import RequestCancelledError
from envelope_http import RequestConfig
from envelope_http import RequestError


async def ok(request: web.Request) -> web.Response:
    return web.json_response({"code": 10000, "message": "ok", "data": {"name": "alice"}})


async def expired(request: web.Request) -> web.Response:
    return web.json_response({"code": 20001, "message": "token expired", "data": None})


async def no_message(request: web.Request) -> web.Response:
    return web.json_response({"code": 20002, "message": "", "data": None})


async def http_200_code(request: web.Request) -> web.Response:
    return web.json_response({"code": 200, "message": "ok", "data": [1, 2, 3]})


async def status(request: web.Request) -> web.Response:
    return web.json_response({"code": 0, "message": "nope"}, status=int(request.match_info["status"]))


async def plain(request: web.Request) -> web.Response:
    return web.Response(text="hello")


async def echo(request: web.Request) -> web.Response:
    body = await request.json() if request.can_read_body else None
    return web.json_response(
        {
            "code": 10000,
            "message": "",
            "data": {
                "method": request.method,
                "authorization": request.headers.get("Authorization"),
                "query": dict(request.query),
                "body": body,
            },
        }
    )


async def slow(request: web.Request) -> web.Response:
    await asyncio.sleep(0.5)
    return web.json_response({"code": 10000, "message": "", "data": "late"})


def make_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/ok", ok)
    app.router.add_get("/expired", expired)
    app.router.add_get("/no-message", no_message)
    app.router.add_get("/http-200-code", http_200_code)
    app.router.add_get("/status/{status}", status)
    app.router.add_get("/plain", plain)
    app.router.add_route("*", "/echo", echo)
    app.router.add_get("/slow", slow)
    return app


def serve(scenario: Callable[[str], Awaitable[Any]]) -> Any:
    """Run `scenario(base_url)` against a fresh test server."""

    async def main() -> Any:
        server = TestServer(make_app())
        await server.start_server()
        try:
            return await scenario(f"http://{server.host}:{server.port}")
        finally:
            await server.close()

    return asyncio.run(main())


class Recorder:
    """Collects handler invocations."""

    def __init__(self) -> None:
        self.messages: list[str] = []
        self.backend_errors: list[tuple[int | None, str]] = []

    def handlers(self, backend: bool = False) -> Handlers:
        return Handlers(
            handle_global_message=self.messages.append,
            handle_backend_error=(lambda code, message: self.backend_errors.append((code, message)))
            if backend
            else None,
        )


class TestEnvelope:
    """Test business code handling."""

    def test_success_resolves_data(self) -> None:
        """Test a matching code resolves with data and fires no hook."""
        recorder = Recorder()

        async def scenario(base_url: str) -> Any:
            async with HttpClient(base_url, handlers=recorder.handlers(backend=True)) as client:
                return await client.get("/ok")

        assert serve(scenario) == {"name": "alice"}
        assert recorder.messages == []
        assert recorder.backend_errors == []

    def test_backend_error_handler_wins(self) -> None:
        """Test a mismatched code goes to handle_backend_error only."""
        recorder = Recorder()

        async def scenario(base_url: str) -> None:
            async with HttpClient(base_url, handlers=recorder.handlers(backend=True)) as client:
                await client.get("/expired")

        with pytest.raises(BusinessError) as exc_info:
            serve(scenario)
        assert exc_info.value.code == 20001
        assert exc_info.value.envelope.message == "token expired"
        assert recorder.backend_errors == [(20001, "token expired")]
        assert recorder.messages == []

    def test_global_message_without_backend_handler(self) -> None:
        """Test a mismatched code falls back to the global message hook."""
        recorder = Recorder()

        async def scenario(base_url: str) -> None:
            async with HttpClient(base_url, handlers=recorder.handlers()) as client:
                with pytest.raises(BusinessError):
                    await client.get("/expired")
                with pytest.raises(BusinessError):
                    await client.get("/no-message")

        serve(scenario)
        assert recorder.messages == ["token expired", "Request failed, business code: 20002"]

    def test_show_global_message_disabled(self) -> None:
        """Test show_global_message=False silences the hook but still raises."""
        recorder = Recorder()

        async def scenario(base_url: str) -> None:
            async with HttpClient(base_url, handlers=recorder.handlers()) as client:
                await client.get("/expired", config=RequestConfig(show_global_message=False))

        with pytest.raises(BusinessError):
            serve(scenario)
        assert recorder.messages == []

    def test_code_check_disabled(self) -> None:
        """Test enable_code_check=False treats every envelope as success."""

        async def scenario(base_url: str) -> Any:
            async with HttpClient(base_url) as client:
                return await client.get("/http-200-code", config=RequestConfig(enable_code_check=False))

        assert serve(scenario) == [1, 2, 3]

    def test_per_call_success_code(self) -> None:
        """Test a per-call success code."""

        async def scenario(base_url: str) -> Any:
            async with HttpClient(base_url) as client:
                return await client.get("/http-200-code", config=RequestConfig(success_code=200))

        assert serve(scenario) == [1, 2, 3]

    def test_client_wide_request_config(self) -> None:
        """Test request_config sets defaults for every call."""

        async def scenario(base_url: str) -> tuple[Any, Any]:
            client = HttpClient(base_url, request_config=RequestConfig(success_code=200))
            async with client:
                first = await client.get("/http-200-code")
                with pytest.raises(BusinessError):
                    await client.get("/ok")
                second = await client.get("/ok", config=RequestConfig(success_code=10000))
            return first, second

        assert serve(scenario) == ([1, 2, 3], {"name": "alice"})

    def test_non_object_body(self) -> None:
        """Test a plain-text body has no business code."""

        async def scenario(base_url: str) -> Any:
            async with HttpClient(base_url) as client:
                with pytest.raises(BusinessError) as exc_info:
                    await client.get("/plain", config=RequestConfig(show_global_message=False))
                assert exc_info.value.code is None
                return await client.get("/plain", config=RequestConfig(enable_code_check=False))

        assert serve(scenario) == "hello"

    def test_repeated_calls_are_identical(self) -> None:
        """Test two identical calls give identical values and hook counts."""
        recorder = Recorder()

        async def scenario(base_url: str) -> list[Any]:
            results = []
            async with HttpClient(base_url, handlers=recorder.handlers()) as client:
                for _ in range(2):
                    results.append(await client.get("/ok"))
                    with pytest.raises(BusinessError):
                        await client.get("/expired")
            return results

        first, second = serve(scenario)
        assert first == second
        assert recorder.messages == ["token expired", "token expired"]


class TestTransportErrors:
    """Test the status-to-message mapping."""

    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            (401, "unauthorized, please re-login"),
            (403, "access denied"),
            (404, "resource not found: /status/404"),
            (500, "internal server error"),
            (418, "HTTP error: 418"),
        ],
    )
    def test_status_messages(self, code: int, expected: str) -> None:
        """Test each HTTP status maps to its fixed message."""
        recorder = Recorder()

        async def scenario(base_url: str) -> None:
            async with HttpClient(base_url, handlers=recorder.handlers()) as client:
                await client.get(f"/status/{code}")

        with pytest.raises(RequestError) as exc_info:
            serve(scenario)
        assert exc_info.value.message == expected
        assert str(exc_info.value) == expected
        assert exc_info.value.status == code
        assert recorder.messages == [expected]

    def test_network_error(self) -> None:
        """Test an unreachable server maps to the network message."""
        recorder = Recorder()

        async def main() -> None:
            server = TestServer(make_app())
            await server.start_server()
            base_url = f"http://{server.host}:{server.port}"
            await server.close()
            async with HttpClient(base_url, handlers=recorder.handlers()) as client:
                await client.get("/ok")

        with pytest.raises(RequestError) as exc_info:
            asyncio.run(main())
        assert exc_info.value.message == "network error, unable to reach server"
        assert exc_info.value.response is None
        assert recorder.messages == ["network error, unable to reach server"]

    def test_cancelled_request(self) -> None:
        """Test cancelling a token aborts an in-flight request."""
        recorder = Recorder()

        async def scenario(base_url: str) -> None:
            token = CancellationToken()
            async with HttpClient(base_url, handlers=recorder.handlers()) as client:
                task = asyncio.create_task(client.get("/slow", config=RequestConfig(cancel_token=token)))
                await asyncio.sleep(0.1)
                token.cancel()
                await task

        with pytest.raises(RequestCancelledError) as exc_info:
            serve(scenario)
        assert exc_info.value.message == "request cancelled"
        assert recorder.messages == ["request cancelled"]

    def test_error_message_without_global_message(self) -> None:
        """Test the message is resolved even when the hook is silenced."""
        recorder = Recorder()

        async def scenario(base_url: str) -> None:
            async with HttpClient(base_url, handlers=recorder.handlers()) as client:
                await client.get("/status/403", config=RequestConfig(show_global_message=False))

        with pytest.raises(RequestError) as exc_info:
            serve(scenario)
        assert exc_info.value.message == "access denied"
        assert recorder.messages == []


class TestRequests:
    """Test request building and the verb helpers."""

    def test_request_header_handler(self) -> None:
        """Test handle_request_header can inject an Authorization header."""

        def add_token(config: RequestConfig) -> RequestConfig:
            config.headers["Authorization"] = "Bearer secret"
            return config

        async def scenario(base_url: str) -> Any:
            async with HttpClient(base_url, handlers=Handlers(handle_request_header=add_token)) as client:
                return await client.get("/echo")

        assert serve(scenario)["authorization"] == "Bearer secret"

    def test_request_header_handler_sees_defaults(self) -> None:
        """Test the header handler receives the merged library defaults."""
        seen: list[RequestConfig] = []

        def capture(config: RequestConfig) -> RequestConfig:
            seen.append(config)
            return config

        async def scenario(base_url: str) -> None:
            async with HttpClient(base_url, handlers=Handlers(handle_request_header=capture)) as client:
                await client.get("/ok", config=RequestConfig(show_global_message=False))

        serve(scenario)
        assert seen[0].success_code == 10000
        assert seen[0].enable_code_check is True
        assert seen[0].show_global_message is False
        assert seen[0].timeout == 10.0

    def test_verb_helpers(self) -> None:
        """Test get/post/put/delete send method, params and body."""

        async def scenario(base_url: str) -> list[Any]:
            async with HttpClient(base_url) as client:
                return [
                    await client.get("/echo", {"id": "1"}),
                    await client.post("/echo", {"name": "bob"}),
                    await client.put("/echo", {"name": "carol"}),
                    await client.delete("/echo", {"id": "2"}),
                ]

        got, posted, put, deleted = serve(scenario)
        assert (got["method"], got["query"]) == ("GET", {"id": "1"})
        assert (posted["method"], posted["body"]) == ("POST", {"name": "bob"})
        assert (put["method"], put["body"]) == ("PUT", {"name": "carol"})
        assert (deleted["method"], deleted["query"]) == ("DELETE", {"id": "2"})

    def test_concurrent_requests(self) -> None:
        """Test concurrent calls on one client are independent."""

        async def scenario(base_url: str) -> list[Any]:
            async with HttpClient(base_url) as client:
                return await asyncio.gather(*(client.get("/echo", {"n": str(n)}) for n in range(5)))

        results = serve(scenario)
        assert [r["query"]["n"] for r in results] == ["0", "1", "2", "3", "4"]

    def test_from_options(self) -> None:
        """Test building a client from HttpClientOptions."""

        async def scenario(base_url: str) -> Any:
            options = HttpClientOptions(base_url=base_url, request_config=RequestConfig(success_code=200))
            async with HttpClient.from_options(options) as client:
                return await client.get("/http-200-code")

        assert serve(scenario) == [1, 2, 3]

    def test_from_options_external_session(self) -> None:
        """Test from_options uses a caller-owned session and leaves it open."""

        async def scenario(base_url: str) -> tuple[Any, bool]:
            async with aiohttp.ClientSession() as session:
                options = HttpClientOptions(base_url=base_url, session=session)
                async with HttpClient.from_options(options) as client:
                    data = await client.get("/ok")
                return data, session.closed

        assert serve(scenario) == ({"name": "alice"}, False)


class TestInterceptorOverrides:
    """Test that overrides fully replace the default hooks."""

    def test_response_override_returns_envelope(self) -> None:
        """Test a response override skips the code check and unwrap."""

        def keep_envelope(response: HttpResponse) -> Any:
            return response.data

        async def scenario(base_url: str) -> Any:
            interceptors = Interceptors(response_on_fulfilled=keep_envelope)
            async with HttpClient(base_url, interceptors=interceptors) as client:
                return await client.get("/expired")

        assert serve(scenario) == {"code": 20001, "message": "token expired", "data": None}

    def test_async_response_override(self) -> None:
        """Test an async override is awaited."""

        async def status_only(response: HttpResponse) -> int:
            await asyncio.sleep(0)
            return response.status

        async def scenario(base_url: str) -> Any:
            async with HttpClient(base_url, interceptors=Interceptors(response_on_fulfilled=status_only)) as client:
                return await client.get("/ok")

        assert serve(scenario) == 200

    def test_request_override_skips_defaults(self) -> None:
        """Test a request override means library defaults are not merged."""
        recorder = Recorder()

        async def scenario(base_url: str) -> Any:
            interceptors = Interceptors(request_on_fulfilled=lambda config: config)
            async with HttpClient(base_url, handlers=recorder.handlers(), interceptors=interceptors) as client:
                return await client.get("/expired")

        # No enable_code_check default, so the envelope is accepted as is
        assert serve(scenario) is None
        assert recorder.messages == []

    def test_rejected_override_can_recover(self) -> None:
        """Test a response rejected override may resolve the call."""
        errors: list[Exception] = []

        def fallback(error: Exception) -> str:
            errors.append(error)
            return "fallback"

        async def scenario(base_url: str) -> Any:
            interceptors = Interceptors(response_on_rejected=fallback)
            async with HttpClient(base_url, interceptors=interceptors) as client:
                return await client.get("/status/500")

        assert serve(scenario) == "fallback"
        assert isinstance(errors[0], RequestError)
        # The default message mapping did not run
        assert errors[0].message == "Request failed with status code 500"

    def test_request_stage_error_propagates_unchanged(self) -> None:
        """Test a failing header handler reaches the caller unchanged."""
        boom = ValueError("no token")
        recorder = Recorder()

        def broken(config: RequestConfig) -> RequestConfig:
            raise boom

        async def scenario(base_url: str) -> None:
            handlers = replace(recorder.handlers(), handle_request_header=broken)
            async with HttpClient(base_url, handlers=handlers) as client:
                await client.get("/ok")

        with pytest.raises(ValueError) as exc_info:
            serve(scenario)
        assert exc_info.value is boom
        assert recorder.messages == []

    def test_request_rejected_override(self) -> None:
        """Test request_on_rejected receives request-stage errors."""
        seen: list[Exception] = []

        def broken(config: RequestConfig) -> RequestConfig:
            raise RuntimeError("bad config")

        def on_rejected(error: Exception) -> str:
            seen.append(error)
            return "recovered"

        async def scenario(base_url: str) -> Any:
            interceptors = Interceptors(request_on_fulfilled=broken, request_on_rejected=on_rejected)
            async with HttpClient(base_url, interceptors=interceptors) as client:
                return await client.get("/ok")

        assert serve(scenario) == "recovered"
        assert str(seen[0]) == "bad config"
