"""Unit tests for the HTTP transport.

Requests are answered by httpx.MockTransport; no network.
"""

from __future__ import annotations

import base64
import json
from urllib.parse import parse_qs

import httpx
import pytest

from starling.config import StarlingConfig
from starling.errors import AuthorizationError, FailureKind, TransportFailure
from starling.protocol.commands import Command
from starling.transport.base import StreamKind, StreamRequest, Transport
from starling.transport.http import HTTPTransport, failure_from_response


class Recorder:
    """httpx.MockTransport handler that records requests and replays a response."""

    def __init__(self, response: httpx.Response | None = None, error: Exception | None = None):
        self.requests: list[httpx.Request] = []
        self.response = response or httpx.Response(200, json={"ok": True})
        self.error = error

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def make_transport(recorder: Recorder, **config) -> HTTPTransport:
    return HTTPTransport(
        StarlingConfig(rest_base_url="https://api.test/1/", **config),
        http_transport=httpx.MockTransport(recorder),
    )


def form(request: httpx.Request) -> dict[str, list[str]]:
    return parse_qs(request.content.decode())


# =============================================================================
# Command invocation
# =============================================================================


class TestInvoke:
    """REST command mapping and result translation."""

    def test_satisfies_transport_protocol(self):
        """HTTPTransport should satisfy Transport."""
        assert isinstance(HTTPTransport(), Transport)

    @pytest.mark.asyncio
    async def test_get_with_id_in_path(self):
        """The id should be placed in the path for show endpoints."""
        recorder = Recorder(httpx.Response(200, json={"id": 42, "text": "hi"}))
        transport = make_transport(recorder)

        result = await transport.invoke(Command.create("statuses.show", {"id": 42}))

        assert result.ok
        assert result.payload == {"id": 42, "text": "hi"}
        assert recorder.last.method == "GET"
        assert str(recorder.last.url) == "https://api.test/1/statuses/show/42.json"
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_post_sends_form_body(self):
        """POST commands should send a form body."""
        recorder = Recorder()
        transport = make_transport(recorder)

        await transport.invoke(Command.update_status("hello world", in_reply_to_status_id=7))

        request = recorder.last
        assert request.method == "POST"
        assert request.url.path == "/1/statuses/update.json"
        assert form(request) == {"status": ["hello world"], "in_reply_to_status_id": ["7"]}
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_list_unsubscribe_endpoint(self):
        """List unsubscribe should hit the subscribers endpoint."""
        recorder = Recorder()
        transport = make_transport(recorder)

        await transport.invoke(Command.unsubscribe_user_list("twitterapi", 99))

        assert recorder.last.url.path == "/1/lists/subscribers/destroy.json"
        assert form(recorder.last) == {"owner_screen_name": ["twitterapi"], "list_id": ["99"]}
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_unmapped_operation_falls_back_to_get(self):
        """Unknown operations should become GET requests."""
        recorder = Recorder()
        transport = make_transport(recorder)

        await transport.invoke(Command.create("trends.daily", {"exclude": "hashtags"}))

        assert recorder.last.method == "GET"
        assert recorder.last.url.path == "/1/trends/daily.json"
        assert recorder.last.url.params["exclude"] == "hashtags"
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_wire_params_flattened(self):
        """Lists, booleans and None should be flattened for the wire."""
        recorder = Recorder()
        transport = make_transport(recorder)

        await transport.invoke(
            Command.create("users.show", {"user_id": [1, 2], "include_entities": True, "skip": None})
        )

        params = recorder.last.url.params
        assert params["user_id"] == "1,2"
        assert params["include_entities"] == "true"
        assert "skip" not in params
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_missing_path_id_is_a_failure(self):
        """A missing path id should fail without a request."""
        recorder = Recorder()
        transport = make_transport(recorder)

        result = await transport.invoke(Command.create("statuses.show"))

        assert not result.ok
        assert result.failure.kind == FailureKind.UNEXPECTED
        assert recorder.requests == []
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_empty_body_is_empty_payload(self):
        """An empty body should give an empty payload."""
        transport = make_transport(Recorder(httpx.Response(200)))

        result = await transport.invoke(Command.create("statuses.destroy", {"id": 1}))

        assert result.payload == {}
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_non_json_body_returned_as_text(self):
        """A non-JSON body should come back as text."""
        transport = make_transport(Recorder(httpx.Response(200, text="OK")))

        result = await transport.invoke(Command.create("account.verify_credentials"))

        assert result.payload == "OK"
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_basic_auth_and_user_agent(self):
        """Credentials and user agent should be sent."""
        recorder = Recorder()
        transport = make_transport(recorder, user="alice", password="secret")

        await transport.invoke(Command.create("account.verify_credentials"))

        expected = base64.b64encode(b"alice:secret").decode()
        assert recorder.last.headers["Authorization"] == f"Basic {expected}"
        assert recorder.last.headers["User-Agent"] == "starling"
        await transport.aclose()


class TestInvokeFailures:
    """HTTP and network errors come back as TransportFailure results."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_authorization_failure(self, status):
        """401 and 403 should become AuthorizationError."""
        transport = make_transport(Recorder(httpx.Response(status, json={"error": "Bad creds"})))

        result = await transport.invoke(Command.update_status("hi"))

        assert isinstance(result.failure, AuthorizationError)
        assert result.failure.status_code == status
        assert result.failure.message == "Bad creds"
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_rate_limited_with_retry_after(self):
        """420 should be RATE_LIMITED with the Retry-After hint."""
        response = httpx.Response(420, text="Enhance your calm", headers={"Retry-After": "60"})
        transport = make_transport(Recorder(response))

        result = await transport.invoke(Command.update_status("hi"))

        assert result.failure.kind == FailureKind.RATE_LIMITED
        assert result.failure.retry_after == 60.0
        assert result.failure.message == "Enhance your calm"
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_server_error(self):
        """5xx should be an HTTP failure with the status code."""
        transport = make_transport(Recorder(httpx.Response(502)))

        result = await transport.invoke(Command.update_status("hi"))

        assert result.failure.kind == FailureKind.HTTP
        assert result.failure.status_code == 502
        assert "502" in result.failure.message
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_connection_error(self):
        """Connection errors should be NETWORK failures."""
        transport = make_transport(Recorder(error=httpx.ConnectError("refused")))

        result = await transport.invoke(Command.update_status("hi"))

        assert result.failure.kind == FailureKind.NETWORK
        assert result.failure.status_code is None
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Timeouts should be TIMEOUT failures."""
        transport = make_transport(Recorder(error=httpx.ReadTimeout("slow")))

        result = await transport.invoke(Command.update_status("hi"))

        assert result.failure.kind == FailureKind.TIMEOUT
        await transport.aclose()

    def test_success_response_is_not_a_failure(self):
        """A 2xx response should not produce a failure."""
        assert failure_from_response(httpx.Response(204)) is None


# =============================================================================
# Streams
# =============================================================================


class TestOpenStream:
    """Streaming connections."""

    @pytest.mark.asyncio
    async def test_site_stream_request(self):
        """Site streams should send follow and with parameters."""
        recorder = Recorder(httpx.Response(200, content=b""))
        transport = make_transport(recorder, site_stream_base_url="https://site.test/2b/")

        stream = await transport.open_stream(StreamRequest.site([12, 34], with_followings=True))

        url = recorder.last.url
        assert url.host == "site.test"
        assert url.path == "/2b/site.json"
        assert url.params["follow"] == "12,34"
        assert url.params["with"] == "followings"
        await stream.aclose()
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_user_stream_request(self):
        """User streams should hit user.json."""
        recorder = Recorder(httpx.Response(200, content=b""))
        transport = make_transport(recorder, user_stream_base_url="https://user.test/2/")

        stream = await transport.open_stream(StreamRequest.user())

        assert str(recorder.last.url) == "https://user.test/2/user.json"
        await stream.aclose()
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_filter_stream_posts_predicates(self):
        """Filter streams should POST their predicates."""
        recorder = Recorder(httpx.Response(200, content=b""))
        transport = make_transport(recorder)

        request = StreamRequest(kind=StreamKind.FILTER, track=["python", "asyncio"])
        stream = await transport.open_stream(request)

        assert recorder.last.method == "POST"
        assert form(recorder.last) == {"track": ["python,asyncio"]}
        await stream.aclose()
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_reads_lines_until_end(self):
        """readline() should return lines, then None at the end."""
        body = json.dumps({"friends": [1, 2]}).encode() + b"\r\n\r\n" + b'{"text": "hi"}\n'
        transport = make_transport(Recorder(httpx.Response(200, content=body)))

        stream = await transport.open_stream(StreamRequest.user())

        assert await stream.readline() == '{"friends": [1, 2]}'
        assert await stream.readline() == ""
        assert await stream.readline() == '{"text": "hi"}'
        assert await stream.readline() is None
        await stream.aclose()
        await stream.aclose()  # Idempotent
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_unauthorized_stream_raises(self):
        """A 401 on connect should raise AuthorizationError."""
        transport = make_transport(Recorder(httpx.Response(401, text="Unauthorized")))

        with pytest.raises(AuthorizationError):
            await transport.open_stream(StreamRequest.user())
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_rate_limited_stream_raises_with_retry_after(self):
        """An error status on connect raises the matching failure, retry hint included."""
        response = httpx.Response(420, text="Enhance your calm", headers={"Retry-After": "30"})
        transport = make_transport(Recorder(response))

        with pytest.raises(TransportFailure) as exc_info:
            await transport.open_stream(StreamRequest.user())

        assert exc_info.value.kind == FailureKind.RATE_LIMITED
        assert exc_info.value.retry_after == 30.0
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_connect_error_raises_failure(self):
        """A connect error should raise a NETWORK failure."""
        transport = make_transport(Recorder(error=httpx.ConnectError("refused")))

        with pytest.raises(TransportFailure) as exc_info:
            await transport.open_stream(StreamRequest.user())

        assert exc_info.value.kind == FailureKind.NETWORK
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_context_manager_closes_client(self):
        """Leaving the context should close the HTTP client."""
        async with make_transport(Recorder()) as transport:
            await transport.invoke(Command.create("account.rate_limit_status"))
            assert transport._http_client is not None

        assert transport._http_client is None
