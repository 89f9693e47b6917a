"""HTTP transport over httpx.

Uses REST endpoints for commands, relative to rest_base_url:
- GET  statuses/show/{id}.json            - statuses.show
- POST statuses/update.json               - statuses.update
- POST friendships/create.json            - friendships.create
- POST lists/subscribers/destroy.json     - lists.subscribers.destroy
- ... (see _ENDPOINTS)

Operations without a mapping are sent as GET {operation with dots as
slashes}.json with params in the query string.

Streams are long-lived GET/POST responses read line by line:
- site:   {site_stream_base_url}site.json?follow=1,2,3
- user:   {user_stream_base_url}user.json
- sample: {stream_base_url}statuses/sample.json
- filter: {stream_base_url}statuses/filter.json
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import StarlingConfig
from ..errors import AuthorizationError, FailureKind, TransportFailure
from ..protocol.commands import Command, CommandResult, CommandType
from .base import StreamKind, StreamRequest

logger = logging.getLogger(__name__)

# operation -> (path template, method); {id} is filled from params["id"]
_ENDPOINTS: dict[str, tuple[str, str]] = {
    CommandType.STATUS_SHOW.value: ("statuses/show/{id}.json", "GET"),
    CommandType.STATUS_UPDATE.value: ("statuses/update.json", "POST"),
    CommandType.STATUS_DESTROY.value: ("statuses/destroy/{id}.json", "POST"),
    CommandType.HOME_TIMELINE.value: ("statuses/home_timeline.json", "GET"),
    CommandType.USER_TIMELINE.value: ("statuses/user_timeline.json", "GET"),
    CommandType.USER_SHOW.value: ("users/show.json", "GET"),
    CommandType.FRIENDSHIP_CREATE.value: ("friendships/create.json", "POST"),
    CommandType.FRIENDSHIP_DESTROY.value: ("friendships/destroy.json", "POST"),
    CommandType.FAVORITE_CREATE.value: ("favorites/create/{id}.json", "POST"),
    CommandType.FAVORITE_DESTROY.value: ("favorites/destroy/{id}.json", "POST"),
    CommandType.BLOCK_CREATE.value: ("blocks/create.json", "POST"),
    CommandType.BLOCK_DESTROY.value: ("blocks/destroy.json", "POST"),
    CommandType.DIRECT_MESSAGE_SEND.value: ("direct_messages/new.json", "POST"),
    CommandType.DIRECT_MESSAGE_DESTROY.value: ("direct_messages/destroy/{id}.json", "POST"),
    CommandType.LIST_CREATE.value: ("lists/create.json", "POST"),
    CommandType.LIST_UPDATE.value: ("lists/update.json", "POST"),
    CommandType.LIST_DESTROY.value: ("lists/destroy.json", "POST"),
    CommandType.LIST_MEMBER_ADD.value: ("lists/members/create.json", "POST"),
    CommandType.LIST_MEMBER_DELETE.value: ("lists/members/destroy.json", "POST"),
    CommandType.LIST_SUBSCRIBE.value: ("lists/subscribers/create.json", "POST"),
    CommandType.LIST_UNSUBSCRIBE.value: ("lists/subscribers/destroy.json", "POST"),
    CommandType.VERIFY_CREDENTIALS.value: ("account/verify_credentials.json", "GET"),
    CommandType.RATE_LIMIT_STATUS.value: ("account/rate_limit_status.json", "GET"),
}


def _join(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def _wire_params(params: dict[str, Any]) -> dict[str, Any]:
    """Flatten param values into what the API expects on the wire."""
    wire: dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            wire[key] = ",".join(str(v) for v in value)
        elif isinstance(value, bool):
            wire[key] = "true" if value else "false"
        else:
            wire[key] = value
    return wire


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    text = response.text.strip()
    if text:
        return text[:200]
    return f"HTTP {response.status_code} {response.reason_phrase}"


def failure_from_response(response: httpx.Response) -> TransportFailure | None:
    """Translate an error response into a TransportFailure (None if successful)."""
    if response.status_code < 400:
        return None
    return failure_for_status(response)


def failure_for_status(response: httpx.Response) -> TransportFailure:
    """Build the TransportFailure for a response already known to be an error."""
    status = response.status_code
    message = _error_message(response)
    if status in (401, 403):
        return AuthorizationError(message, status_code=status)
    kind = FailureKind.RATE_LIMITED if status in (420, 429) else FailureKind.HTTP
    return TransportFailure(
        message,
        kind=kind,
        status_code=status,
        retry_after=_parse_retry_after(response.headers.get("Retry-After")),
    )


def failure_from_exception(exc: httpx.HTTPError) -> TransportFailure:
    """Translate an httpx exception into a TransportFailure."""
    if isinstance(exc, httpx.TimeoutException):
        return TransportFailure(f"Request timed out: {exc}", kind=FailureKind.TIMEOUT)
    return TransportFailure(f"Network error: {exc}", kind=FailureKind.NETWORK)


class HTTPLineStream:
    """Line reader over a streamed httpx response."""

    def __init__(self, response: httpx.Response):
        self._response = response
        self._lines = response.aiter_lines()
        self._closed = False

    @property
    def response(self) -> httpx.Response:
        return self._response

    async def readline(self) -> str | None:
        try:
            return await anext(self._lines)
        except StopAsyncIteration:
            return None
        except httpx.HTTPError as e:
            raise failure_from_exception(e) from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class HTTPTransport:
    """Transport over HTTP REST + streaming responses.

    Usage:
        transport = HTTPTransport(StarlingConfig())
        result = await transport.invoke(Command.update_status("hello"))
        stream = await transport.open_stream(StreamRequest.site([12, 34]))
        line = await stream.readline()
    """

    def __init__(
        self,
        config: StarlingConfig | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the transport.

        Args:
            config: Client configuration (defaults if None)
            http_transport: Optional httpx transport (e.g. httpx.MockTransport in tests)
        """
        self.config = config or StarlingConfig()
        self._http_transport = http_transport
        self._http_client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            auth = None
            if self.config.user and self.config.password:
                auth = httpx.BasicAuth(self.config.user, self.config.password)
            self._http_client = httpx.AsyncClient(
                auth=auth,
                headers={"User-Agent": self.config.user_agent},
                timeout=httpx.Timeout(
                    self.config.http_read_timeout,
                    connect=self.config.http_connection_timeout,
                ),
                transport=self._http_transport,
            )
        return self._http_client

    def _map_command_to_endpoint(self, command: Command) -> tuple[str, str, dict[str, Any]]:
        """Map a command to (method, url, params)."""
        params = dict(command.params)
        template, method = _ENDPOINTS.get(
            command.cmd, (f"{command.cmd.replace('.', '/')}.json", "GET")
        )
        if "{id}" in template:
            if "id" not in params:
                raise ValueError(f"{command.cmd} requires an 'id' parameter")
            template = template.replace("{id}", str(params.pop("id")))
        return method, _join(self.config.rest_base_url, template), _wire_params(params)

    async def invoke(self, command: Command) -> CommandResult:
        """Execute a command; failures come back inside the result."""
        try:
            method, url, params = self._map_command_to_endpoint(command)
        except ValueError as e:
            return CommandResult.failed(TransportFailure(str(e), kind=FailureKind.UNEXPECTED))

        logger.debug(f"{method} {url} ({command.id})")
        client = self._get_client()
        try:
            if method == "GET":
                response = await client.request(method, url, params=params)
            else:
                response = await client.request(method, url, data=params)
        except httpx.HTTPError as e:
            return CommandResult.failed(failure_from_exception(e))

        failure = failure_from_response(response)
        if failure is not None:
            return CommandResult.failed(failure)

        if not response.content:
            return CommandResult.success({})
        try:
            return CommandResult.success(response.json())
        except ValueError:
            return CommandResult.success(response.text)

    def _map_stream_request(self, request: StreamRequest) -> tuple[str, str, dict[str, Any]]:
        """Map a stream request to (method, url, params)."""
        config = self.config
        match request.kind:
            case StreamKind.SITE:
                params: dict[str, Any] = {"follow": request.follow}
                if request.with_followings:
                    params["with"] = "followings"
                return "GET", _join(config.site_stream_base_url, "site.json"), params
            case StreamKind.USER:
                return "GET", _join(config.user_stream_base_url, "user.json"), {}
            case StreamKind.SAMPLE:
                return "GET", _join(config.stream_base_url, "statuses/sample.json"), {}
            case StreamKind.FILTER:
                params = {"follow": request.follow or None, "track": request.track or None}
                return "POST", _join(config.stream_base_url, "statuses/filter.json"), params
        raise ValueError(f"Unsupported stream kind: {request.kind}")

    async def open_stream(self, request: StreamRequest) -> HTTPLineStream:
        """Open a streaming connection.

        Raises:
            AuthorizationError: If credentials are rejected
            TransportFailure: If the connection cannot be established
        """
        method, url, params = self._map_stream_request(request)
        params = _wire_params(params)
        client = self._get_client()
        http_request = client.build_request(
            method,
            url,
            params=params if method == "GET" else None,
            data=params if method == "POST" else None,
            # Stall detection is the router's job; never time out a quiet stream here
            timeout=httpx.Timeout(None, connect=self.config.http_connection_timeout),
        )

        logger.info(f"Opening {request.kind.value} stream: {url}")
        try:
            response = await client.send(http_request, stream=True)
        except httpx.HTTPError as e:
            raise failure_from_exception(e) from e

        if response.status_code >= 400:
            await response.aread()
            await response.aclose()
            raise failure_for_status(response)

        return HTTPLineStream(response)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> HTTPTransport:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


def create_http_transport(config: StarlingConfig | None = None) -> HTTPTransport:
    """Create an HTTP transport.

    Args:
        config: Client configuration (defaults if None)

    Returns:
        HTTPTransport configured from `config`
    """
    return HTTPTransport(config)
