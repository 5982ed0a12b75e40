"""Registered clients talking to an in-process httpx mock server."""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Callable

import httpx
import pytest

from aduib_feign import (
    FeignClientFactory,
    FeignClientsRegistrar,
    FeignContext,
    FeignHttpError,
    Options,
    RetryableError,
    RetryPolicy,
    Retryer,
)
from aduib_feign.capability import Capability
from aduib_feign.config import FeignClientProperties
from aduib_feign.environment import Environment
from aduib_feign.exceptions import DecodeError
from aduib_feign.http import HttpRequest, HttpResponse
from aduib_feign.interceptors import BasicAuthRequestInterceptor
from aduib_feign.observability.request_logger import LogLevel
from aduib_feign.registrar import ClientRegistry
from aduib_feign.retry import ExceptionPropagationPolicy
from aduib_feign.transport import HttpxTransport, Transport

from tests.fixtures_clients import (
    AuthClient,
    FactoryUserClient,
    GuardedUserClient,
    SyncUserClient,
    User,
    UserClient,
)

Handler = Callable[[httpx.Request], httpx.Response]


class MockServer:
    """Records incoming requests and answers them with ``handler``."""

    def __init__(self, handler: Handler) -> None:
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        return self.handler(request)


def _registry(
    server: MockServer,
    *client_types: type,
    instances: tuple[object, ...] = (),
    properties: FeignClientProperties | None = None,
) -> ClientRegistry:
    transport = HttpxTransport(transport=httpx.MockTransport(server))
    factory = FeignClientFactory(FeignContext([transport, *instances]), properties)
    registrar = FeignClientsRegistrar(factory, Environment(use_os_environ=False))
    registrar.register_clients(client_types or (UserClient,))
    return registrar.registry


def _user_json(request: httpx.Request) -> httpx.Response:
    user_id = int(request.url.path.rsplit("/", 1)[-1])
    return httpx.Response(200, json={"id": user_id, "name": "ann"})


@pytest.mark.asyncio
async def test_get_decodes_json_into_model() -> None:
    server = MockServer(_user_json)
    client = _registry(server).get("users")

    user = await client.get_user(7)

    assert user == User(id=7, name="ann")
    request = server.requests[0]
    assert request.method == "GET"
    assert str(request.url) == "http://users.test/api/users/7"
    assert request.headers["accept"] == "application/json"


@pytest.mark.asyncio
async def test_post_encodes_model_body() -> None:
    server = MockServer(lambda request: httpx.Response(201, content=request.content))
    client = _registry(server).get("users")

    created = await client.create_user(User(id=1, name="bob"))

    assert created == User(id=1, name="bob")
    request = server.requests[0]
    assert request.method == "POST"
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {"id": 1, "name": "bob"}


@pytest.mark.asyncio
async def test_query_parameters_and_collection_format() -> None:
    server = MockServer(lambda request: httpx.Response(200, json=[]))
    client = _registry(server).get("users")

    assert await client.search("ann", tags=["a", "b"]) == []
    assert await client.search(name="bob") == []

    first, second = server.requests
    assert first.url.params["name"] == "ann"
    assert first.url.params["tag"] == "a,b"
    assert "tag" not in second.url.params


@pytest.mark.asyncio
async def test_delete_returns_none() -> None:
    server = MockServer(lambda request: httpx.Response(204))
    client = _registry(server).get("users")
    assert await client.delete_user(3) is None
    assert server.requests[0].method == "DELETE"


@pytest.mark.asyncio
async def test_error_status_raises_http_error() -> None:
    server = MockServer(lambda request: httpx.Response(500, text="kaput"))
    client = _registry(server).get("users")

    with pytest.raises(FeignHttpError) as exc_info:
        await client.get_user(1)

    error = exc_info.value
    assert error.status == 500
    assert error.method == "GET"
    assert error.url == "http://users.test/api/users/1"
    assert error.config_key == "UserClient#get_user(int)"
    assert error.content_text == "kaput"


@pytest.mark.asyncio
async def test_not_found_raises_unless_dismissed() -> None:
    server = MockServer(lambda request: httpx.Response(404))
    with pytest.raises(FeignHttpError):
        await _registry(server).get("users").find_user(1)

    properties = FeignClientProperties.from_dict({"config": {"users": {"dismiss404": True}}})
    client = _registry(server, properties=properties).get("users")
    assert await client.find_user(1) is None


@pytest.mark.asyncio
async def test_raw_response_return_type_skips_decoding() -> None:
    server = MockServer(lambda request: httpx.Response(418, content=b"teapot"))
    response = await _registry(server).get("users").raw(1)
    assert isinstance(response, HttpResponse)
    assert response.status == 418
    assert response.body == b"teapot"


@pytest.mark.asyncio
async def test_undecodable_body_raises_decode_error() -> None:
    server = MockServer(lambda request: httpx.Response(200, json={"unexpected": True}))
    with pytest.raises(DecodeError) as exc_info:
        await _registry(server).get("users").get_user(1)
    assert exc_info.value.config_key == "UserClient#get_user(int)"
    assert exc_info.value.data == {"status": 200}
    assert exc_info.value.__cause__ is not None


@pytest.mark.asyncio
async def test_retry_after_is_retried() -> None:
    responses = [httpx.Response(503, headers={"Retry-After": "0"}), httpx.Response(200, json={"id": 2, "name": "ann"})]
    server = MockServer(lambda request: responses.pop(0))
    retryer = Retryer(RetryPolicy(max_attempts=3, initial_delay_ms=0))
    client = _registry(server, instances=(retryer,)).get("users")

    assert await client.get_user(2) == User(id=2, name="ann")
    assert len(server.requests) == 2


@pytest.mark.asyncio
async def test_exhausted_retries_raise_retryable_error() -> None:
    server = MockServer(lambda request: httpx.Response(503, headers={"Retry-After": "0"}))
    retryer = Retryer(RetryPolicy(max_attempts=2, initial_delay_ms=0))
    client = _registry(server, instances=(retryer,)).get("users")

    with pytest.raises(RetryableError) as exc_info:
        await client.get_user(2)

    assert exc_info.value.status == 503
    assert isinstance(exc_info.value.cause, FeignHttpError)
    assert len(server.requests) == 2


@pytest.mark.asyncio
async def test_unwrap_policy_raises_the_cause() -> None:
    server = MockServer(lambda request: httpx.Response(503, headers={"Retry-After": "0"}))
    client = _registry(server, instances=(ExceptionPropagationPolicy.UNWRAP,)).get("users")

    with pytest.raises(FeignHttpError) as exc_info:
        await client.get_user(2)
    assert exc_info.value.status == 503


@pytest.mark.asyncio
async def test_connection_failure_is_retryable() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _registry(MockServer(refuse)).get("users")
    with pytest.raises(RetryableError) as exc_info:
        await client.get_user(1)
    assert exc_info.value.status is None
    assert isinstance(exc_info.value.cause, httpx.ConnectError)

    client = _registry(MockServer(refuse), instances=(ExceptionPropagationPolicy.UNWRAP,)).get("users")
    with pytest.raises(httpx.ConnectError):
        await client.get_user(1)


@pytest.mark.asyncio
async def test_per_call_options_override_timeouts() -> None:
    server = MockServer(lambda request: httpx.Response(200, json={}))
    client = _registry(server).get("users")

    await client.slow(Options(connect_timeout_ms=1500, read_timeout_ms=2500))

    timeout = server.requests[0].extensions["timeout"]
    assert timeout["connect"] == 1.5
    assert timeout["read"] == 2.5


@pytest.mark.asyncio
async def test_interceptors_from_context_apply() -> None:
    server = MockServer(_user_json)
    client = _registry(server, instances=(BasicAuthRequestInterceptor("ann", "secret"),)).get("users")
    await client.get_user(1)
    assert server.requests[0].headers["authorization"] == "Basic YW5uOnNlY3JldA=="


@pytest.mark.asyncio
async def test_form_parameters_are_url_encoded() -> None:
    server = MockServer(lambda request: httpx.Response(200, json={"token": "t"}))
    client = _registry(server, AuthClient).get("auth")

    assert await client.login("ann", "s3cret&more") == {"token": "t"}
    request = server.requests[0]
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    assert request.content == b"username=ann&password=s3cret%26more"


@pytest.mark.asyncio
async def test_query_map_parameters() -> None:
    server = MockServer(lambda request: httpx.Response(200, json=[]))
    client = _registry(server, AuthClient).get("auth")
    await client.filter({"status": "active", "page": 2})
    assert dict(server.requests[0].url.params) == {"status": "active", "page": "2"}


@pytest.mark.asyncio
async def test_fallback_answers_failed_calls() -> None:
    server = MockServer(lambda request: httpx.Response(500))
    client = _registry(server, GuardedUserClient).get("guarded-users")
    assert await client.get_user(5) == User(id=5, name="fallback")


@pytest.mark.asyncio
async def test_fallback_factory_sees_the_cause() -> None:
    server = MockServer(lambda request: httpx.Response(500))
    client = _registry(server, FactoryUserClient).get("factory-users")
    assert await client.get_user(5) == User(id=5, name="FeignHttpError")


@pytest.mark.asyncio
async def test_successful_calls_bypass_the_fallback() -> None:
    server = MockServer(_user_json)
    client = _registry(server, GuardedUserClient).get("guarded-users")
    assert await client.get_user(9) == User(id=9, name="ann")


def test_sync_client_blocks_until_done() -> None:
    server = MockServer(lambda request: httpx.Response(200, content=request.content or b'{"id": 3, "name": "ann"}'))
    client = _registry(server, SyncUserClient).get("sync-users")

    assert client.get_user(3) == User(id=3, name="ann")
    renamed = client.rename(3, User(id=3, name="zed"), trace="abc")

    assert renamed == User(id=3, name="zed")
    put = server.requests[1]
    assert put.method == "PUT"
    assert str(put.url) == "http://users.test/users/3"
    assert put.headers["x-trace"] == "abc"


@pytest.mark.asyncio
async def test_sync_client_inside_running_loop() -> None:
    server = MockServer(_user_json)
    client = _registry(server, SyncUserClient).get("sync-users")
    assert client.get_user(4) == User(id=4, name="ann")


@pytest.mark.asyncio
async def test_full_logging_writes_exchange(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="aduib_feign.client")
    server = MockServer(_user_json)
    client = _registry(server, instances=(LogLevel.FULL,)).get("users")

    await client.get_user(7)

    messages = [record.getMessage() for record in caplog.records if record.name.startswith("aduib_feign.client")]
    assert "[UserClient#get_user(int)] ---> GET http://users.test/api/users/7" in messages
    assert any(message.startswith("[UserClient#get_user(int)] <--- HTTP 200") for message in messages)
    assert any('"name"' in message and '"ann"' in message for message in messages)
    assert any("<--- END HTTP (" in message for message in messages)


class StampingTransport(Transport):
    """Adds the attempt's config key as a header before delegating."""

    def __init__(self, delegate: Transport) -> None:
        self.delegate = delegate

    async def execute(self, request: HttpRequest, options: Options) -> HttpResponse:
        stamped = dataclasses.replace(
            request,
            headers=(*request.headers, ("X-Config-Key", (request.config_key or "",))),
        )
        return await self.delegate.execute(stamped, options)


class StampingCapability(Capability):
    def enrich_transport(self, transport: Transport) -> Transport:
        return StampingTransport(transport)


@pytest.mark.asyncio
async def test_capability_wraps_the_transport() -> None:
    server = MockServer(_user_json)
    client = _registry(server, instances=(StampingCapability(),)).get("users")

    await client.get_user(3)

    assert server.requests[0].headers["X-Config-Key"] == "UserClient#get_user(int)"
