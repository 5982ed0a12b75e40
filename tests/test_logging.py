from __future__ import annotations

import io
import json
import logging

import pytest

from aduib_feign.http import HttpRequest, HttpResponse
from aduib_feign.observability import (
    FeignLogger,
    FeignLoggerFactory,
    LogContext,
    LogLevel,
    StructuredFeignLoggerFactory,
    get_logger,
)

from tests.fixtures_clients import UserClient


def test_json_logger_includes_call_context() -> None:
    stream = io.StringIO()
    logger = get_logger("tests.logging.json", log_format="json", stream=stream)

    with LogContext(client="users", method="UserClient#get_user(int)", request_id="r-1", tenant="acme"):
        logger.info("calling", extra={"attempt": 2})

    payload = json.loads(stream.getvalue().strip())
    assert payload["message"] == "calling"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "tests.logging.json"
    assert payload["client"] == "users"
    assert payload["method"] == "UserClient#get_user(int)"
    assert payload["request_id"] == "r-1"
    assert payload["tenant"] == "acme"
    assert payload["attempt"] == 2


def test_console_logger_fills_missing_context() -> None:
    stream = io.StringIO()
    logger = get_logger("tests.logging.console", log_format="console", stream=stream)
    logger.warning("no call in flight")
    line = stream.getvalue()
    assert "WARNING tests.logging.console no call in flight" in line
    assert "client=- method=- request_id=-" in line


def test_get_logger_attaches_one_handler_per_format() -> None:
    stream = io.StringIO()
    logger = get_logger("tests.logging.once", log_format="json", stream=stream)
    get_logger("tests.logging.once", log_format="json", stream=stream)
    assert len(logger.handlers) == 1
    assert logger.propagate is False


def test_log_context_nests_and_restores() -> None:
    LogContext.clear()
    with LogContext(client="outer"):
        with LogContext(method="inner#call()"):
            assert LogContext.snapshot()["client"] == "outer"
            assert LogContext.snapshot()["method"] == "inner#call()"
        assert LogContext.snapshot()["method"] is None
    assert LogContext.snapshot()["client"] is None


def test_logger_factory_names_loggers_after_client_type() -> None:
    feign_logger = FeignLoggerFactory().create(UserClient)
    assert feign_logger.logger.name == "aduib_feign.client.tests.fixtures_clients.UserClient"


def _exchange() -> tuple[HttpRequest, HttpResponse]:
    request = HttpRequest(
        method="POST",
        url="http://users.test/users",
        headers=(("Content-Type", ("application/json",)),),
        body=b'{"name": "ann"}',
        config_key="UserClient#create_user(User)",
    )
    response = HttpResponse(
        status=201,
        reason="Created",
        headers={"Content-Type": ("application/json",)},
        body=b'{"id": 1}',
        request=request,
    )
    return request, response


@pytest.mark.parametrize(
    ("level", "expected"),
    [
        (LogLevel.NONE, []),
        (
            LogLevel.BASIC,
            [
                "[k] ---> POST http://users.test/users",
                "[k] <--- HTTP 201 Created (5ms)",
            ],
        ),
        (
            LogLevel.HEADERS,
            [
                "[k] ---> POST http://users.test/users",
                "[k] Content-Type: application/json",
                "[k] ---> END HTTP (15-byte body)",
                "[k] <--- HTTP 201 Created (5ms)",
                "[k] Content-Type: application/json",
                "[k] <--- END HTTP (9-byte body)",
            ],
        ),
        (
            LogLevel.FULL,
            [
                "[k] ---> POST http://users.test/users",
                "[k] Content-Type: application/json",
                '[k] {"name": "ann"}',
                "[k] ---> END HTTP (15-byte body)",
                "[k] <--- HTTP 201 Created (5ms)",
                "[k] Content-Type: application/json",
                '[k] {"id": 1}',
                "[k] <--- END HTTP (9-byte body)",
            ],
        ),
    ],
)
def test_feign_logger_levels(caplog: pytest.LogCaptureFixture, level: LogLevel, expected: list[str]) -> None:
    caplog.set_level(logging.DEBUG, logger="tests.feign_logger")
    feign_logger = FeignLogger(logging.getLogger("tests.feign_logger"))
    request, response = _exchange()

    feign_logger.log_request("k", level, request)
    feign_logger.log_response("k", level, response, 5.0)

    assert [record.getMessage() for record in caplog.records] == expected
    assert all(record.levelno == logging.DEBUG for record in caplog.records)


def test_feign_logger_reports_io_errors_and_retries(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="tests.feign_logger")
    feign_logger = FeignLogger(logging.getLogger("tests.feign_logger"))

    feign_logger.log_retry(None, LogLevel.BASIC, 2)
    feign_logger.log_io_exception("k", LogLevel.BASIC, ConnectionError("refused"), 12.4)

    assert [record.getMessage() for record in caplog.records] == [
        "[-] ---> RETRYING (attempt 2)",
        "[k] <--- ERROR ConnectionError: refused (12ms)",
    ]


def test_level_ordering() -> None:
    assert LogLevel.FULL.includes(LogLevel.HEADERS)
    assert LogLevel.BASIC.includes(LogLevel.BASIC)
    assert not LogLevel.NONE.includes(LogLevel.BASIC)


class AuditedClient:
    pass


def test_structured_logger_factory_writes_json_lines() -> None:
    stream = io.StringIO()
    feign_logger = StructuredFeignLoggerFactory(log_format="json", stream=stream).create(AuditedClient)
    request, _ = _exchange()

    with LogContext(client="audited"):
        feign_logger.log_request("k", LogLevel.BASIC, request)

    payload = json.loads(stream.getvalue().splitlines()[0])
    assert payload["message"] == "[k] ---> POST http://users.test/users"
    assert payload["level"] == "DEBUG"
    assert payload["logger"].endswith(".AuditedClient")
    assert payload["client"] == "audited"
