"""Per-client request/response logging at a configurable level of detail."""

from __future__ import annotations

import enum
import logging
from typing import Any

from aduib_feign.http import HttpRequest, HttpResponse
from aduib_feign.observability.logging import get_logger

__all__ = ["FeignLogger", "FeignLoggerFactory", "LogLevel", "StructuredFeignLoggerFactory"]


class LogLevel(str, enum.Enum):
    """How much of each exchange a client logs."""

    NONE = "none"
    BASIC = "basic"
    HEADERS = "headers"
    FULL = "full"

    def includes(self, other: LogLevel) -> bool:
        return _RANK[self] >= _RANK[other]


_RANK = {LogLevel.NONE: 0, LogLevel.BASIC: 1, LogLevel.HEADERS: 2, LogLevel.FULL: 3}


def _format_headers(headers: Any) -> list[str]:
    items = headers.items() if hasattr(headers, "items") else headers
    return [f"{key}: {', '.join(values)}" for key, values in items]


class FeignLogger:
    """Writes exchange lines to a stdlib logger at DEBUG level."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def _log(self, config_key: str | None, message: str, *args: Any) -> None:
        self._logger.debug("[%s] " + message, config_key or "-", *args)

    def log_request(self, config_key: str | None, level: LogLevel, request: HttpRequest) -> None:
        if not level.includes(LogLevel.BASIC):
            return
        self._log(config_key, "---> %s %s", request.method, request.url)
        if level.includes(LogLevel.HEADERS):
            for line in _format_headers(request.headers):
                self._log(config_key, "%s", line)
            size = len(request.body or b"")
            if level.includes(LogLevel.FULL) and request.body:
                self._log(config_key, "%s", request.body.decode("utf-8", errors="replace"))
            self._log(config_key, "---> END HTTP (%d-byte body)", size)

    def log_retry(self, config_key: str | None, level: LogLevel, attempt: int) -> None:
        if level.includes(LogLevel.BASIC):
            self._log(config_key, "---> RETRYING (attempt %d)", attempt)

    def log_response(
        self,
        config_key: str | None,
        level: LogLevel,
        response: HttpResponse,
        elapsed_ms: float,
    ) -> None:
        if not level.includes(LogLevel.BASIC):
            return
        self._log(
            config_key,
            "<--- HTTP %d %s (%.0fms)",
            response.status,
            response.reason,
            elapsed_ms,
        )
        if level.includes(LogLevel.HEADERS):
            for line in _format_headers(response.headers):
                self._log(config_key, "%s", line)
            if level.includes(LogLevel.FULL) and response.body:
                self._log(config_key, "%s", response.text)
            self._log(config_key, "<--- END HTTP (%d-byte body)", len(response.body))

    def log_io_exception(
        self,
        config_key: str | None,
        level: LogLevel,
        exc: BaseException,
        elapsed_ms: float,
    ) -> None:
        if level.includes(LogLevel.BASIC):
            self._log(
                config_key,
                "<--- ERROR %s: %s (%.0fms)",
                type(exc).__name__,
                exc,
                elapsed_ms,
            )


class FeignLoggerFactory:
    """Creates one ``FeignLogger`` per client type."""

    prefix = "aduib_feign.client"

    def logger_name(self, client_type: type) -> str:
        return f"{self.prefix}.{client_type.__module__}.{client_type.__qualname__}"

    def create(self, client_type: type) -> FeignLogger:
        return FeignLogger(logging.getLogger(self.logger_name(client_type)))


class StructuredFeignLoggerFactory(FeignLoggerFactory):
    """Routes client loggers through the structured JSON/console handlers."""

    def __init__(self, *, log_format: str | None = None, stream: Any | None = None) -> None:
        self._log_format = log_format
        self._stream = stream

    def create(self, client_type: type) -> FeignLogger:
        return FeignLogger(
            get_logger(
                self.logger_name(client_type),
                log_format=self._log_format,
                stream=self._stream,
            )
        )
