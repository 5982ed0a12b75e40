from aduib_feign.observability.logging import LogContext, get_logger
from aduib_feign.observability.request_logger import (
    FeignLogger,
    FeignLoggerFactory,
    LogLevel,
    StructuredFeignLoggerFactory,
)

__all__ = [
    "FeignLogger",
    "FeignLoggerFactory",
    "LogContext",
    "LogLevel",
    "StructuredFeignLoggerFactory",
    "get_logger",
]
