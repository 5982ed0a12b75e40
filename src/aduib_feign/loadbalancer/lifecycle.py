"""Lifecycle notifications around one load-balanced request execution."""

from __future__ import annotations

import enum
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from aduib_feign.http import HttpRequest, HttpResponse
from aduib_feign.loadbalancer.instances import ServiceInstance

__all__ = [
    "CompletionContext",
    "CompletionStatus",
    "LoadBalancerLifecycle",
    "LoadBalancerRequest",
    "RequestData",
    "ResponseData",
    "build_request_data",
    "build_response_data",
    "execute_with_lifecycle",
]

logger = logging.getLogger(__name__)


class CompletionStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    DISCARD = "discard"


@dataclass(frozen=True)
class RequestData:
    method: str
    url: str
    headers: Mapping[str, tuple[str, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class ResponseData:
    status: int
    headers: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    request: RequestData | None = None


@dataclass(frozen=True)
class LoadBalancerRequest:
    """The request as seen before an instance was chosen."""

    service_id: str
    data: RequestData


@dataclass(frozen=True)
class CompletionContext:
    status: CompletionStatus
    request: LoadBalancerRequest
    instance: ServiceInstance | None = None
    response: ResponseData | None = None
    error: BaseException | None = None


class LoadBalancerLifecycle:
    """Observer of load-balanced executions. Every hook is optional."""

    def supports(self, service_id: str) -> bool:
        return True

    def on_start(self, request: LoadBalancerRequest) -> None:
        return None

    def on_start_request(self, request: LoadBalancerRequest, instance: ServiceInstance | None) -> None:
        return None

    def on_complete(self, context: CompletionContext) -> None:
        return None


def build_request_data(request: HttpRequest) -> RequestData:
    return RequestData(method=request.method, url=request.url, headers=request.header_map())


def build_response_data(response: HttpResponse) -> ResponseData:
    request = build_request_data(response.request) if response.request is not None else None
    return ResponseData(status=response.status, headers=dict(response.headers), request=request)


def notify(lifecycles: Iterable[LoadBalancerLifecycle], hook: str, *args: Any) -> None:
    """Call ``hook`` on every observer; an observer failure is logged and skipped."""
    for lifecycle in lifecycles:
        try:
            getattr(lifecycle, hook)(*args)
        except Exception:
            logger.exception("Load balancer lifecycle %s.%s failed", type(lifecycle).__name__, hook)


async def execute_with_lifecycle(
    execute: Callable[[], Awaitable[HttpResponse]],
    lb_request: LoadBalancerRequest,
    instance: ServiceInstance | None,
    lifecycles: Iterable[LoadBalancerLifecycle],
    *,
    load_balanced: bool = True,
) -> HttpResponse:
    """Run ``execute`` and report its outcome to ``lifecycles``.

    Observers get ``on_start_request`` first, then one ``on_complete`` with
    SUCCESS and the response metadata, or FAILED and the raised fault. The
    fault is always re-raised unchanged.
    """
    observers = list(lifecycles)
    notify(observers, "on_start_request", lb_request, instance)
    try:
        response = await execute()
    except Exception as exc:
        if load_balanced:
            notify(
                observers,
                "on_complete",
                CompletionContext(CompletionStatus.FAILED, lb_request, instance, error=exc),
            )
        raise
    if load_balanced:
        notify(
            observers,
            "on_complete",
            CompletionContext(CompletionStatus.SUCCESS, lb_request, instance, response=build_response_data(response)),
        )
    return response
