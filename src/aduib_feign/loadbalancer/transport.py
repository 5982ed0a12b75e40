from __future__ import annotations

import logging
from collections.abc import Iterable
from urllib.parse import urlsplit

import httpx

from aduib_feign.config.options import Options
from aduib_feign.http import HttpRequest, HttpResponse
from aduib_feign.loadbalancer.instances import ServiceInstance, ServiceInstanceChooser, choose_instance
from aduib_feign.loadbalancer.lifecycle import (
    CompletionContext,
    CompletionStatus,
    LoadBalancerLifecycle,
    LoadBalancerRequest,
    build_request_data,
    execute_with_lifecycle,
    notify,
)
from aduib_feign.transport import Transport

__all__ = ["LoadBalancedTransport", "reconstruct_url", "service_id_of"]

logger = logging.getLogger(__name__)


def service_id_of(url: str) -> str:
    """Return the host of ``url`` as written; service ids keep their case."""
    netloc = urlsplit(url).netloc.rpartition("@")[2]
    if netloc.startswith("["):
        return netloc[1 : netloc.index("]")]
    return netloc.partition(":")[0]


def reconstruct_url(instance: ServiceInstance, original: str) -> str:
    """Replace scheme, host and port of ``original`` with the instance's."""
    url = httpx.URL(original)
    return str(url.copy_with(scheme=instance.scheme, host=instance.host, port=instance.port))


class LoadBalancedTransport(Transport):
    """Transport that resolves the request host as a service id.

    Args:
        delegate: Transport that sends the rewritten request.
        chooser: Picks a concrete instance per call.
        lifecycles: Observers notified around each execution.
    """

    def __init__(
        self,
        delegate: Transport,
        chooser: ServiceInstanceChooser,
        lifecycles: Iterable[LoadBalancerLifecycle] = (),
    ) -> None:
        self._delegate = delegate
        self._chooser = chooser
        self._lifecycles = list(lifecycles)

    @property
    def delegate(self) -> Transport:
        return self._delegate

    def add_lifecycle(self, lifecycle: LoadBalancerLifecycle) -> None:
        self._lifecycles.append(lifecycle)

    async def execute(self, request: HttpRequest, options: Options) -> HttpResponse:
        service_id = service_id_of(request.url)
        lb_request = LoadBalancerRequest(service_id=service_id, data=build_request_data(request))
        observers = [lifecycle for lifecycle in self._lifecycles if lifecycle.supports(service_id)]
        notify(observers, "on_start", lb_request)

        instance = await choose_instance(self._chooser, service_id)
        if instance is None:
            logger.warning("Load balancer does not contain an instance for the service %s", service_id)
            notify(observers, "on_complete", CompletionContext(CompletionStatus.DISCARD, lb_request))
            return HttpResponse(
                status=503,
                reason="Service Unavailable",
                body=f"Load balancer does not contain an instance for the service {service_id}".encode(),
                request=request,
            )

        rewritten = HttpRequest(
            method=request.method,
            url=reconstruct_url(instance, request.url),
            headers=request.headers,
            body=request.body,
            config_key=request.config_key,
        )
        logger.debug("Routing %s to %s", service_id, instance.instance_id)
        return await execute_with_lifecycle(
            lambda: self._delegate.execute(rewritten, options),
            lb_request,
            instance,
            observers,
        )

    async def aclose(self) -> None:
        await self._delegate.aclose()
