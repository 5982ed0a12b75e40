"""Builds and caches one live client per client identity."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from aduib_feign.builder import BuilderCustomizer, FeignBuilder, HardCodedTarget
from aduib_feign.config.models import FeignClientProperties
from aduib_feign.config.resolver import ConfigurationResolver, EffectiveClientConfig
from aduib_feign.context import FeignContext
from aduib_feign.descriptor import ClientDescriptor, FallbackStrategy
from aduib_feign.exceptions import ConfigError, ConfigErrorKind
from aduib_feign.loadbalancer.transport import LoadBalancedTransport
from aduib_feign.observability.request_logger import FeignLoggerFactory
from aduib_feign.ordering import sort_by_order
from aduib_feign.targeter import DefaultTargeter, FallbackTargeter, Targeter
from aduib_feign.transport import Transport

__all__ = ["CompiledClient", "FeignClientFactory"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledClient:
    """A built client together with what it was built from."""

    descriptor: ClientDescriptor
    config: EffectiveClientConfig
    target_url: str
    transport: Transport | None
    client: Any


class FeignClientFactory:
    """Assembles clients from descriptors.

    Each ``context_id`` is built at most once; concurrent first calls wait
    for the single in-flight build. A failed build leaves nothing cached.

    Args:
        context: Scoped context supplying declarative configuration.
        properties: Property layer passed to the configuration resolver.
        customizers: Extra builder customizers applied after the context's.
    """

    def __init__(
        self,
        context: FeignContext,
        properties: FeignClientProperties | None = None,
        customizers: Iterable[BuilderCustomizer] = (),
    ) -> None:
        self._context = context
        self._resolver = ConfigurationResolver(context, properties)
        self._customizers = list(customizers)
        self._clients: dict[str, CompiledClient] = {}
        self._lock = threading.Lock()

    @property
    def context(self) -> FeignContext:
        return self._context

    @property
    def resolver(self) -> ConfigurationResolver:
        return self._resolver

    def build(self, descriptor: ClientDescriptor) -> CompiledClient:
        compiled = self._clients.get(descriptor.context_id)
        if compiled is not None:
            return compiled
        with self._lock:
            compiled = self._clients.get(descriptor.context_id)
            if compiled is not None:
                return compiled
            compiled = self._create(descriptor)
            self._clients[descriptor.context_id] = compiled
            logger.info("Built client %s targeting %s", descriptor.context_id, compiled.target_url)
            return compiled

    def get(self, context_id: str) -> CompiledClient | None:
        return self._clients.get(context_id)

    def _create(self, descriptor: ClientDescriptor) -> CompiledClient:
        context_id = descriptor.context_id
        config = self._resolver.resolve(descriptor)
        builder = self.configure_builder(descriptor, config)

        if descriptor.load_balanced:
            url = f"http://{descriptor.name}{descriptor.path}"
            transport = self._context.get_instance(context_id, Transport)
            if not isinstance(transport, LoadBalancedTransport):
                raise ConfigError(
                    message=(
                        f"No load balancing transport available for client {context_id}; "
                        "register a LoadBalancedTransport or declare a url"
                    ),
                    kind=ConfigErrorKind.NO_LOAD_BALANCER_TRANSPORT,
                )
            builder.transport(transport)
        else:
            url = f"{descriptor.url}{descriptor.path}"
            transport = self._context.get_instance(context_id, Transport)
            if isinstance(transport, LoadBalancedTransport):
                # a fixed url bypasses instance selection
                transport = transport.delegate
            if transport is not None:
                builder.transport(transport)

        self.apply_customizers(context_id, builder)

        target = HardCodedTarget(descriptor.type, descriptor.name, url)
        targeter = self._context.get_instance(context_id, Targeter)
        if targeter is None:
            if descriptor.fallback_strategy is FallbackStrategy.NONE:
                targeter = DefaultTargeter()
            else:
                targeter = FallbackTargeter()
        client = targeter.target(descriptor, builder, self._context, target)
        return CompiledClient(
            descriptor=descriptor,
            config=config,
            target_url=url,
            transport=builder.current_transport,
            client=client,
        )

    def configure_builder(self, descriptor: ClientDescriptor, config: EffectiveClientConfig) -> FeignBuilder:
        builder = FeignBuilder(self._context.contract_registry)
        logger_factory = self._context.get_instance(descriptor.context_id, FeignLoggerFactory)
        if logger_factory is not None:
            builder.logger_factory(logger_factory)
        builder.log_level(config.log_level)
        builder.encoder(config.encoder)
        builder.decoder(config.decoder)
        builder.contract(config.contract)
        builder.retryer(config.retryer)
        builder.error_decoder(config.error_decoder)
        if config.refreshable:
            registry = self._context.options_registry
            name = config.options_name
            builder.options_supplier(lambda: registry.current(name))
        else:
            builder.options(config.options)
        builder.request_interceptors(config.interceptors)
        builder.exception_propagation_policy(config.exception_propagation_policy)
        for capability in config.capabilities:
            builder.capability(capability)
        builder.dismiss404(config.dismiss404)
        return builder

    def apply_customizers(self, context_id: str, builder: FeignBuilder) -> None:
        customizers = sort_by_order(self._context.get_instances(context_id, BuilderCustomizer).values())
        for customizer in [*customizers, *self._customizers]:
            customizer.customize(builder)

    async def aclose(self) -> None:
        seen: set[int] = set()
        for compiled in list(self._clients.values()):
            transport = compiled.transport
            if transport is None or id(transport) in seen:
                continue
            seen.add(id(transport))
            await transport.aclose()
        self._clients.clear()
        self._context.close()
