"""Fluent assembly of a client proxy from its components."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from aduib_feign.capability import Capability
from aduib_feign.codec import Decoder, DefaultErrorDecoder, Encoder, ErrorDecoder, JsonDecoder, JsonEncoder
from aduib_feign.config.options import Options
from aduib_feign.contract.compiler import Contract, MvcContract
from aduib_feign.contract.registry import ContractRegistry
from aduib_feign.http import HttpRequest, PreparedRequest
from aduib_feign.interceptors import RequestInterceptor
from aduib_feign.invocation import MethodHandler, create_proxy
from aduib_feign.observability.request_logger import FeignLoggerFactory, LogLevel
from aduib_feign.retry import NEVER_RETRY, ExceptionPropagationPolicy, Retryer
from aduib_feign.transport import HttpxTransport, Transport

__all__ = ["BuilderCustomizer", "FeignBuilder", "HardCodedTarget", "Target"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Target(ABC, Generic[T]):
    """Where a client's requests go."""

    type: type[T]
    name: str
    url: str

    @abstractmethod
    def apply(self, request: PreparedRequest) -> HttpRequest:
        """Attach the target URL to ``request`` and freeze it."""


@dataclass(frozen=True)
class HardCodedTarget(Target[T]):
    type: type[T]
    name: str
    url: str

    def apply(self, request: PreparedRequest) -> HttpRequest:
        if not request.target_url:
            request.target_url = self.url
        return request.to_request()


class FeignBuilder:
    """Collects client components; ``target`` compiles and returns the proxy.

    Setters return the builder. ``request_interceptor`` and ``capability``
    append, every other setter replaces the previous value.
    """

    def __init__(self, contract_registry: ContractRegistry | None = None) -> None:
        self._contract_registry = contract_registry
        self._transport: Transport | None = None
        self._encoder: Encoder = JsonEncoder()
        self._decoder: Decoder = JsonDecoder()
        self._error_decoder: ErrorDecoder = DefaultErrorDecoder()
        self._contract: Contract = MvcContract()
        self._retryer: Retryer = NEVER_RETRY
        self._options_supplier: Callable[[], Options] = Options
        self._log_level = LogLevel.NONE
        self._logger_factory = FeignLoggerFactory()
        self._interceptors: list[RequestInterceptor] = []
        self._capabilities: list[Capability] = []
        self._propagation_policy = ExceptionPropagationPolicy.NONE
        self._dismiss404 = False

    def transport(self, transport: Transport) -> FeignBuilder:
        self._transport = transport
        return self

    def encoder(self, encoder: Encoder) -> FeignBuilder:
        self._encoder = encoder
        return self

    def decoder(self, decoder: Decoder) -> FeignBuilder:
        self._decoder = decoder
        return self

    def error_decoder(self, error_decoder: ErrorDecoder) -> FeignBuilder:
        self._error_decoder = error_decoder
        return self

    def contract(self, contract: Contract) -> FeignBuilder:
        self._contract = contract
        return self

    def retryer(self, retryer: Retryer) -> FeignBuilder:
        self._retryer = retryer
        return self

    def options(self, options: Options) -> FeignBuilder:
        self._options_supplier = lambda: options
        return self

    def options_supplier(self, supplier: Callable[[], Options]) -> FeignBuilder:
        """Read options on every call, e.g. from a refreshable cell."""
        self._options_supplier = supplier
        return self

    def log_level(self, level: LogLevel) -> FeignBuilder:
        self._log_level = level
        return self

    def logger_factory(self, factory: FeignLoggerFactory) -> FeignBuilder:
        self._logger_factory = factory
        return self

    def request_interceptor(self, interceptor: RequestInterceptor) -> FeignBuilder:
        self._interceptors.append(interceptor)
        return self

    def request_interceptors(self, interceptors: Iterable[RequestInterceptor]) -> FeignBuilder:
        self._interceptors = list(interceptors)
        return self

    def capability(self, capability: Capability) -> FeignBuilder:
        self._capabilities.append(capability)
        return self

    def exception_propagation_policy(self, policy: ExceptionPropagationPolicy) -> FeignBuilder:
        self._propagation_policy = policy
        return self

    def dismiss404(self, enabled: bool = True) -> FeignBuilder:
        self._dismiss404 = enabled
        return self

    @property
    def current_transport(self) -> Transport | None:
        return self._transport

    @property
    def interceptors(self) -> list[RequestInterceptor]:
        return list(self._interceptors)

    def _enriched(self) -> dict[str, Any]:
        if self._transport is None:
            self._transport = HttpxTransport()
        transport = self._transport
        retryer = self._retryer
        encoder = self._encoder
        decoder = self._decoder
        error_decoder = self._error_decoder
        contract = self._contract
        interceptors = list(self._interceptors)
        for capability in self._capabilities:
            transport = capability.enrich_transport(transport)
            retryer = capability.enrich_retryer(retryer)
            encoder = capability.enrich_encoder(encoder)
            decoder = capability.enrich_decoder(decoder)
            error_decoder = capability.enrich_error_decoder(error_decoder)
            contract = capability.enrich_contract(contract)
            interceptors = [capability.enrich_interceptor(item) for item in interceptors]
        return {
            "transport": transport,
            "retryer": retryer,
            "encoder": encoder,
            "decoder": decoder,
            "error_decoder": error_decoder,
            "contract": contract,
            "interceptors": interceptors,
        }

    def target(self, target: Target[T] | type[T], url: str | None = None) -> T:
        """Compile the target type's contract and return its proxy.

        ``target`` is a ``Target`` or a client type; a type needs ``url``.
        """
        if not isinstance(target, Target):
            if url is None:
                raise ValueError("url is required when targeting a type")
            target = HardCodedTarget(target, target.__name__, url)
        components = self._enriched()
        registry = self._contract_registry or ContractRegistry()
        templates = registry.register(target.type, components["contract"])
        feign_logger = self._logger_factory.create(target.type)
        handlers = {
            name: MethodHandler(
                template,
                target,
                transport=components["transport"],
                encoder=components["encoder"],
                decoder=components["decoder"],
                error_decoder=components["error_decoder"],
                retryer=components["retryer"],
                interceptors=components["interceptors"],
                options_supplier=self._options_supplier,
                feign_logger=feign_logger,
                log_level=self._log_level,
                propagation_policy=self._propagation_policy,
                dismiss404=self._dismiss404,
            )
            for name, template in templates.items()
        }
        logger.debug("Targeting %s at %s", target.type.__qualname__, target.url)
        return create_proxy(target.type, target, handlers)


class BuilderCustomizer(ABC):
    """Gets the final word on a builder after all configuration was applied."""

    @abstractmethod
    def customize(self, builder: FeignBuilder) -> None:
        """Adjust ``builder`` in place."""
