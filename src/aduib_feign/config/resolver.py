"""Merges declarative and property configuration into one effective config.

Three layers take part, in an order chosen by ``default_to_properties``:

* the declarative layer, looked up in the client's context scope;
* the property entry named by ``default_config``;
* the property entry named by the client's context id.

With ``LayerOrder.ANNOTATIONS_FIRST`` the property layers are applied last
and win; with ``LayerOrder.PROPERTIES_FIRST`` the declarative layer wins.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Callable

from aduib_feign.capability import Capability
from aduib_feign.codec import Decoder, DefaultErrorDecoder, Encoder, ErrorDecoder, ErrorDecoderFactory, JsonDecoder, JsonEncoder
from aduib_feign.config.models import ClientConfigProperties, FeignClientProperties
from aduib_feign.config.options import Options, options_name
from aduib_feign.context import FeignClientConfigurer, FeignContext
from aduib_feign.contract.compiler import Contract, MvcContract
from aduib_feign.descriptor import ClientDescriptor
from aduib_feign.interceptors import DefaultHeadersInterceptor, DefaultQueryParamsInterceptor, RequestInterceptor
from aduib_feign.observability.request_logger import LogLevel
from aduib_feign.ordering import sort_by_order
from aduib_feign.retry import NEVER_RETRY, ExceptionPropagationPolicy, Retryer


__all__ = [
    "ConfigLayer",
    "ConfigurationResolver",
    "EffectiveClientConfig",
    "LayerOrder",
    "overlay",
]

logger = logging.getLogger(__name__)

_SCALAR_FIELDS = (
    "log_level",
    "retryer",
    "error_decoder",
    "encoder",
    "decoder",
    "contract",
    "exception_propagation_policy",
)


class LayerOrder(str, enum.Enum):
    ANNOTATIONS_FIRST = "annotations_first"
    PROPERTIES_FIRST = "properties_first"

    @classmethod
    def from_default_to_properties(cls, default_to_properties: bool) -> LayerOrder:
        return cls.ANNOTATIONS_FIRST if default_to_properties else cls.PROPERTIES_FIRST

    def arrange(self, declarative: ConfigLayer, properties: Sequence[ConfigLayer]) -> list[ConfigLayer]:
        if self is LayerOrder.ANNOTATIONS_FIRST:
            return [declarative, *properties]
        return [*properties, declarative]


@dataclass
class ConfigLayer:
    """One source's contribution; ``None`` and empty fields are "not set"."""

    source: str = ""
    log_level: LogLevel | None = None
    retryer: Retryer | None = None
    error_decoder: ErrorDecoder | None = None
    encoder: Encoder | None = None
    decoder: Decoder | None = None
    contract: Contract | None = None
    exception_propagation_policy: ExceptionPropagationPolicy | None = None
    options: Options | None = None
    options_overrides: dict[str, Any] = field(default_factory=dict)
    options_name: str | None = None
    interceptors: list[RequestInterceptor] = field(default_factory=list)
    capabilities: list[Capability] = field(default_factory=list)
    dismiss404: bool | None = None
    default_headers: dict[str, list[str]] | None = None
    default_query_params: dict[str, list[str]] | None = None


def overlay(base: ConfigLayer, layer: ConfigLayer) -> ConfigLayer:
    """Apply ``layer`` on top of ``base`` and return the merged layer.

    Scalars replace when set; interceptors and capabilities concatenate;
    timeouts are replaced as one ``Options`` value; default headers and
    query parameters merge per key; ``dismiss404`` can only be switched on.
    """
    merged = dataclasses.replace(
        base,
        source=f"{base.source} < {layer.source}" if base.source else layer.source,
        interceptors=[*base.interceptors, *layer.interceptors],
        capabilities=[*base.capabilities, *layer.capabilities],
    )
    for name in _SCALAR_FIELDS:
        value = getattr(layer, name)
        if value is not None:
            setattr(merged, name, value)
    if layer.options is not None:
        merged.options = layer.options
        merged.options_name = layer.options_name
    elif layer.options_overrides:
        merged.options = dataclasses.replace(merged.options or Options(), **layer.options_overrides)
        merged.options_name = None
    if layer.dismiss404:
        merged.dismiss404 = True
    if layer.default_headers:
        merged.default_headers = {**(base.default_headers or {}), **layer.default_headers}
    if layer.default_query_params:
        merged.default_query_params = {**(base.default_query_params or {}), **layer.default_query_params}
    return merged


@dataclass(frozen=True)
class EffectiveClientConfig:
    """The merged, final configuration of one client."""

    log_level: LogLevel = LogLevel.NONE
    retryer: Retryer = NEVER_RETRY
    error_decoder: ErrorDecoder = field(default_factory=DefaultErrorDecoder)
    options: Options = field(default_factory=Options)
    options_name: str | None = None
    interceptors: tuple[RequestInterceptor, ...] = ()
    encoder: Encoder = field(default_factory=JsonEncoder)
    decoder: Decoder = field(default_factory=JsonDecoder)
    contract: Contract = field(default_factory=MvcContract)
    exception_propagation_policy: ExceptionPropagationPolicy = ExceptionPropagationPolicy.NONE
    capabilities: tuple[Capability, ...] = ()
    dismiss404: bool = False
    default_headers: dict[str, list[str]] = field(default_factory=dict)
    default_query_params: dict[str, list[str]] = field(default_factory=dict)
    sources: str = ""

    @property
    def refreshable(self) -> bool:
        return self.options_name is not None


class ConfigurationResolver:
    """Computes ``EffectiveClientConfig`` for client descriptors.

    Args:
        context: Scoped context holding declarative configuration.
        properties: Property layer; ``None`` disables it.
    """

    def __init__(self, context: FeignContext, properties: FeignClientProperties | None = None) -> None:
        self._context = context
        self._properties = properties
        # registration and build share one compiled template set
        self._default_contract = MvcContract()

    @property
    def properties(self) -> FeignClientProperties | None:
        return self._properties

    def layers(self, descriptor: ClientDescriptor) -> list[ConfigLayer]:
        """Return the layers for ``descriptor`` in application order."""
        context_id = descriptor.context_id
        configurer = self._context.get_instance(context_id, FeignClientConfigurer)
        inherit = configurer.inherit_parent_configuration() if configurer is not None else True
        declarative = self.declarative_layer(descriptor, inherit=inherit)
        properties = self._properties
        if properties is None or not inherit:
            return [declarative]
        property_layers = [
            self.property_layer(
                properties.config.get(properties.default_config),
                descriptor,
                source=f"properties[{properties.default_config}]",
            ),
            self.property_layer(
                properties.config.get(context_id),
                descriptor,
                source=f"properties[{context_id}]",
            ),
        ]
        order = LayerOrder.from_default_to_properties(properties.default_to_properties)
        return order.arrange(declarative, property_layers)

    def resolve(self, descriptor: ClientDescriptor) -> EffectiveClientConfig:
        merged = ConfigLayer()
        for layer in self.layers(descriptor):
            merged = overlay(merged, layer)

        error_decoder = merged.error_decoder
        if error_decoder is None:
            factory = self._context.get_instance(descriptor.context_id, ErrorDecoderFactory)
            error_decoder = factory.create(descriptor.type) if factory is not None else DefaultErrorDecoder()

        interceptors = sort_by_order(merged.interceptors)
        if merged.default_headers:
            interceptors.append(DefaultHeadersInterceptor(merged.default_headers))
        if merged.default_query_params:
            interceptors.append(DefaultQueryParamsInterceptor(merged.default_query_params))

        defaults = EffectiveClientConfig()
        config = EffectiveClientConfig(
            log_level=merged.log_level or defaults.log_level,
            retryer=merged.retryer or defaults.retryer,
            error_decoder=error_decoder,
            options=merged.options or defaults.options,
            options_name=merged.options_name,
            interceptors=tuple(interceptors),
            encoder=merged.encoder or defaults.encoder,
            decoder=merged.decoder or defaults.decoder,
            contract=merged.contract or self._default_contract,
            exception_propagation_policy=merged.exception_propagation_policy or defaults.exception_propagation_policy,
            capabilities=tuple(sort_by_order(merged.capabilities)),
            dismiss404=bool(merged.dismiss404),
            default_headers=dict(merged.default_headers or {}),
            default_query_params=dict(merged.default_query_params or {}),
            sources=merged.source,
        )
        logger.debug("Resolved configuration for %s from %s", descriptor.context_id, config.sources)
        return config

    # Layers.

    def declarative_layer(self, descriptor: ClientDescriptor, *, inherit: bool = True) -> ConfigLayer:
        context_id = descriptor.context_id
        ctx = self._context
        get: Callable[[str, type], Any] = ctx.get_instance if inherit else ctx.get_instance_without_ancestors
        get_all: Callable[[str, type], dict[str, Any]] = (
            ctx.get_instances if inherit else ctx.get_instances_without_ancestors
        )

        layer = ConfigLayer(
            source="declarative",
            log_level=get(context_id, LogLevel),
            retryer=get(context_id, Retryer),
            error_decoder=get(context_id, ErrorDecoder),
            encoder=get(context_id, Encoder),
            decoder=get(context_id, Decoder),
            contract=get(context_id, Contract),
            exception_propagation_policy=get(context_id, ExceptionPropagationPolicy),
            interceptors=sort_by_order(get_all(context_id, RequestInterceptor).values()),
            capabilities=sort_by_order(get_all(context_id, Capability).values()),
            dismiss404=descriptor.dismiss404 or None,
        )
        options = get(context_id, Options)
        if options is None and descriptor.refreshable:
            name = options_name(context_id)
            cell = ctx.options_registry.get(name) or ctx.options_registry.register(name)
            layer.options = cell.get()
            layer.options_name = name
        else:
            layer.options = options
        return layer

    def property_layer(
        self,
        config: ClientConfigProperties | None,
        descriptor: ClientDescriptor,
        *,
        source: str,
    ) -> ConfigLayer:
        layer = ConfigLayer(source=source)
        if config is None:
            return layer
        context_id = descriptor.context_id
        layer.log_level = config.logger_level
        if not descriptor.refreshable:
            overrides = {
                "connect_timeout_ms": config.connect_timeout,
                "read_timeout_ms": config.read_timeout,
                "follow_redirects": config.follow_redirects,
            }
            layer.options_overrides = {key: value for key, value in overrides.items() if value is not None}
        layer.retryer = self._get_or_instantiate(context_id, config.retryer)
        layer.error_decoder = self._get_or_instantiate(context_id, config.error_decoder)
        layer.interceptors = [
            self._get_or_instantiate(context_id, item) for item in config.request_interceptors or ()
        ]
        layer.dismiss404 = config.dismiss404
        layer.encoder = self._get_or_instantiate(context_id, config.encoder)
        layer.decoder = self._get_or_instantiate(context_id, config.decoder)
        layer.contract = self._get_or_instantiate(context_id, config.contract)
        layer.exception_propagation_policy = config.exception_propagation_policy
        layer.capabilities = [self._get_or_instantiate(context_id, item) for item in config.capabilities or ()]
        layer.default_headers = config.default_request_headers
        layer.default_query_params = config.default_query_parameters
        return layer

    def _get_or_instantiate(self, context_id: str, value: Any) -> Any:
        if value is None or not isinstance(value, type):
            return value
        existing = self._context.get_instance(context_id, value)
        if existing is not None:
            return existing
        return value()
