"""Public API for aduib_feign.

Declarative HTTP clients: decorate a class with ``@feign_client`` and its
methods with routing decorators, register it, and call the generated proxy.
"""

from aduib_feign.annotations import (
    MatrixVariable,
    PathVariable,
    QueryMap,
    RequestBody,
    RequestHeader,
    RequestParam,
    RequestPart,
    collection_format,
    delete_mapping,
    feign_client,
    get_mapping,
    patch_mapping,
    post_mapping,
    put_mapping,
    request_mapping,
)
from aduib_feign.builder import BuilderCustomizer, FeignBuilder, HardCodedTarget, Target
from aduib_feign.codec import Decoder, DefaultErrorDecoder, Encoder, ErrorDecoder, JsonDecoder, JsonEncoder
from aduib_feign.config.options import Options
from aduib_feign.context import FeignClientConfigurer, FeignContext, bean
from aduib_feign.descriptor import ClientDescriptor
from aduib_feign.exceptions import (
    ConfigError,
    ConfigErrorKind,
    ContractError,
    ContractErrorKind,
    FeignException,
    FeignHttpError,
    InvocationFault,
    RetryableError,
)
from aduib_feign.factory import CompiledClient, FeignClientFactory
from aduib_feign.http import CollectionFormat, HttpMethod
from aduib_feign.interceptors import RequestInterceptor
from aduib_feign.observability.request_logger import LogLevel
from aduib_feign.ordering import order
from aduib_feign.registrar import ClientRegistry, FeignClientsRegistrar
from aduib_feign.retry import RetryPolicy, Retryer

__all__ = [
    # declarative surface
    "feign_client",
    "request_mapping",
    "get_mapping",
    "post_mapping",
    "put_mapping",
    "patch_mapping",
    "delete_mapping",
    "collection_format",
    "MatrixVariable",
    "PathVariable",
    "QueryMap",
    "RequestBody",
    "RequestHeader",
    "RequestParam",
    "RequestPart",
    "CollectionFormat",
    "HttpMethod",
    # assembly
    "FeignContext",
    "FeignClientConfigurer",
    "FeignClientFactory",
    "FeignClientsRegistrar",
    "ClientRegistry",
    "ClientDescriptor",
    "CompiledClient",
    "FeignBuilder",
    "BuilderCustomizer",
    "Target",
    "HardCodedTarget",
    "bean",
    "order",
    # components
    "Options",
    "Encoder",
    "Decoder",
    "ErrorDecoder",
    "JsonEncoder",
    "JsonDecoder",
    "DefaultErrorDecoder",
    "RequestInterceptor",
    "LogLevel",
    "Retryer",
    "RetryPolicy",
    # errors
    "FeignException",
    "ContractError",
    "ContractErrorKind",
    "ConfigError",
    "ConfigErrorKind",
    "InvocationFault",
    "FeignHttpError",
    "RetryableError",
]
