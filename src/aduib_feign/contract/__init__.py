from aduib_feign.contract.compiler import (
    Contract,
    MvcContract,
    NoParameterNameDiscoverer,
    ParameterNameDiscoverer,
    SignatureParameterNameDiscoverer,
)
from aduib_feign.contract.conversion import ConversionService
from aduib_feign.contract.processors import AnnotatedParameterContext, AnnotatedParameterProcessor
from aduib_feign.contract.registry import ContractRegistry
from aduib_feign.contract.template import MethodMetadata, RequestTemplate

__all__ = [
    "AnnotatedParameterContext",
    "AnnotatedParameterProcessor",
    "Contract",
    "ContractRegistry",
    "ConversionService",
    "MethodMetadata",
    "MvcContract",
    "NoParameterNameDiscoverer",
    "ParameterNameDiscoverer",
    "RequestTemplate",
    "SignatureParameterNameDiscoverer",
]
