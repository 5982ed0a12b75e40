from .instances import RoundRobinInstanceChooser, ServiceInstance, ServiceInstanceChooser
from .lifecycle import (
    CompletionContext,
    CompletionStatus,
    LoadBalancerLifecycle,
    LoadBalancerRequest,
    RequestData,
    ResponseData,
    execute_with_lifecycle,
)
from .transport import LoadBalancedTransport

__all__ = [
    "CompletionContext",
    "CompletionStatus",
    "LoadBalancedTransport",
    "LoadBalancerLifecycle",
    "LoadBalancerRequest",
    "RequestData",
    "ResponseData",
    "RoundRobinInstanceChooser",
    "ServiceInstance",
    "ServiceInstanceChooser",
    "execute_with_lifecycle",
]
