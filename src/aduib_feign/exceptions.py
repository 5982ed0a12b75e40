from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any


class ContractErrorKind(str, enum.Enum):
    """Stable sub-kinds reported by contract compilation."""

    CLASS_LEVEL_ROUTING_NOT_ALLOWED = "class_level_routing_not_allowed"
    MULTIPLE_PATH_VALUES = "multiple_path_values"
    MULTIPLE_HTTP_METHODS = "multiple_http_methods"
    CONFLICTING_MAPPINGS = "conflicting_mappings"
    CONFLICTING_PARAMETER_BINDINGS = "conflicting_parameter_bindings"
    UNRESOLVABLE_PLACEHOLDER = "unresolvable_placeholder"
    MALFORMED_URL = "malformed_url"
    TOO_MANY_BODY_PARAMETERS = "too_many_body_parameters"
    BODY_WITH_FORM_PARAMETERS = "body_with_form_parameters"
    DUPLICATE_QUERY_MAP = "duplicate_query_map"
    DUPLICATE_HEADER_MAP = "duplicate_header_map"


class ConfigErrorKind(str, enum.Enum):
    """Stable sub-kinds reported while assembling clients."""

    MISSING_NAME = "missing_name"
    ILLEGAL_SERVICE_NAME = "illegal_service_name"
    FALLBACK_IS_INTERFACE = "fallback_is_interface"
    NO_LOAD_BALANCER_TRANSPORT = "no_load_balancer_transport"
    MISSING_COMPONENT = "missing_component"
    BEAN_CREATION_FAILED = "bean_creation_failed"
    NOT_A_CLIENT = "not_a_client"
    DUPLICATE_CLIENT = "duplicate_client"
    INVALID_PROPERTIES = "invalid_properties"


@dataclass(frozen=True)
class FeignException(Exception):
    """Base class for aduib-feign exceptions with a canonical error shape."""

    code: int
    message: str
    data: Any | None = None
    cause: BaseException | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", (self.message,))
        if self.cause is not None:
            object.__setattr__(self, "__cause__", self.cause)
            object.__setattr__(self, "__suppress_context__", True)

    def to_error_dict(self) -> dict[str, Any]:
        """Return the error as a plain dict."""
        return {"code": self.code, "message": self.message, "data": self.data}


@dataclass(frozen=True)
class ContractError(FeignException):
    """Raised when a client type carries invalid routing metadata.

    Raised at compile time only; a client whose contract fails never
    becomes constructible.
    """

    code: int = 1000
    message: str = "Invalid client contract"
    kind: ContractErrorKind = ContractErrorKind.CONFLICTING_MAPPINGS
    config_key: str | None = None

    def __str__(self) -> str:
        if self.config_key:
            return f"{self.message} (kind={self.kind.value}, method={self.config_key})"
        return f"{self.message} (kind={self.kind.value})"


@dataclass(frozen=True)
class ConfigError(FeignException):
    """Raised when a client cannot be registered or assembled."""

    code: int = 1100
    message: str = "Invalid client configuration"
    kind: ConfigErrorKind = ConfigErrorKind.MISSING_COMPONENT

    def __str__(self) -> str:
        return f"{self.message} (kind={self.kind.value})"


@dataclass(frozen=True)
class PropertiesError(ConfigError):
    """Raised when a property file cannot be loaded or validated."""

    code: int = 1101
    message: str = "Invalid client properties"
    kind: ConfigErrorKind = ConfigErrorKind.INVALID_PROPERTIES


@dataclass(frozen=True)
class InvocationFault(FeignException):
    """Raised when a single call through a client proxy fails."""

    code: int = 2000
    message: str = "Invocation failed"
    config_key: str | None = None


@dataclass(frozen=True)
class ExpansionError(InvocationFault):
    """Raised when an argument cannot be expanded into the request."""

    code: int = 2001
    message: str = "Argument expansion failed"


@dataclass(frozen=True)
class EncodeError(InvocationFault):
    """Raised when the request body cannot be encoded."""

    code: int = 2002
    message: str = "Request encoding failed"


@dataclass(frozen=True)
class DecodeError(InvocationFault):
    """Raised when the response body cannot be decoded."""

    code: int = 2003
    message: str = "Response decoding failed"


@dataclass(frozen=True)
class FeignHttpError(InvocationFault):
    """Raised for a non-success HTTP status returned by the remote side."""

    code: int = 2100
    message: str = "HTTP error"
    status: int = 0
    reason: str = ""
    method: str = ""
    url: str = ""
    headers: tuple[tuple[str, tuple[str, ...]], ...] = ()
    body: bytes = b""

    @property
    def content_text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class RetryableError(InvocationFault):
    """Raised when a call failed in a way the retryer may repeat.

    Args:
        retry_after: Optional epoch time in seconds before which the call
            should not be retried.
        status: HTTP status, or ``None`` for I/O failures.
    """

    code: int = 2200
    message: str = "Retryable invocation failure"
    retry_after: float | None = None
    status: int | None = None
    method: str = ""


__all__ = [
    "ConfigError",
    "ConfigErrorKind",
    "ContractError",
    "ContractErrorKind",
    "DecodeError",
    "EncodeError",
    "ExpansionError",
    "FeignException",
    "FeignHttpError",
    "InvocationFault",
    "PropertiesError",
    "RetryableError",
]
