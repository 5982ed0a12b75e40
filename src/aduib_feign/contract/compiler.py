"""Compiles annotated client types into request templates."""

from __future__ import annotations

import inspect
import logging
import typing
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from aduib_feign.annotations import (
    RequestBody,
    RequestMapping,
    get_class_mapping,
    get_collection_format,
    get_method_mappings,
    split_annotated,
)
from aduib_feign.config.options import Options
from aduib_feign.contract.conversion import ConversionService, ConvertingExpander, element_type
from aduib_feign.contract.processors import (
    AnnotatedParameterContext,
    AnnotatedParameterProcessor,
    default_processors,
)
from aduib_feign.contract.template import MethodMetadata, RequestTemplate, config_key
from aduib_feign.environment import Environment
from aduib_feign.exceptions import ContractError, ContractErrorKind
from aduib_feign.http import HttpMethod

__all__ = [
    "Contract",
    "MvcContract",
    "NoParameterNameDiscoverer",
    "ParameterNameDiscoverer",
    "SignatureParameterNameDiscoverer",
]

logger = logging.getLogger(__name__)

ACCEPT = "Accept"
CONTENT_TYPE = "Content-Type"


class ParameterNameDiscoverer(ABC):
    """Optional capability returning source-level parameter names."""

    @abstractmethod
    def get_parameter_names(self, func: Callable[..., Any]) -> Sequence[str | None] | None:
        """Return one name per bound parameter (``self`` excluded), or None."""


class SignatureParameterNameDiscoverer(ParameterNameDiscoverer):
    def get_parameter_names(self, func):
        return [param.name for param in bound_parameters(func)]


class NoParameterNameDiscoverer(ParameterNameDiscoverer):
    def get_parameter_names(self, func):
        return None


def bound_parameters(func: Callable[..., Any]) -> list[inspect.Parameter]:
    params = list(inspect.signature(func).parameters.values())
    if params and params[0].name in ("self", "cls"):
        params = params[1:]
    return [
        param
        for param in params
        if param.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]


def _type_hints(func: Callable[..., Any]) -> dict[str, Any]:
    try:
        return typing.get_type_hints(func, include_extras=True)
    except (NameError, TypeError):
        logger.debug("Falling back to raw annotations for %s", func.__qualname__)
        return dict(getattr(func, "__annotations__", {}))


def _unwrap_return_type(tp: Any) -> Any:
    origin = typing.get_origin(tp)
    if origin is not None and getattr(origin, "__name__", "") in ("Awaitable", "Coroutine"):
        args = typing.get_args(tp)
        return args[-1] if args else Any
    return tp


class Contract(ABC):
    """Turns a client type into its request templates."""

    @abstractmethod
    def parse_and_validate_metadata(self, client_type: type) -> list[RequestTemplate]:
        """Compile every routed method of ``client_type``."""


class MvcContract(Contract):
    """Contract reading ``request_mapping`` style decorators.

    Args:
        parameter_processors: Extra processors; a processor for a marker type
            that already has one replaces the default.
        conversion_service: Converts HTTP-bound arguments to strings.
        environment: Resolves ``${...}`` placeholders in paths and headers.
        parameter_name_discoverer: Source of fallback parameter names.
        decode_slash: Keep ``/`` unencoded in expanded path variables.
    """

    def __init__(
        self,
        parameter_processors: Iterable[AnnotatedParameterProcessor] = (),
        conversion_service: ConversionService | None = None,
        environment: Environment | None = None,
        parameter_name_discoverer: ParameterNameDiscoverer | None = None,
        *,
        decode_slash: bool = True,
    ) -> None:
        self._processors: dict[type, AnnotatedParameterProcessor] = {}
        for processor in [*default_processors(), *parameter_processors]:
            self._processors[processor.annotation_type] = processor
        self._conversion_service = conversion_service or ConversionService()
        self._environment = environment or Environment()
        self._name_discoverer = parameter_name_discoverer or SignatureParameterNameDiscoverer()
        self._decode_slash = decode_slash

    @property
    def processors(self) -> dict[type, AnnotatedParameterProcessor]:
        return dict(self._processors)

    def parse_and_validate_metadata(self, client_type: type) -> list[RequestTemplate]:
        if get_class_mapping(client_type) is not None:
            raise ContractError(
                message=f"request_mapping is not allowed on client classes ({client_type.__qualname__})",
                kind=ContractErrorKind.CLASS_LEVEL_ROUTING_NOT_ALLOWED,
            )
        templates: list[RequestTemplate] = []
        for name, func in inspect.getmembers(client_type, predicate=inspect.isfunction):
            if name.startswith("_"):
                continue
            if not get_method_mappings(func):
                logger.debug("Skipping %s.%s: no routing metadata", client_type.__qualname__, name)
                continue
            templates.append(self.parse_method(client_type, func))
        return templates

    def parse_method(self, client_type: type, func: Callable[..., Any]) -> RequestTemplate:
        params = bound_parameters(func)
        hints = _type_hints(func)
        annotated = [split_annotated(hints.get(p.name, Any)) for p in params]
        key = config_key(client_type, func, [a.base_type for a in annotated])
        metadata = MethodMetadata(
            key,
            func.__name__,
            return_type=_unwrap_return_type(hints.get("return", Any)),
        )
        metadata.parameter_names = [p.name for p in params]

        mappings = get_method_mappings(func)
        if len(mappings) > 1:
            raise ContractError(
                message="A method may carry only one routing decorator",
                kind=ContractErrorKind.CONFLICTING_MAPPINGS,
                config_key=key,
            )
        self._process_mapping(metadata, mappings[0])
        collection_format = get_collection_format(func)
        if collection_format is not None:
            metadata.collection_format = collection_format

        discovered = self._name_discoverer.get_parameter_names(func)
        for index, (param, parameter) in enumerate(zip(params, annotated)):
            name = None
            if discovered is not None and index < len(discovered):
                name = discovered[index]
            self._process_parameter(metadata, func, index, name, parameter.base_type, parameter.markers)

        template = metadata.freeze(decode_slash=self._decode_slash)
        logger.debug("Compiled %s -> %s %s", key, template.method.value, template.uri)
        return template

    def _process_mapping(self, metadata: MethodMetadata, mapping: RequestMapping) -> None:
        if len(mapping.method) > 1:
            raise ContractError(
                message=f"Only one HTTP method is allowed, found {[m.value for m in mapping.method]}",
                kind=ContractErrorKind.MULTIPLE_HTTP_METHODS,
                config_key=metadata.config_key,
            )
        metadata.method = mapping.method[0] if mapping.method else HttpMethod.GET

        if len(mapping.path) > 1:
            raise ContractError(
                message=f"Only one path value is allowed, found {list(mapping.path)}",
                kind=ContractErrorKind.MULTIPLE_PATH_VALUES,
                config_key=metadata.config_key,
            )
        if mapping.path:
            path = self._resolve(mapping.path[0], metadata)
            if path and not path.startswith("/") and not metadata.uri.endswith("/"):
                path = "/" + path
            metadata.append_uri(path)

        # produces -> consumes -> headers; explicit header entries replace
        if mapping.produces and mapping.produces[0]:
            metadata.headers.set(ACCEPT, [mapping.produces[0]])
        if mapping.consumes and mapping.consumes[0]:
            metadata.headers.set(CONTENT_TYPE, [mapping.consumes[0]])
        seen: set[str] = set()
        for header in mapping.headers:
            index = header.find("=")
            if "!=" in header or index < 0:
                continue
            name = self._resolve(header[:index].strip(), metadata)
            value = self._resolve(header[index + 1 :].strip(), metadata)
            if name.lower() in seen:
                metadata.headers.add(name, value)
            else:
                seen.add(name.lower())
                metadata.headers.set(name, [value])

    def _process_parameter(
        self,
        metadata: MethodMetadata,
        func: Callable[..., Any],
        index: int,
        name: str | None,
        base_type: Any,
        markers: Sequence[Any],
    ) -> None:
        bindings = [m for m in markers if type(m) in self._processors or isinstance(m, RequestBody)]
        if len(bindings) > 1:
            raise ContractError(
                message=f"Parameter {index} of {metadata.config_key} has more than one binding",
                kind=ContractErrorKind.CONFLICTING_PARAMETER_BINDINGS,
                config_key=metadata.config_key,
            )
        if not bindings and base_type is Options:
            metadata.options_index = index
            return

        is_http = False
        if bindings and not isinstance(bindings[0], RequestBody):
            context = AnnotatedParameterContext(metadata, index, name, base_type)
            processor = self._processors[type(bindings[0])]
            is_http = processor.process_argument(context, bindings[0], func)

        if (
            is_http
            and not metadata.is_multipart
            and index not in metadata.index_to_expander
            and self._conversion_service.can_convert(element_type(base_type))
        ):
            metadata.index_to_expander[index] = ConvertingExpander(self._conversion_service)

        if not is_http:
            metadata.set_body_index(index, base_type)

    def _resolve(self, value: str, metadata: MethodMetadata) -> str:
        try:
            return self._environment.resolve_required_placeholders(value)
        except ContractError as exc:
            raise ContractError(
                message=exc.message,
                kind=exc.kind,
                data=exc.data,
                config_key=metadata.config_key,
            ) from exc
