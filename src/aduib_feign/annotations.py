"""Declarative metadata for client types, routed methods and parameters.

Routing decorators record metadata on the decorated object and leave it
otherwise untouched; compilation happens later in ``MvcContract``.
"""

from __future__ import annotations

import typing
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from aduib_feign.http import CollectionFormat, HttpMethod

__all__ = [
    "FeignClientAnnotation",
    "MatrixVariable",
    "PathVariable",
    "QueryMap",
    "RequestBody",
    "RequestHeader",
    "RequestMapping",
    "RequestParam",
    "RequestPart",
    "collection_format",
    "delete_mapping",
    "feign_client",
    "get_client_annotation",
    "get_mapping",
    "patch_mapping",
    "post_mapping",
    "put_mapping",
    "request_mapping",
]

T = TypeVar("T")

CLIENT_ATTR = "__feign_client__"
CLASS_MAPPING_ATTR = "__feign_class_mapping__"
METHOD_MAPPINGS_ATTR = "__feign_mappings__"
COLLECTION_FORMAT_ATTR = "__feign_collection_format__"


def _as_tuple(value: str | Sequence[str] | None) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


@dataclass(frozen=True)
class RequestMapping:
    """Routing metadata attached to a client method."""

    path: tuple[str, ...] = ()
    method: tuple[HttpMethod, ...] = ()
    produces: tuple[str, ...] = ()
    consumes: tuple[str, ...] = ()
    headers: tuple[str, ...] = ()


@dataclass(frozen=True)
class FeignClientAnnotation:
    """Client-level metadata recorded by ``@feign_client``."""

    value: str = ""
    name: str = ""
    context_id: str = ""
    url: str = ""
    path: str = ""
    configuration: tuple[type, ...] = ()
    fallback: type | None = None
    fallback_factory: type | Callable[..., Any] | None = None
    primary: bool = True
    qualifiers: tuple[str, ...] = ()
    dismiss404: bool = False


def feign_client(
    value: str = "",
    *,
    name: str = "",
    context_id: str = "",
    url: str = "",
    path: str = "",
    configuration: Sequence[type] = (),
    fallback: type | None = None,
    fallback_factory: type | Callable[..., Any] | None = None,
    primary: bool = True,
    qualifiers: Sequence[str] = (),
    dismiss404: bool = False,
) -> Callable[[type[T]], type[T]]:
    """Mark a class as a declarative HTTP client.

    Args:
        value: Service name (alias of ``name``).
        name: Service name; used as the load-balancer service id when no
            ``url`` is given.
        context_id: Identity of the client's configuration scope. Defaults
            to the service name.
        url: Fixed base URL; bypasses load balancing when set.
        path: Path prefix applied to every method.
        configuration: Configuration classes contributing ``@bean`` members
            to the client's scope.
        fallback: Concrete class answering calls that failed remotely.
        fallback_factory: Callable producing a fallback from the failure.
        primary: Whether this client wins type-based lookups.
        qualifiers: Extra lookup names; defaults to ``<context_id>FeignClient``.
        dismiss404: Decode 404 responses instead of raising.
    """

    annotation = FeignClientAnnotation(
        value=value,
        name=name,
        context_id=context_id,
        url=url,
        path=path,
        configuration=tuple(configuration),
        fallback=fallback,
        fallback_factory=fallback_factory,
        primary=primary,
        qualifiers=tuple(qualifiers),
        dismiss404=dismiss404,
    )

    def decorator(cls: type[T]) -> type[T]:
        setattr(cls, CLIENT_ATTR, annotation)
        return cls

    return decorator


def request_mapping(
    path: str | Sequence[str] | None = None,
    *,
    value: str | Sequence[str] | None = None,
    method: HttpMethod | str | Sequence[HttpMethod | str] = (),
    produces: str | Sequence[str] = (),
    consumes: str | Sequence[str] = (),
    headers: str | Sequence[str] = (),
) -> Callable[[T], T]:
    """Attach routing metadata to a method.

    Applied to a class, the metadata is recorded as class-level routing,
    which client contracts reject.
    """

    if isinstance(method, str):
        method = (method,)
    methods = tuple(
        item if isinstance(item, HttpMethod) else HttpMethod(item.upper()) for item in method
    )
    mapping = RequestMapping(
        path=_as_tuple(path) + _as_tuple(value),
        method=methods,
        produces=_as_tuple(produces),
        consumes=_as_tuple(consumes),
        headers=_as_tuple(headers),
    )

    def decorator(target: T) -> T:
        if isinstance(target, type):
            setattr(target, CLASS_MAPPING_ATTR, mapping)
            return target
        existing = list(getattr(target, METHOD_MAPPINGS_ATTR, ()))
        existing.append(mapping)
        setattr(target, METHOD_MAPPINGS_ATTR, tuple(existing))
        return target

    return decorator


def _verb_mapping(verb: HttpMethod) -> Callable[..., Callable[[T], T]]:
    def mapping(
        path: str | Sequence[str] | None = None,
        *,
        value: str | Sequence[str] | None = None,
        produces: str | Sequence[str] = (),
        consumes: str | Sequence[str] = (),
        headers: str | Sequence[str] = (),
    ) -> Callable[[T], T]:
        return request_mapping(
            path,
            value=value,
            method=(verb,),
            produces=produces,
            consumes=consumes,
            headers=headers,
        )

    mapping.__name__ = f"{verb.value.lower()}_mapping"
    mapping.__doc__ = f"Shortcut for ``request_mapping(..., method={verb.value})``."
    return mapping


get_mapping = _verb_mapping(HttpMethod.GET)
post_mapping = _verb_mapping(HttpMethod.POST)
put_mapping = _verb_mapping(HttpMethod.PUT)
patch_mapping = _verb_mapping(HttpMethod.PATCH)
delete_mapping = _verb_mapping(HttpMethod.DELETE)


def collection_format(fmt: CollectionFormat | str) -> Callable[[T], T]:
    """Choose how repeated query/header values of a method are rendered."""
    resolved = fmt if isinstance(fmt, CollectionFormat) else CollectionFormat(fmt.lower())

    def decorator(target: T) -> T:
        setattr(target, COLLECTION_FORMAT_ATTR, resolved)
        return target

    return decorator


# Parameter markers, used through typing.Annotated.


@dataclass(frozen=True)
class PathVariable:
    name: str = ""


@dataclass(frozen=True)
class MatrixVariable:
    """Expands into ``;name=value`` path parameters; a mapping gives ``;key=value`` pairs."""

    name: str = ""


@dataclass(frozen=True)
class RequestParam:
    name: str = ""


@dataclass(frozen=True)
class RequestHeader:
    name: str = ""


@dataclass(frozen=True)
class RequestPart:
    name: str = ""


@dataclass(frozen=True)
class QueryMap:
    encoded: bool = False


@dataclass(frozen=True)
class RequestBody:
    required: bool = True


@dataclass(frozen=True)
class ParameterAnnotations:
    """Base type and markers of one declared parameter."""

    base_type: Any
    markers: tuple[Any, ...] = field(default_factory=tuple)


def split_annotated(annotation: Any) -> ParameterAnnotations:
    """Separate ``Annotated[T, *markers]`` into its base type and markers."""
    if typing.get_origin(annotation) is typing.Annotated:
        base, *extras = typing.get_args(annotation)
        return ParameterAnnotations(base_type=base, markers=tuple(extras))
    return ParameterAnnotations(base_type=annotation)


def get_client_annotation(cls: type) -> FeignClientAnnotation | None:
    return getattr(cls, CLIENT_ATTR, None)


def get_class_mapping(cls: type) -> RequestMapping | None:
    return getattr(cls, CLASS_MAPPING_ATTR, None)


def get_method_mappings(func: Any) -> tuple[RequestMapping, ...]:
    return tuple(getattr(func, METHOD_MAPPINGS_ATTR, ()))


def get_collection_format(func: Any) -> CollectionFormat | None:
    return getattr(func, COLLECTION_FORMAT_ATTR, None)
