"""Parameter processors keyed by the marker type they understand."""

from __future__ import annotations

import collections.abc
import typing
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, ClassVar
from urllib.parse import quote

from aduib_feign.annotations import MatrixVariable, PathVariable, QueryMap, RequestHeader, RequestParam, RequestPart
from aduib_feign.contract.template import MethodMetadata

__all__ = [
    "AnnotatedParameterContext",
    "AnnotatedParameterProcessor",
    "MatrixVariableExpander",
    "MatrixVariableParameterProcessor",
    "PathVariableParameterProcessor",
    "QueryMapParameterProcessor",
    "RequestHeaderParameterProcessor",
    "RequestParamParameterProcessor",
    "RequestPartParameterProcessor",
    "default_processors",
]


def _is_mapping_type(tp: Any) -> bool:
    origin = typing.get_origin(tp) or tp
    return isinstance(origin, type) and issubclass(origin, collections.abc.Mapping)


@dataclass
class AnnotatedParameterContext:
    """What a processor may see and change for one parameter."""

    method_metadata: MethodMetadata
    parameter_index: int
    parameter_name: str | None
    parameter_type: Any

    def resolve_name(self, declared: str) -> str:
        """Declared name, else the discovered one, else the position."""
        return declared or self.parameter_name or str(self.parameter_index)

    def name_param(self, name: str) -> None:
        self.method_metadata.name_param(self.parameter_index, name)


class AnnotatedParameterProcessor(ABC):
    """Binds a parameter carrying ``annotation_type`` into method metadata."""

    annotation_type: ClassVar[type]

    @abstractmethod
    def process_argument(
        self,
        context: AnnotatedParameterContext,
        annotation: Any,
        method: Callable[..., Any],
    ) -> bool:
        """Return True when the parameter is bound to the HTTP request."""


def _matrix_values(value: Any) -> str:
    items = list(value) if isinstance(value, (list, tuple, set, frozenset)) else [value]
    return ",".join(quote(str(item), safe="") for item in items if item is not None)


class MatrixVariableExpander:
    """Renders a whole argument as ``;name=value`` path parameters.

    Mapping arguments render one ``;key=value`` pair per entry. Output is
    already percent-encoded.
    """

    expands_whole_value = True

    def __init__(self, name: str) -> None:
        self.name = name

    def __call__(self, value: Any) -> str:
        if isinstance(value, collections.abc.Mapping):
            return "".join(
                f";{quote(str(key), safe='')}={_matrix_values(item)}"
                for key, item in value.items()
                if item is not None
            )
        return f";{quote(self.name, safe='')}={_matrix_values(value)}"


class MatrixVariableParameterProcessor(AnnotatedParameterProcessor):
    annotation_type = MatrixVariable

    def process_argument(self, context, annotation, method) -> bool:
        name = context.resolve_name(annotation.name)
        context.name_param(name)
        metadata = context.method_metadata
        metadata.index_to_expander[context.parameter_index] = MatrixVariableExpander(name)
        metadata.encoded_variables.add(name)
        return True


class PathVariableParameterProcessor(AnnotatedParameterProcessor):
    annotation_type = PathVariable

    def process_argument(self, context, annotation, method) -> bool:
        name = context.resolve_name(annotation.name)
        context.name_param(name)
        metadata = context.method_metadata
        if not metadata.mentions_variable(name):
            metadata.form_params.append(name)
        return True


class RequestParamParameterProcessor(AnnotatedParameterProcessor):
    annotation_type = RequestParam

    def process_argument(self, context, annotation, method) -> bool:
        metadata = context.method_metadata
        if _is_mapping_type(context.parameter_type) and not annotation.name:
            metadata.set_query_map_index(context.parameter_index)
            return True
        name = context.resolve_name(annotation.name)
        context.name_param(name)
        metadata.template_query(name, "{" + name + "}")
        return True


class RequestHeaderParameterProcessor(AnnotatedParameterProcessor):
    annotation_type = RequestHeader

    def process_argument(self, context, annotation, method) -> bool:
        metadata = context.method_metadata
        if _is_mapping_type(context.parameter_type) and not annotation.name:
            metadata.set_header_map_index(context.parameter_index)
            return True
        name = context.resolve_name(annotation.name)
        context.name_param(name)
        metadata.template_header(name, "{" + name + "}")
        return True


class QueryMapParameterProcessor(AnnotatedParameterProcessor):
    annotation_type = QueryMap

    def process_argument(self, context, annotation, method) -> bool:
        context.method_metadata.set_query_map_index(
            context.parameter_index, encoded=annotation.encoded
        )
        return True


class RequestPartParameterProcessor(AnnotatedParameterProcessor):
    annotation_type = RequestPart

    def process_argument(self, context, annotation, method) -> bool:
        name = context.resolve_name(annotation.name)
        context.name_param(name)
        context.method_metadata.form_params.append(name)
        return True


def default_processors() -> list[AnnotatedParameterProcessor]:
    return [
        MatrixVariableParameterProcessor(),
        PathVariableParameterProcessor(),
        RequestParamParameterProcessor(),
        RequestHeaderParameterProcessor(),
        QueryMapParameterProcessor(),
        RequestPartParameterProcessor(),
    ]
