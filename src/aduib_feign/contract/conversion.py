"""Value-to-string conversion used for HTTP-bound parameters."""

from __future__ import annotations

import collections.abc
import datetime as dt
import enum
import types
import typing
import uuid
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Any

__all__ = ["ConversionService", "ConvertingExpander", "element_type"]

Converter = Callable[[Any], str]

_ITERABLE_ORIGINS = {
    list,
    tuple,
    set,
    frozenset,
    collections.abc.Iterable,
    collections.abc.Collection,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Set,
    collections.abc.MutableSet,
}


def _strip_optional(tp: Any) -> Any:
    origin = typing.get_origin(tp)
    if origin is typing.Union or origin is types.UnionType:
        args = [arg for arg in typing.get_args(tp) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def element_type(tp: Any) -> Any:
    """Return the element type for iterable annotations, else ``tp`` itself."""
    tp = _strip_optional(tp)
    origin = typing.get_origin(tp)
    if origin in _ITERABLE_ORIGINS:
        args = [arg for arg in typing.get_args(tp) if arg is not Ellipsis]
        return _strip_optional(args[0]) if args else Any
    if tp in (list, tuple, set, frozenset):
        return Any
    return tp


def _bool_to_str(value: bool) -> str:
    return "true" if value else "false"


def _temporal_to_str(value: dt.date | dt.time) -> str:
    return value.isoformat()


def _enum_to_str(value: enum.Enum) -> str:
    return str(value.value)


def _bytes_to_str(value: bytes) -> str:
    return value.decode("utf-8")


class ConversionService:
    """Registry of converters from Python types to wire strings.

    Lookup walks the value type's MRO, so a converter registered for a base
    class applies to its subclasses.
    """

    def __init__(self, converters: Mapping[type, Converter] | None = None) -> None:
        self._converters: dict[type, Converter] = {
            bool: _bool_to_str,
            str: str,
            int: str,
            float: str,
            Decimal: str,
            uuid.UUID: str,
            bytes: _bytes_to_str,
            enum.Enum: _enum_to_str,
            dt.date: _temporal_to_str,
            dt.time: _temporal_to_str,
        }
        for source_type, converter in (converters or {}).items():
            self.register(source_type, converter)

    def register(self, source_type: type, converter: Converter) -> None:
        self._converters[source_type] = converter

    def _find(self, source_type: Any) -> Converter | None:
        if not isinstance(source_type, type):
            return None
        for candidate in source_type.__mro__:
            converter = self._converters.get(candidate)
            if converter is not None:
                return converter
        return None

    def can_convert(self, source_type: Any) -> bool:
        return self._find(_strip_optional(source_type)) is not None

    def convert(self, value: Any) -> str:
        converter = self._find(type(value))
        if converter is None:
            return str(value)
        return converter(value)


class ConvertingExpander:
    """Expander backed by a ``ConversionService``."""

    def __init__(self, conversion_service: ConversionService) -> None:
        self._conversion_service = conversion_service

    def __call__(self, value: Any) -> str:
        return self._conversion_service.convert(value)

    def __repr__(self) -> str:
        return "ConvertingExpander()"
