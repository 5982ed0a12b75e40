"""Compiled request templates and their per-call expansion."""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any
from urllib.parse import quote

from aduib_feign.exceptions import ContractError, ContractErrorKind, ExpansionError
from aduib_feign.http import CollectionFormat, HttpMethod, Multimap, PreparedRequest

__all__ = ["Expander", "MethodMetadata", "RequestTemplate", "config_key"]

Expander = Callable[[Any], str]

_VARIABLE_PATTERN = re.compile(r"\{([^{}]+)\}")
_CONTENT_TYPE = "Content-Type"
_MULTIPART = "multipart/form-data"


def config_key(client_type: type, func: Callable[..., Any], parameter_types: Sequence[Any]) -> str:
    """Return ``Type#method(ArgType,...)``, the stable identity of a method."""
    names = ",".join(getattr(tp, "__name__", None) or repr(tp) for tp in parameter_types)
    return f"{client_type.__name__}#{func.__name__}({names})"


def _is_iterable_value(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset)) or (
        isinstance(value, Iterable)
        and not isinstance(value, (str, bytes, bytearray, Mapping))
        and hasattr(value, "__next__")
    )


def _object_to_mapping(value: Any) -> Mapping[str, Any]:
    if isinstance(value, Mapping):
        return value
    dump = getattr(value, "model_dump", None)
    if callable(dump):
        return dump(exclude_none=True)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"Cannot use {type(value).__name__} as a parameter map")


class MethodMetadata:
    """Mutable compile-time state for one method; frozen into a RequestTemplate."""

    def __init__(self, config_key: str, method_name: str, return_type: Any = Any) -> None:
        self.config_key = config_key
        self.method_name = method_name
        self.return_type = return_type
        self.method: HttpMethod | None = None
        self.uri = ""
        self.headers = Multimap(case_insensitive=True)
        self.queries = Multimap()
        self.index_to_name: dict[int, list[str]] = {}
        self.index_to_expander: dict[int, Expander] = {}
        self.form_params: list[str] = []
        self.body_index: int | None = None
        self.body_type: Any = None
        self.query_map_index: int | None = None
        self.query_map_encoded = False
        self.header_map_index: int | None = None
        self.options_index: int | None = None
        self.collection_format = CollectionFormat.EXPLODED
        self.parameter_names: list[str] = []
        self.encoded_variables: set[str] = set()

    def append_uri(self, fragment: str) -> None:
        if "?" in fragment:
            fragment, query = fragment.split("?", 1)
            for pair in filter(None, query.split("&")):
                key, _, value = pair.partition("=")
                self.queries.add(key, value)
        self.uri += fragment

    @property
    def is_multipart(self) -> bool:
        return self.headers.first(_CONTENT_TYPE) == _MULTIPART

    def name_param(self, index: int, name: str) -> None:
        names = self.index_to_name.setdefault(index, [])
        if name not in names:
            names.append(name)

    def template_query(self, name: str, value: str) -> None:
        self.queries.add(name, value)

    def template_header(self, name: str, value: str) -> None:
        self.headers.add(name, value)

    def mentions_variable(self, name: str) -> bool:
        token = "{" + name + "}"
        if token in self.uri:
            return True
        for _, values in self.queries.items():
            if any(token in value for value in values):
                return True
        for _, values in self.headers.items():
            if any(token in value for value in values):
                return True
        return False

    def set_query_map_index(self, index: int, *, encoded: bool = False) -> None:
        if self.query_map_index is not None:
            raise ContractError(
                message="Query map can only be present once",
                kind=ContractErrorKind.DUPLICATE_QUERY_MAP,
                config_key=self.config_key,
            )
        self.query_map_index = index
        self.query_map_encoded = encoded

    def set_header_map_index(self, index: int) -> None:
        if self.header_map_index is not None:
            raise ContractError(
                message="Header map can only be present once",
                kind=ContractErrorKind.DUPLICATE_HEADER_MAP,
                config_key=self.config_key,
            )
        self.header_map_index = index

    def set_body_index(self, index: int, body_type: Any) -> None:
        if self.body_index is not None:
            raise ContractError(
                message="Method has too many body parameters",
                kind=ContractErrorKind.TOO_MANY_BODY_PARAMETERS,
                config_key=self.config_key,
            )
        self.body_index = index
        self.body_type = body_type

    def freeze(self, *, decode_slash: bool = True) -> RequestTemplate:
        if self.body_index is not None and self.form_params:
            raise ContractError(
                message="Body parameters cannot be used with form parameters",
                kind=ContractErrorKind.BODY_WITH_FORM_PARAMETERS,
                config_key=self.config_key,
            )
        return RequestTemplate(
            config_key=self.config_key,
            method_name=self.method_name,
            method=self.method or HttpMethod.GET,
            uri=self.uri,
            headers=tuple(self.headers.items()),
            queries=tuple(self.queries.items()),
            body_index=self.body_index,
            body_type=self.body_type,
            form_params=tuple(self.form_params),
            index_to_name=MappingProxyType({k: tuple(v) for k, v in self.index_to_name.items()}),
            index_to_expander=MappingProxyType(dict(self.index_to_expander)),
            query_map_index=self.query_map_index,
            query_map_encoded=self.query_map_encoded,
            header_map_index=self.header_map_index,
            options_index=self.options_index,
            collection_format=self.collection_format,
            return_type=self.return_type,
            parameter_names=tuple(self.parameter_names),
            decode_slash=decode_slash,
            encoded_variables=frozenset(self.encoded_variables),
        )


@dataclass(frozen=True)
class RequestTemplate:
    """Immutable description of how one client method becomes a request."""

    config_key: str
    method_name: str
    method: HttpMethod
    uri: str
    headers: tuple[tuple[str, tuple[str, ...]], ...] = ()
    queries: tuple[tuple[str, tuple[str, ...]], ...] = ()
    body_index: int | None = None
    body_type: Any = None
    form_params: tuple[str, ...] = ()
    index_to_name: Mapping[int, tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))
    index_to_expander: Mapping[int, Expander] = field(default_factory=lambda: MappingProxyType({}))
    query_map_index: int | None = None
    query_map_encoded: bool = False
    header_map_index: int | None = None
    options_index: int | None = None
    collection_format: CollectionFormat = CollectionFormat.EXPLODED
    return_type: Any = Any
    parameter_names: tuple[str, ...] = ()
    decode_slash: bool = True
    encoded_variables: frozenset[str] = frozenset()

    def header(self, name: str) -> tuple[str, ...]:
        lowered = name.lower()
        for key, values in self.headers:
            if key.lower() == lowered:
                return values
        return ()

    def query(self, name: str) -> tuple[str, ...]:
        for key, values in self.queries:
            if key == name:
                return values
        return ()

    def describe(self) -> dict[str, Any]:
        """Return a JSON-friendly summary."""
        return {
            "config_key": self.config_key,
            "method": self.method.value,
            "uri": self.uri,
            "headers": {key: list(values) for key, values in self.headers},
            "queries": {key: list(values) for key, values in self.queries},
            "body_index": self.body_index,
            "form_params": list(self.form_params),
            "index_to_name": {str(k): list(v) for k, v in self.index_to_name.items()},
            "query_map_index": self.query_map_index,
            "header_map_index": self.header_map_index,
            "collection_format": self.collection_format.value,
        }

    # Runtime expansion.

    def _expand_argument(self, index: int, value: Any) -> list[str]:
        expander = self.index_to_expander.get(index) or str
        if getattr(expander, "expands_whole_value", False):
            items = [value]
        else:
            items = list(value) if _is_iterable_value(value) else [value]
        try:
            return [expander(item) for item in items if item is not None]
        except Exception as exc:
            raise ExpansionError(
                message=f"Failed to expand argument {index} of {self.config_key}",
                config_key=self.config_key,
                cause=exc,
            ) from exc

    def variables(self, argv: Sequence[Any]) -> dict[str, list[str]]:
        """Map placeholder names to their expanded values for one call."""
        variables: dict[str, list[str]] = {}
        for index, names in self.index_to_name.items():
            value = argv[index] if index < len(argv) else None
            if value is None:
                continue
            expanded = self._expand_argument(index, value)
            for name in names:
                variables[name] = expanded
        return variables

    def _expand_path(self, variables: Mapping[str, list[str]]) -> str:
        def replace(match: re.Match[str]) -> str:
            name = match.group(1)
            if name in self.encoded_variables:
                return "".join(variables.get(name, ()))
            if name not in variables:
                raise ExpansionError(
                    message=f"No value for path variable '{name}' in {self.config_key}",
                    config_key=self.config_key,
                    data={"variable": name},
                )
            encoded = ",".join(quote(item, safe="") for item in variables[name])
            if self.decode_slash:
                encoded = encoded.replace("%2F", "/")
            return encoded

        return _VARIABLE_PATTERN.sub(replace, self.uri)

    @staticmethod
    def _expand_values(values: Iterable[str], variables: Mapping[str, list[str]]) -> list[str]:
        expanded: list[str] = []
        for value in values:
            whole = _VARIABLE_PATTERN.fullmatch(value)
            if whole is not None:
                expanded.extend(variables.get(whole.group(1), ()))
                continue
            names = _VARIABLE_PATTERN.findall(value)
            if any(name not in variables for name in names):
                continue
            expanded.append(
                _VARIABLE_PATTERN.sub(lambda m: ",".join(variables[m.group(1)]), value)
            )
        return expanded

    def prepare(self, argv: Sequence[Any]) -> PreparedRequest:
        """Expand this template with call arguments.

        Unresolved query and header values are dropped; an unresolved path
        variable raises ``ExpansionError``.
        """
        variables = self.variables(argv)
        request = PreparedRequest(
            self.method.value,
            self._expand_path(variables),
            config_key=self.config_key,
        )
        for key, values in self.queries:
            expanded = self._expand_values(values, variables)
            if expanded:
                request.queries.add_all(key, self.collection_format.join(expanded))
        for key, values in self.headers:
            expanded = self._expand_values(values, variables)
            if expanded:
                request.headers.add_all(key, self.collection_format.join(expanded))
        if self.query_map_index is not None:
            self._apply_map(argv[self.query_map_index], request.queries)
            if self.query_map_encoded:
                request.encoded_query_keys.update(request.queries)
        if self.header_map_index is not None:
            self._apply_map(argv[self.header_map_index], request.headers)
        return request

    def _apply_map(self, source: Any, target: Multimap) -> None:
        if source is None:
            return
        try:
            mapping = _object_to_mapping(source)
        except TypeError as exc:
            raise ExpansionError(message=str(exc), config_key=self.config_key, cause=exc) from exc
        for key, value in mapping.items():
            if value is None:
                continue
            items = list(value) if _is_iterable_value(value) else [value]
            target.add_all(str(key), self.collection_format.join(str(item) for item in items if item is not None))

    def form_values(self, argv: Sequence[Any]) -> dict[str, Any]:
        """Return raw form-parameter values keyed by name."""
        form: dict[str, Any] = {}
        for index, names in self.index_to_name.items():
            value = argv[index] if index < len(argv) else None
            if value is None:
                continue
            for name in names:
                if name in self.form_params:
                    form[name] = value
        return form
