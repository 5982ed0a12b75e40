"""Property-file models for ``feign.client`` configuration."""

from __future__ import annotations

import importlib
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar, cast

from aduib_feign.observability.request_logger import LogLevel
from aduib_feign.retry import ExceptionPropagationPolicy

__all__ = ["ClientConfigProperties", "FeignClientProperties", "import_string"]

T = TypeVar("T")

FieldSpec = tuple[str, Callable[[Any, str], Any], str]


def _normalize_key(key: Any) -> str:
    return str(key).strip().replace("-", "_").lower()


def _normalize_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    return {_normalize_key(key): value for key, value in data.items()}


def _ensure_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise TypeError(f"{field_name} must be a mapping")
    return cast(Mapping[str, Any], value)


def _coerce_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    raise TypeError(f"{field_name} must be a bool")


def _coerce_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise TypeError(f"{field_name} must be an int")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise TypeError(f"{field_name} must be an int")


def _coerce_str(value: Any, field_name: str) -> str:
    if isinstance(value, str):
        return value
    return str(value)


def _coerce_enum(value: Any, enum_cls: type[T], field_name: str) -> T:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        normalized = value.strip()
        upper = normalized.upper()
        for member in enum_cls:  # type: ignore[attr-defined]
            if member.name.upper() == upper or str(member.value).upper() == upper:
                return member
    raise ValueError(f"{field_name} must be a valid {enum_cls.__name__}")


def _enum_coerce(enum_cls: type[T]) -> Callable[[Any, str], Any]:
    def _wrapped(value: Any, field_name: str) -> Any:
        return _coerce_enum(value, enum_cls, field_name)

    return _wrapped


def _optional(coerce: Callable[[Any, str], Any]) -> Callable[[Any, str], Any]:
    def _wrapped(value: Any, field_name: str) -> Any:
        if value is None:
            return None
        return coerce(value, field_name)

    return _wrapped


def import_string(path: str) -> Any:
    """Import ``pkg.mod:Name`` or ``pkg.mod.Name``."""
    module_path, sep, attr = path.partition(":")
    if not sep:
        module_path, _, attr = path.rpartition(".")
    if not module_path or not attr:
        raise ImportError(f"'{path}' is not an importable object path")
    module = importlib.import_module(module_path)
    target: Any = module
    for part in attr.split("."):
        target = getattr(target, part)
    return target


def _coerce_component(value: Any, field_name: str) -> Any:
    if isinstance(value, str):
        try:
            return import_string(value.strip())
        except (ImportError, AttributeError) as exc:
            raise ValueError(f"{field_name}: cannot import '{value}'") from exc
    return value


def _coerce_component_list(value: Any, field_name: str) -> list[Any]:
    if isinstance(value, (str, type)) or not isinstance(value, Sequence):
        value = [value]
    return [_coerce_component(item, field_name) for item in value]


def _coerce_multi_value_map(value: Any, field_name: str) -> dict[str, list[str]]:
    mapping = _ensure_mapping(value, field_name)
    result: dict[str, list[str]] = {}
    for key, values in mapping.items():
        if values is None:
            result[str(key)] = []
        elif isinstance(values, (str, int, float, bool)):
            result[str(key)] = [_coerce_str(values, field_name)]
        elif isinstance(values, Sequence):
            result[str(key)] = [_coerce_str(item, field_name) for item in values]
        else:
            raise TypeError(f"{field_name}.{key} must be a string or list of strings")
    return result


def _extract_fields(payload: Mapping[str, Any], specs: Sequence[FieldSpec]) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    for name, coerce, label in specs:
        if name in payload:
            kwargs[name] = coerce(payload[name], label)
    return kwargs


def _client_field_specs(prefix: str) -> tuple[FieldSpec, ...]:
    return (
        ("logger_level", _optional(_enum_coerce(LogLevel)), f"{prefix}.logger_level"),
        ("connect_timeout", _optional(_coerce_int), f"{prefix}.connect_timeout"),
        ("read_timeout", _optional(_coerce_int), f"{prefix}.read_timeout"),
        ("follow_redirects", _optional(_coerce_bool), f"{prefix}.follow_redirects"),
        ("retryer", _optional(_coerce_component), f"{prefix}.retryer"),
        ("error_decoder", _optional(_coerce_component), f"{prefix}.error_decoder"),
        ("request_interceptors", _optional(_coerce_component_list), f"{prefix}.request_interceptors"),
        ("default_request_headers", _optional(_coerce_multi_value_map), f"{prefix}.default_request_headers"),
        ("default_query_parameters", _optional(_coerce_multi_value_map), f"{prefix}.default_query_parameters"),
        ("dismiss404", _optional(_coerce_bool), f"{prefix}.dismiss404"),
        ("encoder", _optional(_coerce_component), f"{prefix}.encoder"),
        ("decoder", _optional(_coerce_component), f"{prefix}.decoder"),
        ("contract", _optional(_coerce_component), f"{prefix}.contract"),
        (
            "exception_propagation_policy",
            _optional(_enum_coerce(ExceptionPropagationPolicy)),
            f"{prefix}.exception_propagation_policy",
        ),
        ("capabilities", _optional(_coerce_component_list), f"{prefix}.capabilities"),
    )


@dataclass
class ClientConfigProperties:
    """Property-sourced settings for one named client (or the default entry).

    ``None`` means "not set"; only set fields take part in the merge.
    Component fields accept a class, an instance or an import string.
    """

    logger_level: LogLevel | None = None
    connect_timeout: int | None = None
    read_timeout: int | None = None
    follow_redirects: bool | None = None
    retryer: Any = None
    error_decoder: Any = None
    request_interceptors: list[Any] | None = None
    default_request_headers: dict[str, list[str]] | None = None
    default_query_parameters: dict[str, list[str]] | None = None
    dismiss404: bool | None = None
    encoder: Any = None
    decoder: Any = None
    contract: Any = None
    exception_propagation_policy: ExceptionPropagationPolicy | None = None
    capabilities: list[Any] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None, *, name: str = "default") -> ClientConfigProperties:
        if data is None:
            return cls()
        if isinstance(data, cls):
            return data
        prefix = f"feign.client.config.{name}"
        payload = _normalize_keys(_ensure_mapping(data, prefix))
        specs = _client_field_specs(prefix)
        known = {spec[0] for spec in specs}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ValueError(f"{prefix}: unknown key(s) {', '.join(unknown)}")
        return cls(**_extract_fields(payload, specs))

    def __post_init__(self) -> None:
        if self.connect_timeout is not None and self.connect_timeout < 0:
            raise ValueError("connect_timeout must be >= 0")
        if self.read_timeout is not None and self.read_timeout < 0:
            raise ValueError("read_timeout must be >= 0")


_ROOT_FIELD_SPECS: tuple[FieldSpec, ...] = (
    ("default_to_properties", _coerce_bool, "feign.client.default_to_properties"),
    ("default_config", _coerce_str, "feign.client.default_config"),
    ("refresh_enabled", _coerce_bool, "feign.client.refresh_enabled"),
)


@dataclass
class FeignClientProperties:
    """Root of the property layer.

    Args:
        default_to_properties: When true, property values override
            declarative configuration; when false, the reverse.
        default_config: Name of the entry in ``config`` applied to every client.
        refresh_enabled: Serve timeouts from named, refreshable options cells.
        config: Per-client settings keyed by context id.
    """

    default_to_properties: bool = True
    default_config: str = "default"
    refresh_enabled: bool = False
    config: dict[str, ClientConfigProperties] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> FeignClientProperties:
        if data is None:
            return cls()
        if isinstance(data, cls):
            return data
        payload = _normalize_keys(_ensure_mapping(data, "feign.client"))
        if "feign" in payload:
            feign = _normalize_keys(_ensure_mapping(payload["feign"], "feign"))
            payload = _normalize_keys(_ensure_mapping(feign.get("client") or {}, "feign.client"))
        kwargs = _extract_fields(payload, _ROOT_FIELD_SPECS)
        raw_config = payload.get("config") or {}
        kwargs["config"] = {
            str(name): ClientConfigProperties.from_dict(entry or {}, name=str(name))
            for name, entry in _ensure_mapping(raw_config, "feign.client.config").items()
        }
        return cls(**kwargs)

    def client(self, name: str) -> ClientConfigProperties | None:
        return self.config.get(name)
