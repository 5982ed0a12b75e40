from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from aduib_feign.config.models import FeignClientProperties
from aduib_feign.exceptions import PropertiesError

__all__ = [
    "get_default_properties_path",
    "load_properties",
    "load_properties_mapping",
    "load_properties_with_overrides",
]

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-(.*?))?\}")


def get_default_properties_path() -> Path | None:
    """Return the first default property file that exists."""
    candidates = [
        Path.cwd() / "aduib_feign.yaml",
        Path.cwd() / "aduib_feign.yml",
        Path.home() / ".aduib_feign.yaml",
        Path.home() / ".aduib_feign.yml",
    ]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def load_properties(path: str | Path | None = None) -> FeignClientProperties:
    """Load a YAML property file into FeignClientProperties."""
    if not path:
        path = get_default_properties_path()
        if path is None:
            raise PropertiesError(message="No default property file found")
    return _build(load_properties_mapping(path), str(path))


def load_properties_with_overrides(
    base_path: str | Path, *override_paths: str | Path
) -> FeignClientProperties:
    """Load a base property file and apply one or more override files."""
    merged = load_properties_mapping(base_path)
    for override in override_paths:
        merged = _merge_mapping(merged, load_properties_mapping(override))
    return _build(merged, str(base_path))


def _build(data: Mapping[str, Any], source: str) -> FeignClientProperties:
    try:
        return FeignClientProperties.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise PropertiesError(message=f"Invalid properties in {source}: {exc}", cause=exc) from exc


def load_properties_mapping(path: str | Path) -> dict[str, Any]:
    """Read, env-expand and normalize one property file to a plain mapping."""
    config_path = Path(path).expanduser()
    if config_path.suffix.lower() not in {".yaml", ".yml"}:
        raise PropertiesError(message=f"Unsupported property file type: {config_path.suffix}")
    if not config_path.is_file():
        raise PropertiesError(message=f"Property file not found: {config_path}")
    try:
        content = config_path.read_text(encoding="utf-8")
        data = _parse_yaml_with_env(content)
    except PropertiesError:
        raise
    except Exception as exc:
        raise PropertiesError(message=f"Failed to load property file: {config_path}", cause=exc) from exc
    return _normalize_root(data)


def _parse_yaml_with_env(content: str) -> Mapping[str, Any]:
    import yaml

    parsed = yaml.safe_load(content) or {}
    if not isinstance(parsed, Mapping):
        raise PropertiesError(message="Property file must parse to a mapping")
    return _expand_env_in_data(parsed)


def _expand_env_in_data(value: Any) -> Any:
    if isinstance(value, str):
        return _expand_env_value(value)
    if isinstance(value, Mapping):
        return {key: _expand_env_in_data(val) for key, val in value.items()}
    if isinstance(value, list):
        return [_expand_env_in_data(item) for item in value]
    return value


def _expand_env_value(value: str) -> str:
    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        default = match.group(2)
        env_value = os.getenv(name)
        if env_value is None or env_value == "":
            if default is None:
                raise PropertiesError(
                    message=f"Environment variable '{name}' is not set and no default provided"
                )
            return default
        return env_value

    return _ENV_PATTERN.sub(replace, value)


def _merge_mapping(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], Mapping) and isinstance(value, Mapping):
            merged[key] = _merge_mapping(merged[key], value)
        else:
            merged[key] = value
    return merged


def _normalize_root(data: Mapping[str, Any]) -> dict[str, Any]:
    """Unwrap ``feign: client:`` so files may be written with or without it."""
    feign = data.get("feign")
    if feign is None:
        return dict(data)
    if not isinstance(feign, Mapping):
        raise PropertiesError(message="feign section must be a mapping")
    client = feign.get("client") or {}
    if not isinstance(client, Mapping):
        raise PropertiesError(message="feign.client section must be a mapping")
    return dict(client)
