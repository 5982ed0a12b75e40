"""Placeholder resolution against flattened properties and the process environment.

Placeholders use the ``${key}`` form with an optional default written either as
``${key:default}`` or ``${key:-default}``. Keys are looked up in the flattened
property mapping first (``feign.client.config.users.url``), then in
``os.environ`` under the exact key and under its upper-case underscore form
(``FEIGN_CLIENT_CONFIG_USERS_URL``).
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from typing import Any

from aduib_feign.exceptions import ContractError, ContractErrorKind

__all__ = ["Environment", "PLACEHOLDER_PATTERN"]

PLACEHOLDER_PATTERN = re.compile(r"\$\{([^}:]+)(?::-?([^}]*))?\}")


def _flatten_config(data: Mapping[str, Any], prefix: str = "") -> dict[str, str | None]:
    flattened: dict[str, str | None] = {}
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flattened.update(_flatten_config(value, full_key))
        elif value is None:
            flattened[full_key] = None
        else:
            flattened[full_key] = str(value)
    return flattened


def _env_key(key: str) -> str:
    return re.sub(r"[.\-]", "_", key).upper()


class Environment:
    """Resolves ``${...}`` placeholders used in routing and client metadata."""

    def __init__(
        self,
        properties: Mapping[str, Any] | None = None,
        *,
        use_os_environ: bool = True,
    ) -> None:
        self._properties = _flatten_config(properties or {})
        self._use_os_environ = use_os_environ

    def get_property(self, key: str) -> str | None:
        if key in self._properties:
            return self._properties[key]
        if not self._use_os_environ:
            return None
        value = os.environ.get(key)
        if value is None:
            value = os.environ.get(_env_key(key))
        return value

    def resolve_placeholders(self, text: str) -> str:
        """Resolve placeholders, leaving unresolvable ones untouched."""
        return self._resolve(text, strict=False)

    def resolve_required_placeholders(self, text: str) -> str:
        """Resolve placeholders, raising on any that cannot be resolved."""
        return self._resolve(text, strict=True)

    def _resolve(self, text: str, *, strict: bool) -> str:
        if not text or "${" not in text:
            return text

        def replace(match: re.Match[str]) -> str:
            key = match.group(1).strip()
            default = match.group(2)
            value = self.get_property(key)
            if value is not None:
                return value
            if default is not None:
                return default
            if strict:
                raise ContractError(
                    message=f"Could not resolve placeholder '{key}' in value \"{text}\"",
                    kind=ContractErrorKind.UNRESOLVABLE_PLACEHOLDER,
                    data={"placeholder": key},
                )
            return match.group(0)

        return PLACEHOLDER_PATTERN.sub(replace, text)

    def with_properties(self, properties: Mapping[str, Any]) -> Environment:
        """Return a copy whose properties are overlaid with ``properties``."""
        clone = Environment(use_os_environ=self._use_os_environ)
        clone._properties = {**self._properties, **_flatten_config(properties)}
        return clone
