from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from types import MappingProxyType

from aduib_feign.contract.compiler import Contract
from aduib_feign.contract.template import RequestTemplate

__all__ = ["ContractRegistry"]

logger = logging.getLogger(__name__)


class ContractRegistry:
    """Compiled templates per client type and contract, keyed by method name.

    Each pair is compiled at most once. Contracts compare by identity, so
    the same type targeted with another contract instance compiles again.
    """

    def __init__(self) -> None:
        self._templates: dict[tuple[type, Contract], Mapping[str, RequestTemplate]] = {}
        self._lock = threading.Lock()

    def register(self, client_type: type, contract: Contract) -> Mapping[str, RequestTemplate]:
        key = (client_type, contract)
        existing = self._templates.get(key)
        if existing is not None:
            return existing
        with self._lock:
            existing = self._templates.get(key)
            if existing is not None:
                return existing
            templates = contract.parse_and_validate_metadata(client_type)
            compiled = MappingProxyType({template.method_name: template for template in templates})
            self._templates[key] = compiled
            logger.info(
                "Compiled %d request template(s) for %s", len(compiled), client_type.__qualname__
            )
            return compiled

    def get(self, client_type: type, contract: Contract) -> Mapping[str, RequestTemplate] | None:
        return self._templates.get((client_type, contract))

    def template(self, client_type: type, contract: Contract, method_name: str) -> RequestTemplate:
        templates = self._templates.get((client_type, contract))
        if templates is None or method_name not in templates:
            raise KeyError(f"No template for {client_type.__qualname__}.{method_name}")
        return templates[method_name]

    def __contains__(self, client_type: object) -> bool:
        return any(compiled_type is client_type for compiled_type, _ in self._templates)

    def clear(self) -> None:
        with self._lock:
            self._templates.clear()
