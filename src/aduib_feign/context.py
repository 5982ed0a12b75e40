"""Named configuration scopes, one per client, with a shared parent scope.

Each client identity gets a child scope built from the default configuration
classes plus the client's own configuration classes. Lookups fall back to the
parent scope, which holds application-wide instances registered directly on
the context.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar, overload

from aduib_feign.config.options import OptionsRegistry
from aduib_feign.contract.registry import ContractRegistry
from aduib_feign.exceptions import ConfigError, ConfigErrorKind
from aduib_feign.ordering import ORDER_ATTR

__all__ = ["ClientSpecification", "FeignClientConfigurer", "FeignContext", "bean"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

BEAN_ATTR = "__feign_bean__"
DEFAULT_SPECIFICATION_PREFIX = "default."


@overload
def bean(func: Callable[..., T]) -> Callable[..., T]: ...


@overload
def bean(*, name: str | None = None) -> Callable[[Callable[..., T]], Callable[..., T]]: ...


def bean(func: Callable[..., Any] | None = None, *, name: str | None = None) -> Any:
    """Mark a configuration-class method as an instance factory.

    The method is called once, without arguments, when the owning scope is
    first built. An ``@order`` on the method is carried over to the instance
    when the instance has no order of its own.
    """

    def decorator(target: Callable[..., Any]) -> Callable[..., Any]:
        setattr(target, BEAN_ATTR, name or target.__name__)
        return target

    if func is not None:
        return decorator(func)
    return decorator


@dataclass(frozen=True)
class ClientSpecification:
    """Configuration classes contributed to one named scope."""

    name: str
    configuration: tuple[type, ...] = ()


class FeignClientConfigurer:
    """Tunes how a client's configuration is resolved."""

    def inherit_parent_configuration(self) -> bool:
        return True


class _Scope:
    def __init__(self, name: str, parent: _Scope | None = None) -> None:
        self.name = name
        self.parent = parent
        self.instances: dict[str, Any] = {}

    def add(self, name: str, instance: Any) -> None:
        self.instances[name] = instance

    def of_type(self, type_: type[T]) -> dict[str, T]:
        return {name: inst for name, inst in self.instances.items() if isinstance(inst, type_)}


def _bean_methods(config_cls: type) -> list[tuple[str, str]]:
    found: dict[str, str] = {}
    for klass in reversed(config_cls.__mro__):
        for attr_name, attr in vars(klass).items():
            bean_name = getattr(attr, BEAN_ATTR, None)
            if bean_name is not None:
                found[attr_name] = bean_name
    return list(found.items())


class FeignContext:
    """Scoped instance lookup shared by every client of an application.

    Args:
        instances: Application-wide instances placed in the parent scope.
        default_configuration: Configuration classes applied to every
            client scope, before the client's own configuration.
    """

    def __init__(
        self,
        instances: Iterable[Any] = (),
        *,
        default_configuration: Sequence[type] = (),
    ) -> None:
        self._root = _Scope("<parent>")
        self._specifications: dict[str, ClientSpecification] = {}
        self._scopes: dict[str, _Scope] = {}
        self._lock = threading.RLock()
        self.contract_registry = ContractRegistry()
        self.options_registry = OptionsRegistry()
        for instance in instances:
            self.register_instance(instance)
        if default_configuration:
            self.register_specification(
                ClientSpecification(f"{DEFAULT_SPECIFICATION_PREFIX}context", tuple(default_configuration))
            )

    # Registration.

    def register_instance(self, instance: Any, name: str | None = None) -> None:
        """Add an application-wide instance to the parent scope."""
        with self._lock:
            key = name or f"{type(instance).__qualname__}#{len(self._root.instances)}"
            self._root.add(key, instance)

    def register_specification(self, specification: ClientSpecification) -> None:
        with self._lock:
            self._specifications[specification.name] = specification
            if specification.name.startswith(DEFAULT_SPECIFICATION_PREFIX):
                self._scopes.clear()
            else:
                self._scopes.pop(specification.name, None)

    def remove_specification(self, name: str) -> None:
        with self._lock:
            if self._specifications.pop(name, None) is not None:
                self._scopes.pop(name, None)

    def specifications(self) -> dict[str, ClientSpecification]:
        return dict(self._specifications)

    # Scope construction.

    def _scope(self, name: str) -> _Scope:
        scope = self._scopes.get(name)
        if scope is not None:
            return scope
        with self._lock:
            scope = self._scopes.get(name)
            if scope is not None:
                return scope
            scope = _Scope(name, parent=self._root)
            configuration: list[type] = []
            for spec_name, spec in self._specifications.items():
                if spec_name.startswith(DEFAULT_SPECIFICATION_PREFIX):
                    configuration.extend(spec.configuration)
            own = self._specifications.get(name)
            if own is not None:
                configuration.extend(own.configuration)
            for config_cls in configuration:
                self._load_configuration(scope, config_cls)
            self._scopes[name] = scope
            logger.debug("Created scope %s with %d instance(s)", name, len(scope.instances))
            return scope

    @staticmethod
    def _load_configuration(scope: _Scope, config_cls: type) -> None:
        try:
            holder = config_cls()
        except Exception as exc:
            raise ConfigError(
                message=f"Cannot instantiate configuration {config_cls.__qualname__}",
                kind=ConfigErrorKind.BEAN_CREATION_FAILED,
                cause=exc,
            ) from exc
        for attr_name, bean_name in _bean_methods(config_cls):
            factory = getattr(holder, attr_name)
            try:
                instance = factory()
            except Exception as exc:
                raise ConfigError(
                    message=f"Bean '{bean_name}' of {config_cls.__qualname__} failed",
                    kind=ConfigErrorKind.BEAN_CREATION_FAILED,
                    cause=exc,
                ) from exc
            declared_order = getattr(factory, ORDER_ATTR, None)
            if declared_order is not None and not hasattr(instance, ORDER_ATTR):
                try:
                    setattr(instance, ORDER_ATTR, declared_order)
                except AttributeError:
                    logger.debug("Cannot carry order onto bean %s", bean_name)
            scope.add(bean_name, instance)

    # Lookup.

    def get_instance(self, name: str, type_: type[T]) -> T | None:
        """Nearest instance of ``type_``: the client scope first, then the parent.

        Within one scope the last registered instance wins, so a client's own
        configuration overrides the default configuration.
        """
        scope: _Scope | None = self._scope(name)
        while scope is not None:
            found = scope.of_type(type_)
            if found:
                return list(found.values())[-1]
            scope = scope.parent
        return None

    def get_instance_without_ancestors(self, name: str, type_: type[T]) -> T | None:
        found = self._scope(name).of_type(type_)
        return list(found.values())[-1] if found else None

    def get_instances(self, name: str, type_: type[T]) -> dict[str, T]:
        scope = self._scope(name)
        merged: dict[str, T] = {}
        if scope.parent is not None:
            merged.update(scope.parent.of_type(type_))
        merged.update(scope.of_type(type_))
        return merged

    def get_instances_without_ancestors(self, name: str, type_: type[T]) -> dict[str, T]:
        return self._scope(name).of_type(type_)

    def close(self) -> None:
        with self._lock:
            self._scopes.clear()
