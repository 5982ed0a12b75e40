"""Discovers ``@feign_client`` types and exposes their clients by name or type."""

from __future__ import annotations

import dataclasses
import importlib
import inspect
import logging
import pkgutil
import threading
from collections.abc import Iterable, Iterator
from types import ModuleType
from typing import Any

from aduib_feign.annotations import CLIENT_ATTR, FeignClientAnnotation
from aduib_feign.config.options import Options, options_name
from aduib_feign.context import DEFAULT_SPECIFICATION_PREFIX, ClientSpecification
from aduib_feign.descriptor import ClientDescriptor
from aduib_feign.environment import Environment
from aduib_feign.exceptions import ConfigError, ConfigErrorKind
from aduib_feign.factory import CompiledClient, FeignClientFactory
from aduib_feign.naming import normalize_path, normalize_service_name, normalize_url

__all__ = ["ClientRegistry", "FeignClientsRegistrar", "default_qualifier"]

logger = logging.getLogger(__name__)


def default_qualifier(context_id: str) -> str:
    return f"{context_id}FeignClient"


def _own_annotation(cls: type) -> FeignClientAnnotation | None:
    return vars(cls).get(CLIENT_ATTR)


def _is_interface(cls: Any) -> bool:
    return isinstance(cls, type) and (inspect.isabstract(cls) or bool(getattr(cls, "_is_protocol", False)))


class ClientRegistry:
    """Registered descriptors and lazy access to their built clients."""

    def __init__(self, factory: FeignClientFactory) -> None:
        self._factory = factory
        self._descriptors: dict[str, ClientDescriptor] = {}
        self._aliases: dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def factory(self) -> FeignClientFactory:
        return self._factory

    def add(self, descriptor: ClientDescriptor) -> None:
        with self._lock:
            names = [descriptor.context_id, *descriptor.qualifiers]
            taken = [name for name in names if name in self._descriptors or name in self._aliases]
            if taken:
                raise ConfigError(
                    message=f"Client name(s) already registered: {', '.join(taken)}",
                    kind=ConfigErrorKind.DUPLICATE_CLIENT,
                    data={"names": taken},
                )
            self._descriptors[descriptor.context_id] = descriptor
            for qualifier in descriptor.qualifiers:
                self._aliases[qualifier] = descriptor.context_id

    def descriptor(self, key: str | type) -> ClientDescriptor:
        if isinstance(key, type):
            return self._descriptor_for_type(key)
        context_id = self._aliases.get(key, key)
        descriptor = self._descriptors.get(context_id)
        if descriptor is None:
            raise KeyError(f"No client registered under '{key}'")
        return descriptor

    def _descriptor_for_type(self, client_type: type) -> ClientDescriptor:
        candidates = [d for d in self._descriptors.values() if issubclass(d.type, client_type)]
        if len(candidates) > 1:
            candidates = [d for d in candidates if d.primary]
        if len(candidates) == 1:
            return candidates[0]
        if not candidates:
            raise KeyError(f"No client registered for type {client_type.__qualname__}")
        raise ConfigError(
            message=f"{len(candidates)} primary clients registered for {client_type.__qualname__}",
            kind=ConfigErrorKind.DUPLICATE_CLIENT,
            data={"context_ids": [d.context_id for d in candidates]},
        )

    def compiled(self, key: str | type) -> CompiledClient:
        return self._factory.build(self.descriptor(key))

    def get(self, key: str | type) -> Any:
        """Return the live client for a context id, qualifier, or client type."""
        return self.compiled(key).client

    def refresh_options(self, context_id: str, options: Options) -> int:
        """Install new timeouts for a refreshable client; returns the new version."""
        descriptor = self.descriptor(context_id)
        if not descriptor.refreshable:
            raise ConfigError(
                message=f"Client {descriptor.context_id} is not refreshable",
                kind=ConfigErrorKind.MISSING_COMPONENT,
            )
        return self._factory.context.options_registry.refresh(options_name(descriptor.context_id), options)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and (key in self._descriptors or key in self._aliases)

    def __iter__(self) -> Iterator[ClientDescriptor]:
        return iter(list(self._descriptors.values()))

    def __len__(self) -> int:
        return len(self._descriptors)


class FeignClientsRegistrar:
    """Turns ``@feign_client`` types into registered client descriptors.

    Registration resolves names and placeholders, validates fallbacks,
    registers the client's configuration scope and compiles its contract
    eagerly, so an invalid client fails here rather than on first use.

    Args:
        factory: Factory building the clients; its context receives the
            configuration specifications.
        environment: Placeholder source for names, urls and paths.
        registry: Registry to fill; a new one is created when omitted.
    """

    def __init__(
        self,
        factory: FeignClientFactory,
        environment: Environment | None = None,
        *,
        registry: ClientRegistry | None = None,
    ) -> None:
        self._factory = factory
        self._context = factory.context
        self._environment = environment or Environment()
        self.registry = registry or ClientRegistry(factory)

    def register_default_configuration(self, name: str, configuration: Iterable[type]) -> None:
        """Add configuration classes applied to every client scope."""
        self._context.register_specification(
            ClientSpecification(f"{DEFAULT_SPECIFICATION_PREFIX}{name}", tuple(configuration))
        )

    def scan(self, packages: Iterable[str | ModuleType]) -> list[ClientDescriptor]:
        """Import packages (recursively) and register every client type found."""
        descriptors: list[ClientDescriptor] = []
        for package in packages:
            for module in self._walk(package):
                for _, member in inspect.getmembers(module, inspect.isclass):
                    if member.__module__ == module.__name__ and _own_annotation(member) is not None:
                        descriptors.append(self.register_client(member))
        return descriptors

    @staticmethod
    def _walk(package: str | ModuleType) -> list[ModuleType]:
        root = importlib.import_module(package) if isinstance(package, str) else package
        modules = [root]
        package_path = getattr(root, "__path__", None)
        if not package_path:
            return modules
        for _, module_name, _ in pkgutil.walk_packages(package_path, prefix=f"{root.__name__}."):
            logger.debug("Importing client module: %s", module_name)
            try:
                modules.append(importlib.import_module(module_name))
            except Exception:
                logger.exception("Failed to import client module %s", module_name)
        return modules

    def register_clients(self, client_types: Iterable[type]) -> list[ClientDescriptor]:
        return [self.register_client(client_type) for client_type in client_types]

    def register_client(self, client_type: type) -> ClientDescriptor:
        annotation = _own_annotation(client_type)
        if annotation is None:
            raise ConfigError(
                message=f"{client_type.__qualname__} is not decorated with @feign_client",
                kind=ConfigErrorKind.NOT_A_CLIENT,
            )
        descriptor = self.describe(client_type, annotation)
        self._validate_fallback(descriptor)
        if descriptor.context_id in self.registry:
            raise ConfigError(
                message=f"Client {descriptor.context_id} is already registered",
                kind=ConfigErrorKind.DUPLICATE_CLIENT,
            )

        self._context.register_specification(ClientSpecification(descriptor.context_id, descriptor.configuration))
        cell_name = options_name(descriptor.context_id)
        owns_cell = descriptor.refreshable and self._context.options_registry.get(cell_name) is None
        try:
            if descriptor.refreshable:
                self._context.options_registry.register(cell_name, self._initial_options(descriptor.context_id))
            config = self._factory.resolver.resolve(descriptor)
            self._context.contract_registry.register(client_type, config.contract)
            self.registry.add(descriptor)
        except Exception:
            self._context.remove_specification(descriptor.context_id)
            if owns_cell:
                self._context.options_registry.remove(cell_name)
            raise
        logger.info(
            "Registered client %s (service=%s, url=%s)",
            descriptor.context_id,
            descriptor.name,
            descriptor.url or "<load balanced>",
        )
        return descriptor

    def describe(self, client_type: type, annotation: FeignClientAnnotation) -> ClientDescriptor:
        """Resolve the annotation of ``client_type`` into a descriptor."""
        resolve = self._environment.resolve_placeholders
        specification_name = annotation.context_id or annotation.value or annotation.name
        service_name = annotation.name or annotation.value
        if not specification_name or not service_name:
            raise ConfigError(
                message=f"Either 'name' or 'value' must be provided for {client_type.__qualname__}",
                kind=ConfigErrorKind.MISSING_NAME,
            )
        name = normalize_service_name(resolve(service_name))
        context_id = resolve(annotation.context_id) if annotation.context_id else name
        url = normalize_url(resolve(annotation.url)) or None
        path = normalize_path(resolve(annotation.path))
        properties = self._factory.resolver.properties
        return ClientDescriptor(
            name=name,
            type=client_type,
            context_id=context_id,
            url=url,
            path=path,
            fallback=annotation.fallback,
            fallback_factory=annotation.fallback_factory,
            primary=annotation.primary,
            qualifiers=annotation.qualifiers or (default_qualifier(context_id),),
            configuration=annotation.configuration,
            dismiss404=annotation.dismiss404,
            refreshable=bool(properties is not None and properties.refresh_enabled),
        )

    @staticmethod
    def _validate_fallback(descriptor: ClientDescriptor) -> None:
        for role, candidate in (("fallback", descriptor.fallback), ("fallback_factory", descriptor.fallback_factory)):
            if candidate is None:
                continue
            if candidate is descriptor.type or _is_interface(candidate):
                raise ConfigError(
                    message=f"Fallback class must implement the client, not be an interface: {role} of {descriptor.context_id}",
                    kind=ConfigErrorKind.FALLBACK_IS_INTERFACE,
                    data={"role": role},
                )

    def _initial_options(self, context_id: str) -> Options:
        options = Options()
        properties = self._factory.resolver.properties
        if properties is None:
            return options
        for key in (properties.default_config, context_id):
            config = properties.config.get(key)
            if config is None:
                continue
            overrides = {
                "connect_timeout_ms": config.connect_timeout,
                "read_timeout_ms": config.read_timeout,
                "follow_redirects": config.follow_redirects,
            }
            options = dataclasses.replace(options, **{k: v for k, v in overrides.items() if v is not None})
        return options
