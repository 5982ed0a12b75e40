"""Targeters turn a configured builder into the client instance handed out."""

from __future__ import annotations

import functools
import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from aduib_feign.builder import FeignBuilder, Target
from aduib_feign.context import FeignContext
from aduib_feign.descriptor import ClientDescriptor, FallbackStrategy
from aduib_feign.exceptions import ConfigError, ConfigErrorKind
from aduib_feign.invocation import PROXY_HANDLERS_ATTR

__all__ = ["DefaultTargeter", "FallbackFactory", "FallbackTargeter", "Targeter"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Targeter(ABC):
    @abstractmethod
    def target(self, descriptor: ClientDescriptor, builder: FeignBuilder, context: FeignContext, target: Target) -> Any:
        """Return the client instance for ``descriptor``."""


class DefaultTargeter(Targeter):
    def target(self, descriptor: ClientDescriptor, builder: FeignBuilder, context: FeignContext, target: Target) -> Any:
        return builder.target(target)


class FallbackFactory(ABC, Generic[T]):
    """Creates the fallback answering calls that failed with ``cause``."""

    @abstractmethod
    def create(self, cause: BaseException) -> T:
        raise NotImplementedError


def _resolve(context: FeignContext, descriptor: ClientDescriptor, component: Any, role: str) -> Any:
    if not isinstance(component, type):
        return component
    existing = context.get_instance(descriptor.context_id, component)
    if existing is not None:
        return existing
    try:
        return component()
    except Exception as exc:
        raise ConfigError(
            message=f"Cannot create {role} {component.__qualname__} for client {descriptor.context_id}",
            kind=ConfigErrorKind.BEAN_CREATION_FAILED,
            cause=exc,
        ) from exc


def _fallback_source(context: FeignContext, descriptor: ClientDescriptor) -> Callable[[BaseException], Any]:
    if descriptor.fallback_strategy is FallbackStrategy.FALLBACK:
        instance = _resolve(context, descriptor, descriptor.fallback, "fallback")
        return lambda cause: instance
    factory = _resolve(context, descriptor, descriptor.fallback_factory, "fallback factory")
    if isinstance(factory, FallbackFactory) or hasattr(factory, "create"):
        return factory.create
    if callable(factory):
        return factory
    raise ConfigError(
        message=f"Fallback factory of {descriptor.context_id} is neither a FallbackFactory nor callable",
        kind=ConfigErrorKind.MISSING_COMPONENT,
    )


def _guarded(name: str, func: Callable[..., Any], delegate: Any, source: Callable[[BaseException], Any]) -> Callable[..., Any]:
    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def call_async(self: Any, *args: Any, **kwargs: Any) -> Any:
            try:
                return await getattr(delegate, name)(*args, **kwargs)
            except Exception as exc:
                logger.debug("Falling back for %s: %s", name, exc)
                result = getattr(source(exc), name)(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
                return result

        return call_async

    @functools.wraps(func)
    def call_sync(self: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return getattr(delegate, name)(*args, **kwargs)
        except Exception as exc:
            logger.debug("Falling back for %s: %s", name, exc)
            return getattr(source(exc), name)(*args, **kwargs)

    return call_sync


class FallbackTargeter(Targeter):
    """Answers failed calls from the descriptor's fallback or fallback factory."""

    def target(self, descriptor: ClientDescriptor, builder: FeignBuilder, context: FeignContext, target: Target) -> Any:
        proxy = builder.target(target)
        if descriptor.fallback_strategy is FallbackStrategy.NONE:
            return proxy
        source = _fallback_source(context, descriptor)
        client_type = descriptor.type
        namespace: dict[str, Any] = {"__module__": client_type.__module__}
        for name in getattr(proxy, PROXY_HANDLERS_ATTR):
            namespace[name] = _guarded(name, getattr(client_type, name), proxy, source)
        guarded_type = type(f"{client_type.__name__}FallbackProxy", (client_type,), namespace)
        logger.debug("Client %s uses %s", descriptor.context_id, descriptor.fallback_strategy.value)
        return object.__new__(guarded_type)
