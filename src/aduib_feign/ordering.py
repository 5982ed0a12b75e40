from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, TypeVar

__all__ = ["HIGHEST_PRECEDENCE", "LOWEST_PRECEDENCE", "get_order", "order", "sort_by_order"]

T = TypeVar("T")

HIGHEST_PRECEDENCE = -(2**31)
LOWEST_PRECEDENCE = 2**31 - 1
DEFAULT_ORDER = 0

ORDER_ATTR = "__feign_order__"


def order(value: int) -> Callable[[T], T]:
    """Assign an ordering value to a class, function or bean factory."""

    def decorator(target: T) -> T:
        setattr(target, ORDER_ATTR, value)
        return target

    return decorator


def get_order(obj: Any) -> int:
    """Return the order of ``obj``; lower values sort first."""
    explicit = getattr(obj, ORDER_ATTR, None)
    if isinstance(explicit, int):
        return explicit
    attribute = getattr(obj, "order", None)
    if isinstance(attribute, int) and not isinstance(attribute, bool):
        return attribute
    return DEFAULT_ORDER


def sort_by_order(items: Iterable[T]) -> list[T]:
    """Stable sort by order value; equal orders keep their input order."""
    return sorted(items, key=get_order)
