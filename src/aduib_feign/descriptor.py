from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

__all__ = ["ClientDescriptor", "FallbackStrategy"]


class FallbackStrategy(str, enum.Enum):
    NONE = "none"
    FALLBACK = "fallback"
    FALLBACK_FACTORY = "fallback_factory"


@dataclass(frozen=True)
class ClientDescriptor:
    """Identity and declarative settings of one registered client.

    ``name`` is the service name; ``context_id`` keys the client's
    configuration scope and its cache entry. ``url`` is ``None`` when the
    client is load balanced.
    """

    name: str
    type: type
    context_id: str = ""
    url: str | None = None
    path: str = ""
    fallback: type | None = None
    fallback_factory: type | Callable[..., Any] | None = None
    primary: bool = True
    qualifiers: tuple[str, ...] = ()
    configuration: tuple[type, ...] = ()
    dismiss404: bool = False
    refreshable: bool = False

    def __post_init__(self) -> None:
        if not self.context_id:
            object.__setattr__(self, "context_id", self.name)

    @property
    def fallback_strategy(self) -> FallbackStrategy:
        if self.fallback is not None:
            return FallbackStrategy.FALLBACK
        if self.fallback_factory is not None:
            return FallbackStrategy.FALLBACK_FACTORY
        return FallbackStrategy.NONE

    @property
    def load_balanced(self) -> bool:
        return not self.url
