"""Request interceptors applied to every prepared request of a client."""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

from aduib_feign.http import PreparedRequest
from aduib_feign.ordering import LOWEST_PRECEDENCE

__all__ = [
    "BasicAuthRequestInterceptor",
    "DefaultHeadersInterceptor",
    "DefaultQueryParamsInterceptor",
    "RequestInterceptor",
]


class RequestInterceptor(ABC):
    """Amends a prepared request before it is sent."""

    @abstractmethod
    def apply(self, request: PreparedRequest) -> None:
        """Modify ``request`` in place."""


def _as_values(values: str | Sequence[str]) -> list[str]:
    if isinstance(values, str):
        return [values]
    return [str(value) for value in values]


class DefaultHeadersInterceptor(RequestInterceptor):
    """Adds configured headers only when the request does not carry them yet."""

    order = LOWEST_PRECEDENCE

    def __init__(self, headers: Mapping[str, str | Sequence[str]]) -> None:
        self.headers = {key: _as_values(values) for key, values in headers.items()}

    def apply(self, request: PreparedRequest) -> None:
        for key, values in self.headers.items():
            if key not in request.headers:
                request.headers.set(key, values)

    def __repr__(self) -> str:
        return f"DefaultHeadersInterceptor({self.headers!r})"


class DefaultQueryParamsInterceptor(RequestInterceptor):
    """Adds configured query parameters only when absent from the request."""

    order = LOWEST_PRECEDENCE

    def __init__(self, query_params: Mapping[str, str | Sequence[str]]) -> None:
        self.query_params = {key: _as_values(values) for key, values in query_params.items()}

    def apply(self, request: PreparedRequest) -> None:
        for key, values in self.query_params.items():
            if key not in request.queries:
                request.queries.set(key, values)

    def __repr__(self) -> str:
        return f"DefaultQueryParamsInterceptor({self.query_params!r})"


class BasicAuthRequestInterceptor(RequestInterceptor):
    def __init__(self, username: str, password: str, encoding: str = "utf-8") -> None:
        token = base64.b64encode(f"{username}:{password}".encode(encoding)).decode("ascii")
        self._header = f"Basic {token}"

    def apply(self, request: PreparedRequest) -> None:
        request.headers.set("Authorization", [self._header])
