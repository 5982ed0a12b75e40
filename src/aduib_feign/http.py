"""HTTP value types shared by the contract, transport and invocation layers."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote


class HttpMethod(str, enum.Enum):
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"


class CollectionFormat(str, enum.Enum):
    """How repeated values for one query/header key are rendered."""

    EXPLODED = "exploded"
    CSV = "csv"
    SSV = "ssv"
    TSV = "tsv"
    PIPES = "pipes"

    @property
    def separator(self) -> str | None:
        return _SEPARATORS[self]

    def join(self, values: Iterable[str]) -> list[str]:
        """Return the values as they should be emitted for one key."""
        items = list(values)
        if self.separator is None or not items:
            return items
        return [self.separator.join(items)]


_SEPARATORS: dict[CollectionFormat, str | None] = {
    CollectionFormat.EXPLODED: None,
    CollectionFormat.CSV: ",",
    CollectionFormat.SSV: " ",
    CollectionFormat.TSV: "\t",
    CollectionFormat.PIPES: "|",
}


class Multimap:
    """Insertion-ordered multimap with optional case-insensitive keys."""

    def __init__(
        self,
        items: Iterable[tuple[str, Iterable[str]]] | None = None,
        *,
        case_insensitive: bool = False,
    ) -> None:
        self._case_insensitive = case_insensitive
        self._data: dict[str, list[str]] = {}
        for key, values in items or ():
            self.add_all(key, values)

    def _lookup(self, key: str) -> str | None:
        if key in self._data:
            return key
        if self._case_insensitive:
            lowered = key.lower()
            for existing in self._data:
                if existing.lower() == lowered:
                    return existing
        return None

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._lookup(key) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key: str) -> list[str]:
        existing = self._lookup(key)
        return list(self._data[existing]) if existing is not None else []

    def first(self, key: str) -> str | None:
        values = self.get(key)
        return values[0] if values else None

    def add(self, key: str, value: str) -> None:
        self.add_all(key, (value,))

    def add_all(self, key: str, values: Iterable[str]) -> None:
        existing = self._lookup(key)
        if existing is None:
            self._data[key] = list(values)
        else:
            self._data[existing].extend(values)

    def set(self, key: str, values: Iterable[str]) -> None:
        existing = self._lookup(key)
        if existing is not None:
            del self._data[existing]
        self._data[key] = list(values)

    def remove(self, key: str) -> None:
        existing = self._lookup(key)
        if existing is not None:
            del self._data[existing]

    def items(self) -> list[tuple[str, tuple[str, ...]]]:
        return [(key, tuple(values)) for key, values in self._data.items()]

    def multi_items(self) -> list[tuple[str, str]]:
        return [(key, value) for key, values in self._data.items() for value in values]

    def copy(self) -> Multimap:
        return Multimap(self.items(), case_insensitive=self._case_insensitive)

    def __repr__(self) -> str:
        return f"Multimap({dict(self._data)!r})"


@dataclass(frozen=True)
class HttpRequest:
    """A fully expanded request, ready for a transport."""

    method: str
    url: str
    headers: tuple[tuple[str, tuple[str, ...]], ...] = ()
    body: bytes | None = None
    config_key: str | None = None

    def header(self, name: str) -> tuple[str, ...]:
        lowered = name.lower()
        for key, values in self.headers:
            if key.lower() == lowered:
                return values
        return ()

    def header_map(self) -> dict[str, tuple[str, ...]]:
        return dict(self.headers)


@dataclass(frozen=True)
class HttpResponse:
    """Transport-neutral response."""

    status: int
    reason: str = ""
    headers: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    body: bytes = b""
    request: HttpRequest | None = None

    def header(self, name: str) -> tuple[str, ...]:
        lowered = name.lower()
        for key, values in self.headers.items():
            if key.lower() == lowered:
                return tuple(values)
        return ()

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


class PreparedRequest:
    """Mutable per-call request that interceptors may amend.

    ``path`` holds the expanded method path; ``target_url`` is filled in by
    the client target just before the request is frozen.
    """

    def __init__(
        self,
        method: str,
        path: str,
        *,
        queries: Multimap | None = None,
        headers: Multimap | None = None,
        body: bytes | None = None,
        config_key: str | None = None,
    ) -> None:
        self.method = method
        self.path = path
        self.queries = queries if queries is not None else Multimap()
        self.headers = headers if headers is not None else Multimap(case_insensitive=True)
        self.body = body
        self.config_key = config_key
        self.target_url = ""
        self.encoded_query_keys: set[str] = set()

    def header(self, name: str, *values: str) -> PreparedRequest:
        self.headers.add_all(name, values)
        return self

    def query(self, name: str, *values: str) -> PreparedRequest:
        self.queries.add_all(name, values)
        return self

    def query_string(self) -> str:
        parts: list[str] = []
        for key, value in self.queries.multi_items():
            if key in self.encoded_query_keys:
                parts.append(f"{key}={value}")
            else:
                parts.append(f"{quote(key, safe='')}={quote(value, safe='')}")
        return "&".join(parts)

    def url(self) -> str:
        base = self.target_url.rstrip("/") if self.path.startswith("/") else self.target_url
        url = f"{base}{self.path}"
        query = self.query_string()
        if query:
            url = f"{url}{'&' if '?' in url else '?'}{query}"
        return url

    def to_request(self) -> HttpRequest:
        return HttpRequest(
            method=self.method,
            url=self.url(),
            headers=freeze_headers(self.headers),
            body=self.body,
            config_key=self.config_key,
        )

    def __repr__(self) -> str:
        return f"PreparedRequest({self.method} {self.url()!r})"


def freeze_headers(headers: Multimap | Mapping[str, Any]) -> tuple[tuple[str, tuple[str, ...]], ...]:
    if isinstance(headers, Multimap):
        return tuple(headers.items())
    frozen: list[tuple[str, tuple[str, ...]]] = []
    for key, values in headers.items():
        if isinstance(values, str):
            frozen.append((key, (values,)))
        else:
            frozen.append((key, tuple(str(value) for value in values)))
    return tuple(frozen)


__all__ = [
    "CollectionFormat",
    "HttpMethod",
    "HttpRequest",
    "HttpResponse",
    "Multimap",
    "PreparedRequest",
    "freeze_headers",
]
