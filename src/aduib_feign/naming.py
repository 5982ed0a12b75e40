"""Normalization of service names, base URLs and path prefixes."""

from __future__ import annotations

import re

import httpx

from aduib_feign.exceptions import ConfigError, ConfigErrorKind, ContractError, ContractErrorKind

__all__ = ["normalize_path", "normalize_service_name", "normalize_url"]

_SCHEME_SEPARATOR = "://"
# httpx percent-encodes rather than rejects odd host characters
_HOSTNAME_PATTERN = re.compile(r"^([0-9A-Fa-f.]*:[0-9A-Fa-f:.]*|[A-Za-z0-9]([A-Za-z0-9\-.]*[A-Za-z0-9])?)$")


def _is_deferred_expression(value: str) -> bool:
    return value.startswith("#{") and value.endswith("}")


def normalize_service_name(name: str | None) -> str:
    """Validate that ``name`` can be used as the host of ``http://<name>``.

    Empty input yields ``""``; an illegal host raises ``ConfigError``.
    """
    if not name:
        return ""
    host = ""
    try:
        host = httpx.URL(f"http://{name}").host
    except (httpx.InvalidURL, ValueError):
        host = ""
    if not host or not _HOSTNAME_PATTERN.match(host):
        raise ConfigError(
            message=f"Service id not legal hostname ({name})",
            kind=ConfigErrorKind.ILLEGAL_SERVICE_NAME,
            data={"name": name},
        )
    return name


def normalize_url(raw: str | None) -> str:
    """Prefix ``http://`` when no scheme is present and check well-formedness.

    Deferred ``#{...}`` expressions and empty values pass through unchanged.
    """
    if not raw or not raw.strip():
        return raw or ""
    if _is_deferred_expression(raw):
        return raw
    url = raw if _SCHEME_SEPARATOR in raw else f"http://{raw}"
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, ValueError) as exc:
        raise ContractError(
            message=f"{url} is malformed",
            kind=ContractErrorKind.MALFORMED_URL,
            data={"url": url},
            cause=exc,
        ) from exc
    if not parsed.scheme or not parsed.host:
        raise ContractError(
            message=f"{url} is malformed",
            kind=ContractErrorKind.MALFORMED_URL,
            data={"url": url},
        )
    return url


def normalize_path(raw: str | None) -> str:
    """Trim, ensure one leading ``/`` and strip one trailing ``/``."""
    if not raw:
        return ""
    path = raw.strip()
    if not path:
        return ""
    if not path.startswith("/"):
        path = "/" + path
    if path.endswith("/"):
        path = path[:-1]
    return path
