from __future__ import annotations

import pytest

from aduib_feign.environment import Environment
from aduib_feign.exceptions import ConfigError, ConfigErrorKind, ContractError, ContractErrorKind
from aduib_feign.naming import normalize_path, normalize_service_name, normalize_url


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("foo/", "/foo"),
        ("/foo/bar/", "/foo/bar"),
        ("  api  ", "/api"),
        ("", ""),
        (None, ""),
        ("   ", ""),
    ],
)
def test_normalize_path(raw: str | None, expected: str) -> None:
    assert normalize_path(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("example.com", "http://example.com"),
        ("localhost:8080/base", "http://localhost:8080/base"),
        ("https://example.com", "https://example.com"),
        ("#{dynamic}", "#{dynamic}"),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_url(raw: str | None, expected: str) -> None:
    assert normalize_url(raw) == expected


def test_normalize_url_rejects_malformed() -> None:
    with pytest.raises(ContractError) as exc_info:
        normalize_url("http://")
    assert exc_info.value.kind is ContractErrorKind.MALFORMED_URL


@pytest.mark.parametrize("name", ["users", "user-service", "svc.internal", "a1"])
def test_service_name_accepts_hostnames(name: str) -> None:
    assert normalize_service_name(name) == name


@pytest.mark.parametrize("name", ["my service", "a_b", "-leading"])
def test_service_name_rejects_illegal_hosts(name: str) -> None:
    with pytest.raises(ConfigError) as exc_info:
        normalize_service_name(name)
    assert exc_info.value.kind is ConfigErrorKind.ILLEGAL_SERVICE_NAME


def test_environment_resolves_nested_properties_and_defaults() -> None:
    env = Environment({"users": {"url": "http://localhost:9000"}}, use_os_environ=False)
    assert env.resolve_placeholders("${users.url}/v1") == "http://localhost:9000/v1"
    assert env.resolve_placeholders("${missing:fallback}") == "fallback"
    assert env.resolve_placeholders("${missing:-other}") == "other"
    assert env.resolve_placeholders("${missing}") == "${missing}"


def test_environment_required_placeholder_raises() -> None:
    env = Environment(use_os_environ=False)
    with pytest.raises(ContractError) as exc_info:
        env.resolve_required_placeholders("/x/${nowhere}")
    assert exc_info.value.kind is ContractErrorKind.UNRESOLVABLE_PLACEHOLDER
    assert exc_info.value.data == {"placeholder": "nowhere"}


def test_environment_reads_os_environ(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FEIGN_USERS_HOST", "users.internal")
    env = Environment()
    assert env.resolve_placeholders("http://${feign.users.host}") == "http://users.internal"


def test_environment_with_properties_overlays() -> None:
    env = Environment({"a": "1", "b": "2"}, use_os_environ=False).with_properties({"b": "3"})
    assert env.get_property("a") == "1"
    assert env.get_property("b") == "3"
