from __future__ import annotations

from pathlib import Path

import pytest

from aduib_feign.codec import DefaultErrorDecoder
from aduib_feign.config import ClientConfigProperties, FeignClientProperties, Options, OptionsRegistry, options_name
from aduib_feign.config.loader import load_properties, load_properties_with_overrides
from aduib_feign.exceptions import PropertiesError
from aduib_feign.observability.request_logger import LogLevel
from aduib_feign.retry import ExceptionPropagationPolicy


def _write(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


def test_properties_from_dict_normalizes_keys_and_values() -> None:
    properties = FeignClientProperties.from_dict(
        {
            "feign": {
                "client": {
                    "default-to-properties": "false",
                    "refresh-enabled": True,
                    "config": {
                        "users": {
                            "logger-level": "FULL",
                            "connect-timeout": "250",
                            "read_timeout": 500,
                            "default-request-headers": {"X-Env": "prod", "X-Multi": ["a", "b"]},
                            "error-decoder": "aduib_feign.codec:DefaultErrorDecoder",
                            "exception-propagation-policy": "unwrap",
                        }
                    },
                }
            }
        }
    )
    assert properties.default_to_properties is False
    assert properties.refresh_enabled is True
    users = properties.client("users")
    assert users is not None
    assert users.logger_level is LogLevel.FULL
    assert users.connect_timeout == 250
    assert users.read_timeout == 500
    assert users.default_request_headers == {"X-Env": ["prod"], "X-Multi": ["a", "b"]}
    assert users.error_decoder is DefaultErrorDecoder
    assert users.exception_propagation_policy is ExceptionPropagationPolicy.UNWRAP


def test_unknown_client_keys_are_rejected() -> None:
    with pytest.raises(ValueError, match="unknown key"):
        ClientConfigProperties.from_dict({"conect-timeout": 1}, name="users")


def test_negative_timeouts_are_rejected() -> None:
    with pytest.raises(ValueError):
        ClientConfigProperties(connect_timeout=-1)
    with pytest.raises(ValueError):
        Options(read_timeout_ms=-5)


def test_options_defaults_and_seconds() -> None:
    options = Options()
    assert options.connect_timeout_ms == 10_000
    assert options.read_timeout_ms == 60_000
    assert options.follow_redirects is True
    assert Options(1500, 2500).connect_timeout == 1.5
    assert Options(1500, 2500).read_timeout == 2.5


def test_options_registry_refresh_bumps_version() -> None:
    registry = OptionsRegistry()
    name = options_name("users")
    assert name == "aduib_feign.Options-users"
    cell = registry.register(name, Options(1, 2))
    assert cell.version == 1
    assert registry.refresh(name, Options(3, 4)) == 2
    assert registry.current(name) == Options(3, 4)
    assert registry.register(name) is cell
    with pytest.raises(KeyError):
        registry.current("missing")


def test_refresh_of_unknown_name_registers_it() -> None:
    registry = OptionsRegistry()
    assert registry.refresh("fresh", Options(5, 6)) == 1
    assert registry.names() == ["fresh"]


def test_load_properties_expands_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("USERS_TIMEOUT", "1200")
    monkeypatch.delenv("USERS_LEVEL", raising=False)
    path = _write(
        tmp_path / "feign.yaml",
        """
feign:
  client:
    config:
      users:
        connect-timeout: ${USERS_TIMEOUT}
        logger-level: ${USERS_LEVEL:-basic}
""",
    )
    properties = load_properties(path)
    users = properties.client("users")
    assert users.connect_timeout == 1200
    assert users.logger_level is LogLevel.BASIC


def test_load_properties_without_root_section(tmp_path: Path) -> None:
    path = _write(tmp_path / "plain.yml", "default-config: shared\nconfig:\n  shared:\n    dismiss404: true\n")
    properties = load_properties(path)
    assert properties.default_config == "shared"
    assert properties.client("shared").dismiss404 is True


def test_missing_environment_variable_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
    path = _write(tmp_path / "feign.yaml", "config:\n  users:\n    read-timeout: ${NOT_SET_ANYWHERE}\n")
    with pytest.raises(PropertiesError, match="NOT_SET_ANYWHERE"):
        load_properties(path)


def test_overrides_merge_deeply(tmp_path: Path) -> None:
    base = _write(
        tmp_path / "base.yaml",
        "config:\n  users:\n    connect-timeout: 100\n    read-timeout: 200\n",
    )
    override = _write(tmp_path / "prod.yaml", "config:\n  users:\n    read-timeout: 900\n")
    users = load_properties_with_overrides(base, override).client("users")
    assert users.connect_timeout == 100
    assert users.read_timeout == 900


@pytest.mark.parametrize(
    "filename,content,message",
    [
        ("feign.json", "{}", "Unsupported property file type"),
        ("missing.yaml", None, "Property file not found"),
        ("list.yaml", "- a\n- b\n", "must parse to a mapping"),
        ("bad.yaml", "config:\n  users:\n    read-timeout: soon\n", "Invalid properties"),
    ],
)
def test_invalid_property_files(tmp_path: Path, filename: str, content: str | None, message: str) -> None:
    path = tmp_path / filename
    if content is not None:
        _write(path, content)
    with pytest.raises(PropertiesError, match=message):
        load_properties(path)
