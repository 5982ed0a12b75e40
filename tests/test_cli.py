from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from aduib_feign.cli import build_parser, main


@pytest.fixture(autouse=True)
def restore_package_logger() -> Iterator[None]:
    """``main`` attaches a stderr handler; undo it so later tests see propagation."""
    logger = logging.getLogger("aduib_feign")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_version_prints_something(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["version"]) == 0
    assert capsys.readouterr().out.strip()


def test_contract_describe_prints_templates(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["contract", "describe", "tests.fixtures_clients:UserClient"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["client"] == "tests.fixtures_clients:UserClient"
    templates = {template["config_key"]: template for template in payload["templates"]}
    get_user = templates["UserClient#get_user(int)"]
    assert get_user["method"] == "GET"
    assert get_user["uri"] == "/users/{id}"
    assert get_user["headers"] == {"Accept": ["application/json"]}
    search = next(t for key, t in templates.items() if key.startswith("UserClient#search("))
    assert search["collection_format"] == "csv"


def test_contract_describe_reports_bad_target(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["contract", "describe", "tests.fixtures_clients:Missing"]) == 1
    assert "Error" in capsys.readouterr().err


def test_contract_describe_rejects_bad_property(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["contract", "describe", "tests.fixtures_clients:UserClient", "-p", "novalue"]) == 1
    assert "KEY=VALUE" in capsys.readouterr().err


def test_config_validate_accepts_valid_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "aduib_feign.yaml"
    path.write_text("feign:\n  client:\n    config:\n      users:\n        read-timeout: 500\n", encoding="utf-8")

    assert main(["config", "validate", str(path), "--verbose"]) == 0

    out = capsys.readouterr().out
    assert "is valid (1 client entry)" in out
    summary = json.loads(out[out.index("{"):])
    assert summary["clients"]["users"]["read_timeout"] == 500


def test_config_validate_reports_invalid_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "aduib_feign.yaml"
    path.write_text("config:\n  users:\n    connect-timeout: -1\n", encoding="utf-8")
    assert main(["config", "validate", str(path)]) == 2
    assert "Invalid properties" in capsys.readouterr().err


def test_config_validate_missing_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["config", "validate", str(tmp_path / "absent.yaml")]) == 1
    assert "not found" in capsys.readouterr().err
