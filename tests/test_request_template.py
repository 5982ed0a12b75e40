from __future__ import annotations

import datetime as dt
import enum
from typing import Annotated, Any

import pytest

from aduib_feign import (
    MatrixVariable,
    PathVariable,
    QueryMap,
    RequestHeader,
    RequestParam,
    collection_format,
    get_mapping,
)
from aduib_feign.contract import MvcContract
from aduib_feign.contract.conversion import ConversionService, element_type
from aduib_feign.exceptions import ExpansionError
from aduib_feign.http import CollectionFormat, Multimap, PreparedRequest


class Color(enum.Enum):
    RED = "red"


class ExpansionApi:
    @get_mapping("/files/{path}")
    def file(self, path: Annotated[str, PathVariable()]) -> bytes: ...

    @get_mapping("/events")
    def events(
        self,
        day: Annotated[dt.date, RequestParam()],
        color: Annotated[Color | None, RequestParam()] = None,
        ids: Annotated[list[int] | None, RequestParam("id")] = None,
    ) -> list: ...

    @get_mapping("/pipes")
    @collection_format(CollectionFormat.PIPES)
    def pipes(self, ids: Annotated[list[int], RequestParam("id")]) -> list: ...

    @get_mapping("/search")
    def search(self, criteria: Annotated[Any, QueryMap(encoded=True)]) -> list: ...

    @get_mapping("/headers")
    def headers(
        self,
        extra: Annotated[dict[str, str], RequestHeader()],
        trace: Annotated[str | None, RequestHeader("X-Trace")] = None,
    ) -> None: ...

    @get_mapping("/cars/{make}{color}{attrs}")
    def cars(
        self,
        make: Annotated[str, PathVariable()],
        color: Annotated[list[str] | None, MatrixVariable()] = None,
        attrs: Annotated[dict[str, Any] | None, MatrixVariable()] = None,
    ) -> list: ...


def _template(name: str, *, decode_slash: bool = True):
    templates = MvcContract(decode_slash=decode_slash).parse_and_validate_metadata(ExpansionApi)
    return {t.method_name: t for t in templates}[name]


def test_path_variables_are_percent_encoded() -> None:
    assert _template("file").prepare(["a b/c.txt"]).path == "/files/a%20b/c.txt"
    assert _template("file", decode_slash=False).prepare(["a b/c.txt"]).path == "/files/a%20b%2Fc.txt"


def test_missing_path_variable_raises() -> None:
    with pytest.raises(ExpansionError) as exc_info:
        _template("file").prepare([None])
    assert exc_info.value.data == {"variable": "path"}


def test_matrix_variables_expand_into_path_parameters() -> None:
    template = _template("cars")
    request = template.prepare(["vw", ["red", "dark blue"], {"year": 2020, "seats": [4, 5], "trim": None}])
    assert request.path == "/cars/vw;color=red,dark%20blue;year=2020;seats=4,5"


def test_unset_matrix_variables_expand_to_nothing() -> None:
    assert _template("cars").prepare(["vw", None, None]).path == "/cars/vw"
    assert _template("cars").prepare(["vw", "a;b", {}]).path == "/cars/vw;color=a%3Bb"


def test_query_values_are_converted_and_unset_ones_dropped() -> None:
    request = _template("events").prepare([dt.date(2024, 5, 1), None, None])
    assert request.queries.items() == [("day", ("2024-05-01",))]

    request = _template("events").prepare([dt.date(2024, 5, 1), Color.RED, [1, 2]])
    assert request.queries.get("color") == ["red"]
    assert request.queries.get("id") == ["1", "2"]
    assert request.query_string() == "day=2024-05-01&color=red&id=1&id=2"


def test_collection_format_joins_values() -> None:
    request = _template("pipes").prepare([[1, 2, 3]])
    assert request.queries.get("id") == ["1|2|3"]
    assert request.query_string() == "id=1%7C2%7C3"


def test_encoded_query_map_is_not_re_encoded() -> None:
    request = _template("search").prepare([{"q": "a%20b", "skip": None}])
    assert request.query_string() == "q=a%20b"


def test_query_map_accepts_models() -> None:
    from tests.fixtures_clients import User

    request = _template("search").prepare([User(id=1, name="ann")])
    assert request.queries.get("id") == ["1"]
    assert request.queries.get("name") == ["ann"]


def test_query_map_rejects_unsupported_values() -> None:
    with pytest.raises(ExpansionError):
        _template("search").prepare([42])


def test_header_map_and_named_header() -> None:
    request = _template("headers").prepare([{"X-A": "1"}, "abc"])
    assert request.headers.get("x-trace") == ["abc"]
    assert request.headers.get("X-A") == ["1"]


def test_prepared_request_url_joins_target_and_path() -> None:
    request = PreparedRequest("GET", "/users/1")
    request.target_url = "http://svc/api/"
    request.query("q", "x y")
    assert request.url() == "http://svc/api/users/1?q=x%20y"
    frozen = request.to_request()
    assert frozen.url == "http://svc/api/users/1?q=x%20y"
    assert frozen.method == "GET"


def test_describe_is_json_friendly() -> None:
    described = _template("events").describe()
    assert described["method"] == "GET"
    assert described["uri"] == "/events"
    assert described["queries"] == {"day": ["{day}"], "color": ["{color}"], "id": ["{id}"]}
    assert described["collection_format"] == "exploded"


def test_multimap_is_case_insensitive_for_headers() -> None:
    headers = Multimap(case_insensitive=True)
    headers.add("Content-Type", "text/plain")
    headers.set("content-type", ["application/json"])
    assert headers.items() == [("content-type", ("application/json",))]
    assert "CONTENT-TYPE" in headers


@pytest.mark.parametrize(
    "value,expected",
    [
        (True, "true"),
        (Color.RED, "red"),
        (dt.date(2020, 1, 2), "2020-01-02"),
        (b"raw", "raw"),
        (7, "7"),
    ],
)
def test_conversion_service(value: Any, expected: str) -> None:
    assert ConversionService().convert(value) == expected


def test_element_type_unwraps_iterables_and_optionals() -> None:
    assert element_type(list[int]) is int
    assert element_type(list[int] | None) is int
    assert element_type(str) is str
