from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any

import pytest

from aduib_feign import (
    MatrixVariable,
    Options,
    PathVariable,
    RequestParam,
    RequestPart,
    delete_mapping,
    get_mapping,
    post_mapping,
    request_mapping,
)
from aduib_feign.contract import ContractRegistry, MvcContract, NoParameterNameDiscoverer
from aduib_feign.contract.processors import AnnotatedParameterProcessor, MatrixVariableExpander
from aduib_feign.environment import Environment
from aduib_feign.exceptions import ContractError, ContractErrorKind
from aduib_feign.http import CollectionFormat, HttpMethod

from tests.fixtures_clients import FormApi, User, UserApi


def _templates(client_type: type, contract: MvcContract | None = None) -> dict[str, Any]:
    contract = contract or MvcContract()
    return {t.method_name: t for t in contract.parse_and_validate_metadata(client_type)}


class ItemApi:
    @get_mapping("/items/{id}")
    def get_item(self, id: Annotated[str, PathVariable()]) -> dict: ...

    @delete_mapping("/items/{id}")
    def delete_item(self, id: Annotated[str, PathVariable()]) -> None: ...

    def helper(self) -> None:
        """Not routed; ignored by the contract."""


class MatrixApi:
    @get_mapping("/owners/{owner}/pets{filters}")
    def pets(
        self,
        owner: Annotated[int, PathVariable()],
        filters: Annotated[dict[str, str], MatrixVariable("filters")],
    ) -> list: ...


class HeaderApi:
    @get_mapping(
        "/h",
        produces="application/json",
        consumes="text/plain",
        headers=["Accept=text/csv", "X-A=1", "X-A=2", "X-B!=skip", "Content-Type=application/xml"],
    )
    def call(self) -> str: ...


class PlaceholderApi:
    @get_mapping("/${api.version}/items")
    def list_items(self) -> list: ...

    @get_mapping("items?sort=asc")
    def sorted_items(self) -> list: ...


class MissingPlaceholderApi:
    @get_mapping("/${api.nowhere}/items")
    def list_items(self) -> list: ...


class MultiplePathApi:
    @request_mapping(["/a", "/b"])
    def call(self) -> None: ...


class MultipleVerbApi:
    @request_mapping("/a", method=["GET", "POST"])
    def call(self) -> None: ...


class StackedMappingApi:
    @get_mapping("/a")
    @post_mapping("/a")
    def call(self) -> None: ...


@request_mapping("/base")
class ClassRoutedApi:
    @get_mapping("/a")
    def call(self) -> None: ...


class TwoBodiesApi:
    @post_mapping("/a")
    def call(self, first: User, second: User) -> None: ...


class BodyAndFormApi:
    @post_mapping("/a")
    def call(self, part: Annotated[str, RequestPart()], body: User) -> None: ...


class ConflictingBindingApi:
    @get_mapping("/a/{v}")
    def call(self, v: Annotated[str, PathVariable(), RequestParam()]) -> None: ...


class PositionalApi:
    @get_mapping("/x/{0}")
    def call(self, value: Annotated[str, PathVariable()]) -> None: ...


class FormPathVariableApi:
    @post_mapping("/f")
    def call(self, a: Annotated[str, PathVariable("a")]) -> None: ...


class MapParamApi:
    @get_mapping("/m")
    def call(self, params: Annotated[dict[str, str], RequestParam()], flag: Annotated[bool, RequestParam()]) -> None: ...


class TwoQueryMapsApi:
    @get_mapping("/m")
    def call(
        self,
        first: Annotated[dict[str, str], RequestParam()],
        second: Annotated[dict[str, str], RequestParam()],
    ) -> None: ...


class OptionsApi:
    @get_mapping("/o")
    def call(self, options: Options, q: Annotated[int, RequestParam()]) -> None: ...


@dataclass(frozen=True)
class Tenant:
    name: str = "X-Tenant"


class TenantProcessor(AnnotatedParameterProcessor):
    annotation_type = Tenant

    def process_argument(self, context, annotation, method) -> bool:
        context.name_param("tenant")
        context.method_metadata.template_header(annotation.name, "{tenant}")
        return True


class TenantApi:
    @get_mapping("/t")
    def call(self, tenant: Annotated[str, Tenant()]) -> None: ...


def test_same_path_with_different_verbs_yields_distinct_templates() -> None:
    templates = _templates(ItemApi)
    assert set(templates) == {"get_item", "delete_item"}
    assert templates["get_item"].method is HttpMethod.GET
    assert templates["delete_item"].method is HttpMethod.DELETE
    assert templates["get_item"].uri == templates["delete_item"].uri == "/items/{id}"
    assert templates["get_item"].config_key != templates["delete_item"].config_key


def test_config_key_names_type_method_and_parameter_types() -> None:
    templates = _templates(ItemApi)
    assert templates["get_item"].config_key == "ItemApi#get_item(str)"


def test_user_api_templates() -> None:
    templates = _templates(UserApi)
    assert templates["get_user"].return_type is User
    assert templates["get_user"].header("Accept") == ("application/json",)
    assert templates["create_user"].body_index == 0
    assert templates["create_user"].body_type is User
    assert templates["search"].collection_format is CollectionFormat.CSV


def test_header_precedence_produces_consumes_then_headers() -> None:
    template = _templates(HeaderApi)["call"]
    assert template.header("Accept") == ("text/csv",)
    assert template.header("Content-Type") == ("application/xml",)
    assert template.header("X-A") == ("1", "2")
    assert template.header("X-B") == ()


def test_placeholders_resolve_against_the_environment() -> None:
    contract = MvcContract(environment=Environment({"api": {"version": "v2"}}, use_os_environ=False))
    templates = _templates(PlaceholderApi, contract)
    assert templates["list_items"].uri == "/v2/items"
    assert templates["sorted_items"].uri == "/items"
    assert templates["sorted_items"].query("sort") == ("asc",)


def test_unresolvable_placeholder_reports_the_method() -> None:
    contract = MvcContract(environment=Environment(use_os_environ=False))
    with pytest.raises(ContractError) as exc_info:
        contract.parse_and_validate_metadata(MissingPlaceholderApi)
    assert exc_info.value.kind is ContractErrorKind.UNRESOLVABLE_PLACEHOLDER
    assert exc_info.value.config_key == "MissingPlaceholderApi#list_items()"


@pytest.mark.parametrize(
    "client_type,kind",
    [
        (MultiplePathApi, ContractErrorKind.MULTIPLE_PATH_VALUES),
        (MultipleVerbApi, ContractErrorKind.MULTIPLE_HTTP_METHODS),
        (StackedMappingApi, ContractErrorKind.CONFLICTING_MAPPINGS),
        (ClassRoutedApi, ContractErrorKind.CLASS_LEVEL_ROUTING_NOT_ALLOWED),
        (TwoBodiesApi, ContractErrorKind.TOO_MANY_BODY_PARAMETERS),
        (BodyAndFormApi, ContractErrorKind.BODY_WITH_FORM_PARAMETERS),
        (ConflictingBindingApi, ContractErrorKind.CONFLICTING_PARAMETER_BINDINGS),
        (TwoQueryMapsApi, ContractErrorKind.DUPLICATE_QUERY_MAP),
    ],
)
def test_invalid_contracts_are_rejected(client_type: type, kind: ContractErrorKind) -> None:
    with pytest.raises(ContractError) as exc_info:
        MvcContract().parse_and_validate_metadata(client_type)
    assert exc_info.value.kind is kind


def test_nameless_binding_falls_back_to_position() -> None:
    contract = MvcContract(parameter_name_discoverer=NoParameterNameDiscoverer())
    template = _templates(PositionalApi, contract)["call"]
    assert template.index_to_name[0] == ("0",)
    assert template.prepare(["abc"]).path == "/x/abc"


def test_path_variable_missing_from_uri_becomes_form_parameter() -> None:
    template = _templates(FormPathVariableApi)["call"]
    assert template.form_params == ("a",)
    assert template.body_index is None


def test_request_parts_are_form_parameters() -> None:
    template = _templates(FormApi)["login"]
    assert template.form_params == ("username", "password")
    assert template.header("Content-Type") == ("application/x-www-form-urlencoded",)


def test_mapping_request_param_is_a_query_map() -> None:
    template = _templates(MapParamApi)["call"]
    assert template.query_map_index == 0
    request = template.prepare([{"a": "1"}, True])
    assert request.queries.get("a") == ["1"]
    assert request.queries.get("flag") == ["true"]


def test_options_parameter_is_not_a_body() -> None:
    template = _templates(OptionsApi)["call"]
    assert template.options_index == 0
    assert template.body_index is None
    assert template.query("q") == ("{q}",)


def test_custom_parameter_processor() -> None:
    contract = MvcContract(parameter_processors=[TenantProcessor()])
    assert contract.processors[Tenant].__class__ is TenantProcessor
    template = _templates(TenantApi, contract)["call"]
    request = template.prepare(["acme"])
    assert request.headers.get("X-Tenant") == ["acme"]


def test_unrouted_methods_are_skipped() -> None:
    assert "helper" not in _templates(ItemApi)


def test_contract_registry_compiles_once() -> None:
    calls: list[type] = []

    class CountingContract(MvcContract):
        def parse_and_validate_metadata(self, client_type):
            calls.append(client_type)
            return super().parse_and_validate_metadata(client_type)

    registry = ContractRegistry()
    contract = CountingContract()
    first = registry.register(ItemApi, contract)
    second = registry.register(ItemApi, contract)
    assert first is second
    assert calls == [ItemApi]
    assert ItemApi in registry
    assert registry.get(ItemApi, contract) is first
    assert registry.template(ItemApi, contract, "get_item").uri == "/items/{id}"
    with pytest.raises(KeyError):
        registry.template(ItemApi, contract, "missing")


def test_contract_registry_compiles_again_for_another_contract() -> None:
    registry = ContractRegistry()
    default = registry.register(ItemApi, MvcContract())
    raw_slashes = registry.register(ItemApi, MvcContract(decode_slash=False))
    assert default is not raw_slashes
    assert default["get_item"].decode_slash is True
    assert raw_slashes["get_item"].decode_slash is False


def test_matrix_variable_binds_a_pre_encoded_expander() -> None:
    assert MatrixVariable in MvcContract().processors
    template = _templates(MatrixApi)["pets"]
    assert template.index_to_name[1] == ("filters",)
    assert isinstance(template.index_to_expander[1], MatrixVariableExpander)
    assert template.encoded_variables == frozenset({"filters"})
    assert template.body_index is None
    assert template.prepare([7, {"species": "cat"}]).path == "/owners/7/pets;species=cat"
