from __future__ import annotations

import pytest

from testloop.config import GenerationConfig
from testloop.extraction import (
    RegexExtractor,
    StructuredExtractor,
    extract,
    parse_constructor_dependencies,
    parse_parameters,
    select_extractor,
    split_top_level,
)
from testloop.models import Dependency, Fidelity, Parameter, SymbolNode

from .conftest import SERVICE_PATH, SERVICE_SOURCE

# ---------------------------------------------------------------------------
# Signature helpers
# ---------------------------------------------------------------------------


class TestSplitTopLevel:
    def test_plain_commas(self) -> None:
        assert split_top_level("a, b, c") == ["a", " b", " c"]

    def test_generic_commas_are_kept(self) -> None:
        parts = split_top_level("m: Map<String, Int>, n: Int")
        assert parts == ["m: Map<String, Int>", " n: Int"]

    def test_function_type_arrow_does_not_close(self) -> None:
        parts = split_top_level("cb: (Int, Int) -> Map<A, B>, x: Long")
        assert len(parts) == 2
        assert parts[0] == "cb: (Int, Int) -> Map<A, B>"

    def test_empty_string(self) -> None:
        assert split_top_level("") == [""]


class TestParseParameters:
    def test_parses_name_and_type(self) -> None:
        params = parse_parameters("(id: String, page: Int)")
        assert params == [
            Parameter(name="id", type="String"),
            Parameter(name="page", type="Int"),
        ]

    def test_empty_parens(self) -> None:
        assert parse_parameters("()") == []

    def test_no_parens(self) -> None:
        assert parse_parameters("FooDto") == []

    def test_none_detail(self) -> None:
        assert parse_parameters(None) == []

    def test_missing_type_defaults_to_any(self) -> None:
        assert parse_parameters("(id)") == [Parameter(name="id", type="Any")]

    def test_default_value_is_dropped(self) -> None:
        params = parse_parameters("(size: Int = 10)")
        assert params == [Parameter(name="size", type="Int")]

    def test_generic_parameter(self) -> None:
        params = parse_parameters("(ids: List<Pair<String, Long>>)")
        assert params[0].type == "List<Pair<String, Long>>"


class TestParseConstructorDependencies:
    def test_strips_val_and_var(self) -> None:
        deps = parse_constructor_dependencies("(val repo: FooRepository, var cache: Cache)")
        assert deps == [
            Dependency(name="repo", type="FooRepository"),
            Dependency(name="cache", type="Cache"),
        ]

    def test_strips_visibility_with_val(self) -> None:
        deps = parse_constructor_dependencies("(private val client: ApiClient)")
        assert deps == [Dependency(name="client", type="ApiClient")]

    def test_plain_parameter(self) -> None:
        deps = parse_constructor_dependencies("(clock: Clock)")
        assert deps == [Dependency(name="clock", type="Clock")]

    def test_missing_detail(self) -> None:
        assert parse_constructor_dependencies(None) == []


# ---------------------------------------------------------------------------
# Structured extraction
# ---------------------------------------------------------------------------


@pytest.fixture()
def symbols() -> dict:
    return {
        "name": "FooServiceImpl",
        "kind": 5,
        "children": [
            {"name": "constructor", "kind": 9, "detail": "(val repo: FooRepository)"},
            {"name": "get", "kind": 6, "detail": "(id: String): FooDto"},
            {"name": "list", "kind": "function", "detail": "(): List<FooDto>"},
            {"name": "_helper", "kind": "method", "detail": "()"},
            {"name": "repo", "kind": 7},
        ],
    }


class TestStructuredExtractor:
    def test_methods(self, symbols: dict, generation_settings: GenerationConfig) -> None:
        descriptor = StructuredExtractor(generation_settings).extract(
            symbols, SERVICE_PATH
        )
        assert [m.name for m in descriptor.methods] == ["get", "list", "_helper"]
        get = descriptor.methods[0]
        assert get.return_type == "FooDto"
        assert get.parameters == [Parameter(name="id", type="String")]
        assert get.is_private is False

    def test_underscore_method_is_private(
        self, symbols: dict, generation_settings: GenerationConfig
    ) -> None:
        descriptor = StructuredExtractor(generation_settings).extract(
            symbols, SERVICE_PATH
        )
        assert descriptor.methods[2].is_private is True
        assert [m.name for m in descriptor.public_methods] == ["get", "list"]

    def test_private_detail_is_private(
        self, generation_settings: GenerationConfig
    ) -> None:
        data = {"name": "S", "children": [{"name": "x", "kind": 6, "detail": "private fun x()"}]}
        descriptor = StructuredExtractor(generation_settings).extract(data, SERVICE_PATH)
        assert descriptor.methods[0].is_private is True

    def test_missing_detail_defaults_to_unit(
        self, generation_settings: GenerationConfig
    ) -> None:
        data = {"name": "S", "children": [{"name": "run", "kind": "method"}]}
        descriptor = StructuredExtractor(generation_settings).extract(data, SERVICE_PATH)
        assert descriptor.methods[0].return_type == "Unit"
        assert descriptor.methods[0].parameters == []

    def test_bare_detail_is_return_type(
        self, generation_settings: GenerationConfig
    ) -> None:
        data = {"name": "S", "children": [{"name": "run", "kind": 6, "detail": "FooDto"}]}
        descriptor = StructuredExtractor(generation_settings).extract(data, SERVICE_PATH)
        assert descriptor.methods[0].return_type == "FooDto"

    def test_dependencies_from_constructor(
        self, symbols: dict, generation_settings: GenerationConfig
    ) -> None:
        descriptor = StructuredExtractor(generation_settings).extract(
            symbols, SERVICE_PATH
        )
        assert descriptor.dependencies == [Dependency(name="repo", type="FooRepository")]

    def test_package_from_path(
        self, symbols: dict, generation_settings: GenerationConfig
    ) -> None:
        descriptor = StructuredExtractor(generation_settings).extract(
            symbols, SERVICE_PATH
        )
        assert descriptor.package_name == "com.x.domainA"
        assert descriptor.imports == []

    def test_package_fallback_without_marker(
        self, symbols: dict, generation_settings: GenerationConfig
    ) -> None:
        descriptor = StructuredExtractor(generation_settings).extract(
            symbols, "src/FooServiceImpl.kt"
        )
        assert descriptor.package_name == generation_settings.fallback_package

    def test_class_name_falls_back_to_path(
        self, generation_settings: GenerationConfig
    ) -> None:
        descriptor = StructuredExtractor(generation_settings).extract(
            {"children": []}, SERVICE_PATH
        )
        assert descriptor.class_name == "FooServiceImpl"

    def test_descends_into_single_class(
        self, symbols: dict, generation_settings: GenerationConfig
    ) -> None:
        overview = {"name": "FooServiceImpl.kt", "children": [symbols]}
        descriptor = StructuredExtractor(generation_settings).extract(
            overview, SERVICE_PATH
        )
        assert descriptor.class_name == "FooServiceImpl"
        assert len(descriptor.methods) == 3

    def test_accepts_symbol_list(
        self, symbols: dict, generation_settings: GenerationConfig
    ) -> None:
        descriptor = StructuredExtractor(generation_settings).extract(
            symbols["children"], SERVICE_PATH
        )
        assert len(descriptor.methods) == 3
        assert descriptor.class_name == "FooServiceImpl"

    def test_accepts_symbol_node(self, generation_settings: GenerationConfig) -> None:
        node = SymbolNode(name="S", children=[SymbolNode(name="a", kind=6)])
        descriptor = StructuredExtractor(generation_settings).extract(node, SERVICE_PATH)
        assert descriptor.class_name == "S"
        assert [m.name for m in descriptor.methods] == ["a"]

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"children": "not-a-list"},
            {"name": 42, "children": [{"kind": {"bad": True}}]},
            "garbage",
            None,
        ],
    )
    def test_never_raises_on_malformed_input(
        self, data: object, generation_settings: GenerationConfig
    ) -> None:
        descriptor = StructuredExtractor(generation_settings).extract(data, SERVICE_PATH)
        assert descriptor.methods == []
        assert descriptor.dependencies == []

    def test_null_children_on_leaf(self, generation_settings: GenerationConfig) -> None:
        data = {
            "name": "FooServiceImpl",
            "children": [
                {"name": "get", "kind": 6, "detail": "(id: String): FooDto"},
                {"name": "helper", "kind": 6, "children": None},
            ],
        }
        descriptor, fidelity = extract(
            SERVICE_PATH, generation_settings, structured_input=data
        )
        assert fidelity == Fidelity.STRUCTURED
        assert descriptor.class_name == "FooServiceImpl"
        assert [(m.name, m.return_type) for m in descriptor.methods] == [
            ("get", "FooDto"),
            ("helper", "Unit"),
        ]

    def test_malformed_child_dropped_alone(
        self, generation_settings: GenerationConfig
    ) -> None:
        data = {
            "name": "FooServiceImpl",
            "kind": 5,
            "children": [
                {"name": "get", "kind": 6, "detail": "(id: String): FooDto"},
                {"name": ["not", "a", "name"], "kind": 6},
                "garbage",
                {"name": "<init>", "kind": 9, "detail": "(val repo: FooRepository)"},
            ],
        }
        descriptor = StructuredExtractor(generation_settings).extract(data, SERVICE_PATH)
        assert descriptor.class_name == "FooServiceImpl"
        assert [m.name for m in descriptor.methods] == ["get"]
        assert descriptor.dependencies == [Dependency(name="repo", type="FooRepository")]


# ---------------------------------------------------------------------------
# Regex extraction
# ---------------------------------------------------------------------------


class TestRegexExtractor:
    def test_reference_service(self) -> None:
        descriptor = RegexExtractor().extract(SERVICE_SOURCE, SERVICE_PATH)
        assert descriptor.package_name == "com.x.domainA"
        assert descriptor.class_name == "FooServiceImpl"
        assert descriptor.dependencies == [Dependency(name="repo", type="FooRepository")]
        assert len(descriptor.methods) == 1
        method = descriptor.methods[0]
        assert method.name == "get"
        assert method.return_type == "FooDto"
        assert method.is_private is False
        assert method.parameters == [Parameter(name="id", type="String")]

    def test_imports_in_file_order(self) -> None:
        descriptor = RegexExtractor().extract(SERVICE_SOURCE, SERVICE_PATH)
        assert descriptor.imports == [
            "com.x.domainA.dto.FooDto",
            "com.x.domainA.repository.FooRepository",
            "org.springframework.stereotype.Service",
        ]

    def test_multiline_constructor(self) -> None:
        source = (
            "package a.b\n"
            "class Svc(\n"
            "    private val repo: Repo,\n"
            "    private val mapper: Map<String, Long>,\n"
            "    plain: Int,\n"
            ") : Api {\n"
            "}\n"
        )
        descriptor = RegexExtractor().extract(source, "x/Svc.kt")
        assert descriptor.dependencies == [
            Dependency(name="repo", type="Repo"),
            Dependency(name="mapper", type="Map<String, Long>"),
        ]

    def test_no_inheritance_marker_means_no_dependencies(self) -> None:
        source = "class Svc(val repo: Repo) {\n}\n"
        assert RegexExtractor().extract(source, "x/Svc.kt").dependencies == []

    def test_private_methods_reported_public(self) -> None:
        source = "class Svc : Api {\n    private fun hidden(): Long = 1L\n}\n"
        descriptor = RegexExtractor().extract(source, "x/Svc.kt")
        assert [m.name for m in descriptor.methods] == ["hidden"]
        assert descriptor.methods[0].is_private is False

    def test_generic_return_type(self) -> None:
        source = "class Svc : Api {\n    fun all(): List<FooDto> = emptyList()\n}\n"
        descriptor = RegexExtractor().extract(source, "x/Svc.kt")
        assert descriptor.methods[0].return_type == "List<FooDto>"

    def test_empty_source(self) -> None:
        descriptor = RegexExtractor().extract("", "x/Svc.kt")
        assert descriptor.package_name == ""
        assert descriptor.class_name == ""
        assert descriptor.methods == []
        assert descriptor.dependencies == []
        assert descriptor.imports == []

    def test_non_text_source(self) -> None:
        descriptor = RegexExtractor().extract(None, "x/Svc.kt")
        assert descriptor.class_name == ""


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


class TestSelectExtractor:
    def test_structured_when_symbols_present(
        self, generation_settings: GenerationConfig
    ) -> None:
        extractor = select_extractor({"name": "S"}, generation_settings)
        assert extractor.fidelity == Fidelity.STRUCTURED

    def test_empty_symbols_still_structured(
        self, generation_settings: GenerationConfig
    ) -> None:
        extractor = select_extractor({}, generation_settings)
        assert extractor.fidelity == Fidelity.STRUCTURED

    def test_regex_when_absent(self, generation_settings: GenerationConfig) -> None:
        extractor = select_extractor(None, generation_settings)
        assert extractor.fidelity == Fidelity.REGEX


class TestExtractEquivalence:
    def test_same_method_name_and_count(
        self, generation_settings: GenerationConfig
    ) -> None:
        structured, structured_fidelity = extract(
            SERVICE_PATH,
            generation_settings,
            structured_input={"name": "Svc", "children": [{"name": "ping", "kind": "method"}]},
        )
        regex, regex_fidelity = extract(
            SERVICE_PATH,
            generation_settings,
            source_text="class Svc : Api {\n    fun ping(): Pong = Pong()\n}\n",
        )
        assert structured_fidelity == Fidelity.STRUCTURED
        assert regex_fidelity == Fidelity.REGEX
        assert [m.name for m in structured.methods] == [m.name for m in regex.methods]
        assert structured.methods[0].return_type == "Unit"
        assert regex.methods[0].return_type == "Pong"
