"""Tests for the annotation type-expression grammar."""

from __future__ import annotations

import pytest

from openapi_extractor.annotations.grammar import (
    TypeSyntaxError,
    UnknownStatusError,
    UnterminatedTypeError,
    parse_leading_type,
    parse_return,
    parse_status_token,
    parse_type,
)
from openapi_extractor.annotations.types import (
    ListType,
    MapType,
    NullableType,
    PrimitiveType,
    RecordType,
    RefType,
    UnionType,
    format_type,
)


class TestPrimitives:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("string", "string"),
            ("str", "string"),
            ("integer", "int"),
            ("boolean", "bool"),
            ("number", "float"),
            ("mixed", "mixed"),
        ],
    )
    def test_keywords_and_aliases(self, text: str, expected: str) -> None:
        assert parse_type(text) == PrimitiveType(type=expected)

    def test_primitive_rejects_type_arguments(self) -> None:
        with pytest.raises(TypeSyntaxError, match="takes no type arguments"):
            parse_type("int<string>")

    def test_capitalized_keyword_is_a_reference(self) -> None:
        """Names that only look like keywords stay named references."""
        assert parse_type("String") == RefType(name="String")
        assert parse_type("integers") == RefType(name="integers")


class TestNullable:
    def test_question_mark_prefix(self) -> None:
        assert parse_type("?int") == NullableType(of=PrimitiveType(type="int"))

    def test_union_with_null(self) -> None:
        assert parse_type("int|null") == NullableType(of=PrimitiveType(type="int"))

    def test_double_nullable_collapses(self) -> None:
        assert parse_type("??string") == NullableType(of=PrimitiveType(type="string"))


class TestCollections:
    def test_list_of_reference(self) -> None:
        assert parse_type("list<TodoItem>") == ListType(of=RefType(name="TodoItem"))

    def test_array_with_one_argument_is_a_list(self) -> None:
        assert parse_type("array<string>") == ListType(of=PrimitiveType(type="string"))

    def test_bare_list_holds_mixed(self) -> None:
        assert parse_type("list") == ListType(of=PrimitiveType(type="mixed"))

    def test_map(self) -> None:
        spec = parse_type("dict<string, int>")
        assert isinstance(spec, MapType)
        assert spec.key == PrimitiveType(type="string")
        assert spec.value == PrimitiveType(type="int")

    def test_map_key_must_be_string_or_int(self) -> None:
        with pytest.raises(TypeSyntaxError, match="Map key"):
            parse_type("dict<bool, int>")

    def test_unknown_generic(self) -> None:
        with pytest.raises(TypeSyntaxError, match="Unknown generic"):
            parse_type("TodoItem<int>")


class TestRecords:
    def test_fields_and_optionality(self) -> None:
        spec = parse_type("{id: int, 'display-name'?: string,}")
        assert isinstance(spec, RecordType)
        assert list(spec.fields) == ["id", "display-name"]
        assert spec.fields["id"].optional is False
        assert spec.fields["display-name"].optional is True

    def test_empty_record(self) -> None:
        assert parse_type("{}") == RecordType()

    def test_nested_record(self) -> None:
        spec = parse_type("{meta: {total: int}, items: list<{id: int}>}")
        assert format_type(spec) == "{meta: {total: int}, items: list<{id: int}>}"

    def test_duplicate_field(self) -> None:
        with pytest.raises(TypeSyntaxError, match="Duplicate record field 'id'"):
            parse_type("{id: int, id: string}")


class TestMalformed:
    @pytest.mark.parametrize("text", ["list<int", "{id: int", "dict<string,", "?"])
    def test_unterminated(self, text: str) -> None:
        with pytest.raises(UnterminatedTypeError):
            parse_type(text)

    def test_trailing_input(self) -> None:
        with pytest.raises(TypeSyntaxError, match="after type expression"):
            parse_type("int string")

    def test_unexpected_character(self) -> None:
        with pytest.raises(TypeSyntaxError, match="Unexpected character"):
            parse_type("int;")


class TestUnions:
    def test_plain_union(self) -> None:
        spec = parse_type("int|string")
        assert isinstance(spec, UnionType)
        assert spec.options == [PrimitiveType(type="int"), PrimitiveType(type="string")]

    def test_repeated_branch_is_folded(self) -> None:
        assert parse_type("TodoItem|TodoItem") == RefType(name="TodoItem")

    def test_nullable_union(self) -> None:
        spec = parse_type("int|string|null")
        assert isinstance(spec, NullableType)
        assert isinstance(spec.of, UnionType)


class TestLeadingType:
    def test_description_is_not_tokenized(self) -> None:
        spec, rest = parse_leading_type("?string notes Optional notes (may contain ; or $)")
        assert spec == NullableType(of=PrimitiveType(type="string"))
        assert rest == "notes Optional notes (may contain ; or $)"

    def test_record_parameter_type(self) -> None:
        spec, rest = parse_leading_type("{id: int} filter Filter")
        assert isinstance(spec, RecordType)
        assert rest == "filter Filter"


class TestReturn:
    def test_two_branch_union(self) -> None:
        responses = parse_return(
            "DataResponse<200, {id: int}, {}>|DataResponse<Http.STATUS_NOT_FOUND, null, {}>"
        )
        assert [r.status for r in responses] == [200, 404]
        assert responses[0].has_content
        assert not responses[1].has_content

    def test_headers(self) -> None:
        (response,) = parse_return("JSONResponse<201, TodoItem, {X-Request-Id: string}>")
        assert response.wrapper == "JSONResponse"
        assert list(response.headers.fields) == ["X-Request-Id"]

    def test_headers_default_to_empty(self) -> None:
        (response,) = parse_return("DataResponse<204, null>")
        assert response.headers == RecordType()

    def test_headers_must_be_a_record(self) -> None:
        with pytest.raises(TypeSyntaxError, match="must be a record"):
            parse_return("DataResponse<200, int, int>")

    def test_plain_type_is_rejected(self) -> None:
        with pytest.raises(TypeSyntaxError, match="Expected a response type"):
            parse_return("{id: int}")

    def test_mixed_union_is_rejected(self) -> None:
        with pytest.raises(TypeSyntaxError, match="cannot mix"):
            parse_return("DataResponse<200, int, {}>|int")

    def test_response_only_at_top_level(self) -> None:
        with pytest.raises(TypeSyntaxError, match="only allowed at the top"):
            parse_return("DataResponse<200, list<DataResponse<200, int, {}>>, {}>")
        with pytest.raises(TypeSyntaxError, match="only allowed at the top"):
            parse_type("DataResponse<200, int, {}>")

    def test_unknown_status(self) -> None:
        with pytest.raises(UnknownStatusError):
            parse_return("DataResponse<299, int, {}>")

    def test_unterminated_response(self) -> None:
        with pytest.raises(UnterminatedTypeError):
            parse_return("DataResponse<200, {id: int}")


class TestStatusTokens:
    @pytest.mark.parametrize(
        ("token", "expected"),
        [
            ("200", 200),
            ("Http.STATUS_NOT_FOUND", 404),
            ("Http.NOT_FOUND", 404),
            ("HTTPStatus.CREATED", 201),
        ],
    )
    def test_known(self, token: str, expected: int) -> None:
        assert parse_status_token(token) == expected

    @pytest.mark.parametrize("token", ["999", "Http.STATUS_NOPE", "Status.OK", "OK"])
    def test_unknown(self, token: str) -> None:
        with pytest.raises(UnknownStatusError, match="Unknown status code"):
            parse_status_token(token)
