"""Tests for FilterExpressionConverter."""

import json

import pytest

from docvector.exceptions import InvalidOperatorError, UnsupportedFieldError
from docvector.filters import (
    Comparison,
    FilterExpressionConverter,
    MappingQueryBackend,
    SqlQueryBackend,
    and_,
    eq,
    gt,
    gte,
    in_,
    lt,
    lte,
    ne,
    nin,
    or_,
)

FIELDS = {"author", "type", "year", "draft"}


@pytest.fixture
def mapping_converter() -> FilterExpressionConverter:
    return FilterExpressionConverter(FIELDS, MappingQueryBackend())


@pytest.fixture
def sql_converter() -> FilterExpressionConverter:
    return FilterExpressionConverter(FIELDS, SqlQueryBackend())


class TestMappingConversion:
    """Conversion rules into the mapping dialect."""

    def test_equality(self, mapping_converter):
        assert mapping_converter.convert(eq("author", "A")) == {"metadata.author": {"$eq": "A"}}

    def test_negated_equality(self, mapping_converter):
        assert mapping_converter.convert(ne("author", "A")) == {"metadata.author": {"$ne": "A"}}

    @pytest.mark.parametrize(
        "builder,op", [(lt, "$lt"), (lte, "$lte"), (gt, "$gt"), (gte, "$gte")]
    )
    def test_range(self, mapping_converter, builder, op):
        assert mapping_converter.convert(builder("year", 2020)) == {"metadata.year": {op: 2020}}

    def test_membership(self, mapping_converter):
        assert mapping_converter.convert(in_("type", ["post", "page"])) == {
            "metadata.type": {"$in": ["post", "page"]}
        }
        assert mapping_converter.convert(nin("type", ["draft"])) == {
            "metadata.type": {"$nin": ["draft"]}
        }

    def test_nested_logical(self, mapping_converter):
        expr = and_(eq("author", "A"), or_(gte("year", 2020), eq("type", "post")))
        assert mapping_converter.convert(expr) == {
            "$and": [
                {"metadata.author": {"$eq": "A"}},
                {
                    "$or": [
                        {"metadata.year": {"$gte": 2020}},
                        {"metadata.type": {"$eq": "post"}},
                    ]
                },
            ]
        }


class TestDeterminism:
    """Identical expressions compile to identical output."""

    def test_mapping_output_is_byte_identical(self, mapping_converter):
        expr = and_(eq("author", "A"), in_("type", {"post", "page", "note"}), gt("year", 1))
        first = json.dumps(mapping_converter.convert(expr))
        second = json.dumps(mapping_converter.convert(expr))
        assert first == second

    def test_sql_output_is_byte_identical(self, sql_converter):
        expr = or_(eq("author", "A"), nin("type", {"post", "page"}))
        assert sql_converter.convert(expr).render() == sql_converter.convert(expr).render()

    def test_set_order_does_not_leak(self, mapping_converter):
        left = mapping_converter.convert(in_("type", {"b", "a", "c"}))
        right = mapping_converter.convert(in_("type", {"c", "b", "a"}))
        assert left == right == {"metadata.type": {"$in": ["a", "b", "c"]}}


class TestConversionErrors:
    """Typed errors for unknown fields and bad operator/value combinations."""

    def test_unknown_field(self, mapping_converter):
        with pytest.raises(UnsupportedFieldError) as exc_info:
            mapping_converter.convert(and_(eq("author", "A"), eq("secret", 1)))

        assert exc_info.value.field == "secret"
        assert exc_info.value.filterable_fields == frozenset(FIELDS)
        assert "secret" in str(exc_info.value)

    def test_in_with_scalar(self, mapping_converter):
        with pytest.raises(InvalidOperatorError):
            mapping_converter.convert(in_("type", "post"))

    def test_in_with_empty_collection(self, mapping_converter):
        with pytest.raises(InvalidOperatorError):
            mapping_converter.convert(nin("type", []))

    def test_eq_with_collection(self, mapping_converter):
        with pytest.raises(InvalidOperatorError):
            mapping_converter.convert(eq("type", ("post", "page")))

    def test_range_with_boolean(self, mapping_converter):
        with pytest.raises(InvalidOperatorError):
            mapping_converter.convert(gt("draft", True))

    def test_non_scalar_value(self, mapping_converter):
        with pytest.raises(InvalidOperatorError):
            mapping_converter.convert(eq("year", None))

    def test_non_scalar_member(self, mapping_converter):
        with pytest.raises(InvalidOperatorError):
            mapping_converter.convert(in_("year", [2020, None]))

    def test_unknown_operator_string(self, mapping_converter):
        with pytest.raises(InvalidOperatorError):
            mapping_converter.convert(Comparison("year", "BETWEEN", 1))

    def test_unknown_node(self, mapping_converter):
        with pytest.raises(InvalidOperatorError):
            mapping_converter.convert({"author": "A"})

    def test_unknown_field_checked_before_value(self, sql_converter):
        with pytest.raises(UnsupportedFieldError):
            sql_converter.convert(in_("secret", "scalar"))

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_value(self, sql_converter, value):
        with pytest.raises(InvalidOperatorError, match="finite"):
            sql_converter.convert(gte("year", value))

    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    def test_non_finite_member(self, sql_converter, value):
        with pytest.raises(InvalidOperatorError, match="finite"):
            sql_converter.convert(in_("year", [2020, value]))

    def test_non_finite_inside_logical(self, mapping_converter):
        with pytest.raises(InvalidOperatorError):
            mapping_converter.convert(or_(eq("author", "A"), ne("year", float("nan"))))
