"""Tests for the mapping evaluator and SQL rendering."""

import pytest

from docvector.filters import (
    FilterExpressionConverter,
    MappingQueryBackend,
    SqlPredicate,
    SqlQueryBackend,
    and_,
    eq,
    gte,
    in_,
    lt,
    ne,
    nin,
    or_,
    matches_fragment,
)
from docvector.filters.backends import quote_literal

FIELDS = {"author", "type", "year", "draft", "score"}

DOCS = {
    "a_post": {"metadata": {"author": "A", "type": "post", "year": 2021}},
    "a_only": {"metadata": {"author": "A"}},
    "b_post": {"metadata": {"author": "B", "type": "post", "draft": True}},
    "numeric_author": {"metadata": {"author": 1, "year": "2021", "score": 1}},
}


def matching(expr) -> set[str]:
    fragment = FilterExpressionConverter(FIELDS, MappingQueryBackend()).convert(expr)
    return {name for name, doc in DOCS.items() if matches_fragment(fragment, doc)}


class TestMappingSemantics:
    """Document-database semantics of the mapping dialect."""

    def test_and_of_equalities(self):
        assert matching(and_(eq("author", "A"), eq("type", "post"))) == {"a_post"}

    def test_or(self):
        assert matching(or_(eq("author", "B"), eq("year", 2021))) == {"a_post", "b_post"}

    def test_ne_matches_missing_field(self):
        assert matching(ne("type", "post")) == {"a_only", "numeric_author"}

    def test_nin_matches_missing_field(self):
        assert matching(nin("author", ["A"])) == {"b_post", "numeric_author"}

    def test_in(self):
        assert matching(in_("author", ["A", "B"])) == {"a_post", "a_only", "b_post"}

    def test_range_compares_same_kind_only(self):
        """The string "2021" is not >= 2000."""
        assert matching(gte("year", 2000)) == {"a_post"}

    def test_range_on_missing_field(self):
        assert matching(lt("year", 3000)) == {"a_post"}

    def test_boolean_never_equals_number(self):
        assert matching(eq("score", True)) == set()
        assert matching(eq("draft", 1)) == set()
        assert matching(eq("draft", True)) == {"b_post"}


class TestSqlRendering:
    """SQL fragments bind every value and number placeholders at render time."""

    @pytest.fixture
    def converter(self) -> FilterExpressionConverter:
        return FilterExpressionConverter(FIELDS, SqlQueryBackend())

    def test_equality(self, converter):
        sql, params = converter.convert(eq("author", "A")).render()
        assert sql == "(metadata -> 'author') = $1::jsonb"
        assert params == ['"A"']

    def test_negated_equality_matches_missing(self, converter):
        sql, _ = converter.convert(ne("author", "A")).render()
        assert sql.startswith("NOT COALESCE(")
        assert sql.endswith(", FALSE)")

    def test_range_checks_json_type(self, converter):
        sql, params = converter.convert(gte("year", 2020)).render()
        assert "jsonb_typeof((metadata -> 'year')) = 'number'" in sql
        assert ">= $1::jsonb" in sql
        assert params == ["2020"]

    def test_membership_binds_array(self, converter):
        sql, params = converter.convert(in_("type", ["post", "page"])).render()
        assert sql == "(metadata -> 'type') = ANY($1::jsonb[])"
        assert params == [['"post"', '"page"']]

    def test_placeholders_numbered_consecutively(self, converter):
        expr = and_(eq("author", "A"), or_(gte("year", 2020), in_("type", ["post"])), ne("draft", True))
        sql, params = converter.convert(expr).render(start=2)

        assert [f"${i}" in sql for i in range(2, 6)] == [True] * 4
        assert "$1" not in sql
        assert "$6" not in sql
        assert params == ['"A"', "2020", ['"post"'], "true"]

    def test_values_never_in_sql_text(self, converter):
        sql, params = converter.convert(eq("author", "x'; DROP TABLE t; --")).render()
        assert "DROP" not in sql
        assert params == ['"x\'; DROP TABLE t; --"']

    def test_invalid_field_name_rejected(self):
        converter = FilterExpressionConverter({"bad-name"}, SqlQueryBackend())
        with pytest.raises(ValueError):
            converter.convert(eq("bad-name", 1))

    def test_predicate_render_without_params(self):
        assert SqlPredicate("TRUE").render(start=5) == ("TRUE", [])


def test_quote_literal_escapes_quotes():
    assert quote_literal("o'neil") == "'o''neil'"
