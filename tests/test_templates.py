"""Tests for query template parsing."""

import pytest

from injection_defense.errors import TemplateError
from injection_defense.templates import (
    FilterClause,
    FilterTemplate,
    Grammar,
    Placeholder,
    SqlTemplate,
    ValueType,
    XPathTemplate,
    scan_sql,
    scan_xpath,
)


def _names(template):
    return [p.name for p in template.placeholders]


class TestValueType:
    def test_bool_is_not_integer(self):
        assert ValueType.of(True) is ValueType.BOOLEAN
        assert ValueType.of(1) is ValueType.INTEGER

    def test_none_and_string(self):
        assert ValueType.of(None) is ValueType.NULL
        assert ValueType.of("x") is ValueType.STRING

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            ValueType.of(1.5)

    @pytest.mark.parametrize("declared,expected", [
        (str, ValueType.STRING),
        (int, ValueType.INTEGER),
        (bool, ValueType.BOOLEAN),
        (None, ValueType.NULL),
        ("Integer", ValueType.INTEGER),
        (ValueType.STRING, ValueType.STRING),
    ])
    def test_coerce(self, declared, expected):
        assert ValueType.coerce(declared) is expected

    def test_coerce_unknown(self):
        with pytest.raises(TemplateError, match="Unknown placeholder type"):
            ValueType.coerce("float")


class TestScanSql:
    def test_finds_markers(self):
        spans = scan_sql("select * from color where friendly_name = :name")
        assert [name for _, _, name in spans] == ["name"]

    def test_skips_string_literals(self):
        spans = scan_sql("select ':not_a_marker', \"also:not\", :real")
        assert [name for _, _, name in spans] == ["real"]

    def test_doubled_quote_stays_inside_literal(self):
        spans = scan_sql("select 'it''s :x' from t where a = :y")
        assert [name for _, _, name in spans] == ["y"]

    def test_skips_comments(self):
        text = "select 1 -- :line\n/* :block */ where a = :a"
        assert [name for _, _, name in scan_sql(text)] == ["a"]

    def test_casts_and_times_are_not_markers(self):
        text = "select x::text, '12:30', 12:30 from t where id = :id"
        assert [name for _, _, name in scan_sql(text)] == ["id"]

    def test_unterminated_quote(self):
        with pytest.raises(TemplateError, match="Unterminated"):
            scan_sql("select 'oops")

    def test_backslash_escape_is_not_an_escape(self):
        # Only doubled quotes escape; this literal closes at the second quote.
        with pytest.raises(TemplateError, match="Unterminated"):
            scan_sql(r"select 'it\'s :x'")

    def test_unterminated_comment(self):
        with pytest.raises(TemplateError, match="Unterminated comment"):
            scan_sql("select 1 /* never closed")


class TestSqlTemplate:
    def test_repeated_names_declared_once(self):
        template = SqlTemplate.parse("select * from t where a = :x or b = :x and c = :y")
        assert _names(template) == ["x", "y"]

    def test_segments_keep_text_and_placeholders(self):
        template = SqlTemplate.parse("delete from color where friendly_name = :name")
        assert template.segments == (
            "delete from color where friendly_name = ",
            Placeholder("name"),
        )

    def test_declared_types(self):
        template = SqlTemplate.parse("select * from t where id = :id", types={"id": int})
        assert template.placeholders == (Placeholder("id", ValueType.INTEGER),)

    def test_type_for_unknown_name(self):
        with pytest.raises(TemplateError, match="not in template"):
            SqlTemplate.parse("select 1 where a = :a", types={"b": str})

    def test_empty_template(self):
        with pytest.raises(TemplateError):
            SqlTemplate.parse("   ")

    def test_no_placeholders_is_valid(self):
        template = SqlTemplate.parse("select count(*) from color")
        assert template.placeholders == ()

    def test_grammar(self):
        assert SqlTemplate.parse("select 1").grammar is Grammar.SQL


class TestFilterTemplate:
    def test_operator_prefix_is_optional(self):
        template = FilterTemplate.parse([("borough", "eq", "borough")])
        assert template.clauses == (FilterClause("borough", "$eq", "borough"),)
        assert template.grammar is Grammar.NOSQL

    def test_accepts_filter_clauses(self):
        template = FilterTemplate.parse([
            FilterClause("price", "$gte", "low"),
            FilterClause("price", "$lt", "high"),
        ])
        assert _names(template) == ["low", "high"]

    @pytest.mark.parametrize("clause", [
        ("$where", "$eq", "x"),
        ("", "$eq", "x"),
        ("name", "$regex", "x"),
        ("name", "$eq", "not valid"),
    ])
    def test_invalid_clauses(self, clause):
        with pytest.raises(TemplateError):
            FilterTemplate.parse([clause])

    def test_repeated_condition(self):
        with pytest.raises(TemplateError, match="Repeated condition"):
            FilterTemplate.parse([("a", "$eq", "x"), ("a", "eq", "y")])

    def test_empty(self):
        with pytest.raises(TemplateError, match="at least one clause"):
            FilterTemplate.parse([])


class TestXPathTemplate:
    def test_finds_variables(self):
        template = XPathTemplate.parse("//book[@id=$bookId]/author/text()")
        assert _names(template) == ["bookId"]
        assert template.grammar is Grammar.XPATH

    def test_dollar_inside_literal_is_not_a_variable(self):
        assert scan_xpath("//item[@price='$5'][@sku=$sku]") == ("sku",)

    def test_syntax_error(self):
        with pytest.raises(TemplateError, match="Invalid XPath"):
            XPathTemplate.parse("//book[@id=$bookId")

    def test_unterminated_literal(self):
        with pytest.raises(TemplateError, match="Unterminated"):
            XPathTemplate.parse("//book[@id='bk101]")

    def test_empty(self):
        with pytest.raises(TemplateError):
            XPathTemplate.parse("")

    def test_templates_are_frozen(self):
        import dataclasses

        template = XPathTemplate.parse("//book[@id=$bookId]")
        with pytest.raises(dataclasses.FrozenInstanceError):
            template.expression = "//book"  # type: ignore[misc]
